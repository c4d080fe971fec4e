"""RigModel PyTree data structure for pure forward kinematics.

This module separates a host joint tree's static topology and rest transforms
from the per-call configuration, so world poses can be computed by composing
ancestor transforms without mutating any scene-graph node.
"""

from typing import Dict, Tuple

import jax.numpy as jnp
import numpy as np
from flax import struct
from jax import Array

from .indexer import ConfigIndex
from .joint_tree import Node


@struct.dataclass
class RigModel:
    """Immutable PyTree representation of a joint tree.

    Nodes are stored in pre-order, so every parent index is smaller than the
    indices of its children. The root sits at index 0, parents itself, and
    has an identity local transform: poses are expressed relative to the
    root's own frame.

    Attributes:
        node_names: Tuple of all node names. Index corresponds to node ID.
                    Marked as a static field for JIT compilation.
        joint_names: Tuple of DOF-bearing joint names in slot order.
                     Marked as a static field for JIT compilation.
        parent_indices: Array of shape (num_nodes,) with each node's parent.
        local_translations: Array of shape (num_nodes, 3) of local positions.
        rest_rotations: Array of shape (num_nodes, 3) of Euler XYZ angles used
                        where no configuration slot drives the component.
        scales: Array of shape (num_nodes, 3) of local scales.
        dof_slots: Int array of shape (num_nodes, 3). Entry [i, a] is the
                   configuration slot driving Euler component a of node i,
                   or -1 when the component is fixed.
    """
    node_names: Tuple[str, ...] = struct.field(pytree_node=False)
    joint_names: Tuple[str, ...] = struct.field(pytree_node=False)
    parent_indices: Array
    local_translations: Array
    rest_rotations: Array
    scales: Array
    dof_slots: Array

    @property
    def num_nodes(self) -> int:
        return len(self.node_names)

    def node_index(self, name: str) -> int:
        """Index of node `name`; raises ValueError if absent."""
        try:
            return self.node_names.index(name)
        except ValueError:
            raise ValueError(f"Node '{name}' not found in rig model")


def build_rig_model(root: Node, index: ConfigIndex) -> RigModel:
    """Capture the static structure of the tree under `root`.

    Args:
        root: Root of the host joint tree.
        index: Configuration index built over the same tree.

    Returns:
        RigModel: A JAX-native rig representation.
    """
    nodes = list(root.traverse())
    node_ids: Dict[int, int] = {id(node): i for i, node in enumerate(nodes)}

    num_nodes = len(nodes)
    parent_indices = np.zeros(num_nodes, dtype=np.int32)
    translations = np.zeros((num_nodes, 3))
    rotations = np.zeros((num_nodes, 3))
    scales = np.ones((num_nodes, 3))
    dof_slots = np.full((num_nodes, 3), -1, dtype=np.int32)

    # Root keeps the identity transform and parents itself
    for i, node in enumerate(nodes[1:], start=1):
        parent_indices[i] = node_ids[id(node.parent)]
        translations[i] = node.position
        rotations[i] = node.rotation
        scales[i] = node.scale

        spec = index.spec_of(node.name)
        if spec is not None:
            for axis, slot in zip(spec.axes, index.slots_of(node.name)):
                dof_slots[i, axis] = slot

    return RigModel(
        node_names=tuple(node.name for node in nodes),
        joint_names=index.joint_names,
        parent_indices=jnp.asarray(parent_indices),
        local_translations=jnp.asarray(translations),
        rest_rotations=jnp.asarray(rotations),
        scales=jnp.asarray(scales),
        dof_slots=jnp.asarray(dof_slots),
    )
