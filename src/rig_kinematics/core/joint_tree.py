"""Mutable scene-graph nodes owned by the host application.

A `Node` tree is what the host animates: each node has a local position,
Euler XYZ rotation and scale, and a cached world matrix that is only valid
after `update_matrix_world()` has propagated it from the root. The kinematics
engine reads node rotations and writes joint angles back into them, but never
owns the tree.
"""

from typing import Iterable, Iterator, List, Optional, Sequence

import jax.numpy as jnp
import numpy as np

from rig_kinematics.transforms import se3, so3


def _vec3(values: Sequence[float], name: str) -> np.ndarray:
    vec = np.asarray(values, dtype=np.float64).reshape(-1)
    if vec.shape != (3,):
        raise ValueError(f"{name} must have 3 components, got {vec.shape[0]}")
    return vec


class Node:
    """Named node of a host-owned joint tree.

    Attributes:
        name: Identifier, unique within the tree.
        position: Local translation relative to the parent, shape (3,).
        rotation: Local Euler XYZ angles in radians, shape (3,).
        scale: Local scale, shape (3,).
        parent: Parent node, or None for a root.
        children: Child nodes in insertion order.
        matrix_world: Cached 4x4 world matrix.
    """

    def __init__(
        self,
        name: str,
        position: Sequence[float] = (0.0, 0.0, 0.0),
        rotation: Sequence[float] = (0.0, 0.0, 0.0),
        scale: Sequence[float] = (1.0, 1.0, 1.0),
        children: Iterable["Node"] = (),
    ):
        self.name = name
        self.position = _vec3(position, "position")
        self.rotation = _vec3(rotation, "rotation")
        self.scale = _vec3(scale, "scale")
        self.parent: Optional["Node"] = None
        self.children: List["Node"] = []
        self.matrix_world = np.eye(4)
        for child in children:
            self.add(child)

    def __repr__(self) -> str:
        return f"Node({self.name!r}, children={len(self.children)})"

    def add(self, child: "Node") -> "Node":
        """Attach `child` under this node, detaching it from any old parent."""
        if child.parent is not None:
            child.parent.children.remove(child)
        child.parent = self
        self.children.append(child)
        return child

    def traverse(self) -> Iterator["Node"]:
        """Yield this node and all descendants in pre-order."""
        yield self
        for child in self.children:
            yield from child.traverse()

    def find(self, name: str) -> Optional["Node"]:
        """Return the first node named `name` in this subtree."""
        for node in self.traverse():
            if node.name == name:
                return node
        return None

    def local_matrix(self) -> np.ndarray:
        """Local transform T(position) @ R(rotation) @ S(scale)."""
        R = so3.from_euler_xyz(jnp.asarray(self.rotation)) * jnp.asarray(self.scale)[None, :]
        return np.asarray(se3.from_position_and_rotation(jnp.asarray(self.position), R))

    def update_matrix_world(self) -> None:
        """Recompute world matrices of this subtree, parents before children."""
        parent_world = self.parent.matrix_world if self.parent is not None else np.eye(4)
        self.matrix_world = parent_world @ self.local_matrix()
        for child in self.children:
            child.update_matrix_world()

    def world_position(self) -> np.ndarray:
        return self.matrix_world[:3, 3].copy()
