"""Core kinematics algorithms: Forward Kinematics, Jacobian and chain extraction.

This module implements the pure-function side of rig_kinematics: world poses of
every node for a configuration vector, finite-difference position Jacobians,
and the root-to-effector joint chains the CCD solver sweeps over. None of these
functions touch the host's scene graph.
"""

from typing import Dict, Optional, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from .core import JointNaming, RigModel
from .transforms import se3, so3


def local_transforms(robot: RigModel, q: Array) -> Array:
    """Compute every node's parent-relative transform for a configuration.

    Args:
        robot: RigModel containing the rig's static structure
        q: Configuration vector of shape (num_dofs,)

    Returns:
        Array of shape (num_nodes, 4, 4) with local transforms
    """
    q = jnp.asarray(q, dtype=robot.rest_rotations.dtype)

    # Pad with a dummy slot so fixed components (slot -1) index something valid
    q_padded = jnp.concatenate([q, jnp.zeros(1, dtype=q.dtype)])
    driven = robot.dof_slots >= 0
    slots = jnp.where(driven, robot.dof_slots, q.shape[0])
    euler = jnp.where(driven, q_padded[slots], robot.rest_rotations)

    R = so3.from_euler_xyz(euler) * robot.scales[:, None, :]
    return se3.from_position_and_rotation(robot.local_translations, R)


def forward_kinematics(robot: RigModel, q: Array,
                       reference_frame: Optional[Array] = None) -> Dict[str, Array]:
    """Compute forward kinematics for all nodes in the rig.

    Args:
        robot: RigModel containing the rig's static structure
        q: Configuration vector of shape (num_dofs,)
        reference_frame: Optional 4x4 pose of the rig root. Identity if omitted,
                         which yields poses relative to the root.

    Returns:
        Dictionary mapping node names to their 4x4 poses
    """
    world_transforms = forward_kinematics_world(robot, q, reference_frame)

    return {name: world_transforms[i] for i, name in enumerate(robot.node_names)}


def forward_kinematics_world(robot: RigModel, q: Array,
                             reference_frame: Optional[Array] = None) -> Array:
    """Internal FK function returning array of world transforms.

    This function is JIT-compilable and differentiable in `q`.

    Args:
        robot: RigModel containing the rig's static structure
        q: Configuration vector of shape (num_dofs,)
        reference_frame: Optional 4x4 pose of the rig root

    Returns:
        Array of shape (num_nodes, 4, 4) with poses for all nodes
    """
    num_nodes = robot.num_nodes
    local = local_transforms(robot, q)

    if reference_frame is None:
        frame = jnp.eye(4, dtype=local.dtype)
    else:
        frame = jnp.asarray(reference_frame, dtype=local.dtype)

    # The root's local transform is the identity, so every slot starts at the frame
    world_transforms = jnp.broadcast_to(frame, (num_nodes, 4, 4))

    def scan_body(carry, i):
        """Processes node `i` using its parent's pose from `carry`."""
        T_world_to_parent = carry[robot.parent_indices[i]]
        carry = carry.at[i].set(T_world_to_parent @ local[i])
        return carry, None

    # Pre-order storage guarantees each parent is final before its children.
    final_transforms, _ = jax.lax.scan(scan_body, world_transforms, jnp.arange(1, num_nodes))

    return final_transforms


def jacobian(robot: RigModel, q: Array, node_name: str,
             reference_position: Optional[Array] = None,
             epsilon: float = 1e-4,
             reference_frame: Optional[Array] = None) -> Array:
    """Estimate the position Jacobian of a node by forward differences.

    Each configuration slot is perturbed by `epsilon` on its own and the
    perturbed poses are evaluated in one vectorized FK pass.

    Args:
        robot: RigModel containing the rig's static structure
        q: Configuration vector of shape (num_dofs,)
        node_name: Name of the node whose position is differentiated
        reference_position: Position the perturbed positions are differenced
                            against. Defaults to the node's position at `q`.
        epsilon: Perturbation size in radians
        reference_frame: Optional 4x4 pose of the rig root

    Returns:
        Array of shape (num_dofs, 3); row i is d(position)/d(q[i])
    """
    node_idx = robot.node_index(node_name)
    q = jnp.asarray(q, dtype=robot.rest_rotations.dtype)
    num_dofs = q.shape[0]

    def node_position(joint_angles: Array) -> Array:
        return se3.get_position(forward_kinematics_world(robot, joint_angles, reference_frame)[node_idx])

    if reference_position is None:
        reference_position = node_position(q)
    reference_position = jnp.asarray(reference_position, dtype=q.dtype)

    if num_dofs == 0:
        return jnp.zeros((0, 3), dtype=q.dtype)

    perturbed = q[None, :] + epsilon * jnp.eye(num_dofs, dtype=q.dtype)
    positions = jax.vmap(node_position)(perturbed)

    return (positions - reference_position) / epsilon


def kinematic_chain(robot: RigModel, effector: str,
                    naming: JointNaming = JointNaming()) -> Tuple[str, ...]:
    """Joint names from the base of the rig down to `effector`.

    Ancestors are kept when their name carries the joint prefix, whether or
    not they actually carry a DOF; the root itself is never included. The
    effector closes the chain.

    Args:
        robot: RigModel containing the rig's static structure
        effector: Name of the end-effector node
        naming: Naming convention that identifies joints

    Returns:
        Tuple ordered base joint first, effector last. A name absent from the
        rig yields the singleton (effector,).
    """
    try:
        node_idx = robot.node_index(effector)
    except ValueError:
        return (effector,)

    parents = np.asarray(robot.parent_indices)
    chain = [effector]
    i = int(parents[node_idx])
    while i != 0:
        name = robot.node_names[i]
        if naming.is_joint(name):
            chain.append(name)
        i = int(parents[i])

    return tuple(reversed(chain))
