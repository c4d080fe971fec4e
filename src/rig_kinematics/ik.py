"""Cyclic Coordinate Descent inverse kinematics over configuration vectors.

Each sweep visits the chain from the effector-nearest joint back to the base.
Every DOF of a visited joint is rotated, in turn, by a fraction of the angle
that would swing the effector onto the target around that DOF's world axis,
and forward kinematics is refreshed immediately after each update. The
iteration count advances once per full sweep.
"""

import logging
from functools import partial
from typing import List, NamedTuple, Optional, Sequence, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from .chain import forward_kinematics_world
from .core import RigModel
from .transforms import se3

logger = logging.getLogger(__name__)

# Squared length below which a projected vector gives no usable angle
DEGENERATE_EPS = 1e-4

_forward_kinematics_world = jax.jit(forward_kinematics_world)


class CCDResult(NamedTuple):
    """Outcome of a CCD solve.

    Attributes:
        q: Final configuration vector.
        residual: Target minus final effector position, shape (3,).
        iterations: Number of full sweeps performed.
        world_transforms: (num_nodes, 4, 4) poses from the last FK evaluation.
    """
    q: Array
    residual: Array
    iterations: int
    world_transforms: Array


@partial(jax.jit, static_argnames=("axis",))
def ccd_angle(world_transforms: Array, joint_idx: int, axis: int,
              effector_idx: int, target: Array) -> Tuple[Array, Array]:
    """Signed angle that rotates the effector towards the target about one DOF.

    The rotation axis is column `axis` of the joint's world rotation. Both the
    joint-to-effector and joint-to-target vectors are projected onto the plane
    orthogonal to it before measuring the angle between them.

    Args:
        world_transforms: (num_nodes, 4, 4) current poses
        joint_idx: Node index of the joint
        axis: Euler component driven by the DOF (0=x, 1=y, 2=z)
        effector_idx: Node index of the effector
        target: (3,) target position in the same frame as the poses

    Returns:
        Tuple (angle, valid). `valid` is False when either projection is
        degenerate, in which case `angle` is 0.
    """
    T_joint = world_transforms[joint_idx]
    rotation_axis = se3.get_rotation(T_joint)[:, axis]
    rotation_axis = rotation_axis / jnp.linalg.norm(rotation_axis)

    p_joint = se3.get_position(T_joint)
    p_end = se3.get_position(world_transforms[effector_idx])
    v_current = p_end - p_joint
    v_target = target - p_joint

    current_proj = v_current - rotation_axis * jnp.dot(v_current, rotation_axis)
    target_proj = v_target - rotation_axis * jnp.dot(v_target, rotation_axis)

    current_sq = jnp.dot(current_proj, current_proj)
    target_sq = jnp.dot(target_proj, target_proj)
    valid = (current_sq >= DEGENERATE_EPS) & (target_sq >= DEGENERATE_EPS)

    current_proj = current_proj / jnp.sqrt(jnp.maximum(current_sq, DEGENERATE_EPS))
    target_proj = target_proj / jnp.sqrt(jnp.maximum(target_sq, DEGENERATE_EPS))

    cos_angle = jnp.clip(jnp.dot(current_proj, target_proj), -1.0, 1.0)
    sin_angle = jnp.dot(jnp.cross(current_proj, target_proj), rotation_axis)
    angle = jnp.arctan2(sin_angle, cos_angle)

    return jnp.where(valid, angle, 0.0), valid


def sweep_order(robot: RigModel, chain: Sequence[str]) -> List[Tuple[int, int, int]]:
    """Flatten a chain into (slot, node index, axis) triples in visiting order.

    Joints are visited effector-nearest first; within a joint, DOFs go x, y, z.
    Chain entries without a configuration slot contribute nothing.
    """
    dof_slots = np.asarray(robot.dof_slots)
    order = []
    for name in reversed(chain):
        if name not in robot.node_names:
            continue
        joint_idx = robot.node_index(name)
        for axis in range(3):
            slot = int(dof_slots[joint_idx, axis])
            if slot >= 0:
                order.append((slot, joint_idx, axis))
    return order


def ccd(robot: RigModel, q0: Array, effector: str, target: Array,
        chain: Sequence[str],
        reference_frame: Optional[Array] = None,
        step_size: float = 0.5,
        tolerance: float = 1e-4,
        max_iterations: int = 100) -> CCDResult:
    """Move `effector` towards `target` by cyclic coordinate descent.

    Args:
        robot: RigModel containing the rig's static structure
        q0: Initial configuration vector of shape (num_dofs,)
        effector: Name of the node to place
        target: (3,) target position, in the frame given by `reference_frame`
        chain: Joint names from base to effector, see `kinematic_chain`
        reference_frame: Optional 4x4 pose of the rig root
        step_size: Fraction of each computed angle that is applied
        tolerance: Squared distance at which the solve stops
        max_iterations: Upper bound on full sweeps

    Returns:
        CCDResult with the final vector, residual, sweep count and poses.
        Non-convergence is reported through the residual, never raised.
    """
    effector_idx = robot.node_index(effector)
    dtype = robot.rest_rotations.dtype

    if reference_frame is None:
        frame = jnp.eye(4, dtype=dtype)
    else:
        frame = jnp.asarray(reference_frame, dtype=dtype)
    target = jnp.asarray(target, dtype=dtype)
    q = jnp.asarray(q0, dtype=dtype)

    world = _forward_kinematics_world(robot, q, frame)
    residual = target - se3.get_position(world[effector_idx])

    order = sweep_order(robot, chain)
    iterations = 0
    while float(jnp.dot(residual, residual)) > tolerance and iterations < max_iterations:
        for slot, joint_idx, axis in order:
            angle, valid = ccd_angle(world, joint_idx, axis, effector_idx, target)
            if not bool(valid):
                continue

            q = q.at[slot].add(step_size * angle)
            world = _forward_kinematics_world(robot, q, frame)
            residual = target - se3.get_position(world[effector_idx])
        iterations += 1

    logger.debug(
        "CCD for %s stopped after %d sweeps, squared residual %.3e (tolerance %.1e)",
        effector, iterations, float(jnp.dot(residual, residual)), tolerance,
    )
    return CCDResult(q=q, residual=residual, iterations=iterations, world_transforms=world)
