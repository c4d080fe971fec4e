"""SO(3) rotation operations in JAX.

This module implements the rotation math used by the rig model: elementary
rotations about the coordinate axes and the Euler XYZ convention that
scene-graph nodes use for their local rotations. All functions are pure,
JIT-able, differentiable everywhere, and operate on JAX arrays.
"""

import jax
import jax.numpy as jnp

Array = jax.Array


def about_axis(angle: Array, axis: int) -> Array:
    """
    Rotation matrix for a rotation of `angle` about a coordinate axis.

    Args:
        angle: (...,) array of angles in radians
        axis: 0, 1 or 2 for the x, y or z axis

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    angle = jnp.asarray(angle)
    c = jnp.cos(angle)
    s = jnp.sin(angle)
    one = jnp.ones_like(angle)
    zero = jnp.zeros_like(angle)

    if axis == 0:
        rows = [[one, zero, zero], [zero, c, -s], [zero, s, c]]
    elif axis == 1:
        rows = [[c, zero, s], [zero, one, zero], [-s, zero, c]]
    elif axis == 2:
        rows = [[c, -s, zero], [s, c, zero], [zero, zero, one]]
    else:
        raise ValueError(f"axis must be 0, 1 or 2, got {axis}")

    return jnp.stack([jnp.stack(row, axis=-1) for row in rows], axis=-2)


def from_euler_xyz(euler: Array) -> Array:
    """
    Convert XYZ Euler angles to rotation matrices.

    Uses the scene-graph convention R = Rx(a) @ Ry(b) @ Rz(c), so the z angle
    rotates about the node's own z axis (column 2 of R).

    Args:
        euler: (..., 3) array of [x, y, z] angles in radians

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    euler = jnp.asarray(euler)

    R_x = about_axis(euler[..., 0], 0)
    R_y = about_axis(euler[..., 1], 1)
    R_z = about_axis(euler[..., 2], 2)

    return jnp.matmul(jnp.matmul(R_x, R_y), R_z)
