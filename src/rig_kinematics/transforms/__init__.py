"""
JAX-based transforms used by the rig kinematics engine.

This module provides JIT-compilable implementations of:
- SO(3) rotations (so3 module), including the Euler XYZ node convention
- SE(3) homogeneous transforms (se3 module)

All functions are pure, stateless, and designed for high-performance computation.
"""

# Core Lie group modules
from . import so3
from . import se3

__all__ = [
    "so3",
    "se3",
]
