"""
Rig Kinematics: joint-tree kinematics and CCD inverse kinematics in JAX.

This library solves, frame by frame, for joint angles that place the
end-effectors of an articulated figure at target points, using pure
JIT-compilable forward kinematics over an immutable rig model.
"""

import jax
jax.config.update("jax_enable_x64", True)

# Import core modules
from . import transforms
from . import core
from . import io
from .kinematics import IKSolution, Kinematics

__version__ = "0.1.0"
__all__ = ["transforms", "core", "io", "Kinematics", "IKSolution"]
