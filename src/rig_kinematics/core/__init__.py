"""Core rig data structures for rig_kinematics.

This module provides the host-side joint tree, the joint descriptors derived
from the naming convention, the configuration index, and the immutable rig
model used by forward kinematics.
"""

from .indexer import ConfigIndex, Configuration, JointValue
from .joint import JointNaming, JointSpec, SingleAxis, TripleAxis, joint_spec
from .joint_tree import Node
from .rig_model import RigModel, build_rig_model

__all__ = [
    "ConfigIndex",
    "Configuration",
    "JointValue",
    "JointNaming",
    "JointSpec",
    "SingleAxis",
    "TripleAxis",
    "joint_spec",
    "Node",
    "RigModel",
    "build_rig_model",
]
