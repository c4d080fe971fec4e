"""Joint descriptors derived from the rig naming convention.

Node names decide which scene-graph nodes are actuated: a name carrying the
triple marker rotates freely about x, y and z, a name carrying the single
marker rotates about one fixed axis. The string inspection happens once, when
the rig is indexed; everything downstream dispatches on the descriptor.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

AXIS_NAMES = ("x", "y", "z")


@dataclass(frozen=True)
class JointNaming:
    """Naming convention that marks scene-graph nodes as joints.

    Attributes:
        prefix: Prefix of every recognized joint name. Chain extraction keeps
                only ancestors carrying it.
        triple_marker: Substring marking a 3-DOF (x, y, z) joint.
        single_marker: Substring marking a 1-DOF joint.
    """
    prefix: str = "RJoint_"
    triple_marker: str = "_XYZ_"
    single_marker: str = "_Z_"

    def is_joint(self, name: str) -> bool:
        return name.startswith(self.prefix)


@dataclass(frozen=True)
class SingleAxis:
    """One rotational DOF about a fixed local axis (0=x, 1=y, 2=z)."""
    axis: int = 2

    @property
    def axes(self) -> Tuple[int, ...]:
        return (self.axis,)

    def labels(self, name: str) -> Tuple[str, ...]:
        return (name,)


@dataclass(frozen=True)
class TripleAxis:
    """Three rotational DOFs, one per Euler component, in x, y, z order."""

    @property
    def axes(self) -> Tuple[int, ...]:
        return (0, 1, 2)

    def labels(self, name: str) -> Tuple[str, ...]:
        return tuple(f"{name}/{axis}" for axis in AXIS_NAMES)


JointSpec = Union[SingleAxis, TripleAxis]


def joint_spec(name: str, naming: JointNaming, y_up: bool = False) -> Optional[JointSpec]:
    """Classify a node name.

    Args:
        name: Scene-graph node name.
        naming: Naming convention to apply.
        y_up: If True, single-axis joints rotate about Y instead of Z.

    Returns:
        The joint descriptor, or None for nodes that are not actuated.
    """
    if naming.triple_marker in name:
        return TripleAxis()
    if naming.single_marker in name:
        return SingleAxis(axis=1 if y_up else 2)
    return None
