"""Bijection between joint DOF labels and configuration-vector slots.

Joints are enumerated in ascending name order. A single-axis joint takes one
slot labelled with its name; a triple-axis joint takes three consecutive slots
labelled "<name>/x", "<name>/y" and "<name>/z". The mapping is built once and
never changes afterwards.
"""

from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .joint import JointNaming, JointSpec, SingleAxis, joint_spec
from .joint_tree import Node

JointValue = Union[float, Tuple[Optional[float], Optional[float], Optional[float]]]
Configuration = Dict[str, JointValue]


class ConfigIndex:
    """Immutable label <-> slot mapping for a set of joints.

    Args:
        joints: Mapping from joint name to its descriptor. Order is ignored,
                slots are assigned in ascending name order.
    """

    def __init__(self, joints: Mapping[str, JointSpec]):
        self._joints: Dict[str, JointSpec] = {name: joints[name] for name in sorted(joints)}

        labels = []
        joint_slots: Dict[str, Tuple[int, ...]] = {}
        for name, spec in self._joints.items():
            first = len(labels)
            labels.extend(spec.labels(name))
            joint_slots[name] = tuple(range(first, len(labels)))

        self._labels: Tuple[str, ...] = tuple(labels)
        self._slots: Dict[str, int] = {label: i for i, label in enumerate(self._labels)}
        self._joint_slots = joint_slots

    @classmethod
    def from_tree(cls, root: Node, naming: JointNaming = JointNaming(),
                  y_up: bool = False) -> "ConfigIndex":
        """Index every node below `root` whose name carries a DOF marker.

        The root itself is never indexed: its pose is the reference frame that
        forward kinematics works in, so it has no angles to solve for.
        """
        joints = {}
        for node in root.traverse():
            if node is root:
                continue
            spec = joint_spec(node.name, naming, y_up)
            if spec is not None:
                joints[node.name] = spec
        return cls(joints)

    def __len__(self) -> int:
        return len(self._labels)

    def __contains__(self, joint: str) -> bool:
        return joint in self._joints

    @property
    def num_dofs(self) -> int:
        return len(self._labels)

    @property
    def labels(self) -> Tuple[str, ...]:
        return self._labels

    @property
    def joint_names(self) -> Tuple[str, ...]:
        return tuple(self._joints)

    def spec_of(self, joint: str) -> Optional[JointSpec]:
        return self._joints.get(joint)

    def slots_of(self, joint: str) -> Tuple[int, ...]:
        """Slots of `joint` in x, y, z order; empty for unknown joints."""
        return self._joint_slots.get(joint, ())

    def index_of(self, label: str) -> Optional[int]:
        return self._slots.get(label)

    def label_of(self, slot: int) -> str:
        return self._labels[slot]

    def resolve(self, q: Mapping[str, JointValue]) -> Dict[int, float]:
        """Map the entries of a (partial) configuration to slot values.

        Keys may be joint names or single DOF labels. Unknown keys and None
        components of triple values are skipped.
        """
        values: Dict[int, float] = {}
        for key, value in q.items():
            if key in self._joints:
                slots = self._joint_slots[key]
                if isinstance(self._joints[key], SingleAxis):
                    if value is not None:
                        values[slots[0]] = float(value)
                    continue
                for slot, component in zip(slots, value):
                    if component is not None:
                        values[slot] = float(component)
            elif key in self._slots and value is not None:
                values[self._slots[key]] = float(value)
        return values

    def config_to_vector(self, q: Mapping[str, JointValue],
                         base: Optional[Sequence[float]] = None) -> np.ndarray:
        """Encode a configuration as a vector.

        Args:
            q: Configuration, possibly partial.
            base: Values for slots `q` does not address. Zeros if omitted.

        Returns:
            Array of shape (num_dofs,).
        """
        if base is None:
            vec = np.zeros(self.num_dofs)
        else:
            vec = np.array(base, dtype=np.float64).reshape(-1)
            if vec.shape != (self.num_dofs,):
                raise ValueError(f"base must have shape ({self.num_dofs},), got {vec.shape}")
        for slot, value in self.resolve(q).items():
            vec[slot] = value
        return vec

    def vector_to_config(self, vec: Sequence[float]) -> Configuration:
        """Decode a vector into a configuration covering every indexed joint."""
        vec = np.asarray(vec, dtype=np.float64)
        q: Configuration = {}
        for name, spec in self._joints.items():
            slots = self._joint_slots[name]
            if isinstance(spec, SingleAxis):
                q[name] = float(vec[slots[0]])
            else:
                q[name] = tuple(float(vec[slot]) for slot in slots)
        return q

    def describe(self) -> str:
        """One line per slot, e.g. "3: RJoint_Neck_XYZ_C/y"."""
        return "\n".join(f"{i}: {label}" for i, label in enumerate(self._labels))
