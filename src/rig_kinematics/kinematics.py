"""Kinematics engine bound to a host-owned joint tree.

`Kinematics` is what an animation loop talks to: it reads and writes joint
angles on the live scene graph, and runs pure forward kinematics, chain
extraction, CCD and Jacobian estimation on top of a `RigModel` captured at
construction.
"""

import logging
import math
from types import MappingProxyType
from typing import Dict, Mapping, NamedTuple, Optional, Sequence, Tuple

import jax.numpy as jnp
import numpy as np
from jax import Array

from .chain import forward_kinematics, jacobian, kinematic_chain
from .core import (
    ConfigIndex,
    Configuration,
    JointNaming,
    JointValue,
    Node,
    SingleAxis,
    build_rig_model,
)
from .core.joint import AXIS_NAMES
from .ik import ccd
from .transforms import se3

logger = logging.getLogger(__name__)

# Bias applied to the captured pose to settle the figure into its resting stance
HOME_POSE_OFFSETS = {
    "RJoint_Back_Lower_Z_L": math.pi / 4,
    "RJoint_Back_Lower_Z_R": -math.pi / 4,
    "RJoint_Front_Lower_Z_L": -math.pi / 8,
    "RJoint_Front_Lower_Z_R": math.pi / 8,
}


class IKSolution(NamedTuple):
    """Result of `Kinematics.solve`.

    Attributes:
        configuration: Final configuration for every indexed joint.
        residual: Target minus final effector position, shape (3,).
        iterations: Number of CCD sweeps performed.
        transforms: Node poses from the last FK evaluation.
    """
    configuration: Configuration
    residual: np.ndarray
    iterations: int
    transforms: Dict[str, Array]


class Kinematics:
    """Forward and inverse kinematics for a named joint tree.

    The tree stays owned by the caller. Only `set_configuration` mutates it;
    every other operation works on the rig model and leaves the tree as it
    found it.

    Node translations, scales and the Euler components no joint drives are
    captured when the engine is built. Later edits to those on the host tree
    are not seen by forward kinematics; build a new engine after such edits.
    The root is not indexed and its pose only enters through `reference_frame`.

    Args:
        root: Root node of the joint tree.
        y_up: If True, single-axis joints rotate about Y instead of Z.
        naming: Naming convention identifying joints and their DOFs.
        home_offsets: Angles added to single-axis joints of the captured pose
                      to form the home configuration, `HOME_POSE_OFFSETS` if
                      omitted. Joints missing from the tree are skipped.

    Raises:
        ValueError: If `root` is None.
    """

    def __init__(self, root: Optional[Node], y_up: bool = False,
                 naming: JointNaming = JointNaming(),
                 home_offsets: Optional[Mapping[str, float]] = None):
        if root is None:
            raise ValueError("Kinematics requires a joint tree root, got None")

        self.root = root
        self.y_up = y_up
        self.naming = naming

        self.nodes: Dict[str, Node] = {}
        for node in root.traverse():
            self.nodes.setdefault(node.name, node)

        self.index = ConfigIndex.from_tree(root, naming, y_up)
        self.model = build_rig_model(root, self.index)
        self._chains: Dict[str, Tuple[str, ...]] = {}

        home = self.get_current_configuration()
        offsets = HOME_POSE_OFFSETS if home_offsets is None else home_offsets
        for joint, offset in offsets.items():
            if isinstance(self.index.spec_of(joint), SingleAxis):
                home[joint] = home[joint] + offset
        self._home_configuration = home
        self._home_transforms = MappingProxyType(self.forward_kinematics(home))

        logger.debug(
            "Indexed %d joints (%d DOFs) over %d nodes:\n%s",
            len(self.index.joint_names), self.index.num_dofs, self.model.num_nodes,
            self.index.describe(),
        )

    @property
    def num_dofs(self) -> int:
        return self.index.num_dofs

    @property
    def home_configuration(self) -> Configuration:
        """Copy of the home configuration captured at construction."""
        return dict(self._home_configuration)

    @property
    def home_transforms(self) -> Mapping[str, Array]:
        """Read-only FK snapshot of the home configuration, relative to the root."""
        return self._home_transforms

    def home_position(self, name: str, reference_frame: Optional[Array] = None) -> np.ndarray:
        """Rest position of node `name` in the home pose, mapped through a frame.

        With `reference_frame=root.matrix_world` this is where the node would
        sit in the world if the figure were at rest.
        """
        position = se3.get_position(self._home_transforms[name])
        if reference_frame is not None:
            position = se3.apply(jnp.asarray(reference_frame, dtype=position.dtype), position)
        return np.asarray(position)

    def get_current_configuration(self) -> Configuration:
        """Read joint angles straight from the tree's node rotations."""
        q: Configuration = {}
        for joint in self.index.joint_names:
            spec = self.index.spec_of(joint)
            rotation = self.nodes[joint].rotation
            if isinstance(spec, SingleAxis):
                q[joint] = float(rotation[spec.axis])
            else:
                q[joint] = tuple(float(angle) for angle in rotation)
        return q

    def get_current_vector(self) -> np.ndarray:
        return self.index.config_to_vector(self.get_current_configuration())

    def set_configuration(self, q: Mapping[str, JointValue]) -> None:
        """Write joint angles into the tree and propagate world matrices.

        Joints and components not addressed by `q` keep their values. Unknown
        keys are ignored.
        """
        values = self.index.resolve(q)
        if not values:
            return
        for slot, value in values.items():
            label = self.index.label_of(slot)
            joint, _, component = label.partition("/")
            spec = self.index.spec_of(joint)
            if isinstance(spec, SingleAxis):
                axis = spec.axis
            else:
                axis = AXIS_NAMES.index(component)
            self.nodes[joint].rotation[axis] = value
        self.root.update_matrix_world()

    def config_to_vector(self, q: Mapping[str, JointValue]) -> np.ndarray:
        """Encode `q`; slots it does not address take the tree's current values."""
        return self.index.config_to_vector(q, base=self.get_current_vector())

    def vector_to_config(self, vec: Sequence[float]) -> Configuration:
        return self.index.vector_to_config(vec)

    def forward_kinematics(self, q: Optional[Mapping[str, JointValue]] = None,
                           reference_frame: Optional[Array] = None) -> Dict[str, Array]:
        """Pose of every node for configuration `q`.

        Joints missing from `q` take the tree's current values; the tree itself
        is not modified.
        """
        vec = self.get_current_vector() if q is None else self.config_to_vector(q)
        return forward_kinematics(self.model, jnp.asarray(vec), reference_frame)

    def chain(self, effector: str) -> Tuple[str, ...]:
        """Joint names from the base to `effector`, cached per effector."""
        if effector not in self._chains:
            self._chains[effector] = kinematic_chain(self.model, effector, self.naming)
        return self._chains[effector]

    def solve(self, q0: Mapping[str, JointValue], effector: str, target: Sequence[float],
              reference_frame: Optional[Array] = None,
              step_size: float = 0.5,
              tolerance: float = 1e-4,
              max_iterations: int = 100) -> IKSolution:
        """Solve for a configuration placing `effector` at `target` by CCD.

        Args:
            q0: Starting configuration; missing joints take current values.
            effector: Name of the node to place.
            target: Target position in the frame given by `reference_frame`.
            reference_frame: 4x4 pose of the tree root, e.g.
                             `root.matrix_world` for world-space targets.
            step_size: Fraction of each CCD angle applied per update.
            tolerance: Squared distance at which the solve stops.
            max_iterations: Upper bound on CCD sweeps.

        Returns:
            IKSolution. A target that cannot be reached is reported through the
            residual and iteration count, not raised. An effector missing from
            the tree makes no progress: the starting configuration comes back
            after `max_iterations` sweeps with a NaN residual.
        """
        q = self.config_to_vector(q0)
        if effector not in self.model.node_names:
            logger.warning("Effector %r is not in the tree, nothing to solve", effector)
            return IKSolution(
                configuration=self.vector_to_config(q),
                residual=np.full(3, np.nan),
                iterations=max_iterations,
                transforms=forward_kinematics(self.model, jnp.asarray(q), reference_frame),
            )

        result = ccd(
            self.model,
            jnp.asarray(q),
            effector,
            jnp.asarray(target, dtype=jnp.float64),
            self.chain(effector),
            reference_frame=reference_frame,
            step_size=step_size,
            tolerance=tolerance,
            max_iterations=max_iterations,
        )
        transforms = {name: result.world_transforms[i] for i, name in enumerate(self.model.node_names)}
        return IKSolution(
            configuration=self.vector_to_config(np.asarray(result.q)),
            residual=np.asarray(result.residual),
            iterations=result.iterations,
            transforms=transforms,
        )

    def jacobian(self, q: Mapping[str, JointValue], node_name: str,
                 reference_position: Optional[Sequence[float]] = None,
                 epsilon: float = 1e-4,
                 reference_frame: Optional[Array] = None) -> np.ndarray:
        """Finite-difference position Jacobian of `node_name`, shape (num_dofs, 3).

        A node missing from the tree has no sensitivity to any DOF.
        """
        if node_name not in self.model.node_names:
            return np.zeros((self.num_dofs, 3))
        vec = jnp.asarray(self.config_to_vector(q))
        J = jacobian(self.model, vec, node_name, reference_position, epsilon, reference_frame)
        return np.asarray(J)
