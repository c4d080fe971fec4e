"""Tests for forward kinematics, Jacobian estimation and chain extraction."""

import itertools
from pathlib import Path

import jax
import jax.numpy as jnp
import jax.random as jrandom
import numpy as np
import pytest

from rig_kinematics.chain import (
    forward_kinematics,
    forward_kinematics_world,
    jacobian,
    kinematic_chain,
)
from rig_kinematics.core import ConfigIndex, JointNaming, Node, build_rig_model
from rig_kinematics.io import load_rig
from rig_kinematics.transforms import se3

RIG_PATH = Path(__file__).parent / "fixtures" / "bear_rig.xml"


def _load_bear():
    root = load_rig(RIG_PATH)
    index = ConfigIndex.from_tree(root)
    return root, index, build_rig_model(root, index)


def _planar_arm():
    """Root -> single-axis shoulder at the origin -> effector 1 unit along x."""
    root = Node("Base")
    shoulder = root.add(Node("RJoint_Shoulder_Z_A"))
    shoulder.add(Node("Effector", position=(1.0, 0.0, 0.0)))
    root.update_matrix_world()
    index = ConfigIndex.from_tree(root)
    return root, index, build_rig_model(root, index)


def test_rig_model_structure():
    """Test the rig model captures topology in pre-order."""
    root, index, robot = _load_bear()

    assert robot.num_nodes == 21
    assert robot.node_names[0] == "Bear"
    assert robot.joint_names == index.joint_names
    assert robot.parent_indices.shape == (21,)
    assert robot.dof_slots.shape == (21, 3)

    # Root parents itself, every other parent precedes its child
    assert robot.parent_indices[0] == 0
    for i in range(1, robot.num_nodes):
        assert robot.parent_indices[i] < i

    # Single-axis joints drive only z, triple-axis joints drive all three
    knee = robot.node_index("RJoint_Back_Lower_Z_L")
    np.testing.assert_array_equal(robot.dof_slots[knee], [-1, -1, 1])
    neck = robot.node_index("RJoint_Neck_XYZ_C")
    np.testing.assert_array_equal(robot.dof_slots[neck], [17, 18, 19])
    mesh = robot.node_index("Body_Mesh")
    np.testing.assert_array_equal(robot.dof_slots[mesh], [-1, -1, -1])

    # Root transform is excluded from the model
    np.testing.assert_allclose(robot.local_translations[0], jnp.zeros(3))
    np.testing.assert_allclose(robot.rest_rotations[0], jnp.zeros(3))


def test_rig_model_is_pytree():
    """Test that RigModel round-trips through JAX tree utilities."""
    _, _, robot = _load_bear()

    flat_robot, tree_def = jax.tree_util.tree_flatten(robot)
    reconstructed = jax.tree_util.tree_unflatten(tree_def, flat_robot)

    assert reconstructed.node_names == robot.node_names
    assert reconstructed.joint_names == robot.joint_names
    np.testing.assert_array_equal(reconstructed.parent_indices, robot.parent_indices)
    np.testing.assert_array_equal(reconstructed.dof_slots, robot.dof_slots)


def test_fk_planar_arm():
    """Test forward kinematics on a one-joint arm against the analytic pose."""
    _, _, robot = _planar_arm()

    poses = forward_kinematics(robot, jnp.array([0.0]))
    np.testing.assert_allclose(se3.get_position(poses["Effector"]), [1.0, 0.0, 0.0], atol=1e-12)

    poses = forward_kinematics(robot, jnp.array([jnp.pi / 2]))
    np.testing.assert_allclose(se3.get_position(poses["Effector"]), [0.0, 1.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(poses["Base"], jnp.eye(4), atol=1e-12)


def test_fk_bear():
    """Test forward kinematics on the bear rig yields valid poses."""
    _, index, robot = _load_bear()

    q_zero = jnp.zeros(index.num_dofs)
    poses_zero = forward_kinematics(robot, q_zero)

    assert len(poses_zero) == robot.num_nodes
    for node_name in robot.node_names:
        T = poses_zero[node_name]
        assert T.shape == (4, 4)
        np.testing.assert_allclose(T[3, :], jnp.array([0, 0, 0, 1]), rtol=1e-6, atol=1e-6)
        if node_name != "Body_Mesh":  # scaled
            R = T[:3, :3]
            np.testing.assert_allclose(R @ R.T, jnp.eye(3), rtol=1e-9, atol=1e-9)

    q_nonzero = jnp.linspace(-0.5, 0.5, index.num_dofs)
    poses_nonzero = forward_kinematics(robot, q_nonzero)

    for effector in ["Effector_Back_L", "Effector_Front_R", "Effector_Head"]:
        diff_norm = jnp.linalg.norm(poses_nonzero[effector] - poses_zero[effector])
        assert diff_norm > 1e-6, f"Node {effector} pose should change with joint motion"

    # Nodes outside any actuated subtree never move
    np.testing.assert_allclose(poses_nonzero["Effector_Tail"], poses_zero["Effector_Tail"], atol=1e-12)


def test_fk_uses_rest_rotation_for_fixed_components():
    """Test Euler components without a slot keep the tree's rest angle."""
    root, index, robot = _load_bear()
    root.update_matrix_world()

    # The tree is at its rest pose, so FK of the tree's own angles must match it
    knee = root.find("RJoint_Back_Lower_Z_L")
    q = np.zeros(index.num_dofs)
    q[index.slots_of("RJoint_Front_Upper_XYZ_R")[2]] = 0.2

    poses = forward_kinematics(robot, jnp.asarray(q), jnp.asarray(root.matrix_world))
    for node in root.traverse():
        np.testing.assert_allclose(poses[node.name], node.matrix_world, atol=1e-10)
    assert knee.rotation[0] == pytest.approx(0.1)


def test_fk_reference_frame():
    """Test the reference frame pre-multiplies every pose."""
    root, index, robot = _load_bear()
    q = jnp.linspace(-0.3, 0.3, index.num_dofs)
    frame = jnp.asarray(root.matrix_world)

    relative = forward_kinematics_world(robot, q)
    world = forward_kinematics_world(robot, q, frame)

    np.testing.assert_allclose(world, frame[None] @ relative, atol=1e-10)
    np.testing.assert_allclose(world[0], frame, atol=1e-12)


def test_fk_jit_compatibility():
    """Test that forward kinematics is JIT-compilable."""
    _, index, robot = _load_bear()

    @jax.jit
    def jit_fk(q):
        return forward_kinematics_world(robot, q)

    q = jnp.linspace(-0.5, 0.5, index.num_dofs)
    world_transforms = jit_fk(q)

    assert world_transforms.shape == (robot.num_nodes, 4, 4)
    np.testing.assert_allclose(world_transforms, forward_kinematics_world(robot, q), atol=1e-12)


def test_fk_root_only():
    """Test a tree with a single node and no DOFs."""
    root = Node("Lonely", position=(1.0, 2.0, 3.0))
    index = ConfigIndex.from_tree(root)
    robot = build_rig_model(root, index)

    poses = forward_kinematics(robot, jnp.zeros(0))
    assert list(poses) == ["Lonely"]
    np.testing.assert_allclose(poses["Lonely"], jnp.eye(4), atol=1e-12)


def test_jacobian_planar_arm():
    """Test the finite-difference Jacobian of a one-joint arm."""
    _, _, robot = _planar_arm()

    J = jacobian(robot, jnp.array([0.0]), "Effector", jnp.array([1.0, 0.0, 0.0]), epsilon=1e-6)

    assert J.shape == (1, 3)
    np.testing.assert_allclose(J[0], [0.0, 1.0, 0.0], atol=1e-5)


def test_jacobian_matches_autodiff():
    """Verify the finite-difference Jacobian against forward-mode autodiff."""
    _, index, robot = _load_bear()
    effector_idx = robot.node_index("Effector_Front_L")
    q = jnp.linspace(-0.4, 0.4, index.num_dofs)

    J_numerical = jacobian(robot, q, "Effector_Front_L", epsilon=1e-6)

    def effector_position(joint_angles):
        return se3.get_position(forward_kinematics_world(robot, joint_angles)[effector_idx])

    J_autodiff = jax.jacfwd(effector_position)(q).T

    assert J_numerical.shape == (index.num_dofs, 3)
    np.testing.assert_allclose(J_numerical, J_autodiff, rtol=1e-4, atol=1e-4)


def test_jacobian_reference_position():
    """Test differencing against an explicit reference position."""
    _, index, robot = _load_bear()
    q = jnp.zeros(index.num_dofs)
    p = se3.get_position(forward_kinematics(robot, q)["Effector_Head"])

    J_default = jacobian(robot, q, "Effector_Head", epsilon=1e-5)
    J_explicit = jacobian(robot, q, "Effector_Head", p, epsilon=1e-5)
    np.testing.assert_allclose(J_default, J_explicit, atol=1e-8)

    # Offsetting the reference shifts every row by offset / epsilon
    J_shifted = jacobian(robot, q, "Effector_Head", p - 1e-5, epsilon=1e-5)
    np.testing.assert_allclose(J_shifted, J_default + 1.0, atol=1e-6)


def test_jacobian_jit_compatibility():
    """Test that Jacobian estimation is JIT-compilable."""
    _, index, robot = _load_bear()

    @jax.jit
    def jit_jacobian(q):
        return jacobian(robot, q, "Effector_Back_R")

    q = jnp.linspace(-0.2, 0.2, index.num_dofs)
    J = jit_jacobian(q)
    assert J.shape == (index.num_dofs, 3)
    assert jnp.sum(jnp.abs(J)) > 1e-6, "Jacobian should have non-zero entries"


def test_jacobian_random_configs():
    """Property test: Jacobian is finite and varies across random configurations."""
    _, index, robot = _load_bear()

    key = jrandom.PRNGKey(0)  # Deterministic for CI/caching
    n_samples = 5
    q_samples = jrandom.uniform(key, shape=(n_samples, index.num_dofs), minval=-jnp.pi, maxval=jnp.pi)

    Js = [jacobian(robot, q_samples[i], "Effector_Front_R") for i in range(n_samples)]

    for i, J in enumerate(Js):
        assert jnp.isfinite(J).all(), f"Jacobian {i} contains NaN/Inf"
        assert J.shape == (index.num_dofs, 3)

    varied = any(jnp.linalg.norm(J_a - J_b) > 1e-6 for J_a, J_b in itertools.combinations(Js, 2))
    assert varied, "Jacobian did not change across random configurations"


def test_jacobian_zero_for_unrelated_dofs():
    """Test DOFs outside the node's chain have no sensitivity."""
    _, index, robot = _load_bear()
    J = jacobian(robot, jnp.zeros(index.num_dofs), "Effector_Back_L")

    related = set(index.slots_of("RJoint_Back_Upper_XYZ_L") + index.slots_of("RJoint_Back_Lower_Z_L"))
    for slot in range(index.num_dofs):
        if slot not in related:
            np.testing.assert_allclose(J[slot], jnp.zeros(3), atol=1e-9)


def test_invalid_node_name():
    """Test error handling for invalid node names."""
    _, index, robot = _load_bear()

    with pytest.raises(ValueError, match="Node 'nonexistent_node' not found"):
        jacobian(robot, jnp.zeros(index.num_dofs), "nonexistent_node")


def test_kinematic_chain_bear():
    """Test chains run base joint first and keep only prefixed ancestors."""
    _, _, robot = _load_bear()

    assert kinematic_chain(robot, "Effector_Back_L") == (
        "RJoint_Back_Upper_XYZ_L", "RJoint_Back_Lower_Z_L", "Effector_Back_L",
    )
    # "Head" carries no prefix, "Spine" and the root are never joints
    assert kinematic_chain(robot, "Effector_Head") == ("RJoint_Neck_XYZ_C", "Effector_Head")
    # Prefixed nodes count even without a DOF marker
    assert kinematic_chain(robot, "Effector_Tail") == ("RJoint_Tail_Root", "Effector_Tail")


def test_kinematic_chain_edge_cases():
    """Test absent effectors and the root itself."""
    _, _, robot = _load_bear()

    assert kinematic_chain(robot, "Effector_Missing") == ("Effector_Missing",)
    assert kinematic_chain(robot, "Bear") == ("Bear",)


def test_kinematic_chain_custom_naming():
    """Test chain extraction honours a custom joint prefix."""
    root = Node("Root")
    hip = root.add(Node("J_hip_ball_l"))
    knee = hip.add(Node("J_knee_hinge_l", position=(0.0, -1.0, 0.0)))
    knee.add(Node("foot_l", position=(0.0, -1.0, 0.0)))
    naming = JointNaming(prefix="J_", triple_marker="_ball_", single_marker="_hinge_")
    robot = build_rig_model(root, ConfigIndex.from_tree(root, naming))

    assert kinematic_chain(robot, "foot_l", naming) == ("J_hip_ball_l", "J_knee_hinge_l", "foot_l")
    assert kinematic_chain(robot, "foot_l") == ("foot_l",)
