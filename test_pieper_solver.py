"""
Tests for the Pieper spherical-wrist IK solver.

Round trips draw random joint angles (radians, within +-170°), run FK, solve
IK and check every returned vector against the target pose.

Author: Haijun Su with Assistance from GitHub Copilot
Date: November 12, 2025
"""

import dataclasses
import math

import numpy as np
import pytest

from joint_vector import Q
from pieper_solver import (
    PieperCase,
    PieperConfig,
    PieperSolver,
    _theta23_general,
    quartic_coefficients,
    solve_theta456,
)
from polynomial_solver import solve_quartic
from utilities import angle_difference, forward_kinematics, inv_dh_transform, pose_from_xyz_euler

HALF_PI = math.pi / 2.0

PUMA560 = np.array([
    [0.0, 0.0, 0.0, 0.0],
    [-HALF_PI, 0.0, 0.0, 0.0],
    [0.0, 0.4318, 0.15005, 0.0],
    [-HALF_PI, 0.0203, 0.4318, 0.0],
    [HALF_PI, 0.0, 0.0, 0.0],
    [-HALF_PI, 0.0, 0.0, 0.0],
])


def random_joints(rng, count):
    return np.deg2rad(rng.uniform(-170.0, 170.0, (count, 6)))


def pose_tolerance(DHM):
    return 1e-6 * max(1.0, np.max(np.abs(DHM[:, 1:3])))


def assert_solutions_reach(DHM, solutions, T_target):
    tol = pose_tolerance(DHM)
    for q in solutions:
        T = forward_kinematics(DHM, q.to_array())
        assert np.linalg.norm(T[:3, 3] - T_target[:3, 3]) < tol
        assert np.linalg.norm(T[:3, :3] - T_target[:3, :3]) < 1e-6


def stripped_wrist_centre(DHM, T06):
    T = inv_dh_transform(DHM[0, 0], DHM[0, 1], DHM[0, 2], 0.0) @ T06 @ inv_dh_transform(0.0, 0.0, DHM[5, 2], 0.0)
    x, y, z = T[:3, 3]
    return T, float(x * x + y * y + z * z), float(z)


def test_case_dispatch(robot):
    solver = PieperSolver(robot['DHM'])
    assert solver.case is PieperCase[robot['case']]


@pytest.mark.parametrize("method", ["eigen", "bracketing"])
def test_round_trip(robot, method):
    DHM = robot['DHM']
    solver = PieperSolver(DHM, PieperConfig(quartic_method=method))
    rng = np.random.default_rng(2025)

    for joints in random_joints(rng, 20):
        T06 = forward_kinematics(DHM, joints)
        solutions = solver.solve(T06)

        assert solutions, f"{robot['classname']}: no solution for {np.degrees(joints)}"
        assert all(isinstance(q, Q) and q.size() == 6 for q in solutions)
        assert len(solutions) % 2 == 0
        assert_solutions_reach(DHM, solutions, T06)

        found_original = any(np.all(angle_difference(q.to_array(), joints) < 1e-5) for q in solutions)
        assert found_original, f"{robot['classname']}: original joints {np.degrees(joints)} not recovered"


def test_general_case_branch_count(robot):
    DHM = robot['DHM']
    solver = PieperSolver(DHM)
    if solver.case is not PieperCase.GENERAL:
        pytest.skip("quartic branch count applies to the general case")

    rng = np.random.default_rng(11)
    for joints in random_joints(rng, 10):
        T06 = forward_kinematics(DHM, joints)
        _, r, z = stripped_wrist_centre(DHM, T06)
        roots = solve_quartic(quartic_coefficients(solver.geometry, r, z))
        assert len(solver.solve(T06)) == 2 * len(roots)


def test_quartic_methods_give_same_solutions(robot):
    DHM = robot['DHM']
    eigen = PieperSolver(DHM, PieperConfig(quartic_method="eigen"))
    bracketing = PieperSolver(DHM, PieperConfig(quartic_method="bracketing"))

    rng = np.random.default_rng(5)
    for joints in random_joints(rng, 10):
        T06 = forward_kinematics(DHM, joints)
        sols_a = eigen.solve(T06)
        sols_b = bracketing.solve(T06)
        assert len(sols_a) == len(sols_b)
        for qa in sols_a:
            assert any(np.all(angle_difference(qa.to_array(), qb.to_array()) < 1e-7) for qb in sols_b)


def test_solver_keeps_no_per_call_state():
    solver = PieperSolver(PUMA560)
    T_a = forward_kinematics(PUMA560, [0.1, -0.5, 0.3, 0.2, 0.7, -0.4])
    T_b = forward_kinematics(PUMA560, [-1.0, 0.2, -0.6, 1.1, -0.3, 0.9])

    first = solver.solve(T_a)
    solver.solve(T_b)
    again = solver.solve(T_a)
    assert len(first) == len(again)
    assert all(q1 == q2 for q1, q2 in zip(first, again))


def test_puma_has_eight_solutions():
    solver = PieperSolver(PUMA560)
    T06 = forward_kinematics(PUMA560, np.radians([30.0, -40.0, 25.0, 60.0, 45.0, -20.0]))
    solutions = solver.solve(T06)
    assert len(solutions) == 8
    assert_solutions_reach(PUMA560, solutions, T06)


def test_wrist_singularity_sets_theta4_to_zero():
    solver = PieperSolver(PUMA560)
    joints = np.array([0.3, -0.4, 0.2, 0.5, 0.0, 0.7])
    T06 = forward_kinematics(PUMA560, joints)
    solutions = solver.solve(T06)
    assert_solutions_reach(PUMA560, solutions, T06)

    # q4 + q6 is all that is determined; q4 = 0, q6 = 1.2
    expected = np.array([0.3, -0.4, 0.2, 0.0, 0.0, 1.2])
    assert any(np.all(angle_difference(q.to_array(), expected) < 1e-6) for q in solutions)
    singular = [q for q in solutions if abs(q[4]) < 1e-9]
    assert singular
    assert all(q[3] == 0.0 or abs(abs(q[3]) - math.pi) < 1e-12 for q in singular)


def test_wrist_singular_theta6_formula():
    # With q1..q3 = 0 the remaining rotation is Rz(q4 + q6) when q5 = 0
    T_target = forward_kinematics(PUMA560, [0.0, 0.0, 0.0, 0.4, 0.0, 0.3])
    branches = solve_theta456(PUMA560, T_target, 0.0, 0.0, 0.0, 1e-9)
    theta4, theta5, theta6 = branches[0]
    assert theta4 == 0.0
    assert theta5 == pytest.approx(0.0, abs=1e-9)
    assert theta6 == pytest.approx(0.7)


def test_wrist_singular_half_turn():
    # q5 = pi: only q6 - q4 is determined
    T_target = forward_kinematics(PUMA560, [0.0, 0.0, 0.0, 0.4, math.pi, 0.3])
    theta4, theta5, theta6 = solve_theta456(PUMA560, T_target, 0.0, 0.0, 0.0, 1e-9)[0]
    assert theta4 == 0.0
    assert theta5 == pytest.approx(math.pi, abs=1e-9)
    assert theta6 == pytest.approx(-0.1)
    T_check = forward_kinematics(PUMA560, [0.0, 0.0, 0.0, theta4, theta5, theta6])
    assert np.allclose(T_check, T_target)


def test_wrist_flip_branch():
    T_target = forward_kinematics(PUMA560, [0.0, 0.0, 0.0, 0.4, 0.8, -0.3])
    (t4, t5, t6), (f4, f5, f6) = solve_theta456(PUMA560, T_target, 0.0, 0.0, 0.0, 1e-9)
    assert (t4, t5, t6) == pytest.approx((0.4, 0.8, -0.3))
    assert (f4, f5, f6) == pytest.approx((0.4 - math.pi, -0.8, -0.3 + math.pi))


def test_wrist_centre_on_base_axis_sets_theta1_to_zero():
    # Elbow arm without shoulder offsets: the wrist centre can sit on joint axis 1
    DHM = np.array([
        [0.0, 0.0, 0.0, 0.0],
        [-HALF_PI, 0.0, 0.0, 0.0],
        [0.0, 0.5, 0.0, 0.0],
        [-HALF_PI, 0.0, 0.5, 0.0],
        [HALF_PI, 0.0, 0.0, 0.0],
        [-HALF_PI, 0.0, 0.0, 0.0],
    ])
    T06 = pose_from_xyz_euler([0.0, 0.0, 0.6], [0.0, 0.0, 0.0])
    solutions = PieperSolver(DHM).solve(T06)
    assert solutions
    assert all(q[0] == 0.0 for q in solutions)
    assert_solutions_reach(DHM, solutions, T06)


def test_unreachable_pose_returns_empty(robot):
    DHM = robot['DHM']
    reach = 10.0 * max(1.0, np.sum(np.abs(DHM[:, 1:3])))
    T06 = pose_from_xyz_euler([reach, reach, reach], [0.1, 0.2, 0.3])
    assert PieperSolver(DHM).solve(T06) == []


def test_home_offsets_are_removed():
    DHM = PUMA560.copy()
    DHM[:, 3] = [0.2, -HALF_PI, 0.1, 0.0, 0.3, -0.4]
    joints = np.array([0.5, 0.2, -0.3, 0.4, 0.6, 0.1])
    T06 = forward_kinematics(DHM, joints)
    solutions = PieperSolver(DHM).solve(T06)
    assert any(np.all(angle_difference(q.to_array(), joints) < 1e-6) for q in solutions)


def test_general_case_guard():
    DHM = np.array([
        [0.0, 0.0, 0.4, 0.0],
        [-HALF_PI, 0.15, 0.0, 0.0],
        [0.0, 0.6, 0.05, 0.0],
        [-HALF_PI, 0.12, 0.64, 0.0],
        [HALF_PI, 0.0, 0.0, 0.0],
        [-HALF_PI, 0.0, 0.1, 0.0],
    ])
    solver = PieperSolver(DHM)
    broken = dataclasses.replace(solver.geometry, a1=0.0)
    with pytest.raises(RuntimeError):
        _theta23_general(broken, 0.5, 0.2, solver.config)


def test_rejects_wrong_table_shape():
    with pytest.raises(ValueError):
        PieperSolver(np.zeros((5, 4)))
    with pytest.raises(ValueError):
        PieperSolver(np.zeros((6, 3)))


@pytest.mark.parametrize("row, col, value", [
    (4, 1, 0.05),      # a4
    (5, 1, 0.05),      # a5
    (4, 2, 0.05),      # d5
    (4, 0, 0.0),       # alpha4 not +-90°
    (5, 0, HALF_PI),   # alpha4 == alpha5
])
def test_rejects_non_spherical_wrist(row, col, value):
    DHM = PUMA560.copy()
    DHM[row, col] = value
    with pytest.raises(ValueError):
        PieperSolver(DHM)


def test_same_sign_wrist_twists_are_reported_as_unsupported():
    # alpha4 = alpha5 = pi/2 is spherical but outside the q4/q6 formulas
    DHM = PUMA560.copy()
    DHM[5, 0] = HALF_PI
    with pytest.raises(ValueError, match="Unsupported wrist twists.*other spherical wrists"):
        PieperSolver(DHM)


def test_rejects_coincident_shoulder_axes():
    DHM = PUMA560.copy()
    DHM[1, 0] = 0.0  # a1 = 0 and alpha1 = 0
    with pytest.raises(ValueError):
        PieperSolver(DHM)


def test_config_validation():
    with pytest.raises(ValueError):
        PieperConfig(quartic_method="newton")
    with pytest.raises(ValueError):
        PieperConfig(degenerate_tol=0.0)
    with pytest.raises(ValueError):
        PieperConfig(max_newton_iterations=0)
    with pytest.raises(dataclasses.FrozenInstanceError):
        PieperConfig().quartic_method = "bracketing"


def test_rejects_non_homogeneous_target():
    with pytest.raises(ValueError):
        PieperSolver(PUMA560).solve(np.eye(3))
