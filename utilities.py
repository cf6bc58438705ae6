"""
DH Transforms, Forward Kinematics and Small Numeric Helpers

This module provides the modified (Craig) DH link transform and its analytical
inverse, rigid-transform inversion, forward kinematics over a 6x4 DHM table,
pose construction from position + Euler angles, angle wrapping and an exact
integer power used by the geometry constants of the Pieper solver.

DHM (Modified Denavit-Hartenberg) Parameters:
| Link | alpha_{i-1} | a_{i-1} | d_i | theta_i_offset |
|------|-------------|---------|-----|----------------|
| 1    | alpha0      | a0      | d1  | th1_offset     |
| 2    | alpha1      | a1      | d2  | th2_offset     |
| 3    | alpha2      | a2      | d3  | th3_offset     |
| 4    | alpha3      | a3      | d4  | th4_offset     |
| 5    | alpha4      | a4      | d5  | th5_offset     |
| 6    | alpha5      | a5      | d6  | th6_offset     |

Author: Haijun Su with Assistance from GitHub Copilot
Date: September 27, 2025
"""

import math
from typing import Sequence

import numpy as np
from scipy.spatial.transform import Rotation


def dh_transform(alpha, a, d, theta):
    """
    Compute the DH transformation matrix.
    T = Rot(X, alpha) * Trans(X, a) * Trans(Z, d) * Rot(Z, theta)
    """
    ca, sa = np.cos(alpha), np.sin(alpha)
    ct, st = np.cos(theta), np.sin(theta)

    return np.array([
        [ct, -st, 0.0, a],
        [st*ca, ct*ca, -sa, -sa*d],
        [st*sa, ct*sa, ca, ca*d],
        [0.0, 0.0, 0.0, 1.0]
    ])


def inv_dh_transform(alpha, a, d, theta):
    """
    Compute the inverse DH transformation matrix.

    invDH(alpha, a, d, theta) = Rot(Z, -theta) * Trans(Z, -d) * Trans(X, -a) * Rot(X, -alpha)
    """
    ca, sa = np.cos(alpha), np.sin(alpha)
    ct, st = np.cos(theta), np.sin(theta)

    return np.array([
        [ct, ca*st, sa*st, -a*ct],
        [-st, ca*ct, sa*ct, a*st],
        [0.0, -sa, ca, -d],
        [0.0, 0.0, 0.0, 1.0]
    ])


def inverse_transform(T: np.ndarray) -> np.ndarray:
    """
    Invert a rigid homogeneous transform without a general matrix inverse.

    inv([R p; 0 1]) = [R^T  -R^T p; 0 1]
    """
    R = T[:3, :3]
    p = T[:3, 3]
    T_inv = np.eye(4)
    T_inv[:3, :3] = R.T
    T_inv[:3, 3] = -R.T @ p
    return T_inv


def forward_kinematics(DHM: np.ndarray, joint_angles: Sequence[float]) -> np.ndarray:
    """
    Compute forward kinematics for a 6R robot using the Modified DH convention.

    Args:
        DHM: 6x4 array with columns [alpha_{i-1}, a_{i-1}, d_i, theta_i_offset]
        joint_angles: [q1, q2, q3, q4, q5, q6] (in radians), added to the offsets

    Returns:
        T06: 4x4 homogeneous transformation matrix from frame 0 to frame 6
    """
    DHM = np.asarray(DHM, dtype=float)
    theta = DHM[:, 3] + np.asarray(joint_angles, dtype=float)

    T06 = np.eye(4)
    for i in range(DHM.shape[0]):
        T06 = T06 @ dh_transform(DHM[i, 0], DHM[i, 1], DHM[i, 2], theta[i])
    return T06


def pose_from_xyz_euler(position, euler, seq: str = 'xyz', degrees: bool = False) -> np.ndarray:
    """
    Build a 4x4 pose from a position vector and Euler angles.

    ``seq`` and ``degrees`` follow :meth:`scipy.spatial.transform.Rotation.from_euler`.
    """
    T = np.eye(4)
    T[:3, :3] = Rotation.from_euler(seq, euler, degrees=degrees).as_matrix()
    T[:3, 3] = np.asarray(position, dtype=float)
    return T


def normalize_angle(angle: float) -> float:
    """Wrap an angle to [-pi, pi)."""
    wrapped = math.fmod(angle + math.pi, 2.0 * math.pi)
    if wrapped < 0:
        wrapped += 2.0 * math.pi
    return wrapped - math.pi


def angle_difference(a, b):
    """Smallest absolute angular distance between ``a`` and ``b`` (element-wise)."""
    diff = np.abs(np.asarray(a, dtype=float) - np.asarray(b, dtype=float))
    diff = np.mod(diff, 2.0 * np.pi)
    return np.minimum(diff, 2.0 * np.pi - diff)


def int_power(base: float, exp: int) -> float:
    """
    Raise ``base`` to an integer power by repeated squaring.

    ``int_power(x, 0)`` is 1.0 for every x (including 0). Negative exponents
    return the reciprocal of the positive power.
    """
    if exp < 0:
        return 1.0 / int_power(base, -exp)

    result = 1.0
    factor = float(base)
    while exp > 0:
        if exp & 1:
            result *= factor
        factor *= factor
        exp >>= 1
    return result
