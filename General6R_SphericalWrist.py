"""
INVERSE KINEMATICS SOLVER FOR GENERAL 6R ROBOTS WITH A SPHERICAL WRIST

Solves IK for 6-DOF robots whose joints 4, 5, 6 intersect in a point using
Pieper's method (see pieper_solver.py).
Compatible with RobotKinematicsCatalogue DHM table format.

DHM (Modified Denavit-Hartenberg) Parameters:
| Link | alpha_{i-1} | a_{i-1} | d_i | theta_i_offset |
|------|-------------|---------|-----|----------------|
| 1    | alpha0      | a0      | d1  | th1_offset     |
| 2    | alpha1      | a1      | d2  | th2_offset     |
| 3    | alpha2      | a2      | d3  | th3_offset     |
| 4    | alpha3      | a3      | d4  | th4_offset     |
| 5    | alpha4      | 0       | 0   | th5_offset     |
| 6    | alpha5      | 0       | d6  | th6_offset     |

Spherical wrist constraint: a4 = a5 = d5 = 0 and alpha4 = -alpha5 = +-90°

Author: Haijun Su with Assistance from GitHub Copilot
Date: November 12, 2025
"""

import logging
from typing import Iterable, List, Optional, Tuple

import numpy as np

from pieper_solver import PieperConfig, PieperSolver
from utilities import angle_difference, forward_kinematics, inverse_transform

logger = logging.getLogger(__name__)


class General6R_SphericalWrist:
    """
    Inverse kinematics solver for general 6R robots with a spherical wrist.
    Compatible with RobotKinematicsCatalogue DHM table format.

    This class acts as a wrapper that:
    1. Accepts DHM table with joint angle offsets (theta_i_offset)
    2. Removes base/tool transforms before handing the pose to PieperSolver
    3. Verifies every IK solution with FK and reports degrees
    """

    def __init__(self, DHM: np.ndarray, TB0: np.ndarray = None, T6W: np.ndarray = None,
                 config: PieperConfig = None):
        """
        Initialize with 6x4 DHM parameter table (RobotKinematicsCatalogue format).

        Args:
            DHM: 6x4 numpy array with columns [alpha_{i-1}, a_{i-1}, d_i, theta_i_offset]
                 Each row i corresponds to link i (i = 1, 2, 3, 4, 5, 6)
            TB0: 4x4 base transform matrix (optional, defaults to identity)
            T6W: 4x4 tool/wrist transform matrix (optional, defaults to identity)
            config: Pieper solver settings (optional)
        """
        DHM = np.asarray(DHM, dtype=float)
        if DHM.shape != (6, 4):
            raise ValueError(f"DHM table must be 6x4, got {DHM.shape}")

        self.DHM = DHM.copy()
        self.theta_offset = DHM[:, 3]

        self.TB0 = TB0 if TB0 is not None else np.eye(4)
        self.T6W = T6W if T6W is not None else np.eye(4)

        self.solver = PieperSolver(self.DHM, config)

        logger.info("Initialized General6R_SphericalWrist IK solver: case=%s, "
                    "base alpha0=%.2f°, a0=%.2f, d1=%.2f, joint offsets=%s",
                    self.solver.case.name, np.degrees(DHM[0, 0]), DHM[0, 1], DHM[0, 2],
                    np.round(np.degrees(self.theta_offset), 1).tolist())

    def FK(self, joint: np.ndarray) -> np.ndarray:
        """
        Compute forward kinematics for the robot.

        Args:
            joint: 6-element array of joint angles in radians (theta-space)

        Returns:
            TBW: 4x4 homogeneous transformation matrix (base to wrist/tool)
        """
        return self.TB0 @ forward_kinematics(self.DHM, joint) @ self.T6W

    def IK(self, TBW: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Solve inverse kinematics for target pose TBW.

        Returns:
            Tuple (solutions, wrongSolutions):
            - solutions: Nx6 array of FK-verified solutions in degrees (theta-space)
            - wrongSolutions: Mx6 array of candidates that failed FK verification
        """
        T06 = inverse_transform(self.TB0) @ TBW @ inverse_transform(self.T6W)

        candidates = self.solver.solve(T06)
        if not candidates:
            logger.debug("No solutions found. Target unreachable.")
            return np.empty((0, 6)), np.empty((0, 6))

        validSolutions = []
        wrongSolutions = []
        for i, q in enumerate(candidates):
            theta_sol = q.to_array()
            T_check = self.FK(theta_sol)

            pos_error = np.linalg.norm(T_check[:3, 3] - TBW[:3, 3])
            rot_error = np.linalg.norm(T_check[:3, :3] - TBW[:3, :3], 'fro')

            if pos_error < 1e-3 and rot_error < 1e-3:
                validSolutions.append(np.degrees(theta_sol))
                logger.debug("Solution %d verified: pos_err=%.2e, rot_err=%.2e", i + 1, pos_error, rot_error)
            else:
                wrongSolutions.append(np.degrees(theta_sol))
                logger.debug("Solution %d FAILED: pos_err=%.2e, rot_err=%.2e", i + 1, pos_error, rot_error)

        solutions = np.array(validSolutions) if validSolutions else np.empty((0, 6))
        wrongSolutions = np.array(wrongSolutions) if wrongSolutions else np.empty((0, 6))
        return solutions, wrongSolutions

    def IK_path(self, poses: Iterable[np.ndarray],
                joint_start: np.ndarray = None) -> List[Optional[np.ndarray]]:
        """
        Invert a sequence of poses, keeping the arm on one continuous branch.

        For every pose the solution closest (joint-space, with angle wrapping)
        to the previous one is chosen; the first pose uses ``joint_start`` (degrees)
        when given.  A pose without a solution gives ``None`` and a warning, the
        following pose is still matched against the last reachable one.
        """
        previous = None if joint_start is None else np.radians(np.asarray(joint_start, dtype=float))
        path: List[Optional[np.ndarray]] = []

        for idx, TBW in enumerate(poses):
            solutions, _ = self.IK(TBW)
            if len(solutions) == 0:
                logger.warning("IK_path: pose %d is unreachable", idx)
                path.append(None)
                continue

            if previous is None:
                chosen = solutions[0]
            else:
                distances = [np.linalg.norm(angle_difference(np.radians(sol), previous))
                             for sol in solutions]
                chosen = solutions[int(np.argmin(distances))]
            path.append(chosen)
            previous = np.radians(chosen)

        return path
