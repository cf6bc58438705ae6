"""
INVERSE KINEMATICS FOR 6R ROBOTS WITH A SPHERICAL WRIST (PIEPER'S METHOD)

Closed-form / semi-numeric IK for 6R arms whose last three joint axes intersect
in one point (the wrist centre).  Position and orientation decouple:

1. Strip the constant part of link 1 and the tool offset d6 from the target:
       T' = invDH(alpha0, a0, d1, 0) . T06 . invDH(0, 0, d6, 0)
   The translation of T' is the wrist centre P = (x, y, z) seen from a frame
   in which joint 1 is a pure rotation Rz(q1).
2. The wrist centre in frame 1 depends only on (q1, q2, q3):
       P = Rz(q1) . T12(q2) . f(q3)
   with f = T23(q3) . (a3, -sin(alpha3) d4, cos(alpha3) d4).  Eliminating q1
   and q2 leaves
       r = |P|^2 = 2 a1 (k1 c2 + k2 s2) + k3(q3)
       z         = sin(alpha1) (k1 s2 - k2 c2) + k4(q3)
   where k1 = f1, k2 = -f2 and k3, k4 are trig-linear in q3.
3. q3 then q2 come from one of three cases chosen once per arm:
       a1 == 0              -> r equation alone gives q3 (half-angle quadratic)
       sin(alpha1) == 0     -> z equation alone gives q3 (half-angle quadratic)
       otherwise            -> quartic in u = tan(q3/2)
4. q1 from the x/y components, q4 q5 q6 from the remaining rotation
   T46 = inv(T04) . T', two wrist branches per position solution.

DHM (Modified Denavit-Hartenberg) Parameters:
| Link | alpha_{i-1} | a_{i-1} | d_i | theta_i_offset |
|------|-------------|---------|-----|----------------|
| 1    | alpha0      | a0      | d1  | th1_offset     |
| 2    | alpha1      | a1      | d2  | th2_offset     |
| 3    | alpha2      | a2      | d3  | th3_offset     |
| 4    | alpha3      | a3      | d4  | th4_offset     |
| 5    | alpha4      | 0       | 0   | th5_offset     |
| 6    | alpha5      | 0       | d6  | th6_offset     |

with alpha4 = -alpha5 = +-pi/2.  Other twist pairs (alpha4 = alpha5 = +-pi/2
included) still give a spherical wrist, but the q4/q6 extraction below is
written for these two conventions only and rejects them.

Typical solution count: up to 8 (4 position solutions x 2 wrist branches).

Author: Haijun Su with Assistance from GitHub Copilot
Date: November 12, 2025
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Tuple

import numpy as np
from numpy.polynomial import Polynomial

from joint_vector import Q
from polynomial_solver import (
    QUARTIC_METHODS,
    QuarticCoefficients,
    TrigLinear,
    half_angle_to_angle,
    solve_quartic,
    solve_trig_eq,
)
from utilities import dh_transform, int_power, inv_dh_transform, inverse_transform, normalize_angle

logger = logging.getLogger(__name__)

# Tolerance on cos/sin of the wrist twists (tables often store pi/2 rounded).
WRIST_TWIST_TOL = 1e-6


class PieperCase(Enum):
    """How q3 and q2 are obtained, decided from the joint 1/2 geometry."""

    AXES_INTERSECT = 1  # a1 == 0
    AXES_PARALLEL = 2   # sin(alpha1) == 0
    GENERAL = 3


@dataclass(frozen=True)
class PieperConfig:
    """
    Solver settings.

    ``degenerate_tol`` is relative to the arm's length scale,
    ``quadratic_eps`` relative to the half-angle coefficient magnitudes and
    ``wrist_singular_tol`` is an angle in radians.
    """

    quartic_method: str = "eigen"
    degenerate_tol: float = 1e-9
    quadratic_eps: float = 1e-12
    wrist_singular_tol: float = 1e-9
    max_newton_iterations: int = 100

    def __post_init__(self):
        if self.quartic_method not in QUARTIC_METHODS:
            raise ValueError(f"Unknown quartic method {self.quartic_method!r}, "
                             f"expected one of {QUARTIC_METHODS}")
        for name in ("degenerate_tol", "quadratic_eps", "wrist_singular_tol"):
            if getattr(self, name) <= 0.0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.max_newton_iterations < 1:
            raise ValueError(f"max_newton_iterations must be >= 1, got {self.max_newton_iterations}")


@dataclass(frozen=True)
class ArmGeometry:
    """Constants of the position sub-problem, fixed at construction."""

    case: PieperCase
    a1: float
    d2: float
    sin_alpha1: float
    cos_alpha1: float
    f1: TrigLinear
    f2: TrigLinear
    f3: TrigLinear
    k3: TrigLinear
    k4: TrigLinear
    length_scale: float

    @classmethod
    def from_dhm(cls, DHM: np.ndarray, tol: float) -> "ArmGeometry":
        alpha1, a1, d2 = DHM[1, :3]
        alpha2, a2, d3 = DHM[2, :3]
        alpha3, a3, d4 = DHM[3, :3]
        sa1, ca1 = math.sin(alpha1), math.cos(alpha1)
        sa2, ca2 = math.sin(alpha2), math.cos(alpha2)
        sa3, ca3 = math.sin(alpha3), math.cos(alpha3)
        length_scale = max(1.0, float(np.max(np.abs(DHM[:, 1:3]))))

        f1 = TrigLinear(a2, a3, d4 * sa3)
        f2 = TrigLinear(-d4 * sa2 * ca3 - d3 * sa2, -d4 * sa3 * ca2, a3 * ca2)
        f3 = TrigLinear(d4 * ca2 * ca3 + d3 * ca2, -d4 * sa3 * sa2, a3 * sa2)

        # k3 = |f|^2 + a1^2 + d2^2 + 2 d2 f3
        k3 = TrigLinear(
            int_power(a1, 2) + int_power(a2, 2) + int_power(a3, 2)
            + int_power(d2, 2) + int_power(d3, 2) + int_power(d4, 2)
            + 2.0 * d3 * d4 * ca3 + 2.0 * d2 * ca2 * (d3 + d4 * ca3),
            2.0 * a2 * a3 - 2.0 * d2 * d4 * sa3 * sa2,
            2.0 * a2 * d4 * sa3 + 2.0 * d2 * a3 * sa2,
        )
        k4 = TrigLinear(ca1 * (f3.k0 + d2), ca1 * f3.kc, ca1 * f3.ks)

        a1_zero = abs(a1) <= tol * length_scale
        sa1_zero = abs(sa1) <= tol
        if a1_zero and sa1_zero:
            raise ValueError("Joint axes 1 and 2 coincide (a1 = 0 and sin(alpha1) = 0); "
                             "q2 is undetermined")
        if a1_zero:
            case = PieperCase.AXES_INTERSECT
        elif sa1_zero:
            case = PieperCase.AXES_PARALLEL
        else:
            case = PieperCase.GENERAL

        return cls(case, float(a1), float(d2), sa1, ca1, f1, f2, f3, k3, k4, length_scale)


def check_spherical_wrist(DHM: np.ndarray, tol: float) -> None:
    """
    Raise ValueError unless joints 4, 5, 6 form a spherical wrist with twists
    the wrist formulas support (alpha4 = -alpha5 = +-pi/2).
    """
    length_scale = max(1.0, float(np.max(np.abs(DHM[:, 1:3]))))
    a4, d5 = DHM[4, 1], DHM[4, 2]
    a5 = DHM[5, 1]
    for name, value in (("a4", a4), ("a5", a5), ("d5", d5)):
        if abs(value) > tol * length_scale:
            raise ValueError(f"Not a spherical wrist: {name}={value} (expected 0)")

    alpha4, alpha5 = DHM[4, 0], DHM[5, 0]
    if (abs(math.cos(alpha4)) > WRIST_TWIST_TOL or abs(math.cos(alpha5)) > WRIST_TWIST_TOL
            or abs(math.sin(alpha4) * math.sin(alpha5) + 1.0) > WRIST_TWIST_TOL):
        raise ValueError(f"Unsupported wrist twists alpha4={alpha4}, alpha5={alpha5}: the q4/q6 "
                         "formulas only cover alpha4 = -alpha5 = +-pi/2, other spherical "
                         "wrists are not handled")


# Position sub-problem --------------------------------------------------------

_D = Polynomial([1.0, 0.0, 1.0])   # 1 + u^2
_PC = Polynomial([1.0, 0.0, -1.0])  # (1 + u^2) cos q
_PS = Polynomial([0.0, 2.0])        # (1 + u^2) sin q


def _half_angle_poly(expr: TrigLinear) -> Polynomial:
    """``(1 + u^2) * expr`` as a polynomial in ``u = tan(q/2)``."""
    return expr.k0 * _D + expr.kc * _PC + expr.ks * _PS


def quartic_coefficients(geom: ArmGeometry, r: float, z: float) -> QuarticCoefficients:
    """
    Quartic in u = tan(q3/2) for the general arm.

    ((r - k3) / 2a1)^2 + ((z - k4) / sin(alpha1))^2 = k1^2 + k2^2, multiplied
    through by (1 + u^2)^2.
    """
    R = r * _D - _half_angle_poly(geom.k3)
    Z = z * _D - _half_angle_poly(geom.k4)
    F1 = _half_angle_poly(geom.f1)
    F2 = _half_angle_poly(geom.f2)
    poly = (R * (0.5 / geom.a1)) ** 2 + (Z * (1.0 / geom.sin_alpha1)) ** 2 - F1 ** 2 - F2 ** 2

    coef = list(poly.coef) + [0.0] * (5 - len(poly.coef))
    return QuarticCoefficients(coef[4], coef[3], coef[2], coef[1], coef[0])


def _theta23_axes_intersect(geom: ArmGeometry, r: float, z: float,
                            config: PieperConfig) -> List[Tuple[float, float]]:
    pairs = []
    for theta3 in solve_trig_eq(geom.k3.shifted(-r), config.quadratic_eps):
        k1 = geom.f1.evaluate(theta3)
        k2 = -geom.f2.evaluate(theta3)
        eq2 = TrigLinear(geom.k4.evaluate(theta3) - z, -geom.sin_alpha1 * k2, geom.sin_alpha1 * k1)
        for theta2 in solve_trig_eq(eq2, config.quadratic_eps):
            pairs.append((theta3, theta2))
    return pairs


def _theta23_axes_parallel(geom: ArmGeometry, r: float, z: float,
                           config: PieperConfig) -> List[Tuple[float, float]]:
    pairs = []
    for theta3 in solve_trig_eq(geom.k4.shifted(-z), config.quadratic_eps):
        k1 = geom.f1.evaluate(theta3)
        k2 = -geom.f2.evaluate(theta3)
        eq2 = TrigLinear(geom.k3.evaluate(theta3) - r, 2.0 * geom.a1 * k1, 2.0 * geom.a1 * k2)
        for theta2 in solve_trig_eq(eq2, config.quadratic_eps):
            pairs.append((theta3, theta2))
    return pairs


def _theta23_general(geom: ArmGeometry, r: float, z: float,
                     config: PieperConfig) -> List[Tuple[float, float]]:
    if abs(geom.a1 * geom.sin_alpha1) <= config.degenerate_tol * geom.length_scale:
        raise RuntimeError(f"General case reached with a1*sin(alpha1) = "
                           f"{geom.a1 * geom.sin_alpha1:.3e}; case dispatch is inconsistent")

    coeffs = quartic_coefficients(geom, r, z)
    roots = solve_quartic(coeffs, method=config.quartic_method,
                          max_iter=config.max_newton_iterations)
    logger.debug("quartic %s has %d real roots", coeffs, len(roots))

    pairs = []
    for u in roots:
        theta3 = half_angle_to_angle(u)
        k1 = geom.f1.evaluate(theta3)
        k2 = -geom.f2.evaluate(theta3)
        det = k1 * k1 + k2 * k2
        if det <= config.degenerate_tol * int_power(geom.length_scale, 2):
            logger.debug("q3=%.6f puts the wrist centre on joint axis 2, branch dropped", theta3)
            continue
        A = (r - geom.k3.evaluate(theta3)) / (2.0 * geom.a1)
        B = (z - geom.k4.evaluate(theta3)) / geom.sin_alpha1
        c2 = (k1 * A - k2 * B) / det
        s2 = (k2 * A + k1 * B) / det
        pairs.append((theta3, math.atan2(s2, c2)))
    return pairs


_THETA23_SOLVERS: Dict[PieperCase, Callable[..., List[Tuple[float, float]]]] = {
    PieperCase.AXES_INTERSECT: _theta23_axes_intersect,
    PieperCase.AXES_PARALLEL: _theta23_axes_parallel,
    PieperCase.GENERAL: _theta23_general,
}


def solve_theta1(geom: ArmGeometry, theta2: float, theta3: float, x: float, y: float,
                 tol: float) -> float:
    """q1 from the x/y components of the wrist centre; 0 when q1 is free."""
    f1 = geom.f1.evaluate(theta3)
    f2 = geom.f2.evaluate(theta3)
    f3 = geom.f3.evaluate(theta3)
    c2, s2 = math.cos(theta2), math.sin(theta2)
    g1 = c2 * f1 - s2 * f2 + geom.a1
    g2 = geom.cos_alpha1 * (s2 * f1 + c2 * f2) - geom.sin_alpha1 * (f3 + geom.d2)

    det = g1 * g1 + g2 * g2
    if det <= tol * int_power(geom.length_scale, 2):
        logger.debug("wrist centre on joint axis 1, q1 is free and set to 0")
        return 0.0
    c1 = (g1 * x + g2 * y) / det
    s1 = (g1 * y - g2 * x) / det
    return math.atan2(s1, c1)


# Orientation sub-problem -----------------------------------------------------

def _flip(angle: float) -> float:
    return angle - math.pi if angle > 0.0 else angle + math.pi


def solve_theta456(DHM: np.ndarray, T_target: np.ndarray, theta1: float, theta2: float,
                   theta3: float, singular_tol: float) -> List[Tuple[float, float, float]]:
    """
    Wrist angles for one arm solution, both wrist branches.

    ``T_target`` is the stripped target T'.  When q5 is 0 or pi only q4 + q6
    (or q4 - q6) is determined; q4 is then set to 0.
    """
    T04 = (dh_transform(0.0, 0.0, 0.0, theta1)
           @ dh_transform(DHM[1, 0], DHM[1, 1], DHM[1, 2], theta2)
           @ dh_transform(DHM[2, 0], DHM[2, 1], DHM[2, 2], theta3)
           @ dh_transform(DHM[3, 0], DHM[3, 1], DHM[3, 2], 0.0))
    R = (inverse_transform(T04) @ T_target)[:3, :3]

    theta5 = math.atan2(math.hypot(R[2, 0], R[2, 1]), R[2, 2])
    if theta5 < singular_tol:
        theta4 = 0.0
        theta6 = math.atan2(-R[0, 1], R[0, 0])
    elif math.pi - theta5 < singular_tol:
        theta4 = 0.0
        theta6 = math.atan2(R[0, 1], -R[0, 0])
    elif DHM[5, 0] < 0.0:
        theta4 = math.atan2(-R[1, 2], -R[0, 2])
        theta6 = math.atan2(-R[2, 1], R[2, 0])
    else:
        theta4 = math.atan2(R[1, 2], R[0, 2])
        theta6 = math.atan2(R[2, 1], -R[2, 0])

    return [(theta4, theta5, theta6), (_flip(theta4), -theta5, _flip(theta6))]


class PieperSolver:
    """
    Analytical IK for a 6R arm with a spherical wrist.

    The solver holds only construction-time constants; every call to
    :meth:`solve` works on locals, so one instance can be shared.
    """

    def __init__(self, DHM: np.ndarray, config: PieperConfig = None):
        """
        Args:
            DHM: 6x4 numpy array with columns [alpha_{i-1}, a_{i-1}, d_i, theta_i_offset]
            config: solver settings (defaults to :class:`PieperConfig`)
        """
        DHM = np.asarray(DHM, dtype=float)
        if DHM.shape != (6, 4):
            raise ValueError(f"DHM table must be 6x4, got {DHM.shape}")
        self.config = config if config is not None else PieperConfig()
        check_spherical_wrist(DHM, self.config.degenerate_tol)

        self.DHM = DHM.copy()
        self.theta_offset = DHM[:, 3].copy()
        self.geometry = ArmGeometry.from_dhm(DHM, self.config.degenerate_tol)

        self._T01_inv = inv_dh_transform(DHM[0, 0], DHM[0, 1], DHM[0, 2], 0.0)
        self._T6_inv = inv_dh_transform(0.0, 0.0, DHM[5, 2], 0.0)

        logger.debug("PieperSolver initialised: case=%s, quartic=%s",
                     self.geometry.case.name, self.config.quartic_method)

    @property
    def case(self) -> PieperCase:
        return self.geometry.case

    def solve(self, T06: np.ndarray) -> List[Q]:
        """
        All joint vectors (radians, home offsets removed) reaching ``T06``.

        An empty list means the pose is unreachable.
        """
        T06 = np.asarray(T06, dtype=float)
        if T06.shape != (4, 4):
            raise ValueError(f"Target pose must be 4x4, got {T06.shape}")

        T_target = self._T01_inv @ T06 @ self._T6_inv
        x, y, z = (float(v) for v in T_target[:3, 3])
        r = x * x + y * y + z * z

        solutions: List[Q] = []
        for theta3, theta2 in _THETA23_SOLVERS[self.case](self.geometry, r, z, self.config):
            theta1 = solve_theta1(self.geometry, theta2, theta3, x, y, self.config.degenerate_tol)
            for theta4, theta5, theta6 in solve_theta456(self.DHM, T_target, theta1, theta2,
                                                         theta3, self.config.wrist_singular_tol):
                q = Q.zero(6)
                for i, theta in enumerate((theta1, theta2, theta3, theta4, theta5, theta6)):
                    q[i] = normalize_angle(theta - self.theta_offset[i])
                solutions.append(q)

        if not solutions:
            logger.debug("no IK solution, target unreachable")
        return solutions
