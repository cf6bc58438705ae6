"""Real-root solvers for the low-degree polynomials produced by Pieper's method.

Every closed-form IK branch in :mod:`pieper_solver` reduces to one of two
problems:

* a trig-linear equation ``k0 + kc*cos(q) + ks*sin(q) = 0``.  The
  tangent-half-angle substitution ``u = tan(q/2)`` turns it into the quadratic

      (k0 - kc) * u**2 + 2*ks * u + (k0 + kc) = 0

  solved in closed form by :func:`solve_quadratic`;
* a quartic in ``u = tan(q3/2)`` for the general arm.  Two strategies are
  provided behind :func:`solve_quartic`:

  ``"eigen"``
      eigenvalues of the companion matrix (``numpy.linalg.eigvals``), keeping
      the numerically real ones, merging clusters left by repeated roots and
      polishing simple roots with a couple of Newton steps.
  ``"bracketing"``
      the real critical points of ``f`` (recursively, with the quadratic in
      closed form at the bottom) split the real line into monotone
      intervals.  Each interval with a sign change is refined with a
      safeguarded Newton/bisection iteration run down to a few ulps of
      residual; an endpoint whose residual is below a looser floor is itself
      a (repeated) root.

Both strategies return sorted, de-duplicated real roots.  Complex roots are
dropped: they correspond to unreachable branches.

θ = π (``u = ∞``) is not representable by the substitution.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

# Relative threshold for dropping vanishing leading coefficients.
TRIM_TOL = 1e-12
# Eigenvalues with |imag| below this (relative) are treated as real.
IMAG_TOL = 1e-6
# Roots closer than this (relative) are one root.
MERGE_TOL = 1e-6
# Residual below this fraction of sum(|a_i| |x|**i) is zero at a bracket endpoint.
RESIDUAL_TOL = 1e-12
# Residual at which refinement inside a bracket stops (a few ulps).
CONVERGED_TOL = 1e-15
# Newton/bisection step size at which a bracket is considered converged.
STEP_TOL = 1e-14


@dataclass(frozen=True)
class TrigLinear:
    """``k0 + kc*cos(q) + ks*sin(q)``."""

    k0: float
    kc: float
    ks: float

    def evaluate(self, theta: float) -> float:
        return self.k0 + self.kc * math.cos(theta) + self.ks * math.sin(theta)

    def shifted(self, value: float) -> "TrigLinear":
        """Return the expression plus a constant."""
        return TrigLinear(self.k0 + value, self.kc, self.ks)

    def half_angle_coefficients(self) -> Tuple[float, float, float]:
        """Coefficients ``(A, B, C)`` of ``A*u**2 + B*u + C`` with ``u = tan(q/2)``."""
        return self.k0 - self.kc, 2.0 * self.ks, self.k0 + self.kc


@dataclass(frozen=True)
class QuarticCoefficients:
    """``a*u**4 + b*u**3 + c*u**2 + d*u + e``, built per IK call."""

    a: float
    b: float
    c: float
    d: float
    e: float

    def as_array(self) -> np.ndarray:
        """Coefficients highest degree first (``numpy.polyval`` order)."""
        return np.array([self.a, self.b, self.c, self.d, self.e], dtype=float)

    def evaluate(self, u: float) -> float:
        return float(np.polyval(self.as_array(), u))


CoefficientsLike = Union[QuarticCoefficients, Sequence[float], np.ndarray]


# Quadratic / trig-linear -----------------------------------------------------

def solve_quadratic(a: float, b: float, c: float, eps: float = 1e-12) -> List[float]:
    """
    Real roots of ``a*u**2 + b*u + c = 0`` in ascending order.

    ``eps`` is relative to the largest coefficient magnitude:

    * ``|a|`` negligible: the linear root ``-c/b``, none if ``b`` is negligible too
    * discriminant negligible: one repeated root ``-b/(2a)``
    * discriminant negative: no real root
    """
    scale = max(abs(a), abs(b), abs(c))
    if scale == 0.0:
        return []

    if abs(a) <= eps * scale:
        if abs(b) <= eps * scale:
            return []
        return [-c / b]

    disc = b * b - 4.0 * a * c
    if abs(disc) <= eps * max(b * b, abs(4.0 * a * c)):
        return [-b / (2.0 * a)]
    if disc < 0.0:
        return []

    # Cancellation-free pair: q = -(b + sign(b) sqrt(disc)) / 2, roots q/a and c/q
    q = -0.5 * (b + math.copysign(math.sqrt(disc), b))
    return sorted([q / a, c / q])


def half_angle_to_angle(u: float) -> float:
    """Map ``u = tan(q/2)`` back to ``q`` in (-pi, pi)."""
    denom = 1.0 + u * u
    return math.atan2(2.0 * u / denom, (1.0 - u * u) / denom)


def solve_trig_eq(eq: TrigLinear, eps: float = 1e-12) -> List[float]:
    """Solve ``k0 + kc*cos(q) + ks*sin(q) = 0`` for ``q`` through the half-angle quadratic."""
    A, B, C = eq.half_angle_coefficients()
    roots = solve_quadratic(A, B, C, eps)
    if not roots:
        logger.debug("trig equation %s has no real half-angle root", eq)
    return [half_angle_to_angle(u) for u in roots]


# Helpers ---------------------------------------------------------------------

def _as_array(coeffs: CoefficientsLike) -> np.ndarray:
    if isinstance(coeffs, QuarticCoefficients):
        return coeffs.as_array()
    return np.asarray(coeffs, dtype=float)


def _trim_leading(coeffs: np.ndarray, tol: float = TRIM_TOL) -> np.ndarray:
    """Drop leading coefficients that vanish relative to the largest one."""
    if coeffs.size == 0:
        return coeffs
    scale = np.max(np.abs(coeffs))
    if scale == 0.0:
        return np.array([], dtype=float)
    nonzero = np.nonzero(np.abs(coeffs) > tol * scale)[0]
    return coeffs[nonzero[0]:]


def _residual_floor(coeffs: np.ndarray, x: float, tol: float = RESIDUAL_TOL) -> float:
    return tol * float(np.polyval(np.abs(coeffs), abs(x)))


def _merge_close(roots: Sequence[float], tol: float = MERGE_TOL) -> List[float]:
    """Average clusters of roots that lie within ``tol`` (relative) of each other."""
    merged: List[float] = []
    cluster: List[float] = []
    for x in sorted(roots):
        if cluster and abs(x - cluster[-1]) > tol * max(1.0, abs(x)):
            merged.append(sum(cluster) / len(cluster))
            cluster = []
        cluster.append(x)
    if cluster:
        merged.append(sum(cluster) / len(cluster))
    return merged


def _low_degree_roots(coeffs: np.ndarray) -> List[float]:
    degree = coeffs.size - 1
    if degree <= 0:
        return []
    if degree == 1:
        return [-coeffs[1] / coeffs[0]]
    return solve_quadratic(coeffs[0], coeffs[1], coeffs[2])


# Eigenvalue strategy ---------------------------------------------------------

def _companion_matrix(coeffs: np.ndarray) -> np.ndarray:
    monic = coeffs[1:] / coeffs[0]
    n = monic.size
    C = np.zeros((n, n))
    C[1:, :-1] = np.eye(n - 1)
    C[:, -1] = -monic[::-1]
    return C


def _polish(coeffs: np.ndarray, x: float, iterations: int = 3) -> float:
    deriv = np.polyder(coeffs)
    for _ in range(iterations):
        f = float(np.polyval(coeffs, x))
        if abs(f) <= _residual_floor(coeffs, x, CONVERGED_TOL):
            break
        df = float(np.polyval(deriv, x))
        if df == 0.0:
            break
        step = f / df
        # A large step means a (near) repeated root, keep the averaged value
        if abs(step) > MERGE_TOL * max(1.0, abs(x)):
            break
        x -= step
    return x


def solve_quartic_eigen(coeffs: CoefficientsLike) -> List[float]:
    """Real roots through the eigenvalues of the companion matrix."""
    arr = _trim_leading(_as_array(coeffs))
    if arr.size <= 3:
        return _low_degree_roots(arr)

    eigenvalues = np.linalg.eigvals(_companion_matrix(arr))
    real = [float(z.real) for z in eigenvalues
            if abs(z.imag) <= IMAG_TOL * max(1.0, abs(z))]
    roots = [_polish(arr, x) for x in _merge_close(real)]
    return _merge_close(roots)


# Bracketing strategy ---------------------------------------------------------

def _rtsafe(coeffs: np.ndarray, lo: float, hi: float, f_lo: float, max_iter: int):
    """Safeguarded Newton iteration on a bracket with a sign change."""
    deriv = np.polyder(coeffs)
    if f_lo < 0.0:
        xl, xh = lo, hi
    else:
        xl, xh = hi, lo

    x = 0.5 * (lo + hi)
    dx_old = abs(hi - lo)
    dx = dx_old
    f = float(np.polyval(coeffs, x))
    df = float(np.polyval(deriv, x))
    if abs(f) <= _residual_floor(coeffs, x, CONVERGED_TOL):
        return x

    for _ in range(max_iter):
        out_of_bracket = ((x - xh) * df - f) * ((x - xl) * df - f) > 0.0
        if out_of_bracket or abs(2.0 * f) > abs(dx_old * df):
            dx_old = dx
            dx = 0.5 * (xh - xl)
            x = xl + dx
        else:
            dx_old = dx
            dx = f / df
            x -= dx
        if abs(dx) <= STEP_TOL * max(1.0, abs(x)):
            return x

        f = float(np.polyval(coeffs, x))
        df = float(np.polyval(deriv, x))
        if (abs(f) <= _residual_floor(coeffs, x, CONVERGED_TOL)
                or abs(xh - xl) <= STEP_TOL * max(1.0, abs(x))):
            return x
        if f < 0.0:
            xl = x
        else:
            xh = x

    logger.warning("root refinement did not converge in [%.6g, %.6g] after %d iterations",
                   lo, hi, max_iter)
    return None


def _root_in_monotone_interval(coeffs: np.ndarray, lo: float, hi: float, max_iter: int):
    f_lo = float(np.polyval(coeffs, lo))
    if abs(f_lo) <= _residual_floor(coeffs, lo):
        return lo
    f_hi = float(np.polyval(coeffs, hi))
    if abs(f_hi) <= _residual_floor(coeffs, hi):
        return hi
    if f_lo * f_hi > 0.0:
        return None
    return _rtsafe(coeffs, lo, hi, f_lo, max_iter)


def _bracketed_roots(coeffs: np.ndarray, max_iter: int) -> List[float]:
    if coeffs.size <= 3:
        return _low_degree_roots(coeffs)

    critical = _bracketed_roots(np.polyder(coeffs), max_iter)
    # Cauchy bound: every real root lies in (-bound, bound)
    bound = 1.0 + float(np.max(np.abs(coeffs[1:] / coeffs[0])))
    edges = [-bound] + [x for x in critical if -bound < x < bound] + [bound]

    roots = []
    for lo, hi in zip(edges[:-1], edges[1:]):
        root = _root_in_monotone_interval(coeffs, lo, hi, max_iter)
        if root is not None:
            roots.append(root)
    return _merge_close(roots)


def solve_quartic_bracketing(coeffs: CoefficientsLike, max_iter: int = 100) -> List[float]:
    """Real roots by bracketing monotone intervals between critical points."""
    arr = _trim_leading(_as_array(coeffs))
    return _bracketed_roots(arr, max_iter)


QUARTIC_METHODS = ("eigen", "bracketing")


def solve_quartic(coeffs: CoefficientsLike, method: str = "eigen", max_iter: int = 100) -> List[float]:
    """
    Real roots of a quartic (or lower degree after trimming), ascending.

    Args:
        coeffs: :class:`QuarticCoefficients` or coefficients highest degree first
        method: ``"eigen"`` or ``"bracketing"``
        max_iter: iteration cap per bracket for ``"bracketing"``
    """
    if method == "eigen":
        return solve_quartic_eigen(coeffs)
    if method == "bracketing":
        return solve_quartic_bracketing(coeffs, max_iter=max_iter)
    raise ValueError(f"Unknown quartic method {method!r}, expected one of {QUARTIC_METHODS}")
