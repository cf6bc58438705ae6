"""
Joint vector container used by the IK solvers.

``Q`` is a small mutable sequence of joint angles (radians).  The Pieper
solver creates one zero-filled vector per candidate solution, fills it joint
by joint and applies the home-offset correction before returning it.

Author: Haijun Su with Assistance from GitHub Copilot
Date: November 12, 2025
"""

from typing import Iterable, Iterator, List

import numpy as np


class Q:
    """Ordered joint-angle vector with component-wise arithmetic."""

    __hash__ = None  # mutable

    def __init__(self, values: Iterable[float] = ()):
        self._values: List[float] = [float(v) for v in values]

    @classmethod
    def zero(cls, n: int) -> "Q":
        return cls([0.0] * n)

    def size(self) -> int:
        return len(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __getitem__(self, index: int) -> float:
        return self._values[index]

    def __setitem__(self, index: int, value: float) -> None:
        self._values[index] = float(value)

    def __iter__(self) -> Iterator[float]:
        return iter(self._values)

    def append(self, value: float) -> None:
        self._values.append(float(value))

    def _check_size(self, other: "Q") -> None:
        if len(other) != len(self):
            raise ValueError(f"Joint vector sizes differ: {len(self)} vs {len(other)}")

    def __add__(self, other: "Q") -> "Q":
        self._check_size(other)
        return Q(a + b for a, b in zip(self._values, other))

    def __sub__(self, other: "Q") -> "Q":
        self._check_size(other)
        return Q(a - b for a, b in zip(self._values, other))

    def __mul__(self, scalar: float) -> "Q":
        return Q(a * scalar for a in self._values)

    __rmul__ = __mul__

    def __truediv__(self, scalar: float) -> "Q":
        return Q(a / scalar for a in self._values)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Q):
            return NotImplemented
        return self._values == other._values

    def __ne__(self, other) -> bool:
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def is_close(self, other: "Q", tol: float = 1e-9) -> bool:
        """Component-wise comparison within ``tol`` (no angle wrapping)."""
        return len(other) == len(self) and all(abs(a - b) <= tol for a, b in zip(self._values, other))

    def to_array(self) -> np.ndarray:
        return np.array(self._values, dtype=float)

    def __repr__(self) -> str:
        return "Q(" + ", ".join(f"{v:.6f}" for v in self._values) + ")"
