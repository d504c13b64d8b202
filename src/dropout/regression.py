# ABOUTME: Least-squares polynomial regression solved through the normal equations.
# ABOUTME: Gaussian elimination with partial pivoting; degenerate systems yield None.

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np

from src.common.errors import InvalidInputError

logger = logging.getLogger(__name__)

PIVOT_TOLERANCE = 1e-12


def build_design_matrix(x: Sequence[float], degree: int) -> np.ndarray:
    """Vandermonde matrix with ``X[i][j] = x[i] ** j`` for ``j`` in ``0..degree``."""

    xs = np.asarray(x, dtype=float)
    return np.vander(xs, N=degree + 1, increasing=True)


def solve_gaussian(a: np.ndarray, b: np.ndarray) -> Optional[np.ndarray]:
    """
    Solve ``a @ c = b`` by Gaussian elimination with partial pivoting.

    Before eliminating column ``k`` the row with the largest magnitude in that
    column is swapped into place. A pivot below ``PIVOT_TOLERANCE`` (scaled by
    the largest entry of ``a``) means the system is singular; None is returned
    instead of letting infinities or NaN through.
    """

    m = np.array(a, dtype=float)
    rhs = np.array(b, dtype=float)
    n = m.shape[0]
    if m.shape != (n, n) or rhs.shape != (n,):
        raise InvalidInputError(f"Expected square system, got {m.shape} and {rhs.shape}")

    scale = max(1.0, float(np.abs(m).max())) if n else 1.0
    tolerance = PIVOT_TOLERANCE * scale

    for k in range(n):
        pivot_row = k + int(np.argmax(np.abs(m[k:, k])))
        if abs(m[pivot_row, k]) < tolerance:
            logger.warning("Singular system: pivot %.3e in column %d", m[pivot_row, k], k)
            return None
        if pivot_row != k:
            m[[k, pivot_row]] = m[[pivot_row, k]]
            rhs[[k, pivot_row]] = rhs[[pivot_row, k]]
        for row in range(k + 1, n):
            factor = m[row, k] / m[k, k]
            m[row, k:] -= factor * m[k, k:]
            rhs[row] -= factor * rhs[k]

    coefficients = np.zeros(n)
    for k in range(n - 1, -1, -1):
        coefficients[k] = (rhs[k] - m[k, k + 1 :] @ coefficients[k + 1 :]) / m[k, k]
    return coefficients


def fit(x: Sequence[float], y: Sequence[float], degree: int = 2) -> Optional[List[float]]:
    """
    Fit a polynomial of ``degree`` to the points, coefficients in ascending power.

    Returns None when the inputs differ in length, there are fewer than
    ``degree + 1`` points, or the normal equations are singular.
    """

    if degree < 0:
        raise InvalidInputError(f"degree must be >= 0, got {degree}")
    if len(x) != len(y) or len(x) < degree + 1:
        return None

    design = build_design_matrix(x, degree)
    targets = np.asarray(y, dtype=float)
    coefficients = solve_gaussian(design.T @ design, design.T @ targets)
    if coefficients is None:
        return None
    return [float(c) for c in coefficients]


def predict(coefficients: Sequence[float], x: float) -> float:
    return float(sum(c * x**k for k, c in enumerate(coefficients)))
