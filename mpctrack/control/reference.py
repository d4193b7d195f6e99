"""Reference path as a low-degree polynomial ``y = f(x)`` in the body frame.

Coefficients are stored lowest order first: ``f(x) = c[0] + c[1] x + ...``.
"""

import logging
from typing import Tuple

import numpy as np
from scipy.linalg import solve_triangular

from mpctrack.errors import InsufficientPoints, DegenerateInput

logger = logging.getLogger(__name__)

# Relative size of R's diagonal below which the fit is considered rank deficient
_RANK_TOL = 1e-10


def polyfit(x: np.ndarray, y: np.ndarray, degree: int) -> np.ndarray:
    """Least-squares polynomial fit through a QR factorisation.

    Solves ``min ||A c - y||`` where ``A`` is the Vandermonde matrix of ``x``
    by factorising ``A = Q R`` and back-substituting ``R c = Q^T y``. The
    normal equations are never formed, which keeps the fit well conditioned
    for closely spaced or nearly collinear waypoints.

    Args:
        x: (M,) abscissae.
        y: (M,) ordinates.
        degree: Polynomial degree d; requires M >= d + 1.

    Returns:
        (d + 1,) coefficient vector, lowest order first.
    """
    x = np.asarray(x, dtype=float).ravel()
    y = np.asarray(y, dtype=float).ravel()
    if degree < 1:
        raise DegenerateInput(f"Polynomial degree must be at least 1, got {degree}")
    if len(x) != len(y):
        raise DegenerateInput(f"Got {len(x)} x values but {len(y)} y values")
    if len(x) < degree + 1:
        raise InsufficientPoints(len(x), degree)
    if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
        raise DegenerateInput("Waypoints contain non-finite values")

    A = np.vander(x, degree + 1, increasing=True)
    Q, R = np.linalg.qr(A)

    diag = np.abs(np.diag(R))
    if diag.min() <= _RANK_TOL * max(diag.max(), 1.0):
        raise DegenerateInput("Waypoints do not have enough distinct x values for the fit")

    return solve_triangular(R, Q.T @ y, lower=False)


def polyeval(coeffs, x):
    """Evaluate a polynomial by Horner's rule.

    Works for floats, numpy arrays and CasADi symbols alike, which is what
    lets the optimizer differentiate through the reference path.
    """
    n = coeffs.shape[0] if hasattr(coeffs, "shape") else len(coeffs)
    result = coeffs[n - 1]
    for i in range(n - 2, -1, -1):
        result = result * x + coeffs[i]
    return result


def polyeval_derivative(coeffs, x):
    """Evaluate ``f'(x)`` by Horner's rule on the derivative coefficients."""
    n = coeffs.shape[0] if hasattr(coeffs, "shape") else len(coeffs)
    if n == 1:
        return 0.0 * x
    result = (n - 1) * coeffs[n - 1]
    for i in range(n - 2, 0, -1):
        result = result * x + i * coeffs[i]
    return result


def tracking_errors(coeffs: np.ndarray) -> Tuple[float, float]:
    """Cross-track and heading error of a vehicle sitting at the body-frame origin.

    The vehicle is at ``x = 0`` with zero heading, so the cross-track error
    is ``f(0)`` and the heading error is ``-arctan(f'(0))``.

    Returns:
        (cte, epsi)
    """
    cte = float(polyeval(coeffs, 0.0))
    epsi = float(-np.arctan(polyeval_derivative(coeffs, 0.0)))
    return cte, epsi


def sample_reference(coeffs: np.ndarray, step: float, distance: float) -> Tuple[np.ndarray, np.ndarray]:
    """Sample the reference ahead of the vehicle at ``x = 0, step, ...`` below ``distance``."""
    xs = np.arange(0.0, distance, step)
    return xs, np.asarray(polyeval(np.asarray(coeffs, dtype=float), xs), dtype=float)
