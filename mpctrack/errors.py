"""Exceptions raised by the controller before any solve is attempted.

Solver outcomes (infeasible, not converged, out of time) are not
exceptions; they are reported on :class:`~mpctrack.control.optimizer.OptimizationResult`.
"""


class MPCTrackError(Exception):
    """Base class for all input-validation failures."""


class InsufficientPoints(MPCTrackError):
    """Too few waypoints for the requested polynomial degree."""

    def __init__(self, n_points: int, degree: int):
        self.n_points = n_points
        self.degree = degree
        super().__init__(f"Need at least {degree + 1} waypoints to fit a degree "
                         f"{degree} polynomial, got {n_points}")


class DegenerateInput(MPCTrackError, ValueError):
    """Malformed telemetry or an inconsistent horizon/degree configuration."""
