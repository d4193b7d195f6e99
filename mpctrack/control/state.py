"""Plain value types passed between the pipeline stages."""

from dataclasses import dataclass

import numpy as np

# Indices into the 6-dimensional optimizer state
X, Y, PSI, V, CTE, EPSI = range(6)
STATE_DIM = 6
# Indices into an actuation pair
DELTA, ACCEL = range(2)
ACTUATION_DIM = 2


@dataclass(frozen=True)
class Pose:
    """World-frame configuration of the vehicle.

    Attributes:
        x, y: Position (m).
        psi: Heading (rad), counter-clockwise from the world x axis.
        v: Longitudinal speed (m/s).
    """
    x: float
    y: float
    psi: float
    v: float

    @property
    def position(self) -> np.ndarray:
        return np.array([self.x, self.y])


@dataclass(frozen=True)
class Actuation:
    """A steering/throttle pair in the internal convention.

    Positive ``steering`` (rad) yields a positive yaw rate. ``throttle`` is
    used directly as longitudinal acceleration.
    """
    steering: float = 0.0
    throttle: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.steering, self.throttle])
