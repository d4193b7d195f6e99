"""Controller configuration.

Every tunable constant of the pipeline lives in a single immutable
:class:`ControllerConfig` that is handed to the optimizer at construction,
so independently configured controllers can coexist in one process.
"""

import json
import logging
from dataclasses import dataclass, asdict, fields, replace
from typing import Dict, Optional

import numpy as np

from mpctrack.errors import DegenerateInput

logger = logging.getLogger(__name__)

MPH_TO_MPS = 0.44704


@dataclass(frozen=True)
class ControllerConfig:
    """Fixed configuration of one controller instance.

    Units are SI and radians unless the field name says otherwise.
    """

    # Vehicle / actuation
    latency: float = 0.1              # actuation latency (s)
    lf: float = 2.67                  # centre of mass to front axle (m)
    max_steering_deg: float = 25.0    # symmetric steering bound (deg)
    max_acceleration: float = 1.0     # symmetric throttle bound

    # Reference fit
    poly_degree: int = 3

    # Horizon
    horizon: int = 10                 # number of states N
    dt: float = 0.1                   # step between states (s)
    ref_speed: float = 40.0 * MPH_TO_MPS

    # Cost weights
    w_cte: float = 2000.0
    w_epsi: float = 2000.0
    w_v: float = 1.0
    w_delta: float = 5.0
    w_a: float = 5.0
    w_delta_rate: float = 200.0
    w_a_rate: float = 10.0

    # IPOPT
    max_iter: int = 250
    tol: float = 1e-8
    acceptable_tol: float = 1e-6
    max_solve_time: Optional[float] = 0.5   # wall-clock deadline per solve (s)

    # Behaviour between ticks
    warm_start: bool = False
    fallback_on_deadline: bool = True

    # Reference polyline sent back for display
    display_step: float = 2.0
    display_distance: float = 100.0

    def __post_init__(self):
        self.validate()

    @property
    def max_steering(self) -> float:
        """Steering bound in radians."""
        return float(np.deg2rad(self.max_steering_deg))

    @property
    def n_variables(self) -> int:
        """Number of NLP decision variables, ``6N + 2(N - 1)``."""
        return 6 * self.horizon + 2 * (self.horizon - 1)

    def validate(self):
        """Reject configurations the optimizer cannot be built from."""
        if self.horizon <= 1:
            raise DegenerateInput(f"Horizon must be greater than 1, got {self.horizon}")
        if self.poly_degree < 1:
            raise DegenerateInput(f"Polynomial degree must be at least 1, got {self.poly_degree}")
        if self.dt <= 0:
            raise DegenerateInput(f"Timestep must be positive, got {self.dt}")
        if self.latency < 0:
            raise DegenerateInput(f"Latency must be non-negative, got {self.latency}")
        if self.lf <= 0:
            raise DegenerateInput(f"Lf must be positive, got {self.lf}")
        if self.max_steering_deg <= 0 or self.max_acceleration <= 0:
            raise DegenerateInput("Actuator bounds must be positive")
        if self.max_solve_time is not None and self.max_solve_time <= 0:
            raise DegenerateInput(f"Solve deadline must be positive, got {self.max_solve_time}")
        if self.display_step <= 0:
            raise DegenerateInput(f"Display step must be positive, got {self.display_step}")
        for name, value in self.weights.items():
            if value < 0:
                raise DegenerateInput(f"Weight {name} must be non-negative, got {value}")

    @property
    def weights(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name.startswith("w_")}

    def replace(self, **changes) -> "ControllerConfig":
        """Return a copy with the given fields changed (e.g. for parameter sweeps)."""
        return replace(self, **changes)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, params: Optional[Dict] = None) -> "ControllerConfig":
        """Build a configuration from defaults overridden by ``params``."""
        params = dict(params) if params is not None else {}
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(params) - known)
        if unknown:
            raise DegenerateInput(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**params)

    @classmethod
    def from_json(cls, path: str) -> "ControllerConfig":
        try:
            with open(path, "r") as f:
                params = json.load(f)
        except FileNotFoundError as e:
            logger.exception(msg=f"No configuration file found at {path}", exc_info=e)
            raise e
        return cls.from_dict(params)
