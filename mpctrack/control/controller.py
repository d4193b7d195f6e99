"""One control tick: latency compensation, frame transform, fit, solve.

Orchestrates the pipeline stages and holds the only cross-tick state of
the controller, the previous plan, which is used as a fallback when a
solve runs out of time.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from mpctrack.config import ControllerConfig
from mpctrack.control.frame import world_to_body
from mpctrack.control.latency import compensate_latency
from mpctrack.control.optimizer import TrajectoryOptimizer, OptimizationResult, SolveStatus
from mpctrack.control.reference import polyfit, tracking_errors, sample_reference
from mpctrack.control.state import Pose, Actuation, DELTA, ACCEL
from mpctrack.errors import DegenerateInput

logger = logging.getLogger(__name__)


@dataclass
class ControlOutput:
    """Everything produced by one tick.

    Attributes:
        actuation: Command to apply, internal convention.
        predicted_pose: World pose at the end of the latency interval; origin of the body frame.
        coeffs: Reference polynomial in the body frame.
        cte: Cross-track error at the start of the plan.
        epsi: Heading error at the start of the plan.
        mpc_x, mpc_y: Predicted body-frame trajectory (display).
        next_x, next_y: Sampled reference polynomial (display).
        result: The full optimization result.
        used_fallback: Whether ``actuation`` came from an earlier plan (or is a zero
            command) instead of this tick's solve.
    """
    actuation: Actuation
    predicted_pose: Pose
    coeffs: np.ndarray
    cte: float
    epsi: float
    mpc_x: np.ndarray
    mpc_y: np.ndarray
    next_x: np.ndarray
    next_y: np.ndarray
    result: OptimizationResult
    used_fallback: bool = False


class MPCController:
    """Receding-horizon path tracking controller.

    Args:
        config: Controller configuration. Defaults to :class:`ControllerConfig`.
    """

    def __init__(self, config: Optional[ControllerConfig] = None):
        self._config = config if config is not None else ControllerConfig()
        self._optimizer = TrajectoryOptimizer(self._config)
        self._prev_result: Optional[OptimizationResult] = None
        self._fallback_uses: int = 0
        self._last_output: Optional[ControlOutput] = None
        self._step_count: int = 0

    def step(self, pose: Pose, actuation: Actuation, waypoints: np.ndarray) -> ControlOutput:
        """Compute the next command.

        Args:
            pose: Current world-frame pose (SI units, radians).
            actuation: Command currently in effect, internal convention.
            waypoints: (M, 2) world-frame reference points.

        Returns:
            The control output for this tick.
        """
        cfg = self._config
        waypoints = np.asarray(waypoints, dtype=float)
        if waypoints.ndim != 2 or waypoints.shape[1] != 2:
            raise DegenerateInput(f"Waypoints must have shape (M, 2), got {waypoints.shape}")
        if not np.all(np.isfinite([pose.x, pose.y, pose.psi, pose.v,
                                   actuation.steering, actuation.throttle])):
            raise DegenerateInput("Pose or actuation contains non-finite values")

        predicted = compensate_latency(pose, actuation, cfg.latency, cfg.lf)
        body = world_to_body(predicted, waypoints)
        coeffs = polyfit(body[:, 0], body[:, 1], cfg.poly_degree)
        cte, epsi = tracking_errors(coeffs)

        # Position and heading are zero in the compensated body frame
        state = np.array([0.0, 0.0, 0.0, predicted.v, cte, epsi])
        result = self._optimizer.solve(state, coeffs)

        command = result.first_actuation
        mpc_x, mpc_y = result.predicted_xy
        used_fallback = False
        finite = bool(np.all(np.isfinite(result.actuations)) and np.all(np.isfinite(result.states)))
        if not finite:
            command = self._fallback_actuation() or Actuation()
            mpc_x, mpc_y = np.empty(0), np.empty(0)
            used_fallback = True
            logger.warning("Solver returned non-finite values (%s); applying %s",
                           result.return_status, command)
        elif (result.status is SolveStatus.DEADLINE_EXCEEDED and cfg.fallback_on_deadline
              and self._prev_result is not None):
            command = self._fallback_actuation()
            used_fallback = True
            logger.warning("Solve exceeded its deadline; applying step %d of the previous plan",
                           self._fallback_uses)

        self._step_count += 1
        logger.debug("[Step %4d] cte=%.3f epsi=%.3f v=%.2f -> steer=%.4f throttle=%.3f (%s)",
                     self._step_count, cte, epsi, predicted.v,
                     command.steering, command.throttle, result.status.value)

        next_x, next_y = sample_reference(coeffs, cfg.display_step, cfg.display_distance)
        output = ControlOutput(
            actuation=command,
            predicted_pose=predicted,
            coeffs=coeffs,
            cte=cte,
            epsi=epsi,
            mpc_x=mpc_x,
            mpc_y=mpc_y,
            next_x=next_x,
            next_y=next_y,
            result=result,
            used_fallback=used_fallback,
        )
        if finite and result.status is not SolveStatus.DEADLINE_EXCEEDED:
            self._prev_result = result
            self._fallback_uses = 0
        self._last_output = output
        return output

    def _fallback_actuation(self) -> Optional[Actuation]:
        """Next unused actuation of the last usable plan, holding its final one."""
        if self._prev_result is None:
            return None
        self._fallback_uses += 1
        prev = self._prev_result.actuations
        row = prev[min(self._fallback_uses, len(prev) - 1)]
        return Actuation(steering=float(row[DELTA]), throttle=float(row[ACCEL]))

    def reset(self):
        self._prev_result = None
        self._fallback_uses = 0
        self._last_output = None
        self._step_count = 0
        self._optimizer.reset()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> ControllerConfig:
        return self._config

    @property
    def optimizer(self) -> TrajectoryOptimizer:
        return self._optimizer

    @property
    def last_output(self) -> Optional[ControlOutput]:
        return self._last_output

    @property
    def step_count(self) -> int:
        return self._step_count
