"""Receding-horizon trajectory optimizer (NLP over the bicycle model).

Solves, with CasADi + IPOPT, for ``N`` states and ``N - 1`` actuations
that minimise a weighted sum of

* tracking error ``cte^2`` and ``epsi^2`` over all states,
* speed error ``(v - v_ref)^2`` over all states,
* actuation magnitude ``delta^2`` and ``a^2``,
* actuation change between consecutive steps,

subject to the initial state, the bicycle dynamics between every pair of
consecutive states, and the steering/throttle bounds. The problem is built
once per configuration; only the initial state and the reference
coefficients change between solves.
"""

import enum
import logging
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
import casadi as ca

from mpctrack.config import ControllerConfig
from mpctrack.control.model import KinematicBicycleModel
from mpctrack.control.state import Actuation, STATE_DIM, ACTUATION_DIM, X, Y, V, CTE, EPSI, DELTA, ACCEL
from mpctrack.errors import DegenerateInput

logger = logging.getLogger(__name__)


class SolveStatus(enum.Enum):
    """Outcome of one IPOPT solve."""
    OPTIMAL = "optimal"
    ACCEPTABLE = "acceptable"
    NON_CONVERGENCE = "non_convergence"
    INFEASIBLE = "infeasible"
    DEADLINE_EXCEEDED = "deadline_exceeded"

    @property
    def success(self) -> bool:
        return self in (SolveStatus.OPTIMAL, SolveStatus.ACCEPTABLE)

    @classmethod
    def from_ipopt(cls, return_status: str) -> "SolveStatus":
        if return_status == "Solve_Succeeded":
            return cls.OPTIMAL
        if return_status == "Solved_To_Acceptable_Level":
            return cls.ACCEPTABLE
        if return_status in ("Infeasible_Problem_Detected", "Restoration_Failed"):
            return cls.INFEASIBLE
        if return_status in ("Maximum_WallTime_Exceeded", "Maximum_CpuTime_Exceeded"):
            return cls.DEADLINE_EXCEEDED
        return cls.NON_CONVERGENCE


@dataclass
class OptimizationResult:
    """Full solution of one solve.

    Attributes:
        states: (N, 6) states ``[x, y, psi, v, cte, epsi]``.
        actuations: (N - 1, 2) actuations ``[delta, a]``.
        status: Classified solver outcome.
        return_status: Raw IPOPT return status.
        iterations: IPOPT iteration count.
        solve_time: Wall-clock time of the solve (s).
        cost: Objective value at the returned point.
        initial_state: The state the solve started from.
        coeffs: Reference polynomial the solve tracked.
    """
    states: np.ndarray
    actuations: np.ndarray
    status: SolveStatus
    return_status: str
    iterations: int
    solve_time: float
    cost: float
    initial_state: np.ndarray
    coeffs: np.ndarray

    @property
    def success(self) -> bool:
        return self.status.success

    @property
    def first_actuation(self) -> Actuation:
        return Actuation(steering=float(self.actuations[0, DELTA]),
                         throttle=float(self.actuations[0, ACCEL]))

    @property
    def predicted_xy(self) -> Tuple[np.ndarray, np.ndarray]:
        """Body-frame positions after the first state, for display."""
        return self.states[1:, X].copy(), self.states[1:, Y].copy()


class TrajectoryOptimizer:
    """CasADi/IPOPT model-predictive trajectory optimizer.

    Args:
        config: Horizon, weights, bounds and solver options.
        model: Dynamics to plan with. Defaults to a :class:`KinematicBicycleModel`
            built from ``config``.
    """

    def __init__(self, config: ControllerConfig, model: Optional[KinematicBicycleModel] = None):
        config.validate()
        self._config = config
        self._model = model if model is not None else \
            KinematicBicycleModel(config.lf, config.dt, config.poly_degree)
        if self._model.poly_degree != config.poly_degree:
            raise DegenerateInput(f"Model expects degree {self._model.poly_degree} "
                                  f"but configuration uses degree {config.poly_degree}")

        self._prev_actuations: Optional[np.ndarray] = None
        self._solve_count: int = 0
        self._build()

    def _build(self):
        cfg = self._config
        N = cfg.horizon
        transition = self._model.transition

        opti = ca.Opti()
        X_ = opti.variable(STATE_DIM, N)
        U_ = opti.variable(ACTUATION_DIM, N - 1)
        x0 = opti.parameter(STATE_DIM)
        coeffs = opti.parameter(cfg.poly_degree + 1)

        # --- Cost function ---
        cost = 0.0
        for t in range(N):
            cost += cfg.w_cte * X_[CTE, t] ** 2
            cost += cfg.w_epsi * X_[EPSI, t] ** 2
            cost += cfg.w_v * (X_[V, t] - cfg.ref_speed) ** 2
        for t in range(N - 1):
            cost += cfg.w_delta * U_[DELTA, t] ** 2
            cost += cfg.w_a * U_[ACCEL, t] ** 2
        for t in range(N - 2):
            cost += cfg.w_delta_rate * (U_[DELTA, t + 1] - U_[DELTA, t]) ** 2
            cost += cfg.w_a_rate * (U_[ACCEL, t + 1] - U_[ACCEL, t]) ** 2
        opti.minimize(cost)

        # --- Initial state constraint ---
        opti.subject_to(X_[:, 0] == x0)

        # --- Dynamics constraints ---
        for t in range(N - 1):
            opti.subject_to(X_[:, t + 1] == transition(X_[:, t], U_[:, t], coeffs))

        # --- Actuator bounds ---
        opti.subject_to(opti.bounded(-cfg.max_steering, U_[DELTA, :], cfg.max_steering))
        opti.subject_to(opti.bounded(-cfg.max_acceleration, U_[ACCEL, :], cfg.max_acceleration))

        # --- Solver options ---
        p_opts = {'expand': True, 'print_time': False}
        s_opts = {
            'max_iter': cfg.max_iter,
            'tol': cfg.tol,
            'acceptable_tol': cfg.acceptable_tol,
            'print_level': 0,
            'sb': 'yes',
        }
        if cfg.max_solve_time is not None:
            s_opts['max_wall_time'] = cfg.max_solve_time
        opti.solver('ipopt', p_opts, s_opts)

        self._opti = opti
        self._X = X_
        self._U = U_
        self._x0 = x0
        self._coeffs = coeffs

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def solve(self, state: np.ndarray, coeffs: np.ndarray) -> OptimizationResult:
        """Plan from ``state`` along the reference ``coeffs``.

        Solver failures do not raise: the best iterate is returned with a
        non-successful :class:`SolveStatus`, since a degraded actuation is
        preferable to none.

        Args:
            state: (6,) initial state ``[0, 0, 0, v, cte, epsi]``.
            coeffs: (degree + 1,) reference polynomial, lowest order first.

        Returns:
            The optimization result.
        """
        state, coeffs = self._check_inputs(state, coeffs)
        cfg = self._config
        N = cfg.horizon
        opti = self._opti

        opti.set_value(self._x0, state)
        opti.set_value(self._coeffs, coeffs)
        X_init, U_init = self._initial_guess(state, coeffs)
        opti.set_initial(self._X, X_init)
        opti.set_initial(self._U, U_init)

        self._solve_count += 1
        t_start = time.perf_counter()
        try:
            sol = opti.solve()
            states = sol.value(self._X)
            actuations = sol.value(self._U)
            cost = sol.value(opti.f)
        except RuntimeError as e:
            logger.debug("IPOPT did not succeed: %s", e)
            states = opti.debug.value(self._X)
            actuations = opti.debug.value(self._U)
            cost = opti.debug.value(opti.f)
        solve_time = time.perf_counter() - t_start

        stats = opti.stats()
        return_status = str(stats.get('return_status', 'Unknown'))
        result = OptimizationResult(
            states=np.asarray(states, dtype=float).reshape(STATE_DIM, N).T,
            actuations=np.asarray(actuations, dtype=float).reshape(ACTUATION_DIM, N - 1).T,
            status=SolveStatus.from_ipopt(return_status),
            return_status=return_status,
            iterations=int(stats.get('iter_count', 0)),
            solve_time=solve_time,
            cost=float(cost),
            initial_state=state,
            coeffs=coeffs,
        )

        if result.success:
            logger.debug("[Solve %4d] %s in %.1fms (%d iterations), cost=%.3f",
                         self._solve_count, result.status.value, solve_time * 1000,
                         result.iterations, result.cost)
        else:
            logger.warning("[Solve %4d] %s (%s) after %d iterations in %.1fms; using best iterate",
                           self._solve_count, result.status.value, return_status,
                           result.iterations, solve_time * 1000)
            diag = self.analyse_constraints(result)
            logger.debug("Constraint analysis: %s", diag)

        if np.all(np.isfinite(result.actuations)):
            self._prev_actuations = result.actuations.copy()
        return result

    def analyse_constraints(self, result: OptimizationResult, tol: float = 1e-3) -> Dict:
        """Check a result against the problem constraints.

        Returns:
            A dict with the initial-state and dynamics residuals, actuator
            bound violations and value ranges.
        """
        cfg = self._config
        states, actuations = result.states, result.actuations

        initial_residual = float(np.max(np.abs(states[0] - result.initial_state)))
        predicted = np.array([self._model.step(states[t], actuations[t], result.coeffs)
                              for t in range(len(actuations))])
        dynamics_residual = float(np.max(np.abs(states[1:] - predicted)))

        delta, accel = actuations[:, DELTA], actuations[:, ACCEL]
        steering_violated = bool(np.max(np.abs(delta)) > cfg.max_steering + tol)
        acceleration_violated = bool(np.max(np.abs(accel)) > cfg.max_acceleration + tol)

        return {
            'solve': self._solve_count,
            'status': result.status.value,
            'iterations': result.iterations,
            'solve_time': result.solve_time,
            'initial_residual': initial_residual,
            'dynamics_residual': dynamics_residual,
            'steering_violated': steering_violated,
            'acceleration_violated': acceleration_violated,
            'any_violated': (initial_residual > tol or dynamics_residual > tol
                             or steering_violated or acceleration_violated),
            'steering_range': (float(np.min(delta)), float(np.max(delta))),
            'acceleration_range': (float(np.min(accel)), float(np.max(accel))),
        }

    def reset(self):
        """Forget the previous solution used for warm starting."""
        self._prev_actuations = None
        self._solve_count = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> ControllerConfig:
        return self._config

    @property
    def model(self) -> KinematicBicycleModel:
        return self._model

    @property
    def solve_count(self) -> int:
        return self._solve_count

    @property
    def n_variables(self) -> int:
        """Number of decision variables in the built NLP."""
        return int(self._opti.nx)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_inputs(self, state, coeffs) -> Tuple[np.ndarray, np.ndarray]:
        state = np.asarray(state, dtype=float).ravel()
        coeffs = np.asarray(coeffs, dtype=float).ravel()
        if state.shape != (STATE_DIM,):
            raise DegenerateInput(f"Expected a {STATE_DIM}-dimensional state, got shape {state.shape}")
        if len(coeffs) != self._config.poly_degree + 1:
            raise DegenerateInput(f"Expected {self._config.poly_degree + 1} coefficients, got {len(coeffs)}")
        if not (np.all(np.isfinite(state)) and np.all(np.isfinite(coeffs))):
            raise DegenerateInput("Initial state or coefficients contain non-finite values")
        return state, coeffs

    def _initial_guess(self, state: np.ndarray, coeffs: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Zero guess pinned at the initial state, or the shifted previous plan.

        Returns:
            (X, U) with shapes (6, N) and (2, N - 1).
        """
        N = self._config.horizon
        if self._config.warm_start and self._prev_actuations is not None:
            # Previous states live in the previous tick's body frame, so only
            # the actuations are reused and the states are re-simulated.
            U = np.vstack([self._prev_actuations[1:], self._prev_actuations[-1:]])
            X_ = self._model.rollout(state, U, coeffs)
            return X_.T, U.T

        X_ = np.zeros((STATE_DIM, N))
        X_[:, 0] = state
        return X_, np.zeros((ACTUATION_DIM, N - 1))
