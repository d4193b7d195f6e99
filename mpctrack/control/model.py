"""Kinematic bicycle model with tracking-error states, built in CasADi.

State ``[x, y, psi, v, cte, epsi]``, actuation ``[delta, a]``. The reference
polynomial coefficients are an input of the transition so that the same
function serves every tick.

Dynamics (forward Euler, step dt):
    x_{t+1}    = x_t + v_t * cos(psi_t) * dt
    y_{t+1}    = y_t + v_t * sin(psi_t) * dt
    psi_{t+1}  = psi_t + v_t * delta_t / Lf * dt
    v_{t+1}    = v_t + a_t * dt
    cte_{t+1}  = (f(x_t) - y_t) + v_t * sin(epsi_t) * dt
    epsi_{t+1} = (psi_t - atan(f'(x_t))) + v_t * delta_t / Lf * dt
"""

import logging
from typing import Tuple

import numpy as np
import casadi as ca

from mpctrack.control.reference import polyeval, polyeval_derivative
from mpctrack.control.state import STATE_DIM, ACTUATION_DIM

logger = logging.getLogger(__name__)


class KinematicBicycleModel:
    """Differentiable one-step dynamics.

    Exposes the transition as a CasADi :class:`casadi.Function` (usable on
    symbolic arguments inside an NLP) together with its exact Jacobians,
    and numeric helpers for evaluating it on plain arrays.

    Args:
        lf: Distance from centre of mass to front axle (m).
        dt: Integration step (s).
        poly_degree: Degree of the reference polynomial.
    """

    def __init__(self, lf: float, dt: float, poly_degree: int):
        self._lf = lf
        self._dt = dt
        self._poly_degree = poly_degree
        self._transition, self._jacobian = self._build()

    def _build(self) -> Tuple[ca.Function, ca.Function]:
        state = ca.SX.sym("state", STATE_DIM)
        actuation = ca.SX.sym("actuation", ACTUATION_DIM)
        coeffs = ca.SX.sym("coeffs", self._poly_degree + 1)

        x, y, psi, v, cte, epsi = (state[i] for i in range(STATE_DIM))
        delta, a = actuation[0], actuation[1]
        dt, lf = self._dt, self._lf

        f = polyeval(coeffs, x)
        psi_des = ca.atan(polyeval_derivative(coeffs, x))

        next_state = ca.vertcat(
            x + v * ca.cos(psi) * dt,
            y + v * ca.sin(psi) * dt,
            psi + v * delta / lf * dt,
            v + a * dt,
            (f - y) + v * ca.sin(epsi) * dt,
            (psi - psi_des) + v * delta / lf * dt,
        )

        transition = ca.Function(
            "transition", [state, actuation, coeffs], [next_state],
            ["state", "actuation", "coeffs"], ["next_state"])
        jacobian = ca.Function(
            "transition_jacobian", [state, actuation, coeffs],
            [ca.jacobian(next_state, state), ca.jacobian(next_state, actuation)],
            ["state", "actuation", "coeffs"], ["A", "B"])
        return transition, jacobian

    # ------------------------------------------------------------------
    # Numeric evaluation
    # ------------------------------------------------------------------

    def step(self, state: np.ndarray, actuation: np.ndarray, coeffs: np.ndarray) -> np.ndarray:
        """Advance a numeric state by one step. Returns a (6,) array."""
        return self._transition(state, actuation, coeffs).full().ravel()

    def jacobians(self, state: np.ndarray, actuation: np.ndarray,
                  coeffs: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Exact derivatives of the transition.

        Returns:
            (A, B) with shapes (6, 6) and (6, 2).
        """
        A, B = self._jacobian(state, actuation, coeffs)
        return A.full(), B.full()

    def rollout(self, state: np.ndarray, actuations: np.ndarray, coeffs: np.ndarray) -> np.ndarray:
        """Simulate a sequence of actuations.

        Args:
            state: (6,) initial state.
            actuations: (K, 2) actuation sequence.
            coeffs: Reference polynomial coefficients.

        Returns:
            (K + 1, 6) array of states, starting with ``state``.
        """
        states = np.empty((len(actuations) + 1, STATE_DIM))
        states[0] = state
        for k, u in enumerate(actuations):
            states[k + 1] = self.step(states[k], u, coeffs)
        return states

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def transition(self) -> ca.Function:
        """``next_state = transition(state, actuation, coeffs)``"""
        return self._transition

    @property
    def lf(self) -> float:
        return self._lf

    @property
    def dt(self) -> float:
        return self._dt

    @property
    def poly_degree(self) -> int:
        return self._poly_degree
