"""Tests for the CasADi bicycle model."""

import numpy as np
import pytest

from mpctrack.control.model import KinematicBicycleModel


@pytest.fixture
def model():
    return KinematicBicycleModel(lf=2.67, dt=0.1, poly_degree=3)


COEFFS = np.array([0.5, 0.05, -0.002, 1e-5])


def test_step_matches_equations(model):
    state = np.array([1.0, 0.3, 0.05, 12.0, 0.2, -0.03])
    u = np.array([0.04, 0.5])
    x, y, psi, v, cte, epsi = state
    dt, lf = 0.1, 2.67
    f = COEFFS[0] + COEFFS[1] * x + COEFFS[2] * x ** 2 + COEFFS[3] * x ** 3
    slope = COEFFS[1] + 2 * COEFFS[2] * x + 3 * COEFFS[3] * x ** 2
    expected = [
        x + v * np.cos(psi) * dt,
        y + v * np.sin(psi) * dt,
        psi + v * u[0] / lf * dt,
        v + u[1] * dt,
        (f - y) + v * np.sin(epsi) * dt,
        (psi - np.arctan(slope)) + v * u[0] / lf * dt,
    ]
    np.testing.assert_allclose(model.step(state, u, COEFFS), expected, rtol=1e-12, atol=1e-12)


def test_jacobians_match_finite_differences(model):
    state = np.array([2.0, -0.4, 0.1, 8.0, 0.3, 0.02])
    u = np.array([-0.05, 0.2])
    A, B = model.jacobians(state, u, COEFFS)
    assert A.shape == (6, 6)
    assert B.shape == (6, 2)

    eps = 1e-6
    for i in range(6):
        d = np.zeros(6)
        d[i] = eps
        fd = (model.step(state + d, u, COEFFS) - model.step(state - d, u, COEFFS)) / (2 * eps)
        np.testing.assert_allclose(A[:, i], fd, atol=1e-6)
    for j in range(2):
        d = np.zeros(2)
        d[j] = eps
        fd = (model.step(state, u + d, COEFFS) - model.step(state, u - d, COEFFS)) / (2 * eps)
        np.testing.assert_allclose(B[:, j], fd, atol=1e-6)


def test_rollout_shape_and_first_state(model):
    state = np.array([0.0, 0.0, 0.0, 10.0, 0.5, 0.0])
    actuations = np.zeros((4, 2))
    states = model.rollout(state, actuations, COEFFS)
    assert states.shape == (5, 6)
    np.testing.assert_array_equal(states[0], state)
    # No steering or throttle: constant speed along x
    np.testing.assert_allclose(states[:, 0], [0.0, 1.0, 2.0, 3.0, 4.0])
    np.testing.assert_allclose(states[:, 3], 10.0)


def test_properties(model):
    assert model.lf == 2.67
    assert model.dt == 0.1
    assert model.poly_degree == 3
    assert model.transition.name() == "transition"
