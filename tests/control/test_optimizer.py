"""Tests for the IPOPT trajectory optimizer."""

import numpy as np
import pytest

from mpctrack.config import ControllerConfig
from mpctrack.control.model import KinematicBicycleModel
from mpctrack.control.optimizer import TrajectoryOptimizer, SolveStatus
from mpctrack.control.state import DELTA, ACCEL, V
from mpctrack.errors import DegenerateInput


@pytest.fixture(scope="module")
def config():
    return ControllerConfig(max_solve_time=None)


@pytest.fixture(scope="module")
def optimizer(config):
    return TrajectoryOptimizer(config)


STRAIGHT = np.zeros(4)


def test_straight_reference_needs_no_steering(optimizer):
    state = np.array([0.0, 0.0, 0.0, 10.0, 0.0, 0.0])
    result = optimizer.solve(state, STRAIGHT)
    assert result.success
    assert result.states.shape == (10, 6)
    assert result.actuations.shape == (9, 2)
    np.testing.assert_allclose(result.actuations[:, DELTA], 0.0, atol=1e-4)
    # Below reference speed, so the plan accelerates
    assert result.actuations[0, ACCEL] > 0.0
    assert result.states[-1, V] > 10.0


def test_first_state_is_initial_state(optimizer):
    state = np.array([0.0, 0.0, 0.0, 15.0, 0.8, -0.05])
    coeffs = np.array([0.8, 0.05, 0.0, 0.0])
    result = optimizer.solve(state, coeffs)
    np.testing.assert_allclose(result.states[0], state, atol=1e-6)
    np.testing.assert_array_equal(result.initial_state, state)


def test_offset_reference_steers_towards_it(optimizer):
    # Path 1m to the left
    state = np.array([0.0, 0.0, 0.0, 10.0, 1.0, 0.0])
    result = optimizer.solve(state, np.array([1.0, 0.0, 0.0, 0.0]))
    assert result.success
    assert result.first_actuation.steering > 0.0


def test_actuator_bounds_are_respected(optimizer, config):
    state = np.array([0.0, 0.0, 0.0, 20.0, 4.0, 0.3])
    result = optimizer.solve(state, np.array([4.0, -0.3, 0.0, 0.0]))
    assert np.all(np.abs(result.actuations[:, DELTA]) <= config.max_steering + 1e-5)
    assert np.all(np.abs(result.actuations[:, ACCEL]) <= config.max_acceleration + 1e-5)
    diag = optimizer.analyse_constraints(result)
    assert not diag["steering_violated"]
    assert not diag["acceleration_violated"]


def test_result_satisfies_dynamics(optimizer):
    state = np.array([0.0, 0.0, 0.0, 12.0, -0.5, 0.1])
    result = optimizer.solve(state, np.array([-0.5, -0.1, 0.002, 0.0]))
    diag = optimizer.analyse_constraints(result)
    assert diag["dynamics_residual"] < 1e-6
    assert diag["initial_residual"] < 1e-6
    assert diag["any_violated"] is False


def test_predicted_xy_skips_initial_state(optimizer):
    result = optimizer.solve(np.array([0.0, 0.0, 0.0, 10.0, 0.0, 0.0]), STRAIGHT)
    mpc_x, mpc_y = result.predicted_xy
    assert len(mpc_x) == 9
    assert mpc_x[0] == pytest.approx(1.0, abs=1e-6)


def test_decision_variable_count(optimizer, config):
    assert config.n_variables == 6 * 10 + 2 * 9
    assert optimizer.n_variables == config.n_variables


def test_warm_start_solves_consistently():
    opt = TrajectoryOptimizer(ControllerConfig(max_solve_time=None, warm_start=True))
    state = np.array([0.0, 0.0, 0.0, 10.0, 1.0, 0.0])
    coeffs = np.array([1.0, 0.0, 0.0, 0.0])
    first = opt.solve(state, coeffs)
    second = opt.solve(state, coeffs)
    assert opt.solve_count == 2
    assert second.success
    np.testing.assert_allclose(second.actuations, first.actuations, atol=1e-3)
    opt.reset()
    assert opt.solve_count == 0


# ---------------------------------------------------------------------------
# Solver failures
# ---------------------------------------------------------------------------

def test_iteration_limit_returns_best_iterate():
    cfg = ControllerConfig(max_iter=2, max_solve_time=None)
    opt = TrajectoryOptimizer(cfg)
    state = np.array([0.0, 0.0, 0.0, 20.0, 3.0, 0.2])
    result = opt.solve(state, np.array([3.0, -0.2, 0.01, 0.0]))
    assert result.status is SolveStatus.NON_CONVERGENCE
    assert result.return_status == "Maximum_Iterations_Exceeded"
    assert not result.success
    first = result.first_actuation
    assert np.all(np.isfinite(first.as_array()))
    assert abs(first.steering) <= cfg.max_steering + 1e-6
    np.testing.assert_allclose(result.states[0], state, atol=1e-6)


def test_wall_time_limit_is_deadline_exceeded():
    opt = TrajectoryOptimizer(ControllerConfig(max_solve_time=1e-6))
    state = np.array([0.0, 0.0, 0.0, 20.0, 3.0, 0.2])
    result = opt.solve(state, np.array([3.0, -0.2, 0.01, 0.0]))
    assert result.status is SolveStatus.DEADLINE_EXCEEDED
    assert result.return_status == "Maximum_WallTime_Exceeded"
    assert result.states.shape == (10, 6)


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("state, coeffs", [
    (np.zeros(5), STRAIGHT),
    (np.zeros(6), np.zeros(3)),
    (np.array([0.0, 0.0, 0.0, np.nan, 0.0, 0.0]), STRAIGHT),
    (np.zeros(6), np.array([0.0, np.inf, 0.0, 0.0])),
])
def test_malformed_inputs_raise(optimizer, state, coeffs):
    with pytest.raises(DegenerateInput):
        optimizer.solve(state, coeffs)


def test_model_degree_mismatch_raises():
    with pytest.raises(DegenerateInput):
        TrajectoryOptimizer(ControllerConfig(), KinematicBicycleModel(2.67, 0.1, 2))


# ---------------------------------------------------------------------------
# Status classification
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("return_status, expected", [
    ("Solve_Succeeded", SolveStatus.OPTIMAL),
    ("Solved_To_Acceptable_Level", SolveStatus.ACCEPTABLE),
    ("Infeasible_Problem_Detected", SolveStatus.INFEASIBLE),
    ("Restoration_Failed", SolveStatus.INFEASIBLE),
    ("Maximum_WallTime_Exceeded", SolveStatus.DEADLINE_EXCEEDED),
    ("Maximum_CpuTime_Exceeded", SolveStatus.DEADLINE_EXCEEDED),
    ("Maximum_Iterations_Exceeded", SolveStatus.NON_CONVERGENCE),
    ("Invalid_Number_Detected", SolveStatus.NON_CONVERGENCE),
])
def test_status_from_ipopt(return_status, expected):
    assert SolveStatus.from_ipopt(return_status) is expected


def test_only_optimal_and_acceptable_are_successes():
    assert {s for s in SolveStatus if s.success} == {SolveStatus.OPTIMAL, SolveStatus.ACCEPTABLE}
