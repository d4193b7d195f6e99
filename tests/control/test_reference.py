"""Tests for the reference polynomial fit and evaluation."""

import numpy as np
import pytest

from mpctrack.control.reference import polyfit, polyeval, polyeval_derivative, tracking_errors, \
    sample_reference
from mpctrack.errors import InsufficientPoints, DegenerateInput, MPCTrackError


# ---------------------------------------------------------------------------
# polyfit
# ---------------------------------------------------------------------------

def test_fit_recovers_exact_cubic():
    coeffs = np.array([1.5, -0.2, 0.03, -0.001])
    x = np.linspace(-5.0, 60.0, 6)
    fitted = polyfit(x, polyeval(coeffs, x), 3)
    np.testing.assert_allclose(fitted, coeffs, rtol=1e-7, atol=1e-9)


def test_fit_with_minimum_points_interpolates():
    x = np.array([0.0, 1.0, 2.0, 3.0])
    y = np.array([1.0, -1.0, 4.0, 2.0])
    fitted = polyfit(x, y, 3)
    np.testing.assert_allclose(polyeval(fitted, x), y, atol=1e-9)


def test_fit_is_least_squares_optimal():
    rng = np.random.default_rng(0)
    x = np.linspace(0.0, 50.0, 12)
    y = 0.02 * x ** 2 + rng.normal(0.0, 0.5, size=x.shape)
    fitted = polyfit(x, y, 2)

    def residual(c):
        return np.sum((polyeval(c, x) - y) ** 2)

    best = residual(fitted)
    for i in range(3):
        for eps in (1e-3, -1e-3):
            perturbed = fitted.copy()
            perturbed[i] += eps
            assert residual(perturbed) >= best
    np.testing.assert_allclose(fitted, np.polynomial.polynomial.polyfit(x, y, 2), rtol=1e-6, atol=1e-8)


def test_fit_straight_line():
    x = np.array([10.0, 20.0, 30.0])
    fitted = polyfit(x, np.zeros(3), 1)
    np.testing.assert_allclose(fitted, [0.0, 0.0], atol=1e-12)


def test_too_few_points_raises():
    with pytest.raises(InsufficientPoints) as info:
        polyfit([0.0, 1.0, 2.0], [0.0, 1.0, 4.0], 3)
    assert info.value.n_points == 3
    assert info.value.degree == 3
    assert isinstance(info.value, MPCTrackError)


def test_repeated_abscissae_raise():
    with pytest.raises(DegenerateInput):
        polyfit([5.0, 5.0, 5.0, 5.0, 5.0], [0.0, 1.0, 2.0, 3.0, 4.0], 3)


@pytest.mark.parametrize("x, y, degree", [
    ([0.0, 1.0, 2.0], [0.0, 1.0], 1),
    ([0.0, 1.0, np.nan], [0.0, 1.0, 2.0], 1),
    ([0.0, 1.0, 2.0], [0.0, np.inf, 2.0], 1),
    ([0.0, 1.0, 2.0], [0.0, 1.0, 2.0], 0),
])
def test_degenerate_inputs_raise(x, y, degree):
    with pytest.raises(DegenerateInput):
        polyfit(x, y, degree)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def test_polyeval_matches_numpy_on_arrays():
    coeffs = np.array([0.5, 2.0, -1.0, 0.25])
    x = np.linspace(-3.0, 3.0, 7)
    np.testing.assert_allclose(polyeval(coeffs, x), np.polynomial.polynomial.polyval(x, coeffs))


def test_polyeval_accepts_lists():
    assert polyeval([1.0, 2.0, 3.0], 2.0) == pytest.approx(17.0)


def test_derivative_matches_numpy():
    coeffs = np.array([0.5, 2.0, -1.0, 0.25])
    x = np.linspace(-3.0, 3.0, 7)
    expected = np.polynomial.polynomial.polyval(x, np.polynomial.polynomial.polyder(coeffs))
    np.testing.assert_allclose(polyeval_derivative(coeffs, x), expected)


def test_derivative_of_constant_is_zero():
    assert polyeval_derivative(np.array([4.0]), 3.0) == 0.0


def test_tracking_errors_on_offset_line():
    cte, epsi = tracking_errors(np.array([1.0, 0.0, 0.0, 0.0]))
    assert cte == pytest.approx(1.0)
    assert epsi == pytest.approx(0.0)


def test_tracking_errors_sign_of_heading_error():
    # Path turning left from the origin: the vehicle heads right of it
    cte, epsi = tracking_errors(np.array([0.0, 0.1, 0.0, 0.0]))
    assert cte == pytest.approx(0.0)
    assert epsi == pytest.approx(-np.arctan(0.1))


def test_sample_reference_spacing():
    xs, ys = sample_reference(np.array([1.0, 0.0, 0.0, 0.0]), 2.0, 100.0)
    assert len(xs) == 50
    assert xs[0] == 0.0 and xs[-1] == 98.0
    np.testing.assert_allclose(ys, 1.0)
