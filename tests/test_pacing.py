import pytest

from dungeongraph.errors import ConfigError, PacingError
from dungeongraph.pacing import (
    CustomCurve,
    ExponentialCurve,
    LinearCurve,
    SCurve,
    create_curve,
    evaluate_with_variance,
)
from dungeongraph.rng import DeterministicRNG

SAMPLES = [i / 100 for i in range(101)]


@pytest.mark.parametrize("curve", [LinearCurve(), SCurve(), ExponentialCurve()])
def test_builtin_curves_are_monotonic_with_fixed_endpoints(curve):
    values = [curve.evaluate(p) for p in SAMPLES]
    assert values[0] == pytest.approx(0.0, abs=1e-9)
    assert values[-1] == pytest.approx(1.0, abs=1e-9)
    assert all(b >= a for a, b in zip(values, values[1:]))


def test_curve_midpoints():
    assert LinearCurve().evaluate(0.5) == 0.5
    assert SCurve().evaluate(0.5) == pytest.approx(0.5, abs=0.02)
    assert ExponentialCurve().evaluate(0.5) == 0.25


def test_scurve_is_symmetric():
    curve = SCurve()
    for p in SAMPLES:
        assert curve.evaluate(p) + curve.evaluate(1 - p) == pytest.approx(1.0, abs=1e-9)


def test_linear_clamps_out_of_range_progress():
    assert LinearCurve().evaluate(-0.5) == 0.0
    assert LinearCurve().evaluate(1.5) == 1.0


def test_custom_curve_interpolates_and_clamps():
    curve = CustomCurve([(0.2, 0.1), (0.6, 0.9), (1.0, 0.5)])
    assert curve.evaluate(0.4) == pytest.approx(0.5)
    assert curve.evaluate(0.8) == pytest.approx(0.7)
    assert curve.evaluate(0.0) == 0.1
    assert curve.evaluate(1.0) == 0.5


@pytest.mark.parametrize(
    "points",
    [
        [(0.0, 0.0)],
        [(0.0, 0.0), (1.2, 1.0)],
        [(0.0, -0.1), (1.0, 1.0)],
        [(0.5, 0.0), (0.5, 1.0)],
        [(0.8, 0.0), (0.2, 1.0)],
    ],
)
def test_custom_curve_rejects_bad_points(points):
    with pytest.raises(PacingError):
        CustomCurve(points)


def test_create_curve_by_name():
    assert isinstance(create_curve("linear"), LinearCurve)
    assert isinstance(create_curve("S_CURVE"), SCurve)
    assert isinstance(create_curve("Exponential"), ExponentialCurve)
    assert isinstance(create_curve("CUSTOM", [(0.0, 0.0), (1.0, 1.0)]), CustomCurve)


def test_create_curve_unknown_is_config_error():
    with pytest.raises(ConfigError):
        create_curve("zigzag")


def test_zero_variance_draws_nothing():
    rng = DeterministicRNG(7)
    before = rng.getstate()
    assert evaluate_with_variance(LinearCurve(), 0.3, 0.0, rng) == 0.3
    assert rng.getstate() == before


def test_variance_stays_bounded():
    rng = DeterministicRNG(11)
    for p in SAMPLES:
        value = evaluate_with_variance(LinearCurve(), p, 0.3, rng)
        assert 0.0 <= value <= 1.0
        assert abs(value - p) <= 0.3 + 1e-9


def test_variance_is_capped():
    rng = DeterministicRNG(3)
    for _ in range(200):
        assert abs(evaluate_with_variance(LinearCurve(), 0.5, 5.0, rng) - 0.5) <= 0.3 + 1e-9


@pytest.mark.parametrize(
    "curve_type, value",
    [(SCurve, 0.0), (SCurve, -3.0), (ExponentialCurve, 0.0), (ExponentialCurve, -1.0)],
)
def test_curve_parameters_must_be_positive(curve_type, value):
    with pytest.raises(PacingError):
        curve_type(value)


def test_non_default_curve_parameters():
    assert SCurve(4.0).evaluate(0.0) == pytest.approx(0.0, abs=1e-9)
    assert ExponentialCurve(3.0).evaluate(0.5) == pytest.approx(0.125)
