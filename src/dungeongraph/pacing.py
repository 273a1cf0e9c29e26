"""Difficulty pacing curves.

Every curve maps normalized critical-path progress in [0, 1] to a target
difficulty in [0, 1]. Curves are pure; randomness enters only through
:func:`evaluate_with_variance`, which takes the caller's RNG explicitly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

from .errors import PacingError
from .rng import DeterministicRNG

LINEAR = "LINEAR"
S_CURVE = "S_CURVE"
EXPONENTIAL = "EXPONENTIAL"
CUSTOM = "CUSTOM"

CURVE_KINDS = (LINEAR, S_CURVE, EXPONENTIAL, CUSTOM)

MAX_VARIANCE = 0.3

ControlPoint = Tuple[float, float]


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class PacingCurve:
    def evaluate(self, progress: float) -> float:
        raise NotImplementedError


class LinearCurve(PacingCurve):
    def evaluate(self, progress: float) -> float:
        return clamp(progress)


@dataclass(frozen=True)
class SCurve(PacingCurve):
    """Logistic curve centered on 0.5, rescaled so the endpoints hit 0 and 1."""

    steepness: float = 10.0

    def __post_init__(self) -> None:
        if not self.steepness > 0:
            raise PacingError(f"S-curve steepness must be > 0, got {self.steepness}")

    def evaluate(self, progress: float) -> float:
        progress = clamp(progress)
        k = self.steepness
        low = 1.0 / (1.0 + math.exp(k * 0.5))
        high = 1.0 / (1.0 + math.exp(-k * 0.5))
        sigmoid = 1.0 / (1.0 + math.exp(-k * (progress - 0.5)))
        return clamp((sigmoid - low) / (high - low))


@dataclass(frozen=True)
class ExponentialCurve(PacingCurve):
    exponent: float = 2.0

    def __post_init__(self) -> None:
        if not self.exponent > 0:
            raise PacingError(f"exponent must be > 0, got {self.exponent}")

    def evaluate(self, progress: float) -> float:
        return clamp(progress) ** self.exponent


class CustomCurve(PacingCurve):
    """Piecewise-linear curve through user control points.

    Points must be strictly increasing in progress with both coordinates in
    [0, 1]. Progress outside the covered range returns the nearest endpoint's
    difficulty.
    """

    def __init__(self, points: Sequence[ControlPoint]) -> None:
        if len(points) < 2:
            raise PacingError("custom curve requires at least 2 points")
        parsed = []
        for index, point in enumerate(points):
            progress, difficulty = float(point[0]), float(point[1])
            if not 0.0 <= progress <= 1.0:
                raise PacingError(f"custom point {index}: progress must be in [0.0, 1.0], got {progress}")
            if not 0.0 <= difficulty <= 1.0:
                raise PacingError(f"custom point {index}: difficulty must be in [0.0, 1.0], got {difficulty}")
            if parsed and progress <= parsed[-1][0]:
                raise PacingError(f"custom point {index}: points must be sorted by progress")
            parsed.append((progress, difficulty))
        self.points: Tuple[ControlPoint, ...] = tuple(parsed)

    def evaluate(self, progress: float) -> float:
        first, last = self.points[0], self.points[-1]
        if progress <= first[0]:
            return first[1]
        if progress >= last[0]:
            return last[1]
        for (x0, y0), (x1, y1) in zip(self.points, self.points[1:]):
            if x0 <= progress <= x1:
                t = (progress - x0) / (x1 - x0)
                return y0 + t * (y1 - y0)
        return clamp(progress)  # pragma: no cover - range already covered


def create_curve(kind: str, custom_points: Sequence[ControlPoint] = ()) -> PacingCurve:
    normalized = kind.strip().upper()
    if normalized == LINEAR:
        return LinearCurve()
    if normalized == S_CURVE:
        return SCurve()
    if normalized == EXPONENTIAL:
        return ExponentialCurve()
    if normalized == CUSTOM:
        return CustomCurve(custom_points)
    raise PacingError(f"unknown pacing curve {kind!r}, expected one of {', '.join(CURVE_KINDS)}")


def evaluate_with_variance(
    curve: PacingCurve,
    progress: float,
    variance: float,
    rng: DeterministicRNG,
) -> float:
    base = curve.evaluate(progress)
    variance = clamp(variance, 0.0, MAX_VARIANCE)
    if variance < 1e-9:
        return base
    return clamp(base + rng.float_range(-variance, variance))
