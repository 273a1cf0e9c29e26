from __future__ import annotations

from typing import Optional


class DungeonGraphError(Exception):
    """Base class for every error raised by dungeongraph."""


class ConfigError(DungeonGraphError, ValueError):
    pass


class PacingError(ConfigError):
    pass


class GraphError(DungeonGraphError, ValueError):
    pass


class RuleNotApplicable(DungeonGraphError):
    """A production rule found no valid attach point; the engine resamples."""


class ConstraintViolation(DungeonGraphError):
    def __init__(self, constraint: str, message: str) -> None:
        super().__init__(f"{constraint}: {message}")
        self.constraint = constraint


class RetriesExhausted(DungeonGraphError):
    def __init__(self, attempts: int, last_violation: Optional[ConstraintViolation]) -> None:
        detail = str(last_violation) if last_violation is not None else "no attempt completed"
        super().__init__(f"failed to satisfy constraints after {attempts} attempts: {detail}")
        self.attempts = attempts
        self.last_violation = last_violation


class SynthesisCancelled(DungeonGraphError):
    pass
