from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Protocol

from .config import PacingConfig, SynthesisConfig
from .constraints import CRITICAL_PATH, validate_hard_constraints
from .errors import ConfigError, ConstraintViolation, GraphError, RetriesExhausted, SynthesisCancelled
from .graph import Archetype, Graph
from .pacing import PacingCurve, clamp, create_curve, evaluate_with_variance
from .rng import DeterministicRNG

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 10
REWARD_DIFFICULTY_WEIGHT = 0.7
REWARD_RANDOM_BONUS = 0.3


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


class SynthesisState(Enum):
    ATTEMPTING = "attempting"
    VALIDATING = "validating"
    SUCCEEDED = "succeeded"
    RETRIES_EXHAUSTED = "retries_exhausted"
    CANCELLED = "cancelled"


@dataclass
class AttemptRecord:
    attempt: int
    room_count: int
    violation: Optional[str] = None


@dataclass
class SynthesisReport:
    strategy: str
    state: SynthesisState = SynthesisState.ATTEMPTING
    attempts: List[AttemptRecord] = field(default_factory=list)


def check_cancelled(cancel: Optional[CancelToken], phase: str) -> None:
    if cancel is not None and cancel.is_set():
        raise SynthesisCancelled(f"synthesis cancelled before {phase}")


class Synthesizer:
    """Bounded-retry driver shared by every synthesis strategy.

    Subclasses implement :meth:`build_attempt`, which grows one candidate graph
    from scratch and writes difficulty and theme tags. The driver validates the
    candidate, discards it on a :class:`ConstraintViolation` and starts over on
    the same RNG stream, so the draws of failed attempts are part of the
    reproducible sequence. ``last_report`` records the state machine's outcome.
    """

    name = "base"

    def __init__(self, max_retries: int = DEFAULT_MAX_RETRIES) -> None:
        if max_retries < 1:
            raise ConfigError(f"max_retries must be at least 1, got {max_retries}")
        self.max_retries = max_retries
        self.last_report: Optional[SynthesisReport] = None

    def build_attempt(
        self, rng: DeterministicRNG, config: SynthesisConfig, cancel: Optional[CancelToken]
    ) -> Graph:
        raise NotImplementedError

    def synthesize(
        self, rng: DeterministicRNG, config: SynthesisConfig, cancel: Optional[CancelToken] = None
    ) -> Graph:
        config.validate()
        report = SynthesisReport(strategy=self.name)
        self.last_report = report
        last_violation: Optional[ConstraintViolation] = None

        for attempt in range(1, self.max_retries + 1):
            report.state = SynthesisState.ATTEMPTING
            graph: Optional[Graph] = None
            try:
                check_cancelled(cancel, f"attempt {attempt}")
                graph = self.build_attempt(rng, config, cancel)
                report.state = SynthesisState.VALIDATING
                check_cancelled(cancel, "validation")
                validate_hard_constraints(graph, config)
            except SynthesisCancelled:
                report.state = SynthesisState.CANCELLED
                raise
            except ConstraintViolation as exc:
                last_violation = exc
                room_count = graph.room_count() if graph is not None else 0
                report.attempts.append(AttemptRecord(attempt, room_count, str(exc)))
                logger.debug("%s attempt %d/%d rejected: %s", self.name, attempt, self.max_retries, exc)
                continue

            report.attempts.append(AttemptRecord(attempt, graph.room_count()))
            report.state = SynthesisState.SUCCEEDED
            graph.metadata.update({"strategy": self.name, "attempts": attempt})
            graph.freeze()
            logger.info(
                "%s synthesis succeeded: seed=%d attempts=%d rooms=%d connectors=%d",
                self.name,
                config.seed,
                attempt,
                graph.room_count(),
                len(graph.connectors),
            )
            return graph

        report.state = SynthesisState.RETRIES_EXHAUSTED
        raise RetriesExhausted(self.max_retries, last_violation) from last_violation


def assign_difficulty(graph: Graph, rng: DeterministicRNG, pacing: PacingConfig) -> None:
    """Write difficulty and reward on every room from the critical-path pacing curve."""
    starts = graph.rooms_by_archetype(Archetype.START)
    bosses = graph.rooms_by_archetype(Archetype.BOSS)
    if not starts or not bosses:
        raise ConstraintViolation(CRITICAL_PATH, "missing Start or Boss room for difficulty assignment")
    try:
        path = graph.get_path(starts[0].id, bosses[0].id)
    except GraphError as exc:
        raise ConstraintViolation(CRITICAL_PATH, str(exc)) from exc

    curve = create_curve(pacing.curve, pacing.custom_points)
    progress_map: Dict[str, float] = {}
    for index, room_id in enumerate(path):
        progress_map[room_id] = index / (len(path) - 1) if len(path) > 1 else 0.0

    for room_id in graph.sorted_room_ids():
        room = graph.rooms[room_id]
        progress = progress_map.get(room_id)
        if progress is None:
            progress = _off_path_progress(graph, room_id, progress_map)
        room.difficulty = evaluate_with_variance(curve, progress, pacing.variance, rng)
        room.reward = derive_reward(room.difficulty, rng)


def derive_reward(difficulty: float, rng: DeterministicRNG) -> float:
    return clamp(difficulty * REWARD_DIFFICULTY_WEIGHT + rng.random() * REWARD_RANDOM_BONUS)


def _off_path_progress(graph: Graph, room_id: str, progress_map: Dict[str, float]) -> float:
    on_path = [progress_map[n] for n in graph.neighbors(room_id) if n in progress_map]
    if on_path:
        return sum(on_path) / len(on_path)
    nearest = _nearest_path_progress(graph, room_id, progress_map)
    return 0.5 if nearest is None else nearest


def _nearest_path_progress(graph: Graph, room_id: str, progress_map: Dict[str, float]) -> Optional[float]:
    visited = {room_id}
    queue = deque([room_id])
    while queue:
        current = queue.popleft()
        if current in progress_map:
            return progress_map[current]
        for neighbor in graph.neighbors(current):
            if neighbor not in visited:
                visited.add(neighbor)
                queue.append(neighbor)
    return None


def expected_difficulty(curve: PacingCurve, path_length: int, index: int) -> float:
    """Curve target for the ``index``-th room of a path with ``path_length`` rooms."""
    if path_length <= 1:
        return curve.evaluate(0.0)
    return curve.evaluate(index / (path_length - 1))
