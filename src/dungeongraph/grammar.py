"""Production-rule graph synthesis.

The engine seeds a Start-Hub-Boss trio and grows it with three weighted
production rules until a drawn target size is reached:

    ExpandHub       hub (or any under-capacity room) -> hub + 1..3 spokes
    InsertKeyLoop   room -> room <-> key room -> locked room (one-way, gated)
    BranchOptional  room -> room <-> optional room [<-> hidden secret room]

Rules that find no attach point fail softly and the engine draws again; the
attempt itself only fails through hard-constraint validation or after too many
consecutive soft failures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from .base import DEFAULT_MAX_RETRIES, CancelToken, Synthesizer, assign_difficulty, check_cancelled
from .config import SynthesisConfig
from .errors import ConfigError, ConstraintViolation, RuleNotApplicable
from .graph import (
    Archetype,
    Capability,
    Connector,
    ConnectorType,
    Gate,
    Graph,
    Requirement,
    Room,
    RoomSize,
    Visibility,
)
from .rng import DeterministicRNG
from .themes import assign_themes

logger = logging.getLogger(__name__)

EXPAND_HUB = "expand_hub"
INSERT_KEY_LOOP = "insert_key_loop"
BRANCH_OPTIONAL = "branch_optional"

START_ID = "start"
HUB_ID = "mid_hub"
BOSS_ID = "boss"

RULE_FAILURES = "rule_failures"
DEFAULT_MAX_CONSECUTIVE_FAILURES = 100
MAX_SPOKES = 3

ARCHETYPE_WEIGHTS: Tuple[Tuple[Archetype, float], ...] = (
    (Archetype.TREASURE, 0.15),
    (Archetype.PUZZLE, 0.2),
    (Archetype.HUB, 0.1),
    (Archetype.CORRIDOR, 0.25),
    (Archetype.OPTIONAL, 0.2),
    (Archetype.VENDOR, 0.05),
    (Archetype.SHRINE, 0.05),
)

SIZE_WEIGHTS: Tuple[Tuple[RoomSize, float], ...] = (
    (RoomSize.XS, 0.2),
    (RoomSize.S, 0.3),
    (RoomSize.M, 0.3),
    (RoomSize.L, 0.15),
    (RoomSize.XL, 0.05),
)

CONNECTOR_WEIGHTS: Tuple[Tuple[ConnectorType, float], ...] = (
    (ConnectorType.DOOR, 0.4),
    (ConnectorType.CORRIDOR, 0.4),
    (ConnectorType.LADDER, 0.1),
    (ConnectorType.TELEPORTER, 0.05),
    (ConnectorType.ONE_WAY, 0.05),
)


@dataclass(frozen=True)
class RuleOption:
    rule: str
    weight: float


DEFAULT_RULES: Tuple[RuleOption, ...] = (
    RuleOption(EXPAND_HUB, 0.5),
    RuleOption(INSERT_KEY_LOOP, 0.3),
    RuleOption(BRANCH_OPTIONAL, 0.2),
)


@dataclass
class _Attempt:
    graph: Graph
    config: SynthesisConfig
    placed_keys: Set[str] = field(default_factory=set)

    def next_room_id(self) -> str:
        return f"room_{self.graph.room_count()}"

    def unplaced_keys(self) -> List[str]:
        return [name for name in self.config.key_names() if name not in self.placed_keys]

    def rooms_with_capacity(self) -> List[Room]:
        limit = self.config.branching_max
        return [self.graph.rooms[rid] for rid in self.graph.sorted_room_ids() if self.graph.degree(rid) < limit]

    def connect(
        self,
        source: Room,
        target: Room,
        connector_type: ConnectorType,
        *,
        bidirectional: bool = True,
        visibility: Visibility = Visibility.NORMAL,
        gate: Optional[Gate] = None,
    ) -> Connector:
        connector = Connector(
            id=f"conn_{source.id}_{target.id}",
            from_id=source.id,
            to_id=target.id,
            type=connector_type,
            cost=1.0,
            bidirectional=bidirectional,
            visibility=visibility,
            gate=gate,
        )
        self.graph.add_connector(connector)
        return connector


def _prepare_rules(rules: Sequence[RuleOption]) -> Tuple[Tuple[float, str], ...]:
    cumulative: List[Tuple[float, str]] = []
    total = 0.0
    for option in rules:
        if option.rule not in (EXPAND_HUB, INSERT_KEY_LOOP, BRANCH_OPTIONAL):
            raise ConfigError(f"Unknown production rule '{option.rule}'.")
        if option.weight < 0:
            raise ConfigError(f"Weight must be non-negative for rule '{option.rule}'.")
        total += option.weight
        cumulative.append((total, option.rule))
    if total <= 0:
        raise ConfigError("At least one production rule needs a positive weight.")
    return tuple((threshold / total, rule) for threshold, rule in cumulative)


class GrammarSynthesizer(Synthesizer):
    name = "grammar"

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES,
        rules: Sequence[RuleOption] = DEFAULT_RULES,
    ) -> None:
        super().__init__(max_retries=max_retries)
        if max_consecutive_failures < 1:
            raise ConfigError(f"max_consecutive_failures must be at least 1, got {max_consecutive_failures}")
        self.max_consecutive_failures = max_consecutive_failures
        self._rules = _prepare_rules(rules)
        self._handlers: Dict[str, Callable[[_Attempt, DeterministicRNG], None]] = {
            EXPAND_HUB: self._expand_hub,
            INSERT_KEY_LOOP: self._insert_key_loop,
            BRANCH_OPTIONAL: self._branch_optional,
        }

    def build_attempt(
        self, rng: DeterministicRNG, config: SynthesisConfig, cancel: Optional[CancelToken]
    ) -> Graph:
        target = rng.int_range(config.rooms_min, config.rooms_max)
        check_cancelled(cancel, "core trio")
        attempt = _Attempt(graph=Graph(config.seed), config=config)
        self._seed_core_trio(attempt.graph)
        logger.debug("Growing graph towards %d rooms", target)

        failures = 0
        while attempt.graph.room_count() < target:
            check_cancelled(cancel, "growth iteration")
            rule = self._sample_rule(rng, attempt)
            try:
                self._handlers[rule](attempt, rng)
            except RuleNotApplicable as exc:
                failures += 1
                logger.debug("Rule %s not applicable: %s", rule, exc)
                if failures >= self.max_consecutive_failures:
                    raise ConstraintViolation(
                        RULE_FAILURES,
                        f"{failures} consecutive rule failures at {attempt.graph.room_count()} rooms",
                    ) from exc
                continue
            failures = 0
            if attempt.graph.room_count() > config.rooms_max:
                break

        assign_difficulty(attempt.graph, rng, config.pacing)
        assign_themes(attempt.graph, config.themes, rng)
        return attempt.graph

    def _sample_rule(self, rng: DeterministicRNG, attempt: _Attempt) -> str:
        pick = rng.random()
        chosen = self._rules[-1][1]
        for threshold, rule in self._rules:
            if pick < threshold:
                chosen = rule
                break
        if chosen == INSERT_KEY_LOOP and not attempt.unplaced_keys():
            return BRANCH_OPTIONAL
        return chosen

    @staticmethod
    def _seed_core_trio(graph: Graph) -> None:
        start = Room(id=START_ID, archetype=Archetype.START, size=RoomSize.M, difficulty=0.0, reward=0.0,
                     tags={"type": "entrance"})
        hub = Room(id=HUB_ID, archetype=Archetype.HUB, size=RoomSize.L, difficulty=0.5, reward=0.3,
                   tags={"type": "hub"})
        boss = Room(id=BOSS_ID, archetype=Archetype.BOSS, size=RoomSize.XL, difficulty=1.0, reward=1.0,
                    tags={"type": "boss"})
        for room in (start, hub, boss):
            graph.add_room(room)
        graph.add_connector(Connector(id=f"conn_{START_ID}_{HUB_ID}", from_id=START_ID, to_id=HUB_ID,
                                      type=ConnectorType.CORRIDOR))
        graph.add_connector(Connector(id=f"conn_{HUB_ID}_{BOSS_ID}", from_id=HUB_ID, to_id=BOSS_ID,
                                      type=ConnectorType.DOOR))

    def _expand_hub(self, attempt: _Attempt, rng: DeterministicRNG) -> None:
        graph = attempt.graph
        limit = attempt.config.branching_max
        hub = next((room for room in graph.rooms_by_archetype(Archetype.HUB) if graph.degree(room.id) < limit), None)
        if hub is None:
            candidates = attempt.rooms_with_capacity()
            if not candidates:
                raise RuleNotApplicable("all rooms at max capacity")
            hub = candidates[0]

        spokes = rng.int_range(1, min(MAX_SPOKES, limit - graph.degree(hub.id)))
        for _ in range(spokes):
            spoke = Room(
                id=attempt.next_room_id(),
                archetype=_weighted(rng, ARCHETYPE_WEIGHTS),
                size=_weighted(rng, SIZE_WEIGHTS),
                tags={"spoke": hub.id},
            )
            graph.add_room(spoke)
            attempt.connect(hub, spoke, _weighted(rng, CONNECTOR_WEIGHTS))
        logger.debug("ExpandHub attached %d spokes to %s", spokes, hub.id)

    def _insert_key_loop(self, attempt: _Attempt, rng: DeterministicRNG) -> None:
        unplaced = attempt.unplaced_keys()
        if not unplaced:
            raise RuleNotApplicable("every configured key already has a loop")
        key_name = unplaced[rng.randrange(len(unplaced))]
        candidates = attempt.rooms_with_capacity()
        if not candidates:
            raise RuleNotApplicable("no rooms with capacity available")
        anchor = candidates[rng.randrange(len(candidates))]

        graph = attempt.graph
        key_room = Room(
            id=attempt.next_room_id(),
            archetype=Archetype.TREASURE,
            size=RoomSize.S,
            tags={"contains": f"key_{key_name}"},
            provides=[Capability(type="key", value=key_name)],
        )
        graph.add_room(key_room)
        attempt.connect(anchor, key_room, ConnectorType.DOOR)

        locked_room = Room(
            id=attempt.next_room_id(),
            archetype=Archetype.PUZZLE,
            size=RoomSize.M,
            tags={"locked_by": f"key_{key_name}"},
            requirements=[Requirement(type="key", value=key_name)],
        )
        graph.add_room(locked_room)
        # The lock can only be crossed after the key room, never back.
        attempt.connect(
            key_room,
            locked_room,
            ConnectorType.DOOR,
            bidirectional=False,
            gate=Gate(type="key", value=key_name),
        )
        attempt.placed_keys.add(key_name)
        logger.debug("InsertKeyLoop placed key %r behind %s", key_name, anchor.id)

    def _branch_optional(self, attempt: _Attempt, rng: DeterministicRNG) -> None:
        candidates = attempt.rooms_with_capacity()
        if not candidates:
            raise RuleNotApplicable("no rooms with capacity available")
        branch_point = candidates[rng.randrange(len(candidates))]

        graph = attempt.graph
        optional_room = Room(
            id=attempt.next_room_id(),
            archetype=Archetype.OPTIONAL,
            size=_weighted(rng, SIZE_WEIGHTS),
            tags={"optional": "true", "branch_from": branch_point.id},
        )
        graph.add_room(optional_room)
        attempt.connect(branch_point, optional_room, _weighted(rng, CONNECTOR_WEIGHTS))

        if rng.random() < attempt.config.secret_density:
            secret_room = Room(
                id=attempt.next_room_id(),
                archetype=Archetype.SECRET,
                size=RoomSize.S,
                tags={"secret": "true", "branch_from": optional_room.id},
            )
            graph.add_room(secret_room)
            attempt.connect(optional_room, secret_room, ConnectorType.HIDDEN, visibility=Visibility.SECRET)
            logger.debug("BranchOptional hid secret %s behind %s", secret_room.id, optional_room.id)


def _weighted(rng: DeterministicRNG, table):
    index = rng.weighted_choice([weight for _, weight in table])
    return table[index if index is not None else 0][0]
