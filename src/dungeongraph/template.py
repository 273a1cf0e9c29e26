from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from .base import DEFAULT_MAX_RETRIES, CancelToken, Synthesizer, assign_difficulty, check_cancelled
from .config import SynthesisConfig
from .graph import Archetype, Connector, ConnectorType, Graph, Room, RoomSize
from .rng import DeterministicRNG
from .themes import assign_themes

logger = logging.getLogger(__name__)

START = "start"
BOSS = "boss"
MID = "mid"
BRANCH = "branch"

BRANCH_WINDOW = 15
MID_PROBABILITY_NEAR_TARGET = 0.6


@dataclass(frozen=True)
class FragmentRoom:
    local_id: str
    archetype: Archetype
    size: RoomSize


@dataclass(frozen=True)
class FragmentLink:
    source: str
    target: str
    type: ConnectorType = ConnectorType.CORRIDOR


@dataclass(frozen=True)
class Fragment:
    name: str
    rooms: Tuple[FragmentRoom, ...]
    links: Tuple[FragmentLink, ...]
    attachments: Tuple[str, ...]


DEFAULT_FRAGMENTS: Mapping[str, Tuple[Fragment, ...]] = {
    START: (
        Fragment(
            name="linear_start",
            rooms=(
                FragmentRoom("start", Archetype.START, RoomSize.M),
                FragmentRoom("r1", Archetype.CORRIDOR, RoomSize.S),
                FragmentRoom("r2", Archetype.TREASURE, RoomSize.M),
            ),
            links=(
                FragmentLink("start", "r1", ConnectorType.CORRIDOR),
                FragmentLink("r1", "r2", ConnectorType.DOOR),
            ),
            attachments=("r2",),
        ),
    ),
    BOSS: (
        Fragment(
            name="guarded_boss",
            rooms=(
                FragmentRoom("approach", Archetype.CORRIDOR, RoomSize.M),
                FragmentRoom("boss", Archetype.BOSS, RoomSize.XL),
            ),
            links=(FragmentLink("approach", "boss", ConnectorType.DOOR),),
            attachments=("approach",),
        ),
    ),
    MID: (
        Fragment(
            name="corridor_chain",
            rooms=(
                FragmentRoom("c1", Archetype.CORRIDOR, RoomSize.S),
                FragmentRoom("c2", Archetype.CORRIDOR, RoomSize.S),
                FragmentRoom("c3", Archetype.CORRIDOR, RoomSize.M),
            ),
            links=(FragmentLink("c1", "c2"), FragmentLink("c2", "c3")),
            attachments=("c1", "c3"),
        ),
        Fragment(
            name="hub_room",
            rooms=(FragmentRoom("hub", Archetype.HUB, RoomSize.L),),
            links=(),
            attachments=("hub",),
        ),
    ),
    BRANCH: (
        Fragment(
            name="treasure_branch",
            rooms=(
                FragmentRoom("fork", Archetype.CORRIDOR, RoomSize.S),
                FragmentRoom("treasure", Archetype.TREASURE, RoomSize.M),
            ),
            links=(FragmentLink("fork", "treasure", ConnectorType.DOOR),),
            attachments=("fork",),
        ),
    ),
}


class TemplateSynthesizer(Synthesizer):
    """Chains fixed graph fragments from a start fragment to a boss fragment.

    More predictable than the grammar engine and places no key loops; it
    shares difficulty assignment, biome clustering and validation with it.
    """

    name = "template"

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        fragments: Optional[Mapping[str, Tuple[Fragment, ...]]] = None,
    ) -> None:
        super().__init__(max_retries=max_retries)
        self._fragments: Dict[str, Tuple[Fragment, ...]] = dict(DEFAULT_FRAGMENTS)
        if fragments:
            self._fragments.update(fragments)

    def build_attempt(
        self, rng: DeterministicRNG, config: SynthesisConfig, cancel: Optional[CancelToken]
    ) -> Graph:
        graph = Graph(config.seed)
        instance = 0

        check_cancelled(cancel, "start fragment")
        start_points = self._instantiate(graph, self._select(START, rng, config.branching_max), f"s{instance}_")
        instance += 1
        boss_points = self._instantiate(graph, self._select(BOSS, rng, config.branching_max), f"b{instance}_")
        instance += 1

        target = rng.int_range(config.rooms_min, config.rooms_max)
        last = start_points[rng.randrange(len(start_points))]
        while graph.room_count() < target:
            check_cancelled(cancel, "growth iteration")
            category = MID
            if target - graph.room_count() < BRANCH_WINDOW and rng.random() >= MID_PROBABILITY_NEAR_TARGET:
                category = BRANCH
            fragment = self._select(category, rng, config.branching_max)
            points = self._instantiate(graph, fragment, f"m{instance}_")
            instance += 1
            _link(graph, last, points[0], ConnectorType.CORRIDOR)
            last = points[-1]
            if graph.room_count() > config.rooms_max:
                break

        _link(graph, last, boss_points[0], ConnectorType.CORRIDOR)
        logger.debug("Template chain built with %d fragments", instance)

        assign_difficulty(graph, rng, config.pacing)
        assign_themes(graph, config.themes, rng)
        return graph

    def _select(self, category: str, rng: DeterministicRNG, branching_max: int) -> Fragment:
        options = [f for f in self._fragments.get(category, ()) if _fits(f, category, branching_max)]
        if not options:
            return _fallback_fragment(category)
        return options[rng.randrange(len(options))]

    @staticmethod
    def _instantiate(graph: Graph, fragment: Fragment, prefix: str) -> List[str]:
        for piece in fragment.rooms:
            graph.add_room(
                Room(
                    id=prefix + piece.local_id,
                    archetype=piece.archetype,
                    size=piece.size,
                    tags={"template": fragment.name},
                )
            )
        for link in fragment.links:
            _link(graph, prefix + link.source, prefix + link.target, link.type)
        return [prefix + local_id for local_id in fragment.attachments]


def _link(graph: Graph, source: str, target: str, connector_type: ConnectorType) -> None:
    graph.add_connector(
        Connector(id=f"conn_{source}_{target}", from_id=source, to_id=target, type=connector_type)
    )


def _fits(fragment: Fragment, category: str, branching_max: int) -> bool:
    """True when no room of ``fragment`` exceeds ``branching_max`` once chained in."""
    degree: Dict[str, int] = {piece.local_id: 0 for piece in fragment.rooms}
    for link in fragment.links:
        degree[link.source] += 1
        degree[link.target] += 1
    if category == START:
        # Any attachment may become the chain exit.
        for local_id in fragment.attachments:
            degree[local_id] += 1
    else:
        degree[fragment.attachments[0]] += 1
        if category != BOSS:
            degree[fragment.attachments[-1]] += 1
    return max(degree.values(), default=0) <= branching_max


def _fallback_fragment(category: str) -> Fragment:
    if category == START:
        room = FragmentRoom("start", Archetype.START, RoomSize.M)
    elif category == BOSS:
        room = FragmentRoom("boss", Archetype.BOSS, RoomSize.XL)
    else:
        room = FragmentRoom("r1", Archetype.CORRIDOR, RoomSize.M)
    return Fragment(name=f"simple_{category}", rooms=(room,), links=(), attachments=(room.local_id,))
