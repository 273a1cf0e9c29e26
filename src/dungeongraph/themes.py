from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from .errors import ConfigError
from .graph import Graph
from .rng import DeterministicRNG

logger = logging.getLogger(__name__)

BIOME_TAG = "biome"


def assign_themes(graph: Graph, themes: Sequence[str], rng: DeterministicRNG) -> Dict[str, str]:
    """Partition rooms into connected biome clusters and tag each room.

    Returns the room id -> theme mapping that was written to the tags.
    """
    if not themes:
        raise ConfigError("at least one theme must be specified")
    if not graph.rooms:
        return {}
    if len(themes) == 1:
        assignments = {room_id: themes[0] for room_id in graph.sorted_room_ids()}
    else:
        assignments = _grow_regions(graph, list(themes), rng)
    for room_id, theme in assignments.items():
        graph.rooms[room_id].tags[BIOME_TAG] = theme
    return assignments


def _grow_regions(graph: Graph, themes: List[str], rng: DeterministicRNG) -> Dict[str, str]:
    room_ids = graph.sorted_room_ids()
    assignments: Dict[str, str] = {}

    seeds = list(room_ids)
    rng.shuffle(seeds)
    for theme, room_id in zip(themes, seeds):
        assignments[room_id] = theme

    max_rounds = len(room_ids) * 2
    rounds = 0
    while len(assignments) < len(room_ids) and rounds < max_rounds:
        rounds += 1
        order = list(themes)
        rng.shuffle(order)
        for theme in order:
            frontier = _frontier(graph, theme, assignments)
            if not frontier:
                continue
            assignments[frontier[rng.randrange(len(frontier))]] = theme

    leftovers = [room_id for room_id in room_ids if room_id not in assignments]
    if leftovers:
        logger.debug("Biome growth stopped after %d rounds with %d rooms unassigned", rounds, len(leftovers))
    for room_id in leftovers:
        theme = _neighbor_theme(graph, room_id, assignments)
        if theme is None:
            theme = themes[rng.randrange(len(themes))]
        assignments[room_id] = theme

    return {room_id: assignments[room_id] for room_id in room_ids}


def _frontier(graph: Graph, theme: str, assignments: Dict[str, str]) -> List[str]:
    frontier = set()
    for room_id, room_theme in assignments.items():
        if room_theme != theme:
            continue
        for neighbor in graph.neighbors(room_id):
            if neighbor not in assignments:
                frontier.add(neighbor)
    return sorted(frontier)


def _neighbor_theme(graph: Graph, room_id: str, assignments: Dict[str, str]):
    for neighbor in graph.neighbors(room_id):
        if neighbor in assignments:
            return assignments[neighbor]
    return None
