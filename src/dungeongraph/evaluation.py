from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from .config import PacingConfig
from .base import expected_difficulty
from .errors import GraphError
from .graph import Archetype, Graph, iter_gates
from .pacing import create_curve
from .themes import BIOME_TAG

DEFAULT_WEIGHTS: Mapping[str, float] = {
    "branching_factor": 0.5,
    "dead_end_penalty": -1.0,
    "secret_ratio": 0.5,
    "optional_ratio": 0.5,
    "pacing_penalty": -2.0,
}


@dataclass
class GraphMetrics:
    room_count: int
    connector_count: int
    branching_factor: float
    max_degree: int
    dead_end_ratio: float
    critical_path_length: int
    secret_ratio: float
    optional_ratio: float
    gated_connectors: int
    pacing_deviation: float
    archetype_counts: Dict[str, int] = field(default_factory=dict)
    biome_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def _critical_path(graph: Graph):
    starts = graph.rooms_by_archetype(Archetype.START)
    bosses = graph.rooms_by_archetype(Archetype.BOSS)
    if not starts or not bosses:
        return []
    try:
        return graph.get_path(starts[0].id, bosses[0].id)
    except GraphError:
        return []


def pacing_deviation(graph: Graph, pacing: PacingConfig) -> float:
    """Root mean squared error of critical-path difficulty against the curve."""
    path = _critical_path(graph)
    if not path:
        return 1.0
    if len(path) < 2:
        return 0.0
    curve = create_curve(pacing.curve, pacing.custom_points)
    squared = 0.0
    for index, room_id in enumerate(path):
        error = expected_difficulty(curve, len(path), index) - graph.rooms[room_id].difficulty
        squared += error * error
    return math.sqrt(squared / len(path))


def compute_metrics(graph: Graph, pacing: Optional[PacingConfig] = None) -> GraphMetrics:
    rooms = graph.rooms
    total_rooms = max(len(rooms), 1)

    dead_ends = 0
    max_degree = 0
    biome_counts: Dict[str, int] = {}
    for room_id in graph.sorted_room_ids():
        room = rooms[room_id]
        degree = graph.degree(room_id)
        max_degree = max(max_degree, degree)
        if room.archetype is not Archetype.START and degree <= 1:
            dead_ends += 1
        biome = room.tags.get(BIOME_TAG)
        if biome is not None:
            biome_counts[biome] = biome_counts.get(biome, 0) + 1

    path = _critical_path(graph)
    return GraphMetrics(
        room_count=len(rooms),
        connector_count=len(graph.connectors),
        branching_factor=2 * len(graph.connectors) / total_rooms,
        max_degree=max_degree,
        dead_end_ratio=dead_ends / total_rooms,
        critical_path_length=max(len(path) - 1, 0),
        secret_ratio=len(graph.rooms_by_archetype(Archetype.SECRET)) / total_rooms,
        optional_ratio=len(graph.rooms_by_archetype(Archetype.OPTIONAL)) / total_rooms,
        gated_connectors=sum(1 for _ in iter_gates(graph)),
        pacing_deviation=pacing_deviation(graph, pacing or PacingConfig()),
        archetype_counts=graph.archetype_counts(),
        biome_counts=biome_counts,
    )


def score_graph(
    graph: Graph,
    weights: Optional[Mapping[str, float]] = None,
    pacing: Optional[PacingConfig] = None,
) -> Tuple[float, GraphMetrics]:
    metrics = compute_metrics(graph, pacing)
    if weights is None:
        weights = DEFAULT_WEIGHTS

    score = 0.0
    score += weights.get("branching_factor", 0.0) * metrics.branching_factor
    score += weights.get("dead_end_penalty", 0.0) * metrics.dead_end_ratio
    score += weights.get("secret_ratio", 0.0) * metrics.secret_ratio
    score += weights.get("optional_ratio", 0.0) * metrics.optional_ratio
    score += weights.get("pacing_penalty", 0.0) * metrics.pacing_deviation
    score += weights.get("room_count", 0.0) * metrics.room_count
    return score, metrics
