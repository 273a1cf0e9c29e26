import pytest

from dungeongraph.config import PacingConfig, SynthesisConfig
from dungeongraph.evaluation import compute_metrics, pacing_deviation, score_graph
from dungeongraph.graph import Archetype, Connector, Gate
from dungeongraph.synthesis import synthesize

from conftest import build_chain


def _paced_chain():
    graph = build_chain([Archetype.START, Archetype.CORRIDOR, Archetype.HUB, Archetype.SECRET, Archetype.BOSS])
    for index, room_id in enumerate(graph.sorted_room_ids()):
        graph.rooms[room_id].difficulty = index / 4
    return graph


def test_chain_metrics():
    metrics = compute_metrics(_paced_chain())
    assert metrics.room_count == 5
    assert metrics.connector_count == 4
    assert metrics.branching_factor == pytest.approx(1.6)
    assert metrics.max_degree == 2
    assert metrics.dead_end_ratio == pytest.approx(0.2)
    assert metrics.critical_path_length == 4
    assert metrics.secret_ratio == pytest.approx(0.2)
    assert metrics.pacing_deviation == pytest.approx(0.0)
    assert metrics.archetype_counts["Start"] == 1


def test_pacing_deviation_measures_curve_error():
    graph = _paced_chain()
    assert pacing_deviation(graph, PacingConfig(curve="EXPONENTIAL")) > 0.05
    for room in graph.rooms.values():
        room.difficulty = 0.0
    assert pacing_deviation(graph, PacingConfig()) == pytest.approx((sum((i / 4) ** 2 for i in range(5)) / 5) ** 0.5)


def test_missing_boss_counts_as_full_deviation():
    graph = build_chain([Archetype.START, Archetype.CORRIDOR])
    assert pacing_deviation(graph, PacingConfig()) == 1.0
    assert compute_metrics(graph).critical_path_length == 0


def test_gated_connectors_counted():
    graph = _paced_chain()
    graph.add_connector(Connector(id="lock", from_id="r1", to_id="r3", bidirectional=False, gate=Gate("key", "x")))
    assert compute_metrics(graph).gated_connectors == 1


def test_score_uses_weights():
    score, metrics = score_graph(_paced_chain(), {"room_count": 1.0, "dead_end_penalty": -10.0})
    assert score == pytest.approx(5 - 2.0)
    assert metrics.room_count == 5


def test_metrics_on_synthesized_graph():
    config = SynthesisConfig(seed=404, themes=("forest", "cave"))
    graph = synthesize(config)
    metrics = compute_metrics(graph, config.pacing)
    assert metrics.room_count == graph.room_count()
    assert sum(metrics.biome_counts.values()) == graph.room_count()
    assert metrics.max_degree <= config.branching_max
    assert metrics.to_dict()["archetype_counts"]["Boss"] == 1
