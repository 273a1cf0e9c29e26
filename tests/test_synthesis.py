import threading
from types import MappingProxyType

import pytest

from dungeongraph.base import SynthesisState
from dungeongraph.config import KeyConfig, PacingConfig, SynthesisConfig
from dungeongraph.errors import ConfigError, SynthesisCancelled
from dungeongraph.grammar import GrammarSynthesizer
from dungeongraph.graph import Archetype, capability_providers, iter_gates
from dungeongraph.synthesis import (
    SYNTHESIZERS,
    available_strategies,
    create_synthesizer,
    synthesize,
)
from dungeongraph.template import TemplateSynthesizer


def _assert_playable(graph, config):
    assert len(graph.rooms_by_archetype(Archetype.START)) == 1
    assert len(graph.rooms_by_archetype(Archetype.BOSS)) == 1
    assert config.rooms_min <= graph.room_count() <= config.rooms_max
    assert graph.is_connected()
    assert all(graph.degree(room_id) <= config.branching_max for room_id in graph.sorted_room_ids())
    start_id = graph.rooms_by_archetype(Archetype.START)[0].id
    reachable = graph.get_reachable(start_id)
    for connector in iter_gates(graph):
        providers = capability_providers(graph, connector.gate.type).get(connector.gate.value, [])
        assert any(room_id in reachable for room_id in providers)


def test_small_dungeon_without_keys():
    config = SynthesisConfig(seed=12345, rooms_min=10, rooms_max=15, branching_max=4)
    graph = synthesize(config)
    _assert_playable(graph, config)
    assert graph.frozen
    assert graph.seed == 12345
    assert graph.metadata["strategy"] == "grammar"
    assert 1 <= graph.metadata["attempts"] <= 10


def test_silver_key_is_reachable_and_gated_one_way():
    found = False
    for seed in range(1, 9):
        config = SynthesisConfig(seed=seed, rooms_min=20, rooms_max=30, keys=(KeyConfig("silver"),))
        graph = synthesize(config)
        _assert_playable(graph, config)
        providers = capability_providers(graph, "key").get("silver", [])
        if not providers:
            continue
        found = True
        assert set(providers) <= graph.get_reachable("start")
        gates = list(iter_gates(graph))
        assert gates
        assert all(not connector.bidirectional for connector in gates)
        assert all(connector.gate.value == "silver" for connector in gates)
    assert found


@pytest.mark.parametrize("seed", range(1, 16))
@pytest.mark.parametrize("strategy", ["grammar", "template"])
def test_generated_graphs_are_playable(seed, strategy):
    config = SynthesisConfig(
        seed=seed,
        rooms_min=12,
        rooms_max=40,
        branching_max=4,
        keys=(KeyConfig("silver"), KeyConfig("gold")),
        themes=("forest", "cave", "ruins"),
        strategy=strategy,
    )
    graph = synthesize(config)
    _assert_playable(graph, config)
    for room in graph.rooms.values():
        assert 0.0 <= room.difficulty <= 1.0
        assert 0.0 <= room.reward <= 1.0
        assert room.tags["biome"] in config.themes


def test_themed_dungeon_uses_every_theme():
    themes = ("forest", "cave", "ruins")
    config = SynthesisConfig(seed=99, rooms_min=20, rooms_max=26, themes=themes)
    graph = synthesize(config)
    assert {room.tags["biome"] for room in graph.rooms.values()} == set(themes)


def test_same_seed_reproduces_graph():
    config = SynthesisConfig(seed=2024, rooms_min=15, rooms_max=35, keys=(KeyConfig("silver"),))
    first, second = synthesize(config), synthesize(config)
    assert first.to_dict() == second.to_dict()
    assert first.archetype_counts() == second.archetype_counts()


def test_config_change_reshuffles_output():
    base = SynthesisConfig(seed=2024, rooms_min=15, rooms_max=35)
    other = SynthesisConfig(seed=2024, rooms_min=15, rooms_max=35, secret_density=0.2)
    assert synthesize(base).to_dict() != synthesize(other).to_dict()


def test_zero_seed_is_resolved():
    graph = synthesize(SynthesisConfig(seed=0))
    assert graph.seed != 0


def test_linear_pacing_without_variance_follows_critical_path():
    config = SynthesisConfig(seed=77, rooms_min=15, rooms_max=25, pacing=PacingConfig(curve="LINEAR"))
    graph = synthesize(config)
    path = graph.get_path("start", "boss")
    for index, room_id in enumerate(path):
        assert graph.rooms[room_id].difficulty == pytest.approx(index / (len(path) - 1))


def test_invalid_config_is_rejected_before_generation():
    engine = GrammarSynthesizer()
    with pytest.raises(ConfigError):
        synthesize(SynthesisConfig(seed=1, rooms_min=5), synthesizer=engine)
    assert engine.last_report is None


def test_unknown_strategy():
    with pytest.raises(ConfigError):
        synthesize(SynthesisConfig(seed=1, strategy="wave_function"))


def test_cancelled_before_first_attempt():
    cancel = threading.Event()
    cancel.set()
    engine = GrammarSynthesizer()
    with pytest.raises(SynthesisCancelled):
        synthesize(SynthesisConfig(seed=3), cancel=cancel, synthesizer=engine)
    assert engine.last_report.state is SynthesisState.CANCELLED
    assert engine.last_report.attempts == []


class _TripAfter:
    def __init__(self, checks: int) -> None:
        self.remaining = checks

    def is_set(self) -> bool:
        self.remaining -= 1
        return self.remaining < 0


@pytest.mark.parametrize("checks", [1, 2, 5])
def test_cancelled_mid_growth(checks):
    with pytest.raises(SynthesisCancelled):
        synthesize(SynthesisConfig(seed=3, rooms_min=30, rooms_max=40), cancel=_TripAfter(checks))


def test_report_records_successful_attempt():
    engine = create_synthesizer("grammar", max_retries=25)
    synthesize(SynthesisConfig(seed=8), synthesizer=engine)
    report = engine.last_report
    assert report.state is SynthesisState.SUCCEEDED
    assert report.attempts[-1].violation is None
    assert all(record.violation for record in report.attempts[:-1])


def test_registry_is_fixed():
    assert available_strategies() == ["grammar", "template"]
    assert isinstance(SYNTHESIZERS, MappingProxyType)
    with pytest.raises(TypeError):
        SYNTHESIZERS["custom"] = GrammarSynthesizer  # type: ignore[index]


def test_create_synthesizer():
    engine = create_synthesizer("template", max_retries=3)
    assert isinstance(engine, TemplateSynthesizer)
    assert engine.max_retries == 3
    with pytest.raises(ConfigError):
        create_synthesizer("unknown")
