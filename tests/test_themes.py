import pytest

from dungeongraph.errors import ConfigError
from dungeongraph.graph import Archetype, Connector, Graph, Room
from dungeongraph.rng import DeterministicRNG
from dungeongraph.themes import BIOME_TAG, assign_themes

from conftest import build_chain

THEMES = ["forest", "cave", "ruins"]


def _twenty_room_graph() -> Graph:
    archetypes = [Archetype.START] + [Archetype.CORRIDOR] * 18 + [Archetype.BOSS]
    graph = build_chain(archetypes)
    graph.add_connector(Connector(id="loop", from_id="r3", to_id="r12"))
    graph.add_connector(Connector(id="spur", from_id="r7", to_id="r17"))
    return graph


def _is_connected_within(graph: Graph, members):
    members = set(members)
    origin = min(members)
    seen = {origin}
    stack = [origin]
    while stack:
        current = stack.pop()
        for neighbor in graph.neighbors(current):
            if neighbor in members and neighbor not in seen:
                seen.add(neighbor)
                stack.append(neighbor)
    return seen == members


def test_every_room_tagged_and_every_theme_used():
    graph = _twenty_room_graph()
    assignments = assign_themes(graph, THEMES, DeterministicRNG(4))

    assert len(assignments) == 20
    for room in graph.rooms.values():
        assert room.tags[BIOME_TAG] in THEMES
        assert assignments[room.id] == room.tags[BIOME_TAG]
    assert set(assignments.values()) == set(THEMES)


@pytest.mark.parametrize("seed", range(1, 11))
def test_biomes_form_connected_clusters(seed):
    graph = _twenty_room_graph()
    assignments = assign_themes(graph, THEMES, DeterministicRNG(seed))
    for theme in THEMES:
        members = [room_id for room_id, value in assignments.items() if value == theme]
        assert _is_connected_within(graph, members)


def test_assignment_is_deterministic():
    first = assign_themes(_twenty_room_graph(), THEMES, DeterministicRNG(21))
    second = assign_themes(_twenty_room_graph(), THEMES, DeterministicRNG(21))
    assert first == second


def test_single_theme_is_flat_and_draws_nothing():
    graph = _twenty_room_graph()
    rng = DeterministicRNG(5)
    before = rng.getstate()
    assignments = assign_themes(graph, ["crypt"], rng)
    assert set(assignments.values()) == {"crypt"}
    assert rng.getstate() == before


def test_empty_theme_list_is_rejected():
    with pytest.raises(ConfigError):
        assign_themes(_twenty_room_graph(), [], DeterministicRNG(1))


def test_isolated_rooms_still_get_a_theme():
    graph = Graph()
    for room_id in ("a", "b", "c", "d"):
        graph.add_room(Room(id=room_id, archetype=Archetype.CORRIDOR))
    assignments = assign_themes(graph, ["forest", "cave"], DeterministicRNG(2))
    assert set(assignments) == {"a", "b", "c", "d"}
    assert set(assignments.values()) <= {"forest", "cave"}
