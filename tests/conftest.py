from __future__ import annotations

from typing import Sequence

import pytest

from dungeongraph.graph import Archetype, Connector, Graph, Room


def build_chain(archetypes: Sequence[Archetype], seed: int = 1) -> Graph:
    """Rooms r0..rN joined by bidirectional corridors in order."""
    graph = Graph(seed)
    for index, archetype in enumerate(archetypes):
        graph.add_room(Room(id=f"r{index}", archetype=archetype))
    for index in range(len(archetypes) - 1):
        graph.add_connector(Connector(id=f"c{index}", from_id=f"r{index}", to_id=f"r{index + 1}"))
    return graph


@pytest.fixture
def chain_graph() -> Graph:
    return build_chain([Archetype.START, Archetype.CORRIDOR, Archetype.HUB, Archetype.TREASURE, Archetype.BOSS])
