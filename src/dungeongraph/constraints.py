from __future__ import annotations

from .config import SynthesisConfig
from .errors import ConstraintViolation, GraphError
from .graph import Archetype, Graph, capability_providers, iter_gates

START_COUNT = "start_count"
BOSS_COUNT = "boss_count"
CONNECTIVITY = "connectivity"
ROOM_COUNT = "room_count"
CRITICAL_PATH = "critical_path"
KEY_LOCK = "key_lock"
BRANCHING = "branching"


def validate_hard_constraints(graph: Graph, config: SynthesisConfig) -> None:
    """Raise :class:`ConstraintViolation` for the first invariant ``graph`` breaks."""
    starts = graph.rooms_by_archetype(Archetype.START)
    if len(starts) != 1:
        raise ConstraintViolation(START_COUNT, f"must have exactly 1 Start room, got {len(starts)}")
    bosses = graph.rooms_by_archetype(Archetype.BOSS)
    if len(bosses) != 1:
        raise ConstraintViolation(BOSS_COUNT, f"must have exactly 1 Boss room, got {len(bosses)}")

    start_id = starts[0].id
    reachable = graph.get_reachable(start_id)
    unreachable = [room_id for room_id in graph.sorted_room_ids() if room_id not in reachable]
    if unreachable:
        raise ConstraintViolation(
            CONNECTIVITY, f"{len(unreachable)} rooms unreachable from Start (first: {unreachable[0]})"
        )

    count = graph.room_count()
    if count < config.rooms_min:
        raise ConstraintViolation(ROOM_COUNT, f"room count {count} below minimum {config.rooms_min}")
    if count > config.rooms_max:
        raise ConstraintViolation(ROOM_COUNT, f"room count {count} exceeds maximum {config.rooms_max}")

    try:
        graph.get_path(start_id, bosses[0].id)
    except GraphError as exc:
        raise ConstraintViolation(CRITICAL_PATH, str(exc)) from exc

    _check_gates(graph, reachable)

    for room_id in graph.sorted_room_ids():
        degree = graph.degree(room_id)
        if degree > config.branching_max:
            raise ConstraintViolation(
                BRANCHING, f"room {room_id} has {degree} connectors, exceeds max {config.branching_max}"
            )


def _check_gates(graph: Graph, reachable: set) -> None:
    providers_by_type = {}
    for connector in iter_gates(graph):
        gate = connector.gate
        providers = providers_by_type.get(gate.type)
        if providers is None:
            providers = providers_by_type[gate.type] = capability_providers(graph, gate.type)
        rooms = providers.get(gate.value, [])
        if not rooms:
            raise ConstraintViolation(
                KEY_LOCK, f"gate {gate.type}={gate.value!r} on {connector.id} has no providing room"
            )
        if not any(room_id in reachable for room_id in rooms):
            raise ConstraintViolation(
                KEY_LOCK, f"{gate.type} {gate.value!r} is only provided by rooms unreachable from Start"
            )
    for room_id in graph.sorted_room_ids():
        for requirement in graph.rooms[room_id].requirements:
            if requirement.value not in capability_providers(graph, requirement.type):
                raise ConstraintViolation(
                    KEY_LOCK, f"room {room_id} requires {requirement.type} {requirement.value!r} but no room provides it"
                )
