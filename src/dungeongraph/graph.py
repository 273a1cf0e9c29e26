from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .errors import GraphError


class Archetype(Enum):
    START = "Start"
    BOSS = "Boss"
    HUB = "Hub"
    TREASURE = "Treasure"
    PUZZLE = "Puzzle"
    CORRIDOR = "Corridor"
    OPTIONAL = "Optional"
    SECRET = "Secret"
    VENDOR = "Vendor"
    SHRINE = "Shrine"
    CHECKPOINT = "Checkpoint"


class RoomSize(IntEnum):
    XS = 0
    S = 1
    M = 2
    L = 3
    XL = 4


class ConnectorType(Enum):
    DOOR = "Door"
    CORRIDOR = "Corridor"
    LADDER = "Ladder"
    TELEPORTER = "Teleporter"
    HIDDEN = "Hidden"
    ONE_WAY = "OneWay"


class Visibility(Enum):
    NORMAL = "Normal"
    SECRET = "Secret"


@dataclass(frozen=True)
class Requirement:
    type: str
    value: str


@dataclass(frozen=True)
class Capability:
    type: str
    value: str


@dataclass(frozen=True)
class Gate:
    type: str
    value: str


@dataclass
class Room:
    id: str
    archetype: Archetype
    size: RoomSize = RoomSize.M
    difficulty: float = 0.0
    reward: float = 0.0
    tags: Dict[str, str] = field(default_factory=dict)
    requirements: List[Requirement] = field(default_factory=list)
    provides: List[Capability] = field(default_factory=list)

    def validate(self) -> None:
        if not self.id:
            raise GraphError("room id cannot be empty")
        if not 0.0 <= self.difficulty <= 1.0:
            raise GraphError(f"room {self.id}: difficulty must be in [0.0, 1.0], got {self.difficulty}")
        if not 0.0 <= self.reward <= 1.0:
            raise GraphError(f"room {self.id}: reward must be in [0.0, 1.0], got {self.reward}")

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "id": self.id,
            "archetype": self.archetype.value,
            "size": self.size.name,
            "difficulty": self.difficulty,
            "reward": self.reward,
            "tags": dict(self.tags),
        }
        if self.requirements:
            payload["requirements"] = [{"type": r.type, "value": r.value} for r in self.requirements]
        if self.provides:
            payload["provides"] = [{"type": c.type, "value": c.value} for c in self.provides]
        return payload

    def __str__(self) -> str:
        return (
            f"Room[{self.id}: {self.archetype.value} {self.size.name}, "
            f"difficulty={self.difficulty:.2f}, reward={self.reward:.2f}]"
        )


@dataclass
class Connector:
    id: str
    from_id: str
    to_id: str
    type: ConnectorType = ConnectorType.CORRIDOR
    cost: float = 1.0
    bidirectional: bool = True
    visibility: Visibility = Visibility.NORMAL
    gate: Optional[Gate] = None

    def validate(self) -> None:
        if not self.id:
            raise GraphError("connector id cannot be empty")
        if not self.from_id or not self.to_id:
            raise GraphError(f"connector {self.id}: endpoints cannot be empty")
        if self.from_id == self.to_id:
            raise GraphError(f"connector {self.id}: self-loop on {self.from_id}")
        if self.cost <= 0.0:
            raise GraphError(f"connector {self.id}: cost must be > 0.0, got {self.cost}")

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "id": self.id,
            "from": self.from_id,
            "to": self.to_id,
            "type": self.type.value,
            "cost": self.cost,
            "bidirectional": self.bidirectional,
            "visibility": self.visibility.value,
        }
        if self.gate is not None:
            payload["gate"] = {"type": self.gate.type, "value": self.gate.value}
        return payload

    def __str__(self) -> str:
        arrow = "<->" if self.bidirectional else "->"
        gate = f" [gate {self.gate.type}={self.gate.value}]" if self.gate else ""
        return f"Connector[{self.id}: {self.from_id} {arrow} {self.to_id} ({self.type.value}){gate}]"


class Graph:
    """Abstract dungeon graph: rooms, connectors and a derived adjacency index.

    Inserts are the only mutation. ``adjacency`` follows traversal direction
    (a one-way connector only appears under its ``from`` room) while the
    incident index counts every connector touching a room, which is what the
    branching bound is measured against.

    :meth:`freeze` turns ``rooms``, ``connectors``, ``adjacency`` and
    ``metadata`` into read-only views. The Room and Connector records inside
    them remain ordinary dataclasses and are not deep-frozen.
    """

    def __init__(self, seed: int = 0) -> None:
        self.seed = seed
        self.rooms: Dict[str, Room] = {}
        self.connectors: Dict[str, Connector] = {}
        self.adjacency: Dict[str, List[str]] = {}
        self.metadata: Dict[str, Any] = {}
        self._incident: Dict[str, List[str]] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        if self._frozen:
            return
        self._frozen = True
        self.rooms = MappingProxyType(self.rooms)
        self.connectors = MappingProxyType(self.connectors)
        self.adjacency = MappingProxyType({room_id: tuple(ids) for room_id, ids in self.adjacency.items()})
        self.metadata = MappingProxyType(self.metadata)

    def _check_mutable(self) -> None:
        if self._frozen:
            raise GraphError("graph is frozen")

    def add_room(self, room: Room) -> None:
        self._check_mutable()
        room.validate()
        if room.id in self.rooms:
            raise GraphError(f"room with id {room.id} already exists")
        self.rooms[room.id] = room
        self.adjacency.setdefault(room.id, [])
        self._incident.setdefault(room.id, [])

    def add_connector(self, connector: Connector) -> None:
        self._check_mutable()
        connector.validate()
        for endpoint in (connector.from_id, connector.to_id):
            if endpoint not in self.rooms:
                raise GraphError(f"connector {connector.id}: room {endpoint} does not exist")
        if connector.id in self.connectors:
            raise GraphError(f"connector with id {connector.id} already exists")
        self.connectors[connector.id] = connector
        self.adjacency[connector.from_id].append(connector.to_id)
        if connector.bidirectional:
            self.adjacency[connector.to_id].append(connector.from_id)
        self._incident[connector.from_id].append(connector.id)
        self._incident[connector.to_id].append(connector.id)

    def room_count(self) -> int:
        return len(self.rooms)

    def sorted_room_ids(self) -> List[str]:
        return sorted(self.rooms)

    def rooms_by_archetype(self, archetype: Archetype) -> List[Room]:
        return [self.rooms[room_id] for room_id in self.sorted_room_ids() if self.rooms[room_id].archetype is archetype]

    def adjacent(self, room_id: str) -> Tuple[str, ...]:
        return tuple(self.adjacency.get(room_id, ()))

    def neighbors(self, room_id: str) -> List[str]:
        """Rooms sharing a connector with ``room_id`` regardless of direction, sorted."""
        found: Set[str] = set()
        for connector_id in self._incident.get(room_id, ()):
            connector = self.connectors[connector_id]
            found.add(connector.to_id if connector.from_id == room_id else connector.from_id)
        return sorted(found)

    def incident_connectors(self, room_id: str) -> List[Connector]:
        return [self.connectors[cid] for cid in self._incident.get(room_id, ())]

    def degree(self, room_id: str) -> int:
        return len(self._incident.get(room_id, ()))

    def get_path(self, from_id: str, to_id: str) -> List[str]:
        """Breadth-first path along traversal adjacency, endpoints included."""
        for room_id in (from_id, to_id):
            if room_id not in self.rooms:
                raise GraphError(f"room {room_id} does not exist")
        if from_id == to_id:
            return [from_id]
        parent: Dict[str, str] = {}
        visited = {from_id}
        queue = deque([from_id])
        while queue:
            current = queue.popleft()
            for neighbor in self.adjacency[current]:
                if neighbor in visited:
                    continue
                visited.add(neighbor)
                parent[neighbor] = current
                if neighbor == to_id:
                    path = [to_id]
                    while path[-1] != from_id:
                        path.append(parent[path[-1]])
                    path.reverse()
                    return path
                queue.append(neighbor)
        raise GraphError(f"no path exists from {from_id} to {to_id}")

    def get_reachable(self, start_id: str) -> Set[str]:
        if start_id not in self.rooms:
            return set()
        reachable = {start_id}
        queue = deque([start_id])
        while queue:
            current = queue.popleft()
            for neighbor in self.adjacency[current]:
                if neighbor not in reachable:
                    reachable.add(neighbor)
                    queue.append(neighbor)
        return reachable

    def is_connected(self) -> bool:
        """True when every room is reachable from the Start room.

        Graphs without a Start room are checked from their first room id.
        """
        if not self.rooms:
            return True
        starts = self.rooms_by_archetype(Archetype.START)
        origin = starts[0].id if starts else self.sorted_room_ids()[0]
        return len(self.get_reachable(origin)) == len(self.rooms)

    def is_weakly_connected(self) -> bool:
        if not self.rooms:
            return True
        origin = self.sorted_room_ids()[0]
        seen = {origin}
        queue = deque([origin])
        while queue:
            current = queue.popleft()
            for neighbor in self.neighbors(current):
                if neighbor not in seen:
                    seen.add(neighbor)
                    queue.append(neighbor)
        return len(seen) == len(self.rooms)

    def archetype_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for room in self.rooms.values():
            counts[room.archetype.value] = counts.get(room.archetype.value, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, object]:
        return {
            "seed": self.seed,
            "metadata": dict(self.metadata),
            "rooms": {room_id: self.rooms[room_id].to_dict() for room_id in self.sorted_room_ids()},
            "connectors": [self.connectors[cid].to_dict() for cid in sorted(self.connectors)],
            "adjacency": {room_id: list(self.adjacency[room_id]) for room_id in self.sorted_room_ids()},
        }


def iter_gates(graph: Graph) -> Iterable[Connector]:
    for connector_id in sorted(graph.connectors):
        connector = graph.connectors[connector_id]
        if connector.gate is not None:
            yield connector


def capability_providers(graph: Graph, capability_type: str) -> Mapping[str, List[str]]:
    """Map each capability value of ``capability_type`` to the rooms granting it."""
    providers: Dict[str, List[str]] = {}
    for room_id in graph.sorted_room_ids():
        for capability in graph.rooms[room_id].provides:
            if capability.type == capability_type:
                providers.setdefault(capability.value, []).append(room_id)
    return providers
