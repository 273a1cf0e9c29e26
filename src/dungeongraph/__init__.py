"""Abstract dungeon graph synthesis: rooms, connectors, pacing and biomes."""

from .base import Synthesizer, SynthesisReport, SynthesisState
from .config import KeyConfig, PacingConfig, SynthesisConfig, load_config
from .errors import (
    ConfigError,
    ConstraintViolation,
    DungeonGraphError,
    GraphError,
    PacingError,
    RetriesExhausted,
    SynthesisCancelled,
)
from .evaluation import GraphMetrics, compute_metrics, score_graph
from .grammar import GrammarSynthesizer
from .graph import Archetype, Capability, Connector, ConnectorType, Gate, Graph, Requirement, Room, RoomSize, Visibility
from .pacing import create_curve
from .rng import DeterministicRNG
from .synthesis import SYNTHESIZERS, available_strategies, create_synthesizer, synthesize
from .template import TemplateSynthesizer
from .themes import assign_themes

__all__ = [
    "Archetype",
    "Capability",
    "ConfigError",
    "Connector",
    "ConnectorType",
    "ConstraintViolation",
    "DeterministicRNG",
    "DungeonGraphError",
    "Gate",
    "GrammarSynthesizer",
    "Graph",
    "GraphError",
    "GraphMetrics",
    "KeyConfig",
    "PacingConfig",
    "PacingError",
    "Requirement",
    "RetriesExhausted",
    "Room",
    "RoomSize",
    "SYNTHESIZERS",
    "SynthesisCancelled",
    "SynthesisConfig",
    "SynthesisReport",
    "SynthesisState",
    "Synthesizer",
    "TemplateSynthesizer",
    "Visibility",
    "assign_themes",
    "available_strategies",
    "compute_metrics",
    "create_curve",
    "create_synthesizer",
    "load_config",
    "score_graph",
    "synthesize",
]
