from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Type

from .base import CancelToken, Synthesizer
from .config import SynthesisConfig
from .errors import ConfigError
from .grammar import GrammarSynthesizer
from .graph import Graph
from .rng import DeterministicRNG
from .template import TemplateSynthesizer

logger = logging.getLogger(__name__)

STAGE_NAME = "graph_synthesis"

SYNTHESIZERS: Mapping[str, Type[Synthesizer]] = MappingProxyType(
    {
        GrammarSynthesizer.name: GrammarSynthesizer,
        TemplateSynthesizer.name: TemplateSynthesizer,
    }
)


def available_strategies() -> List[str]:
    return sorted(SYNTHESIZERS)


def create_synthesizer(name: str, **options: Any) -> Synthesizer:
    factory = SYNTHESIZERS.get(name)
    if factory is None:
        raise ConfigError(f"Unknown synthesis strategy '{name}', expected one of {', '.join(available_strategies())}.")
    return factory(**options)


def synthesize(
    config: SynthesisConfig,
    cancel: Optional[CancelToken] = None,
    synthesizer: Optional[Synthesizer] = None,
) -> Graph:
    """Build a validated, frozen dungeon graph for ``config``.

    A zero seed is replaced by one drawn from the wall clock; the resolved seed
    is stored on the returned graph. Raises :class:`ConfigError` before any
    generation for invalid input, :class:`RetriesExhausted` when no attempt
    satisfies the hard constraints and :class:`SynthesisCancelled` when
    ``cancel`` is set.
    """
    config = config.resolve_seed()
    config.validate()
    engine = synthesizer if synthesizer is not None else create_synthesizer(config.strategy)
    rng = DeterministicRNG.for_stage(config.seed, STAGE_NAME, config.digest())
    logger.debug("Synthesizing with strategy=%s seed=%d stage_seed=%d", engine.name, config.seed, rng.seed)
    return engine.synthesize(rng, config, cancel)
