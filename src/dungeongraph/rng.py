from __future__ import annotations

import hashlib
import random
from typing import List, Optional, Sequence, Tuple


class DeterministicRNG:
    """Seeded random stream handed explicitly to every randomness consumer.

    Wraps :class:`random.Random` so that the whole synthesis run draws from one
    reproducible sequence. Stage RNGs derive their seed as
    ``sha256(master_seed, stage_name, config_digest)`` so two pipeline stages
    never share a stream and any config change reshuffles the output.

    Usage:
        rng = DeterministicRNG.for_stage(42, "graph_synthesis", cfg.digest())
        count = rng.int_range(10, 30)
    """

    def __init__(self, seed: int, stage_name: str = "") -> None:
        self._seed = seed
        self._stage_name = stage_name
        self._rng = random.Random(seed)
        self._initial_state = self._rng.getstate()

    @classmethod
    def for_stage(cls, master_seed: int, stage_name: str, config_digest: bytes = b"") -> "DeterministicRNG":
        return cls(derive_seed(master_seed, stage_name, config_digest), stage_name)

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def stage_name(self) -> str:
        return self._stage_name

    def reset(self) -> None:
        self._rng.setstate(self._initial_state)

    def getstate(self) -> Tuple:
        return self._rng.getstate()

    def setstate(self, state: Tuple) -> None:
        self._rng.setstate(state)

    def random(self) -> float:
        """Float in [0.0, 1.0)."""
        return self._rng.random()

    def randrange(self, n: int) -> int:
        """Integer in [0, n). Raises ValueError when n <= 0."""
        if n <= 0:
            raise ValueError("randrange argument must be positive")
        return self._rng.randrange(n)

    def int_range(self, low: int, high: int) -> int:
        """Integer in [low, high], both ends included."""
        if low > high:
            raise ValueError("int_range low must be <= high")
        if low == high:
            return low
        return self._rng.randint(low, high)

    def float_range(self, low: float, high: float) -> float:
        """Float in [low, high)."""
        if low >= high:
            raise ValueError("float_range low must be < high")
        return low + self._rng.random() * (high - low)

    def shuffle(self, items: List) -> None:
        self._rng.shuffle(items)

    def weighted_choice(self, weights: Sequence[float]) -> Optional[int]:
        """Index drawn proportionally to ``weights``; None when every weight is zero."""
        total = 0.0
        cumulative: List[float] = []
        for weight in weights:
            if weight < 0:
                raise ValueError("weights must be non-negative")
            total += weight
            cumulative.append(total)
        if total == 0:
            return None
        pick = self._rng.random() * total
        for index, threshold in enumerate(cumulative):
            if pick < threshold:
                return index
        return len(cumulative) - 1  # pragma: no cover - float rounding


def derive_seed(master_seed: int, stage_name: str, config_digest: bytes = b"") -> int:
    digest = hashlib.sha256()
    digest.update((master_seed & 0xFFFFFFFFFFFFFFFF).to_bytes(8, "big"))
    digest.update(stage_name.encode("utf-8"))
    digest.update(config_digest)
    return int.from_bytes(digest.digest()[:8], "big")
