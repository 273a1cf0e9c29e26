from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, List, Mapping, Sequence, Tuple

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for 3.10
    import tomli as tomllib  # type: ignore[no-redef]

from .errors import ConfigError
from .pacing import CURVE_KINDS, CUSTOM, LINEAR, MAX_VARIANCE, ControlPoint

logger = logging.getLogger(__name__)

ROOMS_LOWER_BOUND = 10
ROOMS_UPPER_BOUND = 300
BRANCHING_MAX_RANGE = (2, 5)
BRANCHING_AVG_ADVISORY = (1.5, 3.0)
SECRET_DENSITY_MAX = 0.3
OPTIONAL_RATIO_RANGE = (0.1, 0.4)
KEY_COUNT_RANGE = (1, 5)
SEED_MASK = 0xFFFFFFFFFFFFFFFF


@dataclass(frozen=True)
class KeyConfig:
    name: str
    # Accepted for compatibility; exactly one key loop is built per distinct name.
    count: int = 1


@dataclass(frozen=True)
class PacingConfig:
    curve: str = LINEAR
    variance: float = 0.0
    custom_points: Tuple[ControlPoint, ...] = ()


@dataclass(frozen=True)
class SynthesisConfig:
    seed: int = 0
    rooms_min: int = 10
    rooms_max: int = 30
    branching_avg: float = 2.0
    branching_max: int = 4
    secret_density: float = 0.1
    # Validated but not consumed by any strategy.
    optional_ratio: float = 0.2
    keys: Tuple[KeyConfig, ...] = ()
    pacing: PacingConfig = field(default_factory=PacingConfig)
    themes: Tuple[str, ...] = ("dungeon",)
    strategy: str = "grammar"

    def key_names(self) -> List[str]:
        """Distinct key names in declaration order."""
        names: List[str] = []
        for key in self.keys:
            if key.name not in names:
                names.append(key.name)
        return names

    def with_seed(self, seed: int) -> "SynthesisConfig":
        return replace(self, seed=seed)

    def resolve_seed(self) -> "SynthesisConfig":
        if self.seed:
            return self
        return self.with_seed(generate_seed())

    def validate(self) -> None:
        if not 0 <= self.seed <= SEED_MASK:
            raise ConfigError(f"seed must be an unsigned 64-bit integer, got {self.seed}")
        if self.rooms_min < ROOMS_LOWER_BOUND:
            raise ConfigError(f"rooms_min must be at least {ROOMS_LOWER_BOUND}, got {self.rooms_min}")
        if self.rooms_max > ROOMS_UPPER_BOUND:
            raise ConfigError(f"rooms_max must be at most {ROOMS_UPPER_BOUND}, got {self.rooms_max}")
        if self.rooms_min > self.rooms_max:
            raise ConfigError(f"rooms_min ({self.rooms_min}) must be <= rooms_max ({self.rooms_max})")
        low, high = BRANCHING_MAX_RANGE
        if not low <= self.branching_max <= high:
            raise ConfigError(f"branching_max must be in range [{low}, {high}], got {self.branching_max}")
        avg_low, avg_high = BRANCHING_AVG_ADVISORY
        if not avg_low <= self.branching_avg <= avg_high:
            logger.warning(
                "branching_avg %.2f outside advisory range [%.1f, %.1f]; it is not enforced",
                self.branching_avg,
                avg_low,
                avg_high,
            )
        if not 0.0 <= self.secret_density <= SECRET_DENSITY_MAX:
            raise ConfigError(f"secret_density must be in range [0.0, {SECRET_DENSITY_MAX}], got {self.secret_density}")
        ratio_low, ratio_high = OPTIONAL_RATIO_RANGE
        if not ratio_low <= self.optional_ratio <= ratio_high:
            raise ConfigError(
                f"optional_ratio must be in range [{ratio_low}, {ratio_high}], got {self.optional_ratio}"
            )
        for index, key in enumerate(self.keys):
            if not key.name:
                raise ConfigError(f"keys[{index}]: name must not be empty")
            count_low, count_high = KEY_COUNT_RANGE
            if not count_low <= key.count <= count_high:
                raise ConfigError(f"keys[{index}]: count must be in range [{count_low}, {count_high}], got {key.count}")
        if not self.themes:
            raise ConfigError("at least one theme must be specified")
        if any(not theme for theme in self.themes):
            raise ConfigError("theme names must not be empty")
        _validate_pacing(self.pacing)
        if not self.strategy:
            raise ConfigError("strategy must not be empty")

    def digest(self) -> bytes:
        payload = json.dumps(asdict(self), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).digest()


def _validate_pacing(pacing: PacingConfig) -> None:
    if pacing.curve not in CURVE_KINDS:
        raise ConfigError(f"invalid curve type {pacing.curve!r}, must be one of: {', '.join(CURVE_KINDS)}")
    if not 0.0 <= pacing.variance <= MAX_VARIANCE:
        raise ConfigError(f"variance must be in range [0.0, {MAX_VARIANCE}], got {pacing.variance}")
    if pacing.curve != CUSTOM:
        return
    if len(pacing.custom_points) < 2:
        raise ConfigError("CUSTOM curve requires at least 2 custom points")
    previous = None
    for index, (progress, difficulty) in enumerate(pacing.custom_points):
        if not 0.0 <= progress <= 1.0:
            raise ConfigError(f"custom_points[{index}]: progress must be in [0.0, 1.0], got {progress}")
        if not 0.0 <= difficulty <= 1.0:
            raise ConfigError(f"custom_points[{index}]: difficulty must be in [0.0, 1.0], got {difficulty}")
        if previous is not None and progress <= previous:
            raise ConfigError(f"custom_points[{index}]: points must be sorted by progress")
        previous = progress


def generate_seed() -> int:
    seed = time.time_ns() & SEED_MASK
    return seed or 1


def _table(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = raw.get(key, {})
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        raise ConfigError(f"[{key}] must be a table.")
    return section


def _parse_keys(entries: Any) -> Tuple[KeyConfig, ...]:
    if entries is None:
        return ()
    if not isinstance(entries, list):
        raise ConfigError("keys must be an array of tables.")
    keys: List[KeyConfig] = []
    for index, entry in enumerate(entries):
        if isinstance(entry, str):
            keys.append(KeyConfig(name=entry.strip()))
            continue
        if not isinstance(entry, Mapping):
            raise ConfigError(f"keys[{index}] must be a table or a string.")
        keys.append(KeyConfig(name=str(entry.get("name", "")).strip(), count=int(entry.get("count", 1))))
    return tuple(keys)


def _parse_points(entries: Any) -> Tuple[ControlPoint, ...]:
    if entries is None:
        return ()
    if not isinstance(entries, list):
        raise ConfigError("pacing.custom_points must be an array of [progress, difficulty] pairs.")
    points: List[ControlPoint] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, (list, tuple)) or len(entry) != 2:
            raise ConfigError(f"pacing.custom_points[{index}] must be a [progress, difficulty] pair.")
        points.append((float(entry[0]), float(entry[1])))
    return tuple(points)


def _parse_themes(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value.strip(),)
    if not isinstance(value, Sequence):
        raise ConfigError("themes must be a list of names.")
    return tuple(str(theme).strip() for theme in value)


def config_from_mapping(raw: Mapping[str, Any]) -> SynthesisConfig:
    """Build and validate a config from a parsed TOML/JSON document."""
    defaults = SynthesisConfig()
    size = _table(raw, "size")
    branching = _table(raw, "branching")
    pacing_raw = _table(raw, "pacing")
    try:
        pacing = PacingConfig(
            curve=str(pacing_raw.get("curve", defaults.pacing.curve)).strip().upper(),
            variance=float(pacing_raw.get("variance", defaults.pacing.variance)),
            custom_points=_parse_points(pacing_raw.get("custom_points")),
        )
        config = SynthesisConfig(
            seed=int(raw.get("seed", defaults.seed)),
            rooms_min=int(size.get("rooms_min", defaults.rooms_min)),
            rooms_max=int(size.get("rooms_max", defaults.rooms_max)),
            branching_avg=float(branching.get("avg", defaults.branching_avg)),
            branching_max=int(branching.get("max", defaults.branching_max)),
            secret_density=float(raw.get("secret_density", defaults.secret_density)),
            optional_ratio=float(raw.get("optional_ratio", defaults.optional_ratio)),
            keys=_parse_keys(raw.get("keys")),
            pacing=pacing,
            themes=_parse_themes(raw.get("themes", list(defaults.themes))),
            strategy=str(raw.get("strategy", defaults.strategy)).strip(),
        )
    except (TypeError, ValueError) as exc:
        if isinstance(exc, ConfigError):
            raise
        raise ConfigError(f"Malformed configuration value: {exc}") from exc
    config.validate()
    return config


def load_config(path: str | Path) -> SynthesisConfig:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    with config_path.open("rb") as handle:
        try:
            raw = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {config_path}: {exc}") from exc
    return config_from_mapping(raw)
