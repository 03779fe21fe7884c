# ABOUTME: Immutable engine configuration threaded through every component call.
# ABOUTME: Loads optional YAML overrides and validates thresholds up front.

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

DEFAULT_AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".mp3", ".flac", ".wav", ".m4a", ".aac", ".ogg", ".opus",
        ".aiff", ".aif", ".alac", ".wma", ".ape", ".wv",
    }
)

# Files that may be left behind in a directory whose audio has already moved.
DEFAULT_SIDECAR_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".m3u", ".m3u8", ".pls",
        ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp",
        ".sfv", ".md5",
    }
)

DEFAULT_SIDECAR_NAMES: frozenset[str] = frozenset({"thumbs.db", "desktop.ini"})

_MIB = 1024 * 1024

# Strict mode never groups below this, whatever grouping_threshold says.
STRICT_GROUPING_THRESHOLD = 0.8

_PATH_FIELDS = {"archive_root", "destination_root", "trash_root"}
_EXTENSION_FIELDS = {"audio_extensions", "sidecar_extensions", "sidecar_names"}


class ConfigError(Exception):
    """Raised when a configuration file or override is invalid."""


@dataclass(frozen=True)
class EngineConfig:
    """Every tunable the engine reads. Never mutated; derive copies with `override`."""

    dry_run: bool = True
    strict_mode: bool = False
    confidence_floor: float = 0.4
    grouping_threshold: float = 0.6
    year_skew: int = 1
    duration_tolerance: float = 0.25
    negligible_bytes: int = 5 * _MIB
    workers: int = 4
    discogs_enabled: bool = False
    discogs_token: str | None = None
    discogs_timeout: float = 10.0
    discogs_min_confidence: float = 0.6
    discogs_cache_ttl: float = 24 * 3600.0
    progress_interval: float = 0.5
    archive_root: Path | None = None
    destination_root: Path | None = None
    trash_root: Path | None = None
    audio_extensions: frozenset[str] = field(default=DEFAULT_AUDIO_EXTENSIONS)
    sidecar_extensions: frozenset[str] = field(default=DEFAULT_SIDECAR_EXTENSIONS)
    sidecar_names: frozenset[str] = field(default=DEFAULT_SIDECAR_NAMES)

    def __post_init__(self) -> None:
        for name in (
            "confidence_floor",
            "grouping_threshold",
            "discogs_min_confidence",
            "duration_tolerance",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"{name} must be between 0.0 and 1.0, got {value}")
        if self.year_skew < 0:
            raise ConfigError(f"year_skew must be >= 0, got {self.year_skew}")
        if self.workers < 1:
            raise ConfigError(f"workers must be >= 1, got {self.workers}")
        if self.negligible_bytes < 0:
            raise ConfigError(f"negligible_bytes must be >= 0, got {self.negligible_bytes}")
        if self.discogs_timeout <= 0:
            raise ConfigError(f"discogs_timeout must be > 0, got {self.discogs_timeout}")

    @property
    def effective_grouping_threshold(self) -> float:
        """Grouping threshold after strict mode is applied."""
        if self.strict_mode:
            return max(self.grouping_threshold, STRICT_GROUPING_THRESHOLD)
        return self.grouping_threshold

    def override(self, **changes: Any) -> "EngineConfig":
        """Return a copy with the given fields replaced. None values are ignored."""
        applied = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **_coerce(applied))


def _coerce(raw: dict[str, Any]) -> dict[str, Any]:
    """Convert YAML/CLI primitives to the field types EngineConfig expects."""
    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration key(s): {', '.join(unknown)}")

    coerced: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _PATH_FIELDS and value is not None:
            coerced[key] = Path(value).expanduser()
        elif key in _EXTENSION_FIELDS:
            coerced[key] = frozenset(_normalize_extension(key, v) for v in value)
        else:
            coerced[key] = value
    return coerced


def _normalize_extension(key: str, value: str) -> str:
    value = str(value).lower()
    if key == "sidecar_names" or value.startswith("."):
        return value
    return f".{value}"


def load_config(path: Path, base: EngineConfig | None = None) -> EngineConfig:
    """Load an EngineConfig from a YAML mapping, layered over `base`.

    Raises:
        ConfigError: If the file is unreadable, not a mapping, or has bad values.
    """
    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Could not read config {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config {path} must contain a mapping, got {type(raw).__name__}")

    try:
        return replace(base or EngineConfig(), **_coerce(raw))
    except TypeError as exc:
        raise ConfigError(f"Invalid config {path}: {exc}") from exc


DEFAULT_CONFIG = EngineConfig()
