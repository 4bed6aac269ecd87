"""Configuration helpers for scans, caching and duplicate checks."""
from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from functools import lru_cache
from typing import Any, Dict

DUPLICATE_MODES = ("strict", "warn")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


@dataclass
class Settings:
    """Container for environment-driven settings.

    Values are read when the instance is created, so tests can tweak the
    environment and build a fresh ``Settings()``.
    """

    max_results: int = 10
    min_score: float = 5.0
    include_hidden: bool = False
    prioritize_empty: bool = True
    similarity_threshold: float = 0.8
    cache_ttl_ms: int = 30_000
    cache_max_entries: int = 100
    debounce_ms: int = 500
    duplicate_mode: str = "strict"
    log_level: str = "INFO"
    browser_type: str = "chromium"
    headless: bool = True

    def __post_init__(self) -> None:
        self.max_results = _env_int("FIELDFILL_MAX_RESULTS", self.max_results)
        self.min_score = _env_float("FIELDFILL_MIN_SCORE", self.min_score)
        self.include_hidden = _env_flag("FIELDFILL_INCLUDE_HIDDEN", self.include_hidden)
        self.prioritize_empty = _env_flag("FIELDFILL_PRIORITIZE_EMPTY", self.prioritize_empty)
        self.similarity_threshold = _env_float("FIELDFILL_SIMILARITY_THRESHOLD", self.similarity_threshold)
        self.cache_ttl_ms = _env_int("FIELDFILL_CACHE_TTL_MS", self.cache_ttl_ms)
        self.cache_max_entries = _env_int("FIELDFILL_CACHE_MAX_ENTRIES", self.cache_max_entries)
        self.debounce_ms = _env_int("FIELDFILL_DEBOUNCE_MS", self.debounce_ms)
        self.duplicate_mode = os.getenv("FIELDFILL_DUPLICATE_MODE", self.duplicate_mode).strip().lower()
        self.log_level = os.getenv("FIELDFILL_LOG_LEVEL", self.log_level).strip().upper()
        self.browser_type = os.getenv("FIELDFILL_BROWSER", self.browser_type).strip().lower()
        self.headless = _env_flag("FIELDFILL_HEADLESS", self.headless)
        if self.duplicate_mode not in DUPLICATE_MODES:
            raise ValueError(f"Unsupported duplicate mode: {self.duplicate_mode!r}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


@dataclass(frozen=True)
class ScanOptions:
    """Per-scan configuration. Every field has a documented default and can be overridden per call."""

    max_results: int = 10
    min_score: float = 5.0
    include_hidden: bool = False
    prioritize_empty: bool = True
    similarity_threshold: float = 0.8
    cache_ttl_ms: int = 30_000
    cache_max_entries: int = 100
    debounce_ms: int = 500

    # Options that change which candidates a scan produces; the rest only tune
    # caching and scheduling and must not fragment the detection cache.
    SCORING_FIELDS = ("max_results", "min_score", "include_hidden", "prioritize_empty")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ScanOptions":
        settings = settings or get_settings()
        names = {item.name for item in fields(cls)}
        return cls(**{name: getattr(settings, name) for name in names})

    def with_overrides(self, **overrides: Any) -> "ScanOptions":
        """Return a copy with the non-``None`` overrides applied."""

        applied = {key: value for key, value in overrides.items() if value is not None}
        unknown = set(applied) - {item.name for item in fields(self)}
        if unknown:
            raise TypeError(f"Unknown scan options: {', '.join(sorted(unknown))}")
        return replace(self, **applied)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def cache_token(self) -> str:
        """Stable serialization of the scoring-relevant options, used in cache keys."""

        return json.dumps({name: getattr(self, name) for name in self.SCORING_FIELDS}, sort_keys=True)
