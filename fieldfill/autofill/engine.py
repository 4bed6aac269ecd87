"""Autofill passes: match stored values to page fields and write them."""
from __future__ import annotations

import json
import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Set, Tuple, Union

from fieldfill.config import ScanOptions
from fieldfill.detector.detector import DEFAULT_SELECTORS, FieldDetector
from fieldfill.detector.scoring import Candidate
from fieldfill.utils.fuzzy_forms import DEFAULT_FIELD_PATTERNS, FieldPattern, FieldPatternRegistry, validate_field_value

from .duplicates import SocialLink
from .executor import AutofillExecutor
from .watcher import MutationWatcher

logger = logging.getLogger(__name__)

SOCIAL_LINKS_KEY = "social_links"


class ValueSource(Protocol):
    async def load(self) -> Mapping[str, Any]:
        ...


class StaticValueSource:
    """Value source backed by an in-memory dictionary."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None) -> None:
        self.values: Dict[str, Any] = dict(values or {})
        self.loads = 0

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "StaticValueSource":
        """Load a JSON object of ``key -> value`` (plus optional ``social_links``)."""

        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a JSON object of values")
        return cls(data)

    async def load(self) -> Mapping[str, Any]:
        self.loads += 1
        return dict(self.values)


@dataclass
class FillReport:
    key: str
    attempted: bool = False
    filled: bool = False
    element_descriptor: Optional[str] = None
    score: float = 0.0
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "attempted": self.attempted,
            "filled": self.filled,
            "elementDescriptor": self.element_descriptor,
            "score": round(self.score, 2),
            "detail": self.detail,
        }


@dataclass
class ScanSummary:
    reports: List[FillReport] = field(default_factory=list)

    @property
    def filled_count(self) -> int:
        return sum(1 for report in self.reports if report.filled)

    @property
    def total_attempted(self) -> int:
        return sum(1 for report in self.reports if report.attempted)

    def report_for(self, key: str) -> Optional[FillReport]:
        return next((report for report in self.reports if report.key == key), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filledCount": self.filled_count,
            "totalAttempted": self.total_attempted,
            "reports": [report.to_dict() for report in self.reports],
        }


def _link_values(raw: Any) -> Dict[str, str]:
    """Flatten stored social links into ``platform -> url`` (platform lower-cased)."""

    if not raw:
        return {}
    if isinstance(raw, Mapping):
        items: Iterable[Tuple[str, Any]] = raw.items()
    else:
        items = ((link.platform, link.url) for link in (SocialLink.coerce(item) for item in raw))
    return {str(platform).strip().lower(): str(url) for platform, url in items if platform and url}


class AutofillEngine:
    """Runs autofill passes against one page."""

    def __init__(
        self,
        page: Any,
        value_source: ValueSource,
        *,
        detector: Optional[FieldDetector] = None,
        executor: Optional[AutofillExecutor] = None,
        patterns: FieldPatternRegistry = DEFAULT_FIELD_PATTERNS,
        options: Optional[ScanOptions] = None,
        selectors: Sequence[str] = DEFAULT_SELECTORS,
    ) -> None:
        self.page = page
        self.value_source = value_source
        self.patterns = patterns
        self.detector = detector or FieldDetector(patterns=patterns)
        self.executor = executor or AutofillExecutor()
        self.options = options or ScanOptions()
        self.selectors = tuple(selectors)
        self.watcher: Optional[MutationWatcher] = None
        self.last_summary: Optional[ScanSummary] = None

    def _plan(self, values: Mapping[str, Any]) -> List[Tuple[str, str, FieldPattern]]:
        """Resolve ``(key, value, pattern)`` triples for every key with something to fill."""

        links = _link_values(values.get(SOCIAL_LINKS_KEY))
        plan: List[Tuple[str, str, FieldPattern]] = []
        seen: Set[str] = set()
        for key, raw in values.items():
            if key == SOCIAL_LINKS_KEY or raw is None or isinstance(raw, (Mapping, list, tuple)):
                continue
            pattern = self.patterns.resolve(key)
            value = str(raw)
            if not value.strip() and pattern.source:
                value = links.get(pattern.source, "")
            if value.strip():
                plan.append((key, value, pattern))
                seen.add(key)
        for pattern in self.patterns:
            if pattern.key in seen or not pattern.source:
                continue
            value = links.get(pattern.source, "")
            if value.strip():
                plan.append((pattern.key, value, pattern))
        return plan

    async def _fill_key(self, key: str, value: str, candidates: List[Candidate], claimed: Set[Tuple[Any, ...]]) -> FillReport:
        report = FillReport(key=key)
        available = [candidate for candidate in candidates if candidate.identity not in claimed]
        if not available:
            report.detail = "no matching field" if not candidates else "matching fields already filled"
            return report

        report.attempted = True
        for candidate in available:
            report.element_descriptor = candidate.descriptor
            report.score = candidate.score
            with self.watcher.suppress() if self.watcher is not None else nullcontext():
                outcome = await self.executor.write(candidate.element, candidate.record, value)
            report.detail = outcome.detail
            if outcome.filled:
                report.filled = True
                claimed.add(candidate.identity)
                return report
        top = available[0]
        report.element_descriptor = top.descriptor
        report.score = top.score
        return report

    async def run_pass(self, *, invalidate: bool = False, options: Optional[ScanOptions] = None) -> ScanSummary:
        """Load the values once, then detect and fill every key."""

        options = options or self.options
        if invalidate:
            self.detector.clear_cache()

        values = await self.value_source.load() or {}
        summary = ScanSummary()
        claimed: Set[Tuple[Any, ...]] = set()

        for key, value, pattern in self._plan(values):
            if not validate_field_value(pattern, value):
                logger.warning(f"Skipping {key!r}: value does not look like a valid {pattern.label or key}")
                summary.reports.append(FillReport(key=key, detail="invalid value"))
                continue
            candidates = await self.detector.find_fields(self.page, key, self.selectors, options)
            summary.reports.append(await self._fill_key(key, value, candidates, claimed))

        self.last_summary = summary
        logger.info(f"Autofill pass complete: {summary.filled_count}/{summary.total_attempted} filled")
        return summary

    async def watch(self) -> MutationWatcher:
        """Start re-running passes whenever the page changes."""

        if self.watcher is None:
            self.watcher = MutationWatcher(lambda: self.run_pass(invalidate=True), self.options.debounce_ms)
        await self.watcher.start(self.page)
        return self.watcher

    async def stop(self) -> None:
        if self.watcher is not None:
            await self.watcher.stop()
