"""Field detection: query the page, extract records, score and cache candidates."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from fieldfill.config import ScanOptions
from fieldfill.errors import FieldfillError, SelectorError
from fieldfill.utils.form_components import CONTROL_SELECTOR, AttributeRecord, extract_attributes
from fieldfill.utils.fuzzy_forms import DEFAULT_FIELD_PATTERNS, FieldClassifier, FieldMatch, FieldPatternRegistry

from .cache import DetectionCache, make_cache_key
from .scoring import Candidate, CandidateScorer

logger = logging.getLogger(__name__)

DEFAULT_SELECTORS: Tuple[str, ...] = (CONTROL_SELECTOR,)


class PageAdapter(Protocol):
    async def query_selector_all(self, selector: str) -> List[Any]:
        ...


@dataclass
class InspectedField:
    """One extracted element with its classifier output, used by page inspection."""

    element: Any
    record: AttributeRecord
    matches: List[FieldMatch] = field(default_factory=list)


class FieldDetector:
    """Ranks page elements for a semantic key, consulting the detection cache first."""

    def __init__(
        self,
        scorer: Optional[CandidateScorer] = None,
        cache: Optional[DetectionCache] = None,
        classifier: Optional[FieldClassifier] = None,
        patterns: FieldPatternRegistry = DEFAULT_FIELD_PATTERNS,
    ) -> None:
        self.patterns = patterns
        self.scorer = scorer or CandidateScorer(patterns)
        self.cache = cache if cache is not None else DetectionCache()
        self.classifier = classifier or FieldClassifier(patterns)

    async def _query(self, page: PageAdapter, selectors: Iterable[str]) -> List[Any]:
        elements: List[Any] = []
        for selector in selectors:
            try:
                elements.extend(await page.query_selector_all(selector))
            except SelectorError as exc:
                logger.warning(f"Skipping selector {exc.selector!r}: {exc}")
        return elements

    async def extract(self, page: PageAdapter, selectors: Sequence[str] = DEFAULT_SELECTORS) -> List[Tuple[Any, AttributeRecord]]:
        """Return ``(element, record)`` pairs for every fillable element matched by ``selectors``."""

        pool: List[Tuple[Any, AttributeRecord]] = []
        for element in await self._query(page, selectors):
            record = await extract_attributes(element)
            if record is not None:
                pool.append((element, record))
        return pool

    async def strict_matches(self, page: PageAdapter, key: str) -> Set[int]:
        """Uids of the elements returned by the exact CSS selectors registered for ``key``."""

        uids: Set[int] = set()
        for element in await self._query(page, self.patterns.resolve(key).selectors):
            try:
                uid = await element.uid()
            except FieldfillError as exc:
                logger.debug(f"Skipping strict selector match that could not be read: {exc}")
                continue
            if uid is not None:
                uids.add(uid)
        return uids

    async def find_fields(
        self,
        page: PageAdapter,
        key: str,
        selectors: Sequence[str] = DEFAULT_SELECTORS,
        options: Optional[ScanOptions] = None,
    ) -> List[Candidate]:
        """Ranked candidates for ``key``; served from the cache while the entry is fresh."""

        options = options or ScanOptions()
        cache_key = make_cache_key(selectors, key, options)
        cached = self.cache.lookup(cache_key)
        if cached is not None:
            logger.debug(f"Detection cache hit for {key!r} ({len(cached)} candidates)")
            return cached

        started = time.perf_counter()
        pool = await self.extract(page, selectors)
        strict_uids = await self.strict_matches(page, key)
        candidates = self.scorer.score_all(pool, key, options, strict_uids=strict_uids)
        self.cache.store(cache_key, candidates)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"Detected {len(candidates)} candidates for {key!r} from {len(pool)} elements in {elapsed_ms:.1f}ms")
        return candidates

    async def scan_page(self, page: PageAdapter, selectors: Sequence[str] = DEFAULT_SELECTORS) -> List[InspectedField]:
        """Extract and classify every fillable element, bypassing the cache."""

        fields_found: List[InspectedField] = []
        for element, record in await self.extract(page, selectors):
            fields_found.append(InspectedField(element=element, record=record, matches=self.classifier.classify(record)))
        return fields_found

    def clear_cache(self) -> None:
        self.cache.clear()
