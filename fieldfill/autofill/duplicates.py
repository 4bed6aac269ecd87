"""Duplicate prevention for stored values and social-link records.

The guard is a pure check consulted before a value is saved. It never mutates
the dictionaries it is given. Checks run in order and stop at the first hit:

1. the key (or platform) already holds a value;
2. the normalized value is already stored under another key;
3. the value is similar (above the threshold) to an existing value of the
   same kind, URLs being compared only with URLs and text only with text.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from fieldfill.config import DUPLICATE_MODES
from fieldfill.errors import DuplicateValueError
from fieldfill.utils.similarity import looks_like_url, normalize_any, normalize_url, normalize_value, similarity

logger = logging.getLogger(__name__)

REASON_EXACT = "exact"
REASON_SIMILAR = "similar"


@dataclass(frozen=True)
class DuplicateVerdict:
    is_duplicate: bool
    matched_existing_value: Optional[str] = None
    reason: Optional[str] = None
    similarity: float = 0.0
    matched_key: Optional[str] = None
    message: str = ""
    mode: str = "strict"

    @property
    def allows_write(self) -> bool:
        """Strict mode rejects any duplicate; warn mode only reports it."""
        return not self.is_duplicate or self.mode == "warn"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isDuplicate": self.is_duplicate,
            "matchedExistingValue": self.matched_existing_value,
            "reason": self.reason,
            "similarity": round(self.similarity, 4),
            "matchedKey": self.matched_key,
            "message": self.message,
            "mode": self.mode,
            "allowsWrite": self.allows_write,
        }


@dataclass(frozen=True)
class SocialLink:
    """A stored social profile link."""

    platform: str
    url: str
    id: Optional[str] = None

    @classmethod
    def coerce(cls, value: Union["SocialLink", Mapping[str, Any]]) -> "SocialLink":
        if isinstance(value, SocialLink):
            return value
        link_id = value.get("id")
        return cls(
            platform=str(value.get("platform") or ""),
            url=str(value.get("url") or ""),
            id=None if link_id is None else str(link_id),
        )


LinkLike = Union[SocialLink, Mapping[str, Any]]


@dataclass(frozen=True)
class ImportFinding:
    key: str
    value: str
    verdict: DuplicateVerdict
    is_link: bool = False

    def describe(self) -> str:
        prefix = f"Social link {self.key}" if self.is_link else self.key
        if self.verdict.reason == REASON_SIMILAR and not self.is_link:
            return f'{prefix}: "{self.value}" (similar to "{self.verdict.matched_existing_value}")'
        return f'{prefix}: "{self.value}"'


@dataclass
class ImportReview:
    """Outcome of reviewing a batch import against the stored data."""

    duplicates: List[ImportFinding] = field(default_factory=list)
    warnings: List[ImportFinding] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.duplicates and not self.warnings


class DuplicateGuard:
    """Exact and near-duplicate checks backed by the shared similarity engine."""

    def __init__(
        self,
        mode: str = "strict",
        similarity_threshold: float = 0.8,
        *,
        case_sensitive: bool = False,
        trim_whitespace: bool = True,
        normalize_urls: bool = True,
    ) -> None:
        if mode not in DUPLICATE_MODES:
            raise ValueError(f"Unsupported duplicate mode: {mode!r}")
        if not 0.0 <= similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be between 0 and 1")
        self.mode = mode
        self.similarity_threshold = similarity_threshold
        self.case_sensitive = case_sensitive
        self.trim_whitespace = trim_whitespace
        self.normalize_urls = normalize_urls

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalize(self, value: Any) -> str:
        return normalize_value(value, case_sensitive=self.case_sensitive, trim=self.trim_whitespace)

    def normalize_link(self, value: Any) -> str:
        if not self.normalize_urls:
            return self.normalize(value)
        return normalize_url(value, case_sensitive=self.case_sensitive, trim=self.trim_whitespace)

    def _is_url(self, value: Any) -> bool:
        return looks_like_url(str(value or ""))

    def _canonical(self, value: Any) -> str:
        if not self.normalize_urls:
            return self.normalize(value)
        return normalize_any(value, case_sensitive=self.case_sensitive, trim=self.trim_whitespace)

    # ------------------------------------------------------------------
    # Verdict helpers
    # ------------------------------------------------------------------

    def _clear(self) -> DuplicateVerdict:
        return DuplicateVerdict(is_duplicate=False, mode=self.mode)

    def _hit(self, *, existing: str, reason: str, score: float, key: Optional[str], message: str) -> DuplicateVerdict:
        verdict = DuplicateVerdict(
            is_duplicate=True,
            matched_existing_value=existing,
            reason=reason,
            similarity=score,
            matched_key=key,
            message=message,
            mode=self.mode,
        )
        if self.mode == "warn":
            logger.warning(f"Duplicate warning: {message}")
        else:
            logger.info(f"Duplicate rejected: {message}")
        return verdict

    def _most_similar(self, candidate: str, others: Iterable[tuple]) -> Optional[tuple]:
        best: Optional[tuple] = None
        for other_key, other_value, other_canonical in others:
            score = similarity(candidate, other_canonical)
            if score > self.similarity_threshold and (best is None or score > best[2]):
                best = (other_key, other_value, score)
        return best

    # ------------------------------------------------------------------
    # Value dictionary checks
    # ------------------------------------------------------------------

    def check(self, key: str, value: Any, existing: Optional[Mapping[str, Any]]) -> DuplicateVerdict:
        """Check a ``(key, value)`` pair against a value dictionary."""

        existing = existing or {}
        text = "" if value is None else str(value)
        if not self.normalize(text):
            return self._clear()

        present = existing.get(key)
        if present is not None and self.normalize(present):
            return self._hit(
                existing=str(present),
                reason=REASON_EXACT,
                score=1.0,
                key=key,
                message=f'"{key}" already exists with value "{present}"',
            )

        canonical = self._canonical(text)
        is_url = self._is_url(text)
        same_kind = []
        for other_key, other_value in existing.items():
            if other_key == key or other_value is None or not self.normalize(other_value):
                continue
            other_canonical = self._canonical(other_value)
            if other_canonical == canonical:
                return self._hit(
                    existing=str(other_value),
                    reason=REASON_EXACT,
                    score=1.0,
                    key=other_key,
                    message=f'Value "{text}" already exists for "{other_key}"',
                )
            if self._is_url(other_value) == is_url:
                same_kind.append((other_key, str(other_value), other_canonical))

        best = self._most_similar(canonical, same_kind)
        if best is not None:
            other_key, other_value, score = best
            return self._hit(
                existing=other_value,
                reason=REASON_SIMILAR,
                score=score,
                key=other_key,
                message=f'Similar value already exists: "{other_value}" for "{other_key}"',
            )
        return self._clear()

    # ------------------------------------------------------------------
    # Social link checks
    # ------------------------------------------------------------------

    def check_link(self, platform: str, url: str, links: Iterable[LinkLike]) -> DuplicateVerdict:
        """Check a new social link against the stored link records."""

        records = [SocialLink.coerce(link) for link in links]
        platform_key = self.normalize(platform)
        canonical = self.normalize_link(url)

        for link in records:
            if platform_key and self.normalize(link.platform) == platform_key:
                return self._hit(
                    existing=link.url,
                    reason=REASON_EXACT,
                    score=1.0,
                    key=link.platform,
                    message=f'Platform "{platform}" already exists with URL "{link.url}"',
                )

        if not canonical:
            return self._clear()

        for link in records:
            if link.url and self.normalize_link(link.url) == canonical:
                return self._hit(
                    existing=link.url,
                    reason=REASON_EXACT,
                    score=1.0,
                    key=link.platform,
                    message=f'URL "{url}" already exists for platform "{link.platform}"',
                )

        best = self._most_similar(
            canonical,
            ((link.platform, link.url, self.normalize_link(link.url)) for link in records if link.url),
        )
        if best is not None:
            other_platform, other_url, score = best
            return self._hit(
                existing=other_url,
                reason=REASON_SIMILAR,
                score=score,
                key=other_platform,
                message=f'Similar URL already exists: "{other_url}" for platform "{other_platform}"',
            )
        return self._clear()

    def check_link_update(self, link_id: str, updates: Mapping[str, Any], links: Iterable[LinkLike]) -> DuplicateVerdict:
        """Re-check an edited link record against every other record.

        Only the updated fields are checked. An unknown ``link_id`` is not a duplicate.
        """

        records = [SocialLink.coerce(link) for link in links]
        current = next((link for link in records if link.id == str(link_id)), None)
        if current is None:
            return self._clear()

        updated = replace(
            current,
            platform=str(updates.get("platform") or current.platform),
            url=str(updates.get("url") or current.url),
        )
        others = [link for link in records if link.id != str(link_id)]

        if updates.get("platform"):
            platform_key = self.normalize(updated.platform)
            for link in others:
                if self.normalize(link.platform) == platform_key:
                    return self._hit(
                        existing=link.url,
                        reason=REASON_EXACT,
                        score=1.0,
                        key=link.platform,
                        message=f'Platform "{updated.platform}" already exists',
                    )

        if updates.get("url"):
            canonical = self.normalize_link(updated.url)
            for link in others:
                if link.url and self.normalize_link(link.url) == canonical:
                    return self._hit(
                        existing=link.url,
                        reason=REASON_EXACT,
                        score=1.0,
                        key=link.platform,
                        message=f'URL "{updated.url}" already exists for platform "{link.platform}"',
                    )
        return self._clear()

    # ------------------------------------------------------------------
    # Batch import
    # ------------------------------------------------------------------

    def review_import(
        self,
        values: Optional[Mapping[str, Any]] = None,
        links: Optional[Mapping[str, str]] = None,
        *,
        existing_values: Optional[Mapping[str, Any]] = None,
        existing_links: Sequence[LinkLike] = (),
    ) -> ImportReview:
        """Review an import batch field by field.

        An imported value equal to the stored value of the same field is a
        duplicate; a similar one is a warning. Imported links go through
        :meth:`check_link`.
        """

        review = ImportReview()
        existing_values = existing_values or {}

        for key, value in (values or {}).items():
            text = "" if value is None else str(value)
            if not text.strip():
                continue
            stored = existing_values.get(key)
            if stored is None or not self.normalize(stored):
                continue
            canonical = self._canonical(text)
            stored_canonical = self._canonical(stored)
            if canonical == stored_canonical:
                verdict = DuplicateVerdict(
                    is_duplicate=True,
                    matched_existing_value=str(stored),
                    reason=REASON_EXACT,
                    similarity=1.0,
                    matched_key=key,
                    message=f'"{key}" already holds "{stored}"',
                    mode=self.mode,
                )
                review.duplicates.append(ImportFinding(key=key, value=text, verdict=verdict))
                continue
            score = similarity(canonical, stored_canonical)
            if score > self.similarity_threshold:
                verdict = DuplicateVerdict(
                    is_duplicate=True,
                    matched_existing_value=str(stored),
                    reason=REASON_SIMILAR,
                    similarity=score,
                    matched_key=key,
                    message=f'"{key}" is similar to the stored "{stored}"',
                    mode=self.mode,
                )
                review.warnings.append(ImportFinding(key=key, value=text, verdict=verdict))

        for platform, url in (links or {}).items():
            verdict = self.check_link(platform, url, existing_links)
            if verdict.is_duplicate:
                review.duplicates.append(ImportFinding(key=platform, value=str(url), verdict=verdict, is_link=True))

        if review.duplicates:
            logger.warning(f"Duplicates found in import: {[finding.describe() for finding in review.duplicates]}")
        if review.warnings:
            logger.info(f"Similar values found in import: {[finding.describe() for finding in review.warnings]}")
        return review

    def enforce(self, verdict: DuplicateVerdict) -> DuplicateVerdict:
        """Raise :class:`DuplicateValueError` when ``verdict`` forbids the write."""

        if not verdict.allows_write:
            raise DuplicateValueError(verdict)
        return verdict
