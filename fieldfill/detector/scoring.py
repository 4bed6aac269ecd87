"""Multi-signal relevance scoring of page elements against a semantic key.

A candidate's score is the sum of independent, non-negative signal
contributions minus penalties, clipped at zero. Signals fall in two groups:

* relevance signals (strict selector, exact, partial, attribute, placeholder,
  class-name, native type and form/label context), which say the element
  *is about* the key;
* amplifiers (visibility, emptiness), which only count once at least one
  relevance signal fired, so an element with no identifying text never
  outranks a real match just because it is visible and empty.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import AbstractSet, Any, Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple

from fieldfill.config import ScanOptions
from fieldfill.utils.form_components import AttributeRecord, Visibility
from fieldfill.utils.fuzzy_forms import DEFAULT_FIELD_PATTERNS, FieldPattern, FieldPatternRegistry, identifier_form
from fieldfill.utils.similarity import similarity

logger = logging.getLogger(__name__)

# Native input types implied by key names when a key has no registered pattern.
_TYPE_HINTS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("email", ("email",)),
    ("phone", ("tel",)),
    ("tel", ("tel",)),
    ("url", ("url",)),
    ("website", ("url",)),
    ("password", ("password",)),
)

_MIN_PREFIX_LENGTH = 4
_MIN_REVERSE_LENGTH = 3  # shortest attribute text that may match as a fragment of a term

RELEVANCE_SIGNALS = (
    "strict_selector",
    "exact_match",
    "partial_match",
    "attribute_match",
    "placeholder_match",
    "class_name_match",
    "type_match",
    "form_context",
    "label_context",
)


@dataclass(frozen=True)
class ScoringWeights:
    """Weights for every scoring signal and penalty."""

    strict_selector: float = 40.0
    exact_match: float = 100.0
    partial_match: float = 50.0
    attribute_match: float = 30.0
    placeholder_match: float = 25.0
    class_name_match: float = 20.0
    visibility: float = 15.0
    empty_field: float = 10.0
    type_match: float = 5.0
    form_context: float = 5.0
    label_context: float = 5.0
    hidden_penalty: float = 50.0
    disabled_penalty: float = 30.0
    readonly_penalty: float = 20.0
    anonymous_penalty: float = 10.0
    password_penalty: float = 100.0

    @classmethod
    def from_mapping(cls, overrides: Mapping[str, Any]) -> "ScoringWeights":
        names = {item.name for item in fields(cls)}
        unknown = set(overrides) - names
        if unknown:
            raise ValueError(f"Unknown scoring weights: {', '.join(sorted(unknown))}")
        return cls(**{key: float(value) for key, value in overrides.items()})


@dataclass
class Candidate:
    """A scored pairing of one page element with one semantic key."""

    element: Any
    key: str
    score: float
    record: AttributeRecord
    signals: Dict[str, float] = field(default_factory=dict)

    @property
    def metadata(self) -> AttributeRecord:
        return self.record

    @property
    def identity(self) -> Tuple[Hashable, ...]:
        return self.record.identity

    @property
    def descriptor(self) -> str:
        return self.record.describe()


def _tokens(text: str) -> Tuple[str, ...]:
    form = identifier_form(text)
    return tuple(form.split("_")) if form else ()


def _token_matches(token: str, wanted: str) -> bool:
    # "phonenumber" still carries "phone"; short terms such as "tel" must stand alone.
    return token == wanted or (len(wanted) >= _MIN_PREFIX_LENGTH and token.startswith(wanted))


def _has_run(haystack: Sequence[str], needle: Sequence[str]) -> bool:
    """True when ``needle`` appears as consecutive tokens of ``haystack``."""

    if not needle or len(needle) > len(haystack):
        return False
    for start in range(len(haystack) - len(needle) + 1):
        if all(_token_matches(haystack[start + offset], wanted) for offset, wanted in enumerate(needle)):
            return True
    return False


def _contains_any(text: str, terms: Sequence[str]) -> bool:
    """Token-boundary match: ``hotel_name`` does not contain ``tel``."""

    if not text:
        return False
    tokens = _tokens(text)
    return any(_has_run(tokens, _tokens(term)) for term in terms)


class CandidateScorer:
    """Scores :class:`AttributeRecord` snapshots against semantic keys."""

    def __init__(
        self,
        patterns: FieldPatternRegistry = DEFAULT_FIELD_PATTERNS,
        weights: Optional[ScoringWeights] = None,
    ) -> None:
        self.patterns = patterns
        self.weights = weights or ScoringWeights()

    # ------------------------------------------------------------------
    # Individual signals
    # ------------------------------------------------------------------

    def _exact(self, record: AttributeRecord, terms: Sequence[str]) -> float:
        wanted = {identifier_form(term) for term in terms}
        for text in (record.name, record.element_id, record.data_hint("name"), record.data_hint("field")):
            if text and (text.lower() in terms or identifier_form(text) in wanted):
                return self.weights.exact_match
        return 0.0

    def _partial(self, record: AttributeRecord, terms: Sequence[str]) -> float:
        best = 0.0
        texts = (
            record.name,
            record.element_id,
            record.placeholder,
            record.class_name,
            record.data_hint("name"),
            record.data_hint("field"),
        )
        for raw in texts:
            text_tokens = _tokens(raw)
            if not text_tokens:
                continue
            text_form = "_".join(text_tokens)
            for term in terms:
                term_tokens = _tokens(term)
                forward = _has_run(text_tokens, term_tokens)
                reverse = len(text_form) >= _MIN_REVERSE_LENGTH and _has_run(term_tokens, text_tokens)
                if forward or reverse:
                    best = max(best, self.weights.partial_match * similarity(text_form, "_".join(term_tokens)))
        return best

    def _attribute(self, record: AttributeRecord, terms: Sequence[str]) -> float:
        hits = sum(1 for text in (record.name, record.element_id, record.placeholder) if _contains_any(text, terms))
        return hits * self.weights.attribute_match

    def _placeholder(self, record: AttributeRecord, terms: Sequence[str]) -> float:
        return self.weights.placeholder_match if _contains_any(record.placeholder, terms) else 0.0

    def _class_name(self, record: AttributeRecord, terms: Sequence[str]) -> float:
        return self.weights.class_name_match if _contains_any(record.class_name, terms) else 0.0

    def _type(self, record: AttributeRecord, pattern: FieldPattern) -> float:
        if record.tag != "input" or not record.type:
            return 0.0
        accepted: Tuple[str, ...] = pattern.input_types
        if not accepted:
            key = pattern.key.lower()
            accepted = tuple(kind for hint, types in _TYPE_HINTS if hint in key for kind in types)
        return self.weights.type_match if record.type in accepted else 0.0

    def _form_context(self, record: AttributeRecord, terms: Sequence[str]) -> float:
        if record.form_context is None:
            return 0.0
        return self.weights.form_context if _contains_any(record.form_context.text, terms) else 0.0

    def _label_context(self, record: AttributeRecord, terms: Sequence[str]) -> float:
        label = " ".join(filter(None, [record.label_text, record.aria_label]))
        return self.weights.label_context if _contains_any(label, terms) else 0.0

    def _visibility(self, record: AttributeRecord) -> float:
        if record.visibility is Visibility.VISIBLE:
            return self.weights.visibility
        if record.visibility is Visibility.OFFSCREEN:
            return self.weights.visibility / 2
        return 0.0

    def _penalties(self, record: AttributeRecord, pattern: FieldPattern, options: ScanOptions) -> Dict[str, float]:
        penalties: Dict[str, float] = {}
        if record.is_password and not pattern.is_password:
            penalties["password_penalty"] = self.weights.password_penalty
        if record.disabled:
            penalties["disabled_penalty"] = self.weights.disabled_penalty
        if record.read_only:
            penalties["readonly_penalty"] = self.weights.readonly_penalty
        if not record.has_identifier:
            penalties["anonymous_penalty"] = self.weights.anonymous_penalty
        if record.is_hidden_type and not options.include_hidden:
            penalties["hidden_penalty"] = self.weights.hidden_penalty
        return penalties

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def breakdown(
        self,
        record: AttributeRecord,
        key: str,
        options: Optional[ScanOptions] = None,
        *,
        strict_match: bool = False,
    ) -> Dict[str, float]:
        """Return every signal contribution for ``record``; penalties are negative.

        ``strict_match`` says the element was also returned by one of the key's
        exact CSS selectors. The ``total`` entry holds the clipped final score.
        """

        options = options or ScanOptions()
        pattern = self.patterns.resolve(key)
        terms = pattern.terms

        signals: Dict[str, float] = {
            "strict_selector": self.weights.strict_selector if strict_match else 0.0,
            "exact_match": self._exact(record, terms),
            "partial_match": self._partial(record, terms),
            "attribute_match": self._attribute(record, terms),
            "placeholder_match": self._placeholder(record, terms),
            "class_name_match": self._class_name(record, terms),
            "type_match": self._type(record, pattern),
            "form_context": self._form_context(record, terms),
            "label_context": self._label_context(record, terms),
        }
        signals = {name: max(0.0, value) for name, value in signals.items()}
        relevance = sum(signals.values())
        if relevance <= 0:
            signals["total"] = 0.0
            return signals

        signals["visibility"] = max(0.0, self._visibility(record))
        if options.prioritize_empty and record.is_empty:
            signals["empty_field"] = max(0.0, self.weights.empty_field)

        positive = sum(signals.values())
        penalties = self._penalties(record, pattern, options)
        for name, value in penalties.items():
            signals[name] = -value
        signals["total"] = max(0.0, positive - sum(penalties.values()))
        return signals

    def score(
        self,
        record: AttributeRecord,
        key: str,
        options: Optional[ScanOptions] = None,
        *,
        strict_match: bool = False,
    ) -> float:
        return self.breakdown(record, key, options, strict_match=strict_match)["total"]

    def score_all(
        self,
        pool: Iterable[Tuple[Any, AttributeRecord]],
        key: str,
        options: Optional[ScanOptions] = None,
        *,
        strict_uids: Optional[AbstractSet[int]] = None,
    ) -> List[Candidate]:
        """Score every ``(element, record)`` pair and return the ranked candidate list.

        ``strict_uids`` holds the uids of elements matched by the key's exact selectors.
        """

        options = options or ScanOptions()
        strict_uids = strict_uids or frozenset()
        candidates: List[Candidate] = []
        for element, record in pool:
            strict_match = record.uid is not None and record.uid in strict_uids
            signals = self.breakdown(record, key, options, strict_match=strict_match)
            total = signals.pop("total")
            candidates.append(Candidate(element=element, key=key, score=total, record=record, signals=signals))
        ranked = rank_candidates(candidates, options)
        logger.debug(f"Scored {len(candidates)} elements for {key!r}, {len(ranked)} kept")
        return ranked


def _sort_key(candidate: Candidate, prioritize_empty: bool) -> Tuple[float, int, int]:
    empty_rank = 0 if (prioritize_empty and candidate.record.is_empty) else 1
    visible_rank = 0 if candidate.record.visibility is Visibility.VISIBLE else 1
    return (-candidate.score, empty_rank, visible_rank)


def rank_candidates(candidates: Iterable[Candidate], options: Optional[ScanOptions] = None) -> List[Candidate]:
    """De-duplicate by identity, sort by the tie-break order, apply ``min_score`` and ``max_results``.

    Sorting is stable, so fully tied candidates keep document order.
    """

    options = options or ScanOptions()
    best: Dict[Tuple[Hashable, ...], Candidate] = {}
    for candidate in candidates:
        existing = best.get(candidate.identity)
        if existing is None or candidate.score > existing.score:
            best[candidate.identity] = candidate

    ranked = sorted(best.values(), key=lambda item: _sort_key(item, options.prioritize_empty))
    ranked = [candidate for candidate in ranked if candidate.score >= options.min_score]
    if options.max_results >= 0:
        ranked = ranked[: options.max_results]
    return ranked
