"""Semantic field pattern tables and the fast field classifier.

Every semantic key (``email``, ``phone``, ``facebook``...) is described by an
immutable :class:`FieldPattern`: the keywords the scorer looks for, identifier
regexes for the classifier, strict CSS selectors that usually locate the
field, the native ``<input type>`` values that fit it and its category.

The classifier works in tiers, checked in priority order for each key:

1. Identifier regexes against ``name``/``id`` (confidence 1.0).
2. The same regexes against the resolved label text (0.7).
3. The same regexes against the placeholder (0.6).
4. RapidFuzz token-set similarity of label/placeholder/aria text against the
   key's synonyms, scaled into ``0..0.5``.

The first tier that hits decides the key's confidence. Classification is a
pre-filter for page inspection; :mod:`fieldfill.detector.scoring` is the
authoritative ranker.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from rapidfuzz import fuzz

if TYPE_CHECKING:  # pragma: no cover
    from .form_components import AttributeRecord

CATEGORY_PERSONAL = "personal"
CATEGORY_ADDRESS = "address"
CATEGORY_CONTACT = "contact"
CATEGORY_BUSINESS = "business"
CATEGORY_SOCIAL = "social"
CATEGORY_PASSWORD = "password"

TIER_IDENTIFIER = "identifier"
TIER_LABEL = "label"
TIER_PLACEHOLDER = "placeholder"
TIER_FUZZY = "fuzzy"

TIER_CONFIDENCE: Mapping[str, float] = MappingProxyType(
    {
        TIER_IDENTIFIER: 1.0,
        TIER_LABEL: 0.7,
        TIER_PLACEHOLDER: 0.6,
        TIER_FUZZY: 0.5,
    }
)

VALIDATION_RULES: Mapping[str, "re.Pattern[str]"] = MappingProxyType(
    {
        "email": re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
        "tel": re.compile(r"^\+?[\d\s\-()]{10,}$"),
        "url": re.compile(r"^(https?://)?([\da-z.-]+)\.([a-z.]{2,6})([/\w .\-?=&%#@:+~]*)/?$", re.IGNORECASE),
    }
)


@dataclass(frozen=True)
class FieldPattern:
    """Pattern table entry for one semantic key."""

    key: str
    keywords: Tuple[str, ...] = ()
    identifiers: Tuple[str, ...] = ()
    selectors: Tuple[str, ...] = ()
    input_types: Tuple[str, ...] = ()
    category: str = CATEGORY_PERSONAL
    source: Optional[str] = None
    label: str = ""

    @property
    def terms(self) -> Tuple[str, ...]:
        """The key itself followed by its keywords, lower-cased and de-duplicated."""

        seen: List[str] = []
        for term in (self.key, *self.keywords):
            lowered = term.lower()
            if lowered and lowered not in seen:
                seen.append(lowered)
        return tuple(seen)

    @property
    def is_password(self) -> bool:
        return self.category == CATEGORY_PASSWORD or "password" in self.input_types

    def compiled_identifiers(self) -> Tuple["re.Pattern[str]", ...]:
        return _compile(self.identifiers)


_COMPILE_CACHE: Dict[Tuple[str, ...], Tuple["re.Pattern[str]", ...]] = {}


def _compile(patterns: Tuple[str, ...]) -> Tuple["re.Pattern[str]", ...]:
    compiled = _COMPILE_CACHE.get(patterns)
    if compiled is None:
        compiled = tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns)
        _COMPILE_CACHE[patterns] = compiled
    return compiled


def _token(*alternatives: str) -> str:
    """Build an identifier regex that matches whole ``_``-delimited tokens."""

    return r"(?:^|_)(?:" + "|".join(alternatives) + r")(?:$|_)"


class FieldPatternRegistry:
    """Immutable, ordered collection of :class:`FieldPattern` entries.

    Registration order is the classifier's priority order.
    """

    def __init__(self, patterns: Iterable[FieldPattern]) -> None:
        table: Dict[str, FieldPattern] = {}
        for pattern in patterns:
            table[pattern.key] = pattern
        self._patterns: Mapping[str, FieldPattern] = MappingProxyType(table)

    def __getitem__(self, key: str) -> FieldPattern:
        return self._patterns[key]

    def __contains__(self, key: object) -> bool:
        return key in self._patterns

    def __iter__(self) -> Iterator[FieldPattern]:
        return iter(self._patterns.values())

    def __len__(self) -> int:
        return len(self._patterns)

    def get(self, key: str) -> Optional[FieldPattern]:
        return self._patterns.get(key)

    def resolve(self, key: str) -> FieldPattern:
        """Return the registered pattern, or a bare keyword-only pattern for unknown keys."""

        pattern = self._patterns.get(key)
        if pattern is not None:
            return pattern
        return FieldPattern(key=key, keywords=(key.replace("_", " "),), identifiers=(_token(re.escape(key)),))

    def keys(self) -> Tuple[str, ...]:
        return tuple(self._patterns)

    def with_patterns(self, *patterns: FieldPattern) -> "FieldPatternRegistry":
        """Return a new registry with ``patterns`` added or replacing existing keys."""

        return FieldPatternRegistry([*self._patterns.values(), *patterns])

    def by_category(self, category: str) -> Tuple[FieldPattern, ...]:
        return tuple(pattern for pattern in self if pattern.category == category)


DEFAULT_FIELD_PATTERNS = FieldPatternRegistry(
    [
        # ----------------------------
        # Contact
        # ----------------------------
        FieldPattern(
            key="email",
            label="Email Address",
            keywords=("email", "e-mail", "mail"),
            identifiers=(_token("email", "e_?mail", "email_?address", "mail"),),
            selectors=('input[type="email"]', 'input[name*="email"]', 'input[placeholder*="email"]'),
            input_types=("email",),
            category=CATEGORY_CONTACT,
        ),
        FieldPattern(
            key="phone",
            label="Phone Number",
            keywords=("phone", "telephone", "tel", "mobile", "cell"),
            identifiers=(_token("phone", "telephone", "tel", "mobile", "cell", "phone_?number"),),
            selectors=('input[type="tel"]', 'input[name*="phone"]', 'input[placeholder*="phone"]', 'input[name*="mobile"]'),
            input_types=("tel",),
            category=CATEGORY_CONTACT,
        ),
        FieldPattern(
            key="website",
            label="Website URL",
            keywords=("website", "url", "homepage", "site"),
            identifiers=(_token("website", "web_?site", "homepage", "url", "site"),),
            selectors=('input[type="url"]', 'input[name*="website"]', 'input[placeholder*="website"]'),
            input_types=("url",),
            category=CATEGORY_BUSINESS,
            source="website",
        ),
        # ----------------------------
        # Personal
        # ----------------------------
        FieldPattern(
            key="first_name",
            label="First Name",
            keywords=("first name", "firstname", "given name", "fname"),
            identifiers=(_token("first_?name", "fname", "given_?name", "forename"),),
            category=CATEGORY_PERSONAL,
        ),
        FieldPattern(
            key="last_name",
            label="Last Name",
            keywords=("last name", "lastname", "surname", "family name", "lname"),
            identifiers=(_token("last_?name", "lname", "surname", "family_?name"),),
            category=CATEGORY_PERSONAL,
        ),
        FieldPattern(
            key="full_name",
            label="Full Name",
            keywords=("full name", "fullname", "your name"),
            identifiers=(_token("full_?name", "your_?name"), r"^name$"),
            category=CATEGORY_PERSONAL,
        ),
        # ----------------------------
        # Business / listing content
        # ----------------------------
        FieldPattern(
            key="company",
            label="Company/Business Name",
            keywords=("company", "business", "organization", "organisation", "employer"),
            identifiers=(_token("company", "company_?name", "business", "business_?name", "organi[sz]ation", "employer"),),
            selectors=('input[name*="company"]', 'input[placeholder*="company"]', 'input[name*="business"]'),
            category=CATEGORY_BUSINESS,
        ),
        FieldPattern(
            key="title",
            label="Title/Subject",
            keywords=("title", "subject", "heading", "headline"),
            identifiers=(_token("title", "subject", "heading", "headline", "ad_?title", "post_?title", "listing_?title"),),
            selectors=('input[name*="title"]', 'input[placeholder*="title"]', 'input[name*="subject"]'),
            category=CATEGORY_BUSINESS,
        ),
        FieldPattern(
            key="description",
            label="Description/Content",
            keywords=("description", "content", "body", "message", "details"),
            identifiers=(_token("description", "desc", "content", "body", "message", "details"),),
            selectors=(
                'textarea[name*="description"]',
                'textarea[placeholder*="description"]',
                'textarea[name*="message"]',
                ".mceContentBody",
                'div[contenteditable="true"]',
                'iframe[id*="mce"]',
            ),
            category=CATEGORY_BUSINESS,
        ),
        FieldPattern(
            key="keywords",
            label="Keywords/Tags",
            keywords=("keywords", "keyword", "tags"),
            identifiers=(_token("keywords?", "tags?"),),
            category=CATEGORY_BUSINESS,
        ),
        FieldPattern(
            key="price",
            label="Price",
            keywords=("price", "cost", "amount", "fee"),
            identifiers=(_token("price", "cost", "amount", "fee"),),
            selectors=('input[name*="price"]', 'input[placeholder*="price"]', 'input[type="number"][name*="price"]'),
            input_types=("number",),
            category=CATEGORY_BUSINESS,
        ),
        # ----------------------------
        # Address
        # ----------------------------
        FieldPattern(
            key="address",
            label="Address",
            keywords=("address", "street", "location"),
            identifiers=(_token("address", "addr", "street", "address_?1", "address_?line_?1", "street_?address"),),
            selectors=('input[name*="address"]', 'input[placeholder*="address"]', 'input[name*="street"]'),
            category=CATEGORY_ADDRESS,
        ),
        FieldPattern(
            key="city",
            label="City",
            keywords=("city", "town", "locality"),
            identifiers=(_token("city", "town", "locality", "municipality"),),
            selectors=('input[name*="city"]', 'input[placeholder*="city"]'),
            category=CATEGORY_ADDRESS,
        ),
        FieldPattern(
            key="state",
            label="State/Province",
            keywords=("state", "province", "region"),
            identifiers=(_token("state", "province", "region"),),
            category=CATEGORY_ADDRESS,
        ),
        FieldPattern(
            key="zipcode",
            label="ZIP Code",
            keywords=("zip", "postal", "postcode"),
            identifiers=(_token("zip", "zip_?code", "postal", "postal_?code", "postcode"),),
            selectors=('input[name*="zip"]', 'input[placeholder*="zip"]', 'input[name*="postal"]'),
            category=CATEGORY_ADDRESS,
        ),
        FieldPattern(
            key="country",
            label="Country",
            keywords=("country", "nation"),
            identifiers=(_token("country", "nation", "countries"),),
            category=CATEGORY_ADDRESS,
        ),
        # ----------------------------
        # Credentials
        # ----------------------------
        FieldPattern(
            key="password",
            label="Password",
            keywords=("password", "passwd", "pwd"),
            identifiers=(_token("password", "passwd", "pwd", "pass"),),
            selectors=('input[type="password"]',),
            input_types=("password",),
            category=CATEGORY_PASSWORD,
        ),
        # ----------------------------
        # Social profiles
        # ----------------------------
        FieldPattern(
            key="facebook",
            label="Facebook URL",
            keywords=("facebook", "fb"),
            identifiers=(_token("facebook", "fb", "facebook_?url", "fb_?url"),),
            selectors=('input[name*="facebook"]', 'input[placeholder*="facebook"]'),
            input_types=("url",),
            category=CATEGORY_SOCIAL,
            source="facebook",
        ),
        FieldPattern(
            key="instagram",
            label="Instagram URL",
            keywords=("instagram", "insta"),
            identifiers=(_token("instagram", "insta", "ig"),),
            selectors=('input[name*="instagram"]', 'input[placeholder*="instagram"]'),
            input_types=("url",),
            category=CATEGORY_SOCIAL,
            source="instagram",
        ),
        FieldPattern(
            key="twitter",
            label="Twitter/X URL",
            keywords=("twitter", "x.com"),
            identifiers=(_token("twitter", "twitter_?handle", "x_?handle"),),
            selectors=('input[name*="twitter"]', 'input[placeholder*="twitter"]'),
            input_types=("url",),
            category=CATEGORY_SOCIAL,
            source="twitter",
        ),
        FieldPattern(
            key="linkedin",
            label="LinkedIn URL",
            keywords=("linkedin",),
            identifiers=(_token("linkedin", "linked_?in", "li_?profile"),),
            selectors=('input[name*="linkedin"]', 'input[placeholder*="linkedin"]'),
            input_types=("url",),
            category=CATEGORY_SOCIAL,
            source="linkedin",
        ),
        FieldPattern(
            key="youtube",
            label="YouTube URL",
            keywords=("youtube",),
            identifiers=(_token("youtube", "yt"),),
            selectors=('input[name*="youtube"]', 'input[placeholder*="youtube"]'),
            input_types=("url",),
            category=CATEGORY_SOCIAL,
            source="youtube",
        ),
        FieldPattern(
            key="tiktok",
            label="TikTok URL",
            keywords=("tiktok",),
            identifiers=(_token("tiktok", "tik_?tok"),),
            input_types=("url",),
            category=CATEGORY_SOCIAL,
            source="tiktok",
        ),
        FieldPattern(
            key="pinterest",
            label="Pinterest URL",
            keywords=("pinterest",),
            identifiers=(_token("pinterest"),),
            input_types=("url",),
            category=CATEGORY_SOCIAL,
            source="pinterest",
        ),
    ]
)


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def identifier_form(value: Optional[str]) -> str:
    """Fold free text or an identifier into ``lower_snake`` tokens.

    ``"userEmail"``, ``"user-email"`` and ``"User Email"`` all become ``"user_email"``.
    """

    if not value:
        return ""
    split = _CAMEL_BOUNDARY.sub("_", value)
    tokens = re.findall(r"[a-z0-9]+", split.lower())
    return "_".join(tokens)


def _normalize_text(value: Optional[str]) -> str:
    tokens = re.findall(r"[a-z0-9]+", (value or "").lower())
    return " ".join(tokens)


def _synonyms(pattern: FieldPattern) -> Tuple[str, ...]:
    entries = {_normalize_text(term.replace("_", " ")) for term in pattern.terms}
    if pattern.label:
        entries.update(_normalize_text(part) for part in pattern.label.split("/"))
    return tuple(sorted(entry for entry in entries if entry))


@dataclass(frozen=True)
class FieldMatch:
    """One classification outcome: a semantic key and a tier-fixed confidence."""

    key: str
    confidence: float
    tier: str
    source: str = ""
    detail: Dict[str, object] = field(default_factory=dict, compare=False)


class FieldClassifier:
    """Tiered regex + fuzzy classifier over :class:`AttributeRecord` snapshots."""

    def __init__(
        self,
        patterns: FieldPatternRegistry = DEFAULT_FIELD_PATTERNS,
        *,
        fuzzy_cutoff: float = 85.0,
        use_fuzzy: bool = True,
    ) -> None:
        self.patterns = patterns
        self.fuzzy_cutoff = fuzzy_cutoff
        self.use_fuzzy = use_fuzzy
        self._synonyms: Dict[str, Tuple[str, ...]] = {pattern.key: _synonyms(pattern) for pattern in patterns}

    def classify(self, record: "AttributeRecord", *, limit: Optional[int] = None) -> List[FieldMatch]:
        """Return keys matching ``record`` ordered by confidence, then registry order."""

        identifier = identifier_form(" ".join(filter(None, [record.name, record.element_id])))
        label = identifier_form(record.label_text)
        placeholder = identifier_form(record.placeholder)
        fuzzy_sources = [
            ("label", _normalize_text(record.label_text)),
            ("placeholder", _normalize_text(record.placeholder)),
            ("aria_label", _normalize_text(record.aria_label)),
        ]

        matches: List[FieldMatch] = []
        for pattern in self.patterns:
            match = self._match_regex(pattern, identifier, label, placeholder)
            if match is None and self.use_fuzzy:
                match = self._match_fuzzy(pattern, fuzzy_sources)
            if match is not None:
                matches.append(match)

        order = {key: index for index, key in enumerate(self.patterns.keys())}
        matches.sort(key=lambda item: (-item.confidence, order.get(item.key, len(order))))
        if limit is not None:
            return matches[:limit]
        return matches

    def primary(self, record: "AttributeRecord") -> Optional[FieldMatch]:
        """Return the single best classification, if any."""

        matches = self.classify(record, limit=1)
        return matches[0] if matches else None

    @staticmethod
    def _match_regex(
        pattern: FieldPattern,
        identifier: str,
        label: str,
        placeholder: str,
    ) -> Optional[FieldMatch]:
        compiled = pattern.compiled_identifiers()
        for tier, text in ((TIER_IDENTIFIER, identifier), (TIER_LABEL, label), (TIER_PLACEHOLDER, placeholder)):
            if not text:
                continue
            for regex in compiled:
                if regex.search(text):
                    return FieldMatch(
                        key=pattern.key,
                        confidence=TIER_CONFIDENCE[tier],
                        tier=tier,
                        source=text,
                        detail={"pattern": regex.pattern},
                    )
        return None

    def _match_fuzzy(self, pattern: FieldPattern, sources: Sequence[Tuple[str, str]]) -> Optional[FieldMatch]:
        best_score = 0.0
        best: Optional[Tuple[str, str, str]] = None
        for source, text in sources:
            if not text:
                continue
            for synonym in self._synonyms.get(pattern.key, ()):
                score = float(fuzz.token_set_ratio(text, synonym))
                if score > best_score:
                    best_score = score
                    best = (source, text, synonym)
        if best is None or best_score < self.fuzzy_cutoff:
            return None
        source, text, synonym = best
        return FieldMatch(
            key=pattern.key,
            confidence=round(TIER_CONFIDENCE[TIER_FUZZY] * best_score / 100.0, 4),
            tier=TIER_FUZZY,
            source=text,
            detail={"synonym": synonym, "score": best_score, "attribute": source},
        )


def validate_field_value(pattern: FieldPattern, value: str) -> bool:
    """Check ``value`` against the validation rule of the pattern's native type, if any."""

    for input_type in pattern.input_types:
        rule = VALIDATION_RULES.get(input_type)
        if rule is not None:
            return bool(rule.match(value.strip()))
    return True
