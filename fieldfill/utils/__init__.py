"""Pure helpers: similarity, pattern tables and attribute extraction."""

from .form_components import AttributeRecord, FieldShape, Visibility, build_attribute_record, extract_attributes
from .fuzzy_forms import DEFAULT_FIELD_PATTERNS, FieldClassifier, FieldMatch, FieldPattern, FieldPatternRegistry
from .similarity import normalize_url, normalize_value, similarity

__all__ = [
    "AttributeRecord",
    "FieldShape",
    "Visibility",
    "build_attribute_record",
    "extract_attributes",
    "DEFAULT_FIELD_PATTERNS",
    "FieldClassifier",
    "FieldMatch",
    "FieldPattern",
    "FieldPatternRegistry",
    "normalize_url",
    "normalize_value",
    "similarity",
]
