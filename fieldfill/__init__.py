"""Field classification and autofill matching for Playwright-driven pages."""

from .autofill import (
    AutofillEngine,
    AutofillExecutor,
    DuplicateGuard,
    DuplicateVerdict,
    FillReport,
    MutationWatcher,
    ScanSummary,
    StaticValueSource,
)
from .config import ScanOptions, Settings, get_settings
from .detector import CandidateScorer, DetectionCache, FieldDetector, ScoringWeights
from .errors import (
    DuplicateValueError,
    ElementSnapshotError,
    ElementWriteError,
    FieldfillError,
    SelectorError,
)

__all__ = [
    "AutofillEngine",
    "AutofillExecutor",
    "DuplicateGuard",
    "DuplicateVerdict",
    "FillReport",
    "MutationWatcher",
    "ScanSummary",
    "StaticValueSource",
    # Configuration
    "ScanOptions",
    "Settings",
    "get_settings",
    # Detection
    "CandidateScorer",
    "DetectionCache",
    "FieldDetector",
    "ScoringWeights",
    # Errors
    "DuplicateValueError",
    "ElementSnapshotError",
    "ElementWriteError",
    "FieldfillError",
    "SelectorError",
]
