"""Writing values into detected fields and guarding stored values."""

from .duplicates import DuplicateGuard, DuplicateVerdict, ImportReview, SocialLink
from .engine import AutofillEngine, FillReport, ScanSummary, StaticValueSource
from .executor import AutofillExecutor, FillOutcome
from .watcher import MutationWatcher

__all__ = [
    "DuplicateGuard",
    "DuplicateVerdict",
    "ImportReview",
    "SocialLink",
    "AutofillEngine",
    "FillReport",
    "ScanSummary",
    "StaticValueSource",
    "AutofillExecutor",
    "FillOutcome",
    "MutationWatcher",
]
