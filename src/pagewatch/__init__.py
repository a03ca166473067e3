"""
pagewatch - Watch web pages for content changes.

Visits a list of pages, extracts a content fragment and an element
screenshot from each, compares them with the previous run and sends a
notification when the content changed.

Usage:
    pagewatch INPUT.json
    pagewatch run INPUT.json --store-dir ./baselines
"""

__version__ = "0.1.0"

from pagewatch.core.interfaces import (
    BlobStore,
    Mailer,
    PageVisitor,
    ResultSink,
)
from pagewatch.core.models import (
    Baseline,
    ChangeReport,
    DiffStatus,
    MonitorConfig,
    RetryDecision,
    RetryStrategy,
    RunRecord,
    UrlTask,
    VisitResult,
)

__all__ = [
    "__version__",
    # Models
    "Baseline",
    "ChangeReport",
    "DiffStatus",
    "MonitorConfig",
    "RetryDecision",
    "RetryStrategy",
    "RunRecord",
    "UrlTask",
    "VisitResult",
    # Interfaces
    "BlobStore",
    "Mailer",
    "PageVisitor",
    "ResultSink",
]
