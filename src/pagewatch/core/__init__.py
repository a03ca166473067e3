"""Core models and interfaces for pagewatch."""

from pagewatch.core.models import (
    Baseline,
    Blocked,
    ChangeReport,
    DiffStatus,
    ErrorKind,
    MonitorConfig,
    Outcome,
    RetryDecision,
    RetryStrategy,
    RunRecord,
    SelectorFailure,
    ServerError,
    SoftNotFound,
    Success,
    UrlTask,
    VisitResult,
)
from pagewatch.core.interfaces import (
    BlobStore,
    Mailer,
    PageVisitor,
    ResultSink,
)

__all__ = [
    "Baseline",
    "Blocked",
    "ChangeReport",
    "DiffStatus",
    "ErrorKind",
    "MonitorConfig",
    "Outcome",
    "RetryDecision",
    "RetryStrategy",
    "RunRecord",
    "SelectorFailure",
    "ServerError",
    "SoftNotFound",
    "Success",
    "UrlTask",
    "VisitResult",
    "BlobStore",
    "Mailer",
    "PageVisitor",
    "ResultSink",
]
