"""Data models for pagewatch."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union


class RetryStrategy(Enum):
    """Operator-selected policy for which outcomes trigger a retry."""

    ON_BLOCK = "on-block"
    ON_ALL_ERRORS = "on-all-errors"
    NEVER_RETRY = "never-retry"


class RetryDecision(Enum):
    """What to do after classifying a visit attempt."""

    RETRY = "retry"
    FINAL_FAILURE = "final_failure"
    FINAL_SUCCESS = "final_success"


class ErrorKind(Enum):
    """Failure taxonomy used in failure records."""

    TRANSIENT_BLOCK = "transient_block"
    PERMANENT_MISSING = "permanent_missing"
    SELECTOR_MISMATCH = "selector_mismatch"
    CAPTURE_FAILURE = "capture_failure"
    INTERNAL = "internal_error"


class SelectorKind(Enum):
    """Which selector failed to produce a value."""

    CONTENT = "content"
    SCREENSHOT = "screenshot"


class DiffStatus(Enum):
    """Result of comparing current content against the baseline."""

    FIRST_RUN = "first_run"
    UNCHANGED = "unchanged"
    CHANGED = "changed"


def url_key(url: str) -> str:
    """Derive the store key for a URL.

    The key is the SHA-256 hex digest of the UTF-8 encoded URL, so it is
    URL-safe, stable across runs and only shared by identical URLs.
    """
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class UrlTask:
    """A single page to watch."""

    url: str
    content_selector: str
    screenshot_selector: Optional[str] = None
    notification_note: Optional[str] = None

    @property
    def key(self) -> str:
        return url_key(self.url)

    @property
    def effective_screenshot_selector(self) -> str:
        """Selector used for the element screenshot (falls back to content)."""
        return self.screenshot_selector or self.content_selector


@dataclass
class VisitResult:
    """What one visit attempt produced.

    ``http_status`` is None when navigation never got a response.
    """

    http_status: Optional[int]
    blocked: bool = False
    extracted_content: Optional[str] = None
    element_screenshot: Optional[bytes] = None
    full_page_screenshot: Optional[bytes] = None
    error: Optional[str] = None


# Outcome variants. ``Outcome`` below is the closed union of these.


@dataclass(frozen=True)
class Success:
    content: str
    screenshot: bytes

    error_kind = None


@dataclass(frozen=True)
class SoftNotFound:
    error_kind = ErrorKind.PERMANENT_MISSING

    @property
    def message(self) -> str:
        return "Page not found (404), please change the URL"


@dataclass(frozen=True)
class ServerError:
    status: Optional[int]
    full_page_screenshot: Optional[bytes] = None
    detail: Optional[str] = None

    error_kind = ErrorKind.TRANSIENT_BLOCK

    @property
    def message(self) -> str:
        if self.status is None:
            return f"Navigation failed: {self.detail or 'no response'}"
        return f"Response status: {self.status}. Probably got blocked"


@dataclass(frozen=True)
class Blocked:
    full_page_screenshot: bytes

    error_kind = ErrorKind.TRANSIENT_BLOCK

    @property
    def message(self) -> str:
        return "Page is blocked by a captcha or bot challenge"


@dataclass(frozen=True)
class SelectorFailure:
    kind: SelectorKind
    full_page_screenshot: bytes

    error_kind = ErrorKind.SELECTOR_MISMATCH

    @property
    def message(self) -> str:
        if self.kind is SelectorKind.CONTENT:
            return (
                "Failed to extract the content, either the content selector "
                "is wrong or page layout changed. Check the full screenshot."
            )
        return (
            "Failed to capture the screenshot, either the screenshot or content "
            "selector is wrong or page layout changed. Check the full screenshot."
        )


Outcome = Union[Success, SoftNotFound, ServerError, Blocked, SelectorFailure]


@dataclass
class Baseline:
    """The persisted content/screenshot pair of the last successful run."""

    content: Optional[str]
    screenshot: Optional[bytes] = None
    screenshot_key: Optional[str] = None
    saved_at: Optional[datetime] = None


@dataclass(frozen=True)
class Attachment:
    """A mail attachment; ``data`` is base64 text."""

    filename: str
    data: str

    def to_dict(self) -> dict[str, str]:
        return {"filename": self.filename, "data": self.data}


@dataclass
class ChangeReport:
    """Notification payload for a page whose content changed."""

    url: str
    subject: str
    text: str
    previous_content: Optional[str]
    current_content: str
    previous_screenshot_url: Optional[str]
    current_screenshot_url: Optional[str]
    attachments: list[Attachment] = field(default_factory=list)
    truncated: bool = False


@dataclass
class FailureInfo:
    """Why a URL ended in a failure record."""

    kind: ErrorKind
    message: str
    full_page_screenshot_url: Optional[str] = None


@dataclass
class RunRecord:
    """One output record per URL per run."""

    url: str
    status: str
    attempts: int = 0
    is_first_run: bool = False
    previous_data: Optional[str] = None
    content: Optional[str] = None
    previous_screenshot_url: Optional[str] = None
    current_screenshot_url: Optional[str] = None
    send_notification_to: Optional[str] = None
    failure: Optional[FailureInfo] = None
    checked_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def failed(self) -> bool:
        return self.failure is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "url": self.url,
            "status": self.status,
            "isFirstRun": self.is_first_run,
            "previousData": self.previous_data,
            "content": self.content,
            "previousScreenshotUrl": self.previous_screenshot_url,
            "currentScreenshotUrl": self.current_screenshot_url,
            "sendNotificationTo": self.send_notification_to,
            "attempts": self.attempts,
            "checkedAt": self.checked_at.isoformat(),
        }
        if self.failure:
            data["failure"] = {
                "kind": self.failure.kind.value,
                "message": self.failure.message,
                "fullPageScreenshotUrl": self.failure.full_page_screenshot_url,
            }
        return data


@dataclass
class MonitorConfig:
    """Validated run input."""

    urls: list[UrlTask]
    send_notification_to: Optional[str] = None
    navigation_timeout: int = 30000  # ms
    inform_on_error: bool = False
    max_retries: int = 5
    retry_strategy: RetryStrategy = RetryStrategy.ON_BLOCK
