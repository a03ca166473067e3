"""Pytest configuration and fixtures."""

import tempfile
from pathlib import Path
from typing import Any, Optional

import pytest

from pagewatch.core.interfaces import Mailer, PageVisitor, ResultSink
from pagewatch.core.models import (
    Attachment,
    MonitorConfig,
    RetryStrategy,
    UrlTask,
    VisitResult,
)
from pagewatch.storage.baseline import BaselineStore
from pagewatch.storage.filesystem import FilesystemBlobStore

PNG_A = b"\x89PNG\r\n\x1a\nscreenshot-a"
PNG_B = b"\x89PNG\r\n\x1a\nscreenshot-b"
FULL_PAGE = b"\xff\xd8\xff\xe0full-page"


class FakeVisitor(PageVisitor):
    """Replays scripted visit results per URL; the last one repeats."""

    def __init__(self, script: Optional[dict[str, list[VisitResult]]] = None) -> None:
        self.script = script or {}
        self.calls: list[str] = []

    async def visit(self, task: UrlTask, navigation_timeout: int) -> VisitResult:
        self.calls.append(task.url)
        results = self.script[task.url]
        if len(results) > 1:
            return results.pop(0)
        return results[0]

    def attempts(self, url: str) -> int:
        return self.calls.count(url)


class FakeMailer(Mailer):
    """Collects sent mails instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(
        self, to: str, subject: str, text: str, attachments: list[Attachment]
    ) -> None:
        self.sent.append(
            {"to": to, "subject": subject, "text": text, "attachments": attachments}
        )


class MemorySink(ResultSink):
    """Keeps pushed records in a list."""

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    async def push(self, record: dict[str, Any]) -> None:
        self.records.append(record)


def ok_visit(content: str = "Price: 10 EUR", screenshot: bytes = PNG_A) -> VisitResult:
    return VisitResult(
        http_status=200, extracted_content=content, element_screenshot=screenshot
    )


def make_config(
    *tasks: UrlTask,
    strategy: RetryStrategy = RetryStrategy.ON_BLOCK,
    max_retries: int = 5,
    send_to: Optional[str] = "ops@example.com",
    inform_on_error: bool = False,
) -> MonitorConfig:
    return MonitorConfig(
        urls=list(tasks),
        send_notification_to=send_to,
        max_retries=max_retries,
        retry_strategy=strategy,
        inform_on_error=inform_on_error,
    )


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def blob_store(temp_dir):
    """Filesystem blob store in a temporary directory."""
    return FilesystemBlobStore(temp_dir / "store")


@pytest.fixture
def baselines(blob_store):
    return BaselineStore(blob_store)


@pytest.fixture
def task():
    """A typical watched page."""
    return UrlTask(
        url="https://shop.example.com/product/42",
        content_selector="#price",
        notification_note="Check the price",
    )


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def sample_captcha_html():
    """Page showing a reCAPTCHA challenge."""
    return """
    <!DOCTYPE html>
    <html>
    <head><title>Shop</title></head>
    <body>
        <form action="/verify">
            <div class="g-recaptcha" data-sitekey="abc"></div>
        </form>
    </body>
    </html>
    """
