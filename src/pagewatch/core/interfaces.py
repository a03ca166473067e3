"""Abstract interfaces for pagewatch."""

from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from pagewatch.core.models import Attachment, UrlTask, VisitResult


class PageVisitor(ABC):
    """Abstract base class for the crawl capability.

    Visitors are async context managers so they can own a browser for the
    length of a run.
    """

    async def __aenter__(self) -> "PageVisitor":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    @abstractmethod
    async def visit(self, task: UrlTask, navigation_timeout: int) -> VisitResult:
        """Visit a page once.

        Implementations must capture a full-page screenshot whenever the
        page is blocked or a selector fails, before returning.

        Args:
            task: The page to visit and its selectors.
            navigation_timeout: Navigation timeout in milliseconds.

        Returns:
            VisitResult describing the attempt.

        Raises:
            CaptureFailure: If the fallback screenshot could not be taken.
        """
        ...


class BlobStore(ABC):
    """Abstract base class for a key-value blob store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored value, or None if the key does not exist."""
        ...

    @abstractmethod
    async def set(
        self,
        key: str,
        value: Union[bytes, str],
        content_type: Optional[str] = None,
    ) -> None:
        """Store a value. Strings are stored UTF-8 encoded.

        A single set must be atomic: readers see the old or the new value.
        """
        ...

    @abstractmethod
    def public_url(self, key: str) -> str:
        """Return a URL the operator can open to view the record."""
        ...


class Mailer(ABC):
    """Abstract base class for mail delivery."""

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        text: str,
        attachments: list[Attachment],
    ) -> None:
        """Send a mail.

        Raises:
            DeliveryError: If the mail could not be handed to the transport.
        """
        ...


class ResultSink(ABC):
    """Abstract base class for the structured output sink."""

    @abstractmethod
    async def push(self, record: dict[str, Any]) -> None:
        """Append one record."""
        ...
