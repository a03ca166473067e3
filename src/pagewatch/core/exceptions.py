"""Exceptions raised by pagewatch."""


class PagewatchError(Exception):
    """Base class for pagewatch errors."""


class InputError(PagewatchError, ValueError):
    """The run input is missing fields or has invalid values."""


class CaptureFailure(PagewatchError):
    """Not even a fallback full-page screenshot could be captured."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Could not capture a screenshot of {url}: {reason}")
        self.url = url
        self.reason = reason


class DeliveryError(PagewatchError):
    """A store or mail request failed at the transport level."""
