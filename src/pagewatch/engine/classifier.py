"""Turn a single page visit into a classified outcome."""

from pagewatch.core.exceptions import CaptureFailure
from pagewatch.core.models import (
    Blocked,
    Outcome,
    SelectorFailure,
    SelectorKind,
    ServerError,
    SoftNotFound,
    Success,
    UrlTask,
    VisitResult,
)


def classify(result: VisitResult, task: UrlTask) -> Outcome:
    """Classify a visit result.

    Rules are checked in priority order: 404, other error statuses (or no
    response at all), block detection, missing content, missing element
    screenshot, success.

    Args:
        result: What the visit produced.
        task: The task that was visited.

    Returns:
        The outcome of the attempt.

    Raises:
        CaptureFailure: If a fallback screenshot is required but missing.
    """
    status = result.http_status

    if status == 404:
        return SoftNotFound()

    if status is None or status >= 400:
        return ServerError(
            status=status,
            full_page_screenshot=result.full_page_screenshot,
            detail=result.error,
        )

    if result.blocked:
        return Blocked(full_page_screenshot=_fallback(result, task))

    if result.extracted_content is None:
        return SelectorFailure(
            kind=SelectorKind.CONTENT,
            full_page_screenshot=_fallback(result, task),
        )

    if result.element_screenshot is None:
        return SelectorFailure(
            kind=SelectorKind.SCREENSHOT,
            full_page_screenshot=_fallback(result, task),
        )

    return Success(
        content=result.extracted_content,
        screenshot=result.element_screenshot,
    )


def _fallback(result: VisitResult, task: UrlTask) -> bytes:
    if result.full_page_screenshot is None:
        raise CaptureFailure(task.url, "visitor returned no full-page screenshot")
    return result.full_page_screenshot
