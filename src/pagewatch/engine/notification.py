"""Build change reports, failure notices and Slack messages."""

import base64
from typing import Any, Optional

from pagewatch.core.models import Attachment, ChangeReport, FailureInfo, UrlTask

# Summed base64 length of both screenshots must stay below this.
MAX_ATTACHMENT_SIZE_BYTES = 5 * 1024 * 1024


def encode_screenshot(data: bytes) -> str:
    """Encode screenshot bytes as base64 text for a mail attachment."""
    return base64.b64encode(data).decode("ascii")


def oversize_disclosure(budget: int) -> str:
    return (
        f"Screenshots are bigger than {budget}, not sending them as part "
        "of email attachment."
    )


def assemble_report(
    task: UrlTask,
    previous_content: Optional[str],
    current_content: str,
    previous_screenshot: Optional[bytes],
    current_screenshot: bytes,
    previous_screenshot_url: Optional[str] = None,
    current_screenshot_url: Optional[str] = None,
    budget: int = MAX_ATTACHMENT_SIZE_BYTES,
) -> ChangeReport:
    """Assemble the notification for a changed page.

    Both screenshots are attached, or neither: if their encoded size reaches
    ``budget`` they are dropped and the text says so.

    Args:
        task: The page that changed.
        previous_content: Content from the baseline.
        current_content: Content from this run.
        previous_screenshot: Baseline screenshot bytes, None if it was lost.
        current_screenshot: This run's screenshot bytes.
        previous_screenshot_url: Public URL of the baseline screenshot.
        current_screenshot_url: Public URL of the new screenshot.
        budget: Attachment budget in encoded bytes.

    Returns:
        The assembled ChangeReport.
    """
    note = f"Note: {task.notification_note}\n\n" if task.notification_note else ""
    text = (
        f"URL: {task.url}\n\n{note}"
        f"Previous data: {previous_content}\n\n"
        f"Current data: {current_content}"
    )

    attachments: list[Attachment] = []
    truncated = False
    if previous_screenshot is None:
        # before/after images are only ever sent as a pair
        text += "\n\nPrevious screenshot is not available, not sending screenshots."
    else:
        previous_encoded = encode_screenshot(previous_screenshot)
        current_encoded = encode_screenshot(current_screenshot)

        if len(previous_encoded) + len(current_encoded) < budget:
            attachments = [
                Attachment(f"previousScreenshot_{task.key}.png", previous_encoded),
                Attachment(f"currentScreenshot_{task.key}.png", current_encoded),
            ]
        else:
            text += "\n\n" + oversize_disclosure(budget)
            truncated = True

    return ChangeReport(
        url=task.url,
        subject=f"pagewatch - page changed! ({task.url})",
        text=text,
        previous_content=previous_content,
        current_content=current_content,
        previous_screenshot_url=previous_screenshot_url,
        current_screenshot_url=current_screenshot_url,
        attachments=attachments,
        truncated=truncated,
    )


def assemble_failure_notice(
    task: UrlTask,
    failure: FailureInfo,
    attempts: int,
    screenshot: Optional[bytes] = None,
    budget: int = MAX_ATTACHMENT_SIZE_BYTES,
) -> tuple[str, str, list[Attachment]]:
    """Build the informational mail sent when a check fails.

    Returns:
        Tuple of (subject, text, attachments).
    """
    lines = [
        f"URL: {task.url}",
        "",
        f"The check failed after {attempts} attempt(s): {failure.message}",
    ]
    if failure.full_page_screenshot_url:
        lines.append(f"Full page screenshot: {failure.full_page_screenshot_url}")

    attachments: list[Attachment] = []
    if screenshot is not None:
        encoded = encode_screenshot(screenshot)
        if len(encoded) < budget:
            attachments.append(
                Attachment(f"fullPageScreenshot_{task.key}.jpg", encoded)
            )
        else:
            lines += ["", oversize_disclosure(budget)]

    return (
        f"pagewatch - check failed! ({task.url})",
        "\n".join(lines),
        attachments,
    )


def build_slack_message(
    url: str,
    previous_data: Optional[str],
    content: str,
    store_url: Optional[str] = None,
) -> dict[str, Any]:
    """Build a Slack message payload announcing a content change."""
    text = f"Content changed on <{url}>"
    blocks: list[dict[str, Any]] = [
        {"type": "section", "text": {"type": "mrkdwn", "text": f":bell: {text}"}},
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Previous data*\n{previous_data}"},
                {"type": "mrkdwn", "text": f"*Current data*\n{content}"},
            ],
        },
    ]
    if store_url:
        blocks.append(
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": f"Screenshots: <{store_url}>"}
                ],
            }
        )
    return {"text": text, "blocks": blocks}
