"""Baseline persistence on top of a blob store."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pagewatch.core.interfaces import BlobStore
from pagewatch.core.models import Baseline

logger = logging.getLogger(__name__)

SLOTS = ("a", "b")


def record_key(url_key: str) -> str:
    return f"baseline_{url_key}.json"


def screenshot_key(url_key: str, slot: str) -> str:
    return f"screenshot_{url_key}_{slot}.png"


def failure_screenshot_key(url_key: str) -> str:
    return f"failureScreenshot_{url_key}.jpg"


def slack_message_key(url_key: str) -> str:
    return f"SLACK_MESSAGE_{url_key}"


class BaselineStore:
    """Load and save per-URL baselines.

    A baseline is a JSON record pointing at one of two screenshot slots. A
    save writes the screenshot into the slot the committed record does not
    use, then rewrites the record. Until the record is rewritten, readers
    keep seeing the old content and the old screenshot together.
    """

    def __init__(self, blob_store: BlobStore) -> None:
        """Initialize the adapter.

        Args:
            blob_store: Store holding the records and screenshots.
        """
        self._blobs = blob_store

    async def load(self, url_key: str) -> Optional[Baseline]:
        """Load the baseline for a URL key.

        Returns:
            The baseline, or None if no run has saved one yet or the record
            cannot be read.
        """
        raw = await self._blobs.get(record_key(url_key))
        if raw is None:
            return None

        try:
            data = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Could not load baseline %s: %s", record_key(url_key), e)
            return None
        if not isinstance(data, dict):
            logger.warning("Baseline %s is not a JSON object", record_key(url_key))
            return None

        shot_key = data.get("screenshotKey")
        screenshot = await self._blobs.get(shot_key) if shot_key else None
        if shot_key and screenshot is None:
            logger.warning("Baseline screenshot %s is missing", shot_key)

        saved_at = data.get("savedAt")
        return Baseline(
            content=data.get("content"),
            screenshot=screenshot,
            screenshot_key=shot_key,
            saved_at=datetime.fromisoformat(saved_at) if saved_at else None,
        )

    async def save(
        self,
        url_key: str,
        baseline: Baseline,
        previous: Optional[Baseline] = None,
    ) -> Baseline:
        """Commit a new baseline.

        Args:
            url_key: Store key of the URL.
            baseline: Content and screenshot to commit.
            previous: The baseline loaded earlier in this run, if any.

        Returns:
            The committed baseline with its screenshot key and timestamp.
        """
        shot_key: Optional[str] = self.next_screenshot_key(url_key, previous)
        if baseline.screenshot is not None:
            await self._blobs.set(shot_key, baseline.screenshot, "image/png")
        else:
            shot_key = None

        saved_at = datetime.now(timezone.utc)
        record = {
            "content": baseline.content,
            "screenshotKey": shot_key,
            "savedAt": saved_at.isoformat(),
        }
        # the record write is the commit point
        await self._blobs.set(
            record_key(url_key), json.dumps(record), "application/json"
        )

        return Baseline(
            content=baseline.content,
            screenshot=baseline.screenshot,
            screenshot_key=shot_key,
            saved_at=saved_at,
        )

    async def save_failure_screenshot(self, url_key: str, screenshot: bytes) -> str:
        """Store the fallback screenshot of a failed run and return its key."""
        key = failure_screenshot_key(url_key)
        await self._blobs.set(key, screenshot, "image/jpeg")
        return key

    async def put_json(self, key: str, data: dict[str, Any]) -> None:
        """Store an auxiliary JSON record next to the baselines."""
        await self._blobs.set(key, json.dumps(data), "application/json")

    def public_url(self, key: Optional[str]) -> Optional[str]:
        if key is None:
            return None
        return self._blobs.public_url(key)

    @staticmethod
    def next_screenshot_key(url_key: str, previous: Optional[Baseline]) -> str:
        """Key the next save will write its screenshot to."""
        if previous is not None and previous.screenshot_key == screenshot_key(
            url_key, SLOTS[0]
        ):
            return screenshot_key(url_key, SLOTS[1])
        return screenshot_key(url_key, SLOTS[0])
