"""Load and validate run input."""

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from pagewatch.core.exceptions import InputError
from pagewatch.core.models import MonitorConfig, RetryStrategy, UrlTask

DEFAULT_INPUT_FILE = "INPUT.json"
STORE_NAME_PREFIX = "content-checker-store-"


def load_input(path: Path) -> MonitorConfig:
    """Read a JSON input file and validate it.

    Args:
        path: Path to the input file.

    Returns:
        Validated MonitorConfig.

    Raises:
        InputError: If the file is missing, not JSON, or invalid.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise InputError(f"Input file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise InputError(f"Input file {path} is not valid JSON: {e}") from e

    return parse_input(raw)


def parse_input(raw: Any) -> MonitorConfig:
    """Validate a decoded input document.

    Raises:
        InputError: On the first invalid field found.
    """
    if not isinstance(raw, Mapping):
        raise InputError("Input must be a JSON object")

    urls = raw.get("urls")
    if not isinstance(urls, list) or not urls:
        raise InputError("Input must contain a non-empty 'urls' list")

    tasks: list[UrlTask] = []
    seen: set[str] = set()
    for i, entry in enumerate(urls):
        task = _parse_url_entry(entry, i)
        if task.url in seen:
            raise InputError(f"URL listed twice: {task.url}")
        seen.add(task.url)
        tasks.append(task)

    strategy_value = raw.get("retryStrategy", RetryStrategy.ON_BLOCK.value)
    try:
        strategy = RetryStrategy(strategy_value)
    except ValueError:
        allowed = ", ".join(s.value for s in RetryStrategy)
        raise InputError(
            f"retryStrategy must be one of {allowed}, got {strategy_value!r}"
        ) from None

    max_retries = raw.get("maxRetries", 5)
    if not _is_int(max_retries) or max_retries < 0:
        raise InputError("maxRetries must be a non-negative integer")

    navigation_timeout = raw.get("navigationTimeout", 30000)
    if not _is_int(navigation_timeout) or navigation_timeout <= 0:
        raise InputError("navigationTimeout must be a positive number of milliseconds")

    send_to = raw.get("sendNotificationTo") or None
    if send_to is not None and not isinstance(send_to, str):
        raise InputError("sendNotificationTo must be a string")

    return MonitorConfig(
        urls=tasks,
        send_notification_to=send_to,
        navigation_timeout=navigation_timeout,
        inform_on_error=_parse_bool(raw.get("informOnError", False), "informOnError"),
        max_retries=max_retries,
        retry_strategy=strategy,
    )


def default_store_name(environ: Optional[Mapping[str, str]] = None) -> str:
    """Name of the store, one per task or actor.

    Lets several content checkers share one account without mixing
    baselines.
    """
    env = os.environ if environ is None else environ
    owner = env.get("APIFY_ACTOR_TASK_ID") or env.get("APIFY_ACT_ID") or "default"
    return STORE_NAME_PREFIX + owner


def _parse_url_entry(entry: Any, index: int) -> UrlTask:
    if not isinstance(entry, Mapping):
        raise InputError(f"urls[{index}] must be an object")

    url = entry.get("url")
    if not isinstance(url, str) or not url.startswith(("http://", "https://")):
        raise InputError(f"urls[{index}].url must be an http(s) URL")

    content_selector = entry.get("contentSelector")
    if not isinstance(content_selector, str) or not content_selector.strip():
        raise InputError(f"urls[{index}].contentSelector is required")

    screenshot_selector = entry.get("screenshotSelector") or None
    note = entry.get("sendNotificationText") or None
    for name, value in (("screenshotSelector", screenshot_selector),
                        ("sendNotificationText", note)):
        if value is not None and not isinstance(value, str):
            raise InputError(f"urls[{index}].{name} must be a string")

    return UrlTask(
        url=url,
        content_selector=content_selector,
        screenshot_selector=screenshot_selector,
        notification_note=note,
    )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false", ""):
        return value.lower() == "true"
    raise InputError(f"{name} must be true or false")
