"""Per-URL change-detection workflow.

Each URL runs as an independent asyncio task:

    visit -> classify -> decide (loop on RETRY) -> load baseline -> diff
          -> assemble report -> save baseline -> emit record -> mail

Tasks hand their single record to a queue drained by one consumer that
writes to the result sink. The commit step (save, emit, mail) is shielded
from cancellation so an aborted run never leaves half a commit behind.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from pagewatch.core.exceptions import CaptureFailure, DeliveryError
from pagewatch.core.interfaces import Mailer, PageVisitor, ResultSink
from pagewatch.core.models import (
    Attachment,
    Baseline,
    DiffStatus,
    ErrorKind,
    FailureInfo,
    MonitorConfig,
    Outcome,
    RetryDecision,
    RunRecord,
    SoftNotFound,
    Success,
    UrlTask,
)
from pagewatch.engine.classifier import classify
from pagewatch.engine.diff import diff
from pagewatch.engine.notification import (
    MAX_ATTACHMENT_SIZE_BYTES,
    assemble_failure_notice,
    assemble_report,
    build_slack_message,
)
from pagewatch.engine.retry import decide, max_attempts
from pagewatch.storage.baseline import (
    BaselineStore,
    failure_screenshot_key,
    slack_message_key,
)

logger = logging.getLogger(__name__)


@dataclass
class _Mail:
    subject: str
    text: str
    attachments: list[Attachment] = field(default_factory=list)


class ChangeMonitor:
    """Check every configured URL once and report what changed."""

    def __init__(
        self,
        visitor: PageVisitor,
        baselines: BaselineStore,
        sink: ResultSink,
        config: MonitorConfig,
        mailer: Optional[Mailer] = None,
        max_concurrency: int = 5,
        attachment_budget: int = MAX_ATTACHMENT_SIZE_BYTES,
    ) -> None:
        """Initialize the monitor.

        Args:
            visitor: Crawl capability used to visit pages.
            baselines: Baseline store adapter.
            sink: Receives one record per URL.
            config: Validated run input.
            mailer: Mail delivery; mails are skipped when None.
            max_concurrency: Maximum number of URLs checked at once.
            attachment_budget: Byte budget for encoded mail attachments.
        """
        self._visitor = visitor
        self._baselines = baselines
        self._sink = sink
        self._config = config
        self._mailer = mailer
        self._max_concurrency = max_concurrency
        self._budget = attachment_budget
        self._committing: set[asyncio.Future] = set()
        self._attempts: dict[str, int] = {}

    async def run(self) -> list[RunRecord]:
        """Run one check over all URLs.

        Returns:
            The records emitted, in completion order.
        """
        queue: asyncio.Queue[Optional[RunRecord]] = asyncio.Queue()
        semaphore = asyncio.Semaphore(self._max_concurrency)
        records: list[RunRecord] = []
        consumer = asyncio.create_task(self._drain(queue, records))

        try:
            await asyncio.gather(
                *(self._watch(task, queue, semaphore) for task in self._config.urls)
            )
        finally:
            # commits already started must reach the sink
            if self._committing:
                await asyncio.wait(list(self._committing))
            await queue.put(None)
            await consumer

        return records

    async def _drain(
        self,
        queue: "asyncio.Queue[Optional[RunRecord]]",
        records: list[RunRecord],
    ) -> None:
        while True:
            record = await queue.get()
            if record is None:
                return
            await self._sink.push(record.to_dict())
            records.append(record)

    async def _watch(
        self,
        task: UrlTask,
        queue: "asyncio.Queue[Optional[RunRecord]]",
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            try:
                await self._check(task, queue)
            except CaptureFailure as e:
                logger.error("%s", e)
                await self._fail(
                    task, queue, ErrorKind.CAPTURE_FAILURE, str(e), self._attempted(task)
                )
            except DeliveryError as e:
                logger.error("Store error while checking %s: %s", task.url, e)
                await self._fail(
                    task, queue, ErrorKind.INTERNAL, str(e), self._attempted(task)
                )
            except Exception as e:
                logger.exception("Unexpected error while checking %s", task.url)
                await self._fail(
                    task, queue, ErrorKind.INTERNAL, str(e), self._attempted(task)
                )

    def _attempted(self, task: UrlTask) -> int:
        return self._attempts.get(task.url, 1)

    async def _check(
        self, task: UrlTask, queue: "asyncio.Queue[Optional[RunRecord]]"
    ) -> None:
        strategy = self._config.retry_strategy
        allowed = max_attempts(strategy, self._config.max_retries)

        attempt = 0
        while True:
            attempt += 1
            self._attempts[task.url] = attempt
            result = await self._visitor.visit(task, self._config.navigation_timeout)
            outcome = classify(result, task)
            decision = decide(outcome, strategy, attempt, allowed)
            if decision is not RetryDecision.RETRY:
                break
            logger.warning(
                "%s on %s, will retry (attempt %d of %d)",
                type(outcome).__name__,
                task.url,
                attempt,
                allowed,
            )

        if decision is RetryDecision.FINAL_SUCCESS and isinstance(outcome, Success):
            await self._finish_success(task, outcome, attempt, queue)
        else:
            await self._finish_failure(task, outcome, attempt, queue)

    async def _finish_success(
        self,
        task: UrlTask,
        outcome: Success,
        attempts: int,
        queue: "asyncio.Queue[Optional[RunRecord]]",
    ) -> None:
        url = task.url
        previous = await self._baselines.load(task.key)
        status = diff(previous, outcome.content)

        current_key = self._baselines.next_screenshot_key(task.key, previous)
        record = RunRecord(
            url=url,
            status=status.value,
            attempts=attempts,
            is_first_run=status is DiffStatus.FIRST_RUN,
            content=outcome.content,
            current_screenshot_url=self._baselines.public_url(current_key),
            send_notification_to=self._config.send_notification_to,
        )

        logger.info("Processing URL: %s", url)
        mail: Optional[_Mail] = None
        slack: Optional[dict] = None

        if previous is None:
            logger.warning("Running for the first time for URL: %s, no check", url)
        else:
            record.previous_data = previous.content
            record.previous_screenshot_url = self._baselines.public_url(
                previous.screenshot_key
            )
            if status is DiffStatus.UNCHANGED:
                logger.warning("No change for URL: %s", url)
            else:
                logger.warning("Content changed for URL: %s", url)
                report = assemble_report(
                    task,
                    previous.content,
                    outcome.content,
                    previous.screenshot,
                    outcome.screenshot,
                    record.previous_screenshot_url,
                    record.current_screenshot_url,
                    budget=self._budget,
                )
                if report.truncated:
                    logger.warning(
                        "Screenshots are bigger than %d, not sending them as "
                        "part of email attachment for URL: %s",
                        self._budget,
                        url,
                    )
                mail = _Mail(report.subject, report.text, report.attachments)
                slack = build_slack_message(
                    url,
                    previous.content,
                    outcome.content,
                    record.current_screenshot_url,
                )

        async def commit() -> None:
            # the baseline record is the last write of a successful run
            if slack is not None:
                await self._baselines.put_json(slack_message_key(task.key), slack)
            await self._baselines.save(
                task.key,
                Baseline(content=outcome.content, screenshot=outcome.screenshot),
                previous,
            )

        await self._commit(task, record, queue, commit, mail)

    async def _finish_failure(
        self,
        task: UrlTask,
        outcome: Outcome,
        attempts: int,
        queue: "asyncio.Queue[Optional[RunRecord]]",
    ) -> None:
        if isinstance(outcome, SoftNotFound):
            logger.warning(
                "404 Status - Page not found! Please change the URL: %s", task.url
            )
            await self._fail(
                task,
                queue,
                outcome.error_kind,
                outcome.message,
                attempts,
                status="not_found",
                notify=False,
            )
            return

        logger.warning(
            "Check of %s failed after %d attempt(s): %s",
            task.url,
            attempts,
            outcome.message,
        )
        await self._fail(
            task,
            queue,
            outcome.error_kind,
            outcome.message,
            attempts,
            screenshot=getattr(outcome, "full_page_screenshot", None),
        )

    async def _fail(
        self,
        task: UrlTask,
        queue: "asyncio.Queue[Optional[RunRecord]]",
        kind: ErrorKind,
        message: str,
        attempts: int,
        screenshot: Optional[bytes] = None,
        status: str = "failed",
        notify: bool = True,
    ) -> None:
        failure = FailureInfo(kind=kind, message=message)
        if screenshot is not None:
            failure.full_page_screenshot_url = self._baselines.public_url(
                failure_screenshot_key(task.key)
            )

        record = RunRecord(
            url=task.url,
            status=status,
            attempts=attempts,
            send_notification_to=self._config.send_notification_to,
            failure=failure,
        )

        mail: Optional[_Mail] = None
        if notify and self._config.inform_on_error:
            subject, text, attachments = assemble_failure_notice(
                task, failure, attempts, screenshot, budget=self._budget
            )
            mail = _Mail(subject, text, attachments)

        async def commit() -> None:
            if screenshot is not None:
                await self._baselines.save_failure_screenshot(task.key, screenshot)

        await self._commit(task, record, queue, commit, mail)

    async def _commit(
        self,
        task: UrlTask,
        record: RunRecord,
        queue: "asyncio.Queue[Optional[RunRecord]]",
        store: Callable[[], Awaitable[None]],
        mail: Optional[_Mail],
    ) -> None:
        async def _run() -> None:
            await store()
            await queue.put(record)
            if mail is not None:
                await self._send(task, mail)

        future = asyncio.ensure_future(_run())
        self._committing.add(future)
        future.add_done_callback(self._committing.discard)
        await asyncio.shield(future)

    async def _send(self, task: UrlTask, mail: _Mail) -> None:
        to = self._config.send_notification_to
        if not to:
            logger.warning(
                "No e-mail address provided, email notification skipped for URL: %s",
                task.url,
            )
            return
        if self._mailer is None:
            logger.warning(
                "No mailer configured, email notification skipped for URL: %s",
                task.url,
            )
            return

        logger.info("Sending mail to %s for URL: %s...", to, task.url)
        try:
            await self._mailer.send(to, mail.subject, mail.text, mail.attachments)
        except DeliveryError as e:
            logger.error("Mail for %s was not sent: %s", task.url, e)
        except Exception:
            # the record is already queued, a mail error must not add another
            logger.exception("Mail for %s was not sent", task.url)
