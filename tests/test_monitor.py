"""End-to-end tests for the change monitor with fake collaborators."""

import asyncio

import pytest

from pagewatch.core.exceptions import CaptureFailure, DeliveryError
from pagewatch.core.interfaces import Mailer, PageVisitor
from pagewatch.core.models import RetryStrategy, UrlTask, VisitResult
from pagewatch.engine.monitor import ChangeMonitor
from pagewatch.storage.baseline import (
    BaselineStore,
    failure_screenshot_key,
    slack_message_key,
)
from pagewatch.storage.filesystem import FilesystemBlobStore

from conftest import (
    FULL_PAGE,
    PNG_A,
    PNG_B,
    FakeMailer,
    FakeVisitor,
    MemorySink,
    make_config,
    ok_visit,
)


async def _run(visitor, baselines, config, mailer=None, sink=None, **kwargs):
    sink = sink or MemorySink()
    monitor = ChangeMonitor(visitor, baselines, sink, config, mailer=mailer, **kwargs)
    records = await monitor.run()
    return records, sink


class TestFirstAndRepeatedRuns:
    """Tests for the first-run, unchanged and changed paths."""

    @pytest.mark.asyncio
    async def test_first_run(self, task, baselines, mailer):
        """Test a first visit stores a baseline and records isFirstRun."""
        visitor = FakeVisitor({task.url: [ok_visit("10 EUR")]})
        records, sink = await _run(visitor, baselines, make_config(task), mailer)

        [record] = sink.records
        assert record["isFirstRun"] is True
        assert record["previousData"] is None
        assert record["previousScreenshotUrl"] is None
        assert record["content"] == "10 EUR"
        assert record["currentScreenshotUrl"].startswith("file://")
        assert record["status"] == "first_run"
        assert mailer.sent == []

        baseline = await baselines.load(task.key)
        assert baseline.content == "10 EUR"
        assert baseline.screenshot == PNG_A
        assert records[0].attempts == 1

    @pytest.mark.asyncio
    async def test_unchanged_second_run(self, task, baselines, mailer):
        """Test identical content is unchanged and sends no mail."""
        config = make_config(task)
        await _run(FakeVisitor({task.url: [ok_visit("10 EUR", PNG_A)]}), baselines, config, mailer)
        first = await baselines.load(task.key)

        _, sink = await _run(
            FakeVisitor({task.url: [ok_visit("10 EUR", PNG_B)]}), baselines, config, mailer
        )

        [record] = sink.records
        assert record["status"] == "unchanged"
        assert record["isFirstRun"] is False
        assert record["previousData"] == "10 EUR"
        assert mailer.sent == []

        second = await baselines.load(task.key)
        assert second.content == first.content
        # screenshot refreshed, comparison text untouched
        assert second.screenshot == PNG_B

    @pytest.mark.asyncio
    async def test_changed_sends_mail_with_attachments(self, task, baselines, blob_store, mailer):
        """Test changed content sends one mail with both screenshots."""
        config = make_config(task)
        await _run(FakeVisitor({task.url: [ok_visit("10 EUR", PNG_A)]}), baselines, config, mailer)

        _, sink = await _run(
            FakeVisitor({task.url: [ok_visit("12 EUR", PNG_B)]}), baselines, config, mailer
        )

        [record] = sink.records
        assert record["status"] == "changed"
        assert record["previousData"] == "10 EUR"
        assert record["content"] == "12 EUR"
        assert record["previousScreenshotUrl"]
        assert record["currentScreenshotUrl"]
        assert record["previousScreenshotUrl"] != record["currentScreenshotUrl"]

        [mail] = mailer.sent
        assert mail["to"] == "ops@example.com"
        assert mail["subject"] == f"pagewatch - page changed! ({task.url})"
        assert "Previous data: 10 EUR" in mail["text"]
        assert "Current data: 12 EUR" in mail["text"]
        assert len(mail["attachments"]) == 2

        baseline = await baselines.load(task.key)
        assert baseline.content == "12 EUR"
        assert baseline.screenshot == PNG_B
        assert await blob_store.get(slack_message_key(task.key)) is not None

    @pytest.mark.asyncio
    async def test_changed_over_budget(self, task, baselines, mailer):
        """Test oversized screenshots are dropped from the mail."""
        config = make_config(task)
        await _run(FakeVisitor({task.url: [ok_visit("a")]}), baselines, config, mailer)
        await _run(
            FakeVisitor({task.url: [ok_visit("b")]}),
            baselines,
            config,
            mailer,
            attachment_budget=10,
        )

        [mail] = mailer.sent
        assert mail["attachments"] == []
        assert "Screenshots are bigger than 10" in mail["text"]

    @pytest.mark.asyncio
    async def test_changed_without_recipient(self, task, baselines, mailer):
        """Test no mail is attempted without a recipient."""
        config = make_config(task, send_to=None)
        await _run(FakeVisitor({task.url: [ok_visit("a")]}), baselines, config, mailer)
        _, sink = await _run(FakeVisitor({task.url: [ok_visit("b")]}), baselines, config, mailer)

        assert sink.records[0]["status"] == "changed"
        assert mailer.sent == []

    @pytest.mark.asyncio
    async def test_mail_failure_keeps_commit(self, task, baselines):
        """Test a failed mail does not undo the saved baseline or record."""

        class BrokenMailer(Mailer):
            async def send(self, to, subject, text, attachments):
                raise DeliveryError("smtp down")

        config = make_config(task)
        await _run(FakeVisitor({task.url: [ok_visit("a")]}), baselines, config)
        _, sink = await _run(
            FakeVisitor({task.url: [ok_visit("b")]}), baselines, config, BrokenMailer()
        )

        assert sink.records[0]["status"] == "changed"
        assert (await baselines.load(task.key)).content == "b"

    @pytest.mark.asyncio
    async def test_mail_crash_keeps_single_record(self, task, baselines):
        """Test an unexpected mailer error does not add a failure record."""

        class CrashingMailer(Mailer):
            async def send(self, to, subject, text, attachments):
                raise RuntimeError("bad endpoint")

        config = make_config(task)
        await _run(FakeVisitor({task.url: [ok_visit("a")]}), baselines, config)
        records, sink = await _run(
            FakeVisitor({task.url: [ok_visit("b")]}), baselines, config, CrashingMailer()
        )

        assert [r["status"] for r in sink.records] == ["changed"]
        assert len(records) == 1
        assert (await baselines.load(task.key)).content == "b"

    @pytest.mark.asyncio
    async def test_slack_write_failure_keeps_previous_baseline(self, task, temp_dir, mailer):
        """Test a failed auxiliary write leaves the change to be reported later."""

        class SlackFailingStore(FilesystemBlobStore):
            fail = True

            async def set(self, key, value, content_type=None):
                if self.fail and key == slack_message_key(task.key):
                    raise DeliveryError("store unavailable")
                await super().set(key, value, content_type)

        store = SlackFailingStore(temp_dir / "store")
        baselines = BaselineStore(store)
        config = make_config(task)
        store.fail = False
        await _run(FakeVisitor({task.url: [ok_visit("a", PNG_A)]}), baselines, config, mailer)

        store.fail = True
        _, sink = await _run(
            FakeVisitor({task.url: [ok_visit("b", PNG_B)]}), baselines, config, mailer
        )
        [record] = sink.records
        assert record["status"] == "failed"
        assert record["failure"]["kind"] == "internal_error"
        assert (await baselines.load(task.key)).content == "a"
        assert mailer.sent == []

        store.fail = False
        _, sink = await _run(
            FakeVisitor({task.url: [ok_visit("b", PNG_B)]}), baselines, config, mailer
        )
        [record] = sink.records
        assert record["status"] == "changed"
        assert record["previousData"] == "a"
        assert len(mailer.sent) == 1


class TestFailures:
    """Tests for retry exhaustion and failure records."""

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self, task, baselines, blob_store, mailer):
        """Test a persistent 503 under on-block ends as a failure record."""
        visitor = FakeVisitor(
            {task.url: [VisitResult(http_status=503, full_page_screenshot=FULL_PAGE)]}
        )
        config = make_config(task, strategy=RetryStrategy.ON_BLOCK, max_retries=3)
        records, sink = await _run(visitor, baselines, config, mailer)

        assert visitor.attempts(task.url) == 4
        [record] = sink.records
        assert record["status"] == "failed"
        assert record["content"] is None
        assert record["currentScreenshotUrl"] is None
        assert record["attempts"] == 4
        assert record["failure"]["kind"] == "transient_block"
        assert record["failure"]["fullPageScreenshotUrl"].endswith(
            failure_screenshot_key(task.key)
        )
        assert await blob_store.get(failure_screenshot_key(task.key)) == FULL_PAGE
        assert await baselines.load(task.key) is None
        assert mailer.sent == []

    @pytest.mark.asyncio
    async def test_selector_failure_never_retry(self, task, baselines):
        """Test a selector failure under never-retry stops after one attempt."""
        visitor = FakeVisitor(
            {task.url: [VisitResult(http_status=200, full_page_screenshot=FULL_PAGE)]}
        )
        config = make_config(task, strategy=RetryStrategy.NEVER_RETRY)
        _, sink = await _run(visitor, baselines, config)

        assert visitor.attempts(task.url) == 1
        [record] = sink.records
        assert record["status"] == "failed"
        assert record["failure"]["kind"] == "selector_mismatch"

    @pytest.mark.asyncio
    async def test_selector_failure_on_block_not_retried(self, task, baselines):
        visitor = FakeVisitor(
            {task.url: [VisitResult(http_status=200, full_page_screenshot=FULL_PAGE)]}
        )
        await _run(visitor, baselines, make_config(task, strategy=RetryStrategy.ON_BLOCK))
        assert visitor.attempts(task.url) == 1

    @pytest.mark.asyncio
    async def test_retry_then_success(self, task, baselines):
        """Test a block followed by a good visit succeeds on the retry."""
        visitor = FakeVisitor(
            {
                task.url: [
                    VisitResult(http_status=200, blocked=True, full_page_screenshot=FULL_PAGE),
                    ok_visit("10 EUR"),
                ]
            }
        )
        records, sink = await _run(visitor, baselines, make_config(task))

        assert visitor.attempts(task.url) == 2
        assert sink.records[0]["status"] == "first_run"
        assert records[0].attempts == 2

    @pytest.mark.asyncio
    async def test_soft_404(self, task, baselines, mailer):
        """Test a 404 is recorded once, never retried and never mailed."""
        visitor = FakeVisitor({task.url: [VisitResult(http_status=404)]})
        config = make_config(task, strategy=RetryStrategy.ON_ALL_ERRORS, inform_on_error=True)
        _, sink = await _run(visitor, baselines, config, mailer)

        assert visitor.attempts(task.url) == 1
        [record] = sink.records
        assert record["status"] == "not_found"
        assert record["failure"]["kind"] == "permanent_missing"
        assert mailer.sent == []

    @pytest.mark.asyncio
    async def test_failure_notice(self, task, baselines, mailer):
        """Test inform-on-error sends a notice distinct from change mails."""
        visitor = FakeVisitor(
            {task.url: [VisitResult(http_status=200, full_page_screenshot=FULL_PAGE)]}
        )
        config = make_config(task, strategy=RetryStrategy.NEVER_RETRY, inform_on_error=True)
        await _run(visitor, baselines, config, mailer)

        [mail] = mailer.sent
        assert mail["subject"] == f"pagewatch - check failed! ({task.url})"
        assert len(mail["attachments"]) == 1

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_baseline(self, task, baselines):
        """Test a failed run leaves the stored baseline untouched."""
        config = make_config(task, strategy=RetryStrategy.NEVER_RETRY)
        await _run(FakeVisitor({task.url: [ok_visit("10 EUR")]}), baselines, config)
        await _run(
            FakeVisitor({task.url: [VisitResult(http_status=500)]}), baselines, config
        )
        assert (await baselines.load(task.key)).content == "10 EUR"

    @pytest.mark.asyncio
    async def test_capture_failure(self, task, baselines):
        """Test a missing fallback screenshot is a capture failure record."""

        class NoScreenshotVisitor(PageVisitor):
            async def visit(self, task, navigation_timeout):
                raise CaptureFailure(task.url, "page crashed")

        _, sink = await _run(NoScreenshotVisitor(), baselines, make_config(task))

        [record] = sink.records
        assert record["status"] == "failed"
        assert record["failure"]["kind"] == "capture_failure"
        assert record["failure"]["fullPageScreenshotUrl"] is None

    @pytest.mark.asyncio
    async def test_capture_failure_counts_attempts(self, task, baselines):
        """Test a capture failure on a retry reports every attempt made."""

        class FlakyVisitor(PageVisitor):
            def __init__(self):
                self.calls = 0

            async def visit(self, task, navigation_timeout):
                self.calls += 1
                if self.calls < 3:
                    return VisitResult(http_status=503, full_page_screenshot=FULL_PAGE)
                raise CaptureFailure(task.url, "page crashed")

        visitor = FlakyVisitor()
        config = make_config(task, strategy=RetryStrategy.ON_ALL_ERRORS, max_retries=5)
        _, sink = await _run(visitor, baselines, config)

        [record] = sink.records
        assert visitor.calls == 3
        assert record["attempts"] == 3
        assert record["failure"]["kind"] == "capture_failure"


class TestIsolation:
    """Tests for independent per-URL workflows."""

    @pytest.mark.asyncio
    async def test_one_record_per_url(self, baselines):
        """Test a failing URL does not affect its siblings."""
        good = UrlTask(url="https://a.example", content_selector="h1")
        bad = UrlTask(url="https://b.example", content_selector="h1")
        missing = UrlTask(url="https://c.example", content_selector="h1")

        class MixedVisitor(FakeVisitor):
            async def visit(self, task, navigation_timeout):
                if task.url == bad.url:
                    self.calls.append(task.url)
                    raise RuntimeError("browser crashed")
                return await super().visit(task, navigation_timeout)

        visitor = MixedVisitor(
            {good.url: [ok_visit("x")], missing.url: [VisitResult(http_status=404)]}
        )
        _, sink = await _run(visitor, baselines, make_config(good, bad, missing))

        by_url = {r["url"]: r for r in sink.records}
        assert set(by_url) == {good.url, bad.url, missing.url}
        assert by_url[good.url]["status"] == "first_run"
        assert by_url[bad.url]["failure"]["kind"] == "internal_error"
        assert by_url[missing.url]["status"] == "not_found"

    @pytest.mark.asyncio
    async def test_concurrency_limit(self, baselines):
        """Test no more than max_concurrency visits run at once."""
        tasks = [UrlTask(url=f"https://{i}.example", content_selector="h1") for i in range(6)]

        class SlowVisitor(PageVisitor):
            def __init__(self):
                self.active = 0
                self.peak = 0

            async def visit(self, task, navigation_timeout):
                self.active += 1
                self.peak = max(self.peak, self.active)
                await asyncio.sleep(0.01)
                self.active -= 1
                return ok_visit(task.url)

        visitor = SlowVisitor()
        records, _ = await _run(visitor, baselines, make_config(*tasks), max_concurrency=2)

        assert len(records) == 6
        assert visitor.peak == 2

    @pytest.mark.asyncio
    async def test_cancelled_run_leaves_baseline(self, task, baselines):
        """Test cancelling before the commit saves nothing."""
        config = make_config(task)
        await _run(FakeVisitor({task.url: [ok_visit("10 EUR")]}), baselines, config)

        started = asyncio.Event()

        class HangingVisitor(PageVisitor):
            async def visit(self, task, navigation_timeout):
                started.set()
                await asyncio.sleep(3600)

        sink = MemorySink()
        monitor = ChangeMonitor(HangingVisitor(), baselines, sink, config)
        run = asyncio.create_task(monitor.run())
        await started.wait()
        run.cancel()
        with pytest.raises(asyncio.CancelledError):
            await run

        assert sink.records == []
        assert (await baselines.load(task.key)).content == "10 EUR"
