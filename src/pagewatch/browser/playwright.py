"""Page visitor driving headless Chromium through Playwright."""

import asyncio
import logging
from typing import Any, Callable, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from pagewatch.browser.blocks import detect_block
from pagewatch.core.exceptions import CaptureFailure
from pagewatch.core.interfaces import PageVisitor
from pagewatch.core.models import UrlTask, VisitResult

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1920, "height": 1080}
SCREENSHOT_PADDING = 10


class PlaywrightVisitor(PageVisitor):
    """Visit pages in a shared headless browser."""

    def __init__(
        self,
        headless: bool = True,
        settle_delay: float = 5.0,
        block_predicate: Callable[[str], bool] = detect_block,
    ) -> None:
        """Initialize the visitor.

        Args:
            headless: Run the browser without a window.
            settle_delay: Seconds to wait after load for dynamic content.
            block_predicate: Called with the rendered HTML; True means blocked.
        """
        self._headless = headless
        self._settle_delay = settle_delay
        self._is_blocked = block_predicate
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def __aenter__(self) -> "PlaywrightVisitor":
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self._headless
        )
        self._context = await self._browser.new_context(viewport=VIEWPORT)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._context:
            await self._context.close()
            self._context = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def visit(self, task: UrlTask, navigation_timeout: int) -> VisitResult:
        if self._context is None:
            raise RuntimeError("PlaywrightVisitor must be used as a context manager")

        page = await self._context.new_page()
        try:
            return await self._visit_page(page, task, navigation_timeout)
        finally:
            await page.close()

    async def _visit_page(
        self, page: Page, task: UrlTask, navigation_timeout: int
    ) -> VisitResult:
        url = task.url

        try:
            response = await page.goto(
                url, wait_until="networkidle", timeout=navigation_timeout
            )
        except PlaywrightError as e:
            logger.warning("Navigation to %s failed: %s", url, e.message)
            return VisitResult(http_status=None, error=e.message)

        if response is None:
            return VisitResult(http_status=None, error="No response received")

        status = response.status
        if status == 404:
            return VisitResult(http_status=status)
        if status >= 400:
            return VisitResult(
                http_status=status,
                full_page_screenshot=await self._try_full_page(page),
            )

        logger.info("Page loaded with title: %s on URL: %s", await page.title(), url)
        if self._settle_delay:
            await asyncio.sleep(self._settle_delay)

        if await self._check_blocked(page, url):
            return VisitResult(
                http_status=status,
                blocked=True,
                full_page_screenshot=await self._full_page(page, url),
            )

        content = await self._extract_text(page, task.content_selector)
        screenshot = None
        if content is not None:
            screenshot = await self._screenshot_element(
                page, task.effective_screenshot_selector
            )

        result = VisitResult(
            http_status=status,
            extracted_content=content,
            element_screenshot=screenshot,
        )
        if content is None or screenshot is None:
            result.full_page_screenshot = await self._full_page(page, url)
        return result

    async def _check_blocked(self, page: Page, url: str) -> bool:
        try:
            html = await page.content()
            return self._is_blocked(html)
        except Exception as e:  # the predicate is best-effort
            logger.warning("Could not test %s for captcha presence: %s", url, e)
            return False

    async def _extract_text(self, page: Page, selector: str) -> Optional[str]:
        try:
            element = await page.query_selector(selector)
            if element is None:
                return None
            return await element.text_content()
        except PlaywrightError as e:
            logger.debug("Content selector %s failed: %s", selector, e.message)
            return None

    async def _screenshot_element(self, page: Page, selector: str) -> Optional[bytes]:
        """Screenshot an element with some padding around it."""
        try:
            element = await page.query_selector(selector)
            if element is None:
                return None
            box = await element.bounding_box()
            if box is None:
                return None
            # bounding_box() is viewport-relative, full-page clips are not
            scroll_x, scroll_y = await page.evaluate(
                "() => [window.scrollX, window.scrollY]"
            )
            x = max(box["x"] + scroll_x - SCREENSHOT_PADDING, 0)
            y = max(box["y"] + scroll_y - SCREENSHOT_PADDING, 0)
            return await page.screenshot(
                type="png",
                full_page=True,
                clip={
                    "x": x,
                    "y": y,
                    "width": box["width"] + 2 * SCREENSHOT_PADDING,
                    "height": box["height"] + 2 * SCREENSHOT_PADDING,
                },
            )
        except PlaywrightError as e:
            logger.debug("Screenshot selector %s failed: %s", selector, e.message)
            return None

    async def _full_page(self, page: Page, url: str) -> bytes:
        try:
            return await page.screenshot(full_page=True, type="jpeg", quality=30)
        except PlaywrightError as e:
            raise CaptureFailure(url, e.message) from e

    async def _try_full_page(self, page: Page) -> Optional[bytes]:
        try:
            return await page.screenshot(full_page=True, type="jpeg", quality=30)
        except PlaywrightError:
            return None
