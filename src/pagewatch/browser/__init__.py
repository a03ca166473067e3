"""Browser-backed page visiting."""

from pagewatch.browser.blocks import detect_block
from pagewatch.browser.playwright import PlaywrightVisitor

__all__ = ["PlaywrightVisitor", "detect_block"]
