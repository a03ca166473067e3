"""Change-detection engine: classification, retries, diffing and reports."""

from pagewatch.engine.classifier import classify
from pagewatch.engine.diff import diff
from pagewatch.engine.monitor import ChangeMonitor
from pagewatch.engine.retry import decide

__all__ = ["ChangeMonitor", "classify", "decide", "diff"]
