"""Compare current content against the stored baseline."""

from typing import Optional

from pagewatch.core.models import Baseline, DiffStatus


def diff(baseline: Optional[Baseline], content: str) -> DiffStatus:
    """Classify the current content against the baseline.

    Comparison is exact string equality: case and whitespace count.
    """
    if baseline is None:
        return DiffStatus.FIRST_RUN
    if baseline.content == content:
        return DiffStatus.UNCHANGED
    return DiffStatus.CHANGED
