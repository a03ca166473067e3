"""Retry policy: decide whether a classified attempt is retried."""

from pagewatch.core.models import (
    Blocked,
    Outcome,
    RetryDecision,
    RetryStrategy,
    SelectorFailure,
    ServerError,
    SoftNotFound,
    Success,
)


def max_request_retries(strategy: RetryStrategy, max_retries: int) -> int:
    """Number of retries the crawl may make after the first attempt."""
    if strategy is RetryStrategy.NEVER_RETRY:
        return 0
    return max_retries


def max_attempts(strategy: RetryStrategy, max_retries: int) -> int:
    """Total number of visit attempts allowed for one URL."""
    return max_request_retries(strategy, max_retries) + 1


def decide(
    outcome: Outcome,
    strategy: RetryStrategy,
    attempt: int,
    max_attempts: int,
) -> RetryDecision:
    """Decide what to do with an outcome.

    Args:
        outcome: Classified outcome of the attempt.
        strategy: Configured retry strategy.
        attempt: 1-based number of the attempt that produced ``outcome``.
        max_attempts: Total attempts allowed.

    Returns:
        RETRY, FINAL_FAILURE or FINAL_SUCCESS.
    """
    if isinstance(outcome, Success):
        return RetryDecision.FINAL_SUCCESS

    if isinstance(outcome, SoftNotFound):
        # a missing page will not appear by retrying
        return RetryDecision.FINAL_FAILURE

    if isinstance(outcome, (ServerError, Blocked)):
        retryable = strategy is not RetryStrategy.NEVER_RETRY
    elif isinstance(outcome, SelectorFailure):
        retryable = strategy is RetryStrategy.ON_ALL_ERRORS
    else:
        raise TypeError(f"Unknown outcome type: {type(outcome).__name__}")

    if retryable and attempt < max_attempts:
        return RetryDecision.RETRY
    return RetryDecision.FINAL_FAILURE
