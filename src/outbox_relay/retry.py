"""Delay computation between retries of failed outbox items."""

import random
from datetime import timedelta

from outbox_relay.config import RetryDelayPolicy, RetrySettings

# Upper bound of the random jitter added to exponential delays
EXPONENTIAL_JITTER_MS = 300


def constant_delay(retry_settings: RetrySettings, retry_number: int) -> timedelta:
    """Always the configured retry delay."""
    return retry_settings.retry_delay


def linear_delay(retry_settings: RetrySettings, retry_number: int) -> timedelta:
    """``retry_number * retry_delay``, saturating at ``retry_max_delay``."""
    try:
        delay = retry_settings.retry_delay * retry_number
    except OverflowError:
        return retry_settings.retry_max_delay

    return min(delay, retry_settings.retry_max_delay)


def exponential_delay(
    retry_settings: RetrySettings,
    retry_number: int,
    rng: random.Random | None = None,
) -> timedelta:
    """``min(2 ** retry_number seconds, retry_max_delay)`` plus up to 300 ms of jitter.

    The jitter spreads retries of items that failed together.
    """
    max_seconds = retry_settings.retry_max_delay.total_seconds()
    seconds = 2 ** retry_number if retry_number < 64 else max_seconds
    delay = timedelta(seconds=min(seconds, max_seconds))

    jitter_ms = (rng or random).randrange(0, EXPONENTIAL_JITTER_MS)
    return delay + timedelta(milliseconds=jitter_ms)


def compute_retry_delay(
    retry_settings: RetrySettings,
    retry_number: int,
    rng: random.Random | None = None,
) -> timedelta:
    """
    Compute the delay before retry attempt ``retry_number``.

    Args:
        retry_settings: Retry settings of the outbox
        retry_number: Sequence number of the retry (1 for the first retry)
        rng: Random source for jitter (module ``random`` by default)

    Returns:
        Delay to add to the current time to get ``retry_after``
    """
    policy = retry_settings.delay_policy

    if policy == RetryDelayPolicy.CONSTANT:
        return constant_delay(retry_settings, retry_number)
    if policy == RetryDelayPolicy.LINEAR:
        return linear_delay(retry_settings, retry_number)
    return exponential_delay(retry_settings, retry_number, rng)
