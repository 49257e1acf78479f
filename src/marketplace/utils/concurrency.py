"""Optimistic concurrency for contended counters.

Stock and coupon usage are changed by command handlers that load the fresh
aggregate, check their condition and persist under Protean's version check.
A concurrent writer makes the save fail with ``ExpectedVersionError``; the
command is then re-run so the condition is evaluated again on fresh state.
"""

import structlog
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from marketplace import settings

logger = structlog.get_logger(__name__)


def process_with_retry(command, on_exhausted):
    """Process ``command`` synchronously, re-running it after version conflicts.

    Args:
        command: The Protean command to process.
        on_exhausted: Zero-argument callable returning the exception raised
            once ``max_counter_retries`` attempts have all conflicted.
    """
    attempts = settings.max_counter_retries()
    for attempt in range(1, attempts + 1):
        try:
            return current_domain.process(command, asynchronous=False)
        except ExpectedVersionError:
            logger.warning(
                "counter_update_conflict",
                command=command.__class__.__name__,
                attempt=attempt,
                max_attempts=attempts,
            )
    raise on_exhausted()
