"""Bounded retry for flaky boolean operations."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

LOGGER = logging.getLogger("livestream_viewer.retry")


def with_retry(
    attempt: Callable[[], bool],
    max_attempts: int,
    *,
    stop_event: Optional[threading.Event] = None,
) -> bool:
    """Run ``attempt`` until it returns ``True`` or ``max_attempts`` is used up.

    A ``max_attempts`` below 1 is raised to 1, so ``attempt`` always runs at
    least once. An attempt that raises counts as a failed attempt; the error is
    logged and never propagated. Exhausting every attempt is reported through
    the return value only.

    When ``stop_event`` is set no further attempts are started.
    """

    if max_attempts < 1:
        max_attempts = 1

    for index in range(1, max_attempts + 1):
        if stop_event is not None and stop_event.is_set():
            LOGGER.debug("Retry cancelled before attempt %d of %d", index, max_attempts)
            return False

        LOGGER.debug("Beginning attempt %d of %d", index, max_attempts)
        try:
            if attempt():
                LOGGER.debug("Attempt %d of %d succeeded", index, max_attempts)
                return True
        except Exception as exc:  # noqa: BLE001
            LOGGER.error(
                "Attempt %d of %d raised %s: %s",
                index,
                max_attempts,
                exc.__class__.__name__,
                exc,
            )
        else:
            LOGGER.debug("Attempt %d of %d failed", index, max_attempts)

    LOGGER.warning("All %d attempt(s) completed without success", max_attempts)
    return False
