"""
Retransmission timer.

Binary exponential backoff between a minimum and maximum timeout, with a
fixed budget of attempts.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_MIN_TIMEOUT = 0.25
DEFAULT_MAX_TIMEOUT = 10.0
DEFAULT_MAX_ATTEMPTS = 7


class RetryTimer:
    """
    A single-shot retry timer.

    Each start() counts one attempt and arms the timer for the current
    timeout, then doubles the timeout up to max_timeout. When the timer
    fires, expired(fail) is called with fail set once max_attempts
    attempts have been started.

    Usage:
        timer = RetryTimer(asyncio.get_running_loop(), on_expired)
        timer.start_nodelay()
    """

    def __init__(
        self,
        loop: Any,
        expired: Callable[[bool], None],
        min_timeout: float = DEFAULT_MIN_TIMEOUT,
        max_timeout: float = DEFAULT_MAX_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        """
        Args:
            loop: Event loop providing call_later() and time()
            expired: Called with the failure flag when the timer fires
            min_timeout: First retransmission timeout in seconds
            max_timeout: Upper bound for the retransmission timeout
            max_attempts: Attempts allowed before expiry reports failure
        """
        self.loop = loop
        self.expired = expired
        self.min_timeout = min_timeout
        self.max_timeout = max_timeout
        self.max_attempts = max_attempts
        self.timeout = min_timeout
        self.attempts = 0
        self._handle = None

    @property
    def running(self) -> bool:
        return self._handle is not None

    def _arm(self, delay: float):
        self._cancel()
        self._handle = self.loop.call_later(delay, self._fire)

    def _cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def start(self):
        """Arm after the current timeout and count one attempt."""
        self._arm(self.timeout)
        self.attempts += 1
        logger.debug(
            f"Retry timer armed for {self.timeout:.2f}s "
            f"(attempt {self.attempts}/{self.max_attempts})"
        )
        self.timeout = min(self.timeout * 2, self.max_timeout)

    def start_nodelay(self):
        """Arm to fire as soon as possible; does not count as an attempt."""
        self._arm(0)

    def stop(self):
        """Disarm and reset the backoff."""
        self._cancel()
        self.timeout = self.min_timeout
        self.attempts = 0

    def _fire(self):
        self._handle = None
        fail = self.attempts >= self.max_attempts
        self.expired(fail)
