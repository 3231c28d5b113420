"""
Debounced action on the running asyncio loop.

Each ``do()`` cancels the pending run and schedules a new one ``delay``
seconds later, so a burst of triggers results in a single call made after
the last trigger. The action takes no arguments and reads current state
when it runs.
"""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class DelayAction:
    def __init__(self, action: Callable[[], None], delay: float = 0.1):
        self.action = action
        self.delay = delay
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def do(self) -> None:
        """Schedule the action, replacing any pending run.

        Raises:
            RuntimeError: when called outside a running event loop
        """
        loop = asyncio.get_running_loop()
        self.cancel()
        self._handle = loop.call_later(self.delay, self._run)

    def cancel(self) -> bool:
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        return True

    def flush(self) -> bool:
        """Run a pending action now; returns whether one was pending"""
        if not self.cancel():
            return False
        self.action()
        return True

    def _run(self) -> None:
        self._handle = None
        logger.debug("delay action fired after %.3fs", self.delay)
        self.action()
