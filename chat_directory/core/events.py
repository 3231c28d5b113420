"""
Publish/subscribe event bus shared by the directories.

Only the contract is owned here: listeners subscribe by event name and
receive ``(payload, sender)``. Delivery is synchronous and in subscription
order.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

DATA_CHANGED = "data.changed"
USER_SWAPPED = "profile.user.swapped"
NOTICE_CHANGED = "notice.changed"

Listener = Callable[[Any, Any], None]


class EventBus:
    """Synchronous event bus"""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Subscribe ``listener``; returns a function that unsubscribes it"""
        self._listeners.setdefault(event, []).append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: str, listener: Listener) -> bool:
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)
            return True
        return False

    def emit(self, event: str, payload: Any = None, sender: Optional[Any] = None) -> int:
        """Deliver ``payload`` to every listener of ``event``.

        Returns:
            Number of listeners called
        """
        listeners = list(self._listeners.get(event, ()))
        logger.debug("emit %s to %d listener(s)", event, len(listeners))
        for listener in listeners:
            listener(payload, sender)
        return len(listeners)

    def on_data_change(self, listener: Listener) -> Callable[[], None]:
        return self.on(DATA_CHANGED, listener)

    def emit_data_change(self, change: Dict[str, Any], sender: Optional[Any] = None) -> int:
        return self.emit(DATA_CHANGED, change, sender)
