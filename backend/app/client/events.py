"""
Event bus for one content view.

Components that need to react to reconciliation results (title header,
summary tab, chat panel) subscribe here instead of reaching for shared global
callbacks. The bus lives as long as the view's poller; close() drops every
subscriber.
"""

import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

TITLE_CHANGED = "title_changed"
SUMMARY_READY = "summary_ready"
STATUS_CHANGED = "status_changed"
POLL_TIMED_OUT = "poll_timed_out"

Handler = Callable[[Dict[str, Any]], Any]


class ContentEvents:
    """
    Usage:
    ------
    events = ContentEvents()
    unsubscribe = events.subscribe(TITLE_CHANGED, lambda payload: print(payload["title"]))
    await events.publish(TITLE_CHANGED, {"title": "Gravitation"})
    unsubscribe()
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register a sync or async handler; returns an unsubscribe function."""
        if self._closed:
            raise RuntimeError("Cannot subscribe to a closed event bus")
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers.get(event, []):
                self._handlers[event].remove(handler)

        return unsubscribe

    def subscriber_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    async def publish(self, event: str, payload: Dict[str, Any]) -> int:
        """
        Deliver ``payload`` to every handler of ``event``, in subscription order.

        A failing handler is logged and does not stop delivery to the rest.

        Returns:
            Number of handlers called
        """
        if self._closed:
            return 0

        delivered = 0
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Handler for '{event}' failed")
            delivered += 1
        return delivered

    def close(self) -> None:
        self._handlers.clear()
        self._closed = True
