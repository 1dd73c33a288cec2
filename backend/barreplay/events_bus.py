"""Synchronous change-notification bus for a single session."""
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]


class EventBus:
    """Fan-out of event payloads to subscribed callbacks.

    Listeners run on the caller's thread, in subscription order, right after
    the state change that produced the event.
    """

    def __init__(self) -> None:
        self._subscribers: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._subscribers.append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._subscribers:
            self._subscribers.remove(listener)

    def dispatch(self, payload: Dict[str, Any]) -> None:
        for listener in list(self._subscribers):
            try:
                listener(payload)
            except Exception:
                logger.exception("Event listener failed for %s event", payload.get("type"))
