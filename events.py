from collections import defaultdict
from threading import Lock
from typing import Any, Callable, Dict, List

from log import get_logger

logger = get_logger(__name__)

Handler = Callable[[Any], Any]
Unsubscribe = Callable[[], None]


class EventChannel:
    """Named events delivered to subscribed handlers in subscription order."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._lock = Lock()

    def subscribe(self, event_type: str, handler: Handler) -> Unsubscribe:
        with self._lock:
            self._handlers[event_type].append(handler)

        def unsubscribe():
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def emit(self, event_type: str, payload: Any = None) -> List[Any]:
        """Call every handler for ``event_type`` and return their results."""
        with self._lock:
            handlers = list(self._handlers.get(event_type, []))
        if not handlers:
            logger.debug(f"No handlers for {event_type}")
        return [handler(payload) for handler in handlers]

    def handler_count(self, event_type: str) -> int:
        with self._lock:
            return len(self._handlers.get(event_type, []))
