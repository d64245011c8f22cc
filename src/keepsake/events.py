import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, DefaultDict, List

logger = logging.getLogger(__name__)


class StoreEvent(str, Enum):
    """Lifecycle notifications emitted by a RecordStore.

    BEFORE_* callbacks take no arguments; AFTER_* callbacks receive the
    operation's success flag.
    """

    BEFORE_SAVE = "before_save"
    AFTER_SAVE = "after_save"
    BEFORE_LOAD = "before_load"
    AFTER_LOAD = "after_load"
    BEFORE_DELETE = "before_delete"
    AFTER_DELETE = "after_delete"


class EventHooks:
    """A small synchronous publish/subscribe list keyed by StoreEvent.

    Callbacks run in-line, in registration order. A failing callback is
    logged and does not stop the remaining callbacks.
    """

    def __init__(self) -> None:
        self._subs: DefaultDict[StoreEvent, List[Callable[..., Any]]] = defaultdict(list)

    def subscribe(self, event: StoreEvent, callback: Callable[..., Any]) -> None:
        """Register ``callback`` for ``event``.

        Args:
            event: The event to listen for.
            callback: ``callback()`` for BEFORE_* events, ``callback(success)`` for AFTER_* events.
        """
        if not callable(callback):
            raise TypeError("callback must be callable")
        event = StoreEvent(event)
        self._subs[event].append(callback)
        logger.debug("Subscribed %s to '%s'", getattr(callback, "__name__", str(callback)), event.value)

    def unsubscribe(self, event: StoreEvent, callback: Callable[..., Any]) -> None:
        event = StoreEvent(event)
        if callback in self._subs.get(event, []):
            self._subs[event].remove(callback)
            logger.debug("Unsubscribed %s from '%s'", getattr(callback, "__name__", str(callback)), event.value)

    def count(self, event: StoreEvent) -> int:
        return len(self._subs.get(StoreEvent(event), []))

    def emit(self, event: StoreEvent, *args: Any) -> None:
        subs = list(self._subs.get(event, []))
        logger.debug("Emitting '%s' to %d subscribers", event.value, len(subs))
        for cb in subs:
            try:
                cb(*args)
            except Exception:
                logger.exception("Unhandled exception in '%s' subscriber", event.value)
