# window_events.py
"""Server-side stand-ins for the browser windows the annotator interacts with.

The browser posts what it observes (focus, blur, load, unload, closed,
heartbeat) and these objects re-emit it to whoever subscribed, which is the
window controller.
"""
import logging
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

RESOURCE_EVENTS = ("focus", "blur", "load", "unload", "closed")
HOST_EVENTS = ("focus", "blur")


class EventSource:
    """Tiny pub/sub. ``subscribe`` returns the matching unsubscribe callable."""

    def __init__(self) -> None:
        self._subs: Dict[str, List[Callable[[], None]]] = {}

    def subscribe(self, event: str, handler: Callable[[], None]) -> Callable[[], None]:
        self._subs.setdefault(event, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._subs.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def emit(self, event: str) -> int:
        handlers = list(self._subs.get(event, []))
        for h in handlers:
            h()
        return len(handlers)

    def subscriber_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._subs.get(event, []))
        return sum(len(v) for v in self._subs.values())


class HostWindow(EventSource):
    """The survey page itself; its focus/blur feed the fallback tracker."""


class RemoteWindow(EventSource):
    """An external window opened by the browser on our behalf."""

    def __init__(self, url: str, clock: Callable[[], int], heartbeat_timeout_ms: int,
                 supports_focus_events: bool = True):
        super().__init__()
        self.url = url
        self.clock = clock
        self.heartbeat_timeout_ms = heartbeat_timeout_ms
        self.supports_focus_events = supports_focus_events
        self.last_seen_ms = clock()
        self._closed = False

    @property
    def is_closed(self) -> bool:
        # A window we stop hearing from was closed outside our control.
        if self._closed:
            return True
        return self.clock() - self.last_seen_ms > self.heartbeat_timeout_ms

    def close(self) -> None:
        self._closed = True

    def heartbeat(self) -> None:
        self.last_seen_ms = self.clock()

    def deliver(self, event: str) -> bool:
        """Feed one browser-observed event. Returns False for unknown events."""
        if event == "heartbeat":
            self.heartbeat()
            return True
        if event not in RESOURCE_EVENTS:
            return False
        self.heartbeat()
        if event == "closed":
            self._closed = True
        self.emit(event)
        return True


class RemoteWindowOpener:
    """Resource-open primitive backed by the browser.

    The browser calls ``window.open`` itself and reports the outcome; ``prime``
    records that report so the next ``open`` can reflect it.
    """

    def __init__(self, clock: Callable[[], int], heartbeat_timeout_ms: int = 5000):
        self.clock = clock
        self.heartbeat_timeout_ms = heartbeat_timeout_ms
        self._blocked = False
        self._supports_focus_events = True
        self.last_opened: Optional[RemoteWindow] = None

    def prime(self, blocked: bool = False, supports_focus_events: bool = True) -> None:
        self._blocked = blocked
        self._supports_focus_events = supports_focus_events

    def open(self, url: str) -> Optional[RemoteWindow]:
        blocked, self._blocked = self._blocked, False
        focus_events, self._supports_focus_events = self._supports_focus_events, True
        if blocked:
            return None
        win = RemoteWindow(url, self.clock, self.heartbeat_timeout_ms, supports_focus_events=focus_events)
        self.last_opened = win
        return win
