# window_control.py
"""Opens one external window at a time and turns its lifecycle into timing.

Every opened window gets a lease tagged with a generation number. Handlers
subscribed on a window capture only that number, so anything a superseded
window says after a newer one opened is dropped.
"""
import logging
from typing import Any, Callable, List, Optional

from scheduling import ManualScheduler, TimerTask
from visit_timing import TimingSession
from window_events import HostWindow

logger = logging.getLogger(__name__)

VisitStart = Callable[[bool], None]
# (visited, total_focus_ms, ended_at_ms); ended_at_ms is None when nothing was opened
VisitEnd = Callable[..., None]
Closed = Callable[[], None]


class ResourceOpenBlocked(Exception):
    """The environment refused to create the external window."""


class WindowLease:
    """Handle for one opened window generation."""

    def __init__(self, controller: "ExternalResourceController", generation: int, url: str,
                 resource: Any, on_visit_start: VisitStart, on_visit_end: VisitEnd,
                 on_closed: Optional[Closed], fallback: bool):
        self.controller = controller
        self.generation = generation
        self.url = url
        self.resource = resource
        self.on_visit_start = on_visit_start
        self.on_visit_end = on_visit_end
        self.on_closed = on_closed
        self.fallback = fallback              # focus inferred from the host window
        self.timing = TimingSession(url)
        self.closed = False
        self.probe_task: Optional[TimerTask] = None
        self.pending: List[TimerTask] = []    # settle / debounce timers
        self.unsubscribers: List[Callable[[], None]] = []

    @property
    def total_focus_ms(self) -> int:
        return self.timing.accumulated_duration_ms

    def close(self) -> None:
        self.controller._close_lease(self)


class ExternalResourceController:
    def __init__(self, opener: Any, scheduler: ManualScheduler, host: Optional[HostWindow] = None,
                 probe_interval_ms: int = 1000, focus_debounce_ms: int = 100, load_settle_ms: int = 200):
        self.opener = opener
        self.scheduler = scheduler
        self.host = host
        self.probe_interval_ms = probe_interval_ms
        self.focus_debounce_ms = focus_debounce_ms
        self.load_settle_ms = load_settle_ms
        self._generation = 0
        self._lease: Optional[WindowLease] = None
        self.stale_events = 0

    @property
    def current(self) -> Optional[WindowLease]:
        return self._lease

    @property
    def is_open(self) -> bool:
        return self._lease is not None and not self._lease.closed

    @property
    def generation(self) -> int:
        return self._generation

    def open(self, url: str, on_visit_start: VisitStart, on_visit_end: VisitEnd,
             on_closed: Optional[Closed] = None) -> Optional[WindowLease]:
        if self._lease is not None and not self._lease.closed:
            logger.info("closing window gen=%s to open %s", self._lease.generation, url)
            self._close_lease(self._lease)

        try:
            resource = self.opener.open(url)
        except ResourceOpenBlocked:
            resource = None
        if resource is None:
            logger.warning("popup blocked for %s", url)
            on_visit_end(False, None)
            return None

        self._generation += 1
        gen = self._generation
        fallback = not getattr(resource, "supports_focus_events", True) and self.host is not None
        lease = WindowLease(self, gen, url, resource, on_visit_start, on_visit_end, on_closed, fallback)
        self._lease = lease

        subscribe = resource.subscribe
        lease.unsubscribers.append(subscribe("closed", lambda: self._on_closed_signal(gen)))
        lease.unsubscribers.append(subscribe("unload", lambda: self._on_blur(gen)))
        if fallback:
            lease.unsubscribers.append(self.host.subscribe("blur", lambda: self._on_host_blur(gen)))
            lease.unsubscribers.append(self.host.subscribe("focus", lambda: self._on_host_focus(gen)))
            lease.pending.append(self.scheduler.call_later(self.load_settle_ms, lambda: self._on_focus(gen)))
        else:
            lease.unsubscribers.append(subscribe("focus", lambda: self._on_focus(gen)))
            lease.unsubscribers.append(subscribe("blur", lambda: self._on_blur(gen)))
            lease.unsubscribers.append(subscribe("load", lambda: self._on_load(gen)))

        lease.probe_task = self.scheduler.call_later(self.probe_interval_ms, lambda: self._probe(gen))
        logger.info("opened window gen=%s url=%s fallback=%s", gen, url, fallback)
        return lease

    def close(self) -> None:
        if self._lease is not None:
            self._close_lease(self._lease)

    # ----------------------------
    # Event handlers (generation-tagged)
    # ----------------------------
    def _live(self, gen: int) -> Optional[WindowLease]:
        lease = self._lease
        if lease is None or lease.closed or lease.generation != gen:
            self.stale_events += 1
            logger.debug("ignored event for stale window gen=%s", gen)
            return None
        return lease

    def _on_focus(self, gen: int) -> None:
        lease = self._live(gen)
        if lease is None:
            return
        if lease.timing.start(self.scheduler.now_ms()):
            lease.on_visit_start(True)

    def _on_blur(self, gen: int) -> None:
        lease = self._live(gen)
        if lease is None:
            return
        self._cancel_pending(lease)
        now = self.scheduler.now_ms()
        if lease.timing.stop(now):
            lease.on_visit_end(False, lease.total_focus_ms, now)

    def _on_load(self, gen: int) -> None:
        lease = self._live(gen)
        if lease is None:
            return
        lease.pending.append(self.scheduler.call_later(self.load_settle_ms, lambda: self._on_focus(gen)))

    def _on_host_blur(self, gen: int) -> None:
        lease = self._live(gen)
        if lease is None:
            return

        def settle() -> None:
            if not lease.resource.is_closed:
                self._on_focus(gen)

        lease.pending.append(self.scheduler.call_later(self.focus_debounce_ms, settle))

    def _on_host_focus(self, gen: int) -> None:
        self._on_blur(gen)

    def _on_closed_signal(self, gen: int) -> None:
        lease = self._live(gen)
        if lease is not None:
            self._close_lease(lease)

    def _probe(self, gen: int) -> None:
        lease = self._lease
        if lease is None or lease.closed or lease.generation != gen:
            return
        if lease.resource.is_closed:
            # A window that went silent stops counting at its last sign of life
            now = self.scheduler.now_ms()
            last_seen = getattr(lease.resource, "last_seen_ms", None)
            ended_at = now if last_seen is None else min(now, last_seen)
            logger.info("window gen=%s found closed by probe, last seen at %s", gen, ended_at)
            self._close_lease(lease, ended_at)
            return
        lease.probe_task = self.scheduler.call_later(self.probe_interval_ms, lambda: self._probe(gen))

    # ----------------------------
    # Teardown
    # ----------------------------
    def _cancel_pending(self, lease: WindowLease) -> None:
        for task in lease.pending:
            task.cancel()
        lease.pending = []

    def _close_lease(self, lease: WindowLease, ended_at_ms: Optional[int] = None) -> None:
        """Tear the lease down once. Focus time stops at ``ended_at_ms`` (default: now)."""
        if lease.closed:
            return
        ended_at = self.scheduler.now_ms() if ended_at_ms is None else ended_at_ms
        lease.closed = True
        self._cancel_pending(lease)
        if lease.probe_task is not None:
            lease.probe_task.cancel()
            lease.probe_task = None
        for unsubscribe in lease.unsubscribers:
            unsubscribe()
        lease.unsubscribers = []
        lease.timing.stop(ended_at)
        if not lease.resource.is_closed:
            lease.resource.close()
        if self._lease is lease:
            self._lease = None
        logger.info("closed window gen=%s focus_ms=%s", lease.generation, lease.total_focus_ms)
        if lease.on_closed is not None:
            lease.on_closed()
        lease.on_visit_end(False, lease.total_focus_ms, ended_at)
