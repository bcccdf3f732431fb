# visit_timing.py
"""Attended-time bookkeeping for one link.

A ``TimingSession`` is a two-state machine (idle / viewing). Focus, blur and
close signals can race or arrive twice, so every transition is a no-op when it
does not apply instead of raising.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkVisitRecord:
    """Read-only view of a link's visit state at a given instant."""
    link_id: str
    visited: bool = False
    duration_ms: int = 0                         # effective duration, live part included
    accumulated_duration_ms: int = 0             # closed sessions only
    visit_count: int = 0
    is_currently_viewing: bool = False
    current_session_start_ms: Optional[int] = None
    first_session_start_ms: Optional[int] = None
    last_visited_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "link_id": self.link_id,
            "visited": self.visited,
            "duration_ms": self.duration_ms,
            "visit_count": self.visit_count,
            "is_currently_viewing": self.is_currently_viewing,
            "first_session_start_ms": self.first_session_start_ms,
            "last_visited_ms": self.last_visited_ms,
        }


def _opt_int(val) -> Optional[int]:
    if val is None or isinstance(val, bool):
        return None
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


class TimingSession:
    def __init__(self, link_id: str = ""):
        self.link_id = link_id
        self.visited = False
        self.accumulated_duration_ms = 0
        self.visit_count = 0
        self.current_session_start_ms: Optional[int] = None
        self.first_session_start_ms: Optional[int] = None
        self.last_visited_ms: Optional[int] = None

    @property
    def is_currently_viewing(self) -> bool:
        return self.current_session_start_ms is not None

    def start(self, now_ms: int) -> bool:
        """Begin a viewing session. Returns False when one is already running."""
        if self.is_currently_viewing:
            return False
        self.current_session_start_ms = now_ms
        self.visit_count += 1
        self.visited = True
        if self.first_session_start_ms is None:
            self.first_session_start_ms = now_ms
        logger.debug("timing start link=%s at=%s count=%s", self.link_id, now_ms, self.visit_count)
        return True

    def stop(self, now_ms: int) -> bool:
        """End the running session and fold it into the accumulated total.

        Returns False when nothing was running. A stop timestamp earlier than
        the session start adds nothing.
        """
        if not self.is_currently_viewing:
            return False
        delta = max(0, now_ms - self.current_session_start_ms)
        self.accumulated_duration_ms += delta
        self.current_session_start_ms = None
        self.last_visited_ms = now_ms
        logger.debug("timing stop link=%s at=%s +%sms total=%s",
                     self.link_id, now_ms, delta, self.accumulated_duration_ms)
        return True

    def effective_duration(self, now_ms: int) -> int:
        if not self.is_currently_viewing:
            return self.accumulated_duration_ms
        return self.accumulated_duration_ms + max(0, now_ms - self.current_session_start_ms)

    def view(self, now_ms: int) -> LinkVisitRecord:
        return LinkVisitRecord(
            link_id=self.link_id,
            visited=self.visited,
            duration_ms=self.effective_duration(now_ms),
            accumulated_duration_ms=self.accumulated_duration_ms,
            visit_count=self.visit_count,
            is_currently_viewing=self.is_currently_viewing,
            current_session_start_ms=self.current_session_start_ms,
            first_session_start_ms=self.first_session_start_ms,
            last_visited_ms=self.last_visited_ms,
        )

    # ----------------------------
    # Draft checkpointing
    # ----------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "visited": self.visited,
            "duration_ms": self.accumulated_duration_ms,
            "visit_count": self.visit_count,
            "is_currently_viewing": self.is_currently_viewing,
            "current_session_start_ms": self.current_session_start_ms,
            "first_session_start_ms": self.first_session_start_ms,
            "last_visited_ms": self.last_visited_ms,
        }

    @classmethod
    def from_dict(cls, link_id: str, data: Dict[str, Any]) -> "TimingSession":
        """Rebuild from a checkpoint. Unusable fields fall back to defaults."""
        session = cls(link_id)
        if not isinstance(data, dict):
            return session
        session.accumulated_duration_ms = max(0, _opt_int(data.get("duration_ms")) or 0)
        session.visit_count = max(0, _opt_int(data.get("visit_count")) or 0)
        session.visited = bool(data.get("visited")) or session.visit_count > 0
        session.first_session_start_ms = _opt_int(data.get("first_session_start_ms"))
        session.last_visited_ms = _opt_int(data.get("last_visited_ms"))
        if data.get("is_currently_viewing"):
            session.current_session_start_ms = _opt_int(data.get("current_session_start_ms"))
        return session
