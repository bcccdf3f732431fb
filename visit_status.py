# visit_status.py
import logging
from typing import Any, Dict, List, Optional

from visit_timing import LinkVisitRecord, TimingSession

logger = logging.getLogger(__name__)


class VisitStatusStore:
    """Per-link visit aggregate for one question view.

    A link may be opened, closed and reopened many times; all of it folds into
    the same record.
    """

    def __init__(self) -> None:
        self._records: Dict[str, TimingSession] = {}

    def _record(self, link_id: str) -> TimingSession:
        rec = self._records.get(link_id)
        if rec is None:
            rec = TimingSession(link_id)
            self._records[link_id] = rec
        return rec

    def record_visit_start(self, link_id: str, now_ms: int) -> bool:
        return self._record(link_id).start(now_ms)

    def record_visit_end(self, link_id: str, now_ms: int) -> bool:
        return self._record(link_id).stop(now_ms)

    def snapshot(self, link_id: str, now_ms: int) -> LinkVisitRecord:
        rec = self._records.get(link_id)
        if rec is None:
            return LinkVisitRecord(link_id=link_id)
        return rec.view(now_ms)

    def snapshots(self, now_ms: int) -> Dict[str, LinkVisitRecord]:
        return {link_id: rec.view(now_ms) for link_id, rec in self._records.items()}

    def link_ids(self) -> List[str]:
        return list(self._records)

    def any_viewing(self) -> bool:
        return any(rec.is_currently_viewing for rec in self._records.values())

    def teardown(self, now_ms: int) -> List[str]:
        """Stop every running session at ``now_ms``; returns the stopped link ids."""
        stopped = [link_id for link_id, rec in self._records.items() if rec.stop(now_ms)]
        if stopped:
            logger.debug("teardown stopped viewing for %s", stopped)
        return stopped

    # ----------------------------
    # Draft checkpointing
    # ----------------------------
    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {link_id: rec.to_dict() for link_id, rec in self._records.items()}

    def restore(self, data: Optional[Dict[str, Any]], saved_at_ms: Optional[int] = None) -> None:
        """Load records from a draft.

        A record saved mid-view is closed at ``saved_at_ms``; without a save
        time the open session contributes nothing.
        """
        self._records = {}
        if not isinstance(data, dict):
            return
        for link_id, raw in data.items():
            rec = TimingSession.from_dict(str(link_id), raw)
            if rec.is_currently_viewing:
                end = saved_at_ms if saved_at_ms is not None else rec.current_session_start_ms
                rec.stop(end)
            self._records[str(link_id)] = rec
