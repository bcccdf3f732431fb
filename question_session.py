# question_session.py
"""One annotator working on one question.

Owns the window controller, the visit and verification stores and the form
answers for that question, and exposes them as a small set of operations
that the HTTP layer (or a test) drives.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import settings
from dimensions import (DIMENSION_IDS, EVALUATION_DIMENSIONS, Dimension, DimensionJudgment, OverallJudgment,
                        Winner, coerce_judgments)
from eligibility import EligibilitySnapshot, evaluate
from questions import Question
from scheduling import ManualScheduler, RefreshTicker
from verification_codes import VerificationCodeStore
from visit_status import VisitStatusStore
from window_control import ExternalResourceController, WindowLease
from window_events import HostWindow, RemoteWindowOpener

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionContext:
    annotator_id: str
    questionnaire_id: str
    question_id: str
    task_group_id: str = ""


class QuestionSession:
    def __init__(self, context: SessionContext, question: Question, scheduler: ManualScheduler,
                 opener: Any = None, host: Optional[HostWindow] = None, draft_store: Any = None,
                 min_view_time_ms: Optional[int] = None, dimensions: List[Dimension] = EVALUATION_DIMENSIONS):
        self.context = context
        self.question = question
        self.scheduler = scheduler
        self.host = host if host is not None else HostWindow()
        self.opener = opener if opener is not None else RemoteWindowOpener(
            scheduler.now_ms, settings.WINDOW_HEARTBEAT_TIMEOUT_MS)
        self.draft_store = draft_store
        self.min_view_time_ms = settings.MIN_VIEW_TIME_MS if min_view_time_ms is None else min_view_time_ms
        self.dimensions = dimensions

        self.visits = VisitStatusStore()
        self.verification = VerificationCodeStore()
        self.judgments: Dict[str, DimensionJudgment] = {}
        self.overall = OverallJudgment()
        self.controller = ExternalResourceController(
            self.opener, scheduler, host=self.host,
            probe_interval_ms=settings.WINDOW_PROBE_INTERVAL_MS,
            focus_debounce_ms=settings.FOCUS_DEBOUNCE_MS,
            load_settle_ms=settings.LOAD_SETTLE_MS,
        )
        self.window_link_id: Optional[str] = None
        self.closed = False
        self.last_activity_ms = scheduler.now_ms()
        self._refresh_listeners: List[Callable[[int], None]] = []
        self.ticker = RefreshTicker(scheduler, self.visits.any_viewing, self._refresh,
                                    settings.REFRESH_INTERVAL_MS)
        self._exempt_links_without_codes()

    def _exempt_links_without_codes(self) -> None:
        for link_id, code in self.question.expected_codes.items():
            if not code:
                self.verification.mark_exempt(link_id)

    def now_ms(self) -> int:
        return self.scheduler.now_ms()

    def touch(self) -> None:
        """Mark the annotator as active now."""
        self.last_activity_ms = self.now_ms()

    def is_idle(self, idle_timeout_ms: int) -> bool:
        """No window open and no activity for ``idle_timeout_ms``."""
        if self.controller.is_open:
            return False
        return self.now_ms() - self.last_activity_ms >= idle_timeout_ms

    # ----------------------------
    # Draft restore / checkpoint
    # ----------------------------
    def restore(self, draft: Optional[Dict[str, Any]] = None) -> bool:
        """Rehydrate from ``draft`` or, when omitted, from the draft store."""
        if draft is None and self.draft_store is not None:
            c = self.context
            draft = self.draft_store.load_draft(c.annotator_id, c.question_id, c.questionnaire_id)
        if not draft:
            return False
        saved_at = draft.get("saved_at_ms")
        self.visits.restore(draft.get("visit_status"), saved_at if isinstance(saved_at, int) else None)
        self.verification.restore(draft.get("verification_status"), self.question.expected_codes)
        self.judgments = {}
        for j in coerce_judgments(draft.get("dimension_evaluations")):
            self.judgments.setdefault(j.dimension_id, j)
        self.overall = OverallJudgment(Winner.parse(draft.get("overall_winner")))
        logger.info("restored draft annotator=%s question=%s", self.context.annotator_id, self.context.question_id)
        return True

    def draft_state(self) -> Dict[str, Any]:
        return {
            "dimension_evaluations": [j.to_dict() for j in self.ordered_judgments()],
            "overall_winner": self.overall.winner.value,
            "visit_status": self.visits.to_dict(),
            "verification_status": self.verification.to_dict(),
            "saved_at_ms": self.now_ms(),
        }

    def checkpoint(self) -> Dict[str, Any]:
        state = self.draft_state()
        if self.draft_store is not None:
            c = self.context
            self.draft_store.save_draft(c.annotator_id, c.question_id, c.questionnaire_id,
                                        c.task_group_id or self.question.task_group_id, state)
        return state

    # ----------------------------
    # Link windows
    # ----------------------------
    def open_link(self, link_id: str, blocked: bool = False, supports_focus_events: bool = True) -> Optional[WindowLease]:
        link = self.question.link(link_id)
        if link is None:
            raise KeyError(link_id)
        if hasattr(self.opener, "prime"):
            self.opener.prime(blocked=blocked, supports_focus_events=supports_focus_events)

        # Callbacks close over this link id, so a force-close of the previous
        # window still books time against the previous link.
        def on_visit_start(_visited: bool) -> None:
            self.visits.record_visit_start(link_id, self.now_ms())
            self.ticker.start()

        def on_visit_end(_visited: bool, _total_ms: Optional[int] = None,
                         ended_at_ms: Optional[int] = None) -> None:
            self.visits.record_visit_end(link_id, self.now_ms() if ended_at_ms is None else ended_at_ms)

        def on_closed() -> None:
            if self.window_link_id == link_id:
                self.window_link_id = None

        lease = self.controller.open(link.url, on_visit_start, on_visit_end, on_closed)
        if lease is not None:
            self.window_link_id = link_id
        return lease

    def close_window(self) -> None:
        self.controller.close()

    def window_event(self, generation: int, event: str) -> bool:
        """Route a browser-reported window event; False when stale or unknown."""
        lease = self.controller.current
        if lease is None or lease.generation != generation:
            self.controller.stale_events += 1
            logger.debug("dropped %s for stale window gen=%s", event, generation)
            return False
        deliver = getattr(lease.resource, "deliver", None)
        if deliver is None:
            return False
        return deliver(event)

    def host_event(self, event: str) -> bool:
        if event not in ("focus", "blur"):
            return False
        self.host.emit(event)
        return True

    # ----------------------------
    # Answers
    # ----------------------------
    def set_verification_code(self, link_id: str, code: str) -> bool:
        if self.question.link(link_id) is None:
            raise KeyError(link_id)
        self.verification.set_captured(link_id, code)
        return self.verification.validate(link_id, self.question.expected_codes.get(link_id))

    def set_judgment(self, dimension_id: str, winner: Any, notes: str = "") -> DimensionJudgment:
        if dimension_id not in DIMENSION_IDS:
            raise KeyError(dimension_id)
        j = DimensionJudgment(dimension_id, Winner.parse(winner), notes or "")
        self.judgments[dimension_id] = j
        return j

    def set_overall_winner(self, winner: Any) -> Winner:
        self.overall = OverallJudgment(Winner.parse(winner))
        return self.overall.winner

    def ordered_judgments(self) -> List[DimensionJudgment]:
        return [self.judgments[d.id] for d in self.dimensions if d.id in self.judgments]

    # ----------------------------
    # Derived state
    # ----------------------------
    def eligibility(self) -> EligibilitySnapshot:
        now = self.now_ms()
        q = self.question
        return evaluate(
            visits={q.link_a.id: self.visits.snapshot(q.link_a.id, now),
                    q.link_b.id: self.visits.snapshot(q.link_b.id, now)},
            link_a_id=q.link_a.id,
            link_b_id=q.link_b.id,
            verification=self.verification,
            has_verification_codes=q.has_verification_codes,
            judgments=self.ordered_judgments(),
            overall_winner=self.overall,
            min_view_time_ms=self.min_view_time_ms,
            dimensions=self.dimensions,
        )

    def status(self) -> Dict[str, Any]:
        now = self.now_ms()
        q = self.question
        snap = self.eligibility()
        lease = self.controller.current
        return {
            "annotator_id": self.context.annotator_id,
            "questionnaire_id": self.context.questionnaire_id,
            "question_id": self.context.question_id,
            "now_ms": now,
            "visit_status": {lid: self.visits.snapshot(lid, now).to_dict() for lid in (q.link_a.id, q.link_b.id)},
            "verification_status": {lid: self.verification.is_valid(lid) for lid in (q.link_a.id, q.link_b.id)},
            "window": {"link_id": self.window_link_id, "generation": lease.generation} if lease else None,
            "eligibility": snap.to_dict(),
            "messages": snap.messages(self.labels()),
            "refresh_after_ms": self.ticker.interval_ms if self.visits.any_viewing() else None,
        }

    def labels(self) -> Dict[str, str]:
        labels = self.question.link_labels()
        labels.update({d.id: d.label for d in self.dimensions})
        return labels

    # ----------------------------
    # UI refresh tick
    # ----------------------------
    def on_refresh(self, listener: Callable[[int], None]) -> None:
        """Register an in-process listener for the 1 s tick while a link is viewed.

        Only for code that embeds a session directly. The HTTP service
        registers none; browsers re-poll using ``refresh_after_ms`` from
        ``status()``.
        """
        self._refresh_listeners.append(listener)

    def _refresh(self, now_ms: int) -> None:
        for listener in self._refresh_listeners:
            listener(now_ms)

    # ----------------------------
    # Teardown
    # ----------------------------
    def teardown(self, checkpoint: bool = True) -> None:
        """Close the window, stop running visits and optionally save a draft."""
        if self.closed:
            return
        self.controller.close()
        self.visits.teardown(self.now_ms())
        self.ticker.stop()
        self.closed = True
        if checkpoint:
            self.checkpoint()
