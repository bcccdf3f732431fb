# submission.py
"""Hands an eligible response to the persistence sink.

An ineligible response is a normal outcome here, not an error: the sink is
simply never called and the caller gets the snapshot with its reasons.
"""
import base64
import binascii
import logging
import re
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import settings
from dimensions import EVALUATION_DIMENSIONS
from eligibility import EligibilitySnapshot
from question_session import QuestionSession
from survey_db import utc_now

logger = logging.getLogger(__name__)

_CAPTCHA_RE = re.compile(r"(\d+)\+(\d+)=(\d+)")


class SubmissionRejected(Exception):
    """The sink refused a payload (bad captcha, wrong dimension count)."""


@dataclass
class SubmissionResult:
    accepted: bool
    snapshot: EligibilitySnapshot
    submission_id: Optional[str] = None
    error: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)


def validate_captcha(token: str, now_s: Optional[float] = None, max_age_s: Optional[int] = None) -> bool:
    """Check a base64 ``"a+b=c:epoch_ms"`` captcha token.

    Valid when the sum is right and the token is younger than ``max_age_s``.
    """
    if not token:
        return False
    now_s = time.time() if now_s is None else now_s
    max_age_s = settings.CAPTCHA_MAX_AGE_SECONDS if max_age_s is None else max_age_s
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return False
    equation, _, stamp = decoded.partition(":")
    m = _CAPTCHA_RE.fullmatch(equation)
    if not m or not stamp.isdigit():
        return False
    a, b, result = (int(g) for g in m.groups())
    if a + b != result:
        return False
    return 0 <= now_s * 1000 - int(stamp) < max_age_s * 1000


def make_submission_id() -> str:
    return f"sub_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def build_payload(session: QuestionSession, captcha_response: str) -> Dict[str, Any]:
    q = session.question
    snap = session.eligibility()
    return {
        "question_id": q.id,
        "link_a_url": q.link_a.url,
        "link_b_url": q.link_b.url,
        "questionnaire_id": session.context.questionnaire_id,
        "task_group_id": session.context.task_group_id or q.task_group_id,
        "dimension_evaluations": [j.to_dict() for j in session.ordered_judgments()],
        "overall_winner": session.overall.winner.value,
        "captcha_response": captcha_response,
        "annotator_id": session.context.annotator_id,
        "is_trap": q.is_trap,
        "submitted_at": utc_now(),
        "metadata": {
            "visit_status": session.visits.to_dict(),
            "total_view_time_ms": sum(snap.durations_ms.values()),
        },
    }


def page_view_rows(session: QuestionSession) -> List[Dict[str, Any]]:
    now = session.now_ms()
    q = session.question
    recs = [session.visits.snapshot(link.id, now) for link in (q.link_a, q.link_b)]
    total = sum(r.duration_ms for r in recs)
    return [
        {
            "link_id": rec.link_id,
            "link_url": link.url,
            "visited": rec.visited,
            "duration_ms": rec.duration_ms,
            "visit_count": rec.visit_count,
            "first_session_start_ms": rec.first_session_start_ms,
            "last_visited_ms": rec.last_visited_ms,
            "total_view_time_ms": total,
        }
        for rec, link in zip(recs, (q.link_a, q.link_b))
    ]


def check_payload(payload: Dict[str, Any], captcha_required: Optional[bool] = None):
    """Sink-side checks; raises SubmissionRejected."""
    required = settings.CAPTCHA_REQUIRED if captcha_required is None else captcha_required
    if len(payload.get("dimension_evaluations") or []) != len(EVALUATION_DIMENSIONS):
        raise SubmissionRejected(f"All {len(EVALUATION_DIMENSIONS)} dimensions must be evaluated")
    if required and not validate_captcha(payload.get("captcha_response", "")):
        logger.warning("rejected captcha for question=%s annotator=%s",
                       payload.get("question_id"), payload.get("annotator_id"))
        raise SubmissionRejected("Invalid captcha verification")


def submit(session: QuestionSession, captcha_response: str,
           sink: Callable[[str, Dict[str, Any], List[Dict[str, Any]]], None],
           captcha_required: Optional[bool] = None) -> SubmissionResult:
    """Submit if eligible. ``sink(submission_id, payload, page_views)`` persists.

    Running visits are not stopped first: eligibility counts live time, and
    the recorded page views carry the effective duration at submit time.
    """
    snap = session.eligibility()
    if not snap.is_ready_for_submission:
        logger.info("submission blocked question=%s reasons=%s",
                    session.question.id, [r.code for r in snap.reasons])
        return SubmissionResult(False, snap, error="ineligible")

    payload = build_payload(session, captcha_response)
    try:
        check_payload(payload, captcha_required)
    except SubmissionRejected as e:
        return SubmissionResult(False, snap, error=str(e), payload=payload)

    submission_id = make_submission_id()
    sink(submission_id, payload, page_view_rows(session))
    return SubmissionResult(True, snap, submission_id=submission_id, payload=payload)
