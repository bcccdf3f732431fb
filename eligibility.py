# eligibility.py
"""Decides whether a response may be submitted.

``evaluate`` is pure and is called on every state change, so it must never
raise: missing visit records, half-filled judgments and garbage winner values
all resolve to failing predicates with keyed reasons.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from dimensions import EVALUATION_DIMENSIONS, Dimension, Winner, coerce_judgment
from note_quality import MIN_WORDS_REQUIRED, validate_note, similar_note_pairs
from visit_timing import LinkVisitRecord

# Reason codes
LINK_NOT_VISITED = "link_not_visited"
INSUFFICIENT_TIME = "insufficient_time"
VERIFICATION_FAILED = "verification_failed"
DIMENSION_UNJUDGED = "dimension_unjudged"
NOTE_REJECTED = "note_rejected"
NOTES_TOO_SIMILAR = "notes_too_similar"
OVERALL_WINNER_MISSING = "overall_winner_missing"

# English rendering; keys match the reason codes
MESSAGES: Dict[str, str] = {
    LINK_NOT_VISITED: "Please view {subject} before submitting your evaluation.",
    INSUFFICIENT_TIME: "Please spend at least {required_s:g} seconds reviewing {subject} (so far {duration_s:g}s).",
    VERIFICATION_FAILED: "Please enter the verification code shown on {subject}.",
    DIMENSION_UNJUDGED: "Please select a winner for {subject}.",
    NOTE_REJECTED: "{subject}: {message}",
    NOTES_TOO_SIMILAR: "{subject}: evaluation reason is too similar to {other}. Please give a distinct explanation.",
    OVERALL_WINNER_MISSING: "Please select an overall winner.",
}


@dataclass(frozen=True)
class Reason:
    code: str
    subject: Optional[str] = None           # link id or dimension id
    params: Dict[str, Any] = field(default_factory=dict, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "subject": self.subject, "params": dict(self.params)}

    def render(self, labels: Optional[Mapping[str, str]] = None) -> str:
        labels = labels or {}
        fmt = dict(self.params)
        fmt["subject"] = labels.get(self.subject or "", self.subject or "")
        if "other" in fmt:
            fmt["other"] = labels.get(fmt["other"], fmt["other"])
        if self.code == INSUFFICIENT_TIME:
            fmt["required_s"] = fmt.get("required_ms", 0) / 1000
            fmt["duration_s"] = int(fmt.get("duration_ms", 0) // 1000)
        return MESSAGES[self.code].format(**fmt)


@dataclass(frozen=True)
class EligibilitySnapshot:
    both_visited: bool
    sufficient_time: bool
    verification_passed: bool
    all_dimensions_judged: bool
    all_notes_valid: bool
    notes_distinct: bool
    has_overall_winner: bool
    reasons: List[Reason] = field(default_factory=list)
    durations_ms: Dict[str, int] = field(default_factory=dict)
    winner_summary: Dict[str, int] = field(default_factory=dict)

    @property
    def is_form_valid(self) -> bool:
        return (self.all_dimensions_judged and self.all_notes_valid
                and self.notes_distinct and self.has_overall_winner)

    @property
    def is_ready_for_submission(self) -> bool:
        return self.is_form_valid and self.both_visited and self.sufficient_time and self.verification_passed

    def reasons_for(self, code: str) -> List[Reason]:
        return [r for r in self.reasons if r.code == code]

    def messages(self, labels: Optional[Mapping[str, str]] = None) -> List[str]:
        return [r.render(labels) for r in self.reasons]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "both_visited": self.both_visited,
            "sufficient_time": self.sufficient_time,
            "verification_passed": self.verification_passed,
            "all_dimensions_judged": self.all_dimensions_judged,
            "all_notes_valid": self.all_notes_valid,
            "notes_distinct": self.notes_distinct,
            "has_overall_winner": self.has_overall_winner,
            "is_form_valid": self.is_form_valid,
            "is_ready_for_submission": self.is_ready_for_submission,
            "reasons": [r.to_dict() for r in self.reasons],
            "durations_ms": dict(self.durations_ms),
            "winner_summary": dict(self.winner_summary),
        }


def _record(visits: Any, link_id: str) -> LinkVisitRecord:
    rec = visits.get(link_id) if isinstance(visits, Mapping) else None
    return rec if isinstance(rec, LinkVisitRecord) else LinkVisitRecord(link_id=link_id)


def _code_valid(verification: Any, link_id: str) -> bool:
    if isinstance(verification, Mapping):
        val = verification.get(link_id)
        if isinstance(val, Mapping):
            return bool(val.get("is_valid"))
        return bool(getattr(val, "is_valid", val is True))
    is_valid = getattr(verification, "is_valid", None)
    return bool(is_valid(link_id)) if callable(is_valid) else False


def evaluate(
    visits: Mapping[str, LinkVisitRecord],
    link_a_id: str,
    link_b_id: str,
    verification: Any,
    has_verification_codes: bool,
    judgments: Sequence[Any],
    overall_winner: Any,
    min_view_time_ms: int,
    dimensions: Sequence[Dimension] = EVALUATION_DIMENSIONS,
) -> EligibilitySnapshot:
    """Combine visit, verification and form state into one snapshot.

    ``verification`` may be a VerificationCodeStore (anything with
    ``is_valid(link_id)``) or a mapping of link id to entry/dict/bool.
    """
    reasons: List[Reason] = []
    if isinstance(min_view_time_ms, bool) or not isinstance(min_view_time_ms, (int, float)):
        min_view_time_ms = 0

    # Visits
    rec_a, rec_b = _record(visits, link_a_id), _record(visits, link_b_id)
    for rec in (rec_a, rec_b):
        if not rec.visited:
            reasons.append(Reason(LINK_NOT_VISITED, rec.link_id))
    both_visited = rec_a.visited and rec_b.visited

    for rec in (rec_a, rec_b):
        if rec.duration_ms < min_view_time_ms:
            reasons.append(Reason(INSUFFICIENT_TIME, rec.link_id,
                                  {"duration_ms": rec.duration_ms, "required_ms": min_view_time_ms}))
    sufficient_time = rec_a.duration_ms >= min_view_time_ms and rec_b.duration_ms >= min_view_time_ms

    # Verification codes
    verification_passed = True
    if has_verification_codes:
        for link_id in (link_a_id, link_b_id):
            if not _code_valid(verification, link_id):
                verification_passed = False
                reasons.append(Reason(VERIFICATION_FAILED, link_id))

    # Dimension judgments; the first judgment per dimension counts
    by_dim: Dict[str, Any] = {}
    for raw in judgments or ():
        j = coerce_judgment(raw)
        if j is not None and j.dimension_id not in by_dim:
            by_dim[j.dimension_id] = j

    all_dimensions_judged = True
    all_notes_valid = True
    judged_notes = []
    summary = {"A": 0, "B": 0, "tie": 0}
    for dim in dimensions:
        j = by_dim.get(dim.id)
        if j is None or not j.winner.is_set:
            all_dimensions_judged = False
            reasons.append(Reason(DIMENSION_UNJUDGED, dim.id))
            continue
        summary[j.winner.value] += 1
        check = validate_note(j.notes, dim.description)
        if not check.is_valid:
            all_notes_valid = False
            reasons.append(Reason(NOTE_REJECTED, dim.id, {
                "rule": check.rule,
                "message": check.message,
                "word_count": check.word_count,
                "required_words": MIN_WORDS_REQUIRED,
            }))
        else:
            judged_notes.append((dim.id, j.notes))

    # Only notes that pass on their own are compared with each other
    notes_distinct = True
    flagged = set()
    for id1, id2 in similar_note_pairs(judged_notes):
        notes_distinct = False
        for subject, other in ((id1, id2), (id2, id1)):
            if subject not in flagged:
                flagged.add(subject)
                reasons.append(Reason(NOTES_TOO_SIMILAR, subject, {"other": other}))

    has_overall_winner = Winner.parse(getattr(overall_winner, "winner", overall_winner)).is_set
    if not has_overall_winner:
        reasons.append(Reason(OVERALL_WINNER_MISSING))

    return EligibilitySnapshot(
        both_visited=both_visited,
        sufficient_time=sufficient_time,
        verification_passed=verification_passed,
        all_dimensions_judged=all_dimensions_judged,
        all_notes_valid=all_notes_valid,
        notes_distinct=notes_distinct,
        has_overall_winner=has_overall_winner,
        reasons=reasons,
        durations_ms={rec_a.link_id: rec_a.duration_ms, rec_b.link_id: rec_b.duration_ms},
        winner_summary=summary,
    )
