from dataclasses import replace

import pytest

import eligibility
from dimensions import DIMENSION_IDS, DimensionJudgment, Winner
from verification_codes import VerificationCodeStore
from visit_status import VisitStatusStore

BOOLEANS = [
    "both_visited",
    "sufficient_time",
    "verification_passed",
    "all_dimensions_judged",
    "all_notes_valid",
    "has_overall_winner",
]


@pytest.fixture
def judgments(valid_notes):
    return [DimensionJudgment(d, Winner.A, valid_notes[d]) for d in DIMENSION_IDS]


@pytest.fixture
def codes():
    store = VerificationCodeStore()
    store.set_captured("A", "K7QX")
    store.validate("A", "K7QX")
    store.set_captured("B", "M2RD")
    store.validate("B", "M2RD")
    return store


def visits_for(a_ms, b_ms):
    store = VisitStatusStore()
    store.record_visit_start("A", 0)
    store.record_visit_end("A", a_ms)
    store.record_visit_start("B", 0)
    store.record_visit_end("B", b_ms)
    return store.snapshots(max(a_ms, b_ms))


def run(visits, codes, judgments, overall="A", min_ms=10000, has_codes=True):
    return eligibility.evaluate(visits, "A", "B", codes, has_codes, judgments, overall, min_ms)


def test_all_satisfied_is_ready(codes, judgments):
    snap = run(visits_for(12000, 12000), codes, judgments)
    assert snap.is_form_valid
    assert snap.is_ready_for_submission
    assert snap.reasons == []
    assert snap.durations_ms == {"A": 12000, "B": 12000}
    assert snap.winner_summary == {"A": 7, "B": 0, "tie": 0}


def test_short_view_of_b_blocks_submission(codes, judgments):
    snap = run(visits_for(12000, 4000), codes, judgments)
    assert not snap.is_ready_for_submission
    assert not snap.sufficient_time
    assert snap.is_form_valid
    [reason] = snap.reasons
    assert reason.code == eligibility.INSUFFICIENT_TIME
    assert reason.subject == "B"
    assert reason.params == {"duration_ms": 4000, "required_ms": 10000}
    assert snap.messages({"B": "Link B"}) == [
        "Please spend at least 10 seconds reviewing Link B (so far 4s)."
    ]


@pytest.mark.parametrize("name", BOOLEANS + ["notes_distinct"])
def test_any_false_predicate_blocks_submission(codes, judgments, name):
    snap = run(visits_for(12000, 12000), codes, judgments)
    assert snap.is_ready_for_submission
    assert not replace(snap, **{name: False}).is_ready_for_submission


def test_each_input_failure_flips_readiness(codes, judgments, valid_notes):
    base = dict(visits=visits_for(12000, 12000), codes=codes, judgments=judgments)
    assert run(**base).is_ready_for_submission

    # not visited
    only_a = {k: v for k, v in base["visits"].items() if k == "A"}
    snap = run(only_a, codes, judgments)
    assert not snap.both_visited and not snap.is_ready_for_submission

    # wrong code
    bad_codes = VerificationCodeStore()
    bad_codes.set_captured("A", "K7QX")
    bad_codes.validate("A", "K7QX")
    bad_codes.set_captured("B", "m2rd")
    bad_codes.validate("B", "M2RD")
    snap = run(base["visits"], bad_codes, judgments)
    assert not snap.verification_passed
    assert [r.subject for r in snap.reasons_for(eligibility.VERIFICATION_FAILED)] == ["B"]

    # unjudged dimension
    partial = judgments[:-1] + [DimensionJudgment(DIMENSION_IDS[-1], Winner.UNSET, "")]
    snap = run(base["visits"], codes, partial)
    assert not snap.all_dimensions_judged
    assert snap.reasons_for(eligibility.DIMENSION_UNJUDGED)[0].subject == DIMENSION_IDS[-1]

    # bad note
    bad_note = list(judgments)
    bad_note[0] = DimensionJudgment(DIMENSION_IDS[0], Winner.B, "ok")
    snap = run(base["visits"], codes, bad_note)
    assert not snap.all_notes_valid
    reason = snap.reasons_for(eligibility.NOTE_REJECTED)[0]
    assert reason.params["rule"] == "too_short"

    # no overall winner
    snap = run(base["visits"], codes, judgments, overall="")
    assert not snap.has_overall_winner
    assert snap.reasons_for(eligibility.OVERALL_WINNER_MISSING)


def test_copied_notes_are_flagged_once_per_dimension(codes, judgments):
    dup = list(judgments)
    dup[1] = DimensionJudgment(DIMENSION_IDS[1], Winner.A, judgments[0].notes)
    snap = run(visits_for(12000, 12000), codes, dup)
    assert snap.all_notes_valid
    assert not snap.notes_distinct
    assert not snap.is_ready_for_submission
    flagged = snap.reasons_for(eligibility.NOTES_TOO_SIMILAR)
    assert [r.subject for r in flagged] == [DIMENSION_IDS[0], DIMENSION_IDS[1]]
    assert flagged[0].params == {"other": DIMENSION_IDS[1]}


def test_no_codes_configured_skips_verification(judgments):
    snap = run(visits_for(12000, 12000), VerificationCodeStore(), judgments, has_codes=False)
    assert snap.verification_passed
    assert snap.is_ready_for_submission


def test_verification_accepts_plain_mapping(judgments):
    mapping = {"A": {"captured_code": "x", "is_valid": True}, "B": True}
    snap = run(visits_for(12000, 12000), mapping, judgments)
    assert snap.verification_passed


def test_first_judgment_per_dimension_counts(codes, judgments):
    extra = [DimensionJudgment(DIMENSION_IDS[0], Winner.UNSET, "")]
    snap = run(visits_for(12000, 12000), codes, judgments + extra)
    assert snap.all_dimensions_judged


def test_dict_judgments_are_accepted(codes, judgments):
    raw = [{"dimensionId": j.dimension_id, "winner": "a", "notes": j.notes} for j in judgments]
    snap = run(visits_for(12000, 12000), codes, raw, overall="TIE")
    assert snap.is_ready_for_submission


def test_malformed_input_never_raises():
    snap = eligibility.evaluate(None, "A", "B", None, True, [None, 42, {"winner": "A"}], object(), "soon")
    assert not snap.both_visited
    assert not snap.verification_passed
    assert not snap.all_dimensions_judged
    assert not snap.has_overall_winner
    # bad threshold falls back to zero
    assert snap.sufficient_time
    assert len(snap.reasons_for(eligibility.DIMENSION_UNJUDGED)) == len(DIMENSION_IDS)


def test_live_duration_counts_toward_threshold(codes, judgments):
    store = VisitStatusStore()
    store.record_visit_start("A", 0)
    store.record_visit_end("A", 12000)
    store.record_visit_start("B", 12000)
    assert not run(store.snapshots(15000), codes, judgments).sufficient_time
    assert run(store.snapshots(22000), codes, judgments).is_ready_for_submission


def test_snapshot_to_dict_is_json_shaped(codes, judgments):
    d = run(visits_for(12000, 4000), codes, judgments).to_dict()
    assert d["is_ready_for_submission"] is False
    assert d["reasons"][0]["code"] == "insufficient_time"
    assert d["durations_ms"]["B"] == 4000
