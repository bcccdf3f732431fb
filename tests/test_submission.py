import base64
import time

import pytest

import survey_db
from submission import (
    SubmissionRejected,
    build_payload,
    check_payload,
    make_submission_id,
    page_view_rows,
    submit,
    validate_captcha,
)


def captcha(a, b, result, stamp_ms):
    return base64.b64encode(f"{a}+{b}={result}:{stamp_ms}".encode()).decode()


NOW_S = 1_700_000_000


@pytest.mark.parametrize("token,ok", [
    (captcha(3, 4, 7, NOW_S * 1000 - 1000), True),
    (captcha(3, 4, 8, NOW_S * 1000 - 1000), False),            # wrong sum
    (captcha(3, 4, 7, NOW_S * 1000 - 301_000), False),         # too old
    (captcha(3, 4, 7, NOW_S * 1000 + 5000), False),            # from the future
    (base64.b64encode(b"hello").decode(), False),
    ("***not base64***", False),
    ("", False),
])
def test_validate_captcha(token, ok):
    assert validate_captcha(token, now_s=NOW_S, max_age_s=300) is ok


def test_submission_ids_are_unique():
    a, b = make_submission_id(), make_submission_id()
    assert a.startswith("sub_")
    assert a != b


@pytest.fixture
def ready_session(make_session, view_link, fill_form):
    sess = make_session(min_view_time_ms=10000)
    view_link(sess, "link-a", 0, 12000)
    view_link(sess, "link-b", 12000, 24000)
    sess.set_verification_code("link-a", "K7QX")
    sess.set_verification_code("link-b", "M2RD")
    fill_form(sess)
    return sess


def test_ineligible_session_never_reaches_sink(make_session):
    sess = make_session()
    calls = []
    result = submit(sess, "", lambda *args: calls.append(args), captcha_required=False)
    assert not result.accepted
    assert result.error == "ineligible"
    assert result.snapshot.reasons
    assert calls == []


def test_eligible_session_is_persisted(ready_session):
    calls = []
    result = submit(ready_session, "", lambda *args: calls.append(args), captcha_required=False)
    assert result.accepted
    [(submission_id, payload, page_views)] = calls
    assert submission_id == result.submission_id
    assert payload["question_id"] == "q1"
    assert payload["overall_winner"] == "A"
    assert len(payload["dimension_evaluations"]) == 7
    assert payload["metadata"]["total_view_time_ms"] == 24000
    assert [pv["link_id"] for pv in page_views] == ["link-a", "link-b"]
    assert all(pv["duration_ms"] == 12000 for pv in page_views)


def test_bad_captcha_is_rejected_by_sink_checks(ready_session):
    calls = []
    result = submit(ready_session, "nonsense", lambda *args: calls.append(args), captcha_required=True)
    assert not result.accepted
    assert result.error == "Invalid captcha verification"
    assert calls == []


def test_fresh_captcha_passes(ready_session):
    calls = []
    token = captcha(2, 5, 7, int(time.time() * 1000))
    result = submit(ready_session, token, lambda *args: calls.append(args), captcha_required=True)
    assert result.accepted
    assert len(calls) == 1


def test_check_payload_requires_every_dimension(ready_session):
    payload = build_payload(ready_session, "")
    payload["dimension_evaluations"] = payload["dimension_evaluations"][:6]
    with pytest.raises(SubmissionRejected):
        check_payload(payload, captcha_required=False)


def test_record_submission_round_trip(temp_db, ready_session):
    result = submit(ready_session, "", survey_db.record_submission, captcha_required=False)
    stored = survey_db.load_response(result.submission_id)
    assert stored["annotator_id"] == "ann-1"
    rows = survey_db.list_page_views(submission_id=result.submission_id)
    assert sorted(r["link_id"] for r in rows) == ["link-a", "link-b"]
    assert all(r["total_view_time_ms"] == 24000 for r in rows)
    assert survey_db.load_response("missing") == {}


def test_page_view_rows_use_effective_duration(make_session):
    sess = make_session()
    lease = sess.open_link("link-a")
    sess.window_event(lease.generation, "focus")
    sess.scheduler.advance_to(2500)
    rows = page_view_rows(sess)
    assert rows[0]["duration_ms"] == 2500
    assert rows[1]["visited"] is False
    assert rows[0]["total_view_time_ms"] == 2500
