"""Shared fixtures for all test modules."""
import pytest

import settings
import survey_db
from dimensions import EVALUATION_DIMENSIONS
from question_session import QuestionSession, SessionContext
from questions import ComparisonLink, Question
from scheduling import ManualScheduler

# One distinct, specific justification per dimension; none of them borrows
# wording from the dimension descriptions.
NOTES = {
    "query_interface_consistency": "Version A answers the pasta request directly while B drifts toward desserts",
    "task_efficiency": "I reached the recipe steps in two clicks on A versus five on B",
    "usability": "Buttons on A are labelled plainly so I never wondered where to go",
    "learnability": "First glance at A made sense whereas B hides its menu behind icons",
    "information_clarity": "Ingredient lists in A use short bullet points; B crams everything into paragraphs",
    "aesthetic_appeal": "Colours on B feel muddy and the fonts clash with each other",
    "interaction_satisfaction": "Scrolling through A felt smooth and I would happily come back later",
}


@pytest.fixture
def valid_notes():
    assert set(NOTES) == {d.id for d in EVALUATION_DIMENSIONS}
    return dict(NOTES)


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point the sqlite helpers at a fresh database file."""
    monkeypatch.setattr(settings, "DB_PATH", str(tmp_path / "survey.db"))
    survey_db.ensure_db()
    return settings.DB_PATH


@pytest.fixture
def question():
    return Question(
        id="q1",
        questionnaire_id="qn-1",
        task_group_id="tg-1",
        link_a=ComparisonLink("link-a", "https://example.org/a.html", "Link A", "K7QX"),
        link_b=ComparisonLink("link-b", "https://example.org/b.html", "Link B", "M2RD"),
        user_query="Find a quick vegetarian pasta recipe",
    )


@pytest.fixture
def scheduler():
    return ManualScheduler(0)


@pytest.fixture
def make_session(question, scheduler):
    def _make(draft_store=None, min_view_time_ms=10000, q=None):
        q = q or question
        ctx = SessionContext("ann-1", q.questionnaire_id, q.id, q.task_group_id)
        return QuestionSession(ctx, q, scheduler, draft_store=draft_store, min_view_time_ms=min_view_time_ms)
    return _make


@pytest.fixture
def view_link():
    """Open a link, hold focus from ``start`` to ``end`` with heartbeats, then blur."""
    def _view(sess, link_id, start, end):
        sess.scheduler.advance_to(start)
        lease = sess.open_link(link_id)
        sess.window_event(lease.generation, "focus")
        t = start
        while t + 1000 < end:
            t += 1000
            sess.scheduler.advance_to(t)
            sess.window_event(lease.generation, "heartbeat")
        sess.scheduler.advance_to(end)
        sess.window_event(lease.generation, "blur")
        return lease
    return _view


@pytest.fixture
def fill_form(valid_notes):
    def _fill(sess, overall="A"):
        for dim_id, note in valid_notes.items():
            sess.set_judgment(dim_id, "A" if dim_id != "aesthetic_appeal" else "B", note)
        sess.set_overall_winner(overall)
    return _fill
