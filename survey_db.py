# survey_db.py
import json
import logging
import os
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

import settings
from questions import Question, question_from_row

logger = logging.getLogger(__name__)


# ----------------------------
# DB helpers
# ----------------------------
def db() -> sqlite3.Connection:
    conn = sqlite3.connect(settings.DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def utc_now() -> str:
    return datetime.utcnow().isoformat(timespec="seconds") + "Z"


def ensure_db():
    # Ensure parent directory for DB exists (DB_PATH may be overridden by env)
    db_dir = os.path.dirname(settings.DB_PATH)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
    conn = db()
    conn.execute("""
  CREATE TABLE IF NOT EXISTS questions (
    questionnaire_id TEXT NOT NULL,
    question_id TEXT NOT NULL,
    task_group_id TEXT,
    user_query TEXT,
    is_trap INTEGER NOT NULL DEFAULT 0,
    link_a_id TEXT NOT NULL,
    link_a_url TEXT NOT NULL,
    link_a_title TEXT,
    link_a_code TEXT,
    link_b_id TEXT NOT NULL,
    link_b_url TEXT NOT NULL,
    link_b_title TEXT,
    link_b_code TEXT,
    created_at TEXT NOT NULL,
    PRIMARY KEY (questionnaire_id, question_id)
  )
  """)
    conn.execute("""
  CREATE TABLE IF NOT EXISTS drafts (
    annotator_id TEXT NOT NULL,
    question_id TEXT NOT NULL,
    questionnaire_id TEXT NOT NULL,
    task_group_id TEXT,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (annotator_id, question_id, questionnaire_id)
  )
  """)
    conn.execute("""
  CREATE TABLE IF NOT EXISTS responses (
    submission_id TEXT PRIMARY KEY,
    annotator_id TEXT NOT NULL,
    questionnaire_id TEXT NOT NULL,
    question_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL
  )
  """)
    conn.execute("""
  CREATE TABLE IF NOT EXISTS page_views (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    submission_id TEXT NOT NULL,
    question_id TEXT NOT NULL,
    annotator_id TEXT NOT NULL,
    questionnaire_id TEXT NOT NULL,
    link_id TEXT NOT NULL,
    link_url TEXT NOT NULL,
    visited INTEGER NOT NULL,
    duration_ms INTEGER NOT NULL,
    visit_count INTEGER NOT NULL,
    first_session_start_ms INTEGER,
    last_visited_ms INTEGER,
    total_view_time_ms INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY(submission_id) REFERENCES responses(submission_id)
  )
  """)
    conn.commit()
    conn.close()


# ----------------------------
# Questions
# ----------------------------
def upsert_question(q: Question):
    conn = db()
    conn.execute(
        "INSERT INTO questions(questionnaire_id, question_id, task_group_id, user_query, is_trap, "
        "link_a_id, link_a_url, link_a_title, link_a_code, link_b_id, link_b_url, link_b_title, link_b_code, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
        "ON CONFLICT(questionnaire_id, question_id) DO UPDATE SET "
        "task_group_id=excluded.task_group_id, user_query=excluded.user_query, is_trap=excluded.is_trap, "
        "link_a_id=excluded.link_a_id, link_a_url=excluded.link_a_url, link_a_title=excluded.link_a_title, "
        "link_a_code=excluded.link_a_code, link_b_id=excluded.link_b_id, link_b_url=excluded.link_b_url, "
        "link_b_title=excluded.link_b_title, link_b_code=excluded.link_b_code",
        (q.questionnaire_id, q.id, q.task_group_id, q.user_query, int(q.is_trap),
         q.link_a.id, q.link_a.url, q.link_a.title, q.link_a.verification_code,
         q.link_b.id, q.link_b.url, q.link_b.title, q.link_b.verification_code, utc_now()),
    )
    conn.commit()
    conn.close()


def load_question(questionnaire_id: str, question_id: str) -> Optional[Question]:
    conn = db()
    row = conn.execute("SELECT * FROM questions WHERE questionnaire_id=? AND question_id=?",
                       (questionnaire_id, question_id)).fetchone()
    conn.close()
    return question_from_row(row) if row else None


def list_questions(questionnaire_id: str) -> List[Question]:
    conn = db()
    rows = conn.execute("SELECT * FROM questions WHERE questionnaire_id=? ORDER BY question_id",
                        (questionnaire_id,)).fetchall()
    conn.close()
    return [question_from_row(r) for r in rows]


# ----------------------------
# Submissions
# ----------------------------
def record_submission(submission_id: str, payload: Dict[str, Any], page_views: List[Dict[str, Any]]):
    """Store the response and its per-link page views in one transaction."""
    ts = payload.get("submitted_at") or utc_now()
    conn = db()
    try:
        conn.execute(
            "INSERT INTO responses(submission_id, annotator_id, questionnaire_id, question_id, payload, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (submission_id, payload["annotator_id"], payload["questionnaire_id"], payload["question_id"],
             json.dumps(payload, ensure_ascii=False), ts),
        )
        for pv in page_views:
            conn.execute(
                "INSERT INTO page_views(submission_id, question_id, annotator_id, questionnaire_id, link_id, link_url, "
                "visited, duration_ms, visit_count, first_session_start_ms, last_visited_ms, total_view_time_ms, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (submission_id, payload["question_id"], payload["annotator_id"], payload["questionnaire_id"],
                 pv["link_id"], pv["link_url"], int(pv["visited"]), pv["duration_ms"], pv["visit_count"],
                 pv.get("first_session_start_ms"), pv.get("last_visited_ms"), pv["total_view_time_ms"], ts),
            )
        conn.commit()
    finally:
        conn.close()
    logger.info("stored submission %s question=%s annotator=%s",
                submission_id, payload["question_id"], payload["annotator_id"])


def load_response(submission_id: str) -> Dict[str, Any]:
    """Return a stored response payload, or an empty dict."""
    conn = db()
    row = conn.execute("SELECT payload FROM responses WHERE submission_id=?", (submission_id,)).fetchone()
    conn.close()
    if not row:
        return {}
    try:
        return json.loads(row["payload"])
    except ValueError:
        return {}


def list_page_views(submission_id: str = "", question_id: str = "", annotator_id: str = "") -> List[Dict[str, Any]]:
    sql = "SELECT * FROM page_views"
    if submission_id:
        sql, params = sql + " WHERE submission_id=?", (submission_id,)
    elif question_id:
        sql, params = sql + " WHERE question_id=?", (question_id,)
    elif annotator_id:
        sql, params = sql + " WHERE annotator_id=?", (annotator_id,)
    else:
        params = ()
    conn = db()
    rows = conn.execute(sql + " ORDER BY id DESC", params).fetchall()
    conn.close()
    return [dict(r) for r in rows]
