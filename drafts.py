# drafts.py
"""Checkpoint/restore of in-progress answers, one row per
(annotator, question, questionnaire)."""
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict

from survey_db import db, utc_now

logger = logging.getLogger(__name__)

DRAFT_KEYS = ("dimension_evaluations", "overall_winner", "visit_status", "verification_status", "saved_at_ms")


def load_draft(annotator_id: str, question_id: str, questionnaire_id: str) -> Dict[str, Any]:
    """Return the saved draft payload, or an empty dict when there is none."""
    conn = db()
    row = conn.execute(
        "SELECT payload FROM drafts WHERE annotator_id=? AND question_id=? AND questionnaire_id=?",
        (annotator_id, question_id, questionnaire_id),
    ).fetchone()
    conn.close()
    if not row:
        return {}
    try:
        payload = json.loads(row["payload"])
    except ValueError:
        logger.warning("corrupt draft payload annotator=%s question=%s", annotator_id, question_id)
        return {}
    return payload if isinstance(payload, dict) else {}


def save_draft(annotator_id: str, question_id: str, questionnaire_id: str, task_group_id: str,
               draft: Dict[str, Any]):
    now = utc_now()
    payload = {k: draft[k] for k in DRAFT_KEYS if draft.get(k) not in (None, "", [], {})}
    conn = db()
    conn.execute(
        "INSERT INTO drafts(annotator_id, question_id, questionnaire_id, task_group_id, payload, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?) "
        "ON CONFLICT(annotator_id, question_id, questionnaire_id) DO UPDATE SET "
        "task_group_id=excluded.task_group_id, payload=excluded.payload, updated_at=excluded.updated_at",
        (annotator_id, question_id, questionnaire_id, task_group_id, json.dumps(payload, ensure_ascii=False), now, now),
    )
    conn.commit()
    conn.close()
    logger.info("draft saved annotator=%s question=%s", annotator_id, question_id)


def delete_draft(annotator_id: str, question_id: str, questionnaire_id: str) -> bool:
    conn = db()
    cur = conn.execute(
        "DELETE FROM drafts WHERE annotator_id=? AND question_id=? AND questionnaire_id=?",
        (annotator_id, question_id, questionnaire_id),
    )
    conn.commit()
    conn.close()
    return cur.rowcount > 0


def cleanup_old_drafts(days_old: int = 7) -> int:
    """Delete drafts not updated for ``days_old`` days; returns how many went."""
    cutoff = (datetime.utcnow() - timedelta(days=days_old)).isoformat(timespec="seconds") + "Z"
    conn = db()
    cur = conn.execute("DELETE FROM drafts WHERE updated_at < ?", (cutoff,))
    conn.commit()
    conn.close()
    return cur.rowcount
