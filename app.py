# app.py
import asyncio
import hashlib
import hmac
import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Tuple

from fastapi import FastAPI, Form, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import drafts
import settings
import survey_db
from dimensions import EVALUATION_DIMENSIONS
from question_session import QuestionSession, SessionContext
from scheduling import ManualScheduler
from submission import submit

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Live question sessions, keyed by session id. Everything that touches them is
# async so it runs on the event loop thread only.
SESSIONS: Dict[str, QuestionSession] = {}
SESSION_KEYS: Dict[Tuple[str, str, str], str] = {}


def now_ms() -> int:
    return int(time.time() * 1000)


def advance_sessions(at_ms: int) -> None:
    """Run due timers (probes, settle/debounce, refresh ticks) of every session."""
    for sess in list(SESSIONS.values()):
        sess.scheduler.advance_to(at_ms)


def evict_idle_sessions(at_ms: int) -> List[str]:
    """Save and drop sessions that have no window and no recent request."""
    evicted = []
    for session_id, sess in list(SESSIONS.items()):
        sess.scheduler.advance_to(at_ms)
        if sess.is_idle(settings.SESSION_IDLE_TIMEOUT_MS):
            sess.teardown(checkpoint=True)
            drop_session(session_id)
            evicted.append(session_id)
    if evicted:
        logger.info("evicted %d idle sessions", len(evicted))
    return evicted


async def _tick_forever():
    interval = max(settings.WINDOW_PROBE_INTERVAL_MS, 100) / 1000
    while True:
        await asyncio.sleep(interval)
        at = now_ms()
        advance_sessions(at)
        evict_idle_sessions(at)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    survey_db.ensure_db()
    ticker = asyncio.create_task(_tick_forever())
    try:
        yield
    finally:
        ticker.cancel()
        for sess in list(SESSIONS.values()):
            sess.teardown(checkpoint=True)


app = FastAPI(lifespan=lifespan)


@app.get("/health")
def health():
    """Simple health check for load balancer probes."""
    return JSONResponse(content={"status": "ok"})


# ----------------------------
# Admin auth
# ----------------------------
ADMIN_COOKIE = "survey_admin"
ADMIN_SCOPE = "results"


def _admin_signature(payload: str) -> str:
    return hmac.new(settings.ADMIN_KEY.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def make_admin_token(now_s: Optional[int] = None) -> str:
    """Cookie value granting read access to stored results: ``results:<expiry>.<hex hmac>``."""
    if not settings.ADMIN_KEY:
        return ""
    now_s = int(time.time()) if now_s is None else now_s
    payload = f"{ADMIN_SCOPE}:{now_s + settings.ADMIN_TOKEN_TTL_SECONDS}"
    return f"{payload}.{_admin_signature(payload)}"


def verify_admin_token(tok: str, now_s: Optional[int] = None) -> bool:
    # no key configured means the results routes are open
    if not settings.ADMIN_KEY:
        return True
    payload, _, sig = (tok or "").rpartition(".")
    if not payload or not hmac.compare_digest(sig.encode("utf-8"), _admin_signature(payload).encode("utf-8")):
        return False
    scope, _, exp = payload.partition(":")
    if scope != ADMIN_SCOPE or not exp.isdigit():
        return False
    now_s = int(time.time()) if now_s is None else now_s
    return int(exp) >= now_s


def require_admin(request: Request):
    if not verify_admin_token(request.cookies.get(ADMIN_COOKIE, "")):
        raise HTTPException(status_code=401, detail="Admin login required")


# ----------------------------
# Request bodies
# ----------------------------
class CreateSession(BaseModel):
    annotator_id: str = Field(min_length=1)
    questionnaire_id: str = Field(min_length=1)
    question_id: str = Field(min_length=1)
    task_group_id: str = ""


class OpenLink(BaseModel):
    blocked: bool = Field(default=False, description="window.open returned null in the browser")
    supports_focus_events: bool = Field(
        default=True, description="False when focus/blur cannot be observed on the opened page (cross-origin)")


class WindowEvent(BaseModel):
    event: str = Field(description="One of: focus, blur, load, unload, closed, heartbeat")


class HostEvent(BaseModel):
    event: str = Field(description="focus or blur of the survey page itself")


class VerificationBody(BaseModel):
    code: str = ""


class JudgmentBody(BaseModel):
    winner: str = Field(default="", description="'A', 'B', 'tie' or '' (unset)")
    notes: str = ""


class OverallBody(BaseModel):
    winner: str = ""


class SubmitBody(BaseModel):
    captcha_response: str = ""


# ----------------------------
# Session helpers
# ----------------------------
def get_session(session_id: str) -> QuestionSession:
    sess = SESSIONS.get(session_id)
    if sess is None:
        raise HTTPException(status_code=404, detail="Unknown session")
    sess.scheduler.advance_to(now_ms())
    sess.touch()
    return sess


def drop_session(session_id: str) -> None:
    sess = SESSIONS.pop(session_id, None)
    if sess is not None:
        c = sess.context
        SESSION_KEYS.pop((c.annotator_id, c.questionnaire_id, c.question_id), None)


@app.get("/api/dimensions")
def api_dimensions():
    return JSONResponse(content=[{"id": d.id, "label": d.label, "description": d.description}
                                 for d in EVALUATION_DIMENSIONS])


@app.get("/api/questionnaires/{questionnaire_id}/questions")
def api_list_questions(questionnaire_id: str):
    return JSONResponse(content=[
        {"id": q.id, "task_group_id": q.task_group_id, "user_query": q.user_query,
         "link_a": {"id": q.link_a.id, "url": q.link_a.url, "title": q.link_a.title},
         "link_b": {"id": q.link_b.id, "url": q.link_b.url, "title": q.link_b.title},
         "has_verification_codes": q.has_verification_codes}
        for q in survey_db.list_questions(questionnaire_id)
    ])


@app.post("/api/sessions")
async def api_create_session(body: CreateSession):
    key = (body.annotator_id, body.questionnaire_id, body.question_id)
    existing = SESSION_KEYS.get(key)
    if existing in SESSIONS:
        return {"session_id": existing, "restored": False, "status": get_session(existing).status()}

    question = survey_db.load_question(body.questionnaire_id, body.question_id)
    if question is None:
        raise HTTPException(status_code=404, detail="Unknown question")

    ctx = SessionContext(body.annotator_id, body.questionnaire_id, body.question_id,
                         body.task_group_id or question.task_group_id)
    sess = QuestionSession(ctx, question, ManualScheduler(now_ms()), draft_store=drafts)
    restored = sess.restore()
    session_id = secrets.token_urlsafe(16)
    SESSIONS[session_id] = sess
    SESSION_KEYS[key] = session_id
    logger.info("session %s started annotator=%s question=%s restored=%s",
                session_id, body.annotator_id, body.question_id, restored)
    return {"session_id": session_id, "restored": restored, "status": sess.status()}


@app.get("/api/sessions/{session_id}")
async def api_session_status(session_id: str):
    return get_session(session_id).status()


@app.get("/api/sessions/{session_id}/eligibility")
async def api_eligibility(session_id: str):
    sess = get_session(session_id)
    snap = sess.eligibility()
    return {**snap.to_dict(), "messages": snap.messages(sess.labels())}


@app.post("/api/sessions/{session_id}/links/{link_id}/open")
async def api_open_link(session_id: str, link_id: str, body: OpenLink):
    sess = get_session(session_id)
    if sess.question.link(link_id) is None:
        raise HTTPException(status_code=404, detail="Unknown link")
    lease = sess.open_link(link_id, blocked=body.blocked, supports_focus_events=body.supports_focus_events)
    if lease is None:
        return {"opened": False, "reason": "popup_blocked",
                "message": "Popup blocked! Please allow popups for this site and try again."}
    return {"opened": True, "generation": lease.generation, "url": lease.url, "fallback": lease.fallback}


@app.post("/api/sessions/{session_id}/windows/{generation}/events")
async def api_window_event(session_id: str, generation: int, body: WindowEvent):
    sess = get_session(session_id)
    accepted = sess.window_event(generation, body.event)
    return {"accepted": accepted, "status": sess.status()}


@app.post("/api/sessions/{session_id}/host-events")
async def api_host_event(session_id: str, body: HostEvent):
    sess = get_session(session_id)
    if not sess.host_event(body.event):
        raise HTTPException(status_code=400, detail="Host event must be focus or blur")
    return {"accepted": True}


@app.post("/api/sessions/{session_id}/window/close")
async def api_close_window(session_id: str):
    sess = get_session(session_id)
    sess.close_window()
    return sess.status()


@app.put("/api/sessions/{session_id}/verification/{link_id}")
async def api_verification(session_id: str, link_id: str, body: VerificationBody):
    sess = get_session(session_id)
    try:
        valid = sess.set_verification_code(link_id, body.code)
    except KeyError:
        raise HTTPException(status_code=404, detail="Unknown link")
    return {"link_id": link_id, "is_valid": valid}


@app.put("/api/sessions/{session_id}/judgments/{dimension_id}")
async def api_judgment(session_id: str, dimension_id: str, body: JudgmentBody):
    sess = get_session(session_id)
    try:
        j = sess.set_judgment(dimension_id, body.winner, body.notes)
    except KeyError:
        raise HTTPException(status_code=404, detail="Unknown dimension")
    return j.to_dict()


@app.put("/api/sessions/{session_id}/overall")
async def api_overall(session_id: str, body: OverallBody):
    sess = get_session(session_id)
    return {"overall_winner": sess.set_overall_winner(body.winner).value}


@app.post("/api/sessions/{session_id}/checkpoint")
async def api_checkpoint(session_id: str):
    sess = get_session(session_id)
    return {"saved": True, "draft": sess.checkpoint()}


@app.delete("/api/sessions/{session_id}")
async def api_end_session(session_id: str):
    sess = get_session(session_id)
    sess.teardown(checkpoint=True)
    drop_session(session_id)
    return {"closed": True}


@app.post("/api/sessions/{session_id}/submit")
async def api_submit(session_id: str, body: SubmitBody):
    sess = get_session(session_id)
    result = submit(sess, body.captcha_response, survey_db.record_submission)
    if not result.accepted and result.error == "ineligible":
        snap = result.snapshot
        return JSONResponse(status_code=409, content={
            "success": False,
            "reasons": [r.to_dict() for r in snap.reasons],
            "messages": snap.messages(sess.labels()),
        })
    if not result.accepted:
        raise HTTPException(status_code=400, detail=result.error)

    sess.teardown(checkpoint=False)
    c = sess.context
    drafts.delete_draft(c.annotator_id, c.question_id, c.questionnaire_id)
    drop_session(session_id)
    return {"success": True, "submission_id": result.submission_id}


# ----------------------------
# Drafts
# ----------------------------
def _draft_key(annotator_id: str, question_id: str, questionnaire_id: str) -> Tuple[str, str, str]:
    if not annotator_id or not question_id or not questionnaire_id:
        raise HTTPException(status_code=400,
                            detail="Missing required query parameters: annotator_id, question_id, questionnaire_id")
    return annotator_id, question_id, questionnaire_id


@app.get("/api/draft")
def api_get_draft(annotator_id: str = "", question_id: str = "", questionnaire_id: str = ""):
    """Return the saved draft for an annotator/question (read-only)."""
    draft = drafts.load_draft(*_draft_key(annotator_id, question_id, questionnaire_id))
    return {"found": bool(draft), "draft": draft or None}


@app.delete("/api/draft")
def api_delete_draft(annotator_id: str = "", question_id: str = "", questionnaire_id: str = ""):
    deleted = drafts.delete_draft(*_draft_key(annotator_id, question_id, questionnaire_id))
    return {"deleted": deleted}


# ----------------------------
# Admin
# ----------------------------
@app.post("/api/admin/login")
def admin_login(admin_key: str = Form(default="")):
    if settings.ADMIN_KEY and not hmac.compare_digest(admin_key.encode("utf-8"), settings.ADMIN_KEY.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Invalid admin key")
    resp = JSONResponse(content={"ok": True})
    if settings.ADMIN_KEY:
        resp.set_cookie(ADMIN_COOKIE, make_admin_token(), httponly=True, max_age=settings.ADMIN_TOKEN_TTL_SECONDS)
    return resp


@app.get("/api/admin/page-views")
def admin_page_views(request: Request, submission_id: str = "", question_id: str = "", annotator_id: str = ""):
    require_admin(request)
    rows = survey_db.list_page_views(submission_id, question_id, annotator_id)
    return {"count": len(rows), "data": rows}


@app.get("/api/admin/responses/{submission_id}")
def admin_response(request: Request, submission_id: str):
    require_admin(request)
    payload = survey_db.load_response(submission_id)
    if not payload:
        raise HTTPException(status_code=404, detail="No response found for this submission")
    return payload
