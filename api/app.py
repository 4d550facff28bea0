from __future__ import annotations
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
import logging, os, pathlib, uuid, typing as t

from assess_core.acquisition import QuestionAcquisitionPipeline
from assess_core.cache import TieredQuestionCache
from assess_core.config import load_config, get_backend, seed_rng, DATA_DIR
from assess_core.engine import AssessmentStateMachine, format_time
from assess_core.errors import InvalidOperation
from assess_core.remote import build_question_source, build_report_source
from assess_core.reporting import ReportService
from assess_core.storage import FileSnapshotStore
from assess_core.telemetry import TelemetrySink
from assess_core.types import AssessmentState, CandidateProfile

log = logging.getLogger(__name__)

CFG = load_config()
seed_rng(CFG)
DATA_ROOT = pathlib.Path(os.getenv("DATA_DIR") or CFG.get("DATA_DIR") or DATA_DIR).resolve()

STORE = FileSnapshotStore(DATA_ROOT / "snapshots")
TELEMETRY = TelemetrySink(endpoint=CFG.get("TELEMETRY_URL"), log_path=DATA_ROOT / "telemetry.jsonl")
PIPELINE = QuestionAcquisitionPipeline(
    source=build_question_source(CFG),
    cache=TieredQuestionCache.default(DATA_ROOT / "question_cache"),
    telemetry=TELEMETRY,
)
REPORTS = ReportService(remote=build_report_source(CFG), store=STORE, telemetry=TELEMETRY)

SESS: dict[str, AssessmentStateMachine] = {}

app = FastAPI(title="Assessment Orchestration API")

ALLOWED_ORIGINS = [o.strip() for o in (os.getenv("ALLOWED_ORIGINS") or "http://localhost:3000").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

# ---- Schemas ----
class StartReq(BaseModel):
    candidate_id: str = Field(min_length=1)
    name: str = ""
    email: str = ""
    degree: str = ""
    graduation_year: str = ""
    college_name: str = ""
    interested_domains: list[str] = []
    preferred_language: str | None = None

class AnswerReq(BaseModel):
    question_id: str
    answer: str

class TickReq(BaseModel):
    seconds: int = Field(default=1, ge=0)

# ---- Helpers ----
def _session(sid: str) -> AssessmentStateMachine:
    sm = SESS.get(sid)
    if sm is None: raise HTTPException(404, "session not found")
    return sm


def _public_state(state: AssessmentState) -> dict[str, t.Any]:
    """State as the UI sees it; answer keys stay hidden until the assessment is over."""

    d = state.to_dict()
    if state.phase != "assessment_complete":
        for sec in d["sections"]:
            for q in sec["questions"]:
                q.pop("correctAnswer", None)
                q.pop("explanation", None)
    return d


def _view(sid: str, sm: AssessmentStateMachine) -> dict[str, t.Any]:
    st = sm.snapshot()
    q = sm.current_question
    return {
        "session_id": sid,
        "state": _public_state(st),
        "current_question_id": q.id if q else None,
        "progress": round(sm.overall_progress(), 4),
        "time_left": format_time(st.time_remaining_seconds),
        "degraded": st.cache_source == "emergency",
        "complete": sm.is_complete,
    }

# ---- Health ----
@app.get("/health")
def health():
    return {
        "status": "ok",
        "question_backend": get_backend(CFG) or "emergency",
        "report_backend": "http" if CFG.get("REPORT_SOURCE_URL") else "local",
        "sessions": len(SESS),
    }

# ---- Sessions ----
@app.post("/sessions")
async def start(req: StartReq):
    profile = CandidateProfile(
        id=req.candidate_id,
        name=req.name,
        email=req.email,
        degree=req.degree,
        graduation_year=req.graduation_year,
        college_name=req.college_name,
        interested_domains=tuple(req.interested_domains),
        preferred_language=req.preferred_language,
    )
    sm = AssessmentStateMachine(profile, pipeline=PIPELINE, store=STORE, reports=REPORTS, telemetry=TELEMETRY)
    await sm.initialize()
    sid = str(uuid.uuid4())
    SESS[sid] = sm
    log.info("session %s started for %s (resumed=%s)", sid, profile.id, sm.resumed)
    return {**_view(sid, sm), "resumed": sm.resumed}

@app.get("/sessions/{sid}")
def get_session(sid: str):
    return _view(sid, _session(sid))

@app.post("/sessions/{sid}/answer")
async def answer(sid: str, req: AnswerReq):
    sm = _session(sid)
    try:
        await sm.select_answer(req.question_id, req.answer)
    except InvalidOperation as e:
        raise HTTPException(400, e.to_dict())
    return _view(sid, sm)

@app.post("/sessions/{sid}/next")
def next_question(sid: str):
    sm = _session(sid)
    sm.next_question()
    return _view(sid, sm)

@app.post("/sessions/{sid}/previous")
def previous_question(sid: str):
    sm = _session(sid)
    sm.previous_question()
    return _view(sid, sm)

@app.post("/sessions/{sid}/complete")
async def complete(sid: str):
    sm = _session(sid)
    await sm.complete_section()
    return _view(sid, sm)

@app.post("/sessions/{sid}/tick")
async def tick(sid: str, req: TickReq | None = None):
    sm = _session(sid)
    await sm.tick((req or TickReq()).seconds)
    return _view(sid, sm)

@app.get("/sessions/{sid}/report")
async def report(sid: str):
    sm = _session(sid)
    if not sm.is_complete or sm.report is None:
        raise HTTPException(409, "assessment not complete")
    built = await sm.build_report()
    return {"session_id": sid, "scores": sm.report.to_dict(), "report": built}
