"""
HTTP adapter for a host application.

One in-memory PedagogyEngine per learner handle. Answer keys and worked
solutions never leave the server; they are only used for grading.

Sessions are bounded: an engine idle for longer than `idle_timeout_s` is
closed and dropped, and past `max_sessions` the least recently used engine
is evicted. Telemetry timestamps are epoch milliseconds, the same clock the
stall watchdog runs on.
"""

import logging
import os
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from starlette.middleware.cors import CORSMiddleware

from .config import EngineConfig
from .engine import PedagogyEngine
from .exceptions import StaleTurnError, UnknownProblemError
from .modes import LearnerState, Mode
from .signals import InteractionSample, SampleKind

logger = logging.getLogger(__name__)

EngineFactory = Callable[[Optional[LearnerState]], PedagogyEngine]


# Define Models
class TelemetrySample(BaseModel):
    timestamp: float = Field(
        description="Epoch milliseconds (Date.now()), not a page-relative performance.now() value"
    )
    kind: SampleKind
    x: Optional[float] = None
    y: Optional[float] = None
    hidden: Optional[bool] = None

    def to_sample(self) -> InteractionSample:
        position = (self.x, self.y) if self.x is not None and self.y is not None else None
        return InteractionSample(
            timestamp=self.timestamp,
            kind=self.kind,
            position=position,
            hidden=self.hidden,
        )


class TelemetryBatch(BaseModel):
    learner: str
    samples: List[TelemetrySample] = Field(default_factory=list)


class StressOut(BaseModel):
    level: int
    is_raging: bool
    is_jittery: bool
    is_stalled: bool
    is_hidden: bool
    computed_at: float
    snapshot_version: int
    click_velocity: float
    inactivity_ms: float


class SessionCreate(BaseModel):
    learner: str
    mode: Mode = Mode.VERVE
    support_level: int = Field(default=5, ge=1, le=5)
    streak: int = Field(default=0, ge=0)
    completed_nodes: List[str] = Field(default_factory=list)


class ProblemOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    prompt: str
    options: Optional[List[str]] = None
    difficulty: int
    requires_tool: bool
    provenance: str
    zone: Optional[str] = None
    node_id: Optional[str] = None
    hint: Optional[str] = None
    concept_tags: List[str] = Field(default_factory=list)


class AnswerSubmit(BaseModel):
    learner: str
    problem_id: str
    answer: str


class AnswerOut(BaseModel):
    correct: bool
    updated_streak: int
    updated_support_level: int
    mode: str
    explanation: Optional[str] = None


class ModeSelect(BaseModel):
    learner: str
    mode: str


class StateOut(BaseModel):
    model_config = ConfigDict(extra="ignore")

    mode: str
    support_level: int
    streak: int
    completed_nodes: List[str]
    score: int
    stress: StressOut
    mode_actions: Dict[str, Any]


def create_app(
    engine_factory: Optional[EngineFactory] = None,
    config: Optional[EngineConfig] = None,
    max_sessions: int = 1000,
    idle_timeout_s: float = 1800.0,
    clock: Callable[[], float] = time.monotonic
) -> FastAPI:
    """Build the API. `engine_factory(initial_state)` creates a learner's engine."""
    if engine_factory is None:
        engine_config = config or EngineConfig.from_env()

        def engine_factory(state: Optional[LearnerState]) -> PedagogyEngine:
            return PedagogyEngine(engine_config, initial_state=state)

    app = FastAPI(title="Pedagogy Engine")
    api_router = APIRouter(prefix="/api")
    # Ordered least to most recently used
    engines: "OrderedDict[str, PedagogyEngine]" = OrderedDict()
    last_seen: Dict[str, float] = {}
    app.state.engines = engines

    def drop(learner: str, reason: str):
        engine = engines.pop(learner, None)
        last_seen.pop(learner, None)
        if engine is not None:
            engine.close()
            logger.info(f"Closed session for {learner} ({reason})")

    def evict(now: float):
        for learner in [name for name, seen in last_seen.items() if now - seen > idle_timeout_s]:
            drop(learner, "idle")
        while len(engines) >= max_sessions:
            drop(next(iter(engines)), "capacity")

    def register(learner: str, engine: PedagogyEngine) -> PedagogyEngine:
        now = clock()
        evict(now)
        engines[learner] = engine
        last_seen[learner] = now
        return engine

    def engine_for(learner: str) -> PedagogyEngine:
        if not learner:
            raise HTTPException(status_code=400, detail="Learner handle is required")
        now = clock()
        engine = engines.get(learner)
        if engine is not None and now - last_seen[learner] > idle_timeout_s:
            drop(learner, "idle")
            engine = None
        if engine is None:
            engine = register(learner, engine_factory(None))
            logger.info(f"Started session for {learner}")
        else:
            engines.move_to_end(learner)
            last_seen[learner] = now
        return engine

    @api_router.get("/health")
    async def health():
        return {"status": "ok", "sessions": len(engines)}

    @api_router.post("/session", response_model=StateOut)
    async def start_session(body: SessionCreate):
        """Hydrate a learner's session from persisted state."""
        drop(body.learner, "rehydrated")
        state = LearnerState(
            mode=body.mode,
            support_level=body.support_level,
            streak=body.streak,
            completed_nodes=body.completed_nodes,
        )
        return register(body.learner, engine_factory(state)).status()

    @api_router.post("/telemetry", response_model=StressOut)
    async def telemetry(batch: TelemetryBatch):
        engine = engine_for(batch.learner)
        for sample in sorted(batch.samples, key=lambda s: s.timestamp):
            engine.ingest(sample.to_sample())
        return engine.stress.current_reading.to_dict()

    @api_router.get("/problem/{node_id}", response_model=ProblemOut)
    async def next_problem(node_id: str, learner: str = Query(...)):
        engine = engine_for(learner)
        try:
            problem = await engine.get_next_problem(node_id)
        except StaleTurnError:
            raise HTTPException(status_code=409, detail="Superseded by a newer request")
        return problem.to_dict(include_answer=False)

    @api_router.post("/answer", response_model=AnswerOut)
    async def answer(body: AnswerSubmit):
        engine = engine_for(body.learner)
        try:
            problem = engine.content.lookup(body.problem_id)
            outcome = engine.report_answer(body.problem_id, body.answer)
        except UnknownProblemError:
            raise HTTPException(status_code=404, detail="Problem is not active for this learner")
        return {**outcome.to_dict(), "explanation": problem.explanation}

    @api_router.post("/mode", response_model=StateOut)
    async def select_mode(body: ModeSelect):
        engine = engine_for(body.learner)
        try:
            Mode(body.mode.upper())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown mode '{body.mode}'")
        engine.select_mode(body.mode)
        return engine.status()

    @api_router.get("/state", response_model=StateOut)
    async def state(learner: str = Query(...)):
        return engine_for(learner).status()

    app.include_router(api_router)

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("shutdown")
    async def close_sessions():
        for learner in list(engines):
            drop(learner, "shutdown")

    return app
