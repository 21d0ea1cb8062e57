from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import sqlalchemy as sa
from fastapi import BackgroundTasks, FastAPI, HTTPException
from pydantic import BaseModel, Field

from ..engine import Engine
from ..model import PipelineSpec
from ..results import JobStatus, PipelineResult
from ..triggers import matches
from ..ui.console import get_console
from .db import make_engine, make_session_factory
from .models import Base, Job, Run, now_utc

TERMINAL = ("success", "failure", "cancelled")

# -------------------- Schemas --------------------

class EventRequest(BaseModel):
    event: str
    scope: str = "default"

class EventResponse(BaseModel):
    activated: bool
    run_id: Optional[str] = None
    superseded: list[str] = Field(default_factory=list)

class JobResponse(BaseModel):
    job_name: str
    status: str
    failed_step: Optional[int]
    outcomes: list[dict[str, Any]]

class RunResponse(BaseModel):
    id: str
    pipeline: Optional[str]
    scope: str
    event: str
    status: str
    created_at: datetime
    finished_at: Optional[datetime]
    jobs: list[JobResponse]

class CancelResponse(BaseModel):
    run_id: str
    cancel_requested: bool

# -------------------- In-flight runs --------------------

class RunTracker:
    """Cancellation handles of runs that have not finished yet, keyed by run id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._inflight: Dict[str, Tuple[str, threading.Event]] = {}

    def start(self, run_id: str, scope: str) -> Tuple[threading.Event, List[str]]:
        """Register a run; every other in-flight run of the same scope is superseded."""
        cancel = threading.Event()
        superseded: List[str] = []
        with self._lock:
            for other_id, (other_scope, other_cancel) in self._inflight.items():
                if other_scope == scope:
                    other_cancel.set()
                    superseded.append(other_id)
            self._inflight[run_id] = (scope, cancel)
        return cancel, superseded

    def cancel(self, run_id: str) -> bool:
        with self._lock:
            entry = self._inflight.get(run_id)
        if entry is None:
            return False
        entry[1].set()
        return True

    def finish(self, run_id: str) -> None:
        with self._lock:
            self._inflight.pop(run_id, None)

    def active(self) -> List[str]:
        with self._lock:
            return list(self._inflight)

# -------------------- App --------------------

def _run_status(result: Optional[PipelineResult], cancel: threading.Event) -> str:
    if result is None:
        return "failure"
    if cancel.is_set() and any(j.status is JobStatus.CANCELLED for j in result.jobs.values()):
        return "cancelled"
    return result.overall.value

def _to_response(run: Run) -> RunResponse:
    return RunResponse(
        id=run.id,
        pipeline=run.pipeline,
        scope=run.scope,
        event=run.event,
        status=run.status,
        created_at=run.created_at,
        finished_at=run.finished_at,
        jobs=[
            JobResponse(
                job_name=j.job_name,
                status=j.status,
                failed_step=j.failed_step,
                outcomes=j.outcomes,
            )
            for j in run.jobs
        ],
    )


def create_app(spec: PipelineSpec, engine: Engine, database_url: str) -> FastAPI:
    """Webhook front-end: events in, runs recorded in the database."""
    db_engine = make_engine(database_url)
    Base.metadata.create_all(db_engine)
    SessionLocal = make_session_factory(db_engine)
    tracker = RunTracker()

    app = FastAPI(title="flowci")
    app.state.tracker = tracker
    app.state.sessions = SessionLocal
    app.state.spec = spec

    def execute_run(run_id: str, event: str, cancel: threading.Event) -> None:
        result: Optional[PipelineResult] = None
        try:
            result = engine.evaluate(spec, event, cancel=cancel)
        except Exception as e:
            get_console().print_exception(e)

        # Stays cancellable until its final status is stored.
        try:
            with SessionLocal() as s:
                with s.begin():
                    run = s.get(Run, run_id)
                    if run is None:
                        return
                    if result is not None:
                        for position, (name, job) in enumerate(result.jobs.items()):
                            s.add(Job(
                                run_id=run_id,
                                position=position,
                                job_name=name,
                                status=job.status.value,
                                failed_step=job.failed_step,
                                outcomes=[o.to_dict() for o in job.outcomes],
                            ))
                    run.status = _run_status(result, cancel)
                    run.finished_at = now_utc()
        finally:
            tracker.finish(run_id)

    # -------------------- Endpoints --------------------

    @app.post("/events", response_model=EventResponse)
    def receive_event(req: EventRequest, background_tasks: BackgroundTasks):
        if not matches(spec, req.event):
            return EventResponse(activated=False)

        with SessionLocal() as s:
            with s.begin():
                run = Run(pipeline=spec.name, scope=req.scope, event=req.event, status="running")
                s.add(run)
                s.flush()
                run_id = run.id

        cancel, superseded = tracker.start(run_id, req.scope)
        background_tasks.add_task(execute_run, run_id, req.event, cancel)
        return EventResponse(activated=True, run_id=run_id, superseded=superseded)

    @app.get("/runs", response_model=list[RunResponse])
    def list_runs(scope: Optional[str] = None, limit: int = 20):
        with SessionLocal() as s:
            q = sa.select(Run).order_by(Run.created_at.desc()).limit(limit)
            if scope is not None:
                q = q.where(Run.scope == scope)
            return [_to_response(r) for r in s.scalars(q).all()]

    @app.get("/runs/{run_id}", response_model=RunResponse)
    def get_run(run_id: str):
        with SessionLocal() as s:
            run = s.get(Run, run_id)
            if not run:
                raise HTTPException(status_code=404, detail="Run not found")
            return _to_response(run)

    @app.post("/runs/{run_id}/cancel", response_model=CancelResponse)
    def cancel_run(run_id: str):
        with SessionLocal() as s:
            run = s.get(Run, run_id)
            if not run:
                raise HTTPException(status_code=404, detail="Run not found")
            if run.status in TERMINAL:
                raise HTTPException(status_code=409, detail=f"Run already {run.status}")
        return CancelResponse(run_id=run_id, cancel_requested=tracker.cancel(run_id))

    return app
