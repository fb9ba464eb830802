"""FastAPI application: wires the monitoring session, stream pipeline and routes.

This module owns the per-process state:
- one :class:`MonitoringSession` (classifier, thresholds, escalation)
- the :class:`StreamPipeline` that feeds readings into it
- the database used as the history sink
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException, Query

from neurofit_monitor.api.routes.classification import router as classification_router
from neurofit_monitor.api.routes.emergency import router as emergency_router
from neurofit_monitor.api.schemas import EscalationResponse, QueuedResponse, ReadingResponse
from neurofit_monitor.config import get_settings
from neurofit_monitor.models import Reading
from neurofit_monitor.session import MonitoringSession, RepositorySink, create_session
from neurofit_monitor.storage.database import dispose_engine, init_db
from neurofit_monitor.streaming.pipeline import StreamPipeline

logger = structlog.get_logger(__name__)

# ── Shared state (initialised in lifespan) ────────────────────

_session: MonitoringSession | None = None
_pipeline: StreamPipeline | None = None
_pipeline_task: asyncio.Task | None = None


def get_monitoring_session() -> MonitoringSession:
    if _session is None:
        raise HTTPException(503, "Monitoring session not ready.")
    return _session


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database, start the session and the reading pipeline; undo on exit."""
    global _session, _pipeline, _pipeline_task

    settings = get_settings()

    # 1. Database
    await init_db()
    logger.info("server.db_ready")

    # 2. Monitoring session (model restore / bootstrap runs in the background)
    _session = create_session(settings, sink=RepositorySink())
    _session.start(bootstrap=settings.model_bootstrap_on_start)

    # 3. Streaming pipeline
    _pipeline = StreamPipeline()
    _pipeline.add_consumer(_session.process_reading)
    _pipeline_task = asyncio.create_task(_pipeline.start())

    logger.info("server.started", port=settings.api_port, profile=settings.threshold_profile)

    yield

    if _pipeline:
        await _pipeline.stop()
    if _pipeline_task:
        try:
            await asyncio.wait_for(_pipeline_task, timeout=settings.dispatch_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("server.pipeline_stop_timeout")
    if _session:
        await _session.close()
    await dispose_engine()
    _session = _pipeline = _pipeline_task = None
    logger.info("server.stopped")


app = FastAPI(
    title="NeuroFit Monitor API",
    description="Mood classification and emergency escalation for wearable EEG / vitals streams.",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Routers ───────────────────────────────────────────────────
app.include_router(classification_router)
app.include_router(emergency_router)


# ── Health ────────────────────────────────────────────────────

@app.get("/health", tags=["system"])
async def health():
    return {"status": "ok", "pipeline_pending": _pipeline.pending if _pipeline else 0}


@app.get("/status", tags=["system"])
async def status():
    """Session, model and pipeline state for operational monitoring."""
    session = get_monitoring_session()
    return {
        **session.status(),
        "pipeline": {
            "running": _pipeline is not None and _pipeline.running,
            "pending": _pipeline.pending if _pipeline else 0,
            "processed": _pipeline.processed_total if _pipeline else 0,
            "dropped": _pipeline.dropped_total if _pipeline else 0,
        },
    }


# ── Data ingestion ────────────────────────────────────────────

@app.post("/readings", status_code=202, tags=["data"])
async def ingest(reading: Reading, sync: bool = Query(False)):
    """Queue a reading for processing.

    With ``?sync=true`` the reading is processed inline and the outcome
    returned.
    """
    session = get_monitoring_session()
    if sync:
        outcome = await session.process_reading(reading)
        return ReadingResponse(
            classification=outcome.classification,
            conditions=outcome.conditions,
            escalations=[EscalationResponse.from_result(e) for e in outcome.escalations],
        )
    if _pipeline is None:
        raise HTTPException(503, "Pipeline not ready.")
    await _pipeline.publish(reading)
    return QueuedResponse(queued=True, pending=_pipeline.pending)
