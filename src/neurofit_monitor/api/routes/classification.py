"""Mood classification, corrections, trends and model status routes."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from neurofit_monitor.api.schemas import CorrectionRequest
from neurofit_monitor.models import ClassificationResult, Reading
from neurofit_monitor.storage.repository import ClassificationRepository

router = APIRouter(tags=["classification"])


@router.post("/classify", response_model=ClassificationResult)
async def classify(reading: Reading):
    from neurofit_monitor.api.server import get_monitoring_session

    return get_monitoring_session().classify(reading)


@router.post("/corrections", status_code=201)
async def add_correction(req: CorrectionRequest):
    """Record the true mood for a reading; feeds the next retrain."""
    from neurofit_monitor.api.server import get_monitoring_session

    session = get_monitoring_session()
    if not session.add_correction(req.reading, req.label):
        raise HTTPException(422, f"Correction rejected for label {req.label!r}.")
    model = session.model
    return {
        "accepted": True,
        "corrections": model.correction_count if model else 0,
        "training": session.is_training(),
    }


@router.get("/trends")
async def trends(window: str = Query("24h", pattern="^(1h|24h|7d)$")):
    from neurofit_monitor.api.server import get_monitoring_session

    return get_monitoring_session().get_trends(window)


@router.get("/recommendations")
async def recommendations():
    from neurofit_monitor.api.server import get_monitoring_session

    return get_monitoring_session().recommendations()


@router.get("/model")
async def model_info():
    from neurofit_monitor.api.server import get_monitoring_session

    model = get_monitoring_session().model
    if model is None:
        raise HTTPException(404, "No statistical model configured.")
    return model.info()


@router.get("/history/classifications")
async def classification_history(limit: int = Query(50, ge=1, le=1000)):
    repo = ClassificationRepository()
    rows = await repo.get_latest(limit=limit)
    return [
        {
            "id": r.id,
            "timestamp": r.timestamp.isoformat(),
            "label": r.label,
            "confidence": r.confidence,
            "method": r.method,
            "stress_level": r.stress_level,
            "focus_level": r.focus_level,
            "relaxation_level": r.relaxation_level,
        }
        for r in rows
    ]
