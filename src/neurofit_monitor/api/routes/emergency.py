"""Emergency evaluation, alerting and escalation settings routes."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from neurofit_monitor.api.schemas import (
    EscalationResponse,
    EvaluationResponse,
    ManualAlertRequest,
    MonitoringRequest,
    ProfileRequest,
)
from neurofit_monitor.exceptions import UnknownProfileError
from neurofit_monitor.models import AlertRecord, EmergencyContact, LocationFix, Reading
from neurofit_monitor.monitors.escalation import EscalationResult, EscalationStatus
from neurofit_monitor.storage.repository import AlertRepository

router = APIRouter(tags=["emergency"])


def _respond(result: EscalationResult) -> EscalationResponse:
    if result.status == EscalationStatus.CONFIGURATION_ERROR:
        raise HTTPException(409, result.detail or "Emergency contact not configured.")
    return EscalationResponse.from_result(result)


@router.post("/emergency/evaluate", response_model=EvaluationResponse)
async def evaluate(reading: Reading, escalate: bool = Query(True)):
    """Check a reading against the active profile and optionally escalate."""
    from neurofit_monitor.api.server import get_monitoring_session

    session = get_monitoring_session()
    conditions = session.evaluate_emergency(reading)
    escalations = []
    if escalate:
        escalations = [
            EscalationResponse.from_result(await session.handle_condition(c)) for c in conditions
        ]
    return EvaluationResponse(conditions=conditions, escalations=escalations)


@router.post("/alerts/manual", response_model=EscalationResponse)
async def manual_alert(req: ManualAlertRequest | None = None):
    from neurofit_monitor.api.server import get_monitoring_session

    vitals = req.vitals if req else None
    return _respond(await get_monitoring_session().trigger_manual_alert(vitals))


@router.post("/alerts/test", response_model=EscalationResponse)
async def test_alert():
    from neurofit_monitor.api.server import get_monitoring_session

    return _respond(await get_monitoring_session().send_test_alert())


@router.get("/alerts", response_model=list[AlertRecord])
async def list_alerts(limit: int = Query(50, ge=1, le=500)):
    """In-session alert history, newest first."""
    from neurofit_monitor.api.server import get_monitoring_session

    return get_monitoring_session().alert_history()[:limit]


# ── Settings ──────────────────────────────────────────────────


@router.put("/monitoring")
async def set_monitoring(req: MonitoringRequest):
    from neurofit_monitor.api.server import get_monitoring_session

    get_monitoring_session().set_monitoring(req.enabled)
    return {"monitoring_enabled": req.enabled}


@router.put("/contact")
async def set_contact(contact: EmergencyContact):
    from neurofit_monitor.api.server import get_monitoring_session

    get_monitoring_session().set_contact(contact)
    return {"contact": contact.model_dump()}


@router.delete("/contact")
async def clear_contact():
    from neurofit_monitor.api.server import get_monitoring_session

    get_monitoring_session().set_contact(None)
    return {"contact": None}


@router.put("/location")
async def set_location(fix: LocationFix):
    from neurofit_monitor.api.server import get_monitoring_session

    get_monitoring_session().set_location(fix)
    return {"location": fix.model_dump(mode="json")}


@router.put("/profile")
async def set_profile(req: ProfileRequest):
    from neurofit_monitor.api.server import get_monitoring_session

    try:
        profile = get_monitoring_session().set_profile(req.name)
    except UnknownProfileError as exc:
        raise HTTPException(422, str(exc)) from exc
    return {
        "name": profile.name,
        "stress": profile.stress,
        "heart_rate_min": profile.heart_rate_min,
        "heart_rate_max": profile.heart_rate_max,
        "spo2_min": profile.spo2_min,
        "stress_critical": profile.stress_critical,
    }


# ── Persisted history ─────────────────────────────────────────


@router.get("/history/alerts")
async def alert_history(limit: int = Query(50, ge=1, le=500)):
    repo = AlertRepository()
    rows = await repo.get_latest(limit=limit)
    return [
        {
            "id": r.id,
            "kind": r.kind,
            "severity": r.severity,
            "message": r.message,
            "timestamp": r.timestamp.isoformat(),
            "sent": r.sent,
            "dispatch_error": r.dispatch_error,
        }
        for r in rows
    ]
