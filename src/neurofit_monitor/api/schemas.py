"""Request / response models shared across API route modules."""

from __future__ import annotations

from pydantic import BaseModel

from neurofit_monitor.models import (
    AlertRecord,
    ClassificationResult,
    EmergencyCondition,
    Reading,
    VitalsSnapshot,
)
from neurofit_monitor.monitors.escalation import EscalationResult, EscalationStatus


class ManualAlertRequest(BaseModel):
    """Optional vitals; the last observed ones are used when omitted."""
    vitals: VitalsSnapshot | None = None


class MonitoringRequest(BaseModel):
    enabled: bool


class ProfileRequest(BaseModel):
    name: str


class CorrectionRequest(BaseModel):
    reading: Reading
    label: str


class EscalationResponse(BaseModel):
    status: EscalationStatus
    record: AlertRecord | None = None
    detail: str | None = None

    @classmethod
    def from_result(cls, result: EscalationResult) -> EscalationResponse:
        return cls(status=result.status, record=result.record, detail=result.detail)


class EvaluationResponse(BaseModel):
    conditions: list[EmergencyCondition]
    escalations: list[EscalationResponse] = []


class ReadingResponse(BaseModel):
    classification: ClassificationResult
    conditions: list[EmergencyCondition]
    escalations: list[EscalationResponse]


class QueuedResponse(BaseModel):
    queued: bool
    pending: int
