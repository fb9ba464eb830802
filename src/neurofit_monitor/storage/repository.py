"""Data-access layer: thin async wrappers around SQLAlchemy queries."""

from __future__ import annotations

import json
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from neurofit_monitor.models import AlertRecord, ClassificationResult, Reading
from neurofit_monitor.storage.database import (
    ClassificationRow,
    EmergencyAlertRow,
    get_session_factory,
)


class BaseRepository:
    """Shared base with session management for all repositories."""

    def __init__(self, session: AsyncSession | None = None) -> None:
        self._external_session = session

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        if self._external_session is not None:
            yield self._external_session
            return
        async with get_session_factory()() as session:
            yield session


class ClassificationRepository(BaseRepository):
    """Append-only store for :class:`ClassificationResult` objects."""

    async def save(
        self,
        result: ClassificationResult,
        reading: Reading | None = None,
        *,
        result_id: str | None = None,
    ) -> str:
        row = ClassificationRow(
            id=result_id or str(uuid.uuid4()),
            timestamp=result.timestamp,
            label=result.label.value,
            confidence=result.confidence,
            method=result.method.value,
            stress_level=result.stress_level,
            focus_level=result.focus_level,
            relaxation_level=result.relaxation_level,
            probabilities_json=json.dumps(result.probabilities),
            reading_json=reading.model_dump_json() if reading is not None else "{}",
        )
        async with self._session() as session:
            session.add(row)
            await session.commit()
        return row.id

    async def get_latest(self, limit: int = 50) -> Sequence[ClassificationRow]:
        async with self._session() as session:
            stmt = (
                select(ClassificationRow)
                .order_by(ClassificationRow.timestamp.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return result.scalars().all()

    async def count(self) -> int:
        async with self._session() as session:
            result = await session.execute(select(func.count()).select_from(ClassificationRow))
            return result.scalar() or 0


class AlertRepository(BaseRepository):
    """Append-only store for :class:`AlertRecord` objects."""

    async def save(self, alert: AlertRecord) -> None:
        vitals = alert.vitals
        location = alert.location
        row = EmergencyAlertRow(
            id=alert.id,
            kind=alert.kind.value,
            severity=alert.severity.value,
            message=alert.message,
            timestamp=alert.timestamp,
            heart_rate=vitals.heart_rate if vitals else None,
            spo2=vitals.spo2 if vitals else None,
            stress_index=vitals.stress_index if vitals else None,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            sent=alert.sent,
            dispatch_error=alert.dispatch_error,
        )
        async with self._session() as session:
            session.add(row)
            await session.commit()

    async def get_latest(self, limit: int = 50) -> Sequence[EmergencyAlertRow]:
        async with self._session() as session:
            stmt = (
                select(EmergencyAlertRow)
                .order_by(EmergencyAlertRow.timestamp.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return result.scalars().all()
