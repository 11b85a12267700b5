"""
SQL Audit Store
===============
SQLAlchemy-backed AuditStore persisting to the audit_records table.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, Text, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from ..models import AuditRecord, MAX_ACTION_LENGTH, MAX_ENTITY_TYPE_LENGTH
from .base import AuditStore
from .database import Base, session_scope


class AuditRecordRow(Base):
    """ORM row for an audit record."""
    __tablename__ = "audit_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(MAX_ACTION_LENGTH), nullable=False, index=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(MAX_ENTITY_TYPE_LENGTH))
    entity_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    details: Mapped[Optional[str]] = mapped_column(Text)
    has_errors: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @classmethod
    def from_record(cls, record: AuditRecord) -> "AuditRecordRow":
        return cls(
            action=record.action,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            user_id=record.user_id,
            timestamp=record.timestamp,
            details=record.details,
            has_errors=record.has_errors,
        )

    def to_record(self) -> AuditRecord:
        timestamp = self.timestamp
        # Some backends (SQLite) drop tzinfo; stored values are UTC.
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return AuditRecord(
            id=self.id,
            action=self.action,
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            user_id=self.user_id,
            timestamp=timestamp,
            details=self.details,
            has_errors=bool(self.has_errors),
        )


class SqlAlchemyAuditStore(AuditStore):
    """AuditStore on top of an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def save(self, record: AuditRecord) -> int:
        row = AuditRecordRow.from_record(record)
        async with session_scope(self._session_factory) as session:
            session.add(row)
            await session.flush()
            return row.id

    async def _fetch(self, stmt) -> List[AuditRecord]:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [row.to_record() for row in result.scalars().all()]

    async def find_by_entity(self, entity_id: int, entity_type: str) -> List[AuditRecord]:
        return await self._fetch(
            select(AuditRecordRow)
            .where(
                AuditRecordRow.entity_id == entity_id,
                AuditRecordRow.entity_type == entity_type,
            )
            .order_by(AuditRecordRow.timestamp.desc(), AuditRecordRow.id.desc())
        )

    async def find_by_user_and_time_range(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> List[AuditRecord]:
        return await self._fetch(
            select(AuditRecordRow)
            .where(
                AuditRecordRow.user_id == user_id,
                AuditRecordRow.timestamp.between(start, end),
            )
            .order_by(AuditRecordRow.timestamp.desc(), AuditRecordRow.id.desc())
        )

    async def find_by_action(self, action: str) -> List[AuditRecord]:
        return await self._fetch(
            select(AuditRecordRow)
            .where(AuditRecordRow.action == action)
            .order_by(AuditRecordRow.id)
        )

    async def find_most_recent(self, limit: int = 10) -> List[AuditRecord]:
        return await self._fetch(
            select(AuditRecordRow)
            .order_by(AuditRecordRow.timestamp.desc(), AuditRecordRow.id.desc())
            .limit(limit)
        )

    async def find_with_errors(self) -> List[AuditRecord]:
        return await self._fetch(
            select(AuditRecordRow)
            .where(AuditRecordRow.has_errors.is_(True))
            .order_by(AuditRecordRow.id)
        )
