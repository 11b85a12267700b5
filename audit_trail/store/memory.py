"""In-memory implementation of AuditStore."""

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Dict, List

from ..models import AuditRecord
from .base import AuditStore


class InMemoryAuditStore(AuditStore):
    """
    In-memory AuditStore for testing and development.

    Uses dict storage with linear scan for queries.
    """

    def __init__(self) -> None:
        self._records: Dict[int, AuditRecord] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def save(self, record: AuditRecord) -> int:
        async with self._lock:
            record_id = self._next_id
            self._next_id += 1
            self._records[record_id] = replace(record, id=record_id)
        return record_id

    @property
    def records(self) -> List[AuditRecord]:
        """All stored records in insertion order."""
        return list(self._records.values())

    def _newest_first(self, records: List[AuditRecord]) -> List[AuditRecord]:
        return sorted(records, key=lambda r: (r.timestamp, r.id), reverse=True)

    async def find_by_entity(self, entity_id: int, entity_type: str) -> List[AuditRecord]:
        return self._newest_first([
            r for r in self._records.values()
            if r.entity_id == entity_id and r.entity_type == entity_type
        ])

    async def find_by_user_and_time_range(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> List[AuditRecord]:
        return self._newest_first([
            r for r in self._records.values()
            if r.user_id == user_id and start <= r.timestamp <= end
        ])

    async def find_by_action(self, action: str) -> List[AuditRecord]:
        return [r for r in self._records.values() if r.action == action]

    async def find_most_recent(self, limit: int = 10) -> List[AuditRecord]:
        return self._newest_first(list(self._records.values()))[:limit]

    async def find_with_errors(self) -> List[AuditRecord]:
        return [r for r in self._records.values() if r.has_errors]
