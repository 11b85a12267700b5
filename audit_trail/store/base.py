"""
Audit Store Interface
=====================
Durable persistence and queries for audit records.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List

from ..models import AuditRecord


class AuditStore(ABC):
    """
    Abstract interface for audit storage.

    Records are append-only: save always creates a new entry. All list
    queries except find_by_action return records newest first.
    """

    @abstractmethod
    async def save(self, record: AuditRecord) -> int:
        """Persist a record and return its store-assigned ID."""
        pass

    @abstractmethod
    async def find_by_entity(self, entity_id: int, entity_type: str) -> List[AuditRecord]:
        """Records for one entity, newest first."""
        pass

    @abstractmethod
    async def find_by_user_and_time_range(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> List[AuditRecord]:
        """Records by a user with start <= timestamp <= end, newest first."""
        pass

    @abstractmethod
    async def find_by_action(self, action: str) -> List[AuditRecord]:
        """Records with the given action code."""
        pass

    @abstractmethod
    async def find_most_recent(self, limit: int = 10) -> List[AuditRecord]:
        """The latest records, newest first."""
        pass

    @abstractmethod
    async def find_with_errors(self) -> List[AuditRecord]:
        """Records flagged with has_errors."""
        pass
