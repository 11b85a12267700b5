"""
Audit Dispatcher
================
Chooses synchronous or fire-and-forget persistence per record priority.
"""

from typing import Awaitable, Callable, Optional

import structlog

from ..exceptions import DispatchError
from ..models import AuditRecord
from .pool import AsyncWorkerPool
from .priority import Priority

logger = structlog.get_logger(__name__)

Persist = Callable[[AuditRecord], Awaitable[bool]]


class AuditDispatcher:
    """Routes records to the caller's task or to the background pool."""

    def __init__(self, persist: Persist, pool: AsyncWorkerPool):
        self._persist = persist
        self.pool = pool

    async def dispatch(self, record: AuditRecord, priority: Priority) -> Optional[bool]:
        """
        Dispatch a record for persistence.

        Args:
            record: Record to persist
            priority: HIGH persists before returning, NORMAL is fire-and-forget

        Returns:
            The persist outcome for HIGH priority, None for queued records
        """
        if priority == Priority.HIGH:
            return await self._persist(record)

        try:
            self.pool.submit(lambda: self._persist(record), name=f"persist:{record.action}")
        except DispatchError as e:
            logger.error("audit_schedule_failed", action=record.action, error=str(e))
            return await self._persist(record)
        return None

    async def drain(self) -> None:
        await self.pool.drain()

    async def shutdown(self) -> None:
        await self.pool.shutdown()
