"""Shared fixtures for the audit trail test suite."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
import structlog

from audit_trail.config import AuditConfig
from audit_trail.models import AuditRecord
from audit_trail.service import AuditTrailService
from audit_trail.store import InMemoryAuditStore


@dataclass
class Order:
    """Minimal domain entity implementing the auditable capability."""
    id: Optional[int]
    status: str = "NEW"
    total: Decimal = Decimal("10.00")
    extra: Any = None

    def identifier(self) -> Optional[int]:
        return self.id

    def entity_type(self) -> str:
        return "Order"

    def audit_state(self) -> Dict[str, Any]:
        state = {"id": self.id, "status": self.status, "total": self.total}
        if self.extra is not None:
            state["extra"] = self.extra
        return state


class FailingStore(InMemoryAuditStore):
    """Store whose first `fail_times` saves raise (all of them if None)."""

    def __init__(self, fail_times: Optional[int] = None):
        super().__init__()
        self.fail_times = fail_times
        self.save_calls = 0

    async def save(self, record: AuditRecord) -> int:
        self.save_calls += 1
        if self.fail_times is None or self.save_calls <= self.fail_times:
            raise RuntimeError("database unavailable")
        return await super().save(record)


class GatedStore(InMemoryAuditStore):
    """Store whose saves wait until the gate is opened."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()

    async def save(self, record: AuditRecord) -> int:
        await self.gate.wait()
        return await super().save(record)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    """Clock advancing one second per call."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def config() -> AuditConfig:
    return AuditConfig(worker_count=2, queue_size=10, retry_attempts=3, retry_delay=0.5)


@pytest.fixture
def store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_service(config, sleep, clock):
    """Factory building a service around a given store."""

    def _make(store, **kwargs) -> AuditTrailService:
        kwargs.setdefault("config", config)
        kwargs.setdefault("sleep", sleep)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("system_metrics", lambda: {"available_processors": 4})
        return AuditTrailService(store, **kwargs)

    return _make


@pytest.fixture
def service(make_service, store) -> AuditTrailService:
    return make_service(store)
