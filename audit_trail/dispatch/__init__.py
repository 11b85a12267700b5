"""
Audit Dispatch
==============
Priority rules and the sync/async execution paths for audit records.
"""

from .priority import (
    Priority,
    is_high_priority_event,
    system_event_priority,
    is_critical_record,
)
from .pool import AsyncWorkerPool
from .dispatcher import AuditDispatcher

__all__ = [
    "Priority",
    "is_high_priority_event",
    "system_event_priority",
    "is_critical_record",
    "AsyncWorkerPool",
    "AuditDispatcher",
]
