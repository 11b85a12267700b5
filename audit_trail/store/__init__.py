"""
Audit Stores
============
Persistence backends for audit records.
"""

from .base import AuditStore
from .memory import InMemoryAuditStore
from .database import (
    Base,
    create_audit_engine,
    create_session_factory,
    init_audit_schema,
    dispose_engine,
)
from .sql import AuditRecordRow, SqlAlchemyAuditStore

__all__ = [
    "AuditStore",
    "InMemoryAuditStore",
    "Base",
    "create_audit_engine",
    "create_session_factory",
    "init_audit_schema",
    "dispose_engine",
    "AuditRecordRow",
    "SqlAlchemyAuditStore",
]
