"""
Audit Trail Core
================
Durable audit trail for entity changes, user actions and system events.
"""

__version__ = "0.1.0"

# Models
from audit_trail.models import (
    AuditRecord,
    AuditableEntity,
    EntityKind,
    SYSTEM_USER,
)

# Exceptions
from audit_trail.exceptions import (
    AuditTrailError,
    EncodeError,
    DecodeError,
    InvalidAuditRecordError,
    PersistenceError,
    DispatchError,
    EmergencyFallbackError,
    RetryExhausted,
)

# Pipeline
from audit_trail.codec import encode_details, decode_details
from audit_trail.builder import build_audit_record
from audit_trail.validation import validate_audit_record
from audit_trail.compliance import apply_compliance_policy, mask_sensitive_values
from audit_trail.fallback import EmergencyFallback, format_backup_line
from audit_trail.retry import retry_with_backoff

# Dispatch
from audit_trail.dispatch import (
    Priority,
    AsyncWorkerPool,
    AuditDispatcher,
    is_high_priority_event,
    is_critical_record,
)

# Stores
from audit_trail.store import (
    AuditStore,
    InMemoryAuditStore,
    SqlAlchemyAuditStore,
    create_audit_engine,
    create_session_factory,
    init_audit_schema,
    dispose_engine,
)

# Service
from audit_trail.service import AuditTrailService

# Config, logging, metrics
from audit_trail.config import AuditConfig
from audit_trail.logging_config import setup_logging
from audit_trail.metrics import AuditMetrics, MetricNames

__all__ = [
    # Models
    "AuditRecord",
    "AuditableEntity",
    "EntityKind",
    "SYSTEM_USER",
    # Exceptions
    "AuditTrailError",
    "EncodeError",
    "DecodeError",
    "InvalidAuditRecordError",
    "PersistenceError",
    "DispatchError",
    "EmergencyFallbackError",
    "RetryExhausted",
    # Pipeline
    "encode_details",
    "decode_details",
    "build_audit_record",
    "validate_audit_record",
    "apply_compliance_policy",
    "mask_sensitive_values",
    "EmergencyFallback",
    "format_backup_line",
    "retry_with_backoff",
    # Dispatch
    "Priority",
    "AsyncWorkerPool",
    "AuditDispatcher",
    "is_high_priority_event",
    "is_critical_record",
    # Stores
    "AuditStore",
    "InMemoryAuditStore",
    "SqlAlchemyAuditStore",
    "create_audit_engine",
    "create_session_factory",
    "init_audit_schema",
    "dispose_engine",
    # Service
    "AuditTrailService",
    # Config, logging, metrics
    "AuditConfig",
    "setup_logging",
    "AuditMetrics",
    "MetricNames",
]
