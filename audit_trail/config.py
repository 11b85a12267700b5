"""
Audit Trail Configuration
=========================
Configuration for the audit pipeline, read from environment.
"""

import os
from dataclasses import dataclass
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


def _env_int(name: str, default: int, minimum: Optional[int] = None) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("invalid_config_value", name=name, value=raw, default=default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("config_value_below_minimum", name=name, value=value, minimum=minimum)
        return minimum
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("invalid_config_value", name=name, value=raw, default=default)
        return default


@dataclass
class AuditConfig:
    """Configuration for the audit trail pipeline."""
    service_name: str = "audit-trail"
    worker_count: int = 4              # Background persistence workers
    queue_size: int = 1000             # Pending async audit jobs
    retry_attempts: int = 3            # Extra attempts for failed user actions
    retry_delay: float = 0.5           # Seconds, multiplied by attempt number
    max_activity_days: int = 31        # Widest user activity window
    recent_limit: int = 10
    emergency_log_path: Optional[str] = None
    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls) -> "AuditConfig":
        """Build configuration from environment variables."""
        return cls(
            service_name=os.environ.get("SERVICE_NAME", "audit-trail"),
            worker_count=_env_int("AUDIT_WORKER_COUNT", 4, minimum=1),
            queue_size=_env_int("AUDIT_QUEUE_SIZE", 1000, minimum=1),
            retry_attempts=_env_int("AUDIT_RETRY_ATTEMPTS", 3, minimum=0),
            retry_delay=_env_float("AUDIT_RETRY_DELAY", 0.5),
            max_activity_days=_env_int("AUDIT_MAX_ACTIVITY_DAYS", 31, minimum=1),
            recent_limit=_env_int("AUDIT_RECENT_LIMIT", 10, minimum=1),
            emergency_log_path=os.environ.get("AUDIT_EMERGENCY_LOG_PATH") or None,
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            log_json=os.environ.get("LOG_JSON", "true").lower() == "true",
        )
