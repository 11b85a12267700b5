"""
Emergency Audit Backup
======================
Last-resort recording of critical records when the audit store fails.

Backups go to a dedicated logger and, when configured, an append-only
file. Both are separate from the primary store.
"""

from pathlib import Path
from typing import Any, Optional, Union

import structlog

from .exceptions import EmergencyFallbackError
from .logging_config import get_emergency_logger
from .metrics import AuditMetrics, MetricNames
from .models import AuditRecord, EMPTY_DETAILS

logger = structlog.get_logger(__name__)

BACKUP_MARKER = "EMERGENCY_AUDIT_BACKUP"


def _field(value: Any) -> str:
    return "null" if value is None else str(value)


def format_backup_line(record: AuditRecord) -> str:
    """Render a record as a flat pipe-delimited backup line."""
    return "|".join([
        BACKUP_MARKER,
        record.timestamp.isoformat(),
        _field(record.action),
        _field(record.entity_type),
        _field(record.entity_id),
        _field(record.user_id),
        record.details if record.details is not None else EMPTY_DETAILS,
    ])


class EmergencyFallback:
    """Writes critical records to the emergency backup channel."""

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        metrics: Optional[AuditMetrics] = None,
    ):
        self.path = Path(path) if path else None
        self.metrics = metrics or AuditMetrics()
        self._channel = get_emergency_logger()

    def _append(self, line: str) -> None:
        try:
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError as e:
            raise EmergencyFallbackError(f"Cannot write emergency backup to {self.path}: {e}") from e

    def backup(self, record: AuditRecord) -> bool:
        """
        Record a backup line for a record. Never raises.

        Returns:
            True if the backup was written, False on total failure
        """
        try:
            line = format_backup_line(record)
            self._channel.error(BACKUP_MARKER, backup=line)
            if self.path is not None:
                self._append(line)
        except Exception as e:
            self.metrics.increment(MetricNames.EMERGENCY_FAILURES)
            logger.error(
                "emergency_backup_failed",
                action=record.action,
                user_id=record.user_id,
                error=str(e),
                exc_info=True,
            )
            return False

        self.metrics.increment(MetricNames.EMERGENCY_BACKUPS)
        return True
