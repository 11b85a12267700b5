"""
Audit Trail Service
===================
Records entity changes, user actions and system events.

Auditing never fails the business operation it accompanies: the write
operations log and swallow every failure. Entity changes and routine
system events are persisted by background workers; user actions and
high-priority system events are persisted before the call returns.

Usage:
    from audit_trail import AuditTrailService, InMemoryAuditStore

    audit = AuditTrailService(InMemoryAuditStore())

    await audit.audit_user_action("user_123", "LOGIN", {"ip": "1.2.3.4"})
    await audit.audit_entity_change(order, "UPDATE", "user_123")
    await audit.audit_system_event("SECURITY_ALERT", "Too many failed logins")

    await audit.close()
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog

from .builder import Clock, build_audit_record, utc_now
from .codec import encode_details
from .compliance import apply_compliance_policy
from .config import AuditConfig
from .dispatch import AsyncWorkerPool, AuditDispatcher, Priority, is_critical_record, system_event_priority
from .exceptions import EncodeError, PersistenceError, RetryExhausted
from .fallback import EmergencyFallback
from .metrics import AuditMetrics, MetricNames, timed
from .models import (
    AuditableEntity,
    AuditRecord,
    EntityKind,
    SYSTEM_USER,
    UNKNOWN_ACTION,
    UNKNOWN_EVENT,
)
from .retry import Sleep, retry_with_backoff
from .store import AuditStore
from .validation import validate_audit_record

logger = structlog.get_logger(__name__)

USER_ACTION_RETRY = "USER_ACTION_RETRY"
USER_ACTION_TYPE = "USER_ACTION"
NO_MESSAGE = "No message provided"
ALL_FIELDS = "ALL"


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC, matching stored record timestamps."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def collect_system_metrics() -> Dict[str, Any]:
    """Best-effort process metrics attached to system events."""
    metrics: Dict[str, Any] = {
        "available_processors": os.cpu_count(),
        "pid": os.getpid(),
    }
    try:
        import resource

        metrics["max_rss_kb"] = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    except (ImportError, OSError) as e:
        logger.debug("system_metrics_unavailable", error=str(e))
    return metrics


class AuditTrailService:
    """
    Orchestrates building, validating, masking and persisting audit records.

    Args:
        store: Durable audit store
        config: Pipeline configuration (defaults to AuditConfig.from_env())
        metrics: Metrics collector shared with the pool and fallback
        fallback: Emergency backup channel for critical records
        pool: Worker pool for fire-and-forget persistence
        clock: Source of record timestamps
        sleep: Coroutine function used between user action retries
        system_metrics: Callable returning process metrics for system events
    """

    def __init__(
        self,
        store: AuditStore,
        config: Optional[AuditConfig] = None,
        metrics: Optional[AuditMetrics] = None,
        fallback: Optional[EmergencyFallback] = None,
        pool: Optional[AsyncWorkerPool] = None,
        clock: Clock = utc_now,
        sleep: Sleep = asyncio.sleep,
        system_metrics: Callable[[], Dict[str, Any]] = collect_system_metrics,
    ):
        self.store = store
        self.config = config or AuditConfig.from_env()
        self.metrics = metrics or AuditMetrics(service=self.config.service_name)
        self.fallback = fallback or EmergencyFallback(
            path=self.config.emergency_log_path,
            metrics=self.metrics,
        )
        pool = pool or AsyncWorkerPool(
            worker_count=self.config.worker_count,
            queue_size=self.config.queue_size,
            metrics=self.metrics,
        )
        self.dispatcher = AuditDispatcher(self.persist_audit_record, pool)
        self._clock = clock
        self._sleep = sleep
        self._system_metrics = system_metrics

    # =========================================================================
    # Write operations
    # =========================================================================

    async def audit_entity_change(
        self,
        entity: Optional[AuditableEntity],
        action: str,
        user_id: Optional[str],
    ) -> None:
        """
        Audit a change to a domain entity. Persisted in the background.

        Args:
            entity: The changed entity
            action: The action performed (CREATE, UPDATE, DELETE, ...)
            user_id: The user who performed the action
        """
        if entity is None:
            logger.warning("entity_change_without_entity", action=action, user_id=user_id)
            return

        try:
            entity_type = entity.entity_type()
            entity_id = entity.identifier()

            details: Dict[str, Any] = {"entity_state": entity.audit_state()}
            if action == "UPDATE":
                # No dirty checking: every update is recorded as touching all fields.
                details["changed_fields"] = ALL_FIELDS

            record = self.create_audit_record(action, entity_type, entity_id, user_id, details)
            await self.dispatcher.dispatch(record, Priority.NORMAL)

            logger.debug(
                "entity_change_audited",
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                user_id=user_id,
            )
        except Exception as e:
            logger.error(
                "entity_change_audit_failed",
                entity=type(entity).__name__,
                action=action,
                user_id=user_id,
                error=str(e),
                exc_info=True,
            )

    async def audit_user_action(
        self,
        user_id: Optional[str],
        action: Optional[str],
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Audit a user action. Persisted before returning.

        If the store rejects the record, up to config.retry_attempts
        simplified USER_ACTION_RETRY records are attempted with linear
        backoff.

        Args:
            user_id: The acting user; blank values are recorded as SYSTEM
            action: The action performed
            details: Additional context
        """
        if user_id is not None and not isinstance(user_id, str):
            user_id = str(user_id)
        if user_id is None or not user_id.strip():
            logger.warning("user_action_without_user", action=action)
            user_id = SYSTEM_USER

        persisted = False
        try:
            if details is None:
                enriched: Dict[str, Any] = {}
            elif isinstance(details, Mapping):
                enriched = dict(details)
            else:
                enriched = {"value": details}
            enriched["timestamp"] = self._clock().isoformat()
            enriched["action_type"] = USER_ACTION_TYPE

            record = self.create_audit_record(
                action or UNKNOWN_ACTION,
                EntityKind.USER_ACTION,
                None,
                user_id,
                enriched,
            )
            persisted = bool(await self.dispatcher.dispatch(record, Priority.HIGH))
        except Exception as e:
            logger.error(
                "user_action_audit_failed",
                user_id=user_id,
                action=action,
                error=str(e),
                exc_info=True,
            )

        if persisted:
            logger.info("user_action_audited", user_id=user_id, action=action)
            return

        await self._retry_user_action(user_id, action, details)

    async def _retry_user_action(
        self,
        user_id: str,
        action: Optional[str],
        details: Optional[Mapping[str, Any]],
    ) -> None:
        async def attempt(n: int) -> bool:
            self.metrics.increment(MetricNames.RETRY_ATTEMPTS)
            retry_details = {
                "action": action,
                "original_details": details,
                "retry_attempt": n,
            }
            record = self.create_audit_record(
                USER_ACTION_RETRY,
                EntityKind.USER_ACTION,
                None,
                user_id,
                retry_details,
            )
            return await self.persist_audit_record(record)

        try:
            await retry_with_backoff(
                attempt,
                max_attempts=self.config.retry_attempts,
                base_delay=self.config.retry_delay,
                sleep=self._sleep,
                name="user_action",
            )
        except RetryExhausted as e:
            self.metrics.increment(MetricNames.RETRY_EXHAUSTED)
            logger.error(
                "user_action_audit_lost",
                user_id=user_id,
                action=action,
                attempts=e.attempts,
            )

    async def audit_system_event(
        self,
        event_type: Optional[str],
        message: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Audit a system-level event.

        Events whose type mentions errors, security, auth or critical
        conditions are persisted before returning; others in the background.

        Args:
            event_type: The type of system event
            message: A descriptive message
            metadata: Additional metadata
        """
        try:
            kind = event_type or UNKNOWN_EVENT
            text = message or NO_MESSAGE

            details: Dict[str, Any] = dict(metadata or {})
            details["message"] = text
            details["timestamp"] = self._clock().isoformat()
            try:
                details["system_metrics"] = self._system_metrics()
            except Exception as e:
                logger.debug("system_metrics_unavailable", error=str(e))

            record = self.create_audit_record(kind, EntityKind.SYSTEM_EVENT, None, SYSTEM_USER, details)
            await self.dispatcher.dispatch(record, system_event_priority(kind))

            logger.info("system_event_audited", event_type=kind, message=text)
        except Exception as e:
            logger.error(
                "system_event_audit_failed",
                event_type=event_type,
                message=message,
                error=str(e),
                exc_info=True,
            )
            self._log_system_event_fallback(event_type, message, metadata, e)

    def _log_system_event_fallback(
        self,
        event_type: Optional[str],
        message: Optional[str],
        metadata: Any,
        error: Exception,
    ) -> None:
        try:
            payload = encode_details({
                "event_type": event_type,
                "message": message,
                "metadata": metadata,
                "error_message": str(error),
            })
        except EncodeError as e:
            logger.error("system_event_audit_total_failure", event_type=event_type, error=str(e))
            return
        logger.warning("FALLBACK SYSTEM EVENT AUDIT", payload=payload)

    # =========================================================================
    # Record construction and persistence
    # =========================================================================

    def create_audit_record(
        self,
        action: Optional[str],
        entity_type: Optional[str],
        entity_id: Optional[int],
        user_id: Optional[str],
        details: Any = None,
    ) -> AuditRecord:
        """Build a standardized record stamped with the service clock."""
        return build_audit_record(
            action,
            entity_type,
            entity_id,
            user_id,
            details,
            clock=self._clock,
        )

    async def _save(self, record: AuditRecord) -> int:
        try:
            with timed(self.metrics, MetricNames.STORE_SAVE_DURATION):
                return await self.store.save(record)
        except Exception as e:
            raise PersistenceError(f"Audit store rejected record: {e}", record=record) from e

    async def persist_audit_record(self, record: Optional[AuditRecord]) -> bool:
        """
        Validate, mask and save a record. Never raises.

        On failure, critical records are written to the emergency backup;
        others are dropped with an error log.

        Returns:
            True if the store accepted the record
        """
        if record is None:
            logger.warning("persist_without_record")
            return False

        try:
            record = validate_audit_record(record)
            record = apply_compliance_policy(record)
            record_id = await self._save(record)
        except Exception as e:
            self.metrics.increment(MetricNames.PERSIST_FAILURES)
            logger.error(
                "audit_persist_failed",
                action=record.action,
                entity_type=record.entity_type,
                entity_id=record.entity_id,
                user_id=record.user_id,
                error=str(e),
                exc_info=True,
            )
            if is_critical_record(record):
                self.fallback.backup(record)
            else:
                self.metrics.increment(MetricNames.RECORDS_DROPPED)
                logger.warning("audit_record_dropped", action=record.action)
            return False

        self.metrics.increment(MetricNames.RECORDS_PERSISTED)
        logger.debug("audit_record_persisted", record_id=record_id, action=record.action)
        return True

    # =========================================================================
    # Read operations
    # =========================================================================

    async def get_audit_history(
        self,
        entity_id: Optional[int],
        entity_type: Optional[str],
    ) -> List[AuditRecord]:
        """Records for an entity, newest first. Empty on bad input or failure."""
        if entity_id is None or entity_type is None:
            logger.warning("audit_history_missing_arguments")
            return []

        try:
            records = await self.store.find_by_entity(entity_id, entity_type)
        except Exception as e:
            logger.error(
                "audit_history_failed",
                entity_type=entity_type,
                entity_id=entity_id,
                error=str(e),
                exc_info=True,
            )
            return []

        logger.debug("audit_history_retrieved", entity_type=entity_type, entity_id=entity_id, count=len(records))
        return records

    async def get_user_activity_log(
        self,
        user_id: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> List[AuditRecord]:
        """
        Records by a user within [start, end], newest first.

        Naive bounds are taken as UTC. Ranges longer than
        config.max_activity_days are cut to that window.
        Returns an empty list on missing arguments, a reversed range, or a
        store failure.
        """
        if user_id is None or start is None or end is None:
            logger.warning("activity_log_missing_arguments")
            return []

        try:
            start, end = as_utc(start), as_utc(end)
            if end < start:
                logger.warning("activity_log_invalid_range", start=start.isoformat(), end=end.isoformat())
                return []

            window_end = start + timedelta(days=self.config.max_activity_days)
            if end > window_end:
                logger.warning(
                    "activity_log_range_limited",
                    max_days=self.config.max_activity_days,
                    requested_end=end.isoformat(),
                )
                end = window_end

            records = await self.store.find_by_user_and_time_range(user_id, start, end)
        except Exception as e:
            logger.error("activity_log_failed", user_id=user_id, error=str(e), exc_info=True)
            return []

        logger.info(
            "activity_log_retrieved",
            user_id=user_id,
            start=start.isoformat(),
            end=end.isoformat(),
            count=len(records),
        )
        return records

    async def get_records_by_action(self, action: Optional[str]) -> List[AuditRecord]:
        if not action:
            return []
        try:
            return await self.store.find_by_action(action)
        except Exception as e:
            logger.error("records_by_action_failed", action=action, error=str(e), exc_info=True)
            return []

    async def get_recent_records(self, limit: Optional[int] = None) -> List[AuditRecord]:
        try:
            return await self.store.find_most_recent(limit or self.config.recent_limit)
        except Exception as e:
            logger.error("recent_records_failed", error=str(e), exc_info=True)
            return []

    async def get_records_with_errors(self) -> List[AuditRecord]:
        """Records whose details had to be replaced by an error marker."""
        try:
            return await self.store.find_with_errors()
        except Exception as e:
            logger.error("error_records_failed", error=str(e), exc_info=True)
            return []

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def drain(self) -> None:
        """Wait for all background audit writes to finish."""
        await self.dispatcher.drain()

    async def close(self) -> None:
        """Finish background writes, stop the workers and log final counts."""
        await self.dispatcher.shutdown()
        logger.info("audit_trail_closed", **self.metrics.snapshot())
