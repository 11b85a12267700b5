"""Tests for AuditTrailService orchestration."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from audit_trail.fallback import BACKUP_MARKER, EmergencyFallback
from audit_trail.metrics import AuditMetrics, MetricNames
from audit_trail.models import (
    AuditRecord,
    EntityKind,
    SERIALIZATION_ERROR_DETAILS,
    SYSTEM_USER,
    UNKNOWN_EVENT,
)
from audit_trail.store import AuditStore
from tests.conftest import FailingStore, GatedStore, Order


def details_of(record: AuditRecord) -> dict:
    return json.loads(record.details)


class TestUserActions:
    """Tests for synchronous user action auditing."""

    @pytest.mark.asyncio
    async def test_user_action_persisted_before_return(self, service, store):
        await service.audit_user_action("alice", "LOGIN", {"ip": "10.0.0.1"})

        assert len(store.records) == 1
        record = store.records[0]
        assert record.action == "LOGIN"
        assert record.user_id == "alice"
        assert record.entity_type == EntityKind.USER_ACTION
        assert record.entity_id is None
        details = details_of(record)
        assert details["ip"] == "10.0.0.1"
        assert details["action_type"] == "USER_ACTION"
        assert "timestamp" in details

    @pytest.mark.asyncio
    async def test_blank_user_recorded_as_system(self, service, store):
        await service.audit_user_action("", "LOGIN", {})

        assert store.records[0].user_id == SYSTEM_USER

    @pytest.mark.asyncio
    async def test_non_string_user_is_recorded_as_text(self, service, store):
        await service.audit_user_action(42, "LOGIN", {})

        assert store.records[0].user_id == "42"

    @pytest.mark.asyncio
    async def test_missing_action_recorded_as_unknown(self, service, store):
        await service.audit_user_action("alice", None)

        assert store.records[0].action == "UNKNOWN_ACTION"

    @pytest.mark.asyncio
    async def test_sensitive_details_are_masked(self, service, store):
        await service.audit_user_action(
            "alice",
            "PASSWORD_CHANGE",
            {"password": "p@ss", "nested": {"apiKey": "k"}, "reason": "expired"},
        )

        details = details_of(store.records[0])
        assert details["password"] == "*****"
        assert details["nested"] == {"apiKey": "*****"}
        assert details["reason"] == "expired"

    @pytest.mark.asyncio
    async def test_retry_after_store_failure(self, make_service, sleep):
        """A failed write is retried with a simplified record."""
        store = FailingStore(fail_times=2)
        service = make_service(store)

        await service.audit_user_action("alice", "LOGIN", {"ip": "10.0.0.1"})

        assert store.save_calls == 3
        assert sleep.delays == [0.5, 1.0]
        assert len(store.records) == 1
        retry = store.records[0]
        assert retry.action == "USER_ACTION_RETRY"
        assert retry.user_id == "alice"
        assert details_of(retry) == {
            "action": "LOGIN",
            "original_details": {"ip": "10.0.0.1"},
            "retry_attempt": 2,
        }
        assert service.metrics.get_counter(MetricNames.RETRY_ATTEMPTS) == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted_do_not_raise(self, make_service, sleep):
        store = FailingStore()
        service = make_service(store)

        with capture_logs() as logs:
            await service.audit_user_action("alice", "LOGIN", {})

        assert store.save_calls == 4
        assert sleep.delays == [0.5, 1.0, 1.5]
        assert store.records == []
        assert service.metrics.get_counter(MetricNames.RETRY_EXHAUSTED) == 1
        assert any(log["event"] == "user_action_audit_lost" for log in logs)

    @pytest.mark.asyncio
    async def test_failed_user_action_is_backed_up(self, make_service):
        """UserAction records are critical, so each failed write is backed up."""
        service = make_service(FailingStore())

        with capture_logs() as logs:
            await service.audit_user_action("alice", "LOGIN", {})

        backups = [log for log in logs if log["event"] == BACKUP_MARKER]
        assert len(backups) == 4
        assert "|LOGIN|UserAction|" in backups[0]["backup"]
        assert "|USER_ACTION_RETRY|UserAction|" in backups[1]["backup"]


class TestEntityChanges:
    """Tests for asynchronous entity change auditing."""

    @pytest.mark.asyncio
    async def test_entity_change_is_persisted_in_background(self, service, store):
        await service.audit_entity_change(Order(id=42, status="PAID"), "CREATE", "alice")
        assert store.records == []

        await service.drain()

        record = store.records[0]
        assert record.entity_type == "Order"
        assert record.entity_id == 42
        assert record.user_id == "alice"
        assert details_of(record) == {
            "entity_state": {"id": 42, "status": "PAID", "total": "10.00"},
        }
        await service.close()

    @pytest.mark.asyncio
    async def test_update_records_all_fields_changed(self, service, store):
        await service.audit_entity_change(Order(id=1), "UPDATE", "alice")
        await service.drain()

        assert details_of(store.records[0])["changed_fields"] == "ALL"
        await service.close()

    @pytest.mark.asyncio
    async def test_missing_entity_is_ignored(self, service, store):
        with capture_logs() as logs:
            await service.audit_entity_change(None, "DELETE", "alice")
        await service.drain()

        assert store.records == []
        assert any(log["event"] == "entity_change_without_entity" for log in logs)

    @pytest.mark.asyncio
    async def test_unserializable_state_is_flagged(self, service, store):
        await service.audit_entity_change(Order(id=5, extra={1, 2}), "CREATE", "alice")
        await service.drain()

        record = store.records[0]
        assert record.details == SERIALIZATION_ERROR_DETAILS
        assert record.has_errors is True
        assert await service.get_records_with_errors() == [record]
        await service.close()

    @pytest.mark.asyncio
    async def test_failing_entity_does_not_raise(self, service, store):
        class Broken(Order):
            def audit_state(self):
                raise RuntimeError("lazy load failed")

        await service.audit_entity_change(Broken(id=1), "UPDATE", "alice")
        await service.drain()

        assert store.records == []


class TestSystemEvents:
    """Tests for system event auditing and priority."""

    @pytest.mark.asyncio
    async def test_high_priority_event_is_synchronous(self, service, store):
        await service.audit_system_event("AUTH_FAILURE", "bad credentials", {"ip": "1.2.3.4"})

        assert len(store.records) == 1
        record = store.records[0]
        assert record.action == "AUTH_FAILURE"
        assert record.entity_type == EntityKind.SYSTEM_EVENT
        assert record.user_id == SYSTEM_USER
        details = details_of(record)
        assert details["ip"] == "1.2.3.4"
        assert details["message"] == "bad credentials"
        assert details["system_metrics"] == {"available_processors": 4}
        assert service.dispatcher.pool.started is False

    @pytest.mark.asyncio
    async def test_routine_event_does_not_wait_for_store(self, make_service):
        store = GatedStore()
        service = make_service(store)

        await service.audit_system_event("INFO", "cache warmed")
        assert store.records == []

        store.gate.set()
        await service.drain()

        assert [r.action for r in store.records] == ["INFO"]
        await service.close()

    @pytest.mark.asyncio
    async def test_defaults_for_missing_type_and_message(self, service, store):
        await service.audit_system_event(None)
        await service.drain()

        record = store.records[0]
        assert record.action == UNKNOWN_EVENT
        assert details_of(record)["message"] == "No message provided"
        await service.close()

    @pytest.mark.asyncio
    async def test_unusable_metadata_logs_fallback(self, service, store):
        with capture_logs() as logs:
            await service.audit_system_event("SECURITY_ALERT", "probe", ["not", "a", "map"])

        assert store.records == []
        fallback = next(log for log in logs if log["event"] == "FALLBACK SYSTEM EVENT AUDIT")
        assert json.loads(fallback["payload"])["event_type"] == "SECURITY_ALERT"

    @pytest.mark.asyncio
    async def test_system_metrics_failure_is_tolerated(self, make_service, store):
        def broken_metrics():
            raise OSError("no /proc")

        service = make_service(store, system_metrics=broken_metrics)
        await service.audit_system_event("ERROR_DISK", "disk full")

        assert "system_metrics" not in details_of(store.records[0])


class TestPersistence:
    """Tests for persist_audit_record and the emergency fallback."""

    @pytest.mark.asyncio
    async def test_persist_assigns_store_id(self, service, store):
        record = service.create_audit_record("CREATE", "Order", 1, "alice", {})

        assert await service.persist_audit_record(record) is True
        assert store.records[0].id == 1
        assert service.metrics.get_counter(MetricNames.RECORDS_PERSISTED) == 1

    @pytest.mark.asyncio
    async def test_persist_none_is_rejected_quietly(self, service):
        assert await service.persist_audit_record(None) is False

    @pytest.mark.asyncio
    async def test_critical_failure_triggers_emergency_backup(self, make_service, tmp_path):
        path = tmp_path / "emergency.log"
        metrics = AuditMetrics()
        service = make_service(
            FailingStore(),
            metrics=metrics,
            fallback=EmergencyFallback(path=path, metrics=metrics),
        )
        record = service.create_audit_record("DELETE_ACCOUNT", "Account", 9, "admin", {"reason": "closed"})

        with capture_logs() as logs:
            assert await service.persist_audit_record(record) is False

        backup = next(log for log in logs if log["event"] == BACKUP_MARKER)
        assert "EMERGENCY_AUDIT_BACKUP" in backup["backup"]
        assert "|DELETE_ACCOUNT|Account|9|admin|" in backup["backup"]
        assert "EMERGENCY_AUDIT_BACKUP|" in path.read_text(encoding="utf-8")
        assert metrics.get_counter(MetricNames.EMERGENCY_BACKUPS) == 1

    @pytest.mark.asyncio
    async def test_non_critical_failure_is_dropped(self, make_service):
        service = make_service(FailingStore())
        record = service.create_audit_record("CREATE", "Order", 1, "alice", {})

        with capture_logs() as logs:
            assert await service.persist_audit_record(record) is False

        assert not any(log["event"] == BACKUP_MARKER for log in logs)
        assert any(log["event"] == "audit_record_dropped" for log in logs)
        assert service.metrics.get_counter(MetricNames.RECORDS_DROPPED) == 1

    @pytest.mark.asyncio
    async def test_backup_receives_masked_details(self, make_service):
        service = make_service(FailingStore())
        record = service.create_audit_record("AUTH_RESET", None, None, "alice", {"password": "hunter2"})

        with capture_logs() as logs:
            await service.persist_audit_record(record)

        backup = next(log for log in logs if log["event"] == BACKUP_MARKER)
        assert "hunter2" not in backup["backup"]

    @pytest.mark.asyncio
    async def test_async_failure_never_reaches_caller(self, make_service):
        store = FailingStore()
        service = make_service(store)

        await service.audit_entity_change(Order(id=3), "UPDATE", "alice")
        await service.drain()

        assert store.save_calls == 1
        await service.close()

    @pytest.mark.asyncio
    async def test_close_logs_final_counts(self, service):
        await service.audit_user_action("alice", "LOGIN", {})

        with capture_logs() as logs:
            await service.close()

        closed = next(log for log in logs if log["event"] == "audit_trail_closed")
        assert closed["audit_records_persisted"] == 1
        assert closed["audit_store_save_duration_seconds_count"] == 1


class TestReads:
    """Tests for history and activity queries."""

    @pytest.mark.asyncio
    async def test_history_is_newest_first(self, service, store):
        for action in ("CREATE", "UPDATE", "DELETE"):
            await service.audit_entity_change(Order(id=8), action, "alice")
        await service.audit_entity_change(Order(id=9), "CREATE", "alice")
        await service.drain()

        history = await service.get_audit_history(8, "Order")

        assert [r.action for r in history] == ["DELETE", "UPDATE", "CREATE"]
        await service.close()

    @pytest.mark.asyncio
    async def test_history_with_missing_arguments(self, service):
        assert await service.get_audit_history(None, "Order") == []
        assert await service.get_audit_history(1, None) == []

    @pytest.mark.asyncio
    async def test_history_store_failure_returns_empty(self, make_service):
        store = AsyncMock(spec=AuditStore)
        store.find_by_entity.side_effect = RuntimeError("timeout")
        service = make_service(store)

        assert await service.get_audit_history(1, "Order") == []

    @pytest.mark.asyncio
    async def test_activity_range_is_clamped_to_31_days(self, make_service):
        store = AsyncMock(spec=AuditStore)
        store.find_by_user_and_time_range.return_value = []
        service = make_service(store)

        await service.get_user_activity_log("u", datetime(2024, 1, 1), datetime(2024, 3, 1))

        store.find_by_user_and_time_range.assert_awaited_once_with(
            "u", datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 2, 1, tzinfo=timezone.utc)
        )

    @pytest.mark.asyncio
    async def test_short_activity_range_is_unchanged(self, make_service):
        store = AsyncMock(spec=AuditStore)
        store.find_by_user_and_time_range.return_value = []
        service = make_service(store)

        await service.get_user_activity_log("u", datetime(2024, 1, 1), datetime(2024, 1, 10))

        store.find_by_user_and_time_range.assert_awaited_once_with(
            "u", datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 1, 10, tzinfo=timezone.utc)
        )

    @pytest.mark.asyncio
    async def test_reversed_range_skips_store(self, make_service):
        store = AsyncMock(spec=AuditStore)
        service = make_service(store)

        result = await service.get_user_activity_log("u", datetime(2024, 2, 1), datetime(2024, 1, 1))

        assert result == []
        store.find_by_user_and_time_range.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_activity_with_missing_arguments(self, make_service):
        store = AsyncMock(spec=AuditStore)
        service = make_service(store)

        assert await service.get_user_activity_log(None, datetime(2024, 1, 1), datetime(2024, 1, 2)) == []
        assert await service.get_user_activity_log("u", None, datetime(2024, 1, 2)) == []
        assert await service.get_user_activity_log("u", datetime(2024, 1, 1), None) == []
        store.find_by_user_and_time_range.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_activity_log_returns_user_records(self, service, store, clock):
        await service.audit_user_action("alice", "LOGIN", {})
        await service.audit_user_action("bob", "LOGIN", {})
        await service.audit_user_action("alice", "LOGOUT", {})

        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        records = await service.get_user_activity_log("alice", start, clock.now)

        assert [r.action for r in records] == ["LOGOUT", "LOGIN"]

    @pytest.mark.asyncio
    async def test_naive_bounds_are_treated_as_utc(self, service, store):
        await service.audit_user_action("alice", "LOGIN", {})

        records = await service.get_user_activity_log("alice", datetime(2024, 1, 1), datetime(2024, 1, 2))

        assert [r.action for r in records] == ["LOGIN"]

    @pytest.mark.asyncio
    async def test_action_and_recent_queries(self, service, store):
        await service.audit_user_action("alice", "LOGIN", {})
        await service.audit_user_action("bob", "LOGIN", {})
        await service.audit_user_action("alice", "LOGOUT", {})

        assert len(await service.get_records_by_action("LOGIN")) == 2
        assert await service.get_records_by_action(None) == []
        recent = await service.get_recent_records(limit=2)
        assert [r.action for r in recent] == ["LOGOUT", "LOGIN"]
        assert recent[1].user_id == "bob"
