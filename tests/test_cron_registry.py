"""Tests for the in-memory job registry."""

import random
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from core.cron_registry import JobRegistry
from core.cron_types import RUN_HISTORY_LIMIT
from core.errors import JobNotFoundError, JobValidationError

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


class TestCreate:

    def test_defaults(self, registry, ping_fields):
        job = registry.create(ping_fields)

        assert job.id
        assert job.enabled is True
        assert job.run_history == []
        assert job.last_run is None
        assert job.agent_id == "default"
        assert job.wake_mode == "Next heartbeat"
        assert job.payload_type == "System event"
        assert job.created_at is not None
        assert len(registry) == 1

    def test_enabled_false_is_respected(self, registry, ping_fields):
        job = registry.create({**ping_fields, "enabled": False})
        assert job.enabled is False

    def test_accepts_chat_id_alias_and_numeric_target(self, registry, ping_fields):
        fields = {k: v for k, v in ping_fields.items() if k != "target"}
        job = registry.create({**fields, "chatId": 987654})
        assert job.target == "987654"

    def test_camel_case_metadata(self, registry, ping_fields):
        job = registry.create({**ping_fields, "agentId": "ops", "wakeMode": "Now", "payloadType": "Agent turn"})
        assert (job.agent_id, job.wake_mode, job.payload_type) == ("ops", "Now", "Agent turn")

    def test_ignores_client_supplied_state(self, registry, ping_fields):
        job = registry.create({**ping_fields, "id": "mine", "lastRun": "2020-01-01T00:00:00Z", "runHistory": [1]})
        assert job.id != "mine"
        assert job.last_run is None
        assert job.run_history == []

    @pytest.mark.parametrize("missing", ["name", "schedule", "target", "message"])
    def test_missing_required_field(self, registry, ping_fields, missing):
        fields = dict(ping_fields)
        del fields[missing]

        with pytest.raises(JobValidationError) as exc:
            registry.create(fields)

        assert exc.value.message == "Missing required fields"
        assert missing in exc.value.fields
        assert len(registry) == 0

    def test_empty_string_counts_as_missing(self, registry, ping_fields):
        with pytest.raises(JobValidationError):
            registry.create({**ping_fields, "message": ""})

    def test_invalid_schedule_leaves_registry_unchanged(self, registry, ping_fields):
        registry.create(ping_fields)

        with pytest.raises(JobValidationError) as exc:
            registry.create({**ping_fields, "schedule": "not-a-cron"})

        assert exc.value.message == "Invalid cron expression"
        assert exc.value.fields == ["schedule"]
        assert len(registry) == 1

    def test_bad_field_types(self, registry, ping_fields):
        with pytest.raises(JobValidationError) as exc:
            registry.create({**ping_fields, "name": {"nested": True}})
        assert "name" in exc.value.fields
        assert len(registry) == 0

    def test_ids_are_unique(self, registry, ping_fields):
        ids = {registry.create(ping_fields).id for _ in range(50)}
        assert len(ids) == 50


class TestLookups:

    def test_get_returns_copy(self, registry, ping_fields):
        job = registry.create(ping_fields)
        copy = registry.get(job.id)
        copy.enabled = False
        copy.run_history.append("junk")

        fresh = registry.get(job.id)
        assert fresh.enabled is True
        assert fresh.run_history == []

    def test_unknown_id(self, registry):
        with pytest.raises(JobNotFoundError):
            registry.get("nope")
        assert registry.find("nope") is None
        assert "nope" not in registry

    def test_list_snapshot(self, registry, ping_fields):
        a = registry.create(ping_fields)
        b = registry.create({**ping_fields, "name": "pong"})
        assert {j.id for j in registry.list()} == {a.id, b.id}


class TestMutations:

    def test_delete(self, registry, ping_fields):
        job = registry.create(ping_fields)
        registry.delete(job.id)

        assert job.id not in registry
        with pytest.raises(JobNotFoundError):
            registry.delete(job.id)
        with pytest.raises(JobNotFoundError):
            registry.set_enabled(job.id, True)

    def test_set_enabled(self, registry, ping_fields):
        job = registry.create(ping_fields)
        assert registry.set_enabled(job.id, False).enabled is False
        assert registry.get(job.id).enabled is False

    def test_record_run_sets_last_run_and_prepends(self, registry, ping_fields):
        job = registry.create(ping_fields)
        registry.record_run(job.id, T0, "ok")
        updated = registry.record_run(job.id, T0 + timedelta(minutes=5), "error", "boom")

        assert updated.last_run == T0 + timedelta(minutes=5)
        assert [r.status for r in updated.run_history] == ["error", "ok"]
        assert updated.run_history[0].error == "boom"

    def test_history_is_bounded_newest_first(self, registry, ping_fields):
        job = registry.create(ping_fields)
        stamps = [T0 + timedelta(minutes=i) for i in range(1, 13)]
        for stamp in stamps:
            registry.record_run(job.id, stamp, "ok")

        history = registry.get(job.id).run_history
        assert len(history) == RUN_HISTORY_LIMIT
        # fires #3..#12, newest first
        assert [r.timestamp for r in history] == list(reversed(stamps[2:]))

    def test_custom_history_limit(self, ping_fields):
        registry = JobRegistry(history_limit=3)
        job = registry.create(ping_fields)
        for i in range(5):
            registry.record_run(job.id, T0 + timedelta(minutes=i), "ok")
        assert len(registry.get(job.id).run_history) == 3

    def test_out_of_order_record_keeps_newest_first(self, registry, ping_fields):
        job = registry.create(ping_fields)
        registry.record_run(job.id, T0 + timedelta(minutes=5), "ok")

        updated = registry.record_run(job.id, T0, "error", "late")

        assert [r.timestamp for r in updated.run_history] == [T0 + timedelta(minutes=5), T0]
        assert updated.last_run == T0 + timedelta(minutes=5)

    def test_concurrent_record_run(self, registry, ping_fields):
        job = registry.create(ping_fields)
        stamps = [T0 + timedelta(seconds=i) for i in range(200)]
        random.Random(7).shuffle(stamps)

        def reader():
            for _ in range(50):
                for snapshot in registry.list():
                    assert len(snapshot.run_history) <= RUN_HISTORY_LIMIT
                registry.get(job.id)

        with ThreadPoolExecutor(max_workers=8) as pool:
            readers = [pool.submit(reader) for _ in range(2)]
            writers = [pool.submit(registry.record_run, job.id, stamp, "ok") for stamp in stamps]
            for f in readers + writers:
                f.result()

        final = registry.get(job.id)
        history = [r.timestamp for r in final.run_history]
        assert len(history) == RUN_HISTORY_LIMIT
        assert history == sorted(history, reverse=True)
        assert history == sorted(stamps, reverse=True)[:RUN_HISTORY_LIMIT]
        assert final.last_run == max(stamps)

    def test_record_run_on_deleted_job(self, registry, ping_fields):
        job = registry.create(ping_fields)
        registry.delete(job.id)
        with pytest.raises(JobNotFoundError):
            registry.record_run(job.id, T0, "ok")
        assert len(registry) == 0
