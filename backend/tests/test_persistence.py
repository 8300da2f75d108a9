"""Tests for progress gateways: parsing, ordering and corruption handling."""

import json

import pytest

from clinic_onboarding.middleware.exceptions import PersistenceCorruptionError
from clinic_onboarding.schemas.wizard import ProgressRecord
from clinic_onboarding.wizard.catalog import Entity, PlanType
from clinic_onboarding.wizard.persistence import (
    DatabaseProgressGateway,
    InMemoryProgressGateway,
    RedisProgressGateway,
    dump_record,
    parse_record,
)
from clinic_onboarding.wizard.state import ProgressState


def make_record(sequence: int = 1, **overrides) -> ProgressRecord:
    state = ProgressState()
    state.set_plan_type(PlanType.COMPANY)
    state.merge_entity_data(Entity.COMPANY, "overview", {"name": "Acme"})
    state.add_completed(["company-overview"])
    record = state.snapshot()
    return record.model_copy(update={"sequence": sequence, **overrides})


@pytest.mark.unit
class TestParseRecord:

    def test_roundtrip(self):
        record = make_record()
        assert parse_record(dump_record(record)) == record

    def test_accepts_dict(self):
        record = make_record()
        assert parse_record(record.model_dump(mode="json")) == record

    def test_blank_record_is_valid(self):
        record = parse_record(ProgressRecord().model_dump_json())
        assert record.plan_type is None

    def test_invalid_json(self):
        with pytest.raises(PersistenceCorruptionError):
            parse_record("{not json")

    def test_wrong_shape(self):
        with pytest.raises(PersistenceCorruptionError):
            parse_record(json.dumps({"plan_type": "hospital"}))

    def test_version_mismatch(self):
        raw = make_record().model_dump(mode="json")
        raw["version"] = 99
        with pytest.raises(PersistenceCorruptionError, match="version"):
            parse_record(raw)

    def test_step_outside_plan(self):
        raw = make_record().model_dump(mode="json")
        raw["current_step"] = 99
        with pytest.raises(PersistenceCorruptionError):
            parse_record(raw)

    def test_unknown_completion_key(self):
        raw = make_record().model_dump(mode="json")
        raw["completed_steps"] = ["clinic-legal"]
        with pytest.raises(PersistenceCorruptionError, match="Unknown completion keys"):
            parse_record(raw)

    def test_legacy_step_key_accepted(self):
        raw = make_record().model_dump(mode="json")
        raw["completed_steps"] = ["company"]
        assert parse_record(raw).completed_steps == ["company"]


@pytest.mark.asyncio
class TestInMemoryGateway:

    async def test_load_empty(self, gateway):
        assert await gateway.load() is None

    async def test_save_and_load(self, gateway):
        record = make_record(sequence=3)
        assert await gateway.save(record) is True
        assert await gateway.load() == record

    async def test_stale_save_is_dropped(self, gateway):
        await gateway.save(make_record(sequence=5))
        assert await gateway.save(make_record(sequence=4, current_sub_step="contact")) is False
        assert await gateway.save(make_record(sequence=5, current_sub_step="contact")) is False
        loaded = await gateway.load()
        assert loaded.sequence == 5
        assert loaded.current_sub_step == "overview"

    async def test_out_of_order_arrival(self, memory_store):
        """The newer snapshot wins even when it is written first."""
        first = InMemoryProgressGateway("a", memory_store)
        second = InMemoryProgressGateway("a", memory_store)
        await second.save(make_record(sequence=8, current_sub_step="legal"))
        await first.save(make_record(sequence=7, current_sub_step="contact"))
        assert (await first.load()).current_sub_step == "legal"

    async def test_invalid_step_is_discarded(self, gateway, memory_store):
        raw = make_record().model_dump(mode="json")
        raw["current_step"] = 99
        memory_store["attempt-1"] = json.dumps(raw)

        assert await gateway.load() is None
        assert "attempt-1" not in memory_store

    async def test_garbage_is_discarded(self, gateway, memory_store):
        memory_store["attempt-1"] = "garbage"
        assert await gateway.load() is None
        assert "attempt-1" not in memory_store

    async def test_clear(self, gateway):
        await gateway.save(make_record())
        await gateway.clear()
        assert await gateway.load() is None

    async def test_attempts_are_isolated(self, memory_store):
        await InMemoryProgressGateway("a", memory_store).save(make_record())
        assert await InMemoryProgressGateway("b", memory_store).load() is None


@pytest.mark.integration
@pytest.mark.asyncio
class TestDatabaseGateway:

    async def test_save_and_load(self, session_factory):
        gateway = DatabaseProgressGateway("db-1", session_factory)
        record = make_record(sequence=2)
        assert await gateway.save(record) is True
        assert await gateway.load() == record

    async def test_update_requires_newer_sequence(self, session_factory):
        gateway = DatabaseProgressGateway("db-1", session_factory)
        await gateway.save(make_record(sequence=2))
        assert await gateway.save(make_record(sequence=3, current_sub_step="contact")) is True
        assert await gateway.save(make_record(sequence=1, current_sub_step="legal")) is False
        assert (await gateway.load()).current_sub_step == "contact"

    async def test_corrupt_row_is_deleted(self, session_factory):
        gateway = DatabaseProgressGateway("db-1", session_factory)
        await gateway.save(make_record(sequence=1, current_step=99))
        assert await gateway.load() is None
        assert await gateway._read() is None

    async def test_clear(self, session_factory):
        gateway = DatabaseProgressGateway("db-1", session_factory)
        await gateway.save(make_record())
        await gateway.clear()
        assert await gateway.load() is None


@pytest.mark.integration
@pytest.mark.asyncio
class TestRedisGateway:

    async def test_save_load_and_ttl(self, redis_client):
        gateway = RedisProgressGateway("test-redis-1", redis_client, ttl_seconds=60)
        record = make_record(sequence=4)
        assert await gateway.save(record) is True
        assert await gateway.load() == record
        assert 0 < await redis_client.ttl(gateway.key) <= 60

    async def test_stale_save_is_dropped(self, redis_client):
        gateway = RedisProgressGateway("test-redis-2", redis_client, ttl_seconds=60)
        await gateway.save(make_record(sequence=4))
        assert await gateway.save(make_record(sequence=3)) is False
        assert (await gateway.load()).sequence == 4

    async def test_corrupt_value_is_deleted(self, redis_client):
        gateway = RedisProgressGateway("test-redis-3", redis_client, ttl_seconds=60)
        await redis_client.set(gateway.key, "not json")
        assert await gateway.load() is None
        assert await redis_client.exists(gateway.key) == 0
