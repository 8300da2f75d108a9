"""Progress persistence, scoped to one onboarding attempt.

Gateways:
  InMemoryProgressGateway   process-local dict (tests, single-process dev)
  RedisProgressGateway      JSON value with a TTL, optimistic WATCH/MULTI
  DatabaseProgressGateway   `onboarding_progress` row, conditional UPDATE

Shared rules:
  - Writes are last-write-wins by `record.sequence`, not by arrival
    order.  A save that is not newer than what is stored is dropped and
    reported as False.
  - Loads run every record through `parse_record`.  Anything unparsable,
    from another schema version, or pointing outside the catalog is
    deleted and reported as "nothing stored" (None).
"""

from __future__ import annotations

import abc
import json
import logging
from datetime import datetime
from typing import Any

import redis.asyncio as redis
from pydantic import ValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_onboarding.middleware.exceptions import PersistenceCorruptionError
from clinic_onboarding.models.onboarding_progress import OnboardingProgress
from clinic_onboarding.schemas.wizard import RECORD_VERSION, ProgressRecord
from clinic_onboarding.wizard import catalog

logger = logging.getLogger("clinic_onboarding.persistence")


def parse_record(raw: str | bytes | dict[str, Any]) -> ProgressRecord:
    """Decode and validate a stored record or raise PersistenceCorruptionError."""
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        record = ProgressRecord.model_validate(data)
    except (ValueError, TypeError, ValidationError) as e:
        raise PersistenceCorruptionError(f"Unreadable progress record: {e}") from e

    if record.version != RECORD_VERSION:
        raise PersistenceCorruptionError(
            f"Progress record version {record.version} (expected {RECORD_VERSION})"
        )

    if record.plan_type is None:
        return record

    if not catalog.is_valid_position(record.plan_type, record.current_step, record.current_sub_step):
        raise PersistenceCorruptionError(
            f"Step {record.current_step}/{record.current_sub_step!r} is not part of "
            f"the {record.plan_type.value} plan"
        )

    known = set(catalog.all_sub_step_keys(record.plan_type))
    known.update(step.name.value for step in catalog.get_steps(record.plan_type))
    unknown = [key for key in record.completed_steps if key not in known]
    if unknown:
        raise PersistenceCorruptionError(f"Unknown completion keys: {unknown}")

    return record


def dump_record(record: ProgressRecord) -> str:
    return record.model_dump_json()


class ProgressGateway(abc.ABC):
    """save / load / clear for one attempt's ProgressRecord."""

    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id

    async def save(self, record: ProgressRecord) -> bool:
        written = await self._write(record)
        if not written:
            logger.info(
                "Dropped stale progress snapshot",
                extra={"attempt_id": self.attempt_id, "sequence": record.sequence},
            )
        return written

    async def load(self) -> ProgressRecord | None:
        raw = await self._read()
        if raw is None:
            return None
        try:
            return parse_record(raw)
        except PersistenceCorruptionError as e:
            logger.warning(
                f"Discarding stored progress: {e.message}",
                extra={"attempt_id": self.attempt_id},
            )
            await self._delete()
            return None

    async def clear(self) -> None:
        await self._delete()

    @abc.abstractmethod
    async def _read(self) -> str | dict[str, Any] | None: ...

    @abc.abstractmethod
    async def _write(self, record: ProgressRecord) -> bool: ...

    @abc.abstractmethod
    async def _delete(self) -> None: ...


def _stored_sequence(raw: str | bytes | None) -> int | None:
    """Sequence of a stored JSON value; None when absent or unreadable."""
    if raw is None:
        return None
    try:
        value = json.loads(raw).get("sequence")
    except (ValueError, AttributeError):
        return None
    return value if isinstance(value, int) else None


# ── In-memory ───────────────────────────────────────────────

class InMemoryProgressGateway(ProgressGateway):
    """Keeps serialized records in a dict shared by every gateway given it."""

    def __init__(self, attempt_id: str, store: dict[str, str] | None = None):
        super().__init__(attempt_id)
        self.store = store if store is not None else {}

    async def _read(self) -> str | None:
        return self.store.get(self.attempt_id)

    async def _write(self, record: ProgressRecord) -> bool:
        stored = _stored_sequence(self.store.get(self.attempt_id))
        if stored is not None and record.sequence <= stored:
            return False
        self.store[self.attempt_id] = dump_record(record)
        return True

    async def _delete(self) -> None:
        self.store.pop(self.attempt_id, None)


# ── Redis ───────────────────────────────────────────────────

class RedisProgressGateway(ProgressGateway):
    KEY_PREFIX = "onboarding:progress"

    def __init__(self, attempt_id: str, client: redis.Redis, ttl_seconds: int):
        super().__init__(attempt_id)
        self.client = client
        self.ttl_seconds = ttl_seconds

    @property
    def key(self) -> str:
        return f"{self.KEY_PREFIX}:{self.attempt_id}"

    async def _read(self) -> str | None:
        return await self.client.get(self.key)

    async def _write(self, record: ProgressRecord) -> bool:
        payload = dump_record(record)
        async with self.client.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(self.key)
                    stored = _stored_sequence(await pipe.get(self.key))
                    if stored is not None and record.sequence <= stored:
                        await pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.set(self.key, payload, ex=self.ttl_seconds)
                    await pipe.execute()
                    return True
                except redis.WatchError:
                    # Another writer got in between; re-read and compare again
                    continue

    async def _delete(self) -> None:
        await self.client.delete(self.key)


# ── Database ────────────────────────────────────────────────

class DatabaseProgressGateway(ProgressGateway):
    def __init__(self, attempt_id: str, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__(attempt_id)
        self.session_factory = session_factory

    async def _read(self) -> dict[str, Any] | None:
        async with self.session_factory() as db:
            result = await db.execute(
                select(OnboardingProgress.record).where(
                    OnboardingProgress.attempt_id == self.attempt_id
                )
            )
            return result.scalar_one_or_none()

    async def _write(self, record: ProgressRecord, _retry: bool = True) -> bool:
        data = record.model_dump(mode="json")
        async with self.session_factory() as db:
            result = await db.execute(
                update(OnboardingProgress)
                .where(
                    OnboardingProgress.attempt_id == self.attempt_id,
                    OnboardingProgress.sequence < record.sequence,
                )
                .values(record=data, sequence=record.sequence, updated_at=datetime.utcnow())
            )
            if result.rowcount:
                await db.commit()
                return True

            exists = await db.execute(
                select(OnboardingProgress.attempt_id).where(
                    OnboardingProgress.attempt_id == self.attempt_id
                )
            )
            if exists.scalar_one_or_none() is not None:
                await db.rollback()
                return False

            db.add(OnboardingProgress(
                attempt_id=self.attempt_id,
                record=data,
                sequence=record.sequence,
            ))
            try:
                await db.commit()
            except IntegrityError:
                # Lost an insert race; the row exists now, so compare sequences
                await db.rollback()
                if _retry:
                    return await self._write(record, _retry=False)
                return False
            return True

    async def _delete(self) -> None:
        async with self.session_factory() as db:
            await db.execute(
                delete(OnboardingProgress).where(
                    OnboardingProgress.attempt_id == self.attempt_id
                )
            )
            await db.commit()
