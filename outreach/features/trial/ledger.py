"""
outreach/features/trial/ledger.py

Per-token trial usage counters.

Handles:
- UsageRecord model (three counters + last_reset)
- Durable store (Redis / Vercel KV) with an in-memory fallback
- get / increment / reset on the ledger

Consistency model: read-modify-write with last-write-wins. Two concurrent
increments for the same token may lose one update; limits are abuse
deterrents, not billing guarantees.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Protocol, TypeVar

import redis.asyncio as aioredis
from pydantic import BaseModel, ConfigDict, Field

from outreach.core.logging import token_fingerprint


logger = logging.getLogger("outreach")

USAGE_KEY_PREFIX = "trial:usage:"

T = TypeVar("T")


class ResourceClass(str, Enum):
    """Independently metered resource classes."""
    ARTICLES = "articles"
    TOPIC_DISCOVERY = "topic_discovery"
    IMAGES = "images"


_COUNTER_FIELDS: Dict[ResourceClass, str] = {
    ResourceClass.ARTICLES: "articles_generated",
    ResourceClass.TOPIC_DISCOVERY: "topic_discovery_runs",
    ResourceClass.IMAGES: "images_generated",
}


def _reset_order(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class UsageRecord(BaseModel):
    """Usage for one trial token. Stored as camelCase JSON."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    articles_generated: int = Field(0, ge=0, alias="articlesGenerated")
    topic_discovery_runs: int = Field(0, ge=0, alias="topicDiscoveryRuns")
    images_generated: int = Field(0, ge=0, alias="imagesGenerated")
    last_reset: Optional[datetime] = Field(None, alias="lastReset")

    def count(self, resource: ResourceClass) -> int:
        return getattr(self, _COUNTER_FIELDS[ResourceClass(resource)])

    def incremented(self, resource: ResourceClass) -> "UsageRecord":
        field_name = _COUNTER_FIELDS[ResourceClass(resource)]
        return self.model_copy(update={field_name: getattr(self, field_name) + 1})

    def reconciled(self, other: Optional["UsageRecord"]) -> "UsageRecord":
        """Combine two copies of one token's record.

        The copy with the newer reset wins outright; otherwise each counter
        keeps the higher value.
        """
        if other is None or other == self:
            return self
        mine, theirs = _reset_order(self.last_reset), _reset_order(other.last_reset)
        if mine != theirs:
            return self if mine > theirs else other
        return self.model_copy(update={
            name: max(getattr(self, name), getattr(other, name)) for name in _COUNTER_FIELDS.values()
        })

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str) -> "UsageRecord":
        return cls.model_validate_json(raw)


class UsageStore(Protocol):
    name: str

    async def load(self, token: str) -> Optional[UsageRecord]: ...

    async def save(self, token: str, record: UsageRecord) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class InMemoryUsageStore:
    """Process-local map. Not shared across workers, lost on restart."""

    name = "memory"

    def __init__(self):
        self._records: Dict[str, UsageRecord] = {}

    async def load(self, token: str) -> Optional[UsageRecord]:
        return self._records.get(token)

    async def save(self, token: str, record: UsageRecord) -> None:
        self._records[token] = record

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    def clear(self) -> None:
        """Drop all records. FOR TESTING ONLY."""
        self._records.clear()


class RedisUsageStore:
    """Durable store: one JSON document per token under trial:usage:<token>."""

    name = "redis"

    def __init__(self, client: aioredis.Redis, key_prefix: str = USAGE_KEY_PREFIX):
        self.client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, timeout_seconds: float = 2.0) -> "RedisUsageStore":
        client = aioredis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        return cls(client)

    def _key(self, token: str) -> str:
        return f"{self.key_prefix}{token}"

    async def load(self, token: str) -> Optional[UsageRecord]:
        raw = await self.client.get(self._key(token))
        if raw is None:
            return None
        return UsageRecord.from_json(raw)

    async def save(self, token: str, record: UsageRecord) -> None:
        await self.client.set(self._key(token), record.to_json())

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()


class FallbackUsageStore:
    """Primary store guarded by a fallback.

    Every operation goes through _guarded: the primary is tried once (bounded
    by timeout_seconds) and any failure degrades that single operation to the
    fallback. Successful primary reads and writes are mirrored into the
    fallback so a later outage starts from the last known counts. When the
    primary recovers, reads reconcile both copies (UsageRecord.reconciled)
    and write the result back, so units counted during the outage are kept.
    """

    def __init__(self, primary: UsageStore, fallback: UsageStore, timeout_seconds: float = 2.0):
        self.primary = primary
        self.fallback = fallback
        self.timeout_seconds = timeout_seconds

    @property
    def name(self) -> str:
        return f"{self.primary.name}+{self.fallback.name}"

    async def _guarded(
        self,
        operation: str,
        token: Optional[str],
        primary_op: Callable[[], Awaitable[T]],
        fallback_op: Callable[[], Awaitable[T]],
    ) -> T:
        try:
            return await asyncio.wait_for(primary_op(), timeout=self.timeout_seconds)
        except Exception as exc:
            logger.warning(
                "usage_store.fallback",
                extra={
                    "operation": operation,
                    "store": self.primary.name,
                    "token_fp": token_fingerprint(token),
                    "error": type(exc).__name__,
                },
            )
            return await fallback_op()

    async def load(self, token: str) -> Optional[UsageRecord]:
        async def from_primary():
            record = await self.primary.load(token)
            cached = await self.fallback.load(token)
            merged = record.reconciled(cached) if record is not None else cached
            if merged is None:
                return None
            if merged != record:
                # Counts taken while the primary was down go back to it
                await self.primary.save(token, merged)
            await self.fallback.save(token, merged)
            return merged

        return await self._guarded("load", token, from_primary, lambda: self.fallback.load(token))

    async def save(self, token: str, record: UsageRecord) -> None:
        async def to_primary():
            await self.primary.save(token, record)
            await self.fallback.save(token, record)

        await self._guarded("save", token, to_primary, lambda: self.fallback.save(token, record))

    async def ping(self) -> bool:
        async def unreachable():
            return False

        return await self._guarded("ping", None, self.primary.ping, unreachable)

    async def close(self) -> None:
        try:
            await self.primary.close()
        except Exception as exc:
            logger.warning("usage_store.close_failed", extra={"store": self.primary.name, "error": type(exc).__name__})
        await self.fallback.close()


def build_usage_store(url: Optional[str], timeout_seconds: float = 2.0) -> UsageStore:
    """Pick the backend: Redis guarded by memory when a URL is configured."""
    if url:
        return FallbackUsageStore(
            RedisUsageStore.from_url(url, timeout_seconds=timeout_seconds),
            InMemoryUsageStore(),
            timeout_seconds=timeout_seconds,
        )
    return InMemoryUsageStore()


class UsageLedger:
    """Owns every UsageRecord. Constructed once per process and injected."""

    def __init__(self, store: UsageStore):
        self.store = store

    @classmethod
    def from_url(cls, url: Optional[str], timeout_seconds: float = 2.0) -> "UsageLedger":
        return cls(build_usage_store(url, timeout_seconds=timeout_seconds))

    @property
    def backend_name(self) -> str:
        return self.store.name

    async def get(self, token: str) -> UsageRecord:
        """Existing record, or a freshly persisted zeroed one."""
        record = await self.store.load(token)
        if record is None:
            record = UsageRecord()
            await self.store.save(token, record)
        return record

    async def increment(self, token: str, resource: ResourceClass) -> UsageRecord:
        resource = ResourceClass(resource)
        record = (await self.get(token)).incremented(resource)
        await self.store.save(token, record)
        logger.info(
            "trial.usage.increment",
            extra={"token_fp": token_fingerprint(token), "resource": resource.value, "count": record.count(resource)},
        )
        return record

    async def reset(self, token: str) -> UsageRecord:
        record = UsageRecord(last_reset=datetime.now(timezone.utc))
        await self.store.save(token, record)
        logger.info("trial.usage.reset", extra={"token_fp": token_fingerprint(token)})
        return record

    async def ping(self) -> bool:
        return await self.store.ping()

    async def close(self) -> None:
        await self.store.close()
