from __future__ import annotations

import logging
from dataclasses import dataclass

import redis.asyncio as redis
from redis.exceptions import RedisError

from src.core.config import settings
from src.core.errors import QueuePublishError
from src.core.jobs import ImportJobMessage

logger = logging.getLogger(__name__)

CANCEL_FLAG_TTL_SECONDS = 86_400

# Compare-and-act scripts so a worker never renews or drops a lease it lost.
_RENEW_LEASE = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('EXPIRE', KEYS[1], ARGV[2])
end
return 0
"""
_RELEASE_LEASE = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


@dataclass(slots=True)
class QueuedJob:
    message_id: str
    consumer: str
    message: ImportJobMessage | None
    error: str | None = None


def lease_key(job_id: str) -> str:
    return f"import:lease:{job_id}"


def cancel_key(job_id: str) -> str:
    return f"import:cancel:{job_id}"


class ImportQueue:
    """Import jobs on a Redis Stream consumed through a consumer group.

    Delivery is at-least-once: entries stay pending until ``ack`` and are
    reclaimed from dead consumers once idle for ``claim_idle_ms``.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        stream: str | None = None,
        group: str | None = None,
        lease_ttl_seconds: int | None = None,
        claim_idle_ms: int | None = None,
        block_ms: int | None = None,
    ) -> None:
        self._redis = redis_client or redis.from_url(settings.redis_url, decode_responses=True)
        self.stream = stream or settings.import_stream_name
        self.group = group or settings.import_consumer_group
        self.lease_ttl_seconds = lease_ttl_seconds or settings.import_lease_ttl_seconds
        self.claim_idle_ms = claim_idle_ms or settings.import_claim_idle_ms
        self.block_ms = settings.import_stream_block_ms if block_ms is None else block_ms

    async def close(self) -> None:
        await self._redis.aclose()

    async def ensure_group(self) -> None:
        try:
            await self._redis.xgroup_create(name=self.stream, groupname=self.group, id="0", mkstream=True)
        except Exception as exc:
            if "BUSYGROUP" not in str(exc):
                raise

    async def publish(self, message: ImportJobMessage) -> str:
        try:
            return await self._redis.xadd(self.stream, message.to_fields())
        except RedisError as exc:
            raise QueuePublishError(f"Failed to enqueue import job {message.job_id}: {exc}") from exc

    async def read(self, consumer: str) -> QueuedJob | None:
        response = await self._redis.xreadgroup(
            groupname=self.group,
            consumername=consumer,
            streams={self.stream: ">"},
            count=1,
            block=self.block_ms,
        )
        for _stream, entries in response or []:
            for message_id, fields in entries:
                return self._decode(message_id, consumer, fields)
        return None

    async def reclaim_stale(self, consumer: str) -> QueuedJob | None:
        response = await self._redis.xautoclaim(
            self.stream,
            self.group,
            consumer,
            min_idle_time=self.claim_idle_ms,
            start_id="0-0",
            count=1,
        )
        entries = response[1] if response and len(response) > 1 else []
        for message_id, fields in entries:
            if message_id is None:
                continue
            if fields is None:
                # Trimmed from the stream while pending; nothing left to run.
                await self.ack(message_id)
                continue
            logger.info("Reclaimed stale import message=%s for consumer=%s", message_id, consumer)
            return self._decode(message_id, consumer, fields)
        return None

    async def heartbeat(self, delivery: QueuedJob) -> bool:
        """Reset the pending entry's idle time so XAUTOCLAIM leaves it alone.

        XCLAIM moves the entry to ``delivery.consumer`` even if another consumer
        claimed it, so callers must hold the job lease first. Returns False once
        the entry is no longer pending (acknowledged or trimmed).
        """
        claimed = await self._redis.xclaim(
            self.stream,
            self.group,
            delivery.consumer,
            min_idle_time=0,
            message_ids=[delivery.message_id],
            justid=True,
        )
        return bool(claimed)

    async def ack(self, message_id: str) -> None:
        await self._redis.xack(self.stream, self.group, message_id)
        await self._redis.xdel(self.stream, message_id)

    async def acquire_lease(self, job_id: str, owner: str) -> bool:
        acquired = await self._redis.set(lease_key(job_id), owner, nx=True, ex=self.lease_ttl_seconds)
        return bool(acquired)

    async def renew_lease(self, job_id: str, owner: str) -> bool:
        renewed = await self._redis.eval(_RENEW_LEASE, 1, lease_key(job_id), owner, self.lease_ttl_seconds)
        return bool(renewed)

    async def release_lease(self, job_id: str, owner: str) -> None:
        await self._redis.eval(_RELEASE_LEASE, 1, lease_key(job_id), owner)

    async def request_cancel(self, job_id: str) -> None:
        await self._redis.set(cancel_key(job_id), "1", ex=CANCEL_FLAG_TTL_SECONDS)

    async def is_cancel_requested(self, job_id: str) -> bool:
        return bool(await self._redis.exists(cancel_key(job_id)))

    @staticmethod
    def _decode(message_id: str, consumer: str, fields: dict[str, str]) -> QueuedJob:
        try:
            message = ImportJobMessage.from_fields(fields)
        except (ValueError, TypeError) as exc:
            logger.error("Malformed import message=%s: %s", message_id, exc)
            return QueuedJob(message_id=message_id, consumer=consumer, message=None, error=str(exc))
        return QueuedJob(message_id=message_id, consumer=consumer, message=message)
