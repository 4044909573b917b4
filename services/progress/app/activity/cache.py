"""Redis cache helpers for the activity domain.

Key schema
----------
user:{user_id}:lesson:{lesson_id}                 Hash   TTL 90d    resume position

All functions are best-effort; callers catch exceptions.
"""

from __future__ import annotations

import time
from uuid import UUID

from redis.asyncio import Redis

_RESUME_TTL = 90 * 24 * 3600  # 90 days


def _resume_key(user_id: UUID, lesson_id: UUID) -> str:
    return f"user:{user_id}:lesson:{lesson_id}"


async def get_resume_position(
    user_id: UUID, lesson_id: UUID, redis: Redis,
) -> int | None:
    data = await redis.hgetall(_resume_key(user_id, lesson_id))
    if not data or "position_secs" not in data:
        return None
    return int(data["position_secs"])


async def set_resume_position(
    user_id: UUID,
    lesson_id: UUID,
    position_secs: int,
    redis: Redis,
) -> None:
    key = _resume_key(user_id, lesson_id)
    await redis.hset(key, mapping={
        "position_secs": str(position_secs),
        "updated_at": str(int(time.time())),
    })
    await redis.expire(key, _RESUME_TTL)


async def clear_resume_positions(
    user_ids: list[UUID], lesson_id: UUID, redis: Redis,
) -> None:
    if user_ids:
        await redis.delete(*(_resume_key(uid, lesson_id) for uid in user_ids))
