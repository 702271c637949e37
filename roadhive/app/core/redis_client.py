"""
Redis connection and delivery OTP attempt counters.

Nothing durable lives in Redis: a lost counter only resets the wrong-code
allowance of a live OTP.
"""

import logging

import redis.asyncio as redis
from roadhive.app.core.config import settings

logger = logging.getLogger("roadhive.redis")

OTP_ATTEMPTS_PREFIX = "otp:attempts:"

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """FastAPI dependency; overridden in tests."""
    return redis_client


async def ping_redis() -> bool:
    try:
        return await redis_client.ping()
    except redis.RedisError as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False


def otp_attempts_key(load_id: str) -> str:
    return f"{OTP_ATTEMPTS_PREFIX}{load_id}"


async def register_otp_attempt(client, load_id: str) -> int:
    """
    Count one verification attempt for the load's current code.

    The counter expires together with the code, so a stale count never
    outlives the OTP it belongs to.

    Returns:
        Attempts made so far, this one included
    """
    key = otp_attempts_key(load_id)
    attempts = await client.incr(key)
    if attempts == 1:
        await client.expire(key, settings.otp_ttl_minutes * 60)
    return attempts


async def clear_otp_attempts(client, load_id: str) -> None:
    await client.delete(otp_attempts_key(load_id))
