"""Idempotency records for booking submissions.

A record remembers the fingerprint of the booking that first used a key, so
a replay returns the original response while a different booking under the
same key can be refused.
"""
import logging
from typing import Optional
from app.core.config import settings
from app.core.redis import get_json, set_json

logger = logging.getLogger(__name__)

KEY_PREFIX = "booking-idemp"

async def get_booking_record(key: str) -> Optional[dict]:
    if not key:
        return None
    return await get_json(f"{KEY_PREFIX}:{key}")

async def save_booking_record(key: str, fingerprint: str, response: dict) -> None:
    stored = await set_json(
        f"{KEY_PREFIX}:{key}",
        {"fingerprint": fingerprint, "response": response},
        settings.IDEMPOTENCY_TTL,
    )
    if not stored:
        logger.warning(f"Redis unavailable, idempotency record for {key} not stored")
