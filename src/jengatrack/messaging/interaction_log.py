"""
WhatsApp Interaction Log

Recent webhook activity (received messages, parsed intents, replies, errors)
kept for the debug endpoint. Entries live in a bounded in-memory ring, or in
a Redis list when REDIS_URL is configured so every worker shares one view.
"""

import functools
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

import redis

from jengatrack.core.redis import get_redis_client
from jengatrack.core.settings import get_settings

logger = logging.getLogger(__name__)

REDIS_KEY = "jengatrack:whatsapp:interactions"


@dataclass
class WhatsAppInteraction:
    """One step of handling a WhatsApp message."""

    phone_number: str
    direction: str  # inbound, outbound
    message_body: str | None = None
    user_id: str | None = None
    intent: str | None = None
    confidence: float | None = None
    action: str | None = None
    success: bool | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class InteractionLog:
    """
    Bounded log of recent interactions.

    Args:
        capacity: Maximum number of entries kept
        redis_client: Optional Redis client; entries are LPUSHed and trimmed
    """

    def __init__(self, capacity: int = 500, redis_client: redis.Redis | None = None):
        self.capacity = capacity
        self.redis = redis_client
        self._entries: deque[dict[str, Any]] = deque(maxlen=capacity)

    def record(self, interaction: WhatsAppInteraction) -> dict[str, Any]:
        """Store an interaction and echo it to the application log."""
        interaction.timestamp = datetime.now(timezone.utc)
        entry = interaction.to_dict()

        marker = "FAIL" if interaction.success is False else "OK" if interaction.success else "MSG"
        direction = "IN" if interaction.direction == "inbound" else "OUT"
        log = logger.warning if interaction.success is False else logger.info
        log(
            f"[{marker}] [WhatsApp {direction}] {interaction.phone_number} | "
            f"Intent: {interaction.intent or 'N/A'} | {interaction.action or 'Message'}",
            extra={"user_id": interaction.user_id, "error": interaction.error},
        )

        self._entries.append(entry)
        if self.redis is not None:
            try:
                pipe = self.redis.pipeline()
                pipe.lpush(REDIS_KEY, json.dumps(entry, default=str))
                pipe.ltrim(REDIS_KEY, 0, self.capacity - 1)
                pipe.execute()
            except redis.RedisError as e:
                logger.error(f"Failed to store interaction in Redis: {e}")
        return entry

    def recent(self, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent ``limit`` entries, oldest first."""
        if limit <= 0:
            return []
        if self.redis is not None:
            try:
                raw = self.redis.lrange(REDIS_KEY, 0, limit - 1)
                return [json.loads(item) for item in reversed(raw)]
            except redis.RedisError as e:
                logger.error(f"Failed to read interactions from Redis: {e}")
        return list(self._entries)[-limit:]

    def total(self) -> int:
        if self.redis is not None:
            try:
                return int(self.redis.llen(REDIS_KEY))
            except redis.RedisError as e:
                logger.error(f"Failed to count interactions in Redis: {e}")
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        if self.redis is not None:
            try:
                self.redis.delete(REDIS_KEY)
            except redis.RedisError as e:
                logger.error(f"Failed to clear interactions in Redis: {e}")


@functools.lru_cache()
def get_interaction_log() -> InteractionLog:
    """Process-wide interaction log (cached)."""
    settings = get_settings()
    return InteractionLog(
        capacity=settings.INTERACTION_LOG_CAPACITY,
        redis_client=get_redis_client(),
    )
