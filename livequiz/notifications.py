"""Realtime fan-out of session changes over Redis pub/sub.

Messages are fire-and-forget: they are published after the surrounding
transaction commits, and a failed publish is logged, never retried.
Viewers treat every message as "something changed" and re-read the session.
"""

import json
import logging
import time
from typing import Any, Dict, Iterator

import redis
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import transaction

from .models import GameSession

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = getattr(settings, "LIVEQUIZ_CHANNEL_PREFIX", "livequiz:session:")


def _redis_client() -> redis.Redis:
    redis_url = getattr(settings, "REDIS_URL", None)
    if not redis_url:
        raise ImproperlyConfigured("REDIS_URL is not configured in settings.")
    return redis.Redis.from_url(redis_url, decode_responses=True)


def channel_name(session_id) -> str:
    return f"{CHANNEL_PREFIX}{session_id}"


def build_message(session: GameSession, event: str) -> Dict[str, Any]:
    return {
        "event": event,
        "session_id": str(session.id),
        "status": session.status,
        "mode": session.mode,
        "current_card_index": session.current_card_index,
        "ts": time.time(),
    }


def publish(message: Dict[str, Any]) -> None:
    try:
        client = _redis_client()
        receivers = client.publish(
            channel_name(message["session_id"]),
            json.dumps(message, ensure_ascii=True),
        )
    except (redis.RedisError, ImproperlyConfigured) as exc:
        logger.warning(
            "Failed to publish %s for session %s: %s",
            message["event"],
            message["session_id"],
            exc,
        )
        return
    logger.debug("Published %s to %s subscriber(s)", message["event"], receivers)


def notify_session_changed(session: GameSession, event: str) -> None:
    """Queue a change notification to go out once the current transaction commits."""
    message = build_message(session, event)
    transaction.on_commit(lambda: publish(message))


def subscribe(session_id) -> redis.client.PubSub:
    pubsub = _redis_client().pubsub(ignore_subscribe_messages=True)
    pubsub.subscribe(channel_name(session_id))
    return pubsub


def iter_messages(pubsub: redis.client.PubSub, timeout: float) -> Iterator[Dict[str, Any]]:
    """Yield decoded messages until `timeout` seconds pass without one, then unsubscribe."""
    deadline = time.monotonic() + timeout
    try:
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            # Subscribe confirmations come back as None as well.
            raw = pubsub.get_message(timeout=remaining)
            if raw is None:
                continue
            deadline = time.monotonic() + timeout
            try:
                yield json.loads(raw["data"])
            except (TypeError, json.JSONDecodeError) as exc:
                logger.warning("Dropping undecodable message: %s", exc)
    finally:
        pubsub.close()
