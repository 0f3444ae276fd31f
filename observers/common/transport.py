"""Publish/subscribe transport between detector nodes and the aggregator.

Redis pub/sub carries the messages. Redis has no notion of a retained
message, so retained topics also keep their last payload under
``retained:<topic>`` for subscribers that connect late.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple

import redis

LOGGER = logging.getLogger(__name__)

RETAINED_PREFIX = "retained:"


class TransportError(RuntimeError):
    """Raised when the broker cannot be reached or rejects a command."""


def _mask_url(url: str) -> str:
    if "@" in url:
        scheme, _, rest = url.partition("://")
        return f"{scheme}://****@{rest.split('@', 1)[1]}"
    return url


class RedisTransport:
    """Thin wrapper over a Redis client speaking JSON payloads."""

    def __init__(self, url: str, client: Optional[Any] = None):
        self.url = url
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                self._client = redis.from_url(self.url, decode_responses=True)
            except (redis.exceptions.RedisError, ValueError) as exc:
                raise TransportError(f"cannot connect to {_mask_url(self.url)}: {exc}") from exc
        return self._client

    def publish(self, topic: str, payload: Dict[str, Any], *, retain: bool = False) -> None:
        data = json.dumps(payload, ensure_ascii=False)
        try:
            if retain:
                self.client.set(RETAINED_PREFIX + topic, data)
            self.client.publish(topic, data)
        except redis.exceptions.RedisError as exc:
            raise TransportError(f"publish to {topic} failed: {exc}") from exc

    def clear_retained(self, topic: str) -> None:
        try:
            self.client.delete(RETAINED_PREFIX + topic)
        except redis.exceptions.RedisError as exc:
            raise TransportError(f"clearing {topic} failed: {exc}") from exc

    def listen(self, patterns: Sequence[str]) -> Iterator[Tuple[str, str]]:
        """Yield ``(channel, raw_payload)`` for every message on ``patterns``.

        Blocks between messages; this is the only place the aggregator waits.
        """

        try:
            pubsub = self.client.pubsub(ignore_subscribe_messages=True)
            pubsub.psubscribe(*patterns)
        except redis.exceptions.RedisError as exc:
            raise TransportError(f"subscribe failed: {exc}") from exc

        LOGGER.info("subscribed to %s on %s", ", ".join(patterns), _mask_url(self.url))
        try:
            for message in pubsub.listen():
                if message.get("type") not in ("pmessage", "message"):
                    continue
                yield str(message.get("channel")), str(message.get("data"))
        except redis.exceptions.RedisError as exc:
            raise TransportError(f"subscription lost: {exc}") from exc
        finally:
            pubsub.close()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def publish_quietly(transport: Optional[RedisTransport], topic: str, payload: Dict[str, Any], *, retain: bool = False) -> bool:
    """Publish and report success; an unreachable broker is logged, not raised."""

    if transport is None:
        return False
    try:
        transport.publish(topic, payload, retain=retain)
    except TransportError as exc:
        LOGGER.warning("%s", exc)
        return False
    return True
