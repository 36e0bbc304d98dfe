"""
Staged copy store

A prepared copy waits in Redis until the user confirms which diffs to keep,
under the key "<workflowTemplateId>-<requestToken>" with a fixed TTL. The TTL
is never extended; an expired entry means the copy must be prepared again.
"""

import json
import logging
from typing import Any, Dict, Optional

import redis
from redis.exceptions import RedisError

from .exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


def staged_copy_key(workflow_template_id: int, request_token: str) -> str:
    return f"{workflow_template_id}-{request_token}"


class StagedCopyStore:
    """JSON payloads in Redis with per-key expiry"""

    def __init__(self, redis_client: "redis.Redis", ttl: int = 15 * 60):
        self.redis_client = redis_client
        self.ttl = ttl

    @classmethod
    def from_url(cls, redis_url: str, ttl: int = 15 * 60) -> "StagedCopyStore":
        client = redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )
        return cls(client, ttl)

    def set(self, key: str, payload: Dict[str, Any]) -> None:
        try:
            self.redis_client.set(key, json.dumps(payload, ensure_ascii=False), ex=self.ttl)
        except RedisError as e:
            logger.error(f"Failed to stage copy {key}: {e}")
            raise ExternalServiceError(f"Failed to stage copy: {e}", service="redis") from e

        logger.debug(f"Staged copy {key} (ttl={self.ttl}s)")

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            data = self.redis_client.get(key)
        except RedisError as e:
            logger.error(f"Failed to read staged copy {key}: {e}")
            raise ExternalServiceError(f"Failed to read staged copy: {e}", service="redis") from e

        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return json.loads(data)

    def delete(self, key: str) -> None:
        try:
            self.redis_client.delete(key)
        except RedisError as e:
            # Entry expires on its own
            logger.warning(f"Failed to delete staged copy {key}: {e}")
