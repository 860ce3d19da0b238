"""
Redis Object Store

Redis-backed implementation of the object store gateway. Every VFS key is
namespaced under KEY_PREFIX; listing walks SCAN with a MATCH pattern.

Unlike a cache, this is the only persistence layer, so connection problems
surface as StorageFailure instead of degrading to stub behaviour.
"""

from typing import List, Optional

import redis

from chaos_vfs.errors import StorageFailure
from chaos_vfs.error_logging import storage_logger, ErrorCodes
from chaos_vfs.storage.object_store import ObjectStore

# Key prefix for namespacing
KEY_PREFIX = "vfs:"
SCAN_BATCH = 500


class RedisObjectStore(ObjectStore):
    """Object store backed by plain Redis string keys."""

    backend_name = "redis"

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0,
                 password: Optional[str] = None, client=None):
        self.host = host
        self.port = port
        self._client = client or redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            decode_responses=False,
            socket_connect_timeout=5,
            socket_timeout=5
        )

    def is_connected(self) -> bool:
        """Check if Redis is available."""
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self._client.get(f"{KEY_PREFIX}{key}")
        except redis.RedisError as e:
            storage_logger.log_error(ErrorCodes.STORAGE_READ_FAILED, f"Redis get error for {key}: {e}")
            raise StorageFailure(f"Could not read {key}", key=key) from e

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        if isinstance(data, str):
            data = data.encode('utf-8')
        try:
            self._client.set(f"{KEY_PREFIX}{key}", data)
        except redis.RedisError as e:
            storage_logger.log_error(ErrorCodes.STORAGE_WRITE_FAILED, f"Redis set error for {key}: {e}")
            raise StorageFailure(f"Could not write {key}", key=key) from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(f"{KEY_PREFIX}{key}")
        except redis.RedisError as e:
            storage_logger.log_error(ErrorCodes.STORAGE_DELETE_FAILED, f"Redis delete error for {key}: {e}")
            raise StorageFailure(f"Could not delete {key}", key=key) from e

    def list(self, prefix: str, limit: Optional[int] = None) -> List[str]:
        keys = []
        try:
            for raw in self._client.scan_iter(match=f"{KEY_PREFIX}{prefix}*", count=SCAN_BATCH):
                name = raw.decode('utf-8') if isinstance(raw, bytes) else raw
                keys.append(name[len(KEY_PREFIX):])
        except redis.RedisError as e:
            storage_logger.log_error(ErrorCodes.STORAGE_LIST_FAILED, f"Redis scan error for {prefix}: {e}")
            raise StorageFailure(f"Could not list {prefix}", key=prefix) from e
        return self._apply_limit(keys, limit)
