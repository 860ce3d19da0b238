"""
Object Store Gateway

The VFS has no relational store: every record and blob lives in a flat
key-value object store with get/put/delete/list-by-prefix. This module holds
the gateway interface plus the in-memory and filesystem backends.

Usage:
    from chaos_vfs.storage import create_object_store
    store = create_object_store(config)
    store.put("content/abc", b"hello")
"""

import os
import threading
from pathlib import Path
from typing import Dict, List, Optional

from chaos_vfs.errors import StorageFailure, ValidationError
from chaos_vfs.error_logging import storage_logger, ErrorCodes


class ObjectStore:
    """
    Key-value blob service with prefix listing.

    Backends wrap their native errors in StorageFailure; a missing key is not
    an error for get() (it returns None).
    """

    backend_name = "abstract"

    def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def list(self, prefix: str, limit: Optional[int] = None) -> List[str]:
        """Return keys starting with prefix, sorted, at most limit of them."""
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        return self.get(key) is not None

    def get_text(self, key: str) -> Optional[str]:
        data = self.get(key)
        if data is None:
            return None
        return data.decode('utf-8')

    @staticmethod
    def _apply_limit(keys: List[str], limit: Optional[int]) -> List[str]:
        keys = sorted(keys)
        if limit is not None:
            return keys[:limit]
        return keys


class MemoryObjectStore(ObjectStore):
    """Dictionary-backed store for development and tests."""

    backend_name = "memory"

    def __init__(self):
        self._objects: Dict[str, bytes] = {}
        self._content_types: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._objects.get(key)

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        if isinstance(data, str):
            data = data.encode('utf-8')
        with self._lock:
            self._objects[key] = bytes(data)
            if content_type:
                self._content_types[key] = content_type

    def delete(self, key: str) -> None:
        with self._lock:
            self._objects.pop(key, None)
            self._content_types.pop(key, None)

    def list(self, prefix: str, limit: Optional[int] = None) -> List[str]:
        with self._lock:
            keys = [key for key in self._objects if key.startswith(prefix)]
        return self._apply_limit(keys, limit)

    def content_type(self, key: str) -> Optional[str]:
        return self._content_types.get(key)

    def __len__(self):
        return len(self._objects)


class FileSystemObjectStore(ObjectStore):
    """Maps each key to a file below a root directory."""

    backend_name = "filesystem"

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        if not key or key.startswith('/') or '..' in key.split('/'):
            raise ValidationError(f"Illegal object key: {key!r}", key=key)
        return self.root / key

    def get(self, key: str) -> Optional[bytes]:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            storage_logger.log_error(ErrorCodes.STORAGE_READ_FAILED, f"Read failed for {key}: {e}")
            raise StorageFailure(f"Could not read {key}", key=key) from e

    def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        path = self._path_for(key)
        if isinstance(data, str):
            data = data.encode('utf-8')
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(path.name + '.tmp')
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        except OSError as e:
            storage_logger.log_error(ErrorCodes.STORAGE_WRITE_FAILED, f"Write failed for {key}: {e}")
            raise StorageFailure(f"Could not write {key}", key=key) from e

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            storage_logger.log_error(ErrorCodes.STORAGE_DELETE_FAILED, f"Delete failed for {key}: {e}")
            raise StorageFailure(f"Could not delete {key}", key=key) from e

    def list(self, prefix: str, limit: Optional[int] = None) -> List[str]:
        keys = []
        try:
            for path in self.root.rglob('*'):
                if not path.is_file() or path.name.endswith('.tmp'):
                    continue
                key = path.relative_to(self.root).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        except OSError as e:
            storage_logger.log_error(ErrorCodes.STORAGE_LIST_FAILED, f"List failed for {prefix}: {e}")
            raise StorageFailure(f"Could not list {prefix}", key=prefix) from e
        return self._apply_limit(keys, limit)
