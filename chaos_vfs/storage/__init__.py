from chaos_vfs.errors import ConfigurationError
from chaos_vfs.storage.object_store import ObjectStore, MemoryObjectStore, FileSystemObjectStore


def create_object_store(config) -> ObjectStore:
    """Build the object store backend named by config.STORAGE_BACKEND"""
    backend = config.STORAGE_BACKEND
    if backend == 'memory':
        return MemoryObjectStore()
    if backend == 'filesystem':
        return FileSystemObjectStore(config.STORAGE_PATH)
    if backend == 'redis':
        from chaos_vfs.storage.redis_store import RedisObjectStore
        return RedisObjectStore(
            host=config.REDIS_HOST,
            port=config.REDIS_PORT,
            db=config.REDIS_DB,
            password=config.REDIS_PASSWORD
        )
    raise ConfigurationError(f"Unknown storage backend: {backend}")


__all__ = ['ObjectStore', 'MemoryObjectStore', 'FileSystemObjectStore', 'create_object_store']
