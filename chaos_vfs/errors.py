"""
Error taxonomy for the VFS.

Every error carries the HTTP status it maps to and a short code that ends up
in JSON error bodies and log lines.
"""
from typing import Optional


class VFSError(Exception):
    """Base class for all VFS failures"""
    status_code = 500
    code = "VFS_ERROR"

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.key = key


class Unauthorized(VFSError):
    """Bad or missing shared key - rejected before any mutation"""
    status_code = 401
    code = "UNAUTHORIZED"


class NotFound(VFSError):
    """Missing metadata or content key"""
    status_code = 404
    code = "NOT_FOUND"


class ValidationError(VFSError):
    """Missing or malformed input - rejected before any storage write"""
    status_code = 400
    code = "VALIDATION_ERROR"


class StorageFailure(VFSError):
    """Underlying object store read/write error"""
    status_code = 500
    code = "STORAGE_FAILURE"


class ParseFailure(StorageFailure):
    """Corrupt JSON metadata; handled exactly like a storage failure"""
    code = "PARSE_FAILURE"


class ConfigurationError(VFSError):
    """Server is missing required configuration (e.g. no API key)"""
    status_code = 500
    code = "CONFIGURATION_ERROR"
