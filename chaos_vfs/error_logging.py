from enum import Enum
import logging
from datetime import datetime
from typing import Optional, Dict, Any


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class ErrorSection(Enum):
    STORAGE = "STORAGE"
    METADATA = "META"
    ESCALATION = "ESCAL"
    ENTROPY = "ENTROPY"
    QUANTUM = "QUANTUM"
    GRAVEYARD = "GRAVE"
    WORKER = "WORKER"
    API = "API"
    AUTHENTICATION = "AUTH"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Configure root logging once for the service process"""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers
    )


class SectionLogger:
    def __init__(self, section: ErrorSection):
        self.section = section
        self.logger = logging.getLogger(f"chaos_vfs.{section.value.lower()}")

    def _event_id(self, code: str) -> str:
        return f"{self.section.value}-{code}-{datetime.now().strftime('%Y%m%d%H%M%S')}"

    def log_error(self, error_code: str, message: str, context: Optional[Dict[str, Any]] = None,
                  exc_info: bool = False) -> str:
        """Log an error with section-specific context"""
        error_id = self._event_id(error_code)
        self.logger.error(f"{error_id}: {message}", exc_info=exc_info)
        if context:
            self.logger.error(f"Context: {context}")
        return error_id

    def log_warning(self, warning_code: str, message: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Log a warning with section-specific context"""
        warning_id = self._event_id(warning_code)
        self.logger.warning(f"{warning_id}: {message}")
        if context:
            self.logger.warning(f"Context: {context}")
        return warning_id

    def log_info(self, info_code: str, message: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Log an info message with section-specific context"""
        info_id = self._event_id(info_code)
        self.logger.info(f"{info_id}: {message}")
        if context:
            self.logger.debug(f"Context: {context}")
        return info_id


# Create section-specific loggers
storage_logger = SectionLogger(ErrorSection.STORAGE)
metadata_logger = SectionLogger(ErrorSection.METADATA)
escalation_logger = SectionLogger(ErrorSection.ESCALATION)
entropy_logger = SectionLogger(ErrorSection.ENTROPY)
quantum_logger = SectionLogger(ErrorSection.QUANTUM)
graveyard_logger = SectionLogger(ErrorSection.GRAVEYARD)
worker_logger = SectionLogger(ErrorSection.WORKER)
api_logger = SectionLogger(ErrorSection.API)
auth_logger = SectionLogger(ErrorSection.AUTHENTICATION)


# Error code constants
class ErrorCodes:
    # Object store errors
    STORAGE_READ_FAILED = "STORAGE-001"
    STORAGE_WRITE_FAILED = "STORAGE-002"
    STORAGE_DELETE_FAILED = "STORAGE-003"
    STORAGE_LIST_FAILED = "STORAGE-004"

    # Metadata errors
    META_CORRUPT = "META-001"
    META_INDEX_WRITE_FAILED = "META-002"
    META_ROLLBACK_FAILED = "META-003"
    META_STALE_INDEX = "META-004"
    META_INDEX_REBUILT = "META-005"

    # Escalation
    ESCAL_READ_FAILED = "ESCAL-001"
    ESCAL_UPDATED = "ESCAL-002"
    ESCAL_COUNT_FAILED = "ESCAL-003"

    # Chaos behaviours
    ENTROPY_DRIFTED = "ENTROPY-001"
    QUANTUM_STATES_CREATED = "QUANTUM-001"
    QUANTUM_VARIANT_MISSING = "QUANTUM-002"
    GRAVE_BURIED = "GRAVE-001"
    GRAVE_RESURRECTED = "GRAVE-002"
    GRAVE_PURGED = "GRAVE-003"
    GRAVE_ITEM_FAILED = "GRAVE-004"

    # Worker
    WORKER_CYCLE_FAILED = "WORKER-001"
    WORKER_ITEM_FAILED = "WORKER-002"
    WORKER_PASS_FAILED = "WORKER-003"
    WORKER_CYCLE_COMPLETE = "WORKER-004"
    WORKER_CYCLE_STARTED = "WORKER-005"
    WORKER_SCHEDULER = "WORKER-006"

    # API / auth
    API_REQUEST_FAILED = "API-001"
    API_FILE_STORED = "API-002"
    API_DELETE_PARTIAL = "API-003"
    API_REQUEST_COMPLETE = "API-004"
    AUTH_INVALID_KEY = "AUTH-001"
    AUTH_MISSING_KEY = "AUTH-002"
    AUTH_NOT_CONFIGURED = "AUTH-003"
    AUTH_RATE_LIMITED = "AUTH-004"
    AUTH_INITIALIZED = "AUTH-005"
    AUTH_LOGIN = "AUTH-006"
