#!/usr/bin/env python3
"""
Chaos VFS Configuration
Environment-driven settings for the service, the object store and the chaos engine
"""
import os
from dataclasses import dataclass, fields

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


@dataclass
class ChaosConfig:
    """Tunables for every chaos behaviour"""
    # Entropy
    passive_growth_rate: float = 0.05       # scales the passive per-entry hit chance
    listing_folder_drift_factor: float = 0.05

    # Quantum
    quantum_generation_chance: float = 0.1  # worker retrofit chance per eligible file
    quantum_min_level: int = 3

    # Recurrence
    respawn_delay_base: int = 300           # seconds
    purge_after_hours: int = 24

    # Listings
    alternate_reality_min_level: int = 5
    alternate_reality_factor: float = 0.1

    # Worker
    worker_interval_seconds: int = 30
    pass_limit: int = 1000

    @classmethod
    def from_env(cls) -> 'ChaosConfig':
        """Build from CHAOS_<FIELD> environment overrides"""
        overrides = {}
        for f in fields(cls):
            raw = os.getenv(f"CHAOS_{f.name.upper()}")
            if raw is not None:
                overrides[f.name] = type(f.default)(raw)
        return cls(**overrides)


class VFSConfig:
    """Configuration for the Chaos VFS service"""

    NAME = 'Chaos VFS'
    VERSION = '1.0.0'

    # Service Configuration
    HOST = os.getenv('VFS_HOST', '0.0.0.0')
    PORT = int(os.getenv('VFS_PORT', 8010))
    DEBUG = os.getenv('VFS_DEBUG', 'false').lower() == 'true'
    TESTING = False

    # Authentication
    API_KEY = os.getenv('VFS_API_KEY')
    LOGIN_RATE_LIMIT = os.getenv('VFS_LOGIN_RATE_LIMIT', '10 per minute')
    RATELIMIT_ENABLED = os.getenv('VFS_RATELIMIT_ENABLED', 'true').lower() == 'true'
    RATELIMIT_STORAGE_URI = os.getenv('VFS_RATELIMIT_STORAGE_URI', 'memory://')

    # Object store
    STORAGE_BACKEND = os.getenv('VFS_STORAGE_BACKEND', 'memory')
    STORAGE_PATH = os.getenv('VFS_STORAGE_PATH', '/tmp/chaos_vfs')
    REDIS_HOST = os.getenv('REDIS_HOST', 'localhost')
    REDIS_PORT = int(os.getenv('REDIS_PORT', 6379))
    REDIS_DB = int(os.getenv('REDIS_DB', 0))
    REDIS_PASSWORD = os.getenv('REDIS_PASSWORD')

    # Background worker
    WORKER_ENABLED = os.getenv('VFS_WORKER_ENABLED', 'true').lower() == 'true'

    # Logging Configuration
    LOG_LEVEL = os.getenv('VFS_LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('VFS_LOG_FILE')

    CHAOS = ChaosConfig.from_env()

    @classmethod
    def validate_config(cls):
        """Validate configuration settings"""
        issues = []

        if cls.PORT < 1024 or cls.PORT > 65535:
            issues.append("PORT must be between 1024 and 65535")

        if not cls.API_KEY:
            issues.append("VFS_API_KEY is not set; every authenticated request will be rejected")

        if cls.STORAGE_BACKEND not in ('memory', 'filesystem', 'redis'):
            issues.append(f"Unknown STORAGE_BACKEND '{cls.STORAGE_BACKEND}'")

        chaos = cls.CHAOS
        for name in ('passive_growth_rate', 'listing_folder_drift_factor',
                     'quantum_generation_chance', 'alternate_reality_factor'):
            value = getattr(chaos, name)
            if value < 0 or value > 1:
                issues.append(f"{name} must be between 0 and 1")

        if chaos.pass_limit < 1:
            issues.append("pass_limit must be positive")

        return issues


# Environment-specific configurations
class DevelopmentConfig(VFSConfig):
    """Development environment configuration"""
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(VFSConfig):
    """Production environment configuration"""
    DEBUG = False
    LOG_LEVEL = 'INFO'


class TestConfig(VFSConfig):
    """Test environment configuration"""
    __test__ = False
    TESTING = True
    DEBUG = True
    API_KEY = 'test-key'
    STORAGE_BACKEND = 'memory'
    RATELIMIT_ENABLED = False
    WORKER_ENABLED = False
    CHAOS = ChaosConfig()


# Configuration factory
def get_config(env=None):
    """Get configuration based on environment"""
    env = env or os.getenv('VFS_ENV', 'development')

    configs = {
        'development': DevelopmentConfig,
        'production': ProductionConfig,
        'test': TestConfig
    }

    return configs.get(env, DevelopmentConfig)
