"""
Centralized configuration management with validation and type conversion.

All tunables for the POI sync engine are read from environment variables
(optionally loaded from a `.env` file) and grouped into small dataclasses:
- Provider timeouts
- Area fetch behaviour (debounce delay, Overpass endpoints, limits)
- Cache TTLs
- POI store persistence backend
- Logging
"""

import os
import logging
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from enum import Enum

from dotenv import load_dotenv

load_dotenv()


class Environment(Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


STORAGE_BACKENDS = ("file", "memory", "redis")

DEFAULT_OVERPASS_URLS = [
    "https://overpass-api.de/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
]

# Dolomites / eastern Alps, used to bound name searches
DEFAULT_NAME_SEARCH_BOUNDS = (45.5, 10.0, 47.2, 13.0)


@dataclass
class TimeoutConfig:
    """Timeout configuration for different operations."""
    overpass: float = 25.0
    enrichment: float = 6.0
    storage: float = 5.0
    api: float = 30.0

    def get(self, operation: str) -> float:
        """Get timeout for a specific operation, falling back to `api`."""
        return getattr(self, operation, self.api)


@dataclass
class FetchConfig:
    """Area fetch and name search configuration."""
    debounce_seconds: float = 0.6
    overpass_urls: List[str] = field(default_factory=lambda: list(DEFAULT_OVERPASS_URLS))
    result_limit: int = 500
    name_search_bounds: tuple = DEFAULT_NAME_SEARCH_BOUNDS
    user_agent: str = "MountPro/1.0"


@dataclass
class CacheConfig:
    """Cache configuration."""
    ttl_live_info: int = 900  # 15 minutes


@dataclass
class StorageConfig:
    """POI store persistence configuration."""
    backend: str = "file"
    path: str = os.path.join(os.path.expanduser("~"), ".mountpro")
    key: str = "mountpro_pois"
    redis_url: str = "redis://localhost:6379"


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None
    max_bytes: int = 10485760  # 10MB
    backup_count: int = 5


class Config:
    """Centralized configuration with validation and type conversion."""

    def __init__(self):
        """Initialize configuration from environment variables."""
        self.environment = self._get_environment()
        self.debug = self._get_bool("DEBUG", False)

        # API Keys
        self.groq_api_key = self._get_optional("GROQ_API_KEY")
        self.groq_model = self._get_str("GROQ_MODEL", "llama-3.1-8b-instant")

        # Timeouts
        self.timeout_config = TimeoutConfig(
            overpass=self._get_float("TIMEOUT_OVERPASS", 25.0),
            enrichment=self._get_float("TIMEOUT_ENRICHMENT", 6.0),
            storage=self._get_float("TIMEOUT_STORAGE", 5.0),
            api=self._get_float("TIMEOUT_API", 30.0),
        )

        # Area fetch / name search
        self.fetch_config = FetchConfig(
            debounce_seconds=self._get_float("FETCH_DEBOUNCE_SECONDS", 0.6),
            overpass_urls=self._get_list("OVERPASS_URLS", list(DEFAULT_OVERPASS_URLS)),
            result_limit=self._get_int("FETCH_RESULT_LIMIT", 500),
            name_search_bounds=self._get_bounds("NAME_SEARCH_BOUNDS", DEFAULT_NAME_SEARCH_BOUNDS),
            user_agent=self._get_str("USER_AGENT", "MountPro/1.0"),
        )

        # Cache
        self.cache_config = CacheConfig(
            ttl_live_info=self._get_int("CACHE_TTL_LIVE_INFO", 900),
        )

        # Storage
        self.storage_config = StorageConfig(
            backend=self._get_str("STORAGE_BACKEND", "file").lower(),
            path=self._get_str("STORAGE_PATH", os.path.join(os.path.expanduser("~"), ".mountpro")),
            key=self._get_str("STORAGE_KEY", "mountpro_pois"),
            redis_url=self._get_optional("REDIS_URL") or "redis://localhost:6379",
        )

        # Logging
        self.logging_config = LoggingConfig(
            level=self._get_str("LOG_LEVEL", "INFO"),
            format=self._get_str("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            file=self._get_optional("LOG_FILE"),
            max_bytes=self._get_int("LOG_MAX_BYTES", 10485760),
            backup_count=self._get_int("LOG_BACKUP_COUNT", 5),
        )

        self._validate()

    def _get_environment(self) -> Environment:
        """Get application environment."""
        env_str = self._get_str("ENVIRONMENT", "development").lower()
        try:
            return Environment(env_str)
        except ValueError:
            raise ValueError(f"Invalid environment: {env_str}")

    def _get_optional(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return os.getenv(key, default)

    def _get_str(self, key: str, default: str) -> str:
        return os.getenv(key, default)

    def _get_int(self, key: str, default: int) -> int:
        """Get integer environment variable with default.

        Raises:
            ValueError: If value cannot be converted to int
        """
        value = os.getenv(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"Invalid integer for {key}: {value}")

    def _get_float(self, key: str, default: float) -> float:
        """Get float environment variable with default.

        Raises:
            ValueError: If value cannot be converted to float
        """
        value = os.getenv(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            raise ValueError(f"Invalid float for {key}: {value}")

    def _get_bool(self, key: str, default: bool) -> bool:
        value = os.getenv(key)
        if value is None:
            return default
        return value.lower() in ('1', 'true', 'yes', 'on')

    def _get_list(self, key: str, default: list) -> list:
        value = os.getenv(key)
        if value is None:
            return default
        return [item.strip() for item in value.split(',') if item.strip()]

    def _get_bounds(self, key: str, default: tuple) -> tuple:
        """Get a `south,west,north,east` bounding box."""
        parts = self._get_list(key, [])
        if not parts:
            return default
        if len(parts) != 4:
            raise ValueError(f"Invalid bounds for {key}: expected 4 values")
        try:
            return tuple(float(p) for p in parts)
        except ValueError:
            raise ValueError(f"Invalid bounds for {key}: {parts}")

    def _validate(self):
        """Validate configuration values."""
        for attr_name in ['overpass', 'enrichment', 'storage', 'api']:
            timeout = getattr(self.timeout_config, attr_name)
            if timeout <= 0:
                raise ValueError(f"Invalid timeout for {attr_name}: {timeout}")

        if self.fetch_config.debounce_seconds < 0:
            raise ValueError(f"Invalid debounce delay: {self.fetch_config.debounce_seconds}")

        if not self.fetch_config.overpass_urls:
            raise ValueError("OVERPASS_URLS must list at least one endpoint")

        if self.storage_config.backend not in STORAGE_BACKENDS:
            raise ValueError(f"Invalid storage backend: {self.storage_config.backend}")

        if self.storage_config.backend == "redis" and not self.storage_config.redis_url.startswith(('redis://', 'rediss://')):
            raise ValueError(f"Invalid Redis URL: {self.storage_config.redis_url}")

        if not self.groq_api_key:
            logging.getLogger(__name__).warning("GROQ_API_KEY not set - live info enrichment will be disabled")

    def get_timeout(self, operation: str) -> float:
        """Get timeout for a specific operation."""
        return self.timeout_config.get(operation)

    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for debugging."""
        return {
            'environment': self.environment.value,
            'debug': self.debug,
            'groq_enabled': bool(self.groq_api_key),
            'timeout_config': {
                'overpass': self.timeout_config.overpass,
                'enrichment': self.timeout_config.enrichment,
                'storage': self.timeout_config.storage,
                'api': self.timeout_config.api,
            },
            'fetch_config': {
                'debounce_seconds': self.fetch_config.debounce_seconds,
                'overpass_urls': self.fetch_config.overpass_urls,
                'result_limit': self.fetch_config.result_limit,
            },
            'storage_config': {
                'backend': self.storage_config.backend,
                'key': self.storage_config.key,
            },
        }


_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance, creating it on first use."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next call re-reads the environment."""
    global _config
    _config = None


def setup_logging():
    """Set up logging based on configuration."""
    from logging.handlers import RotatingFileHandler

    config = get_config()

    logging.basicConfig(
        level=getattr(logging, config.logging_config.level.upper()),
        format=config.logging_config.format,
    )

    if config.logging_config.file:
        file_handler = RotatingFileHandler(
            config.logging_config.file,
            maxBytes=config.logging_config.max_bytes,
            backupCount=config.logging_config.backup_count,
        )
        file_handler.setFormatter(logging.Formatter(config.logging_config.format))
        logging.getLogger().addHandler(file_handler)

    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)

    if config.is_development():
        logging.getLogger().setLevel(logging.DEBUG)
    elif config.is_production():
        logging.getLogger().setLevel(logging.INFO)
