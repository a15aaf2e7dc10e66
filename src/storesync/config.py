import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List
from dotenv import load_dotenv

# .env and the logs directory live under APP_ROOT
PROJECT_ROOT = Path(os.getenv('APP_ROOT', os.getcwd()))

load_dotenv(PROJECT_ROOT / '.env')

logger = logging.getLogger(__name__)

TRUE_VALUES = ('true', 't', 'yes', 'y', 'on', '1')
FALSE_VALUES = ('false', 'f', 'no', 'n', 'off', '0')

def parse_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower() if value is not None else ''
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return default

def parse_list(value: str) -> List[str]:
    return [item.strip() for item in (value or '').split(',') if item.strip()]

def env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))

def env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))

@dataclass
class Config:
    """
    Service settings, read from the environment (and APP_ROOT/.env) once at import.

    Source store credentials are not configured here: they are stored
    encrypted per connection. The target store token is.
    """

    # HTTP API
    APP_HOST: str = os.getenv('APP_HOST', '0.0.0.0')
    APP_PORT: int = env_int('APP_PORT', 8000)
    DEBUG_MODE: bool = parse_bool(os.getenv('DEBUG_MODE'))
    CORS_ORIGINS: List[str] = field(default_factory=lambda: parse_list(os.getenv('CORS_ORIGINS', '*')))
    API_TOKEN: str = os.getenv('API_TOKEN', '')

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE: str = str(PROJECT_ROOT / os.getenv('LOG_FILE', 'logs/storesync.log'))
    LOG_MAX_BYTES: int = env_int('LOG_MAX_BYTES', 3 * 1024 * 1024)
    LOG_BACKUP_COUNT: int = env_int('LOG_BACKUP_COUNT', 3)

    # Postgres
    POSTGRES_USER: str = os.getenv('DB_USERNAME', 'storesync')
    POSTGRES_PASSWORD: str = os.getenv('DB_PASSWORD', '')
    POSTGRES_DB: str = os.getenv('DB_DATABASE', 'storesync')
    POSTGRES_HOST: str = os.getenv('POSTGRES_HOST', 'localhost')
    POSTGRES_PORT: int = env_int('POSTGRES_PORT', 5432)
    DB_POOL_MIN: int = env_int('DB_POOL_MIN', 2)
    DB_POOL_MAX: int = env_int('DB_POOL_MAX', 10)

    # Store GraphQL API
    SHOP_API_VERSION: str = os.getenv('SHOP_API_VERSION', '2025-01')
    API_TIMEOUT: int = env_int('API_TIMEOUT', 30)
    API_RATE_LIMIT: float = env_float('API_RATE_LIMIT', 0.5)
    TARGET_ACCESS_TOKEN: str = os.getenv('TARGET_ACCESS_TOKEN', '')
    ENCRYPTION_KEY: str = os.getenv('ENCRYPTION_KEY', '')

    # Sync runs
    PAGE_SIZE: int = env_int('PAGE_SIZE', 50)
    PRODUCT_PAGE_SIZE: int = env_int('PRODUCT_PAGE_SIZE', 5)
    PAGE_PAUSE: float = env_float('PAGE_PAUSE', 0.1)
    ITEM_PAUSE: float = env_float('ITEM_PAUSE', 0)
    MAX_ATTEMPTS: int = env_int('MAX_ATTEMPTS', 3)
    RETRY_DELAY: float = env_float('RETRY_DELAY', 1)
    RETRY_MAX_DELAY: float = env_float('RETRY_MAX_DELAY', 30)
    METAFIELDS_BATCH_SIZE: int = env_int('METAFIELDS_BATCH_SIZE', 25)

    SCHEDULER_ENABLED: bool = parse_bool(os.getenv('SCHEDULER_ENABLED'), True)

    def problems(self) -> List[str]:
        checks = [
            (self.PAGE_SIZE > 0, "PAGE_SIZE must be positive"),
            (self.PRODUCT_PAGE_SIZE > 0, "PRODUCT_PAGE_SIZE must be positive"),
            (self.MAX_ATTEMPTS > 0, "MAX_ATTEMPTS must be positive"),
            (self.RETRY_DELAY > 0, "RETRY_DELAY must be positive"),
            (self.RETRY_MAX_DELAY >= self.RETRY_DELAY, "RETRY_MAX_DELAY cannot be below RETRY_DELAY"),
            (self.API_RATE_LIMIT >= 0, "API_RATE_LIMIT cannot be negative"),
            # metafieldsSet accepts at most 25 entries per call
            (0 < self.METAFIELDS_BATCH_SIZE <= 25, "METAFIELDS_BATCH_SIZE must be between 1 and 25"),
            (self.LOG_LEVEL.upper() in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'), f"Unknown LOG_LEVEL {self.LOG_LEVEL}"),
            (0 <= self.DB_POOL_MIN <= self.DB_POOL_MAX, "DB_POOL_MIN cannot be above DB_POOL_MAX"),
        ]
        problems = [message for ok, message in checks if not ok]
        problems.extend(
            f"{name} is required"
            for name in ('POSTGRES_USER', 'POSTGRES_DB', 'POSTGRES_HOST')
            if not getattr(self, name)
        )
        return problems

    @classmethod
    def load(cls) -> 'Config':
        config = cls()
        problems = config.problems()
        if problems:
            logger.error(f"Invalid configuration: {'; '.join(problems)}")
            raise ValueError(f"Invalid configuration: {'; '.join(problems)}")
        Path(config.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)
        return config

    def __getitem__(self, key: str) -> Any:
        if key not in self.__dataclass_fields__:
            raise KeyError(key)
        return getattr(self, key)

config = Config.load()
