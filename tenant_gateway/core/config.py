"""Settings and configuration."""
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    # Core
    MODE: str = "dev"  # dev, prod
    SERVICE_NAME: str = "tenant-gateway"
    LOG_LEVEL: str = "INFO"

    # Shared state store
    STORE_BACKEND: str = "memory"  # memory, redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Upstream providers
    UPSTREAM_TIMEOUT_SECONDS: float = 30.0

    # Response cache
    DEFAULT_CACHE_TTL_SECONDS: int = 86400

    # Realtime
    REALTIME_BACKENDS: list[str] = ["openai_realtime", "ultravox"]
    REALTIME_DEFAULT_BUDGET: int = 100

    # Credentials
    ANONYMOUS_CREDENTIAL_HOURS: int = 24

    # Bootstrap
    SEED_CONFIG_PATH: Optional[str] = None
    SEED_DEFAULT_TENANT: bool = True

    # Observability
    TRACING_ENABLED: bool = False
    OTEL_EXPORTER_OTLP_ENDPOINT: Optional[str] = None

    class Config:
        case_sensitive = True
        env_file = ".env"
        extra = "ignore"


settings = Settings()
