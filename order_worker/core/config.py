from functools import lru_cache
from typing import Annotated, Any, List, Optional
import os

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # API settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Order Enrichment Worker"
    DEBUG: bool = False

    # CORS settings
    BACKEND_CORS_ORIGINS: Annotated[List[str], NoDecode] = ["*"]

    # Logging settings
    LOG_LEVEL: str = "INFO"
    ENABLE_STRUCTURED_LOGGING: bool = True

    # Enricher API settings
    ENRICHER_API_BASE_URL: str = "http://localhost:8080"
    ENRICHER_CONNECT_TIMEOUT: float = 5.0  # seconds
    ENRICHER_READ_TIMEOUT: float = 10.0
    ENRICHER_RESPONSE_TIMEOUT: float = 30.0

    # Retry settings
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_INITIAL_BACKOFF: float = 0.5  # seconds
    RETRY_BACKOFF_MULTIPLIER: float = 2.0
    RETRY_MAX_BACKOFF: float = 5.0
    RETRY_STATUS_CODES: Annotated[List[int], NoDecode] = [429, 500, 502, 503, 504]
    RETRY_ON_TRANSPORT_ERROR: bool = True

    # Circuit breaker settings
    CIRCUIT_BREAKER_FAILURE_RATE_THRESHOLD: float = 50.0  # percent
    CIRCUIT_BREAKER_SLIDING_WINDOW_SIZE: int = 10
    CIRCUIT_BREAKER_MINIMUM_CALLS: int = 5
    CIRCUIT_BREAKER_WAIT_DURATION_OPEN: float = 30.0  # seconds
    CIRCUIT_BREAKER_HALF_OPEN_CALLS: int = 3

    # Batch fetch settings, None means unbounded
    BATCH_MAX_CONCURRENCY: Optional[int] = None

    # Database settings
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "order_enrichment"

    # Redis settings
    REDIS_ENABLED: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"
    LOCK_WAIT_SECONDS: float = 10.0
    LOCK_LEASE_SECONDS: float = 30.0

    # Failed order retry sweep
    FAILED_ORDER_RETRY_ENABLED: bool = True
    FAILED_ORDER_RETRY_INTERVAL: float = 30.0  # seconds

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Any) -> List[str]:
        """Parse CORS origins from string or list."""
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    @field_validator("RETRY_STATUS_CODES", mode="before")
    @classmethod
    def assemble_retry_status_codes(cls, v: Any) -> List[int]:
        """Parse retryable status codes from a comma separated string or list."""
        if isinstance(v, str):
            return [int(i.strip()) for i in v.split(",") if i.strip()]
        if isinstance(v, (list, tuple, set, frozenset)):
            return [int(i) for i in v]
        raise ValueError(v)

    def resilience_policy(self, name: str):
        """
        Build the resilience policy for one upstream service.

        Args:
            name: Name of the protected upstream, e.g. "productService"

        Returns:
            ResiliencePolicy: Retry and circuit breaker parameters
        """
        from order_worker.infrastructure.resilience.policy import ResiliencePolicy

        return ResiliencePolicy(
            name=name,
            max_attempts=self.RETRY_MAX_ATTEMPTS,
            initial_backoff=self.RETRY_INITIAL_BACKOFF,
            backoff_multiplier=self.RETRY_BACKOFF_MULTIPLIER,
            max_backoff=self.RETRY_MAX_BACKOFF,
            retry_status_codes=frozenset(self.RETRY_STATUS_CODES),
            retry_on_transport_error=self.RETRY_ON_TRANSPORT_ERROR,
            failure_rate_threshold=self.CIRCUIT_BREAKER_FAILURE_RATE_THRESHOLD,
            sliding_window_size=self.CIRCUIT_BREAKER_SLIDING_WINDOW_SIZE,
            minimum_number_of_calls=self.CIRCUIT_BREAKER_MINIMUM_CALLS,
            wait_duration_in_open_state=self.CIRCUIT_BREAKER_WAIT_DURATION_OPEN,
            permitted_calls_in_half_open_state=self.CIRCUIT_BREAKER_HALF_OPEN_CALLS,
        )


def load_env_file(env_file: str = ".env") -> None:
    """
    Load environment variables from specified .env file.

    Args:
        env_file: Path to the .env file. Defaults to ".env".
    """
    env_path = os.path.join(os.getcwd(), env_file)
    if os.path.exists(env_path):
        load_dotenv(env_path)


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings with caching for efficiency.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
