from enum import Enum
from typing import Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackoffStrategy(str, Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class ReconnectPolicy(BaseModel):
    strategy: BackoffStrategy = BackoffStrategy.FIXED
    delay: float = 1.0  # seconds
    max_delay: float = 60.0  # seconds, exponential only

    def next_delay(self, attempt: int) -> float:
        """Return the delay before reconnect number ``attempt`` (0-based)."""
        if self.strategy == BackoffStrategy.EXPONENTIAL:
            return min(self.delay * (2 ** attempt), self.max_delay)
        return self.delay


class MetricsConfig(BaseModel):
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9090


class RelayConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="SMEE_RELAY_",
        extra="ignore",
    )

    log_level: str = "INFO"
    colorize: bool = True
    source_url: Optional[str] = None
    target_url: Optional[str] = None
    secret: Optional[str] = None
    timeout: float = 120.0  # seconds
    self_signed_certificate: bool = False
    reconnect: ReconnectPolicy = ReconnectPolicy()
    metrics: MetricsConfig = MetricsConfig()

    def validate_required(self) -> None:
        if not self.source_url:
            raise ValueError("--url parameter is required")
        if not self.target_url:
            raise ValueError("--target parameter is required")
