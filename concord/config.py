"""Configuration management for Concord using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from concord.core.enums import ConsensusAlgorithmType


class ConsensusDefaults(BaseSettings):
    """Consensus values applied when a fleet file leaves them out."""

    model_config = SettingsConfigDict(
        env_prefix="CONCORD_CONSENSUS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    algorithm: ConsensusAlgorithmType = ConsensusAlgorithmType.MAJORITY
    min_votes: int = Field(default=1, ge=1)
    min_confidence: float = Field(default=0.5, ge=0, le=1)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Keys
    anthropic_api_key: str = Field(default="", alias="ANTHROPIC_API_KEY")

    # Model configuration
    model: str = Field(default="claude-sonnet-4-5", alias="CONCORD_MODEL")
    max_tokens: int = Field(default=4096, alias="CONCORD_MAX_TOKENS")
    temperature: float = Field(default=0.7, alias="CONCORD_TEMPERATURE")

    # Logging
    log_level: str = Field(default="INFO", alias="CONCORD_LOG_LEVEL")
    log_format: str = Field(default="console", alias="CONCORD_LOG_FORMAT")

    # Execution limits
    max_concurrent_agents: int = Field(default=10, alias="CONCORD_MAX_CONCURRENT_AGENTS")
    agent_timeout_seconds: float = Field(default=120.0, alias="CONCORD_AGENT_TIMEOUT")
    fleet_deadline_seconds: float | None = Field(default=None, alias="CONCORD_FLEET_DEADLINE")

    # Rate limiting
    api_retry_attempts: int = Field(default=3, alias="CONCORD_API_RETRY_ATTEMPTS")
    api_retry_delay: float = Field(default=1.0, alias="CONCORD_API_RETRY_DELAY")

    # Nested settings
    consensus: ConsensusDefaults = Field(default_factory=ConsensusDefaults)

    @field_validator("anthropic_api_key", mode="before")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        if not v:
            return v
        if not v.startswith("sk-ant-"):
            raise ValueError("Invalid Anthropic API key format")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("console", "json"):
            raise ValueError(f"log_format must be 'console' or 'json', got '{v}'")
        return v

    @field_validator("max_concurrent_agents", "api_retry_attempts")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @property
    def is_configured(self) -> bool:
        """Check if essential settings are configured."""
        return bool(self.anthropic_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
