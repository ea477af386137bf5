"""
Configuration Settings.

This module defines the application configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.
"""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# Grouped Configuration Models
# =====================================================================


class EngineConfig(BaseModel):
    """Execution engine configuration."""

    max_recovery_attempts: int = Field(
        default=2, description="Remediation retries allowed for a single failing step"
    )
    graph_max_concurrency: int = Field(default=4, description="Maximum number of graph nodes running at once")
    live_execution_ttl_seconds: float = Field(
        default=3600.0, description="Seconds a live execution stays tracked without progress"
    )
    recovery_sweep_interval_seconds: float = Field(
        default=60.0, description="Interval of the periodic interrupted-execution sweep"
    )


class ReasoningConfig(BaseModel):
    """Reasoning backend configuration."""

    model: str = Field(default="openai:gpt-4o", description="pydantic_ai model identifier used for planning")
    timeout_seconds: float = Field(default=30.0, description="Timeout of a single reasoning call")
    retry_attempts: int = Field(default=3, description="Attempts per reasoning call before giving up")
    retry_wait_seconds: float = Field(default=1.0, description="Fixed wait between reasoning call attempts")
    circuit_failure_threshold: int = Field(
        default=5, description="Consecutive failed calls that open the circuit breaker"
    )
    circuit_cooldown_seconds: float = Field(default=30.0, description="Seconds the circuit stays open")
    worker_threads: int = Field(default=4, description="Worker threads for synchronous reasoning backends")


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Application settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    # =====================================================================
    # Pydantic Configuration
    # =====================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # General Configuration
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="PLANFORGE_AI_LOG_LEVEL",
    )
    log_format: str = Field(
        default="detailed",
        description="Log format (simple, detailed, json)",
        alias="PLANFORGE_AI_LOG_FORMAT",
    )

    # =====================================================================
    # Database Configuration
    # =====================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./planforge_ai.db",
        description="Async connection URL of the execution state store",
        alias="PLANFORGE_AI_DATABASE_URL",
    )

    # =====================================================================
    # Engine Configuration
    # =====================================================================
    max_recovery_attempts: int = Field(default=2, alias="PLANFORGE_AI_MAX_RECOVERY_ATTEMPTS")
    graph_max_concurrency: int = Field(default=4, alias="PLANFORGE_AI_GRAPH_MAX_CONCURRENCY")
    live_execution_ttl_seconds: float = Field(default=3600.0, alias="PLANFORGE_AI_LIVE_EXECUTION_TTL_SECONDS")
    recovery_sweep_interval_seconds: float = Field(default=60.0, alias="PLANFORGE_AI_RECOVERY_SWEEP_INTERVAL_SECONDS")

    # =====================================================================
    # Reasoning Backend Configuration
    # =====================================================================
    reasoning_model: str = Field(default="openai:gpt-4o", alias="PLANFORGE_AI_REASONING_MODEL")
    reasoning_timeout_seconds: float = Field(default=30.0, alias="PLANFORGE_AI_REASONING_TIMEOUT_SECONDS")
    reasoning_retry_attempts: int = Field(default=3, alias="PLANFORGE_AI_REASONING_RETRY_ATTEMPTS")
    reasoning_retry_wait_seconds: float = Field(default=1.0, alias="PLANFORGE_AI_REASONING_RETRY_WAIT_SECONDS")
    reasoning_circuit_failure_threshold: int = Field(
        default=5, alias="PLANFORGE_AI_REASONING_CIRCUIT_FAILURE_THRESHOLD"
    )
    reasoning_circuit_cooldown_seconds: float = Field(
        default=30.0, alias="PLANFORGE_AI_REASONING_CIRCUIT_COOLDOWN_SECONDS"
    )
    reasoning_worker_threads: int = Field(default=4, alias="PLANFORGE_AI_REASONING_WORKER_THREADS")

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def engine(self) -> EngineConfig:
        """Get execution engine configuration."""
        return EngineConfig(
            max_recovery_attempts=self.max_recovery_attempts,
            graph_max_concurrency=self.graph_max_concurrency,
            live_execution_ttl_seconds=self.live_execution_ttl_seconds,
            recovery_sweep_interval_seconds=self.recovery_sweep_interval_seconds,
        )

    @property
    def reasoning(self) -> ReasoningConfig:
        """Get reasoning backend configuration."""
        return ReasoningConfig(
            model=self.reasoning_model,
            timeout_seconds=self.reasoning_timeout_seconds,
            retry_attempts=self.reasoning_retry_attempts,
            retry_wait_seconds=self.reasoning_retry_wait_seconds,
            circuit_failure_threshold=self.reasoning_circuit_failure_threshold,
            circuit_cooldown_seconds=self.reasoning_circuit_cooldown_seconds,
            worker_threads=self.reasoning_worker_threads,
        )


settings = Settings()
