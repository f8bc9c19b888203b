"""Configuration loading with environment variable substitution."""

import json
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from bucket_cas.observability import LogLevel

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} patterns with environment variables."""
    if isinstance(value, str):
        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable {var_name} is not set")
            return env_value

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]
    return value


class BackendConfig(BaseModel):
    """Remote store configuration."""

    backend: str = "memory"  # memory | redis | redis_cluster
    # Backend-specific settings
    url: str | None = None  # For redis / redis_cluster
    max_connections: int | None = None
    socket_timeout: float | None = None

    def backend_kwargs(self) -> dict[str, Any]:
        """Settings to pass to the backend constructor."""
        return self.model_dump(exclude={"backend"}, exclude_none=True)


class ExpirationConfig(BaseModel):
    """TTL policy configuration.

    Extra keys are passed to strategies added with
    ``ExpirationStrategyFactory.register``.
    """

    model_config = ConfigDict(extra="allow")

    strategy: str = "none"  # none | fixed | refill | registered name
    ttl_millis: int | None = None  # For fixed
    keep_after_refill_millis: int = 0  # For refill


class RetryConfig(BaseModel):
    """Bounds for the compare-and-swap retry loop."""

    max_attempts: int = 100
    timeout_seconds: float | None = None

    @field_validator("max_attempts")
    @classmethod
    def _check_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_attempts must be at least 1")
        return value

    @field_validator("timeout_seconds")
    @classmethod
    def _check_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("timeout_seconds must be positive")
        return value


class BucketConfig(BaseModel):
    """Token bucket parameters."""

    capacity: int = Field(default=100, gt=0)
    refill_tokens: int = Field(default=100, gt=0)
    refill_period_seconds: float = Field(default=60.0, gt=0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: Literal["json", "text"] = "json"


class Config(BaseModel):
    """Main configuration for bucket-cas."""

    backend: BackendConfig = Field(default_factory=BackendConfig)
    expiration: ExpirationConfig = Field(default_factory=ExpirationConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    bucket: BucketConfig = Field(default_factory=BucketConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        with path.open() as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        data = substitute_env_vars(data or {})
        return cls.model_validate(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load configuration from a dictionary."""
        data = substitute_env_vars(data)
        return cls.model_validate(data)
