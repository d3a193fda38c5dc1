"""
Pydantic v2 Configuration Models for HostedSearch

Provides strict, typed configuration for a search client:
- Credentials (application ID, API key)
- Optional explicit read/write hosts (default hosts are derived otherwise)
- Timeout tiers (connect, standard read, search read) and host-down delay
- Worker pool and connection pool sizes

All models use extra="forbid" and validate_assignment=True, so a bad value is
rejected both at construction and when a setter changes it later. Validation
failures surface as :class:`ConfigurationError`.
"""

from __future__ import annotations

from typing import Any, ClassVar, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from HostedSearch.Transport.errors import ConfigurationError


class ClientConfig(BaseModel):
    """Configuration for one search client."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", validate_assignment=True)

    application_id: str = Field(description="Application identifier")
    api_key: str = Field(description="API key sent with every request")
    read_hosts: Optional[List[str]] = Field(
        default=None, description="Explicit read hosts (None = derive defaults)"
    )
    write_hosts: Optional[List[str]] = Field(
        default=None, description="Explicit write hosts (None = derive defaults)"
    )
    connect_timeout_ms: int = Field(default=2000, description="Connection timeout in ms")
    read_timeout_ms: int = Field(default=30000, description="Standard read timeout in ms")
    search_timeout_ms: int = Field(default=5000, description="Read timeout for searches in ms")
    host_down_delay_ms: int = Field(
        default=5000, description="Cool-down before retrying a host marked down, in ms"
    )
    request_workers: int = Field(default=4, description="Background request threads")
    max_connections: int = Field(default=10, description="HTTP connection pool size")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")
    scheme: Literal["https", "http"] = Field(default="https", description="URL scheme")
    headers: Dict[str, str] = Field(
        default_factory=dict, description="Extra headers sent with every request"
    )

    @field_validator("application_id", "api_key")
    @classmethod
    def validate_credentials(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must be a non-empty string")
        return v

    @field_validator("read_hosts", "write_hosts")
    @classmethod
    def validate_hosts(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is not None and len(v) == 0:
            raise ValueError("host list cannot be empty")
        return v

    @field_validator(
        "connect_timeout_ms", "read_timeout_ms", "search_timeout_ms", "host_down_delay_ms"
    )
    @classmethod
    def validate_timeouts(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Timeouts must be > 0")
        return v

    @field_validator("request_workers", "max_connections")
    @classmethod
    def validate_pool_sizes(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v


def _as_configuration_error(exc: ValidationError) -> ConfigurationError:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
        for err in exc.errors()
    )
    return ConfigurationError(f"Invalid client configuration: {problems}")


def load_client_config(**values: Any) -> ClientConfig:
    """Build a :class:`ClientConfig`, raising :class:`ConfigurationError` on bad input."""
    try:
        return ClientConfig(**values)
    except ValidationError as exc:
        raise _as_configuration_error(exc) from exc


def update_client_config(config: ClientConfig, field: str, value: Any) -> None:
    """Assign one validated field, raising :class:`ConfigurationError` on bad input."""
    try:
        setattr(config, field, value)
    except ValidationError as exc:
        raise _as_configuration_error(exc) from exc


__all__ = ["ClientConfig", "load_client_config", "update_client_config"]
