# === NAVMAP v1 ===
# {
#   "module": "CrawlKit.PageFetch.settings",
#   "purpose": "Pydantic v2 settings models consumed by the page fetcher",
#   "sections": [
#     {"id": "proxysettings", "name": "ProxySettings", "anchor": "class-proxysettings", "kind": "class"},
#     {"id": "poollimits", "name": "PoolLimits", "anchor": "class-poollimits", "kind": "class"},
#     {"id": "loggingsettings", "name": "LoggingSettings", "anchor": "class-loggingsettings", "kind": "class"},
#     {"id": "fetchsettings", "name": "FetchSettings", "anchor": "class-fetchsettings", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Pydantic v2 settings models for the page fetcher.

All models are frozen and use ``extra="forbid"`` so typos in configuration
files fail loudly at load time. :class:`FetchSettings` is the single source of
truth handed to :class:`~CrawlKit.PageFetch.fetcher.PageFetcher`; it is read
only after construction. Time values are seconds, sizes are bytes.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import policy
from .auth import AuthCredential


class ProxySettings(BaseModel):
    """Forward proxy used for every outgoing request."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    host: str = Field(..., min_length=1, description="Proxy host name")
    port: int = Field(default=80, ge=1, le=65535, description="Proxy port")
    username: Optional[str] = Field(default=None, description="Proxy account name")
    password: Optional[str] = Field(default=None, repr=False, description="Proxy password")

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


class PoolLimits(BaseModel):
    """Connection pool limits derived from :class:`FetchSettings`."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    max_total_connections: int = Field(default=policy.MAX_TOTAL_CONNECTIONS, ge=1)
    max_connections_per_host: int = Field(default=policy.MAX_CONNECTIONS_PER_HOST, ge=1)
    connect_timeout: float = Field(default=policy.CONNECT_TIMEOUT, gt=0.0)
    socket_timeout: float = Field(default=policy.SOCKET_TIMEOUT, gt=0.0)


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    json_path: Optional[str] = Field(
        default=None,
        description="Optional JSON-lines log file; console logging only when unset",
    )
    max_log_size_mb: int = Field(default=100, gt=0, description="Rotate the JSON log past this size")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Normalize and validate logging level."""
        upper = str(v).upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {sorted(valid_levels)}, got '{v}'")
        return upper

    def level_int(self) -> int:
        return getattr(logging, self.level)


class FetchSettings(BaseModel):
    """Everything the page fetcher reads from configuration.

    ``trust_all_certificates`` disables certificate chain and hostname
    verification for https pages. It exists for crawling hosts with broken
    certificates and exposes the crawler to man-in-the-middle attacks; it is
    off unless explicitly enabled.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True, extra="forbid")

    socket_timeout: float = Field(
        default=policy.SOCKET_TIMEOUT,
        gt=0.0,
        le=3600.0,
        description="Read/write timeout in seconds",
    )
    connect_timeout: float = Field(
        default=policy.CONNECT_TIMEOUT,
        gt=0.0,
        le=3600.0,
        description="Connect (and pool acquisition) timeout in seconds",
    )
    politeness_delay: float = Field(
        default=policy.POLITENESS_DELAY,
        ge=0.0,
        description="Minimum spacing between request starts in seconds",
    )
    max_download_size: int = Field(
        default=policy.MAX_DOWNLOAD_SIZE,
        ge=0,
        description="Largest accepted response body in bytes",
    )
    user_agent: str = Field(default=policy.USER_AGENT, min_length=1, description="User-Agent header")
    default_headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Extra headers sent with every request",
    )
    proxy: Optional[ProxySettings] = Field(default=None, description="Forward proxy")
    include_https_pages: bool = Field(default=True, description="Register the https handler")
    trust_all_certificates: bool = Field(
        default=False,
        description="INSECURE: accept any certificate chain and skip hostname checks",
    )
    max_total_connections: int = Field(
        default=policy.MAX_TOTAL_CONNECTIONS,
        ge=1,
        le=10_000,
        description="Maximum concurrent connections across all hosts",
    )
    max_connections_per_host: int = Field(
        default=policy.MAX_CONNECTIONS_PER_HOST,
        ge=1,
        le=10_000,
        description="Maximum concurrent connections per scheme/host/port",
    )
    auth_credentials: List[AuthCredential] = Field(
        default_factory=list,
        description="Basic or form logins applied once at startup, in order",
    )
    reaper_interval: float = Field(
        default=policy.REAPER_INTERVAL,
        gt=0.0,
        description="Seconds between idle connection sweeps",
    )
    idle_connection_timeout: float = Field(
        default=policy.IDLE_CONNECTION_TIMEOUT,
        gt=0.0,
        description="Idle connections older than this many seconds are closed",
    )
    connection_max_lifetime: float = Field(
        default=policy.CONNECTION_MAX_LIFETIME,
        gt=0.0,
        description="Connections older than this many seconds are closed once idle",
    )
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("proxy", mode="before")
    @classmethod
    def drop_blank_proxy(cls, v: Any) -> Any:
        if isinstance(v, dict) and not v.get("host"):
            return None
        return v

    @model_validator(mode="after")
    def check_per_host_cap(self) -> "FetchSettings":
        if self.max_connections_per_host > self.max_total_connections:
            raise ValueError(
                "max_connections_per_host cannot exceed max_total_connections "
                f"({self.max_connections_per_host} > {self.max_total_connections})"
            )
        return self

    def pool_limits(self) -> PoolLimits:
        return PoolLimits(
            max_total_connections=self.max_total_connections,
            max_connections_per_host=self.max_connections_per_host,
            connect_timeout=self.connect_timeout,
            socket_timeout=self.socket_timeout,
        )

    def config_hash(self) -> str:
        """Stable hash of the effective settings, used in startup logs."""
        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


__all__ = [
    "FetchSettings",
    "LoggingSettings",
    "PoolLimits",
    "ProxySettings",
]
