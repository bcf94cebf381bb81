"""Connection configuration."""

from typing import Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .auth import Auth
from .known_hosts import DEFAULT_KNOWN_HOSTS, known_hosts_callback

DEFAULT_PORT = 22
DEFAULT_PROTOCOL = "tcp"
DEFAULT_CONNECT_TIMEOUT = 20.0  # seconds

PROTOCOLS = ("tcp", "tcp4", "tcp6")


class ConnectionConfig(BaseModel):
    """Addressing, authentication and trust settings for one SSH endpoint.

    ``host_key_callback`` is required. There is no implicit "accept any key"
    fallback; use ``insecure_ignore_host_key()`` to opt out explicitly.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    user: str = Field(..., min_length=1, description="Remote user name")
    host: str = Field(..., min_length=1, description="Hostname or IP address")
    port: int = Field(DEFAULT_PORT, ge=1, le=65535)
    protocol: str = Field(DEFAULT_PROTOCOL, description="tcp, tcp4 or tcp6")
    auth: Auth
    host_key_callback: Callable = Field(..., repr=False)
    connect_timeout: float = Field(DEFAULT_CONNECT_TIMEOUT, gt=0)

    @field_validator("protocol")
    @classmethod
    def _check_protocol(cls, value: str) -> str:
        if value not in PROTOCOLS:
            raise ValueError(f"protocol must be one of {', '.join(PROTOCOLS)}")
        return value

    @property
    def address(self) -> str:
        """host:port, bracketing IPv6 literals."""
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def new_config(
    user: str,
    host: str,
    auth: Auth,
    port: int = DEFAULT_PORT,
    known_hosts: str = DEFAULT_KNOWN_HOSTS,
) -> ConnectionConfig:
    """Build a config that verifies hosts against a known_hosts file."""
    return ConnectionConfig(
        user=user,
        host=host,
        port=port,
        auth=auth,
        host_key_callback=known_hosts_callback(known_hosts),
    )
