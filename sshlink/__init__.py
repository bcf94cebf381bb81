"""sshlink - run commands and move files over SSH."""

__version__ = "0.1.0"

from sshlink.ssh import (
    Cancellation,
    Connection,
    ConnectionConfig,
    RemoteCommand,
    agent_auth,
    connect,
    key_auth,
    new_config,
    password_auth,
    raw_key_auth,
)

__all__ = [
    "__version__",
    "Cancellation",
    "Connection",
    "ConnectionConfig",
    "RemoteCommand",
    "agent_auth",
    "connect",
    "key_auth",
    "new_config",
    "password_auth",
    "raw_key_auth",
]
