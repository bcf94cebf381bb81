"""SSH connection, command execution and file transfer."""

from .auth import Auth, AuthMethod, password_auth, key_auth, raw_key_auth, agent_auth
from .cancel import Cancellation
from .command import CommandResult, RemoteCommand
from .config import ConnectionConfig, new_config
from .connection import Connection, connect
from .known_hosts import add_known_host, insecure_ignore_host_key, known_hosts_callback
from .transfer import TransferResult

__all__ = [
    "Auth",
    "AuthMethod",
    "password_auth",
    "key_auth",
    "raw_key_auth",
    "agent_auth",
    "Cancellation",
    "CommandResult",
    "RemoteCommand",
    "ConnectionConfig",
    "new_config",
    "Connection",
    "connect",
    "add_known_host",
    "insecure_ignore_host_key",
    "known_hosts_callback",
    "TransferResult",
]
