"""Utility modules for sshlink."""

from .errors import (
    SSHLinkError,
    ConnectFailure,
    ConnectError,
    SessionError,
    RunError,
    CancellationError,
    TransferError,
    LocalIOError,
    RemoteIOError,
    DurabilityError,
)

__all__ = [
    "SSHLinkError",
    "ConnectFailure",
    "ConnectError",
    "SessionError",
    "RunError",
    "CancellationError",
    "TransferError",
    "LocalIOError",
    "RemoteIOError",
    "DurabilityError",
]
