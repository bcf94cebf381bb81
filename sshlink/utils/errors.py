"""Error hierarchy for sshlink.

Every error names the step that failed so callers can decide on retry;
nothing in this package retries on its own.
"""

from enum import Enum
from typing import Optional


class SSHLinkError(Exception):
    """Base exception for all sshlink errors."""

    pass


class ConnectFailure(str, Enum):
    """Why a connection attempt failed."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    AUTHENTICATION = "authentication"
    HOST_KEY = "host_key"
    PROTOCOL = "protocol"


class ConnectError(SSHLinkError):
    """Raised when dialing, authentication or host-key verification fails."""

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
        reason: ConnectFailure = ConnectFailure.PROTOCOL,
    ):
        super().__init__(message)
        self.host = host
        self.port = port
        self.reason = reason


class SessionError(SSHLinkError):
    """Raised when a session or channel cannot be opened or started.

    Also covers misuse of a command object (double start, wait before
    start) and use of a closed connection.
    """

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step


class RunError(SSHLinkError):
    """Raised when the remote process exits non-zero or the session errors.

    The combined output collected before the failure is kept on ``output``.
    """

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        output: bytes = b"",
        exit_status: Optional[int] = None,
        exit_signal: Optional[str] = None,
    ):
        super().__init__(message)
        self.command = command
        self.output = output
        self.exit_status = exit_status
        self.exit_signal = exit_signal


class CancellationError(SSHLinkError):
    """Raised when a cancellation signal fires before the command completes."""

    def __init__(self, message: str = "Command cancelled", command: Optional[str] = None):
        super().__init__(message)
        self.command = command


class TransferError(SSHLinkError):
    """Base exception for file transfer failures."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        step: Optional[str] = None,
    ):
        super().__init__(message)
        self.path = path
        self.step = step


class LocalIOError(TransferError):
    """Raised when the local file cannot be opened, read or written."""

    pass


class RemoteIOError(TransferError):
    """Raised when the remote file cannot be created, opened, read or written."""

    pass


class DurabilityError(TransferError):
    """Raised when flushing a fully downloaded file to disk fails."""

    pass
