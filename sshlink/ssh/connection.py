"""SSH connection: dialing, trust verification and per-operation sessions.

A Connection is established once and shared; every command or transfer
opens its own session or SFTP channel on it, so independent operations can
run concurrently as separate tasks without any locking here.
"""

import asyncio
import logging
import socket
from typing import Optional

import asyncssh

from sshlink.utils.errors import ConnectError, ConnectFailure, SessionError
from .cancel import Cancellation
from .command import RemoteCommand
from .config import ConnectionConfig
from .known_hosts import HostKeyCallback
from .transfer import TransferResult, PathLike, download, open_sftp, upload

logger = logging.getLogger(__name__)

_FAMILIES = {
    "tcp": socket.AF_UNSPEC,
    "tcp4": socket.AF_INET,
    "tcp6": socket.AF_INET6,
}

# Empty trust lists make asyncssh defer every host key to the client's
# validate_host_public_key.
_DEFER_TO_CALLBACK = ([], [], [])


class _VerifyingClient(asyncssh.SSHClient):
    """Routes host-key validation to a trust callback."""

    def __init__(self, callback: HostKeyCallback):
        self._callback = callback

    def validate_host_public_key(self, host, addr, port, key) -> bool:
        try:
            return bool(self._callback(host, addr, port, key))
        except Exception as e:
            logger.error(f"Host key callback failed for {host}:{port}: {e}")
            return False


async def connect(config: ConnectionConfig) -> "Connection":
    """Dial, verify the host key and authenticate.

    Raises:
        ConnectError: On network failure, timeout, host-key rejection,
            authentication rejection or protocol failure. ``reason`` tells
            them apart.
    """
    try:
        auth_kwargs = config.auth.to_connect_kwargs()
    except ConnectError as e:
        e.host = config.host
        e.port = config.port
        raise

    logger.debug(f"Connecting to {config.user}@{config.address} over {config.protocol}")
    try:
        conn = await asyncio.wait_for(
            asyncssh.connect(
                config.host,
                port=config.port,
                username=config.user,
                family=_FAMILIES[config.protocol],
                known_hosts=_DEFER_TO_CALLBACK,
                client_factory=lambda: _VerifyingClient(config.host_key_callback),
                config=None,
                **auth_kwargs,
            ),
            timeout=config.connect_timeout,
        )
    except asyncio.TimeoutError as e:
        raise ConnectError(
            f"SSH connection timeout ({config.connect_timeout}s)",
            host=config.host,
            port=config.port,
            reason=ConnectFailure.TIMEOUT,
        ) from e
    except asyncssh.HostKeyNotVerifiable as e:
        raise ConnectError(
            f"Host key verification failed: {e}",
            host=config.host,
            port=config.port,
            reason=ConnectFailure.HOST_KEY,
        ) from e
    except asyncssh.PermissionDenied as e:
        raise ConnectError(
            f"Authentication failed for {config.user}: {e}",
            host=config.host,
            port=config.port,
            reason=ConnectFailure.AUTHENTICATION,
        ) from e
    except asyncssh.Error as e:
        raise ConnectError(
            f"SSH connection failed: {e}",
            host=config.host,
            port=config.port,
            reason=ConnectFailure.PROTOCOL,
        ) from e
    except OSError as e:
        raise ConnectError(
            f"SSH connection error: {e}",
            host=config.host,
            port=config.port,
            reason=ConnectFailure.NETWORK,
        ) from e

    logger.info(f"SSH connected to {config.user}@{config.address}")
    return Connection(conn, config)


class Connection:
    """An authenticated SSH connection.

    Usage:
        async with await connect(config) as conn:
            output = await conn.run("uname -a")
            await conn.upload("build.tgz", "/tmp/build.tgz")
    """

    def __init__(self, conn: asyncssh.SSHClientConnection, config: ConnectionConfig):
        self._conn: Optional[asyncssh.SSHClientConnection] = conn
        self.config = config

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def closed(self) -> bool:
        return self._conn is None

    @property
    def server_host_key(self) -> Optional[asyncssh.SSHKey]:
        """Host key the server presented during the handshake."""
        return self._transport().get_server_host_key()

    def _transport(self) -> asyncssh.SSHClientConnection:
        if self._conn is None:
            raise SessionError(f"Connection to {self.config.address} is closed", step="open_session")
        return self._conn

    async def close(self) -> None:
        """Close the transport and every channel still open on it."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        conn.close()
        await conn.wait_closed()
        logger.info(f"SSH disconnected from {self.config.address}")

    async def run(self, command_line: str) -> bytes:
        """Run a shell command line and return its combined output.

        The command line is interpreted by the remote shell verbatim; no
        quoting is applied.

        Raises:
            SessionError: If the session cannot be opened
            RunError: On non-zero exit; ``output`` holds what was written
        """
        return await self.command(command_line).combined_output()

    async def run_with_cancellation(self, cancellation: Cancellation, command_line: str) -> bytes:
        """Like run(), but gives up with CancellationError when signalled."""
        return await self.command_with_cancellation(cancellation, command_line).combined_output()

    def command(self, path: str, *args: str, env=None) -> RemoteCommand:
        """Build a command without starting it."""
        return RemoteCommand(self._transport(), path, args, env=env)

    def command_with_cancellation(
        self,
        cancellation: Cancellation,
        path: str,
        *args: str,
        env=None,
    ) -> RemoteCommand:
        """Build a command that is terminated when ``cancellation`` fires."""
        return RemoteCommand(self._transport(), path, args, env=env, cancellation=cancellation)

    def open_sftp(self):
        """Open an SFTP channel for direct file-system access.

        Usage:
            async with conn.open_sftp() as sftp:
                names = await sftp.listdir("/var/log")
        """
        return open_sftp(self._transport())

    async def upload(self, local_path: PathLike, remote_path: str) -> TransferResult:
        """Copy a local file to ``remote_path``."""
        return await upload(self._transport(), local_path, remote_path)

    async def download(self, remote_path: str, local_path: PathLike) -> TransferResult:
        """Copy ``remote_path`` to a local file and fsync it."""
        return await download(self._transport(), remote_path, local_path)
