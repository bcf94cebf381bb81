"""File transfer over the SFTP subsystem.

Each transfer opens its own SFTP channel and streams the file in fixed-size
blocks, one direction per call. Integrity is whatever SFTP's per-request
acknowledgements give; no checksums are compared.

A failed upload may leave a truncated remote file. A failed download
leaves a partial local file and skips the fsync.
"""

import inspect
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Type, Union

import asyncssh

from sshlink.utils.errors import (
    DurabilityError,
    LocalIOError,
    RemoteIOError,
    SessionError,
    TransferError,
)

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 32 * 1024

PathLike = Union[str, "os.PathLike[str]"]


@dataclass
class TransferResult:
    """Result of a completed file transfer."""

    direction: str  # "upload" or "download"
    local_path: str
    remote_path: str
    bytes_transferred: int


@asynccontextmanager
async def open_sftp(conn: asyncssh.SSHClientConnection) -> AsyncIterator[asyncssh.SFTPClient]:
    """Open an SFTP channel and close it on exit.

    Raises:
        SessionError: If the subsystem channel cannot be opened
    """
    try:
        sftp = await conn.start_sftp_client()
    except (asyncssh.Error, asyncssh.ChannelOpenError, OSError) as e:
        raise SessionError(f"Failed to open SFTP channel: {e}", step="open_sftp") from e
    logger.debug("SFTP channel opened")

    try:
        yield sftp
    finally:
        try:
            sftp.exit()
            await sftp.wait_closed()
        except (asyncssh.Error, OSError) as e:
            logger.warning(f"Error closing SFTP channel: {e}")
        else:
            logger.debug("SFTP channel closed")


@asynccontextmanager
async def _closing(
    close: Callable[[], object],
    error_cls: Type[TransferError],
    path: str,
    what: str,
) -> AsyncIterator[None]:
    # On a failure path close errors are logged so the primary error
    # surfaces; on success they are raised.
    try:
        yield
    except BaseException:
        try:
            result = close()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Error closing {what} {path} after failure: {e}")
        raise

    try:
        result = close()
        if inspect.isawaitable(result):
            await result
    except (asyncssh.Error, OSError) as e:
        raise error_cls(f"Failed to close {what} {path}: {e}", path=path, step="close") from e


async def upload(
    conn: asyncssh.SSHClientConnection,
    local_path: PathLike,
    remote_path: str,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> TransferResult:
    """Copy a local file to the remote host, creating or truncating it.

    Raises:
        LocalIOError: If the local file cannot be opened or read
        SessionError: If the SFTP channel cannot be opened
        RemoteIOError: If the remote file cannot be created or written
    """
    local_path = os.fspath(local_path)
    try:
        local = open(local_path, "rb")
    except OSError as e:
        raise LocalIOError(
            f"Cannot open local file {local_path}: {e}",
            path=local_path,
            step="open_local",
        ) from e

    total = 0
    async with _closing(local.close, LocalIOError, local_path, "local file"):
        async with open_sftp(conn) as sftp:
            try:
                remote = await sftp.open(remote_path, "wb")
            except (asyncssh.Error, OSError) as e:
                raise RemoteIOError(
                    f"Cannot create remote file {remote_path}: {e}",
                    path=remote_path,
                    step="create_remote",
                ) from e

            async with _closing(remote.close, RemoteIOError, remote_path, "remote file"):
                while True:
                    try:
                        data = local.read(block_size)
                    except OSError as e:
                        raise LocalIOError(
                            f"Read failed on {local_path} after {total} bytes: {e}",
                            path=local_path,
                            step="read",
                        ) from e
                    if not data:
                        break
                    try:
                        await remote.write(data)
                    except (asyncssh.Error, OSError) as e:
                        raise RemoteIOError(
                            f"Write failed on {remote_path} after {total} bytes: {e}",
                            path=remote_path,
                            step="write",
                        ) from e
                    total += len(data)

    logger.debug(f"Uploaded {local_path} -> {remote_path} ({total} bytes)")
    return TransferResult(
        direction="upload",
        local_path=local_path,
        remote_path=remote_path,
        bytes_transferred=total,
    )


async def download(
    conn: asyncssh.SSHClientConnection,
    remote_path: str,
    local_path: PathLike,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> TransferResult:
    """Copy a remote file to a local path and fsync it.

    The local file is created before the remote one is opened, so a missing
    remote file still leaves an empty local file behind.

    Raises:
        LocalIOError: If the local file cannot be created or written
        SessionError: If the SFTP channel cannot be opened
        RemoteIOError: If the remote file cannot be opened or read
        DurabilityError: If the final flush to disk fails
    """
    local_path = os.fspath(local_path)
    try:
        local = open(local_path, "wb")
    except OSError as e:
        raise LocalIOError(
            f"Cannot create local file {local_path}: {e}",
            path=local_path,
            step="create_local",
        ) from e

    total = 0
    async with _closing(local.close, LocalIOError, local_path, "local file"):
        async with open_sftp(conn) as sftp:
            try:
                remote = await sftp.open(remote_path, "rb")
            except (asyncssh.Error, OSError) as e:
                raise RemoteIOError(
                    f"Cannot open remote file {remote_path}: {e}",
                    path=remote_path,
                    step="open_remote",
                ) from e

            async with _closing(remote.close, RemoteIOError, remote_path, "remote file"):
                while True:
                    try:
                        data = await remote.read(block_size)
                    except (asyncssh.Error, OSError) as e:
                        raise RemoteIOError(
                            f"Read failed on {remote_path} after {total} bytes: {e}",
                            path=remote_path,
                            step="read",
                        ) from e
                    if not data:
                        break
                    try:
                        local.write(data)
                    except OSError as e:
                        raise LocalIOError(
                            f"Write failed on {local_path} after {total} bytes: {e}",
                            path=local_path,
                            step="write",
                        ) from e
                    total += len(data)

        # Only reached when the copy completed
        try:
            local.flush()
            os.fsync(local.fileno())
        except OSError as e:
            raise DurabilityError(
                f"Failed to flush {local_path} to disk: {e}",
                path=local_path,
                step="fsync",
            ) from e

    logger.debug(f"Downloaded {remote_path} -> {local_path} ({total} bytes)")
    return TransferResult(
        direction="download",
        local_path=local_path,
        remote_path=remote_path,
        bytes_transferred=total,
    )
