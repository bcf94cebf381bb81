"""In-memory stand-ins for asyncssh connections, processes and SFTP."""

import asyncio
import posixpath
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Dict, List, Optional, Set

import asyncssh
import pytest

from sshlink.ssh.auth import password_auth
from sshlink.ssh.config import ConnectionConfig
from sshlink.ssh.connection import Connection
from sshlink.ssh.known_hosts import insecure_ignore_host_key


@dataclass
class Script:
    """How a fake remote process behaves."""

    stdout: bytes = b""
    stderr: bytes = b""
    exit_status: Optional[int] = 0
    exit_signal: Optional[str] = None
    hang: bool = False
    ack_close: bool = True
    fail_with: Optional[Exception] = None


class FakeStdin:
    def __init__(self):
        self.data = b""
        self.eof = False

    def write(self, data: bytes) -> None:
        self.data += data

    def write_eof(self) -> None:
        self.eof = True


class FakeProcess:
    def __init__(self, command: str, script: Script, kwargs: dict):
        self.command = command
        self.script = script
        self.kwargs = kwargs
        self.stdin = FakeStdin()
        self.signals: List[str] = []
        self.closed = False
        self._exited = asyncio.Event()

    async def wait(self, check: bool = False):
        if self.script.fail_with is not None:
            raise self.script.fail_with
        if self.script.hang:
            await self._exited.wait()
            return SimpleNamespace(exit_status=-1, exit_signal=("KILL", False, "", ""), stdout=b"", stderr=b"")

        stdout, stderr = self.script.stdout, self.script.stderr
        if self.kwargs.get("stderr") == asyncssh.STDOUT:
            stdout, stderr = stdout + stderr, b""
        signal = (self.script.exit_signal, False, "", "") if self.script.exit_signal else None
        return SimpleNamespace(
            exit_status=self.script.exit_status,
            exit_signal=signal,
            stdout=stdout if self.kwargs.get("stdout") == asyncssh.PIPE else None,
            stderr=stderr,
        )

    def collect_output(self):
        stdout, stderr = self.script.stdout, self.script.stderr
        if self.kwargs.get("stderr") == asyncssh.STDOUT:
            stdout, stderr = stdout + stderr, b""
        return stdout, stderr

    def send_signal(self, signal: str) -> None:
        self.signals.append(signal)

    def close(self) -> None:
        self.closed = True
        self._exited.set()

    async def wait_closed(self) -> None:
        if not self.script.ack_close:
            await asyncio.Event().wait()


class FakeSFTPFile:
    def __init__(self, sftp: "FakeSFTPClient", path: str, mode: str):
        self.sftp = sftp
        self.path = path
        self.mode = mode
        self.closed = False
        self._buffer = b""
        self._offset = 0
        if "w" in mode:
            sftp.files[path] = b""

    async def read(self, size: int) -> bytes:
        data = self.sftp.files[self.path]
        if self.sftp.fail_read_after is not None and self._offset >= self.sftp.fail_read_after:
            raise asyncssh.SFTPFailure("Connection lost")
        chunk = data[self._offset:self._offset + size]
        self._offset += len(chunk)
        return chunk

    async def write(self, data: bytes) -> None:
        if self.sftp.fail_write_after is not None and len(self._buffer) >= self.sftp.fail_write_after:
            raise asyncssh.SFTPFailure("Disk quota exceeded")
        self._buffer += data
        self.sftp.files[self.path] = self._buffer

    async def close(self) -> None:
        self.closed = True
        if self.sftp.fail_close:
            raise asyncssh.SFTPFailure("Close failed")


@dataclass
class FakeSFTPClient:
    files: Dict[str, bytes] = field(default_factory=dict)
    dirs: Set[str] = field(default_factory=lambda: {"/", "/tmp", "/remote"})
    fail_read_after: Optional[int] = None
    fail_write_after: Optional[int] = None
    fail_close: bool = False
    opened: List[FakeSFTPFile] = field(default_factory=list)
    exited: bool = False

    async def open(self, path: str, mode: str = "r") -> FakeSFTPFile:
        if "w" in mode:
            if posixpath.dirname(path) not in self.dirs:
                raise asyncssh.SFTPNoSuchFile(f"No such file: {path}")
        elif path not in self.files:
            raise asyncssh.SFTPNoSuchFile(f"No such file: {path}")
        handle = FakeSFTPFile(self, path, mode)
        self.opened.append(handle)
        return handle

    def exit(self) -> None:
        self.exited = True

    async def wait_closed(self) -> None:
        pass


class FakeSSHConnection:
    """Stands in for asyncssh.SSHClientConnection."""

    def __init__(self):
        self.scripts: Dict[str, Script] = {}
        self.processes: List[FakeProcess] = []
        self.sftp = FakeSFTPClient()
        self.sftp_sessions = 0
        self.fail_session_open = False
        self.open_delay: Optional[float] = None
        self.finish_open_on_cancel = False
        self.fail_sftp_open = False
        self.host_key = None
        self.closed = False

    def script(self, command: str, **kwargs) -> Script:
        self.scripts[command] = Script(**kwargs)
        return self.scripts[command]

    async def create_process(self, command: str, **kwargs) -> FakeProcess:
        if self.fail_session_open:
            raise asyncssh.ChannelOpenError(2, "Session refused")
        if self.open_delay is not None:
            try:
                await asyncio.sleep(self.open_delay)
            except asyncio.CancelledError:
                # Server answered the channel open anyway
                if not self.finish_open_on_cancel:
                    raise
        process = FakeProcess(command, self.scripts.get(command, Script()), kwargs)
        self.processes.append(process)
        return process

    async def start_sftp_client(self) -> FakeSFTPClient:
        if self.fail_sftp_open:
            raise asyncssh.ChannelOpenError(1, "Subsystem request failed")
        self.sftp_sessions += 1
        self.sftp.exited = False
        return self.sftp

    def get_server_host_key(self):
        return self.host_key

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass


def make_config(**overrides) -> ConnectionConfig:
    values = dict(
        user="deploy",
        host="build01.example.com",
        auth=password_auth("hunter2"),
        host_key_callback=insecure_ignore_host_key(),
    )
    values.update(overrides)
    return ConnectionConfig(**values)


@pytest.fixture
def config_factory():
    return make_config


@pytest.fixture
def fake_ssh() -> FakeSSHConnection:
    return FakeSSHConnection()


@pytest.fixture
def connection(fake_ssh) -> Connection:
    return Connection(fake_ssh, make_config())


@pytest.fixture
def host_key():
    return asyncssh.generate_private_key("ssh-ed25519").convert_to_public()
