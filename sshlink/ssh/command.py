"""Remote command execution.

A RemoteCommand mirrors a local subprocess: build it, optionally wire
stdin/stdout/stderr and environment, then start() and wait(), or use one of
the run()/output()/combined_output() shortcuts. Each command owns one
session and releases it on every exit path.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, TypeVar

import asyncssh

from sshlink.utils.errors import CancellationError, RunError, SessionError
from .cancel import Cancellation

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Upper bound on waiting for the server to acknowledge a session close
CANCEL_GRACE_PERIOD = 2.0


@dataclass
class CommandResult:
    """Result of a completed remote command."""

    command: str
    exit_status: Optional[int]
    exit_signal: Optional[str]
    stdout: bytes
    stderr: bytes

    @property
    def success(self) -> bool:
        return self.exit_status == 0


class RemoteCommand:
    """A command bound to a single SSH session.

    ``stdin`` may be bytes (sent, then EOF), ``None`` (immediate EOF) or any
    redirect source asyncssh accepts (file name, file object, stream).
    ``stdout``/``stderr`` default to ``asyncssh.PIPE`` and may be replaced
    with any redirect target asyncssh accepts.

    Usage:
        cmd = conn.command("tar", "czf", "-", "/etc")
        cmd.stdout = open("etc.tgz", "wb")
        await cmd.run()
    """

    def __init__(
        self,
        conn: asyncssh.SSHClientConnection,
        path: str,
        args: Iterable[str] = (),
        env: Optional[Dict[str, str]] = None,
        cancellation: Optional[Cancellation] = None,
    ):
        self._conn = conn
        self.path = path
        self.args = list(args)
        self.env: Dict[str, str] = dict(env or {})
        self.stdin: Any = None
        self.stdout: Any = asyncssh.PIPE
        self.stderr: Any = asyncssh.PIPE
        self.cancellation = cancellation
        self._process: Optional[asyncssh.SSHClientProcess] = None
        self._started = False
        self._waited = False

    async def __aenter__(self) -> "RemoteCommand":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def command_line(self) -> str:
        """Path and arguments joined by spaces, passed to the remote shell as-is."""
        return " ".join([self.path, *self.args])

    def set_env(self, name: str, value: str) -> None:
        """Set an environment variable for the remote process.

        Servers commonly restrict which variables a client may set
        (sshd's AcceptEnv), so unlisted names may be ignored.
        """
        self.env[name] = value

    async def start(self) -> None:
        """Open the session and start the remote process.

        Raises:
            SessionError: If already started or the session cannot be opened
            CancellationError: If the cancellation signal fires before the
                session is open
        """
        if self._started:
            raise SessionError(f"Command already started: {self.command_line}", step="start")
        if self.cancellation is not None and self.cancellation.cancelled:
            raise CancellationError(
                f"Command cancelled before start: {self.cancellation.reason}",
                command=self.command_line,
            )
        self._started = True

        kwargs: Dict[str, Any] = {
            "stdout": self.stdout,
            "stderr": self.stderr,
            "encoding": None,
        }
        if self.env:
            kwargs["env"] = self.env
        if self.stdin is not None and not isinstance(self.stdin, bytes):
            kwargs["stdin"] = self.stdin

        try:
            self._process = await self._until_cancelled(
                self._conn.create_process(self.command_line, **kwargs),
                on_late_result=_close_abandoned,
            )
        except (asyncssh.Error, asyncssh.ChannelOpenError, OSError) as e:
            raise SessionError(
                f"Failed to start session for {self.command_line!r}: {e}",
                step="start",
            ) from e
        logger.debug(f"Session opened: {self.command_line}")

        if "stdin" in kwargs:
            return

        try:
            if self.stdin:
                self._process.stdin.write(self.stdin)
            self._process.stdin.write_eof()
        except (asyncssh.Error, OSError) as e:
            await self.close()
            raise SessionError(f"Failed to write stdin: {e}", step="stdin") from e

    async def wait(self) -> CommandResult:
        """Wait for the remote process to exit and release the session.

        Raises:
            SessionError: If the command was not started or already waited on
            RunError: On non-zero exit, death by signal or session failure
            CancellationError: If the cancellation signal fires first
        """
        if not self._started:
            raise SessionError(f"Command not started: {self.command_line}", step="wait")
        if self._waited:
            raise SessionError(f"Wait already called: {self.command_line}", step="wait")
        if self._process is None:
            raise SessionError(f"Session is not open: {self.command_line}", step="wait")
        self._waited = True

        try:
            completed = await self._until_cancelled(self._process.wait(check=False))
        except (asyncssh.Error, OSError) as e:
            raise RunError(
                f"Session failed while running {self.command_line!r}: {e}",
                command=self.command_line,
                output=self._buffered_output(),
            ) from e
        finally:
            await self.close()

        exit_signal = completed.exit_signal[0] if completed.exit_signal else None
        result = CommandResult(
            command=self.command_line,
            exit_status=completed.exit_status,
            exit_signal=exit_signal,
            stdout=completed.stdout or b"",
            stderr=completed.stderr or b"",
        )
        if not result.success:
            if exit_signal:
                message = f"Process killed by signal {exit_signal}: {self.command_line}"
            else:
                message = f"Process exited with status {result.exit_status}: {self.command_line}"
            raise RunError(
                message,
                command=self.command_line,
                output=result.stdout + result.stderr,
                exit_status=result.exit_status,
                exit_signal=exit_signal,
            )
        return result

    async def run(self) -> CommandResult:
        """Start the command and wait for it."""
        await self.start()
        return await self.wait()

    async def output(self) -> bytes:
        """Run the command and return its standard output."""
        if self.stdout != asyncssh.PIPE:
            raise SessionError("stdout already redirected", step="output")
        result = await self.run()
        return result.stdout

    async def combined_output(self) -> bytes:
        """Run the command and return stdout and stderr as one stream."""
        if self.stdout != asyncssh.PIPE or self.stderr != asyncssh.PIPE:
            raise SessionError("stdout or stderr already redirected", step="combined_output")
        self.stderr = asyncssh.STDOUT
        result = await self.run()
        return result.stdout

    async def close(self) -> None:
        """Release the session. Safe to call more than once."""
        process, self._process = self._process, None
        if process is None:
            return

        process.close()
        try:
            await asyncio.wait_for(process.wait_closed(), timeout=CANCEL_GRACE_PERIOD)
        except asyncio.TimeoutError:
            logger.warning(
                f"Session close not acknowledged within {CANCEL_GRACE_PERIOD}s: "
                f"{self.command_line}"
            )
        except (asyncssh.Error, OSError) as e:
            logger.warning(f"Error closing session for {self.command_line!r}: {e}")
        else:
            logger.debug(f"Session closed: {self.command_line}")

    def _buffered_output(self) -> bytes:
        """Output the session received before it failed."""
        if self._process is None:
            return b""
        try:
            stdout, stderr = self._process.collect_output()
        except (asyncssh.Error, OSError) as e:
            logger.debug(f"No buffered output for {self.command_line!r}: {e}")
            return b""
        output = b""
        for data in (stdout, stderr):
            if isinstance(data, bytes):
                output += data
        return output

    async def _until_cancelled(
        self,
        aw: Awaitable[T],
        on_late_result: Optional[Callable[[T], None]] = None,
    ) -> T:
        """Await ``aw`` unless the cancellation signal fires first.

        ``on_late_result`` receives the result of abandoned work that
        completes anyway.
        """
        if self.cancellation is None:
            return await aw

        work = asyncio.ensure_future(aw)
        fired = asyncio.ensure_future(self.cancellation.wait())
        try:
            await asyncio.wait({work, fired}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            _abandon(work, on_late_result)
            fired.cancel()
            raise
        fired.cancel()

        # Work finished first: cancellation is a no-op
        if work.done():
            return work.result()

        _abandon(work, on_late_result)
        logger.info(f"Cancelling {self.command_line!r}: {self.cancellation.reason}")
        self._terminate()
        raise CancellationError(
            f"Command cancelled: {self.cancellation.reason}",
            command=self.command_line,
        )

    def _terminate(self) -> None:
        if self._process is None:
            return
        try:
            self._process.send_signal("KILL")
        except (asyncssh.Error, OSError) as e:
            logger.debug(f"Signal request failed, closing session instead: {e}")


def _abandon(work: "asyncio.Future[T]", on_late_result: Optional[Callable[[T], None]]) -> None:
    work.cancel()
    if on_late_result is None:
        return

    def _done(future: "asyncio.Future[T]") -> None:
        if future.cancelled() or future.exception() is not None:
            return
        on_late_result(future.result())

    work.add_done_callback(_done)


def _close_abandoned(process: asyncssh.SSHClientProcess) -> None:
    # Session opened after the caller gave up on it
    logger.debug("Closing session that opened after cancellation")
    process.close()
