"""Tests for error hierarchy."""

import pytest
from sshlink.utils.errors import (
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


class TestErrorHierarchy:
    """Tests for error class hierarchy."""

    def test_all_errors_inherit_from_base(self):
        """All errors should inherit from SSHLinkError."""
        errors = [
            ConnectError("test"),
            SessionError("test"),
            RunError("test"),
            CancellationError(),
            LocalIOError("test"),
            RemoteIOError("test"),
            DurabilityError("test"),
        ]
        for error in errors:
            assert isinstance(error, SSHLinkError)

    def test_io_errors_inherit_from_transfer_error(self):
        """File errors should inherit from TransferError."""
        for error in [LocalIOError("x"), RemoteIOError("x"), DurabilityError("x")]:
            assert isinstance(error, TransferError)

    def test_io_errors_are_distinct(self):
        """Local and remote failures should not be confused."""
        assert not isinstance(LocalIOError("x"), RemoteIOError)
        assert not isinstance(DurabilityError("x"), LocalIOError)


class TestConnectError:
    """Tests for ConnectError."""

    def test_captures_connection_details(self):
        """Should capture host, port and reason."""
        error = ConnectError(
            "Connection refused",
            host="192.168.1.100",
            port=22,
            reason=ConnectFailure.NETWORK,
        )
        assert error.host == "192.168.1.100"
        assert error.port == 22
        assert error.reason == ConnectFailure.NETWORK

    def test_default_reason(self):
        """Unclassified failures default to protocol."""
        assert ConnectError("boom").reason == ConnectFailure.PROTOCOL

    def test_reason_values(self):
        """Reasons should serialize as plain strings."""
        assert ConnectFailure.HOST_KEY.value == "host_key"
        assert ConnectFailure("authentication") == ConnectFailure.AUTHENTICATION


class TestRunError:
    """Tests for RunError."""

    def test_carries_output(self):
        """Should keep output and exit details."""
        error = RunError("failed", command="false", output=b"oops\n", exit_status=1)
        assert error.output == b"oops\n"
        assert error.exit_status == 1
        assert error.exit_signal is None
        assert error.command == "false"

    def test_defaults(self):
        """Output defaults to empty bytes."""
        assert RunError("failed").output == b""


class TestSessionError:
    """Tests for SessionError."""

    def test_captures_step(self):
        """Should name the failed step."""
        error = SessionError("Channel refused", step="open_sftp")
        assert error.step == "open_sftp"
        assert "Channel refused" in str(error)


class TestTransferError:
    """Tests for TransferError subclasses."""

    def test_captures_path_and_step(self):
        """Should capture path and step."""
        error = RemoteIOError("No such file", path="/remote/a.txt", step="create_remote")
        assert error.path == "/remote/a.txt"
        assert error.step == "create_remote"

    def test_cancellation_message(self):
        """CancellationError has a default message."""
        assert "cancelled" in str(CancellationError()).lower()
