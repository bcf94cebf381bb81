"""Authentication methods for SSH connections.

Each helper returns an ``Auth`` that knows how to render itself into
``asyncssh.connect`` keyword arguments:

- password_auth: plain password
- key_auth: private key file, optionally passphrase protected
- raw_key_auth: private key material held in memory
- agent_auth: keys offered by a running ssh-agent
"""

import os
from enum import Enum
from typing import Any, Dict, Optional

import asyncssh
from pydantic import BaseModel, Field

from sshlink.utils.errors import ConnectError, ConnectFailure


class AuthMethod(str, Enum):
    """Supported authentication methods."""

    PASSWORD = "password"
    KEY = "key"
    RAW_KEY = "raw_key"
    AGENT = "agent"


class Auth(BaseModel):
    """Credentials for one authentication method."""

    method: AuthMethod
    password: Optional[str] = Field(None, repr=False)
    key_path: Optional[str] = None
    key_data: Optional[str] = Field(None, repr=False)
    passphrase: Optional[str] = Field(None, repr=False)
    agent_path: Optional[str] = None

    def to_connect_kwargs(self) -> Dict[str, Any]:
        """Build the asyncssh.connect arguments for this method.

        Raises:
            ConnectError: If the key cannot be loaded or no agent is reachable
        """
        if self.method == AuthMethod.PASSWORD:
            return {
                "preferred_auth": "password,keyboard-interactive",
                "password": self.password,
                "client_keys": None,
                "agent_path": None,
            }

        if self.method == AuthMethod.AGENT:
            agent_path = self.agent_path or os.environ.get("SSH_AUTH_SOCK")
            if not agent_path:
                raise ConnectError(
                    "SSH agent requested but SSH_AUTH_SOCK is not set",
                    reason=ConnectFailure.AUTHENTICATION,
                )
            return {"preferred_auth": "publickey", "agent_path": agent_path}

        try:
            if self.method == AuthMethod.KEY:
                key = asyncssh.read_private_key(self.key_path, self.passphrase)
            else:
                key = asyncssh.import_private_key(self.key_data, self.passphrase)
        except (OSError, asyncssh.KeyImportError, asyncssh.KeyEncryptionError) as e:
            raise ConnectError(
                f"Failed to load private key: {e}",
                reason=ConnectFailure.AUTHENTICATION,
            ) from e

        return {"preferred_auth": "publickey", "client_keys": [key], "agent_path": None}


def password_auth(password: str) -> Auth:
    """Authenticate with a password."""
    return Auth(method=AuthMethod.PASSWORD, password=password)


def key_auth(key_path: str, passphrase: Optional[str] = None) -> Auth:
    """Authenticate with a private key file.

    Args:
        key_path: Path to the private key (``~`` is expanded)
        passphrase: Passphrase for an encrypted key
    """
    return Auth(
        method=AuthMethod.KEY,
        key_path=os.path.expanduser(key_path),
        passphrase=passphrase,
    )


def raw_key_auth(key_data: str, passphrase: Optional[str] = None) -> Auth:
    """Authenticate with private key content (PEM/OpenSSH format)."""
    return Auth(method=AuthMethod.RAW_KEY, key_data=key_data, passphrase=passphrase)


def agent_auth(agent_path: Optional[str] = None) -> Auth:
    """Authenticate with keys held by ssh-agent.

    Args:
        agent_path: Agent socket path (default: $SSH_AUTH_SOCK at connect time)
    """
    return Auth(method=AuthMethod.AGENT, agent_path=agent_path)
