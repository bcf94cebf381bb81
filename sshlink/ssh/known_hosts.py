"""Host-key trust verification.

A trust callback has the signature of ``asyncssh.SSHClient.validate_host_public_key``:
``callback(host, addr, port, key) -> bool``. It runs during the handshake,
before any credentials are sent.
"""

import logging
import os
from typing import Callable

import asyncssh

logger = logging.getLogger(__name__)

HostKeyCallback = Callable[[str, str, int, asyncssh.SSHKey], bool]

DEFAULT_KNOWN_HOSTS = os.path.join("~", ".ssh", "known_hosts")


def known_hosts_callback(path: str = DEFAULT_KNOWN_HOSTS) -> HostKeyCallback:
    """Trust the keys listed in an OpenSSH known_hosts file.

    The file is read at verification time, so entries added with
    ``add_known_host`` are picked up by later connections. A missing file
    trusts nothing.

    Args:
        path: known_hosts file (``~`` is expanded)
    """
    path = os.path.expanduser(path)

    def verify(host: str, addr: str, port: int, key: asyncssh.SSHKey) -> bool:
        if not os.path.exists(path):
            logger.debug(f"known_hosts file {path} does not exist")
            return False

        known_hosts = asyncssh.read_known_hosts(path)
        trusted, _, revoked, *_ = known_hosts.match(host, addr, port)

        public_data = key.public_data
        if any(k.public_data == public_data for k in revoked):
            logger.warning(f"Host key for {host}:{port} is revoked in {path}")
            return False
        return any(k.public_data == public_data for k in trusted)

    return verify


def insecure_ignore_host_key() -> HostKeyCallback:
    """Accept any host key.

    Only for throwaway hosts; the remote identity is not checked at all.
    """

    def verify(host: str, addr: str, port: int, key: asyncssh.SSHKey) -> bool:
        logger.warning(
            f"Accepting unverified {key.get_algorithm()} host key for {host}:{port}"
        )
        return True

    return verify


def known_hosts_pattern(host: str, port: int) -> str:
    """Return the known_hosts host pattern for host and port."""
    if port == 22:
        return host
    return f"[{host}]:{port}"


def add_known_host(
    host: str,
    port: int,
    key: asyncssh.SSHKey,
    path: str = DEFAULT_KNOWN_HOSTS,
) -> str:
    """Append a host key to a known_hosts file.

    Creates the file (0600) and its directory (0700) when missing.

    Returns:
        The line that was written
    """
    path = os.path.expanduser(path)
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, mode=0o700, exist_ok=True)

    key_text = key.export_public_key("openssh").decode("ascii").strip()
    line = f"{known_hosts_pattern(host, port)} {key_text}\n"

    fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
    with os.fdopen(fd, "a") as f:
        f.write(line)

    logger.info(f"Added {key.get_algorithm()} host key for {host}:{port} to {path}")
    return line
