"""Click CLI for sshlink.

Commands:
- run: Run a command and print its combined output
- upload: Copy a local file to the remote host
- download: Copy a remote file to the local host
- trust: Record the server's host key in known_hosts
"""

import asyncio
import getpass
import logging
import sys
from typing import Optional, Tuple

import click
from rich.console import Console

from sshlink import __version__
from sshlink.diagnostics.logger import setup_logging
from sshlink.ssh import (
    Cancellation,
    ConnectionConfig,
    agent_auth,
    connect,
    insecure_ignore_host_key,
    key_auth,
    known_hosts_callback,
    password_auth,
)
from sshlink.ssh.config import DEFAULT_CONNECT_TIMEOUT, DEFAULT_PORT
from sshlink.ssh.known_hosts import DEFAULT_KNOWN_HOSTS, add_known_host
from sshlink.utils.errors import RunError, SSHLinkError

console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


def split_target(target: str, default_user: Optional[str]) -> Tuple[str, str]:
    """Split ``user@host`` into (user, host), falling back to default_user."""
    if "@" in target:
        user, host = target.rsplit("@", 1)
        return user, host
    return default_user or getpass.getuser(), target


def build_config(obj: dict, target: str, host_key_callback=None) -> ConnectionConfig:
    """Build a ConnectionConfig from the global CLI options."""
    user, host = split_target(target, obj["user"])

    if obj["password"] is not None:
        auth = password_auth(obj["password"])
    elif obj["key"]:
        auth = key_auth(obj["key"], obj["passphrase"])
    else:
        auth = agent_auth()

    if host_key_callback is None:
        if obj["insecure"]:
            host_key_callback = insecure_ignore_host_key()
        else:
            host_key_callback = known_hosts_callback(obj["known_hosts"])

    return ConnectionConfig(
        user=user,
        host=host,
        port=obj["port"],
        protocol=obj["protocol"],
        auth=auth,
        host_key_callback=host_key_callback,
        connect_timeout=obj["timeout"],
    )


@click.group()
@click.version_option(version=__version__)
@click.option("--user", "-u", envvar="SSHLINK_USER", help="Remote user (default: local user)")
@click.option("--port", "-p", envvar="SSHLINK_PORT", type=int, default=DEFAULT_PORT, help="SSH port")
@click.option(
    "--protocol",
    type=click.Choice(["tcp", "tcp4", "tcp6"]),
    default="tcp",
    help="Address family to dial",
)
@click.option("--key", "-i", envvar="SSHLINK_KEY", help="Private key file")
@click.option("--passphrase", envvar="SSHLINK_PASSPHRASE", help="Private key passphrase")
@click.option("--password", envvar="SSHLINK_PASSWORD", help="Password authentication")
@click.option(
    "--known-hosts",
    envvar="SSHLINK_KNOWN_HOSTS",
    default=DEFAULT_KNOWN_HOSTS,
    help="known_hosts file used to verify the server",
)
@click.option("--insecure", is_flag=True, help="Skip host key verification")
@click.option(
    "--timeout",
    type=float,
    default=DEFAULT_CONNECT_TIMEOUT,
    help="Connect timeout in seconds",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--debug-transport", is_flag=True, help="Enable verbose asyncssh logging")
@click.pass_context
def cli(
    ctx,
    user: Optional[str],
    port: int,
    protocol: str,
    key: Optional[str],
    passphrase: Optional[str],
    password: Optional[str],
    known_hosts: str,
    insecure: bool,
    timeout: float,
    debug: bool,
    debug_transport: bool,
):
    """sshlink - run commands and move files over SSH."""
    ctx.ensure_object(dict)
    ctx.obj.update(
        user=user,
        port=port,
        protocol=protocol,
        key=key,
        passphrase=passphrase,
        password=password,
        known_hosts=known_hosts,
        insecure=insecure,
        timeout=timeout,
    )

    level = "DEBUG" if debug else "WARNING"
    setup_logging(level=level, debug_transport=debug_transport)


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("target")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option("--cancel-after", type=float, help="Cancel the command after N seconds")
@click.pass_context
def run(ctx, target: str, command: Tuple[str, ...], cancel_after: Optional[float]):
    """Run COMMAND on TARGET ([user@]host) and print its combined output."""

    async def _run() -> int:
        config = build_config(ctx.obj, target)
        async with await connect(config) as conn:
            if cancel_after is None:
                cmd = conn.command(*command)
            else:
                cmd = conn.command_with_cancellation(Cancellation(timeout=cancel_after), *command)
            try:
                output = await cmd.combined_output()
            except RunError as e:
                sys.stdout.buffer.write(e.output)
                sys.stdout.buffer.flush()
                err_console.print(f"[red]{e}[/]")
                return e.exit_status if e.exit_status and e.exit_status > 0 else 1
            sys.stdout.buffer.write(output)
            sys.stdout.buffer.flush()
            return 0

    try:
        code = run_async(_run())
    except SSHLinkError as e:
        err_console.print(f"[red]Error:[/] {e}")
        sys.exit(1)
    sys.exit(code)


@cli.command()
@click.argument("target")
@click.argument("local_path", type=click.Path(dir_okay=False))
@click.argument("remote_path")
@click.pass_context
def upload(ctx, target: str, local_path: str, remote_path: str):
    """Copy LOCAL_PATH to REMOTE_PATH on TARGET."""

    async def _upload():
        config = build_config(ctx.obj, target)
        async with await connect(config) as conn:
            return await conn.upload(local_path, remote_path)

    try:
        result = run_async(_upload())
    except SSHLinkError as e:
        err_console.print(f"[red]Upload failed:[/] {e}")
        sys.exit(1)
    console.print(
        f"[green]Uploaded[/] {result.local_path} -> {target}:{result.remote_path} "
        f"({result.bytes_transferred} bytes)"
    )


@cli.command()
@click.argument("target")
@click.argument("remote_path")
@click.argument("local_path", type=click.Path(dir_okay=False))
@click.pass_context
def download(ctx, target: str, remote_path: str, local_path: str):
    """Copy REMOTE_PATH on TARGET to LOCAL_PATH."""

    async def _download():
        config = build_config(ctx.obj, target)
        async with await connect(config) as conn:
            return await conn.download(remote_path, local_path)

    try:
        result = run_async(_download())
    except SSHLinkError as e:
        err_console.print(f"[red]Download failed:[/] {e}")
        sys.exit(1)
    console.print(
        f"[green]Downloaded[/] {target}:{result.remote_path} -> {result.local_path} "
        f"({result.bytes_transferred} bytes)"
    )


@cli.command()
@click.argument("target")
@click.option("--yes", "-y", is_flag=True, help="Trust without asking")
@click.pass_context
def trust(ctx, target: str, yes: bool):
    """Connect to TARGET and record its host key in known_hosts."""
    known_hosts = ctx.obj["known_hosts"]
    already_known = known_hosts_callback(known_hosts)

    def confirm_and_record(host, addr, port, key) -> bool:
        if already_known(host, addr, port, key):
            console.print(f"Host key for {host}:{port} is already trusted")
            return True

        console.print(
            f"Host [bold]{host}:{port}[/] presented {key.get_algorithm()} key "
            f"{key.get_fingerprint('sha256')}"
        )
        if not yes and not click.confirm("Trust this key?", default=False):
            return False
        add_known_host(host, port, key, known_hosts)
        return True

    async def _trust():
        config = build_config(ctx.obj, target, host_key_callback=confirm_and_record)
        async with await connect(config):
            pass

    try:
        run_async(_trust())
    except SSHLinkError as e:
        err_console.print(f"[red]Error:[/] {e}")
        sys.exit(1)
    console.print("[green]Connected[/]")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
