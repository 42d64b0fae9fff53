# SPDX-FileCopyrightText: 2025 - Canonical Ltd
# SPDX-License-Identifier: Apache-2.0

import logging
import shutil
import typing

import click

from hfs import client
from hfs.cli.log import setup_root_logging

logger = logging.getLogger(__name__)

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


@click.group("hfs", context_settings=CONTEXT_SETTINGS)
@click.option("-v", "--verbose", is_flag=True, help="Increase output verbosity")
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Seconds to wait for the server (default: no limit)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, timeout: typing.Optional[float]):
    """Fetch, store and delete files on an hfs server.

    ADDRESS is hfs://host[:port]/path, hfss://host[:port]/path for TLS, or
    a bare host[:port]/path.
    """
    setup_root_logging(verbose)
    ctx.obj = {"timeout": timeout}


@cli.command("get")
@click.argument("address")
@click.option(
    "-o",
    "--output",
    type=click.File("wb"),
    default="-",
    help="Write the file here instead of stdout",
)
@click.pass_context
def get(ctx: click.Context, address: str, output: typing.BinaryIO):
    """Download the remote file at ADDRESS."""
    try:
        with client.open(address, timeout=ctx.obj["timeout"]) as remote:
            data = remote.read()
    except client.ClientError as e:
        raise click.ClickException(str(e))
    logger.debug("Fetched %d bytes from %s", len(data), address)
    output.write(data)


@cli.command("put")
@click.argument("source", type=click.File("rb"))
@click.argument("address")
@click.pass_context
def put(ctx: click.Context, source: typing.BinaryIO, address: str):
    """Upload SOURCE ('-' for stdin) to ADDRESS, replacing any existing file."""
    try:
        with client.create(address, timeout=ctx.obj["timeout"]) as remote:
            shutil.copyfileobj(source, remote)
    except client.ClientError as e:
        raise click.ClickException(str(e))
    click.echo(f"Uploaded {address}", err=True)


@cli.command("rm")
@click.argument("address")
@click.pass_context
def rm(ctx: click.Context, address: str):
    """Delete the remote file at ADDRESS."""
    try:
        client.remove(address, timeout=ctx.obj["timeout"])
    except client.ClientError as e:
        raise click.ClickException(str(e))
    click.echo(f"Removed {address}", err=True)


def main():
    """Run the hfs command line client."""
    cli()


if __name__ == "__main__":
    main()
