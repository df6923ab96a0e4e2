#!/usr/bin/env python3

import os
from pathlib import Path

import click

from pore import __version__
from pore.cli_utils import CliState
from pore.config import configure_logging, load_config
from pore.progress import get_progress
from pore.commands.clone import init_handler, clone_handler
from pore.commands.sync import fetch_handler, sync_handler
from pore.commands.branch import start_handler, prune_handler, upload_handler
from pore.commands.status import status_handler
from pore.commands.forall import forall_handler
from pore.commands.config import config_handler, parse_manifest_handler


@click.group(context_settings={'help_option_names': ['-h', '--help']})
@click.version_option(version=__version__, prog_name='pore')
@click.option('-c', '--config', 'config_path', type=click.Path(dir_okay=False),
              help='Config file (default: $PORE_CONFIG or ~/.pore.toml)')
@click.option('-C', 'directory', type=click.Path(exists=True, file_okay=False),
              help='Run as if pore was started in DIRECTORY')
@click.option('-j', '--jobs', type=click.IntRange(min=1),
              help='Number of parallel jobs (default: config, else CPU count)')
@click.option('-v', '--verbose', count=True, help='More output; repeat for debug logging')
@click.pass_context
def cli(ctx, config_path, directory, jobs, verbose):
    """pore - manage source trees made of many git repositories.

    Projects are mirrored once per host in a depot and checked out into
    trees that share objects with the mirror.
    """
    config = load_config(config_path)
    configure_logging(config, verbose)
    if verbose:
        get_progress(enabled=True)

    ctx.obj = CliState(
        config=config,
        cwd=Path(directory or os.getcwd()).absolute(),
        jobs=jobs or config.jobs,
    )


# Tree creation
cli.add_command(init_handler)
cli.add_command(clone_handler)

# Synchronization
cli.add_command(fetch_handler)
cli.add_command(sync_handler)

# Branch lifecycle
cli.add_command(start_handler)
cli.add_command(upload_handler)
cli.add_command(prune_handler)

# Inspection
cli.add_command(status_handler)
cli.add_command(forall_handler)

# Configuration
cli.add_command(config_handler)
cli.add_command(parse_manifest_handler)


def main():
    cli()

if __name__ == "__main__":
    main()
