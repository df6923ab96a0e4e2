"""
Handles the 'config' and 'parse-manifest' commands.
"""

import json

import click

from ..cli_utils import standard_command
from ..config import Config, dump_config
from ..manifest import Manifest


@click.command(name='config')
@standard_command(uses_pool=False)
def config_handler(state, progress):
    """Print the default configuration as TOML.

    Save it to ~/.pore.toml and edit it to add remotes and depots.
    """
    click.echo(dump_config(Config.default()), nl=False)


@click.command(name='parse-manifest', hidden=True)
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@standard_command(uses_pool=False)
def parse_manifest_handler(state, path, progress):
    """Print the parsed manifest at PATH as JSON."""
    manifest = Manifest.parse_file(path)
    click.echo(json.dumps(manifest.to_dict(), indent=2))
