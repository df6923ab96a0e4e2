"""
Handles the branch lifecycle commands: 'start', 'prune' and 'upload'.
"""

import click

from ..cli_utils import find_tree, remote_and_depot, report_summary, standard_command
from ..exit_codes import CommandError


@click.command(name='start')
@click.argument('branch')
@standard_command(uses_pool=False)
def start_handler(state, branch, progress):
    """Start BRANCH in the project containing the current directory.

    The branch starts at the project's remote-tracking ref and tracks it.
    """
    tree = find_tree(state)
    remote_config, depot = remote_and_depot(state, tree.remote)
    rc = tree.start(state.config, depot, remote_config, branch, state.cwd)
    detail = tree.last_summary.details[0]
    progress.success(f"{detail.project_path}: started {branch}")
    return rc


@click.command(name='prune')
@standard_command()
def prune_handler(state, pool, progress):
    """Delete local branches that have been merged upstream.

    The checked-out branch is never deleted.
    """
    tree = find_tree(state)
    _, depot = remote_and_depot(state, tree.remote)
    rc = tree.prune(state.config, pool, depot)

    for detail in sorted(tree.last_summary.details, key=lambda d: d.project_path):
        for branch in detail.metadata.get('pruned', []):
            click.echo(f"{detail.project_path}: pruned {branch}")

    report_summary(progress, tree.last_summary)
    return rc


@click.command(name='upload')
@standard_command(uses_pool=False)
def upload_handler(state, progress):
    """Upload changes for review (not implemented)."""
    raise CommandError("unimplemented subcommand upload")
