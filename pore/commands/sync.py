"""
Handles the 'fetch' and 'sync' commands.
"""

import click

from ..cli_utils import find_tree, remote_and_depot, report_summary, scope_paths, standard_command
from ..domain import CheckoutType, FetchType


def _sync(state, pool, progress, paths, fetch, checkout):
    tree = find_tree(state)
    _, depot = remote_and_depot(state, tree.remote)
    scope = scope_paths(state, tree, paths)

    rc = tree.sync(state.config, pool, depot, scope, fetch, checkout, progress=progress)
    report_summary(progress, tree.last_summary)
    return rc


@click.command(name='fetch')
@click.argument('paths', nargs=-1)
@standard_command()
def fetch_handler(state, paths, pool, progress):
    """Fetch projects into the depot without touching checkouts.

    PATHS limit the fetch to projects at or beneath them.
    """
    return _sync(state, pool, progress, paths, FetchType.FETCH, CheckoutType.NO_CHECKOUT)


@click.command(name='sync')
@click.argument('paths', nargs=-1)
@click.option('-l', '--local', is_flag=True, help='Do not fetch; check out what the depot already holds')
@standard_command()
def sync_handler(state, paths, local, pool, progress):
    """Fetch projects and update their checkouts.

    Detached checkouts move to the newly fetched revision; local branches
    are fast-forwarded when they have no local commits.
    """
    fetch = FetchType.NO_FETCH if local else FetchType.FETCH
    return _sync(state, pool, progress, paths, fetch, CheckoutType.CHECKOUT)
