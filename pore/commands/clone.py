"""
Handles the 'init' and 'clone' commands: create a tree, then check it out.
"""

from typing import Optional

import click

from ..cli_utils import CliState, parse_target, remote_and_depot, report_summary, standard_command
from ..domain import CheckoutType, FetchType, GroupFilter
from ..exit_codes import TreeError
from ..infra import JobPool
from ..progress import ProgressReporter
from ..tree import Tree


def clone_tree(
    state: CliState,
    pool: JobPool,
    progress: ProgressReporter,
    target: str,
    directory: Optional[str],
    groups: Optional[str],
    local: bool
) -> int:
    remote_name, branch = parse_target(target)
    remote_config, depot = remote_and_depot(state, remote_name)
    group_filters = GroupFilter.parse_list(groups)

    root = state.cwd / (directory or branch)
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise TreeError(f"failed to create tree root {root}") from e

    progress(f"Creating tree at {root} from {remote_name}/{branch}...")
    tree = Tree.construct(depot, root, remote_config, branch, group_filters, fetch=not local)

    # The manifest was fetched by construct.
    fetch = FetchType.NO_FETCH if local else FetchType.FETCH_EXCEPT_MANIFEST
    rc = tree.sync(state.config, pool, depot, None, fetch, CheckoutType.CHECKOUT, progress=progress)
    report_summary(progress, tree.last_summary)
    return rc


@click.command(name='init')
@click.argument('target')
@click.option('-g', '--groups', 'groups', help='Comma-separated group filters; prefix a group with - to exclude it')
@click.option('-l', '--local', is_flag=True, help='Use only what the depot already holds')
@standard_command()
def init_handler(state, target, groups, local, pool, progress):
    """Create a tree in the current directory.

    TARGET is REMOTE[/BRANCH]; BRANCH defaults to master.
    """
    return clone_tree(state, pool, progress, target, '.', groups, local)


@click.command(name='clone')
@click.argument('target')
@click.argument('directory', required=False)
@click.option('-g', '--groups', 'groups', help='Comma-separated group filters; prefix a group with - to exclude it')
@click.option('-l', '--local', is_flag=True, help='Use only what the depot already holds')
@standard_command()
def clone_handler(state, target, directory, groups, local, pool, progress):
    """Create a tree in DIRECTORY (default: the branch name).

    TARGET is REMOTE[/BRANCH]; BRANCH defaults to master.

    Examples:

    \b
        pore clone aosp                 # ./master
        pore clone aosp/android-14 src  # ./src
        pore clone aosp -g pdk,-darwin  # only pdk projects, none for darwin
    """
    return clone_tree(state, pool, progress, target, directory, groups, local)
