"""
Handles the 'forall' command: run a shell command in every project.
"""

import click

from ..cli_utils import find_tree, report_summary, scope_paths, standard_command


@click.command(name='forall')
@click.argument('paths', nargs=-1)
@click.option('-c', '--command', 'command', required=True, help='Shell command to run in each project')
@click.option('-p', 'print_header', is_flag=True, help='Print a "project <path>/" header before each project\'s output')
@standard_command()
def forall_handler(state, paths, command, print_header, pool, progress):
    """Run COMMAND in every project, in parallel.

    The command sees PORE_ROOT (absolute tree root), PORE_PROJECT (project
    path relative to the root) and PORE_ROOT_REL (path back to the root).

    \b
    Examples:
        pore forall -c 'git log -1 --oneline'
        pore forall -p frameworks -c 'git status --short'
    """
    tree = find_tree(state)
    scope = scope_paths(state, tree, paths)
    rc = tree.forall(state.config, pool, scope, command, print_header=print_header)
    report_summary(progress, tree.last_summary)
    return rc
