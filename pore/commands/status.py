"""
Handles the 'status' command for displaying per-project working tree state.

- Interactive terminal: table by default
- Piped/redirected: JSON lines
"""

import json
import sys

import click

from ..cli_utils import find_tree, report_summary, scope_paths, standard_command
from ..domain import ProjectStatus
from ..render import render_status_table


@click.command(name='status')
@click.argument('paths', nargs=-1)
@click.option('--table/--no-table', default=None, help='Display as formatted table (auto-detected by default)')
@standard_command()
def status_handler(state, paths, table, pool, progress):
    """Show the status of every project.

    PATHS limit the report to projects at or beneath them.

    \b
    Examples:
        pore status                # every project
        pore status frameworks     # projects under frameworks/
        pore status --no-table     # force JSON lines
    """
    # Auto-detect table mode if not specified
    if table is None:
        table = sys.stdout.isatty()

    tree = find_tree(state)
    scope = scope_paths(state, tree, paths)
    rc = tree.status(state.config, pool, scope)

    statuses = sorted(
        (d for d in tree.last_summary.details if isinstance(d, ProjectStatus)),
        key=lambda s: s.project_path,
    )
    if table:
        render_status_table(statuses)
    else:
        for status in statuses:
            print(json.dumps(status.to_dict(), ensure_ascii=False), flush=True)

    report_summary(progress, tree.last_summary)
    return rc
