"""
Common CLI utilities and decorators for consistent command behavior.
"""

import logging
import os
import sys
from dataclasses import dataclass
from functools import wraps
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import click

from .config import Config, RemoteConfig
from .depot import Depot
from .domain import OperationStatus, OperationSummary, normalize_project_path
from .exit_codes import (
    INTERRUPTED, SUCCESS, TreeError,
    format_fatal, get_exit_code_for_exception,
)
from .infra import JobPool
from .progress import ProgressReporter, get_progress
from .tree import Tree

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "master"


@dataclass
class CliState:
    """Everything the global options resolve to, shared by every subcommand."""
    config: Config
    cwd: Path
    jobs: Optional[int] = None


def standard_command(uses_pool: bool = True):
    """
    Decorator that provides standard CLI behavior:
    - The resolved CliState as first argument
    - A JobPool in ``pool`` scoped to this one invocation (if ``uses_pool``)
    - A progress reporter in ``progress``
    - ``fatal: <message>: <root cause>`` on stderr for uncaught errors

    The wrapped handler returns the process exit code.
    """
    def decorator(func):

        @wraps(func)
        def wrapper(state: CliState, *args, **kwargs):
            progress = get_progress()
            kwargs['progress'] = progress
            pool = None

            try:
                if uses_pool:
                    pool = JobPool(state.jobs)
                    kwargs['pool'] = pool
                rc = func(state, *args, **kwargs)
            except KeyboardInterrupt:
                progress.fatal("fatal: interrupted by user")
                sys.exit(INTERRUPTED)
            except click.ClickException:
                # Click exceptions already have their exit code
                raise
            except Exception as e:
                logger.debug("command failed", exc_info=True)
                progress.fatal(format_fatal(e))
                sys.exit(get_exit_code_for_exception(e))
            finally:
                if pool is not None:
                    pool.shutdown()

            sys.exit(SUCCESS if rc is None else rc)

        return click.pass_obj(wrapper)
    return decorator


def parse_target(target: str) -> Tuple[str, str]:
    """Split ``REMOTE[/BRANCH]``; the branch defaults to ``master``."""
    parts = target.split('/')
    if len(parts) == 1 and parts[0]:
        return parts[0], DEFAULT_BRANCH
    if len(parts) == 2 and all(parts):
        return parts[0], parts[1]
    raise click.UsageError(f"invalid target '{target}'")


def find_tree(state: CliState) -> Tree:
    return Tree.find_from_path(state.cwd)


def remote_and_depot(state: CliState, remote_name: str) -> Tuple[RemoteConfig, Depot]:
    remote_config = state.config.find_remote(remote_name)
    return remote_config, state.config.find_depot(remote_config.depot)


def scope_paths(state: CliState, tree: Tree, paths: Sequence[str]) -> Optional[List[str]]:
    """
    Turn PATH arguments into tree-relative scope entries.

    No arguments means no scoping.
    """
    if not paths:
        return None

    scope = []
    for path in paths:
        absolute = Path(os.path.abspath(state.cwd / path))
        try:
            relative = absolute.relative_to(tree.root)
        except ValueError as e:
            raise TreeError(f"{path} is outside tree {tree.root}") from e
        scope.append(normalize_project_path(relative.as_posix()))
    return scope


def report_summary(progress: ProgressReporter, summary: Optional[OperationSummary]) -> None:
    """Print one line per failed or skipped project after a fan-out."""
    if summary is None:
        return

    for detail in sorted(summary.details, key=lambda d: d.project_path):
        if detail.status is OperationStatus.FAILED:
            progress.error(f"{detail.project_path}: {detail.error}")
        elif detail.status is OperationStatus.SKIPPED and detail.message:
            progress.warning(f"{detail.project_path}: {detail.message}")

    if summary.total:
        progress(
            f"{summary.operation}: {summary.successful} succeeded, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
