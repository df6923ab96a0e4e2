"""
Tree: an on-disk set of project checkouts derived from one manifest.

A tree root holds a ``.pore`` directory:

    .pore/tree.toml      remote, branch, manifest project, group filters and
                         the project paths checked out so far
    .pore/manifest/      checkout of the manifest project
    .pore/manifest.xml   symlink to manifest/default.xml

Every tree-wide operation resolves the manifest into projects, narrows them
by group filters and path scope, runs one job per project on the supplied
JobPool and reduces the per-project outcomes into an exit code. A failing
project never stops the others.
"""

import functools
import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from dulwich.repo import Repo

from .config import Config, RemoteConfig
from .depot import Depot
from .domain import (
    CheckoutType,
    FetchType,
    ForallResult,
    GroupFilter,
    OperationDetail,
    OperationStatus,
    OperationSummary,
    Project,
    ProjectStatus,
    normalize_project_path,
    path_in_scope,
)
from .exit_codes import CommandError, TreeError, describe_error
from .infra import FileStore, GitClient, JobPool
from .manifest import Manifest
from .revision import parse_revision

logger = logging.getLogger(__name__)

TREE_DIR = ".pore"
TREE_STATE = "tree.toml"
MANIFEST_DIR = "manifest"
MANIFEST_LINK = "manifest.xml"
DEFAULT_MANIFEST = "default.xml"


class Tree:
    """
    The orchestrator for one tree.

    Example:
        tree = Tree.find_from_path(Path.cwd())
        with JobPool(jobs=8) as pool:
            rc = tree.sync(config, pool, depot)
    """

    def __init__(
        self,
        root: Path,
        remote: str,
        branch: str,
        manifest_project: str,
        group_filters: Optional[Sequence[GroupFilter]] = None,
        projects: Optional[Sequence[str]] = None,
        git: Optional[GitClient] = None
    ):
        self.root = Path(root).absolute()
        self.remote = remote
        self.branch = branch
        self.manifest_project = manifest_project
        self.group_filters = list(group_filters or [])
        self.projects = sorted(projects or [])
        self.git = git or GitClient()
        self.last_summary: Optional[OperationSummary] = None
        self._store = FileStore(self.state_path)

    def __repr__(self) -> str:
        return f"Tree(root={str(self.root)!r}, remote={self.remote!r}, branch={self.branch!r})"

    @property
    def pore_dir(self) -> Path:
        return self.root / TREE_DIR

    @property
    def state_path(self) -> Path:
        return self.pore_dir / TREE_STATE

    @property
    def manifest_path(self) -> Path:
        return self.pore_dir / MANIFEST_DIR

    @property
    def manifest_file(self) -> Path:
        return self.pore_dir / MANIFEST_LINK

    @classmethod
    def construct(
        cls,
        depot: Depot,
        root: Path,
        remote_config: RemoteConfig,
        branch: str,
        group_filters: Sequence[GroupFilter],
        fetch: bool,
        git: Optional[GitClient] = None
    ) -> 'Tree':
        """
        Create a new tree at ``root`` from ``remote_config``'s manifest.

        The manifest project is fetched (unless ``fetch`` is False) and
        checked out under ``.pore/manifest``; project checkouts are left to
        a following :meth:`sync`.

        Raises:
            TreeError: if a tree already exists at ``root`` or the manifest
                cannot be checked out
        """
        tree = cls(
            root=root,
            remote=remote_config.name,
            branch=branch,
            manifest_project=remote_config.manifest,
            group_filters=group_filters,
            git=git,
        )
        if tree.state_path.exists():
            raise TreeError(f"tree already exists at {tree.root}")

        manifest = remote_config.manifest
        if fetch:
            try:
                depot.fetch_repo(remote_config, manifest, branch)
            except CommandError as e:
                raise TreeError(f"failed to fetch manifest {manifest}") from e

        # Leftover from an earlier construct that never wrote tree state.
        if tree.manifest_path.exists():
            shutil.rmtree(tree.manifest_path)

        try:
            depot.clone_repo(remote_config, manifest, branch, tree.manifest_path)
        except CommandError as e:
            raise TreeError(f"failed to checkout manifest {manifest}") from e

        link = tree.manifest_file
        if link.is_symlink() or link.exists():
            link.unlink()
        link.symlink_to(Path(MANIFEST_DIR) / DEFAULT_MANIFEST)

        tree.read_manifest()
        tree.save()
        logger.info(f"created tree at {tree.root} from {remote_config.name}/{branch}")
        return tree

    @classmethod
    def load(cls, root: Path, git: Optional[GitClient] = None) -> 'Tree':
        store = FileStore(Path(root) / TREE_DIR / TREE_STATE)
        if not store.exists():
            raise TreeError(f"no tree at {root}")

        data = store.read()
        try:
            return cls(
                root=root,
                remote=data['remote'],
                branch=data['branch'],
                manifest_project=data['manifest'],
                group_filters=[GroupFilter.parse(f) for f in data.get('group_filters', [])],
                projects=data.get('projects', []),
                git=git,
            )
        except KeyError as e:
            raise TreeError(f"incomplete tree state in {store.path}") from e

    @classmethod
    def find_from_path(cls, path: Path, git: Optional[GitClient] = None) -> 'Tree':
        """
        Load the tree enclosing ``path``.

        Raises:
            TreeError: if no ancestor of ``path`` holds tree state
        """
        path = Path(path).absolute()
        for candidate in (path, *path.parents):
            if (candidate / TREE_DIR / TREE_STATE).is_file():
                return cls.load(candidate, git=git)
        raise TreeError(f"failed to find tree enclosing {path}")

    def save(self) -> None:
        self._store.write({
            'remote': self.remote,
            'branch': self.branch,
            'manifest': self.manifest_project,
            'group_filters': [str(f) for f in self.group_filters],
            'projects': list(self.projects),
        })

    def read_manifest(self) -> Manifest:
        return Manifest.parse_file(self.manifest_file)

    def resolve_projects(self, config: Config, manifest: Optional[Manifest] = None) -> List[Project]:
        """
        Bind every manifest project to a configured remote and a branch.

        Raises:
            ConfigError: if a project names a remote missing from ``config``
        """
        if manifest is None:
            manifest = self.read_manifest()

        remotes: Dict[str, RemoteConfig] = {}
        projects = []
        for entry in manifest.projects:
            remote_name = entry.remote or manifest.default.remote or self.remote
            if remote_name not in remotes:
                remotes[remote_name] = config.find_remote(remote_name)

            projects.append(Project(
                path=normalize_project_path(entry.path),
                name=entry.name,
                remote=remotes[remote_name],
                branch=entry.revision or manifest.default.revision or self.branch,
                groups=frozenset(entry.groups),
                depth=entry.clone_depth,
            ))
        return projects

    def select(self, config: Config, path_scope: Optional[Sequence[str]] = None) -> List[Project]:
        """Projects passing the tree's group filters and within ``path_scope``."""
        return [
            project for project in self.resolve_projects(config)
            if project.matches(self.group_filters) and path_in_scope(project.path, path_scope)
        ]

    def _manifest_as_project(self, remote_config: RemoteConfig) -> Project:
        return Project(
            path=f"{TREE_DIR}/{MANIFEST_DIR}",
            name=self.manifest_project,
            remote=remote_config,
            branch=self.branch,
        )

    def _is_manifest(self, project: Project) -> bool:
        return project.name == self.manifest_project and project.remote.name == self.remote

    def _fan_out(
        self,
        operation: str,
        pool: JobPool,
        projects: Sequence[Project],
        job: Callable[[Project], OperationDetail],
        on_detail: Optional[Callable[[OperationDetail], None]] = None
    ) -> OperationSummary:
        by_path = {project.path: project for project in projects}
        summary = OperationSummary(operation=operation)

        def on_complete(result):
            project = by_path[result.name]
            if result.ok:
                detail = result.value
                logger.info(f"{project.path}: {detail.action}")
            else:
                detail = OperationDetail(
                    project_path=project.path,
                    project_name=project.name,
                    status=OperationStatus.FAILED,
                    action=operation,
                    error=describe_error(result.error),
                )
                logger.error(f"{project.path}: {detail.error}")

            summary.add_detail(detail)
            if on_detail is not None:
                on_detail(detail)

        pool.run(
            [(project.path, functools.partial(job, project)) for project in projects],
            on_complete=on_complete,
        )
        self.last_summary = summary
        return summary

    def is_checked_out(self, path: Path) -> bool:
        """A git checkout with a HEAD commit; an interrupted clone has none."""
        return self.git.is_git_repo(path) and self.git.head_commit(path) is not None

    def _resolve_target(self, project: Project, path: Path) -> str:
        with Repo(str(path)) as repo:
            return parse_revision(repo, project.remote.name, project.branch).id.decode()

    def _update_checkout(self, project: Project, path: Path) -> OperationDetail:
        """
        Move an existing checkout to the newly fetched state.

        Detached checkouts follow the project's revision. A local branch is
        only fast-forwarded to its upstream; local commits or a missing
        upstream leave it alone.
        """
        def detail(status, action, message=None, **metadata):
            return OperationDetail(project.path, project.name, status, action, message, metadata=metadata)

        branch = self.git.current_branch(path)
        if branch is None:
            target = self._resolve_target(project, path)
            if self.git.head_commit(path) == target:
                return detail(OperationStatus.SUCCESS, "up_to_date", head=target)
            self.git.checkout_detached(path, target)
            return detail(OperationStatus.SUCCESS, "checked_out", head=target)

        upstream = self.git.upstream(path, branch)
        if upstream is None:
            return detail(OperationStatus.SKIPPED, "skipped", f"branch {branch} has no upstream")

        ahead, behind = self.git.ahead_behind(path, "HEAD", upstream)
        if ahead:
            return detail(OperationStatus.SKIPPED, "skipped", f"branch {branch} has {ahead} local commit(s)")
        if behind:
            self.git.merge_ff_only(path, upstream)
            return detail(OperationStatus.SUCCESS, "fast_forwarded", branch=branch)
        return detail(OperationStatus.SUCCESS, "up_to_date", branch=branch)

    def _update_manifest(self, depot: Depot, remote_config: RemoteConfig) -> None:
        project = self._manifest_as_project(remote_config)
        try:
            depot.update_remote_refs(remote_config, project.name, self.manifest_path)
            self._update_checkout(project, self.manifest_path)
        except CommandError as e:
            raise TreeError(f"failed to update manifest checkout {self.manifest_path}") from e

    def _sync_project(
        self,
        depot: Depot,
        project: Project,
        fetch: FetchType,
        checkout: CheckoutType,
        progress: Optional[Callable[[str], None]] = None
    ) -> OperationDetail:
        path = self.root / project.path

        # The manifest project was fetched before the fan-out started.
        fetched = fetch.fetches and not self._is_manifest(project)
        if fetched:
            try:
                depot.fetch_repo(project.remote, project.name, project.branch,
                                 depth=project.depth, progress=progress)
            except CommandError as e:
                raise TreeError(f"failed to fetch {project.name}") from e

        if not self.is_checked_out(path):
            if checkout is CheckoutType.NO_CHECKOUT:
                status = OperationStatus.SUCCESS if fetched else OperationStatus.SKIPPED
                return OperationDetail(project.path, project.name, status,
                                       "fetched" if fetched else "skipped")
            stale = path / ".git"
            if stale.exists():
                logger.warning(f"{project.path}: replacing incomplete checkout")
                try:
                    shutil.rmtree(stale)
                except OSError as e:
                    raise TreeError(f"failed to remove {stale}") from e
            try:
                depot.clone_repo(project.remote, project.name, project.branch, path)
            except CommandError as e:
                raise TreeError(f"failed to clone {project.name} into {path}") from e
            return OperationDetail(project.path, project.name, OperationStatus.SUCCESS, "cloned")

        depot.update_remote_refs(project.remote, project.name, path)
        if checkout is CheckoutType.NO_CHECKOUT:
            return OperationDetail(project.path, project.name, OperationStatus.SUCCESS, "fetched")
        return self._update_checkout(project, path)

    def sync(
        self,
        config: Config,
        pool: JobPool,
        depot: Depot,
        path_scope: Optional[Sequence[str]] = None,
        fetch: FetchType = FetchType.FETCH,
        checkout: CheckoutType = CheckoutType.CHECKOUT,
        progress: Optional[Callable[[str], None]] = None
    ) -> int:
        """
        Fetch and/or check out every project in scope.

        Returns:
            0 if every project job succeeded, 1 otherwise
        """
        remote_config = config.find_remote(self.remote)

        if fetch is FetchType.FETCH:
            try:
                depot.fetch_repo(remote_config, self.manifest_project, self.branch, progress=progress)
            except CommandError as e:
                raise TreeError(f"failed to fetch manifest {self.manifest_project}") from e
            self._update_manifest(depot, remote_config)

        projects = self.select(config, path_scope)
        summary = self._fan_out(
            "sync", pool, projects,
            lambda project: self._sync_project(depot, project, fetch, checkout, progress),
        )

        checked_out = {
            detail.project_path for detail in summary.details
            if self.is_checked_out(self.root / detail.project_path)
        }
        self.projects = sorted(set(self.projects) | checked_out)
        self.save()
        return summary.exit_code

    def project_for_directory(self, config: Config, directory: Path) -> Project:
        """
        The innermost project whose checkout contains ``directory``.

        Raises:
            TreeError: if ``directory`` is not inside a checked-out project
        """
        directory = Path(directory).absolute()
        try:
            relative = normalize_project_path(directory.relative_to(self.root).as_posix())
        except ValueError as e:
            raise TreeError(f"{directory} is not inside tree {self.root}") from e

        remote_config = config.find_remote(self.remote)
        candidates = [self._manifest_as_project(remote_config)] + self.resolve_projects(config)
        matches = [
            project for project in candidates
            if path_in_scope(relative, [project.path])
            and self.is_checked_out(self.root / project.path)
        ]
        if not matches:
            raise TreeError(f"{directory} is not inside a project")
        return max(matches, key=lambda project: len(project.path))

    def start(
        self,
        config: Config,
        depot: Depot,
        remote_config: RemoteConfig,
        branch_name: str,
        directory: Path
    ) -> int:
        """Create and check out ``branch_name`` in the project containing ``directory``."""
        project = self.project_for_directory(config, directory)
        if project.path == self._manifest_as_project(remote_config).path:
            project = self._manifest_as_project(remote_config)
        path = self.root / project.path

        try:
            depot.update_remote_refs(project.remote, project.name, path)
            self.git.create_branch(path, branch_name, project.tracking_ref())
        except CommandError as e:
            raise TreeError(f"failed to start branch {branch_name} in {project.path}") from e

        summary = OperationSummary(operation="start")
        summary.add_detail(OperationDetail(
            project.path, project.name, OperationStatus.SUCCESS, "started",
            metadata={'branch': branch_name},
        ))
        self.last_summary = summary
        return summary.exit_code

    def _prune_project(self, depot: Depot, project: Project) -> OperationDetail:
        path = self.root / project.path
        depot.update_remote_refs(project.remote, project.name, path)

        current = self.git.current_branch(path)
        pruned = []
        for branch in self.git.local_branches(path):
            if branch == current:
                continue

            upstream = self.git.upstream(path, branch) or project.tracking_ref()
            if self.git.rev_parse(path, upstream) is None:
                logger.debug(f"{project.path}: {upstream} does not exist, keeping {branch}")
                continue

            ref = f"refs/heads/{branch}"
            if self.git.is_ancestor(path, ref, upstream) or \
                    not self.git.has_unmerged_commits(path, upstream, ref):
                self.git.delete_branch(path, branch)
                pruned.append(branch)

        status = OperationStatus.SUCCESS if pruned else OperationStatus.SKIPPED
        return OperationDetail(project.path, project.name, status, "pruned",
                               metadata={'pruned': pruned})

    def prune(self, config: Config, pool: JobPool, depot: Depot) -> int:
        """Delete local branches whose work is already upstream, in every checkout."""
        projects = [
            project for project in self.select(config)
            if self.is_checked_out(self.root / project.path)
        ]
        summary = self._fan_out(
            "prune", pool, projects,
            lambda project: self._prune_project(depot, project),
        )
        return summary.exit_code

    def forall(
        self,
        config: Config,
        pool: JobPool,
        path_scope: Optional[Sequence[str]],
        command: str,
        print_header: bool = False
    ) -> int:
        """
        Run ``command`` through the shell in every project in scope.

        The command sees ``PORE_ROOT`` (absolute tree root), ``PORE_PROJECT``
        (project path relative to the root) and ``PORE_ROOT_REL`` (path from
        the project back to the root). Each project's output is written as
        one block once its command exits.
        """
        def run(project: Project) -> OperationDetail:
            path = self.root / project.path
            if not self.is_checked_out(path):
                return OperationDetail(project.path, project.name, OperationStatus.SKIPPED,
                                       "forall", message="not checked out")
            env = dict(
                os.environ,
                PORE_ROOT=str(self.root),
                PORE_PROJECT=project.path,
                PORE_ROOT_REL=os.path.relpath(self.root, path),
            )
            result = subprocess.run(
                command, shell=True, cwd=path, env=env,
                capture_output=True, text=True,
            )
            failed = result.returncode != 0
            return ForallResult(
                project_path=project.path,
                project_name=project.name,
                status=OperationStatus.FAILED if failed else OperationStatus.SUCCESS,
                action="forall",
                error=f"command exited with status {result.returncode}" if failed else None,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        def emit(detail: OperationDetail) -> None:
            if not isinstance(detail, ForallResult):
                return
            if print_header and (detail.stdout or detail.stderr):
                print(f"project {detail.project_path}/", flush=True)
            if detail.stdout:
                print(detail.stdout, end="", flush=True)
            if detail.stderr:
                print(detail.stderr, end="", file=sys.stderr, flush=True)

        summary = self._fan_out("forall", pool, self.select(config, path_scope), run, on_detail=emit)
        return summary.exit_code

    def _project_status(self, project: Project) -> ProjectStatus:
        path = self.root / project.path
        if not self.is_checked_out(path):
            return ProjectStatus(project.path, project.name, OperationStatus.SKIPPED, "status",
                                 missing=True)

        status = self.git.status(path)
        return ProjectStatus(
            project_path=project.path,
            project_name=project.name,
            status=OperationStatus.SUCCESS,
            action="status",
            branch=status.branch,
            head=status.head,
            ahead=status.ahead,
            behind=status.behind,
            staged=status.staged_files,
            modified=status.modified_files,
            untracked=status.untracked_files,
        )

    def status(self, config: Config, pool: JobPool, path_scope: Optional[Sequence[str]] = None) -> int:
        """Collect working tree status of every project in scope into ``last_summary``."""
        summary = self._fan_out("status", pool, self.select(config, path_scope), self._project_status)
        return summary.exit_code
