"""
Depot: the local mirror cache shared by every tree on a host.

Layout under the depot root:

    objects/<project>.git          bare mirror with every object fetched for
                                   the project, from any remote
    objects/<project>.git.lock     advisory lock for that mirror
    refs/<remote>/<project>.git    bare repository holding only <remote>'s
                                   branch heads, sharing objects with the
                                   object mirror through alternates

Working checkouts attach to the object mirror through alternates as well, and
fetch their remote-tracking refs from the ref mirror, so history is stored
once per project no matter how many checkouts exist.
"""

import logging
import os
import shutil
import tempfile
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union
from urllib.parse import urlparse

from dulwich.client import get_transport_and_path
from dulwich.errors import NotGitRepository
from dulwich.index import build_index_from_tree
from dulwich.repo import Repo
from filelock import FileLock

from .config import RemoteConfig
from .exit_codes import DepotError, GitCommandError, InvalidProjectError, TransportError
from .infra.git_client import GitClient
from .revision import parse_revision

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
Progress = Callable[[str], None]

NATIVE_SCHEMES = frozenset({"git", "http", "https", "ssh", ""})


class Transport(Enum):
    """How objects are transferred into an object mirror."""
    NATIVE = "native"
    EXTERNAL = "external"


def select_transport(url: str, depth: Optional[int] = None) -> Transport:
    """
    Pick the transport for a fetch.

    The in-process client handles the common network schemes and local
    paths; shallow fetches and every other scheme (``file://`` included) go
    through the git binary.
    """
    scheme = urlparse(url).scheme
    if scheme in NATIVE_SCHEMES and depth is None:
        return Transport.NATIVE
    return Transport.EXTERNAL


def _branch_ref(branch: str) -> str:
    if branch.startswith("refs/"):
        return branch
    return f"refs/heads/{branch}"


def _tracking_ref(remote: str, branch: str) -> str:
    name = branch
    if name.startswith("refs/heads/"):
        name = name[len("refs/heads/"):]
    elif name.startswith("refs/"):
        name = name[len("refs/"):]
    return f"refs/remotes/{remote}/{name}"


class NativeTransport:
    """Fetch through dulwich's client, without tags and without pruning."""

    def fetch(
        self,
        repo_path: PathLike,
        remote: str,
        url: str,
        branch: str,
        depth: Optional[int] = None
    ) -> None:
        repo = Repo(str(repo_path))
        wanted_ref = _branch_ref(branch).encode()
        found = {}

        def determine_wants(refs, depth=None):
            sha = refs.get(wanted_ref)
            if sha is None:
                return []
            found['sha'] = sha
            if sha in repo.object_store:
                return []
            return [sha]

        try:
            client, path = get_transport_and_path(url)
            client.fetch(path, repo, determine_wants=determine_wants)
        except Exception as e:
            raise TransportError(f"failed to fetch {branch} from {url}") from e
        finally:
            repo.close()

        if 'sha' not in found:
            raise TransportError(f"{url} has no branch {branch}")

        with Repo(str(repo_path)) as repo:
            repo.refs[_tracking_ref(remote, branch).encode()] = found['sha']


class ExternalTransport:
    """Fetch by running ``git fetch`` in the mirror."""

    def __init__(self, git: GitClient):
        self.git = git

    def fetch(
        self,
        repo_path: PathLike,
        remote: str,
        url: str,
        branch: str,
        depth: Optional[int] = None
    ) -> None:
        try:
            self.git.fetch(repo_path, remote, branch, depth=depth)
        except GitCommandError as e:
            raise TransportError(f"failed to fetch {branch} from {url}") from e


def validate_project(project: str) -> None:
    """
    Reject project names that would land outside the depot layout.

    Raises:
        InvalidProjectError: for empty names, leading or trailing ``/``,
            and ``..`` components
    """
    if not project:
        raise InvalidProjectError("invalid project path ''")
    if project.startswith('/') or project.endswith('/'):
        raise InvalidProjectError(f"invalid project path {project}")
    if '..' in project.split('/'):
        raise InvalidProjectError(f"invalid project path {project}")


class Depot:
    """
    A named mirror cache rooted at ``path``.

    Example:
        depot = Depot("android", Path("~/.pore/android").expanduser())
        depot.fetch_repo(remote, "platform/build", "master")
        depot.clone_repo(remote, "platform/build", "master", "tree/build/make")
    """

    def __init__(self, name: str, path: PathLike, git: Optional[GitClient] = None):
        self.name = name
        self.path = Path(path)
        self.git = git or GitClient()
        self._transports = {
            Transport.NATIVE: NativeTransport(),
            Transport.EXTERNAL: ExternalTransport(self.git),
        }

    def __repr__(self) -> str:
        return f"Depot(name={self.name!r}, path={str(self.path)!r})"

    def objects_mirror(self, project: str) -> Path:
        return self.path / "objects" / f"{project}.git"

    def refs_mirror(self, remote: str, project: str) -> Path:
        return self.path / "refs" / remote / f"{project}.git"

    def _lock(self, project: str) -> FileLock:
        objects_path = self.objects_mirror(project)
        objects_path.parent.mkdir(parents=True, exist_ok=True)
        return FileLock(f"{objects_path}.lock")

    def transport_for(self, url: str, depth: Optional[int] = None):
        return self._transports[select_transport(url, depth)]

    @staticmethod
    def open_or_create_bare_repo(path: PathLike) -> Repo:
        try:
            return Repo(str(path))
        except NotGitRepository:
            pass

        logger.debug(f"creating mirror {path}")
        try:
            os.makedirs(path, exist_ok=True)
            return Repo.init_bare(str(path))
        except OSError as e:
            raise DepotError(f"failed to create repository at {path}") from e

    @staticmethod
    def clone_alternates(src: PathLike, dst: PathLike, bare: bool) -> Repo:
        """
        Create a repository at ``dst`` whose object store defers to ``src``.

        The new repository's ``objects/info/alternates`` holds the absolute
        path of ``src``'s object directory followed by a newline; no objects
        are copied.
        """
        src = Path(src).absolute()
        dst = Path(dst)

        try:
            os.makedirs(dst, exist_ok=True)
            repo = Repo.init_bare(str(dst)) if bare else Repo.init(str(dst))
            repo.close()
        except OSError as e:
            raise DepotError(f"failed to create repository at {dst}") from e

        info_path = Depot.git_path(dst) / "objects" / "info"
        try:
            info_path.mkdir(parents=True, exist_ok=True)
            (info_path / "alternates").write_text(f"{src / 'objects'}\n")
        except OSError as e:
            raise DepotError(f"failed to set alternates for new repository {dst}") from e

        return Repo(str(dst))

    @staticmethod
    def git_path(path: PathLike) -> Path:
        """Git directory of a bare or non-bare repository."""
        path = Path(path)
        nonbare = path / ".git"
        if nonbare.exists():
            return nonbare
        return path

    @staticmethod
    def replace_dir(src: PathLike, dst: PathLike) -> None:
        """
        Make ``dst`` an exact copy of ``src``.

        The copy is staged in a sibling directory and renamed over ``dst``
        once complete. Entries that ``src`` lacks disappear from ``dst``.

        Raises:
            DepotError: if ``src`` does not exist or copying fails
        """
        src = Path(src)
        dst = Path(dst)

        if not src.is_dir():
            raise DepotError(f"attempted to replace {dst} with nonexistent directory {src}")

        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            stage = Path(tempfile.mkdtemp(dir=dst.parent, prefix=f".{dst.name}."))
        except OSError as e:
            raise DepotError(f"failed to create directory next to {dst}") from e

        try:
            for entry in src.iterdir():
                if entry.is_dir():
                    shutil.copytree(entry, stage / entry.name)
                else:
                    shutil.copy2(entry, stage / entry.name)

            if dst.exists():
                shutil.rmtree(dst)
            os.rename(stage, dst)
        except OSError as e:
            shutil.rmtree(stage, ignore_errors=True)
            raise DepotError(f"failed to copy {src} to {dst}") from e

    @staticmethod
    def _configure_remote(
        repo: Repo,
        name: str,
        url: str,
        push_url: Optional[str] = None,
        mirror: bool = False
    ) -> None:
        config = repo.get_config()
        section = (b"remote", name.encode())
        config.set(section, b"url", url.encode())
        if push_url:
            config.set(section, b"pushurl", push_url.encode())
        config.set(section, b"fetch", f"+refs/heads/*:refs/remotes/{name}/*".encode())
        if mirror:
            # Refs must stay loose for replace_dir.
            config.set((b"gc",), b"auto", b"0")
        config.write_to_path()

    def fetch_repo(
        self,
        remote_config: RemoteConfig,
        project: str,
        branch: str,
        depth: Optional[int] = None,
        progress: Optional[Progress] = None
    ) -> None:
        """
        Fetch ``branch`` of ``project`` into the object mirror, then make the
        remote's ref mirror reflect exactly what the object mirror now tracks.

        Raises:
            InvalidProjectError: before any I/O, for a malformed project name
            TransportError: if the fetch fails
            DepotError: if a mirror cannot be created or updated
        """
        validate_project(project)

        objects_path = self.objects_mirror(project)
        refs_path = self.refs_mirror(remote_config.name, project)
        url = remote_config.project_url(project)
        transport = self.transport_for(url, depth)

        with self._lock(project):
            repo = self.open_or_create_bare_repo(objects_path)
            try:
                self._configure_remote(repo, remote_config.name, url, mirror=True)
            finally:
                repo.close()

            if progress is not None:
                progress(f"fetching {project} from {remote_config.name}")
            logger.debug(f"fetching {url} {branch} into {objects_path} via {type(transport).__name__}")
            transport.fetch(objects_path, remote_config.name, url, branch, depth)

            try:
                Repo(str(refs_path)).close()
            except NotGitRepository:
                logger.debug(f"creating ref mirror {refs_path}")
                self.clone_alternates(objects_path, refs_path, bare=True).close()

            logger.debug(f"replacing refs of {refs_path}")
            self.replace_dir(
                objects_path / "refs" / "remotes" / remote_config.name,
                refs_path / "refs" / "heads",
            )

    def clone_repo(
        self,
        remote_config: RemoteConfig,
        project: str,
        branch: str,
        path: PathLike
    ) -> None:
        """
        Create a working checkout of ``project`` at ``path``.

        The checkout borrows objects from the object mirror, fetches from the
        ref mirror and pushes to the real remote. HEAD is left detached at
        the commit ``branch`` resolves to.
        """
        validate_project(project)
        path = Path(path)
        objects_path = self.objects_mirror(project)
        refs_path = self.refs_mirror(remote_config.name, project)

        if not objects_path.is_dir():
            raise DepotError(f"depot {self.name} has no mirror of {project}")

        repo = self.clone_alternates(objects_path, path, bare=False)
        try:
            try:
                self._configure_remote(
                    repo,
                    remote_config.name,
                    str(refs_path.absolute()),
                    push_url=f"{remote_config.url}{project}",
                )
            finally:
                repo.close()

            self.update_remote_refs(remote_config, project, path)
            head = self._checkout_detached(remote_config, branch, path)
        except BaseException:
            # A checkout without a HEAD commit must not look like a clone.
            logger.debug(f"removing incomplete clone of {project} at {path}")
            shutil.rmtree(path / ".git", ignore_errors=True)
            raise

        logger.debug(f"cloned {project} into {path} at {head.id.decode()}")

    @staticmethod
    def _checkout_detached(remote_config: RemoteConfig, branch: str, path: Path):
        with Repo(str(path)) as repo:
            head = parse_revision(repo, remote_config.name, branch)
            try:
                build_index_from_tree(repo.path, repo.index_path(), repo.object_store, head.tree)
            except OSError as e:
                raise DepotError(f"failed to checkout HEAD at {path}") from e

            # Drop the symbolic HEAD so the commit id is written to HEAD itself.
            del repo.refs[b"HEAD"]
            repo.refs[b"HEAD"] = head.id
        return head

    def update_remote_refs(self, remote_config: RemoteConfig, project: str, path: PathLike) -> None:
        """Refresh a checkout's ``refs/remotes/<remote>`` from the ref mirror."""
        validate_project(project)
        mirror_refs = self.refs_mirror(remote_config.name, project) / "refs" / "heads"
        repo_refs = self.git_path(path) / "refs" / "remotes" / remote_config.name

        with self._lock(project):
            self.replace_dir(mirror_refs, repo_refs)
