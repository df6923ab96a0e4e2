"""
Git client infrastructure for pore.

Provides a clean abstraction over git command execution.
All invocations of the external git binary go through this client, making them:
- Easy to mock for testing
- Consistent in error handling
- Isolated from tree and depot logic
"""

import subprocess
from dataclasses import dataclass
from typing import Optional, List, Sequence, Tuple, Union
from pathlib import Path
import logging

from ..exit_codes import GitCommandError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class GitStatus:
    """Result of git status command."""
    branch: Optional[str] = None  # None when HEAD is detached
    head: Optional[str] = None
    clean: bool = True
    ahead: int = 0
    behind: int = 0
    has_upstream: bool = False
    untracked_files: int = 0
    staged_files: int = 0
    modified_files: int = 0


class GitClient:
    """
    Abstraction over git commands.

    Provides methods for the git operations pore needs on working
    checkouts and mirrors, with consistent error handling and return types.

    Example:
        client = GitClient()
        status = client.status("/path/to/checkout")
        if status.clean:
            print("Checkout is clean")
    """

    def __init__(self, git: str = "git", timeout: Optional[int] = None):
        """
        Initialize GitClient.

        Args:
            git: Name or path of the git binary
            timeout: Command timeout in seconds (default: no timeout)
        """
        self.git = git
        self.timeout = timeout

    def _exec(self, args: Sequence[str], cwd: PathLike) -> subprocess.CompletedProcess:
        cmd = [self.git, "-C", str(cwd), *args]
        logger.debug(f"Running: {' '.join(cmd)}")
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )

    def _run(self, args: Sequence[str], cwd: PathLike) -> Tuple[Optional[str], int]:
        """
        Run a git command for its output.

        Args:
            args: Arguments after ``git -C <cwd>``
            cwd: Repository the command runs against

        Returns:
            Tuple of (stripped stdout or None, returncode)
        """
        try:
            result = self._exec(args, cwd)
        except subprocess.TimeoutExpired:
            logger.warning(f"Git command timed out: git {' '.join(args)}")
            return None, -1
        except OSError as e:
            logger.error(f"Git command failed: git {' '.join(args)} - {e}")
            return None, -1

        output = result.stdout.strip() if result.stdout else None
        return output, result.returncode

    def _run_checked(self, args: Sequence[str], cwd: PathLike) -> str:
        """Run a git command, raising GitCommandError with its stderr on failure."""
        try:
            result = self._exec(args, cwd)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise GitCommandError(f"failed to run git {args[0]}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise GitCommandError(
                stderr or f"git {args[0]} exited with status {result.returncode}",
                stderr=stderr,
                returncode=result.returncode,
            )
        return result.stdout or ""

    def is_git_repo(self, path: PathLike) -> bool:
        """Check if path is a non-bare git checkout."""
        git_dir = Path(path) / ".git"
        return git_dir.exists()

    def current_branch(self, path: PathLike) -> Optional[str]:
        """Get current branch name, or None if HEAD is detached."""
        output, code = self._run(["symbolic-ref", "--quiet", "--short", "HEAD"], cwd=path)
        if code == 0 and output:
            return output
        return None

    def head_commit(self, path: PathLike) -> Optional[str]:
        output, code = self._run(["rev-parse", "--verify", "--quiet", "HEAD"], cwd=path)
        if code == 0 and output:
            return output
        return None

    def rev_parse(self, path: PathLike, rev: str) -> Optional[str]:
        output, code = self._run(["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"], cwd=path)
        if code == 0 and output:
            return output
        return None

    def status(self, path: PathLike) -> GitStatus:
        """
        Get working tree status.

        Args:
            path: Path to git checkout

        Returns:
            GitStatus with branch, change counts and upstream divergence
        """
        result = GitStatus(
            branch=self.current_branch(path),
            head=self.head_commit(path),
        )

        output = self._run_checked(["status", "--porcelain"], cwd=path)
        lines = [line for line in output.splitlines() if line.strip()]
        if lines:
            result.clean = False
            result.untracked_files = sum(1 for line in lines if line.startswith('??'))
            result.staged_files = sum(1 for line in lines if line[0] in 'MADRC')
            result.modified_files = sum(1 for line in lines if line[1] in 'MADRC')

        if result.branch:
            upstream = self.upstream(path, result.branch)
            if upstream:
                result.has_upstream = True
                result.ahead, result.behind = self.ahead_behind(path, "HEAD", upstream)

        return result

    def upstream(self, path: PathLike, branch: str) -> Optional[str]:
        """Full ref name of a branch's configured upstream, if any."""
        output, code = self._run(
            ["rev-parse", "--verify", "--quiet", "--symbolic-full-name", f"{branch}@{{upstream}}"],
            cwd=path,
        )
        if code == 0 and output:
            return output
        return None

    def ahead_behind(self, path: PathLike, local: str, upstream: str) -> Tuple[int, int]:
        output, code = self._run(
            ["rev-list", "--left-right", "--count", f"{local}...{upstream}"], cwd=path
        )
        if code == 0 and output:
            parts = output.split()
            if len(parts) == 2:
                try:
                    return int(parts[0]), int(parts[1])
                except ValueError:
                    pass
        return 0, 0

    def local_branches(self, path: PathLike) -> List[str]:
        output = self._run_checked(
            ["for-each-ref", "--format=%(refname:short)", "refs/heads/"], cwd=path
        )
        return [line.strip() for line in output.splitlines() if line.strip()]

    def is_ancestor(self, path: PathLike, commit: str, ref: str) -> bool:
        _, code = self._run(["merge-base", "--is-ancestor", commit, ref], cwd=path)
        return code == 0

    def has_unmerged_commits(self, path: PathLike, upstream: str, branch: str) -> bool:
        """
        True if ``branch`` carries a commit with no patch-equivalent in ``upstream``.

        Covers branches whose changes landed upstream as cherry-picks or rebases.
        """
        output = self._run_checked(["cherry", upstream, branch], cwd=path)
        return any(line.startswith('+') for line in output.splitlines())

    def delete_branch(self, path: PathLike, branch: str) -> None:
        self._run_checked(["branch", "-D", branch], cwd=path)

    def create_branch(self, path: PathLike, branch: str, start_point: str) -> None:
        """Create and check out ``branch`` at ``start_point``, tracking it."""
        self._run_checked(["checkout", "-q", "--track", "-b", branch, start_point], cwd=path)

    def checkout_detached(self, path: PathLike, rev: str) -> None:
        self._run_checked(["checkout", "-q", "--detach", rev], cwd=path)

    def merge_ff_only(self, path: PathLike, rev: str) -> None:
        self._run_checked(["merge", "-q", "--ff-only", rev], cwd=path)

    def fetch(
        self,
        path: PathLike,
        remote: str,
        branch: str,
        depth: Optional[int] = None
    ) -> None:
        """
        Fetch one branch from a configured remote without tags.

        Raises:
            GitCommandError: carrying git's stderr when the fetch fails
        """
        args = ["fetch", remote, branch, "--no-tags"]
        if depth is not None:
            args += ["--depth", str(depth)]
        self._run_checked(args, cwd=path)
