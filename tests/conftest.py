"""
Shared fixtures: throwaway upstream repositories served over file:// URLs.
"""

import subprocess
from pathlib import Path
from typing import Dict, Optional

import pytest

from pore.config import Config, DepotConfig, RemoteConfig
from pore.depot import Depot

GIT_IDENTITY = [
    "-c", "user.name=Test",
    "-c", "user.email=test@example.com",
    "-c", "commit.gpgsign=false",
    "-c", "init.defaultBranch=main",
]


def git(cwd: Path, *args: str) -> str:
    """Run git in ``cwd`` and return its stripped stdout."""
    result = subprocess.run(
        ["git", *GIT_IDENTITY, "-C", str(cwd), *args],
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def commit_files(work: Path, files: Dict[str, str], message: str = "update") -> str:
    """Write ``files`` into ``work``, commit them and return the new commit id."""
    for name, content in files.items():
        path = work / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    git(work, "add", "-A")
    git(work, "commit", "-q", "-m", message)
    return git(work, "rev-parse", "HEAD")


def manifest_xml(projects, default_revision: Optional[str] = "main") -> str:
    lines = ['<?xml version="1.0" encoding="UTF-8"?>', "<manifest>"]
    lines.append('  <remote name="origin" fetch=".." />')
    if default_revision:
        lines.append(f'  <default remote="origin" revision="{default_revision}" />')
    for project in projects:
        attrs = " ".join(f'{key}="{value}"' for key, value in project.items())
        lines.append(f"  <project {attrs} />")
    lines.append("</manifest>")
    return "\n".join(lines) + "\n"


class Upstream:
    """
    A directory of bare repositories laid out like a hosting server.

    ``<root>/<project>.git`` is the bare repository of ``project``; a working
    clone of each lives under ``<root>/_work`` for making new commits.
    """

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    @property
    def url(self) -> str:
        return f"file://{self.root}/"

    def bare(self, project: str) -> Path:
        return self.root / f"{project}.git"

    def work(self, project: str) -> Path:
        return self.root / "_work" / project

    def add_project(self, project: str, files: Dict[str, str], branch: str = "main") -> str:
        """Create ``project`` with one commit on ``branch``; returns the commit id."""
        bare = self.bare(project)
        bare.mkdir(parents=True)
        git(bare, "init", "-q", "--bare")

        work = self.work(project)
        work.mkdir(parents=True)
        git(work, "init", "-q")
        git(work, "remote", "add", "origin", str(bare))
        return self.push(project, files, branch, message=f"initial {project}")

    def push(self, project: str, files: Dict[str, str], branch: str = "main", message: str = "update") -> str:
        """Commit ``files`` on top of the working clone and push to ``branch``."""
        work = self.work(project)
        sha = commit_files(work, files, message)
        git(work, "push", "-q", "origin", f"HEAD:refs/heads/{branch}")
        return sha


@pytest.fixture
def upstream(tmp_path) -> Upstream:
    return Upstream(tmp_path / "upstream")


@pytest.fixture
def remote(upstream) -> RemoteConfig:
    return RemoteConfig(name="origin", url=upstream.url, manifest="platform/manifest", depot="test")


@pytest.fixture
def depot(tmp_path) -> Depot:
    return Depot("test", tmp_path / "depot")


@pytest.fixture
def config(tmp_path, remote) -> Config:
    return Config(
        remotes=[remote],
        depots=[DepotConfig(name="test", path=str(tmp_path / "depot"))],
    )
