"""Tests for depot mirroring: layout, transports, alternates and ref mirrors."""

from unittest.mock import MagicMock, patch

import pytest

from pore.config import RemoteConfig
from pore.depot import (
    Depot,
    ExternalTransport,
    NativeTransport,
    Transport,
    select_transport,
    validate_project,
)
from pore.exit_codes import (
    DepotError,
    GitCommandError,
    InvalidProjectError,
    RevisionError,
    TransportError,
    root_cause,
)

from conftest import Upstream, git


class TestSelectTransport:
    """Transport choice is a pure function of the URL scheme and depth."""

    @pytest.mark.parametrize("url", [
        "https://android.googlesource.com/platform/build.git",
        "http://example.com/repo.git",
        "git://example.com/repo.git",
        "ssh://git@example.com/repo.git",
        "/srv/git/repo.git",
    ])
    def test_native_schemes_without_depth(self, url):
        assert select_transport(url) is Transport.NATIVE

    def test_depth_forces_external(self):
        assert select_transport("https://example.com/repo.git", depth=1) is Transport.EXTERNAL

    @pytest.mark.parametrize("url", [
        "file:///srv/git/repo.git",
        "rsync://example.com/repo.git",
    ])
    def test_other_schemes_are_external(self, url):
        assert select_transport(url) is Transport.EXTERNAL

    def test_depot_maps_choice_to_strategy(self, depot):
        assert isinstance(depot.transport_for("https://example.com/x.git"), NativeTransport)
        assert isinstance(depot.transport_for("file:///x.git"), ExternalTransport)
        assert isinstance(depot.transport_for("https://example.com/x.git", depth=3), ExternalTransport)


class TestProjectValidation:
    """Malformed project names are rejected before any I/O."""

    @pytest.mark.parametrize("project", ["/x", "x/", "", "a/../b", ".."])
    def test_invalid_names(self, project):
        with pytest.raises(InvalidProjectError):
            validate_project(project)

    @pytest.mark.parametrize("project", ["x", "platform/build", "device/google/coral"])
    def test_valid_names(self, project):
        validate_project(project)

    @pytest.mark.parametrize("project", ["/x", "x/"])
    def test_fetch_rejects_without_io(self, tmp_path, project):
        depot = Depot("test", tmp_path / "depot")
        remote = RemoteConfig(name="origin", url="https://example.com/")

        with patch.object(Depot, "open_or_create_bare_repo") as open_repo, \
                patch("pore.depot.FileLock") as lock:
            with pytest.raises(InvalidProjectError):
                depot.fetch_repo(remote, project, "main")

        open_repo.assert_not_called()
        lock.assert_not_called()
        assert not (tmp_path / "depot").exists()


class TestReplaceDir:
    """Tests for the directory replace primitive."""

    def _snapshot(self, root):
        return {
            str(path.relative_to(root)): path.read_bytes()
            for path in sorted(root.rglob("*")) if path.is_file()
        }

    def test_copies_entries(self, tmp_path):
        src = tmp_path / "src"
        (src / "feature").mkdir(parents=True)
        (src / "main").write_text("a" * 40 + "\n")
        (src / "feature" / "x").write_text("b" * 40 + "\n")

        Depot.replace_dir(src, tmp_path / "dst")

        assert self._snapshot(tmp_path / "dst") == self._snapshot(src)

    def test_idempotent(self, tmp_path):
        src = tmp_path / "src"
        src.mkdir()
        (src / "main").write_text("a" * 40 + "\n")
        (src / "stable").write_text("c" * 40 + "\n")
        dst = tmp_path / "dst"

        Depot.replace_dir(src, dst)
        first = self._snapshot(dst)
        Depot.replace_dir(src, dst)

        assert self._snapshot(dst) == first

    def test_drops_entries_missing_from_source(self, tmp_path):
        src = tmp_path / "src"
        src.mkdir()
        (src / "main").write_text("a" * 40 + "\n")
        dst = tmp_path / "dst"
        dst.mkdir()
        (dst / "stale").write_text("d" * 40 + "\n")

        Depot.replace_dir(src, dst)

        assert sorted(p.name for p in dst.iterdir()) == ["main"]

    def test_missing_source_rejected(self, tmp_path):
        dst = tmp_path / "dst"
        dst.mkdir()
        (dst / "main").write_text("a" * 40 + "\n")

        with pytest.raises(DepotError, match="nonexistent directory"):
            Depot.replace_dir(tmp_path / "missing", dst)

        # The destination is untouched.
        assert (dst / "main").exists()

    def test_leaves_no_staging_directory(self, tmp_path):
        src = tmp_path / "src"
        src.mkdir()
        (src / "main").write_text("a" * 40 + "\n")

        Depot.replace_dir(src, tmp_path / "refs" / "heads")

        assert [p.name for p in (tmp_path / "refs").iterdir()] == ["heads"]

    def test_failed_copy_keeps_destination(self, tmp_path):
        src = tmp_path / "src"
        src.mkdir()
        (src / "main").write_text("a" * 40 + "\n")
        dst = tmp_path / "refs" / "heads"
        dst.mkdir(parents=True)
        (dst / "main").write_text("b" * 40 + "\n")
        (dst / "stable").write_text("c" * 40 + "\n")
        before = self._snapshot(dst)

        with patch("pore.depot.shutil.copy2", side_effect=OSError("disk full")):
            with pytest.raises(DepotError, match="failed to copy"):
                Depot.replace_dir(src, dst)

        assert self._snapshot(dst) == before
        assert [p.name for p in (tmp_path / "refs").iterdir()] == ["heads"]


class TestLayout:

    def test_mirror_paths(self, tmp_path):
        depot = Depot("android", tmp_path)
        assert depot.objects_mirror("platform/build") == tmp_path / "objects" / "platform" / "build.git"
        assert depot.refs_mirror("aosp", "platform/build") == tmp_path / "refs" / "aosp" / "platform" / "build.git"

    def test_git_path(self, tmp_path):
        (tmp_path / "checkout" / ".git").mkdir(parents=True)
        (tmp_path / "bare").mkdir()
        assert Depot.git_path(tmp_path / "checkout") == tmp_path / "checkout" / ".git"
        assert Depot.git_path(tmp_path / "bare") == tmp_path / "bare"


class TestFetchRepo:
    """Fetching into the object mirror over real git repositories."""

    def test_fetch_creates_mirrors(self, upstream, remote, depot):
        sha = upstream.add_project("platform/build", {"Makefile": "all:\n"})

        depot.fetch_repo(remote, "platform/build", "main")

        objects = depot.objects_mirror("platform/build")
        refs = depot.refs_mirror("origin", "platform/build")
        assert git(objects, "rev-parse", "refs/remotes/origin/main") == sha
        assert (refs / "refs" / "heads" / "main").read_text().strip() == sha
        assert (refs / "objects" / "info" / "alternates").read_text() == f"{objects.absolute()}/objects\n"
        assert git(objects, "config", "remote.origin.url") == f"{upstream.url}platform/build.git"
        assert git(objects, "config", "gc.auto") == "0"

    def test_ref_mirror_resolves_objects_through_alternates(self, upstream, remote, depot):
        sha = upstream.add_project("tools/repo", {"README": "hi\n"})

        depot.fetch_repo(remote, "tools/repo", "main")

        refs = depot.refs_mirror("origin", "tools/repo")
        assert git(refs, "cat-file", "-t", sha) == "commit"
        assert not list((refs / "objects" / "pack").glob("*.pack"))

    def test_refetch_moves_ref_mirror(self, upstream, remote, depot):
        upstream.add_project("p", {"a": "1\n"})
        depot.fetch_repo(remote, "p", "main")
        newer = upstream.push("p", {"a": "2\n"})

        depot.fetch_repo(remote, "p", "main")

        assert (depot.refs_mirror("origin", "p") / "refs" / "heads" / "main").read_text().strip() == newer

    def test_ref_mirror_isolation(self, tmp_path, depot):
        upstream_a = Upstream(tmp_path / "a")
        upstream_b = Upstream(tmp_path / "b")
        upstream_a.add_project("proj", {"f": "a\n"}, branch="only-a")
        upstream_b.add_project("proj", {"f": "b\n"}, branch="only-b")
        remote_a = RemoteConfig(name="a", url=upstream_a.url)
        remote_b = RemoteConfig(name="b", url=upstream_b.url)

        depot.fetch_repo(remote_a, "proj", "only-a")
        depot.fetch_repo(remote_b, "proj", "only-b")

        heads_a = depot.refs_mirror("a", "proj") / "refs" / "heads"
        heads_b = depot.refs_mirror("b", "proj") / "refs" / "heads"
        assert sorted(p.name for p in heads_a.iterdir()) == ["only-a"]
        assert sorted(p.name for p in heads_b.iterdir()) == ["only-b"]
        # Both remotes share one object mirror.
        objects = depot.objects_mirror("proj")
        assert git(objects, "rev-parse", "refs/remotes/a/only-a")
        assert git(objects, "rev-parse", "refs/remotes/b/only-b")

    def test_shallow_fetch_uses_depth(self, upstream, remote, depot):
        upstream.add_project("deep", {"f": "1\n"})
        upstream.push("deep", {"f": "2\n"})
        head = upstream.push("deep", {"f": "3\n"})

        depot.fetch_repo(remote, "deep", "main", depth=1)

        objects = depot.objects_mirror("deep")
        assert (objects / "shallow").exists()
        assert git(objects, "rev-list", "--count", "refs/remotes/origin/main") == "1"
        assert git(objects, "rev-parse", "refs/remotes/origin/main") == head

    def test_native_fetch_from_local_path(self, upstream, depot):
        sha = upstream.add_project("native", {"f": "1\n"})
        remote = RemoteConfig(name="local", url=str(upstream.root))

        depot.fetch_repo(remote, "native", "main")

        objects = depot.objects_mirror("native")
        assert git(objects, "rev-parse", "refs/remotes/local/main") == sha
        assert (depot.refs_mirror("local", "native") / "refs" / "heads" / "main").read_text().strip() == sha

    def test_native_fetch_missing_branch(self, upstream, depot):
        upstream.add_project("native", {"f": "1\n"})
        remote = RemoteConfig(name="local", url=str(upstream.root))

        with pytest.raises(TransportError, match="has no branch nope"):
            depot.fetch_repo(remote, "native", "nope")

    def test_failed_fetch_surfaces_stderr(self, upstream, remote, depot):
        with pytest.raises(TransportError) as excinfo:
            depot.fetch_repo(remote, "does/not/exist", "main")

        cause = root_cause(excinfo.value)
        assert isinstance(cause, GitCommandError)
        assert cause.stderr
        assert str(cause) == cause.stderr
        assert not depot.refs_mirror("origin", "does/not/exist").exists()

    def test_progress_callback(self, upstream, remote, depot):
        upstream.add_project("p", {"f": "1\n"})
        progress = MagicMock()

        depot.fetch_repo(remote, "p", "main", progress=progress)

        progress.assert_called_once()
        assert "p" in progress.call_args[0][0]

    def test_fetch_holds_project_lock(self, upstream, remote, depot):
        upstream.add_project("p", {"f": "1\n"})

        with patch("pore.depot.FileLock") as lock:
            depot.fetch_repo(remote, "p", "main")

        lock.assert_called_once_with(f"{depot.objects_mirror('p')}.lock")
        lock.return_value.__enter__.assert_called_once()


class TestCloneRepo:
    """Working checkouts made from the depot."""

    def test_clone_shares_objects_and_detaches(self, tmp_path, upstream, remote, depot):
        sha = upstream.add_project("platform/build", {"Makefile": "all:\n", "core/main.mk": "x\n"})
        depot.fetch_repo(remote, "platform/build", "main")
        checkout = tmp_path / "tree" / "build"

        depot.clone_repo(remote, "platform/build", "main", checkout)

        objects = depot.objects_mirror("platform/build")
        alternates = checkout / ".git" / "objects" / "info" / "alternates"
        assert alternates.read_text() == f"{objects.absolute()}/objects\n"
        assert not list((checkout / ".git" / "objects" / "pack").glob("*.pack"))

        assert (checkout / "Makefile").read_text() == "all:\n"
        assert (checkout / "core" / "main.mk").read_text() == "x\n"
        assert git(checkout, "rev-parse", "HEAD") == sha
        assert (checkout / ".git" / "HEAD").read_text().strip() == sha
        assert git(checkout, "status", "--porcelain") == ""

    def test_clone_remote_points_at_ref_mirror(self, tmp_path, upstream, remote, depot):
        upstream.add_project("p", {"f": "1\n"})
        depot.fetch_repo(remote, "p", "main")
        checkout = tmp_path / "checkout"

        depot.clone_repo(remote, "p", "main", checkout)

        refs = depot.refs_mirror("origin", "p")
        assert git(checkout, "config", "remote.origin.url") == str(refs.absolute())
        assert git(checkout, "config", "remote.origin.pushurl") == f"{upstream.url}p"
        assert git(checkout, "rev-parse", "refs/remotes/origin/main") == git(refs, "rev-parse", "refs/heads/main")

    def test_clone_unknown_revision(self, tmp_path, upstream, remote, depot):
        upstream.add_project("p", {"f": "1\n"})
        depot.fetch_repo(remote, "p", "main")

        with pytest.raises(RevisionError, match="failed to resolve revision"):
            depot.clone_repo(remote, "p", "nope", tmp_path / "checkout")

    def test_interrupted_clone_is_removed(self, tmp_path, upstream, remote, depot):
        upstream.add_project("p", {"f": "1\n"})
        depot.fetch_repo(remote, "p", "main")
        checkout = tmp_path / "checkout"

        with patch("pore.depot.parse_revision", side_effect=RevisionError("transient")):
            with pytest.raises(RevisionError, match="transient"):
                depot.clone_repo(remote, "p", "main", checkout)

        assert not (checkout / ".git").exists()

        depot.clone_repo(remote, "p", "main", checkout)
        assert (checkout / "f").read_text() == "1\n"

    def test_clone_without_mirror(self, tmp_path, remote, depot):
        with pytest.raises(DepotError, match="has no mirror of p"):
            depot.clone_repo(remote, "p", "main", tmp_path / "checkout")

    def test_update_remote_refs(self, tmp_path, upstream, remote, depot):
        upstream.add_project("p", {"f": "1\n"})
        depot.fetch_repo(remote, "p", "main")
        checkout = tmp_path / "checkout"
        depot.clone_repo(remote, "p", "main", checkout)
        first = git(checkout, "rev-parse", "HEAD")

        newer = upstream.push("p", {"f": "2\n"})
        depot.fetch_repo(remote, "p", "main")
        depot.update_remote_refs(remote, "p", checkout)

        assert git(checkout, "rev-parse", "refs/remotes/origin/main") == newer
        # The working tree is untouched.
        assert git(checkout, "rev-parse", "HEAD") == first
        assert (checkout / "f").read_text() == "1\n"


class TestExternalTransport:

    def test_wraps_git_failure(self):
        client = MagicMock()
        client.fetch.side_effect = GitCommandError("fatal: repository not found", stderr="fatal: repository not found")
        transport = ExternalTransport(client)

        with pytest.raises(TransportError) as excinfo:
            transport.fetch("/mirror.git", "origin", "file:///x.git", "main", depth=2)

        client.fetch.assert_called_once_with("/mirror.git", "origin", "main", depth=2)
        assert str(root_cause(excinfo.value)) == "fatal: repository not found"
