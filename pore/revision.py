"""
Revision resolution.

Turns a branch name, ref or commit id into a commit object of a dulwich
repository, preferring the remote-tracking ref of the given remote.
"""

import re
from typing import Iterator

from dulwich.objects import Commit, Tag
from dulwich.repo import Repo

from .exit_codes import RevisionError

_SHA_RE = re.compile(r'[0-9a-f]{40}')


def _candidate_refs(remote: str, rev: str) -> Iterator[str]:
    if rev.startswith('refs/'):
        yield rev
        return
    yield f"refs/remotes/{remote}/{rev}"
    yield f"refs/heads/{rev}"
    yield f"refs/tags/{rev}"
    yield f"refs/remotes/{rev}"


def _peel_to_commit(repo: Repo, sha: bytes, rev: str) -> Commit:
    obj = repo[sha]
    while isinstance(obj, Tag):
        obj = repo[obj.object[1]]
    if not isinstance(obj, Commit):
        raise RevisionError(f"revision {rev!r} does not name a commit")
    return obj


def parse_revision(repo: Repo, remote: str, rev: str) -> Commit:
    """
    Resolve ``rev`` in ``repo``.

    Lookup order: ``refs/remotes/<remote>/<rev>``, ``refs/heads/<rev>``,
    ``refs/tags/<rev>``, ``refs/remotes/<rev>``, then a full commit id.
    A ``rev`` starting with ``refs/`` is only looked up as given.

    Raises:
        RevisionError: if nothing matches
    """
    for ref in _candidate_refs(remote, rev):
        key = ref.encode()
        try:
            sha = repo.refs[key]
        except KeyError:
            continue
        return _peel_to_commit(repo, sha, rev)

    if _SHA_RE.fullmatch(rev):
        sha = rev.encode()
        if sha in repo.object_store:
            return _peel_to_commit(repo, sha, rev)

    raise RevisionError(f"failed to resolve revision {rev!r} in {repo.path}")
