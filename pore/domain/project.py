"""
Project domain objects for pore.

A project is one manifest entry bound to a checkout path, a configured
remote and a branch. The enums here are the closed sets of modes that
tree-wide operations are driven by.
"""

import posixpath
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Sequence

from ..config import RemoteConfig


class FilterKind(Enum):
    """Whether a group filter selects or rejects matching projects."""
    INCLUDE = "include"
    EXCLUDE = "exclude"


@dataclass(frozen=True)
class GroupFilter:
    """
    A single group predicate, e.g. ``pdk`` or ``-darwin``.

    A project passes a list of filters iff no EXCLUDE filter names one of
    its groups, and either there are no INCLUDE filters or one of them names
    one of its groups.
    """
    kind: FilterKind
    group: str

    @classmethod
    def include(cls, group: str) -> 'GroupFilter':
        return cls(FilterKind.INCLUDE, group)

    @classmethod
    def exclude(cls, group: str) -> 'GroupFilter':
        return cls(FilterKind.EXCLUDE, group)

    @classmethod
    def parse(cls, text: str) -> 'GroupFilter':
        if text.startswith('-'):
            return cls.exclude(text[1:])
        return cls.include(text)

    @classmethod
    def parse_list(cls, text: Optional[str]) -> List['GroupFilter']:
        """Parse a comma separated filter list as given on the command line."""
        if not text:
            return []
        return [cls.parse(part.strip()) for part in text.split(',') if part.strip()]

    def __str__(self) -> str:
        if self.kind is FilterKind.EXCLUDE:
            return f"-{self.group}"
        return self.group


def groups_match(groups: Iterable[str], filters: Sequence[GroupFilter]) -> bool:
    """Apply group filters to a project's group set."""
    groups = set(groups)
    has_include = False
    included = False

    for group_filter in filters:
        if group_filter.kind is FilterKind.EXCLUDE:
            if group_filter.group in groups:
                return False
        elif group_filter.kind is FilterKind.INCLUDE:
            has_include = True
            if group_filter.group in groups:
                included = True

    return included or not has_include


def normalize_project_path(path: str) -> str:
    """Normalize a tree-relative path; the tree root itself becomes ``.``."""
    path = path.replace('\\', '/').strip()
    if not path:
        return '.'
    return posixpath.normpath(path)


def path_in_scope(path: str, scopes: Optional[Sequence[str]]) -> bool:
    """
    True if ``path`` equals or is nested under any scope entry.

    ``None`` means no scoping: every path matches.
    """
    if scopes is None:
        return True

    path = normalize_project_path(path)
    for scope in scopes:
        scope = normalize_project_path(scope)
        if scope == '.':
            return True
        if path == scope or path.startswith(scope + '/'):
            return True
    return False


class FetchType(Enum):
    """Whether a sync talks to the network."""
    NO_FETCH = "no_fetch"
    FETCH = "fetch"
    FETCH_EXCEPT_MANIFEST = "fetch_except_manifest"

    @property
    def fetches(self) -> bool:
        return self is not FetchType.NO_FETCH


class CheckoutType(Enum):
    """Whether a sync updates working directories after fetching."""
    CHECKOUT = "checkout"
    NO_CHECKOUT = "no_checkout"


@dataclass(frozen=True)
class Project:
    """A manifest project bound to a concrete remote, path and branch."""
    path: str
    name: str
    remote: RemoteConfig
    branch: str
    groups: FrozenSet[str] = field(default_factory=frozenset)
    depth: Optional[int] = None

    def matches(self, filters: Sequence[GroupFilter]) -> bool:
        return groups_match(self.groups, filters)

    def tracking_ref(self) -> str:
        """Remote-tracking ref that a checkout of this project follows."""
        if self.branch.startswith('refs/'):
            return self.branch
        return f"refs/remotes/{self.remote.name}/{self.branch}"
