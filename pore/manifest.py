"""
Manifest parsing for pore.

Reads manifests in the ``repo`` XML format:

    <manifest>
      <remote name="aosp" fetch=".." review="https://android-review.googlesource.com/" />
      <default revision="master" remote="aosp" sync-j="4" />
      <project path="build/make" name="platform/build" groups="pdk" />
      <include name="extra.xml" />
      <remove-project name="platform/unwanted" />
    </manifest>

Remote ``fetch`` attributes are recorded but never used to build URLs;
URLs always come from the configured remote of the same name.
"""

import os
import re
import xml.dom.minidom
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from xml.parsers.expat import ExpatError

from .exit_codes import ManifestError


def _parse_list(value: str) -> List[str]:
    """Parse fields that contain flattened lists, separated by commas and/or whitespace."""
    return [x for x in re.split(r'[,\s]+', value) if x]


@dataclass
class ManifestRemote:
    name: str
    fetch: str = ""
    review: Optional[str] = None


@dataclass
class ManifestDefault:
    remote: Optional[str] = None
    revision: Optional[str] = None
    sync_j: Optional[int] = None


@dataclass
class ManifestProject:
    """A project entry as written in the manifest, before binding to a remote."""
    name: str
    path: str
    remote: Optional[str] = None
    revision: Optional[str] = None
    groups: List[str] = field(default_factory=list)
    clone_depth: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'path': self.path,
            'remote': self.remote,
            'revision': self.revision,
            'groups': list(self.groups),
            'clone_depth': self.clone_depth,
        }


@dataclass
class Manifest:
    remotes: Dict[str, ManifestRemote] = field(default_factory=dict)
    default: ManifestDefault = field(default_factory=ManifestDefault)
    projects: List[ManifestProject] = field(default_factory=list)

    @classmethod
    def parse_file(cls, path) -> 'Manifest':
        """
        Parse a manifest file, following ``<include>`` elements.

        Raises:
            ManifestError: if the file is unreadable or malformed
        """
        manifest = cls()
        manifest._parse(os.fspath(path), seen=set())

        paths = set()
        for project in manifest.projects:
            if project.path in paths:
                raise ManifestError(f"duplicate project path {project.path!r} in {path}")
            paths.add(project.path)

        return manifest

    def _parse(self, path: str, seen: set) -> None:
        real_path = os.path.realpath(path)
        if real_path in seen:
            raise ManifestError(f"include loop through {path}")
        seen.add(real_path)

        try:
            root = xml.dom.minidom.parse(path)
        except (OSError, ExpatError) as e:
            raise ManifestError(f"failed to parse manifest {path}") from e

        manifest_nodes = [
            node for node in root.childNodes
            if node.nodeType == node.ELEMENT_NODE and node.nodeName == 'manifest'
        ]
        if not manifest_nodes:
            raise ManifestError(f"no <manifest> element in {path}")

        for node in manifest_nodes[0].childNodes:
            if node.nodeType != node.ELEMENT_NODE:
                continue

            if node.nodeName == 'remote':
                self._parse_remote(node, path)
            elif node.nodeName == 'default':
                self._parse_default(node, path)
            elif node.nodeName == 'project':
                self.projects.append(self._parse_project(node, path))
            elif node.nodeName == 'include':
                name = node.getAttribute('name')
                if not name:
                    raise ManifestError(f"<include> without name in {path}")
                self._parse(os.path.join(os.path.dirname(path), name), seen)
            elif node.nodeName == 'remove-project':
                name = node.getAttribute('name')
                self.projects = [p for p in self.projects if p.name != name]

    def _parse_remote(self, node, path: str) -> None:
        name = node.getAttribute('name')
        if not name:
            raise ManifestError(f"<remote> without name in {path}")
        self.remotes[name] = ManifestRemote(
            name=name,
            fetch=node.getAttribute('fetch'),
            review=node.getAttribute('review') or None,
        )

    def _parse_default(self, node, path: str) -> None:
        sync_j = node.getAttribute('sync-j')
        self.default = ManifestDefault(
            remote=node.getAttribute('remote') or None,
            revision=node.getAttribute('revision') or None,
            sync_j=_parse_int(sync_j, 'sync-j', path) if sync_j else None,
        )

    def _parse_project(self, node, path: str) -> ManifestProject:
        name = node.getAttribute('name')
        if not name:
            raise ManifestError(f"<project> without name in {path}")

        depth = node.getAttribute('clone-depth')
        return ManifestProject(
            name=name,
            path=node.getAttribute('path') or name,
            remote=node.getAttribute('remote') or None,
            revision=node.getAttribute('revision') or None,
            groups=_parse_list(node.getAttribute('groups')),
            clone_depth=_parse_int(depth, 'clone-depth', path) if depth else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'remotes': {
                name: {'fetch': remote.fetch, 'review': remote.review}
                for name, remote in self.remotes.items()
            },
            'default': {
                'remote': self.default.remote,
                'revision': self.default.revision,
                'sync_j': self.default.sync_j,
            },
            'projects': [project.to_dict() for project in self.projects],
        }


def _parse_int(value: str, attribute: str, path: str) -> int:
    try:
        number = int(value)
    except ValueError as e:
        raise ManifestError(f"invalid {attribute} {value!r} in {path}") from e
    if number <= 0:
        raise ManifestError(f"invalid {attribute} {value!r} in {path}")
    return number
