"""
pore - a fast manager for source trees made of many git repositories.

A manifest lists projects (name, path, remote, branch, groups); pore mirrors
every project once per host in a depot and checks the projects out into a
tree, sharing objects between checkouts through git alternates.

Quick Start:
    from pathlib import Path
    import pore

    config = pore.load_config()
    remote = config.find_remote("aosp")
    depot = config.find_depot(remote.depot)

    tree = pore.Tree.construct(depot, Path("master"), remote, "master",
                               group_filters=[], fetch=True)
    with pore.JobPool() as pool:
        rc = tree.sync(config, pool, depot,
                       fetch=pore.FetchType.FETCH_EXCEPT_MANIFEST)

Domain Objects:
    Project - A manifest project bound to a remote, path and branch
    GroupFilter - Include/exclude predicate over project groups
    OperationSummary - Per-project outcomes of a tree-wide operation
"""

__version__ = "0.3.0"

from .config import Config, RemoteConfig, DepotConfig, load_config
from .depot import Depot, Transport, select_transport
from .domain import (
    Project,
    GroupFilter,
    FilterKind,
    FetchType,
    CheckoutType,
    OperationStatus,
    OperationSummary,
)
from .infra import JobPool
from .manifest import Manifest
from .tree import Tree

__all__ = [
    "__version__",
    "Config",
    "RemoteConfig",
    "DepotConfig",
    "load_config",
    "Depot",
    "Transport",
    "select_transport",
    "Project",
    "GroupFilter",
    "FilterKind",
    "FetchType",
    "CheckoutType",
    "OperationStatus",
    "OperationSummary",
    "JobPool",
    "Manifest",
    "Tree",
]
