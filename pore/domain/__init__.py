"""
Domain layer for pore.

Contains pure domain objects with no I/O or side effects:
- Project: A manifest project bound to a remote, path and branch
- GroupFilter: Include/exclude predicate over project groups
- FetchType / CheckoutType: Modes driving a sync
- OperationSummary: Aggregated per-project results of a tree-wide operation
"""

from .project import (
    Project,
    GroupFilter,
    FilterKind,
    FetchType,
    CheckoutType,
    groups_match,
    path_in_scope,
    normalize_project_path,
)
from .operation import (
    OperationStatus,
    OperationDetail,
    OperationSummary,
    ForallResult,
    ProjectStatus,
)

__all__ = [
    'Project',
    'GroupFilter',
    'FilterKind',
    'FetchType',
    'CheckoutType',
    'groups_match',
    'path_in_scope',
    'normalize_project_path',
    'OperationStatus',
    'OperationDetail',
    'OperationSummary',
    'ForallResult',
    'ProjectStatus',
]
