"""
Operation result domain objects for pore.

Provides standardized result types for tree-wide operations that fan out
over projects (sync, prune, forall, status).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional

from ..exit_codes import SUCCESS, GENERAL_ERROR


class OperationStatus(Enum):
    """Status of an individual operation."""
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class OperationDetail:
    """
    Details of a single operation on one project.

    Used to track what happened to each project during tree-wide operations.
    """
    project_path: str
    project_name: str
    status: OperationStatus
    action: str  # e.g., "cloned", "fetched", "checked_out", "pruned"
    message: Optional[str] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            'path': self.project_path,
            'name': self.project_name,
            'status': self.status.value,
            'action': self.action,
        }
        if self.message:
            result['message'] = self.message
        if self.error:
            result['error'] = self.error
        if self.metadata:
            result.update(self.metadata)
        return result


@dataclass
class ForallResult(OperationDetail):
    """Result of running a command inside one project."""
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""


@dataclass
class ProjectStatus(OperationDetail):
    """Working tree state of one project."""
    branch: Optional[str] = None
    head: Optional[str] = None
    ahead: int = 0
    behind: int = 0
    staged: int = 0
    modified: int = 0
    untracked: int = 0
    missing: bool = False

    @property
    def detached(self) -> bool:
        return self.branch is None and not self.missing

    @property
    def clean(self) -> bool:
        return not (self.staged or self.modified or self.untracked)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            'branch': self.branch,
            'head': self.head,
            'ahead': self.ahead,
            'behind': self.behind,
            'staged': self.staged,
            'modified': self.modified,
            'untracked': self.untracked,
            'missing': self.missing,
        })
        return result


@dataclass
class OperationSummary:
    """
    Summary of a tree-wide operation across multiple projects.

    Collects statistics and details from every project job; a failed job
    never prevents the remaining jobs from being recorded.
    """
    operation: str  # e.g., "sync", "prune", "forall", "status"
    total: int = 0
    successful: int = 0
    skipped: int = 0
    failed: int = 0
    details: List[OperationDetail] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True if no failures occurred."""
        return self.failed == 0

    @property
    def exit_code(self) -> int:
        return SUCCESS if self.success else GENERAL_ERROR

    def add_detail(self, detail: OperationDetail) -> None:
        """Add an operation detail and update counts."""
        self.details.append(detail)
        self.total += 1

        if detail.status == OperationStatus.SUCCESS:
            self.successful += 1
        elif detail.status == OperationStatus.SKIPPED:
            self.skipped += 1
        elif detail.status == OperationStatus.FAILED:
            self.failed += 1

    def detail_for(self, project_path: str) -> Optional[OperationDetail]:
        for detail in self.details:
            if detail.project_path == project_path:
                return detail
        return None
