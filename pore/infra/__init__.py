"""
Infrastructure layer for pore.

Contains abstractions for external systems:
- GitClient: Git binary execution
- JobPool: Bounded worker pool for per-project jobs
- FileStore: Atomic TOML persistence of tree state

These provide clean interfaces that can be mocked for testing.
"""

from .git_client import GitClient, GitStatus
from .job_pool import JobPool, JobResult, default_job_count
from .file_store import FileStore

__all__ = [
    'GitClient',
    'GitStatus',
    'JobPool',
    'JobResult',
    'default_job_count',
    'FileStore',
]
