"""
Bounded worker pool for per-project jobs.

One pool is created per command invocation and passed to every tree-wide
operation. ``run`` drains everything it submitted before returning, and a
job that raises is recorded as a failed result instead of cancelling its
siblings.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

Job = Tuple[str, Callable[[], Any]]


def default_job_count() -> int:
    """One worker per CPU."""
    return os.cpu_count() or 1


@dataclass
class JobResult:
    """Outcome of one job: its value, or the exception it raised."""
    name: str
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class JobPool:
    """
    Thread pool sized to an explicit job count or the host's CPU count.

    Example:
        with JobPool(jobs=4) as pool:
            results = pool.run([("a", fn_a), ("b", fn_b)])
    """

    def __init__(self, jobs: Optional[int] = None):
        if jobs is None:
            jobs = default_job_count()
        if jobs < 1:
            raise ValueError(f"job count must be at least 1, got {jobs}")
        self.jobs = jobs
        self._executor = ThreadPoolExecutor(max_workers=jobs, thread_name_prefix="pore-job")

    def run(
        self,
        jobs: Iterable[Job],
        on_complete: Optional[Callable[[JobResult], None]] = None
    ) -> List[JobResult]:
        """
        Run every job and wait for all of them.

        Args:
            jobs: (name, callable) pairs
            on_complete: Called on the calling thread as each job finishes

        Returns:
            One JobResult per job, in completion order
        """
        futures = {self._executor.submit(fn): name for name, fn in jobs}
        results = []

        for future in as_completed(futures):
            name = futures[future]
            try:
                result = JobResult(name=name, value=future.result())
            except Exception as e:
                logger.debug(f"job {name} failed: {e}", exc_info=True)
                result = JobResult(name=name, error=e)

            results.append(result)
            if on_complete is not None:
                on_complete(result)

        return results

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> 'JobPool':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
