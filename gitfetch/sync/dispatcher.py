"""
Fetch Dispatcher — Fan repository jobs out over a fixed worker pool.

## Protocol

1. Start exactly `workers` threads.
2. Put every path on a bounded job queue. Each job is taken by exactly one
   worker.
3. Set `no_more_jobs`. A worker that finds the queue empty after that
   exits. No sentinel values travel through the queue.
4. Join the workers, then collect one outcome per submitted path.

## Cancellation

The cancel event is checked before each submission and before a worker
takes its next job. Running jobs finish (the transport aborts cooperatively
through the progress callback); everything not yet started is reported as
not_attempted. fetch_all() always returns, even if every worker thread dies.

## Usage

    dispatcher = FetchDispatcher(RepositoryFetcher(settings), workers=8)
    outcomes = dispatcher.fetch_all(registry.list(), cancel=cancel_event)
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from ..errors import DispatcherConfigError
from ..models.outcome import RepositoryOutcome

logger = logging.getLogger(__name__)

JobRunner = Callable[[str, Optional[threading.Event]], RepositoryOutcome]


@dataclass(frozen=True)
class Job:
    """One repository to fetch. index keeps duplicate paths distinct."""

    index: int
    path: str


@dataclass
class WorkerPoolState:
    """Queues and signals shared between the dispatcher and its workers."""

    workers: int
    jobs: "queue.Queue[Job]"
    completions: "queue.Queue[tuple]" = field(default_factory=queue.Queue)
    no_more_jobs: threading.Event = field(default_factory=threading.Event)


class FetchDispatcher:
    """Runs a job per repository path on a fixed pool of worker threads."""

    def __init__(self, runner: JobRunner, workers: int, poll_interval: float = 0.05):
        if workers <= 0:
            raise DispatcherConfigError(f"Worker count must be positive, got {workers}")
        self.runner = runner
        self.workers = workers
        self.poll_interval = poll_interval

    def fetch_all(
        self,
        paths: Sequence[str],
        cancel: Optional[threading.Event] = None,
    ) -> List[RepositoryOutcome]:
        """
        Fetch every path and return exactly one outcome per path.

        Args:
            paths: Repository paths to fetch
            cancel: Event that stops new jobs from starting when set

        Returns:
            Outcomes in completion order, followed by not-attempted paths
        """
        cancel = cancel or threading.Event()
        jobs = [Job(index=i, path=p) for i, p in enumerate(paths)]
        state = WorkerPoolState(workers=self.workers, jobs=queue.Queue(maxsize=self.workers))

        threads = [
            threading.Thread(
                target=self._worker,
                args=(state, cancel),
                name=f"gitfetch-worker-{n}",
                daemon=True,
            )
            for n in range(self.workers)
        ]
        for thread in threads:
            thread.start()

        logger.info(f"[dispatcher] {len(jobs)} repositories, {self.workers} workers")

        submitted = self._submit(state, jobs, cancel, threads)
        state.no_more_jobs.set()

        for thread in threads:
            thread.join()

        return self._collect(state, jobs, submitted)

    def _submit(
        self,
        state: WorkerPoolState,
        jobs: List[Job],
        cancel: threading.Event,
        threads: List[threading.Thread],
    ) -> int:
        """
        Feed jobs to the bounded queue. Returns how many were enqueued.

        Stops early on cancel, or when every worker has died and nothing
        would ever drain the queue.
        """
        submitted = 0
        for job in jobs:
            while True:
                if cancel.is_set():
                    logger.warning(
                        f"[dispatcher] Cancelled after submitting {submitted}/{len(jobs)}"
                    )
                    return submitted
                try:
                    state.jobs.put(job, timeout=self.poll_interval)
                    break
                except queue.Full:
                    if not any(t.is_alive() for t in threads):
                        logger.error(
                            f"[dispatcher] All workers exited, submitted {submitted}/{len(jobs)}"
                        )
                        return submitted
                    continue
            submitted += 1
        return submitted

    def _worker(self, state: WorkerPoolState, cancel: threading.Event) -> None:
        while not cancel.is_set():
            try:
                job = state.jobs.get(timeout=self.poll_interval)
            except queue.Empty:
                if state.no_more_jobs.is_set():
                    return
                continue

            state.completions.put((job.index, self._run(job, cancel)))

    def _run(self, job: Job, cancel: threading.Event) -> RepositoryOutcome:
        try:
            return self.runner(job.path, cancel)
        except Exception as e:
            # A job failure is reported on that path and never stops the pool
            logger.exception(
                f"[dispatcher] Unexpected error fetching {job.path}",
                extra={"repository": job.path},
            )
            return RepositoryOutcome.failed(job.path, f"unexpected error: {e}")

    def _collect(
        self, state: WorkerPoolState, jobs: List[Job], submitted: int
    ) -> List[RepositoryOutcome]:
        completed: Dict[int, RepositoryOutcome] = {}
        outcomes: List[RepositoryOutcome] = []
        while True:
            try:
                index, outcome = state.completions.get_nowait()
            except queue.Empty:
                break
            completed[index] = outcome
            outcomes.append(outcome)

        # Queued but never taken, or never submitted
        skipped = [job for job in jobs if job.index not in completed]
        for job in skipped:
            outcomes.append(RepositoryOutcome.not_attempted(job.path))

        if skipped:
            logger.warning(
                f"[dispatcher] {len(skipped)} repositories not attempted "
                f"({submitted} submitted, {len(completed)} completed)"
            )
        return outcomes


def fetch_all(
    paths: Sequence[str],
    workers: int,
    runner: JobRunner,
    cancel: Optional[threading.Event] = None,
) -> List[RepositoryOutcome]:
    """Run one fetch-all pass. Raises DispatcherConfigError if workers <= 0."""
    return FetchDispatcher(runner, workers).fetch_all(paths, cancel=cancel)
