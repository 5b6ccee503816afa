# api/jobs.py
"""
In-process job queue for server-tier analyses.

A JobManager runs analyses on a thread pool and exposes, per job:

    status   pending -> running -> completed | failed | cancelled
    events   ordered (seq, phase, percent, message) progress events,
             ending in exactly one terminal event

Cancellation is cooperative: cancel() sets the job's CancelToken, which the
analysis checks between stages and between rating pairs. A pending job is
cancelled immediately.

Finished jobs are kept for polling up to a retention limit; beyond it the
oldest finished job is forgotten and its id becomes unknown.
"""

import itertools
import logging
import threading
import uuid
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from mini_bridge.analysis import AnalysisRequest, AnalysisResult, Tier, run_analysis
from mini_bridge.errors import BridgeAnalysisError, CancelledError
from mini_bridge.progress import CancelToken

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


TERMINAL = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


@dataclass(frozen=True)
class ProgressEvent:
    seq: int
    phase: str
    percent: float
    message: Optional[str] = None
    terminal: bool = False

    def as_dict(self) -> dict:
        return {
            'seq': self.seq,
            'phase': self.phase,
            'percent': self.percent,
            'message': self.message,
            'terminal': self.terminal,
        }


@dataclass
class Job:
    id: str
    request: AnalysisRequest
    tier: Optional[Tier] = None
    status: JobStatus = JobStatus.PENDING
    events: List[ProgressEvent] = field(default_factory=list)
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    token: CancelToken = field(default_factory=CancelToken)
    done: threading.Event = field(default_factory=threading.Event)
    _seq: itertools.count = field(default_factory=lambda: itertools.count(1))

    @property
    def summary(self) -> Optional[dict]:
        return self.result.summary if self.result is not None else None

    @property
    def detail(self) -> Optional[dict]:
        return self.result.detail if self.result is not None else None


Runner = Callable[..., AnalysisResult]


class JobManager:
    """
    Queue analyses and track their progress.

    Parameters:
    -----------
    max_workers : int
        Size of the thread pool
    runner : callable
        run_analysis(request, cancel=..., progress=...) or a compatible
        function (the tests inject slow or failing runners)
    retain : int
        Finished jobs kept for polling; older ones are dropped first
    """

    def __init__(self, max_workers: int = 2, runner: Runner = run_analysis, retain: int = 100,
                 **runner_kwargs):
        if retain < 1:
            raise ValueError("retain must be at least 1")
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='analysis')
        self._runner = runner
        self._runner_kwargs = runner_kwargs
        self._jobs: Dict[str, Job] = {}
        self._finished: deque = deque()
        self._retain = retain
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, request: AnalysisRequest, tier: Tier = None) -> Job:
        job = Job(id=uuid.uuid4().hex, request=request, tier=tier)
        with self._lock:
            self._jobs[job.id] = job
        self._emit(job, 'queued', 0.0, 'waiting for a worker')
        self._executor.submit(self._run, job)
        logger.info("Job %s queued (%s tier)", job.id, tier.value if tier else 'unknown')
        return job

    def get(self, job_id: str) -> Job:
        with self._lock:
            try:
                return self._jobs[job_id]
            except KeyError:
                raise KeyError(f"Unknown job '{job_id}'") from None

    def events(self, job_id: str, after: int = 0) -> List[ProgressEvent]:
        job = self.get(job_id)
        with self._lock:
            return [e for e in job.events if e.seq > after]

    def cancel(self, job_id: str) -> Job:
        job = self.get(job_id)
        job.token.cancel()
        with self._lock:
            pending = job.status is JobStatus.PENDING
        if pending:
            self._finish(job, JobStatus.CANCELLED, 'cancelled before start')
        return job

    def wait(self, job_id: str, timeout: float = None) -> Job:
        job = self.get(job_id)
        job.done.wait(timeout)
        return job

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _emit(self, job: Job, phase: str, percent: float, message: str = None,
              terminal: bool = False) -> None:
        with self._lock:
            if job.status in TERMINAL:
                return
            job.events.append(ProgressEvent(next(job._seq), phase, percent, message, terminal))

    def _finish(self, job: Job, status: JobStatus, message: str,
                result: AnalysisResult = None, error: str = None) -> bool:
        """Record the single terminal event; later calls are ignored."""
        with self._lock:
            if job.status in TERMINAL:
                return False
            job.events.append(ProgressEvent(next(job._seq), status.value, 100.0, message, True))
            job.status = status
            job.result = result
            job.error = error
            self._finished.append(job.id)
            while len(self._finished) > self._retain:
                dropped = self._finished.popleft()
                self._jobs.pop(dropped, None)
                logger.debug("Job %s dropped from retention", dropped)
        job.done.set()
        logger.info("Job %s %s", job.id, status.value)
        return True

    def _run(self, job: Job) -> None:
        with self._lock:
            if job.status in TERMINAL:
                return
            job.status = JobStatus.RUNNING

        def progress(phase, percent, message=None):
            self._emit(job, phase, percent, message)

        try:
            result = self._runner(job.request, cancel=job.token, progress=progress,
                                  **self._runner_kwargs)
        except CancelledError as exc:
            self._finish(job, JobStatus.CANCELLED, str(exc))
        except BridgeAnalysisError as exc:
            logger.error("Job %s failed: %s", job.id, exc)
            self._finish(job, JobStatus.FAILED, 'analysis failed', error=str(exc))
        except Exception as exc:
            logger.exception("Job %s crashed", job.id)
            self._finish(job, JobStatus.FAILED, 'internal error', error=f"{type(exc).__name__}: {exc}")
        else:
            self._finish(job, JobStatus.COMPLETED, 'analysis complete', result=result)
