"""Priority job scheduler for asynchronous enhancement requests.

Jobs are ordered by (priority rank, submission sequence) in a single heap, so
equal priorities keep FIFO order and a running job is never preempted. Every
job reaches exactly one terminal state; the terminal event is emitted under
the scheduler lock after all of that job's progress events. Terminal jobs are
released at once and only their outcomes are kept, in a bounded store that
``wait`` and ``snapshot`` read from.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, Sequence

import numpy as np

from mastering_engine.analysis import AnalysisResult, analyze
from mastering_engine.application.notifications import NotificationDispatcher
from mastering_engine.audio_contract import AudioBuffer
from mastering_engine.domain.events import (
    DomainEvent,
    JobCompleted,
    JobFailed,
    JobProgress,
    JobQueued,
    JobStarted,
)
from mastering_engine.domain.models import EnhancementRequest, FailureReason, JobStatus, Requirement
from mastering_engine.domain.services import (
    PRIORITY_RANKS,
    estimate_processing_time,
    improvement_metrics,
    output_reference,
    quality_score,
)
from mastering_engine.errors import ValidationError

LOGGER = logging.getLogger("mastering_engine.scheduler")

DEFAULT_PROGRESS_SUBSTEPS = 10
DEFAULT_RETAINED_OUTCOMES = 64
INPUT_ANALYSIS_ARTIFACT = "input_analysis"


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(slots=True)
class JobContext:
    """Mutable working state of one job, touched only by the worker running it."""

    request: EnhancementRequest
    buffer: AudioBuffer
    applied: list[str] = field(default_factory=list)
    artifacts: dict[str, Any] = field(default_factory=dict)


Stage = Callable[[JobContext], None]


class RequirementHandler(Protocol):
    """Executes one (engine, operation) pair as an ordered list of stages."""

    def validate(self, requirement: Requirement) -> None:
        """Raise ValidationError when the requirement cannot be executed."""

    def plan(self, requirement: Requirement) -> Sequence[Stage]:
        """Return the ordered stages that carry out the requirement."""


class RequirementRegistry:
    """Maps (engine, operation) pairs to handlers."""

    def __init__(self) -> None:
        self._handlers: dict[tuple[str, str], RequirementHandler] = {}

    def register(self, engine: str, operation: str, handler: RequirementHandler) -> None:
        self._handlers[(engine, operation)] = handler

    def operations(self) -> list[tuple[str, str]]:
        return sorted(self._handlers)

    def resolve(self, requirement: Requirement) -> RequirementHandler:
        handler = self._handlers.get((requirement.engine, requirement.operation))
        if handler is None:
            raise ValidationError(
                "unknown_operation",
                f"No handler for engine '{requirement.engine}' operation '{requirement.operation}'.",
            )
        return handler

    def validate(self, request: EnhancementRequest) -> None:
        for requirement in request.requirements:
            self.resolve(requirement).validate(requirement)


@dataclass(frozen=True, slots=True)
class JobOutcome:
    """Terminal result of a job, released to the caller by ``wait``."""

    request_id: str
    status: JobStatus
    failure_reason: FailureReason | None = None
    error: str | None = None
    output: AudioBuffer | None = None
    input_analysis: AnalysisResult | None = None
    output_analysis: AnalysisResult | None = None
    quality_score: int | None = None
    improvement_metrics: dict[str, float] | None = None
    output_reference: str | None = None
    progress: float = 0.0


@dataclass(frozen=True, slots=True)
class JobSnapshot:
    request_id: str
    status: JobStatus
    progress: float
    failure_reason: FailureReason | None = None


@dataclass(slots=True)
class _Job:
    request: EnhancementRequest
    buffer: AudioBuffer
    sequence: int
    status: JobStatus = JobStatus.QUEUED
    progress: float = 0.0
    cancel_requested: bool = False
    outcome: JobOutcome | None = None
    done: threading.Event = field(default_factory=threading.Event)

    @property
    def sort_key(self) -> tuple[int, int]:
        return (PRIORITY_RANKS[self.request.priority], self.sequence)


class JobScheduler:
    """Bounded worker pool draining a priority queue of enhancement requests."""

    def __init__(
        self,
        registry: RequirementRegistry,
        dispatcher: NotificationDispatcher,
        worker_count: int = 2,
        watchdog_interval_s: float = 0.25,
        progress_substeps: int = DEFAULT_PROGRESS_SUBSTEPS,
        analyzer: Callable[[AudioBuffer], AnalysisResult] = analyze,
        clock: Callable[[], datetime] = utc_now,
        retained_outcomes: int = DEFAULT_RETAINED_OUTCOMES,
    ) -> None:
        if worker_count < 1:
            raise ValueError("worker_count must be >= 1")
        if progress_substeps < 1:
            raise ValueError("progress_substeps must be >= 1")
        if retained_outcomes < 1:
            raise ValueError("retained_outcomes must be >= 1")
        self.registry = registry
        self.dispatcher = dispatcher
        self.worker_count = worker_count
        self.watchdog_interval_s = watchdog_interval_s
        self.progress_substeps = progress_substeps
        self.analyzer = analyzer
        self.clock = clock
        self.retained_outcomes = retained_outcomes

        self._condition = threading.Condition(threading.RLock())
        self._heap: list[tuple[int, int, str]] = []
        self._jobs: dict[str, _Job] = {}
        self._outcomes: OrderedDict[str, JobOutcome] = OrderedDict()
        self._sequence = itertools.count()
        self._threads: list[threading.Thread] = []
        self._running = False

    def __enter__(self) -> "JobScheduler":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._condition:
            if self._running:
                return
            self._running = True
            self._threads = [
                threading.Thread(target=self._worker_loop, name=f"mastering-engine-worker-{index}", daemon=True)
                for index in range(self.worker_count)
            ]
            self._threads.append(
                threading.Thread(target=self._watchdog_loop, name="mastering-engine-watchdog", daemon=True)
            )
        for thread in self._threads:
            thread.start()

    def shutdown(self, timeout: float | None = None, cancel_pending: bool = False) -> None:
        with self._condition:
            self._running = False
            if cancel_pending:
                for job in list(self._jobs.values()):
                    if job.status is JobStatus.QUEUED:
                        self._finish(job, JobStatus.FAILED, FailureReason.CANCELLED)
            self._condition.notify_all()
            threads, self._threads = self._threads, []
        for thread in threads:
            thread.join(timeout)

    def submit(self, request: EnhancementRequest, buffer: AudioBuffer) -> str:
        """Validate and enqueue a request; nothing is queued when validation fails."""

        self.registry.validate(request)
        with self._condition:
            if request.id in self._jobs or request.id in self._outcomes:
                raise ValidationError("duplicate_request", f"Request '{request.id}' is already scheduled.")
            job = _Job(request=request, buffer=buffer, sequence=next(self._sequence))
            self._jobs[request.id] = job
            heapq.heappush(self._heap, (*job.sort_key, request.id))
            position = sum(
                1
                for other in self._jobs.values()
                if other.status is JobStatus.QUEUED and other.sort_key <= job.sort_key
            )
            self._emit(
                JobQueued(
                    correlation_id=request.id,
                    client_id=request.client_id,
                    payload_summary={
                        "priority": request.priority.value,
                        "estimated_time_s": estimate_processing_time(request),
                        "queue_position": position,
                        "requirements": len(request.requirements),
                    },
                )
            )
            self._condition.notify_all()
        LOGGER.info(
            "job_queued",
            extra={"request_id": request.id, "priority": request.priority.value, "queue_position": position},
        )
        return request.id

    def cancel(self, request_id: str) -> bool:
        """Cancel a queued job now, or a running job after its current requirement."""

        with self._condition:
            job = self._jobs.get(request_id)
            if job is None or job.status.is_terminal:
                return False
            if job.status is JobStatus.QUEUED:
                self._finish(job, JobStatus.FAILED, FailureReason.CANCELLED)
                return True
            job.cancel_requested = True
            return True

    def snapshot(self, request_id: str) -> JobSnapshot:
        with self._condition:
            job = self._jobs.get(request_id)
            if job is not None:
                return JobSnapshot(request_id=request_id, status=job.status, progress=job.progress)
            outcome = self._outcomes.get(request_id)
        if outcome is None:
            raise ValidationError("unknown_request", f"Unknown request '{request_id}'.")
        return JobSnapshot(
            request_id=request_id,
            status=outcome.status,
            progress=outcome.progress,
            failure_reason=outcome.failure_reason,
        )

    def pending_count(self) -> int:
        with self._condition:
            return sum(1 for job in self._jobs.values() if job.status is JobStatus.QUEUED)

    def active_count(self) -> int:
        with self._condition:
            return sum(1 for job in self._jobs.values() if job.status is JobStatus.PROCESSING)

    def retained_count(self) -> int:
        """Number of finished outcomes still waiting to be collected."""

        with self._condition:
            return len(self._outcomes)

    def wait(self, request_id: str, timeout: float | None = None) -> JobOutcome:
        """Block until the job is terminal, then release and return its outcome."""

        with self._condition:
            job = self._jobs.get(request_id)
            if job is None:
                return self._release(request_id)
        if not job.done.wait(timeout):
            raise TimeoutError(f"Request '{request_id}' did not finish within {timeout} seconds.")
        with self._condition:
            return self._release(request_id, fallback=job.outcome)

    def expire_overdue(self) -> int:
        """Fail queued jobs whose deadline has passed."""

        now = self.clock()
        expired = 0
        with self._condition:
            for job in list(self._jobs.values()):
                deadline = job.request.deadline
                if job.status is JobStatus.QUEUED and deadline is not None and deadline <= now:
                    self._finish(job, JobStatus.FAILED, FailureReason.DEADLINE_EXCEEDED)
                    expired += 1
        return expired

    def run_next(self) -> str | None:
        """Process the highest-priority queued job on the calling thread."""

        self.expire_overdue()
        with self._condition:
            job = self._take_next()
        if job is None:
            return None
        self._process(job)
        return job.request.id

    def run_until_idle(self) -> list[str]:
        processed: list[str] = []
        while (request_id := self.run_next()) is not None:
            processed.append(request_id)
        return processed

    def _release(self, request_id: str, fallback: JobOutcome | None = None) -> JobOutcome:
        # A waiter keeps its job's outcome even when the store has already evicted it.
        outcome = self._outcomes.pop(request_id, None) or fallback
        if outcome is None:
            raise ValidationError("unknown_request", f"Unknown request '{request_id}'.")
        return outcome

    def _emit(self, event: DomainEvent) -> None:
        self.dispatcher.submit(event)

    def _take_next(self) -> _Job | None:
        while self._heap:
            _, _, request_id = heapq.heappop(self._heap)
            job = self._jobs.get(request_id)
            if job is None or job.status is not JobStatus.QUEUED:
                continue
            job.status = JobStatus.PROCESSING
            self._emit(
                JobStarted(
                    correlation_id=request_id,
                    client_id=job.request.client_id,
                    payload_summary={
                        "engines": [requirement.engine for requirement in job.request.requirements],
                    },
                )
            )
            return job
        return None

    def _finish(
        self,
        job: _Job,
        status: JobStatus,
        reason: FailureReason | None = None,
        error: str | None = None,
        outcome: JobOutcome | None = None,
    ) -> bool:
        with self._condition:
            if job.status.is_terminal:
                return False
            job.status = status
            job.outcome = replace(
                outcome or JobOutcome(request_id=job.request.id, status=status, failure_reason=reason, error=error),
                progress=job.progress,
            )
            self._jobs.pop(job.request.id, None)
            self._outcomes[job.request.id] = job.outcome
            while len(self._outcomes) > self.retained_outcomes:
                self._outcomes.popitem(last=False)
            if status is JobStatus.COMPLETED:
                event: DomainEvent = JobCompleted(
                    correlation_id=job.request.id,
                    client_id=job.request.client_id,
                    payload_summary={
                        "quality_score": job.outcome.quality_score,
                        "improvement_metrics": job.outcome.improvement_metrics,
                        "output_reference": job.outcome.output_reference,
                    },
                )
            else:
                event = JobFailed(
                    correlation_id=job.request.id,
                    client_id=job.request.client_id,
                    payload_summary={"reason": reason.value if reason else None, "error": error},
                )
            self._emit(event)
            job.done.set()
        LOGGER.info(
            "job_finished",
            extra={
                "request_id": job.request.id,
                "status": status.value,
                "reason": reason.value if reason else None,
            },
        )
        return True

    def _deadline_passed(self, job: _Job) -> bool:
        deadline = job.request.deadline
        return deadline is not None and self.clock() >= deadline

    def _process(self, job: _Job) -> None:
        request = job.request
        try:
            plans = [
                (requirement, list(self.registry.resolve(requirement).plan(requirement)))
                for requirement in request.requirements
            ]
            context = JobContext(request=request, buffer=job.buffer)
            input_analysis = self.analyzer(job.buffer)
            context.artifacts[INPUT_ANALYSIS_ARTIFACT] = input_analysis
            total = len(plans) * self.progress_substeps
            completed = 0

            for index, (requirement, stages) in enumerate(plans):
                for substep in np.array_split(np.arange(len(stages)), self.progress_substeps):
                    if self._deadline_passed(job):
                        self._finish(job, JobStatus.FAILED, FailureReason.DEADLINE_EXCEEDED)
                        return
                    for stage_index in substep:
                        stages[int(stage_index)](context)
                    completed += 1
                    with self._condition:
                        job.progress = completed / total * 100.0
                        self._emit(
                            JobProgress(
                                correlation_id=request.id,
                                client_id=request.client_id,
                                payload_summary={
                                    "progress": job.progress,
                                    "requirement_index": index,
                                    "engine": requirement.engine,
                                    "operation": requirement.operation,
                                },
                            )
                        )
                with self._condition:
                    cancel_requested = job.cancel_requested
                if cancel_requested:
                    self._finish(job, JobStatus.FAILED, FailureReason.CANCELLED)
                    return

            output_analysis = self.analyzer(context.buffer)
            if self._deadline_passed(job):
                self._finish(job, JobStatus.FAILED, FailureReason.DEADLINE_EXCEEDED)
                return
            outcome = JobOutcome(
                request_id=request.id,
                status=JobStatus.COMPLETED,
                output=context.buffer,
                input_analysis=input_analysis,
                output_analysis=output_analysis,
                quality_score=quality_score(request.media_type),
                improvement_metrics=improvement_metrics(input_analysis, output_analysis),
                output_reference=output_reference(request),
            )
            self._finish(job, JobStatus.COMPLETED, outcome=outcome)
        except Exception as exc:
            LOGGER.exception("job_processing_failed", extra={"request_id": request.id})
            self._finish(job, JobStatus.FAILED, FailureReason.PROCESSING_ERROR, error=str(exc))

    def _worker_loop(self) -> None:
        while True:
            with self._condition:
                job = self._take_next()
                while job is None and self._running:
                    self._condition.wait()
                    job = self._take_next()
                if job is None:
                    return
            self._process(job)

    def _watchdog_loop(self) -> None:
        while True:
            with self._condition:
                if not self._running:
                    return
                self._condition.wait(self.watchdog_interval_s)
                if not self._running:
                    return
            self.expire_overdue()
