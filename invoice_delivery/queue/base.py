"""Job model and the queue contract shared by all backends."""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable
from uuid import uuid4

from pydantic import BaseModel, Field, PrivateAttr

from invoice_delivery.db.database import utcnow


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueClosedError(Exception):
    """Raised when a job is enqueued after the queue started draining."""


class Job(BaseModel):
    """A unit of work owned by the queue.

    Attributes:
        id: Opaque job identifier
        kind: Job kind the handler is registered under
        payload: Handler input
        status: queued, running, completed or failed
        progress: Coarse progress 0-100 reported by the handler
        result: Handler return value (JSON-compatible)
        error: Error message of the last failure
        error_kind: Tag of the last failure when it was a delivery error
        attempts: Number of times the handler has been invoked
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    kind: str
    payload: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    result: Any = None
    error: str | None = None
    error_kind: str | None = None
    attempts: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime | None = None

    _progress_hook: Any = PrivateAttr(default=None)

    def bind_progress(self, hook: "ProgressCallback | None") -> None:
        self._progress_hook = hook

    async def report_progress(self, pct: int) -> None:
        self.progress = max(0, min(100, int(pct)))
        if self._progress_hook is not None:
            await self._progress_hook(self)

    def mark_running(self) -> None:
        self.status = JobStatus.RUNNING
        self.attempts += 1
        self.error = None
        self.error_kind = None

    def mark_completed(self, result: Any) -> None:
        self.status = JobStatus.COMPLETED
        self.result = to_jsonable(result)
        self.finished_at = utcnow()

    def mark_failed(self, error: BaseException, final: bool = True) -> None:
        kind = getattr(error, "kind", None)
        self.error = str(error)
        self.error_kind = kind.value if kind is not None else None
        self.status = JobStatus.FAILED if final else JobStatus.QUEUED
        if final:
            self.finished_at = utcnow()


ProgressCallback = Callable[[Job], Awaitable[None]]
JobHandler = Callable[[Job], Awaitable[Any]]


def to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


class JobQueue(ABC):
    """Accepts jobs and runs them on registered handlers.

    Backends are interchangeable: callers only see this contract.
    """

    @abstractmethod
    async def enqueue(self, kind: str, payload: BaseModel | dict[str, Any]) -> Job:
        """Accept a job and return without waiting for a durable backend to run it."""

    @abstractmethod
    def register_worker(self, kind: str, concurrency: int, handler: JobHandler) -> None:
        """Bind the single handler for ``kind`` with a concurrency limit."""

    @abstractmethod
    async def get(self, job_id: str) -> Job | None:
        """Current state of a job, if the backend still knows it."""

    @abstractmethod
    async def close(self, timeout: float | None = None) -> None:
        """Stop accepting work and wait for in-flight handlers up to ``timeout`` seconds."""

    @staticmethod
    def _payload_dict(payload: BaseModel | dict[str, Any]) -> dict[str, Any]:
        if isinstance(payload, BaseModel):
            return payload.model_dump()
        return dict(payload)
