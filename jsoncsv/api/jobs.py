from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import logging
import threading
import time
import uuid

from jsoncsv.config.env import get_job_config
from jsoncsv.converter.core import convert

Message = Dict[str, Any]

logger = logging.getLogger(__name__)

FINISHED = ("completed", "failed")


class ConversionTask:
    """Runs one conversion on its own thread and reports through ``on_message``.

    Messages mirror what the browser worker used to post:

    - ``{"type": "progress", "stage": "processing"|"creating", "progress": pct}``
    - exactly one ``{"type": "complete", "success": True, "body": ..., "row_count": ..., "columns": ...}``
      or ``{"type": "complete", "success": False, "error": msg}``

    The caller owns the task: start it once, then ``close()`` it (or use it as
    a context manager). There is no cancellation.
    """

    def __init__(self, value: Any, on_message: Callable[[Message], None], name: Optional[str] = None):
        self._value = value
        self._on_message = on_message
        self._thread = threading.Thread(target=self._run, name=name or "conversion-task", daemon=True)
        self._started = False
        self._closed = False

    def __enter__(self) -> "ConversionTask":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def started(self) -> bool:
        return self._started

    @property
    def done(self) -> bool:
        return self._started and not self._thread.is_alive()

    def start(self) -> "ConversionTask":
        if self._closed:
            raise RuntimeError("task is closed")
        if self._started:
            raise RuntimeError("task already started")
        self._started = True
        self._thread.start()
        return self

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the task; returns True once it has finished."""
        if self._started:
            self._thread.join(timeout)
        return self.done

    def close(self, timeout: Optional[float] = None) -> None:
        if self._closed:
            return
        self.join(timeout)
        self._closed = True
        self._value = None

    def _post(self, message: Message) -> None:
        try:
            self._on_message(message)
        except Exception:
            logger.exception("message handler failed for %s message", message.get("type"))

    def _run(self) -> None:
        value = self._value
        try:
            result = convert(
                value,
                on_progress=lambda stage, pct: self._post({"type": "progress", "stage": stage, "progress": pct}),
            )
        except Exception as e:
            self._post({"type": "complete", "success": False, "error": str(e) or type(e).__name__})
            return
        self._post({
            "type": "complete",
            "success": True,
            "body": result.body,
            "row_count": result.row_count,
            "columns": result.columns,
        })


@dataclass
class Job:
    id: str
    file_name: str
    status: str = "queued"  # queued|running|completed|failed
    events: List[Dict[str, Any]] = field(default_factory=list)
    body: Optional[bytes] = None
    row_count: int = 0
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)


class JobRegistry:
    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def create(self, file_name: str) -> Job:
        jid = f"j_{uuid.uuid4().hex[:8]}"
        job = Job(id=jid, file_name=file_name)
        with self._lock:
            self._jobs[jid] = job
        return job

    def get(self, jid: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(jid)

    def list(self) -> List[Job]:
        # Oldest first
        with self._lock:
            return list(self._jobs.values())

    def update(self, jid: str, **kwargs):
        with self._lock:
            j = self._jobs.get(jid)
            if not j:
                return
            for k, v in kwargs.items():
                setattr(j, k, v)

    def add_event(self, jid: str, event: Dict[str, Any]):
        with self._lock:
            j = self._jobs.get(jid)
            if j:
                j.events.append(event)

    def remove(self, jid: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.pop(jid, None)


class JobManager:
    """Owns the job registry and one ConversionTask per live job."""

    def __init__(self, registry: Optional[JobRegistry] = None, max_jobs: Optional[int] = None):
        self.registry = registry or JobRegistry()
        self.max_jobs = max_jobs if max_jobs is not None else get_job_config().max_jobs
        self._tasks: Dict[str, ConversionTask] = {}
        self._lock = threading.Lock()

    def submit(self, value: Any, file_name: str) -> Job:
        self._evict()
        job = self.registry.create(file_name)
        task = ConversionTask(value, on_message=lambda msg: self._on_message(job.id, msg), name=f"conversion-{job.id}")
        with self._lock:
            self._tasks[job.id] = task
        logger.info("job %s queued for %s", job.id, file_name)
        task.start()
        return job

    def get(self, jid: str) -> Optional[Job]:
        return self.registry.get(jid)

    def wait(self, jid: str, timeout: Optional[float] = None) -> Optional[Job]:
        with self._lock:
            task = self._tasks.get(jid)
        if task is not None:
            task.join(timeout)
        return self.registry.get(jid)

    def discard(self, jid: str) -> bool:
        with self._lock:
            task = self._tasks.pop(jid, None)
        if task is not None:
            task.close()
        removed = self.registry.remove(jid) is not None
        if removed:
            logger.info("job %s discarded", jid)
        return removed

    def close(self) -> None:
        with self._lock:
            tasks = list(self._tasks.values())
            self._tasks.clear()
        for task in tasks:
            task.close()

    def _evict(self) -> None:
        if self.max_jobs <= 0:
            return
        excess = len(self.registry) - self.max_jobs + 1
        if excess <= 0:
            return
        for job in self.registry.list():
            if excess <= 0:
                break
            if job.status in FINISHED:
                self.discard(job.id)
                excess -= 1

    def _on_message(self, jid: str, msg: Message) -> None:
        event = {k: v for k, v in msg.items() if k != "body"}
        event["ts"] = time.time()
        if msg["type"] == "progress":
            job = self.registry.get(jid)
            if job is not None and job.status == "queued":
                self.registry.update(jid, status="running")
                logger.info("job %s running", jid)
            self.registry.add_event(jid, event)
            return
        # Terminal event lands before the status flips so pollers never miss it
        self.registry.add_event(jid, event)
        if msg.get("success"):
            self.registry.update(jid, status="completed", body=msg["body"], row_count=msg["row_count"])
            logger.info("job %s completed with %d rows", jid, msg["row_count"])
        else:
            self.registry.update(jid, status="failed", error=msg.get("error"))
            logger.info("job %s failed: %s", jid, msg.get("error"))
