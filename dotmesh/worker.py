"""
Background task orchestration.

A MeshWorker owns one thread that takes job requests off a queue, runs
them one at a time and reports ``PROGRESS`` messages followed by exactly
one ``SUCCESS`` or ``ERROR`` message per task id.

Requests use the ``{"type": ..., "payload": {...}}`` message shape and are
decoded once into typed jobs by ``decode_request``.
"""

import logging
import queue
import threading
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Optional, Set, Union

import numpy as np

from dotmesh.config import Config, GenerationParams
from dotmesh.core import DotMeshGenerator
from dotmesh.errors import InvalidInputError
from meshing.export import make_export_filename, write_obj
from meshing.geometry import DotPattern, MeshData, MeshStats
from meshing.optimizer import OPTIMIZATION_LEVELS, OptimizationResult
from meshing.stats import compute_stats

logger = logging.getLogger(__name__)


class JobType(str, Enum):
    GENERATE_MESH = "GENERATE_MESH"
    OPTIMIZE_MESH = "OPTIMIZE_MESH"
    EXPORT_OBJ = "EXPORT_OBJ"


class ResponseType(str, Enum):
    PROGRESS = "PROGRESS"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


OPERATION_NAMES = {
    JobType.GENERATE_MESH: "Mesh generation",
    JobType.OPTIMIZE_MESH: "Mesh optimization",
    JobType.EXPORT_OBJ: "OBJ export",
}


@dataclass(frozen=True)
class GenerateMeshJob:
    task_id: str
    pattern: DotPattern
    params: GenerationParams

    type: ClassVar[JobType] = JobType.GENERATE_MESH


@dataclass(frozen=True)
class OptimizeMeshJob:
    task_id: str
    mesh: Optional[MeshData]
    level: str = "medium"

    type: ClassVar[JobType] = JobType.OPTIMIZE_MESH


@dataclass(frozen=True)
class ExportObjJob:
    task_id: str
    mesh: Optional[MeshData]
    precision: Optional[int] = None
    include_comments: Optional[bool] = None
    filename: Optional[str] = None

    type: ClassVar[JobType] = JobType.EXPORT_OBJ


Job = Union[GenerateMeshJob, OptimizeMeshJob, ExportObjJob]


@dataclass(frozen=True)
class GenerateResult:
    mesh: MeshData
    width: int
    height: int
    scale: float
    has_background: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meshData": self.mesh.to_dict(),
            "dimensions": {"width": self.width, "height": self.height},
            "scale": self.scale,
            "hasBackground": self.has_background,
        }


@dataclass(frozen=True)
class ExportResult:
    obj_content: str
    filename: str
    size: int
    stats: MeshStats

    def to_dict(self) -> Dict[str, Any]:
        return {
            "objContent": self.obj_content,
            "filename": self.filename,
            "size": self.size,
            "stats": self.stats.to_dict(),
        }


JobResult = Union[GenerateResult, OptimizationResult, ExportResult]


@dataclass(frozen=True)
class ProgressMessage:
    task_id: Optional[str]
    progress: int

    type: ClassVar[ResponseType] = ResponseType.PROGRESS
    terminal: ClassVar[bool] = False

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "payload": {"taskId": self.task_id, "progress": self.progress}}


@dataclass(frozen=True)
class SuccessMessage:
    task_id: Optional[str]
    result: JobResult

    type: ClassVar[ResponseType] = ResponseType.SUCCESS
    terminal: ClassVar[bool] = True

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "payload": {"taskId": self.task_id, "result": self.result.to_dict()}}


@dataclass(frozen=True)
class ErrorMessage:
    task_id: Optional[str]
    error: str

    type: ClassVar[ResponseType] = ResponseType.ERROR
    terminal: ClassVar[bool] = True

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "payload": {"taskId": self.task_id, "error": self.error}}


ResponseMessage = Union[ProgressMessage, SuccessMessage, ErrorMessage]


def task_id_of(message: Any) -> Optional[str]:
    """Best-effort task id of a raw request, for addressing error replies."""
    if isinstance(message, dict) and isinstance(message.get("payload"), dict):
        task_id = message["payload"].get("taskId")
        return None if task_id is None else str(task_id)
    return None


def _decode_pattern(value: Any) -> DotPattern:
    if isinstance(value, DotPattern):
        return value
    if isinstance(value, np.ndarray):
        return DotPattern.from_array(value)
    if isinstance(value, dict) and "data" in value:
        data = value["data"]
        return DotPattern(
            width=int(value.get("width", len(data[0]) if data else 0)),
            height=int(value.get("height", len(data))),
            data=data,
        )
    if isinstance(value, (list, tuple)):
        return DotPattern.from_rows(value)
    raise InvalidInputError("Job request has no valid dotPattern")


def _decode_mesh(value: Any) -> Optional[MeshData]:
    if value is None or isinstance(value, MeshData):
        return value
    if isinstance(value, dict):
        return MeshData.from_dict(value)
    raise InvalidInputError("meshData must be a mesh payload")


def _decode_params(payload: Dict[str, Any], defaults: GenerationParams) -> GenerationParams:
    raw = payload.get("generationParams")
    if isinstance(raw, GenerationParams):
        params = raw
    elif isinstance(raw, dict):
        params = GenerationParams.from_dict(raw)
    elif raw is None:
        params = defaults
        # Without explicit parameters the cells are touching cubes of size ``scale``
        if payload.get("scale") is not None:
            scale = float(payload["scale"])
            params = replace(params, cube_size=scale, cube_height=scale, spacing=0.0)
    else:
        raise InvalidInputError("generationParams must be an object")

    if payload.get("includeBackground") is not None:
        params = replace(params, generate_base=bool(payload["includeBackground"]))

    try:
        params.check()
    except TypeError as e:
        raise InvalidInputError(f"Invalid generation parameters: {e}") from e
    return params


def decode_request(message: Any, defaults: Optional[GenerationParams] = None) -> Job:
    """
    Decode a ``{type, payload}`` request into a typed job.

    Args:
        message: Raw request
        defaults: Generation parameters used when the request has none

    Returns:
        GenerateMeshJob, OptimizeMeshJob or ExportObjJob
    """
    if not isinstance(message, dict):
        raise InvalidInputError("Job request must be an object")
    payload = message.get("payload")
    if not isinstance(payload, dict):
        raise InvalidInputError("Job request has no payload")
    task_id = task_id_of(message)
    if not task_id:
        raise InvalidInputError("Job request has no taskId")

    try:
        job_type = JobType(message.get("type"))
    except ValueError:
        raise InvalidInputError(f"Unknown job type: {message.get('type')!r}") from None

    try:
        if job_type is JobType.GENERATE_MESH:
            return GenerateMeshJob(
                task_id=task_id,
                pattern=_decode_pattern(payload.get("dotPattern")),
                params=_decode_params(payload, defaults or GenerationParams()),
            )

        if job_type is JobType.OPTIMIZE_MESH:
            level = payload.get("optimizationLevel") or "medium"
            if level not in OPTIMIZATION_LEVELS:
                raise InvalidInputError(f"Unknown optimization level: {level!r}")
            return OptimizeMeshJob(
                task_id=task_id,
                mesh=_decode_mesh(payload.get("meshData")),
                level=level,
            )

        return ExportObjJob(
            task_id=task_id,
            mesh=_decode_mesh(payload.get("meshData")),
            precision=payload.get("precision"),
            include_comments=payload.get("includeComments"),
            filename=payload.get("filename"),
        )
    except InvalidInputError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidInputError(f"Malformed {job_type.value} payload: {e}") from e


class MeshWorker:
    """
    Single background worker processing mesh jobs in submission order.

    Messages are delivered to ``listener`` (if given) and to the ``outbox``
    queue. Jobs share no state: each job's mesh belongs to that job alone.

    Example:
        >>> worker = MeshWorker(listener=print)
        >>> worker.start()
        >>> worker.submit({"type": "GENERATE_MESH",
        ...                "payload": {"taskId": "t1", "dotPattern": [[True]]}})
        >>> worker.join()
        >>> worker.stop()
    """

    _STOP = object()

    def __init__(
        self,
        generator: Optional[DotMeshGenerator] = None,
        listener: Optional[Callable[[ResponseMessage], None]] = None,
        config: Optional[Config] = None,
    ):
        self.generator = generator or DotMeshGenerator(config)
        self.config = self.generator.config.worker
        self.listener = listener
        self.outbox: "queue.Queue[ResponseMessage]" = queue.Queue()

        self._inbox: queue.Queue = queue.Queue()
        self._pending: Dict[str, int] = {}
        self._cancelled: Set[str] = set()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread."""
        if self.running:
            return
        self._thread = threading.Thread(target=self._run, name=self.config.name, daemon=True)
        self._thread.start()
        logger.info(f"Worker {self.config.name} started")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Finish queued jobs, then stop the thread."""
        if not self.running:
            return
        self._inbox.put(self._STOP)
        self._thread.join(timeout)
        self._thread = None
        logger.info(f"Worker {self.config.name} stopped")

    def join(self) -> None:
        """Block until every submitted job has produced its terminal message."""
        self._inbox.join()

    def submit(self, message: Dict[str, Any]) -> Optional[str]:
        """
        Queue a job request.

        A missing taskId is assigned so the caller can still correlate replies.

        Returns:
            Task id of the request
        """
        task_id = task_id_of(message)
        if task_id is None and isinstance(message, dict) and isinstance(message.get("payload"), dict):
            task_id = f"task-{uuid.uuid4().hex[:8]}"
            message = {**message, "payload": {**message["payload"], "taskId": task_id}}
        self._track(task_id)
        self._inbox.put(message)
        return task_id

    def cancel(self, task_id: str) -> None:
        """
        Stop delivering messages for a queued or running task.

        The job itself still runs. Ids with no pending job are ignored, so a
        finished task id can be reused.
        """
        with self._lock:
            if task_id in self._pending:
                self._cancelled.add(task_id)
                return
        logger.debug(f"Ignoring cancel for task {task_id} with no pending job")

    def _track(self, task_id: Optional[str]) -> None:
        if task_id is None:
            return
        with self._lock:
            self._pending[task_id] = self._pending.get(task_id, 0) + 1

    def _run(self) -> None:
        while True:
            message = self._inbox.get()
            try:
                if message is self._STOP:
                    return
                self._handle(message)
            except Exception:
                logger.exception(f"Worker failed on request {task_id_of(message)}")
            finally:
                self._inbox.task_done()

    def _emit(self, message: ResponseMessage) -> ResponseMessage:
        with self._lock:
            cancelled = message.task_id in self._cancelled
            if message.terminal and message.task_id in self._pending:
                remaining = self._pending.pop(message.task_id) - 1
                if remaining > 0:
                    self._pending[message.task_id] = remaining
                else:
                    self._cancelled.discard(message.task_id)
        if cancelled:
            return message

        if self.listener is not None:
            try:
                self.listener(message)
            except Exception:
                logger.exception(f"Listener failed on {message.type.value} for task {message.task_id}")
        self.outbox.put(message)
        return message

    def process(self, message: Any) -> ResponseMessage:
        """
        Run one request synchronously, emitting its messages.

        Returns:
            The terminal SUCCESS or ERROR message
        """
        self._track(task_id_of(message))
        return self._handle(message)

    def _handle(self, message: Any) -> ResponseMessage:
        task_id = task_id_of(message)
        try:
            job = decode_request(message, self.generator.config.generation)
        except InvalidInputError as e:
            logger.warning(f"Rejected job request {task_id}: {e}")
            return self._emit(ErrorMessage(task_id, f"Invalid job request: {e}"))

        operation = OPERATION_NAMES[job.type]
        try:
            result = self.run_job(job, lambda percent: self._emit(ProgressMessage(job.task_id, percent)))
        except Exception as e:
            # Every task ends with exactly one terminal message
            text = str(e)
            if not text.lower().startswith(operation.lower()):
                text = f"{operation} failed: {text}"
            logger.error(f"Task {job.task_id}: {text}")
            return self._emit(ErrorMessage(job.task_id, text))

        return self._emit(SuccessMessage(job.task_id, result))

    def run_job(self, job: Job, progress: Optional[Callable[[int], None]] = None) -> JobResult:
        """
        Execute a decoded job.

        Args:
            job: Job to run
            progress: Called with each progress milestone, ending at 100

        Returns:
            GenerateResult, OptimizationResult or ExportResult
        """
        report = progress or (lambda percent: None)

        if isinstance(job, GenerateMeshJob):
            mesh = self.generator.generate(job.pattern, job.params, progress=report)
            result = GenerateResult(
                mesh=mesh,
                width=job.pattern.width,
                height=job.pattern.height,
                scale=job.params.cube_size,
                has_background=job.params.generate_base,
            )
        elif isinstance(job, OptimizeMeshJob):
            result = self.generator.optimize(job.mesh, job.level, progress=report)
        elif isinstance(job, ExportObjJob):
            result = self._export(job, report)
        else:
            raise InvalidInputError(f"Unsupported job: {job!r}")

        report(100)
        return result

    def _export(self, job: ExportObjJob, report: Callable[[int], None]) -> ExportResult:
        report(10)
        export_config = self.generator.config.export
        content = write_obj(
            job.mesh,
            precision=export_config.precision if job.precision is None else int(job.precision),
            include_comments=(
                export_config.include_comments
                if job.include_comments is None
                else bool(job.include_comments)
            ),
        )
        report(90)

        return ExportResult(
            obj_content=content,
            filename=job.filename or make_export_filename(export_config.filename, "obj"),
            size=len(content.encode("utf-8")),
            stats=compute_stats(job.mesh),
        )
