"""
Task record: the unit of work tracked from upload to final health assessment.

Status only moves forward: pending -> processing -> completed | failed.
Once a task is terminal every later write is ignored.
Updates are merge-patches applied through apply_update() so both storage
backends enforce the same rules.
"""
import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from core.errors import TaskRecordError
from core.models.analysis import HealthAssessment, OcrResult, result_from_dict

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})

_ALLOWED_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.PENDING, TaskStatus.PROCESSING, TaskStatus.FAILED},
    TaskStatus.PROCESSING: {TaskStatus.PROCESSING, TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}

UPDATABLE_FIELDS = frozenset({
    "status", "progress", "processing_step", "ocr_result", "ai_result", "error_message",
})

DEFAULT_FAILURE_MESSAGE = "processing failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (as returned by Postgres/Supabase) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in _ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class FileInfo:
    """Snapshot of the uploaded artifact, fixed at creation."""
    name: str
    size: int
    type: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "size": self.size, "type": self.type}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FileInfo":
        data = data or {}
        return cls(
            name=str(data.get("name") or ""),
            size=int(data.get("size") or 0),
            type=str(data.get("type") or ""),
        )


@dataclass
class Task:
    id: str
    file_info: FileInfo
    status: TaskStatus = TaskStatus.PENDING
    progress: int = 0
    processing_step: str = "created"
    ocr_result: Optional[OcrResult] = None
    ai_result: Optional[HealthAssessment] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @classmethod
    def new(cls, task_id: str, file_info: FileInfo, now: Optional[datetime] = None) -> "Task":
        now = now or utcnow()
        return cls(id=task_id, file_info=file_info, created_at=now, updated_at=now)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def copy(self) -> "Task":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Storage row shape (snake_case columns, JSON blobs for results)."""
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "processing_step": self.processing_step,
            "file_info": self.file_info.to_dict(),
            "ocr_result": self.ocr_result.to_dict() if self.ocr_result else None,
            "ai_result": self.ai_result.to_dict() if self.ai_result else None,
            "error_message": self.error_message,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
            "completed_at": format_timestamp(self.completed_at),
        }

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "Task":
        return cls(
            id=str(row["id"]),
            file_info=FileInfo.from_dict(row.get("file_info")),
            status=TaskStatus(row.get("status") or TaskStatus.PENDING.value),
            progress=int(row.get("progress") or 0),
            processing_step=str(row.get("processing_step") or "created"),
            ocr_result=result_from_dict("ocr_result", row.get("ocr_result")),
            ai_result=result_from_dict("ai_result", row.get("ai_result")),
            error_message=row.get("error_message"),
            created_at=parse_timestamp(row.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(row.get("updated_at")) or utcnow(),
            completed_at=parse_timestamp(row.get("completed_at")),
        )

    def to_status_payload(self) -> Dict[str, Any]:
        """Shape returned to pollers of GET /task-status/{id}."""
        payload: Dict[str, Any] = {
            "taskId": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "processingStep": self.processing_step,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }
        if self.status == TaskStatus.FAILED:
            payload["error"] = self.error_message or DEFAULT_FAILURE_MESSAGE
        if self.status == TaskStatus.COMPLETED:
            payload["completedAt"] = format_timestamp(self.completed_at)
            if self.ocr_result is not None and self.ai_result is not None:
                payload["result"] = {
                    "ocrData": self.ocr_result.to_dict(),
                    "healthAnalysis": self.ai_result.to_dict(),
                }
        return payload


def _coerce_result(kind: str, value: Any):
    if value is None or isinstance(value, (OcrResult, HealthAssessment)):
        return value
    return result_from_dict(kind, value)


def apply_update(task: Task, updates: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    """
    Merge-patch updates into task in place.

    Only keys present in updates are changed. Returns False (task untouched)
    when the task is already terminal or the status move is not allowed.
    ocr_result / ai_result are write-once; progress never goes backwards while
    processing, is reset to 0 on failure and forced to 100 on completion.
    """
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise TaskRecordError(f"fields not updatable: {sorted(unknown)}")

    if task.is_terminal:
        logger.warning(
            "TASK_UPDATE ignored task_id=%s status=%s fields=%s",
            task.id, task.status.value, sorted(updates),
        )
        return False

    target = TaskStatus(updates["status"]) if updates.get("status") is not None else task.status
    if not can_transition(task.status, target):
        logger.warning(
            "TASK_UPDATE rejected transition task_id=%s %s->%s",
            task.id, task.status.value, target.value,
        )
        return False

    now = now or utcnow()
    task.status = target

    if "processing_step" in updates and updates["processing_step"] is not None:
        task.processing_step = str(updates["processing_step"])

    for kind in ("ocr_result", "ai_result"):
        if kind not in updates or updates[kind] is None:
            continue
        if getattr(task, kind) is not None:
            logger.warning("TASK_UPDATE %s already set task_id=%s, keeping original", kind, task.id)
            continue
        setattr(task, kind, _coerce_result(kind, updates[kind]))

    if target == TaskStatus.FAILED:
        task.progress = 0
        task.error_message = str(updates.get("error_message") or DEFAULT_FAILURE_MESSAGE)
    elif target == TaskStatus.COMPLETED:
        task.progress = 100
        task.completed_at = now
    elif "progress" in updates and updates["progress"] is not None:
        requested = max(0, min(100, int(updates["progress"])))
        if target == TaskStatus.PROCESSING:
            task.progress = max(task.progress, requested)
        else:
            task.progress = requested

    task.updated_at = now
    return True
