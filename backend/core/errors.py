"""
Error taxonomy for the label-analysis pipeline.

Every error carries a short message that is safe to show to an end user.
Adapters absorb ProviderError, the task store absorbs StorageError unless
both backends fail, and the orchestrator turns anything else into a failed task.
"""


class TaskPipelineError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TaskPipelineError):
    """Input rejected by policy: MIME type, size, or no ingredients on the label."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class ProviderError(TaskPipelineError):
    """OCR or AI provider unreachable, non-2xx, or returned an unusable payload."""

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider

    def __str__(self) -> str:
        return f"{self.provider}: {self.message}"


class StorageError(TaskPipelineError):
    """Task storage failed on every available backend."""


class PipelineError(TaskPipelineError):
    """Unexpected failure while orchestrating a task."""


class TaskRecordError(TaskPipelineError):
    """Caller error on a task record (non-updatable field). Never triggers storage failover."""


class DuplicateTaskError(TaskRecordError):
    """A task with this id already exists."""
