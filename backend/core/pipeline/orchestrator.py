"""
Drives one task through OCR -> ingredient parsing -> health scoring.

Checkpoints (one store write each, strictly in order):
    preparing (10) -> extracting (30) -> extraction_complete (60)
    -> analyzing (80) -> completed (100)
Any failure ends the task as failed with progress 0 and a user-facing
error_message. process_task() never raises; it is meant to be scheduled
fire-and-forget once per task id.

Blocking work (provider calls, store reads/writes) runs in worker threads so
the event loop keeps serving other tasks and pollers. The pipeline deadline
bounds the provider calls: OCR past the deadline fails the task, AI scoring
past the deadline is replaced by the rule-based engine.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.config import PIPELINE_TIMEOUT
from core.errors import PipelineError, ProviderError, StorageError, TaskPipelineError, ValidationError
from core.evaluation import fallback_scoring
from core.external_apis.baidu_ocr import BaiduOCRClient
from core.external_apis.deepseek import DeepSeekClient
from core.models.analysis import HealthAssessment, OcrResult
from core.models.task import Task, TaskStatus
from core.parsing.ingredient_parser import extract_ingredients
from core.storage.task_store import TaskStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Checkpoint:
    step: str
    progress: int


PREPARING = Checkpoint("preparing", 10)
EXTRACTING = Checkpoint("extracting", 30)
EXTRACTION_COMPLETE = Checkpoint("extraction_complete", 60)
ANALYZING = Checkpoint("analyzing", 80)
COMPLETED = Checkpoint("completed", 100)
FAILED_STEP = "failed"

NO_INGREDIENTS_MESSAGE = (
    "No ingredient list was found in the image. "
    "Make sure the photo is clear and shows the ingredient list."
)
INTERNAL_ERROR_MESSAGE = "Analysis failed due to an internal error. Please try again."


class PipelineOrchestrator:
    def __init__(
        self,
        store: TaskStore,
        ocr_client: Optional[BaiduOCRClient] = None,
        ai_client: Optional[DeepSeekClient] = None,
        timeout: Optional[float] = PIPELINE_TIMEOUT,
    ):
        self.store = store
        self.ocr_client = ocr_client or BaiduOCRClient()
        # None -> score with the rule-based engine directly
        self.ai_client = ai_client
        self.timeout = timeout

    def _remaining(self, deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return max(0.0, deadline - asyncio.get_running_loop().time())

    async def _checkpoint(self, task_id: str, checkpoint: Checkpoint, **fields: Any) -> Task:
        updates: Dict[str, Any] = {"progress": checkpoint.progress, "processing_step": checkpoint.step}
        updates.update(fields)
        task = await asyncio.to_thread(self.store.update_task, task_id, updates)
        if task is None:
            raise PipelineError("task record is no longer available")
        logger.info("PIPELINE task_id=%s step=%s progress=%d", task_id, checkpoint.step, checkpoint.progress)
        return task

    async def _extract(self, image: bytes, deadline: Optional[float]) -> OcrResult:
        try:
            ocr_text = await asyncio.wait_for(
                asyncio.to_thread(self.ocr_client.extract_text, image),
                timeout=self._remaining(deadline),
            )
        except ProviderError as e:
            raise PipelineError(f"extraction failed: {e.message}") from e
        return OcrResult(
            raw_text=ocr_text.text,
            confidence=ocr_text.confidence,
            extracted_ingredients=extract_ingredients(ocr_text.text),
            source=ocr_text.source,
        )

    async def _score(self, task_id: str, ocr_result: OcrResult, deadline: Optional[float]) -> HealthAssessment:
        ingredients = ocr_result.extracted_ingredients.ingredients
        if self.ai_client is None:
            return fallback_scoring.score(ingredients)
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.ai_client.score_ingredients, ingredients),
                timeout=self._remaining(deadline),
            )
        except asyncio.TimeoutError:
            logger.warning("PIPELINE AI scoring hit the deadline task_id=%s, using rule-based scoring", task_id)
            return fallback_scoring.score(ingredients)

    async def _run(self, task_id: str, image: bytes, deadline: Optional[float]) -> None:
        await self._checkpoint(task_id, PREPARING, status=TaskStatus.PROCESSING.value)
        await self._checkpoint(task_id, EXTRACTING)

        ocr_result = await self._extract(image, deadline)
        await self._checkpoint(task_id, EXTRACTION_COMPLETE, ocr_result=ocr_result)

        if not ocr_result.extracted_ingredients.has_ingredients:
            raise ValidationError(NO_INGREDIENTS_MESSAGE)

        await self._checkpoint(task_id, ANALYZING)
        assessment = await self._score(task_id, ocr_result, deadline)
        await self._checkpoint(task_id, COMPLETED, status=TaskStatus.COMPLETED.value, ai_result=assessment)

    async def _fail(self, task_id: str, message: str) -> None:
        try:
            await asyncio.to_thread(self.store.update_task, task_id, {
                "status": TaskStatus.FAILED.value,
                "progress": 0,
                "processing_step": FAILED_STEP,
                "error_message": message,
            })
        except StorageError as e:
            logger.error("PIPELINE could not record failure task_id=%s error=%s", task_id, e)

    async def process_task(self, task_id: str, image: bytes) -> Optional[Task]:
        """Run the whole pipeline for task_id; returns the final task (None if it vanished)."""
        logger.info("PIPELINE start task_id=%s bytes=%d", task_id, len(image or b""))
        deadline = asyncio.get_running_loop().time() + self.timeout if self.timeout else None
        try:
            await self._run(task_id, image, deadline)
            logger.info("PIPELINE completed task_id=%s", task_id)
        except asyncio.TimeoutError:
            logger.error("PIPELINE timed out task_id=%s after %ss", task_id, self.timeout)
            await self._fail(task_id, f"processing timed out after {self.timeout:g} seconds")
        except TaskPipelineError as e:
            logger.warning("PIPELINE failed task_id=%s reason=%s", task_id, e.message)
            await self._fail(task_id, e.message)
        except Exception as e:
            logger.error("PIPELINE unexpected error task_id=%s: %s", task_id, e, exc_info=True)
            await self._fail(task_id, INTERNAL_ERROR_MESSAGE)

        try:
            return await asyncio.to_thread(self.store.get_task, task_id)
        except StorageError as e:
            logger.error("PIPELINE could not read final state task_id=%s error=%s", task_id, e)
            return None
