"""
Food label analysis FastAPI application.

Endpoints:
    GET    /                        Health check (configured providers, storage backend, task stats)
    POST   /upload                  Validate image, create task, start analysis in the background
    GET    /task-status/{task_id}   Poll task progress and result
    DELETE /task/{task_id}          Delete a task
"""
from fastapi import FastAPI, UploadFile, File, HTTPException, BackgroundTasks
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Dict
import asyncio
import logging
from dotenv import load_dotenv
from pathlib import Path

# Load env vars
load_dotenv(Path(__file__).parent / ".env")

# Logger
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from core.config import log_config, ocr_configured, ai_configured, durable_store_configured
from core.errors import ValidationError, StorageError
from core.external_apis.baidu_ocr import BaiduOCRClient
from core.external_apis.deepseek import DeepSeekClient
from core.pipeline.garbage_collector import TaskGarbageCollector
from core.pipeline.orchestrator import PipelineOrchestrator
from core.storage.task_store import get_task_store
from core.upload import new_task_id, validate_upload

log_config()

# Initialize App
app = FastAPI(title="Food Label Health Analysis API")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

task_store = get_task_store()
orchestrator = PipelineOrchestrator(task_store, ocr_client=BaiduOCRClient(), ai_client=DeepSeekClient())
garbage_collector = TaskGarbageCollector(task_store)


# --- Startup / shutdown ---
@app.on_event("startup")
async def _start_garbage_collector():
    garbage_collector.start()


@app.on_event("shutdown")
async def _stop_garbage_collector():
    await garbage_collector.stop()


# --- Response Models ---
class FileInfoResponse(BaseModel):
    name: str
    size: int
    type: str


class UploadResponse(BaseModel):
    taskId: str
    status: str
    message: str
    fileInfo: FileInfoResponse


class DeleteResponse(BaseModel):
    taskId: str
    deleted: bool


# --- Endpoints ---

@app.get("/")
def health_check():
    try:
        stats: Dict[str, int] = task_store.get_stats()
    except StorageError as e:
        logger.error("Health check stats failed: %s", e)
        stats = {}
    return {
        "status": "ok",
        "service": "Food Label Health Analysis",
        "services": {
            "database": durable_store_configured(),
            "ocr": ocr_configured(),
            "ai": ai_configured(),
        },
        "storageBackend": task_store.active_backend,
        "tasks": stats,
    }


@app.post("/upload", response_model=UploadResponse)
async def upload_image(background_tasks: BackgroundTasks, image: UploadFile = File(...)):
    """Validate the label image, create a pending task and analyze it in the background."""
    logger.info("UPLOAD filename=%s content_type=%s", image.filename, image.content_type)
    data = await image.read()
    try:
        file_info = validate_upload(image.filename, image.content_type, data)
    except ValidationError as e:
        logger.info("UPLOAD rejected filename=%s reason=%s", image.filename, e.message)
        raise HTTPException(status_code=e.status_code, detail=e.message)

    task_id = new_task_id()
    try:
        await asyncio.to_thread(task_store.create_task, task_id, file_info)
    except StorageError as e:
        logger.error("UPLOAD task creation failed task_id=%s: %s", task_id, e)
        raise HTTPException(status_code=503, detail="Task storage is unavailable, please retry")

    background_tasks.add_task(orchestrator.process_task, task_id, data)
    logger.info("UPLOAD accepted task_id=%s size=%d", task_id, file_info.size)
    return {
        "taskId": task_id,
        "status": "pending",
        "message": "Upload successful, processing has started",
        "fileInfo": file_info.to_dict(),
    }


@app.get("/task-status/{task_id}")
def task_status(task_id: str):
    """Poll a task; result is included once the task has completed."""
    try:
        task = task_store.get_task(task_id)
    except StorageError as e:
        logger.error("Task status failed task_id=%s: %s", task_id, e)
        raise HTTPException(status_code=503, detail="Task storage is unavailable, please retry")
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task.to_status_payload()


@app.delete("/task/{task_id}", response_model=DeleteResponse)
def delete_task(task_id: str):
    try:
        deleted = task_store.delete_task(task_id)
    except StorageError as e:
        logger.error("Task delete failed task_id=%s: %s", task_id, e)
        raise HTTPException(status_code=503, detail="Task storage is unavailable, please retry")
    if not deleted:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"taskId": task_id, "deleted": True}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True)
