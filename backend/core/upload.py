"""
Upload policy checks, applied before a task is created.
Accepted: JPEG, PNG, GIF, WebP up to MAX_UPLOAD_BYTES, and the bytes must decode as that image.
"""
import logging
import time
import uuid
from io import BytesIO
from typing import Optional

from PIL import Image

from core.config import ALLOWED_IMAGE_TYPES, get_max_upload_bytes
from core.errors import ValidationError
from core.models.task import FileInfo

logger = logging.getLogger(__name__)

_PIL_FORMAT_TO_MIME = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}


def new_task_id() -> str:
    return f"task_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def sniff_image_format(data: bytes) -> Optional[str]:
    """Pillow format name of the decoded image ("PNG", "BMP", ...), or None if the bytes are not an image."""
    try:
        with Image.open(BytesIO(data)) as img:
            fmt = img.format
            img.verify()
    except Exception as e:
        logger.info("UPLOAD image decode failed: %s", e)
        return None
    return fmt or None


def validate_upload(
    filename: Optional[str],
    content_type: Optional[str],
    data: bytes,
    max_bytes: Optional[int] = None,
) -> FileInfo:
    """Raise ValidationError if the upload is out of policy; otherwise return its FileInfo."""
    max_bytes = get_max_upload_bytes() if max_bytes is None else max_bytes
    declared = (content_type or "").split(";")[0].strip().lower()
    if declared not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Only JPEG, PNG, GIF and WebP images are supported", status_code=415)
    if not data:
        raise ValidationError("The uploaded file is empty")
    if len(data) > max_bytes:
        raise ValidationError(
            f"File is too large: limit is {max_bytes / (1024 * 1024):.0f} MB",
            status_code=413,
        )
    fmt = sniff_image_format(data)
    if fmt is None:
        raise ValidationError("The uploaded file is not a valid image")
    if _PIL_FORMAT_TO_MIME.get(fmt) not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Only JPEG, PNG, GIF and WebP images are supported", status_code=415)
    return FileInfo(name=filename or "upload", size=len(data), type=declared)
