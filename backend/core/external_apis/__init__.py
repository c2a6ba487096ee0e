"""
Provider adapters for label analysis.
Baidu OCR (text extraction) and DeepSeek (health scoring), each with a rule-based fallback.
"""
from .base import OcrText, FALLBACK_LABEL_TEXT, FALLBACK_OCR_CONFIDENCE
from .baidu_ocr import BaiduOCRClient
from .deepseek import DeepSeekClient

__all__ = [
    "OcrText",
    "FALLBACK_LABEL_TEXT",
    "FALLBACK_OCR_CONFIDENCE",
    "BaiduOCRClient",
    "DeepSeekClient",
]
