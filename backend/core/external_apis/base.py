"""
Types shared by the provider adapters.
"""
from dataclasses import dataclass
from typing import Literal

OcrSource = Literal["baidu_ocr", "fallback"]


@dataclass
class OcrText:
    """Raw text returned by the OCR adapter."""
    text: str
    confidence: float
    source: OcrSource = "baidu_ocr"
    fallback_reason: str = ""  # for logging


# Returned when OCR is not configured or the provider fails.
FALLBACK_LABEL_TEXT = "配料：小麦粉、白砂糖、植物油、鸡蛋、食用盐、碳酸氢钠、食用香精"
FALLBACK_OCR_CONFIDENCE = 0.85
