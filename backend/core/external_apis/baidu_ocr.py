"""
Baidu OCR connector (accurate_basic endpoint).
Token: POST https://aip.baidubce.com/oauth/2.0/token (client_credentials), cached until 5 min before expiry.
OCR:   POST https://aip.baidubce.com/rest/2.0/ocr/v1/accurate_basic?access_token=...

Degradation: not configured -> fixed sample label; provider error -> log and
return the same sample label (unless OCR_FALLBACK_ENABLED=false, then raise).
"""
import base64
import logging
import threading
import time
from typing import Optional

from core.config import (
    OCR_TIMEOUT,
    PROVIDER_MAX_RETRIES,
    get_baidu_ocr_api_key,
    get_baidu_ocr_secret_key,
    get_ocr_fallback_enabled,
)
from core.errors import ProviderError
from core.external_apis.base import FALLBACK_LABEL_TEXT, FALLBACK_OCR_CONFIDENCE, OcrText
from core.external_apis.http_retry import post_with_retries

logger = logging.getLogger(__name__)

PROVIDER = "baidu_ocr"
TOKEN_URL = "https://aip.baidubce.com/oauth/2.0/token"
OCR_URL = "https://aip.baidubce.com/rest/2.0/ocr/v1/accurate_basic"
TOKEN_EXPIRY_MARGIN = 300
DEFAULT_LINE_CONFIDENCE = 0.8


def fallback_ocr_text(reason: str = "") -> OcrText:
    return OcrText(
        text=FALLBACK_LABEL_TEXT,
        confidence=FALLBACK_OCR_CONFIDENCE,
        source="fallback",
        fallback_reason=reason,
    )


def parse_ocr_payload(payload: dict) -> OcrText:
    """Join words_result lines and average per-line probability (0.8 when absent)."""
    if not isinstance(payload, dict):
        raise ProviderError(PROVIDER, "malformed payload")
    if payload.get("error_code"):
        raise ProviderError(PROVIDER, f"error {payload.get('error_code')}: {payload.get('error_msg', '')}")
    words = payload.get("words_result")
    if not isinstance(words, list):
        raise ProviderError(PROVIDER, "malformed payload: words_result missing")

    lines = []
    probabilities = []
    for item in words:
        if not isinstance(item, dict) or not item.get("words"):
            continue
        lines.append(str(item["words"]))
        prob = item.get("probability")
        if isinstance(prob, dict) and isinstance(prob.get("average"), (int, float)):
            probabilities.append(float(prob["average"]))

    confidence = sum(probabilities) / len(probabilities) if probabilities else DEFAULT_LINE_CONFIDENCE
    if not lines:
        confidence = 0.0
    return OcrText(text="\n".join(lines), confidence=round(confidence, 4), source="baidu_ocr")


class BaiduOCRClient:
    """OCR adapter: extract_text(image_bytes) -> OcrText, with tiered fallback."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        timeout: int = OCR_TIMEOUT,
        max_retries: int = PROVIDER_MAX_RETRIES,
        fallback_enabled: Optional[bool] = None,
    ):
        self.api_key = get_baidu_ocr_api_key() if api_key is None else api_key
        self.secret_key = get_baidu_ocr_secret_key() if secret_key is None else secret_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.fallback_enabled = get_ocr_fallback_enabled() if fallback_enabled is None else fallback_enabled
        self._access_token: Optional[str] = None
        self._token_expiry = 0.0
        self._token_lock = threading.Lock()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.secret_key)

    def _get_access_token(self) -> str:
        with self._token_lock:
            if self._access_token and time.time() < self._token_expiry:
                return self._access_token
            resp, err = post_with_retries(
                TOKEN_URL,
                params={
                    "grant_type": "client_credentials",
                    "client_id": self.api_key,
                    "client_secret": self.secret_key,
                },
                timeout=self.timeout,
                max_retries=self.max_retries,
            )
            if resp is None:
                raise ProviderError(PROVIDER, f"token request failed: {err}")
            if resp.status_code != 200:
                raise ProviderError(PROVIDER, f"token request returned HTTP {resp.status_code}")
            try:
                data = resp.json()
            except ValueError as e:
                raise ProviderError(PROVIDER, "token response is not JSON") from e
            token = data.get("access_token") if isinstance(data, dict) else None
            if not token:
                raise ProviderError(PROVIDER, "token response has no access_token")
            expires_in = int(data.get("expires_in") or 0)
            self._access_token = token
            self._token_expiry = time.time() + max(0, expires_in - TOKEN_EXPIRY_MARGIN)
            return token

    def _call_provider(self, image: bytes) -> OcrText:
        token = self._get_access_token()
        resp, err = post_with_retries(
            OCR_URL,
            params={"access_token": token},
            data={
                "image": base64.b64encode(image).decode("ascii"),
                "detect_direction": "false",
                "paragraph": "false",
                "probability": "true",
            },
            headers={"Accept": "application/json"},
            timeout=self.timeout,
            max_retries=self.max_retries,
        )
        if resp is None:
            raise ProviderError(PROVIDER, f"request failed: {err}")
        if resp.status_code != 200:
            raise ProviderError(PROVIDER, f"HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as e:
            raise ProviderError(PROVIDER, "response is not JSON") from e
        return parse_ocr_payload(payload)

    def extract_text(self, image: bytes) -> OcrText:
        """
        Return the label text. Raises ProviderError only when the provider
        fails and fallback has been disabled.
        """
        if not self.is_configured:
            logger.info("OCR not configured, using sample label text")
            return fallback_ocr_text("not_configured")
        try:
            result = self._call_provider(image)
        except ProviderError as e:
            if not self.fallback_enabled:
                logger.error("OCR provider failed, fallback disabled: %s", e)
                raise
            logger.warning("OCR provider failed, using sample label text: %s", e)
            return fallback_ocr_text(str(e))
        logger.info("OCR extracted chars=%d confidence=%.2f", len(result.text), result.confidence)
        return result
