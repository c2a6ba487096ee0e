"""
HTTP requests with retries and exponential backoff for external providers.
"""
import logging
import time
from typing import Any, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2
DEFAULT_INITIAL_BACKOFF = 1.0


def request_with_retries(
    method: str,
    url: str,
    params: Optional[dict] = None,
    data: Optional[Any] = None,
    json: Optional[Any] = None,
    headers: Optional[dict] = None,
    timeout: int = 10,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
) -> Tuple[Optional[requests.Response], Optional[str]]:
    """
    Send a request, retrying with exponential backoff on timeout/connection errors.
    Any HTTP response (including non-2xx) is returned as-is; the caller decides.
    Returns (response, None) on success, (None, error_message) on failure.
    """
    max_retries = max(1, max_retries)
    last_error: Optional[str] = None
    for attempt in range(max_retries):
        try:
            resp = requests.request(
                method, url,
                params=params, data=data, json=json, headers=headers,
                timeout=timeout,
            )
            return (resp, None)
        except requests.Timeout as e:
            last_error = f"Read timed out: {e}"
            logger.warning(
                "EXTERNAL_API retry attempt=%s/%s url=%s error=%s",
                attempt + 1, max_retries, url[:60], last_error,
            )
        except requests.RequestException as e:
            last_error = f"{type(e).__name__}: {e}"
            logger.warning(
                "EXTERNAL_API retry attempt=%s/%s url=%s error=%s",
                attempt + 1, max_retries, url[:60], last_error,
            )
        if attempt < max_retries - 1:
            delay = initial_backoff * (2 ** attempt)
            logger.info("EXTERNAL_API backoff %.1fs before retry", delay)
            time.sleep(delay)
    return (None, last_error)


def post_with_retries(url: str, **kwargs) -> Tuple[Optional[requests.Response], Optional[str]]:
    return request_with_retries("POST", url, **kwargs)
