"""Minimal JSON-over-HTTP helper for OpenAI-compatible endpoints."""

from __future__ import annotations

import json
import logging
import time
from typing import Any
from urllib import error, request

from assistant_orchestrator.errors import ExternalServiceError

logger = logging.getLogger(__name__)


def post_json_with_retry(
    *,
    url: str,
    api_key: str,
    body: dict[str, Any],
    timeout_s: float,
    max_retries: int,
    backoff_s: float,
    error_cls: type[ExternalServiceError] = ExternalServiceError,
) -> dict[str, Any]:
    last_error: ExternalServiceError | None = None
    for attempt in range(max_retries + 1):
        try:
            return post_json(
                url=url, api_key=api_key, body=body, timeout_s=timeout_s, error_cls=error_cls
            )
        except ExternalServiceError as exc:
            last_error = exc
            logger.warning(
                "event=http_request_failed url=%s attempt=%d/%d reason=%s",
                url,
                attempt + 1,
                max_retries + 1,
                exc,
            )
            if attempt < max_retries and backoff_s > 0:
                time.sleep(backoff_s * (attempt + 1))

    if last_error is None:
        raise error_cls(f"Request to {url} failed")
    raise last_error


def post_json(
    *,
    url: str,
    api_key: str,
    body: dict[str, Any],
    timeout_s: float,
    error_cls: type[ExternalServiceError] = ExternalServiceError,
) -> dict[str, Any]:
    req = request.Request(
        url=url,
        data=json.dumps(body).encode("utf-8"),
        method="POST",
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        },
    )
    try:
        with request.urlopen(req, timeout=timeout_s) as response:
            raw = response.read().decode("utf-8")
    except error.HTTPError as exc:
        message = exc.read().decode("utf-8", errors="replace")
        raise error_cls(f"Request failed with status {exc.code}: {message[:400]}") from exc
    except error.URLError as exc:
        raise error_cls(f"Request failed: {exc.reason}") from exc
    except TimeoutError as exc:
        raise error_cls(f"Request timed out after {timeout_s:.1f}s") from exc

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise error_cls("Endpoint returned non-JSON response") from exc
    if not isinstance(parsed, dict):
        raise error_cls("Endpoint returned a non-object JSON response")
    return parsed
