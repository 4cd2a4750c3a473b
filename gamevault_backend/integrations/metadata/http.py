from __future__ import annotations

import logging
import random
import time
from contextlib import contextmanager
from threading import Lock
from typing import Any, Iterator, Mapping

import requests

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "accept": "application/json",
    "user-agent": "GameVault/1.0 (+metadata sync)",
}


class MetadataProviderError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        provider_id: str | None = None,
        status_code: int | None = None,
        body_snippet: str | None = None,
    ) -> None:
        super().__init__(message)
        self.provider_id = provider_id
        self.status_code = status_code
        self.body_snippet = body_snippet


class TransientProviderError(MetadataProviderError):
    """Rate limited, server-side failure or network error; safe to retry later."""

    def __init__(self, message: str, *, retry_after_seconds: float | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after_seconds = retry_after_seconds


class PermanentProviderError(MetadataProviderError):
    """The source answered, but not with anything usable. Retrying will not help."""


class ProviderConfigurationError(MetadataProviderError):
    """A required credential is missing."""


def is_transient_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


class RateLimiter:
    """
    Enforces a minimum interval between requests issued through one adapter.

    The lock is held from the wait through the end of the request, so concurrent
    callers on the same adapter are serialized and never issue closer than
    `min_interval_ms` apart.
    """

    def __init__(self, min_interval_ms: int) -> None:
        self.min_interval_seconds = max(0, int(min_interval_ms)) / 1000.0
        self._lock = Lock()
        self._last_request_at: float | None = None

    @contextmanager
    def slot(self) -> Iterator[None]:
        with self._lock:
            if self._last_request_at is not None and self.min_interval_seconds:
                while True:
                    remaining = self.min_interval_seconds - (time.monotonic() - self._last_request_at)
                    if remaining <= 0:
                        break
                    logger.debug(f"Rate limit: waiting {remaining:.3f}s")
                    time.sleep(remaining)
            self._last_request_at = time.monotonic()
            yield


def _retry_delay(attempt: int, *, base_seconds: float, response: requests.Response | None) -> float:
    delay = base_seconds * (2**attempt)
    if response is not None:
        retry_after = (response.headers.get("Retry-After") or "").strip()
        if retry_after.isdigit():
            delay = max(delay, float(retry_after))
    return delay + random.uniform(0.0, delay * 0.25)


def send_request(
    session: requests.Session,
    method: str,
    url: str,
    *,
    provider_id: str,
    limiter: RateLimiter,
    params: Mapping[str, Any] | None = None,
    data: Any = None,
    headers: Mapping[str, str] | None = None,
    timeout_seconds: float = 20.0,
    max_retries: int = 2,
    retry_delay_ms: int = 1000,
) -> requests.Response:
    """
    Issue one request through the adapter's rate limiter.

    Network errors, HTTP 429 and HTTP 5xx are retried up to `max_retries` times and
    then raised as `TransientProviderError`. Every other response is returned to the
    caller, which decides between "found", "not found" and "unusable".
    """

    merged_headers = {**DEFAULT_HEADERS, **dict(headers or {})}
    base_delay = max(0, int(retry_delay_ms)) / 1000.0
    attempts = max(0, int(max_retries)) + 1

    for attempt in range(attempts):
        last_attempt = attempt == attempts - 1
        try:
            with limiter.slot():
                resp = session.request(
                    method,
                    url,
                    params=params,
                    data=data,
                    headers=merged_headers,
                    timeout=timeout_seconds,
                )
        except requests.RequestException as exc:
            if not last_attempt:
                logger.debug(f"{provider_id}: request error ({exc}), retrying")
                time.sleep(_retry_delay(attempt, base_seconds=base_delay, response=None))
                continue
            raise TransientProviderError(f"{provider_id} request failed: {exc}", provider_id=provider_id) from exc

        if not is_transient_status(resp.status_code):
            return resp

        if not last_attempt:
            logger.debug(f"{provider_id}: HTTP {resp.status_code}, retrying (attempt {attempt + 1}/{attempts - 1})")
            time.sleep(_retry_delay(attempt, base_seconds=base_delay, response=resp))
            continue

        retry_after = (resp.headers.get("Retry-After") or "").strip()
        raise TransientProviderError(
            f"{provider_id} request failed with HTTP {resp.status_code}.",
            provider_id=provider_id,
            status_code=resp.status_code,
            body_snippet=(resp.text or "")[:400],
            retry_after_seconds=float(retry_after) if retry_after.isdigit() else None,
        )

    raise TransientProviderError(f"{provider_id} request failed (no response).", provider_id=provider_id)


def raise_for_unexpected_status(resp: requests.Response, *, provider_id: str) -> None:
    if 200 <= resp.status_code < 300:
        return
    raise PermanentProviderError(
        f"{provider_id} request failed with HTTP {resp.status_code}.",
        provider_id=provider_id,
        status_code=resp.status_code,
        body_snippet=(resp.text or "")[:400],
    )


def read_json(resp: requests.Response, *, provider_id: str) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise PermanentProviderError(
            f"{provider_id} returned non-JSON response.",
            provider_id=provider_id,
            status_code=resp.status_code,
            body_snippet=(resp.text or "")[:400],
        ) from exc
