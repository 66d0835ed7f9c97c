"""
bulk_import/connectors/base.py

HTTP mechanics shared by backend connectors: throttling, retry policy and
mapping of transport or HTTP failures to ``ConnectorRequestError``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import requests
from pydantic import ValidationError

from bulk_import.config import ExternalHTTPSettings
from bulk_import.schemas.validation_report import BackendErrorPayload

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class ConnectorRequestError(RuntimeError):
    """
    Raised when a backend call fails; the message is safe to show to operators.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times an idempotent call is repeated and how long to wait between tries.
    """

    max_retries: int
    initial_delay_seconds: float
    multiplier: float

    @classmethod
    def from_settings(cls, settings: ExternalHTTPSettings) -> RetryPolicy:
        return cls(
            max_retries=settings.max_retries,
            initial_delay_seconds=settings.backoff_initial_seconds,
            multiplier=settings.backoff_multiplier,
        )

    def attempts(self, retryable: bool) -> int:
        return self.max_retries + 1 if retryable else 1

    def delay_before(self, retry_number: int) -> float:
        return self.initial_delay_seconds * (self.multiplier ** (retry_number - 1))


class _TransientFailure(Exception):
    """Internal marker for an attempt that may be repeated."""

    def __init__(self, cause: Exception) -> None:
        super().__init__(str(cause))
        self.cause = cause


class BaseConnector:
    """
    Base class for connectors that talk JSON or bytes to one backend.
    """

    source: str

    def __init__(
        self,
        *,
        source: str,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        self.source = source
        self._session = session or requests.Session()
        self._timeout_seconds = http_settings.timeout_seconds
        self._retry_policy = RetryPolicy.from_settings(http_settings)
        self._min_interval_seconds = (
            1.0 / http_settings.rate_limit_per_second if http_settings.rate_limit_per_second > 0 else 0.0
        )
        self._last_sent_monotonic: float = 0.0

    def _request_json(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        body_factory: Callable[[], Any] | None = None,
        retryable: bool = True,
    ) -> Any:
        response = self._request(
            method=method,
            url=url,
            params=params,
            headers=headers,
            json_body=json_body,
            body_factory=body_factory,
            retryable=retryable,
        )
        try:
            return response.json()
        except ValueError as exc:
            raise ConnectorRequestError(f"{self.source}: response was not valid JSON.") from exc

    def _request_bytes(
        self,
        *,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> bytes:
        return self._request(method=method, url=url, headers=headers).content

    def _request(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        body_factory: Callable[[], Any] | None = None,
        retryable: bool = True,
    ) -> requests.Response:
        """
        Send a request, repeating transient failures when ``retryable``.

        ``body_factory`` builds a fresh request body for every attempt so a
        streamed upload can be sent again. Non-idempotent calls pass
        ``retryable=False`` and are attempted exactly once.
        """

        attempts = self._retry_policy.attempts(retryable)
        last_failure: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                return self._send_once(
                    method=method,
                    url=url,
                    params=params,
                    headers=headers,
                    json_body=json_body,
                    body=body_factory() if body_factory is not None else None,
                    final_attempt=attempt == attempts,
                )
            except _TransientFailure as failure:
                last_failure = failure.cause

            if attempt == attempts:
                break
            delay = self._retry_policy.delay_before(attempt)
            logger.warning(
                "Backend call retry source=%s attempt=%s/%s wait_seconds=%.2f url=%s error=%s",
                self.source,
                attempt,
                attempts - 1,
                delay,
                url,
                last_failure,
            )
            time.sleep(delay)

        logger.error(
            "Backend call gave up source=%s attempts=%s url=%s error=%s",
            self.source,
            attempts,
            url,
            last_failure,
        )
        if isinstance(last_failure, requests.Timeout):
            raise ConnectorRequestError(f"{self.source}: request timed out.") from last_failure
        raise ConnectorRequestError(f"{self.source}: request failed.") from last_failure

    def _send_once(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
        json_body: Any,
        body: Any,
        final_attempt: bool,
    ) -> requests.Response:
        self._throttle()
        try:
            response = self._session.request(
                method=method,
                url=url,
                params=params,
                headers=headers,
                json=json_body,
                data=body,
                timeout=self._timeout_seconds,
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise _TransientFailure(exc) from exc

        if response.status_code < 400:
            return response
        if response.status_code in RETRYABLE_STATUS_CODES and not final_attempt:
            raise _TransientFailure(
                requests.HTTPError(f"HTTP {response.status_code}", response=response)
            )

        logger.error(
            "Backend call rejected source=%s status=%s url=%s",
            self.source,
            response.status_code,
            url,
        )
        raise ConnectorRequestError(
            self._describe_failure(response),
            status_code=response.status_code,
        )

    def _describe_failure(self, response: requests.Response) -> str:
        """
        Prefer the backend's own ``error``/``message`` text when it sent one.
        """

        fallback = f"{self.source}: request was rejected by the server (HTTP {response.status_code})."
        try:
            payload = BackendErrorPayload.model_validate(response.json())
        except (ValueError, ValidationError):
            return fallback
        return payload.describe() or fallback

    def _throttle(self) -> None:
        if self._min_interval_seconds <= 0:
            return

        wait = self._min_interval_seconds - (time.monotonic() - self._last_sent_monotonic)
        if wait > 0:
            time.sleep(wait)
        self._last_sent_monotonic = time.monotonic()
