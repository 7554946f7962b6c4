"""HTTP boundary to the calendar provider.

One call sends exactly one request and reports the classified outcome.
Retries are the exporter's job.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Optional
from urllib.parse import quote

import httpx

from calsched.errors import OperationCancelled
from calsched.logging_config import get_logger
from calsched.modules.calendar.models import (
    ExportResult,
    ExportSuccess,
    ProviderRejection,
    RejectionClass,
    TransportFailure,
)

logger = get_logger(__name__)

CLIENT_ERROR_STATUSES = {400, 401}


class CalendarClient:
    """Creates events through the provider's JSON REST API."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        calendar_id: str = "primary",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._calendar_id = calendar_id
        self._timeout = timeout
        self._http = http_client

    @property
    def events_url(self) -> str:
        return f"{self._base_url}/calendars/{quote(self._calendar_id, safe='')}/events"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def create_event(
        self,
        payload: dict[str, Any],
        cancel: Optional[asyncio.Event] = None,
    ) -> ExportResult:
        """POST one event payload and classify the response.

        Raises:
            OperationCancelled: If ``cancel`` is set before or while the
                request is in flight.
        """
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("Export cancelled before sending")

        try:
            response = await self._send(payload, cancel)
        except httpx.TransportError as exc:
            logger.warning(
                "calendar_transport_error",
                url=self.events_url,
                error=f"{type(exc).__name__}: {exc}",
            )
            return TransportFailure(retryable=True, message=f"{type(exc).__name__}: {exc}")

        return self.classify(response)

    async def _send(self, payload: dict[str, Any], cancel: Optional[asyncio.Event]) -> httpx.Response:
        if cancel is None:
            return await self._post(payload)

        request = asyncio.ensure_future(self._post(payload))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({request, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not request.done():
                request.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await request

        if request.cancelled():
            logger.info("calendar_request_cancelled", url=self.events_url)
            raise OperationCancelled("Export cancelled while request was in flight")
        return request.result()

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        if self._http is not None:
            return await self._http.post(
                self.events_url, json=payload, headers=self._headers(), timeout=self._timeout,
            )
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self.events_url, json=payload, headers=self._headers())

    @staticmethod
    def classify(response: httpx.Response) -> ExportResult:
        """Map a provider response onto an ExportResult."""
        status = response.status_code
        if 200 <= status < 300:
            provider_id = _json_field(response, "id")
            if not provider_id:
                logger.error("calendar_response_missing_id", status=status)
                return ProviderRejection(
                    status_code=status,
                    status_class=RejectionClass.UNKNOWN,
                    message=f"Provider response did not include an event id: {response.text}",
                )
            logger.info("calendar_event_created", provider_event_id=provider_id)
            return ExportSuccess(provider_event_id=str(provider_id))

        detail = _error_detail(response)
        if status == 429 or status >= 500:
            logger.warning("calendar_retryable_status", status=status, detail=detail)
            return TransportFailure(retryable=True, message=detail, status_code=status)

        status_class = (
            RejectionClass.CLIENT_ERROR if status in CLIENT_ERROR_STATUSES else RejectionClass.UNKNOWN
        )
        logger.warning("calendar_rejected", status=status, status_class=status_class.value, detail=detail)
        return ProviderRejection(status_code=status, status_class=status_class, message=detail)


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _json_field(response: httpx.Response, key: str) -> Any:
    body = _json_body(response)
    return body.get(key) if isinstance(body, dict) else None


def _error_detail(response: httpx.Response) -> str:
    """Extract the provider's error message, falling back to the raw body."""
    body = _json_body(response)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if body.get("message"):
            return str(body["message"])
    return response.text or f"HTTP {response.status_code}"
