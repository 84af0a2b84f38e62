from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from opportunity_search.automation.sse import (
    DONE_SENTINEL,
    event_from_json,
    is_terminal_event,
    iter_sse_data,
)
from opportunity_search.errors import AutomationRequestError, AutomationTimeoutError
from opportunity_search.models import RunEvent, RunRequest, RunStatus

logger = logging.getLogger(__name__)

_PAYLOAD_KEYS = ("result", "result_json", "resultJson")


def extract_run_payload(body: Any) -> Any:
    if not isinstance(body, dict):
        return None
    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    for container in (body, data):
        for key in _PAYLOAD_KEYS:
            if container.get(key) is not None:
                return container[key]
    return None


def _error_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, dict):
        text = value.get("message") or value.get("details")
        return str(text) if text else None
    return str(value) or None


def run_status_from_json(run_id: str, body: Any) -> RunStatus:
    body = body if isinstance(body, dict) else {}
    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    status = body.get("status") or data.get("status") or ""
    return RunStatus(
        run_id=str(body.get("run_id") or body.get("runId") or run_id),
        status=str(status).strip().upper(),
        payload=extract_run_payload(body),
        error=_error_text(body.get("error") if body.get("error") is not None else data.get("error")),
    )


class AutomationClient:
    """Async client for the browser-automation service.

    ``start_run``/``get_run`` drive the asynchronous run API; ``run`` holds a
    server-sent event stream open until the run finishes.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str,
        timeout_seconds: float = 420.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise ValueError("TINYFISH_API_KEY not set")
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-API-Key": api_key},
            timeout=timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> AutomationClient:
        return self

    async def __aexit__(self, exc_type, exc, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, action: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise AutomationTimeoutError(
                f"{action} timed out after {round(self.timeout_seconds)}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise AutomationRequestError(f"{action} failed: {exc}") from exc

        if response.is_error:
            text = response.text
            detail = f": {text}" if text else ""
            raise AutomationRequestError(
                f"{action} failed: {response.status_code} {response.reason_phrase}{detail}",
                status_code=response.status_code,
                body=text,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise AutomationRequestError(f"{action} returned invalid JSON") from exc

    async def start_run(self, request: RunRequest) -> str:
        body = await self._request(
            "POST", "/run-async", "Automation async start", json=request.to_payload()
        )
        data = body.get("data") if isinstance(body, dict) and isinstance(body.get("data"), dict) else {}
        run_id = ""
        if isinstance(body, dict):
            run_id = str(body.get("run_id") or body.get("runId") or data.get("run_id") or "").strip()
        if not run_id:
            raise AutomationRequestError("Automation async start returned no run_id")
        logger.debug("started run %s for %s", run_id, request.api_integration or request.url)
        return run_id

    async def get_run(self, run_id: str) -> RunStatus:
        body = await self._request("GET", f"/runs/{quote(run_id, safe='')}", "Automation run status")
        return run_status_from_json(run_id, body)

    async def run(self, request: RunRequest) -> RunEvent:
        """Run to completion over the event stream and return the terminal event."""
        last_event: RunEvent | None = None
        try:
            async with self._client.stream(
                "POST",
                "/run-sse",
                json=request.to_payload(),
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.is_error:
                    text = (await response.aread()).decode("utf-8", errors="replace")
                    raise AutomationRequestError(
                        f"Automation HTTP {response.status_code}: {text or response.reason_phrase}",
                        status_code=response.status_code,
                        body=text,
                    )
                async for data in iter_sse_data(response.aiter_text()):
                    if data == DONE_SENTINEL:
                        return last_event or RunEvent(type="COMPLETE", status="COMPLETED")
                    try:
                        event = event_from_json(json.loads(data))
                    except ValueError:
                        logger.debug("ignoring malformed event frame: %.80s", data)
                        continue
                    last_event = event
                    if is_terminal_event(event):
                        return event
        except httpx.TimeoutException as exc:
            raise AutomationTimeoutError(
                f"Automation run timed out after {round(self.timeout_seconds)}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise AutomationRequestError(f"Automation run failed: {exc}") from exc

        return last_event or RunEvent(type="ERROR", error="Stream ended without terminal event")
