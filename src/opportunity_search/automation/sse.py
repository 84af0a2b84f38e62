from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from opportunity_search.models import RunEvent

DONE_SENTINEL = "[DONE]"


def _frame_data(raw_frame: str) -> str:
    data_lines = [
        line.strip()[len("data:") :].strip()
        for line in raw_frame.split("\n")
        if line.strip().startswith("data:")
    ]
    return "\n".join(data_lines).strip()


async def iter_sse_data(chunks: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the joined ``data:`` payload of every event frame in a text stream.

    A final frame without the trailing blank line is still yielded, unless it
    is the bare ``[DONE]`` sentinel.
    """
    buffer = ""
    async for chunk in chunks:
        buffer = (buffer + chunk).replace("\r", "")
        while "\n\n" in buffer:
            raw_frame, buffer = buffer.split("\n\n", 1)
            data = _frame_data(raw_frame)
            if data:
                yield data

    tail = _frame_data(buffer.strip())
    if tail and tail != DONE_SENTINEL:
        yield tail


def _first_not_none(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def event_from_json(body: Any) -> RunEvent:
    if not isinstance(body, dict):
        return RunEvent(type="UNKNOWN")
    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    status = _first_not_none(body.get("status"), data.get("status"))
    payload = _first_not_none(
        body.get("resultJson"),
        body.get("result_json"),
        data.get("resultJson"),
        data.get("result_json"),
        body.get("result") if status == "COMPLETED" else None,
        data.get("result") if status == "COMPLETED" else None,
    )
    error = _first_not_none(body.get("error"), data.get("error"))
    return RunEvent(
        type=str(_first_not_none(body.get("type"), data.get("type"), "UNKNOWN")),
        status=str(status).upper() if status is not None else None,
        run_id=_first_not_none(body.get("runId"), body.get("run_id")),
        payload=payload,
        error=str(error) if error is not None else None,
    )


def is_terminal_event(event: RunEvent) -> bool:
    if event.type.upper() == "COMPLETE":
        return True
    return event.status in ("COMPLETED", "FAILED", "CANCELLED")
