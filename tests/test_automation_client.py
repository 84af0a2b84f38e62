import asyncio
import json

import httpx
import pytest

from opportunity_search.automation.client import (
    AutomationClient,
    extract_run_payload,
    run_status_from_json,
)
from opportunity_search.automation.sse import iter_sse_data
from opportunity_search.errors import AutomationRequestError, AutomationTimeoutError
from opportunity_search.models import RunRequest

BASE_URL = "https://agent.test/v1/automation"
REQUEST = RunRequest(url="https://www.indeed.com/jobs?q=x", goal="find jobs", api_integration="t-indeed")


def _call(handler, action):
    async def runner():
        async with AutomationClient(
            "secret-key",
            base_url=BASE_URL,
            timeout_seconds=5,
            transport=httpx.MockTransport(handler),
        ) as client:
            return await action(client)

    return asyncio.run(runner())


def test_client_requires_api_key() -> None:
    with pytest.raises(ValueError):
        AutomationClient("", base_url=BASE_URL)


def test_start_run_posts_request_and_returns_run_id() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["api_key"] = request.headers["X-API-Key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"run_id": "run-123"})

    run_id = _call(handler, lambda client: client.start_run(REQUEST))

    assert run_id == "run-123"
    assert seen["url"] == f"{BASE_URL}/run-async"
    assert seen["api_key"] == "secret-key"
    assert seen["body"] == {
        "url": "https://www.indeed.com/jobs?q=x",
        "goal": "find jobs",
        "browser_profile": "stealth",
        "proxy_config": {"enabled": False},
        "feature_flags": {"enable_agent_memory": False},
        "api_integration": "t-indeed",
    }


def test_start_run_accepts_nested_run_id_and_rejects_missing() -> None:
    nested = _call(
        lambda request: httpx.Response(200, json={"data": {"run_id": "run-9"}}),
        lambda client: client.start_run(REQUEST),
    )
    assert nested == "run-9"

    with pytest.raises(AutomationRequestError, match="no run_id"):
        _call(lambda request: httpx.Response(200, json={}), lambda client: client.start_run(REQUEST))


def test_http_error_carries_status_and_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="maintenance")

    with pytest.raises(AutomationRequestError) as exc_info:
        _call(handler, lambda client: client.start_run(REQUEST))
    assert exc_info.value.status_code == 503
    assert exc_info.value.body == "maintenance"
    assert "503" in str(exc_info.value)


def test_request_timeout_becomes_automation_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(AutomationTimeoutError, match="timed out after 5s"):
        _call(handler, lambda client: client.get_run("run-1"))


def test_get_run_reads_status_payload_and_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/automation/runs/run-1"
        return httpx.Response(
            200,
            json={"run_id": "run-1", "status": "completed", "data": {"result_json": {"results": []}}},
        )

    run = _call(handler, lambda client: client.get_run("run-1"))
    assert run.status == "COMPLETED"
    assert run.payload == {"results": []}
    assert run.is_terminal


def test_run_status_parsing_variants() -> None:
    failed = run_status_from_json("r2", {"status": "FAILED", "error": {"details": "blocked"}})
    assert failed.run_id == "r2"
    assert failed.error == "blocked"
    assert failed.payload is None

    pending = run_status_from_json("r3", {"data": {"status": "pending"}})
    assert pending.status == "PENDING"
    assert not pending.is_terminal

    assert run_status_from_json("r4", "garbage").status == ""


def test_extract_run_payload_checks_top_level_before_data() -> None:
    assert extract_run_payload({"result": [1], "resultJson": [2]}) == [1]
    assert extract_run_payload({"resultJson": [2], "data": {"result": [3]}}) == [2]
    assert extract_run_payload({"data": {"resultJson": "[]"}}) == "[]"
    assert extract_run_payload({"status": "COMPLETED"}) is None
    assert extract_run_payload(None) is None


def test_run_streams_events_until_terminal() -> None:
    stream = (
        'data: {"type": "STARTED", "runId": "run-5"}\r\n\r\n'
        "data: not-json\n\n"
        'data: {"type": "PROGRESS", "purpose": "scrolling"}\n\n'
        'data: {"type": "COMPLETE", "status": "COMPLETED", "resultJson": {"results": [{"title": "A"}]}}\n\n'
        'data: {"type": "HEARTBEAT"}\n\n'
    )

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/automation/run-sse"
        assert request.headers["Accept"] == "text/event-stream"
        return httpx.Response(200, text=stream)

    event = _call(handler, lambda client: client.run(REQUEST))
    assert event.type == "COMPLETE"
    assert event.status == "COMPLETED"
    assert event.payload == {"results": [{"title": "A"}]}


def test_run_returns_last_event_on_done_sentinel_or_error_when_stream_ends() -> None:
    done = 'data: {"type": "PROGRESS", "runId": "run-6"}\n\ndata: [DONE]\n\n'
    event = _call(lambda request: httpx.Response(200, text=done), lambda client: client.run(REQUEST))
    assert event.type == "PROGRESS"
    assert event.run_id == "run-6"

    unfinished = 'data: {"type": "PROGRESS"}\n\n'
    event = _call(lambda request: httpx.Response(200, text=unfinished), lambda client: client.run(REQUEST))
    assert event.type == "PROGRESS"

    event = _call(lambda request: httpx.Response(200, text=""), lambda client: client.run(REQUEST))
    assert event.type == "ERROR"
    assert event.error == "Stream ended without terminal event"


def test_run_raises_on_http_error() -> None:
    with pytest.raises(AutomationRequestError, match="Automation HTTP 401: bad key"):
        _call(lambda request: httpx.Response(401, text="bad key"), lambda client: client.run(REQUEST))


def test_iter_sse_data_handles_split_chunks_and_trailing_frame() -> None:
    async def chunks():
        for part in ("data: {\"a\"", ": 1}\r\n", "\r\n", "event: x\ndata: line1\ndata: line2"):
            yield part

    async def collect():
        return [data async for data in iter_sse_data(chunks())]

    assert asyncio.run(collect()) == ['{"a": 1}', "line1\nline2"]


def test_get_run_encodes_run_id_in_path() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.raw_path == b"/v1/automation/runs/run%2F7%3Fx%3D1"
        return httpx.Response(200, json={"status": "RUNNING"})

    run = _call(handler, lambda client: client.get_run("run/7?x=1"))
    assert run.run_id == "run/7?x=1"
    assert run.status == "RUNNING"


def test_run_ignores_done_sentinel_in_trailing_frame() -> None:
    event = _call(lambda request: httpx.Response(200, text="data: [DONE]"), lambda client: client.run(REQUEST))
    assert event.type == "ERROR"
    assert event.error == "Stream ended without terminal event"

    stream = 'data: {"type": "PROGRESS", "runId": "run-8"}\n\ndata: [DONE]'
    event = _call(lambda request: httpx.Response(200, text=stream), lambda client: client.run(REQUEST))
    assert event.type == "PROGRESS"
    assert event.run_id == "run-8"
