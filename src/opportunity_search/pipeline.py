from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from tenacity import AsyncRetrying, RetryError, before_sleep_log, retry_if_result

from opportunity_search.automation.client import AutomationClient
from opportunity_search.config import Settings
from opportunity_search.discovery import collect_job_records
from opportunity_search.errors import AutomationTimeoutError, SearchFailedError
from opportunity_search.goals import (
    DEFAULT_JOB_RESULTS_LIMIT,
    JOB_SOURCES,
    JobSource,
    build_job_run_requests,
)
from opportunity_search.models import (
    BrowserProfile,
    ProxyConfig,
    RunRequest,
    RunStatus,
    SearchCriteria,
    SearchResult,
)
from opportunity_search.normalize import normalize_jobs
from opportunity_search.opportunities import (
    dedupe_opportunities,
    rank_opportunities,
    to_opportunities,
)

logger = logging.getLogger(__name__)

SHORT_TASK_POLL_SECONDS = 2.5
MEDIUM_TASK_POLL_SECONDS = 7.5
LONG_TASK_POLL_SECONDS = 30.0
RUN_TIMEOUT_SECONDS = 12 * 60
MAX_EMPTY_PAYLOAD_POLLS = 6

Sleep = Callable[[float], Awaitable[Any]]
Clock = Callable[[], float]


class RunBackend(Protocol):
    async def start_run(self, request: RunRequest) -> str: ...

    async def get_run(self, run_id: str) -> RunStatus: ...


def poll_interval_for_elapsed(elapsed_seconds: float) -> float:
    if elapsed_seconds < 60:
        return SHORT_TASK_POLL_SECONDS
    if elapsed_seconds < 5 * 60:
        return MEDIUM_TASK_POLL_SECONDS
    return LONG_TASK_POLL_SECONDS


def _error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


async def wait_for_run_completion(
    backend: RunBackend,
    run_id: str,
    *,
    timeout_seconds: float = RUN_TIMEOUT_SECONDS,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
) -> RunStatus:
    """Poll one run until it settles.

    A COMPLETED run without a payload is polled again, up to
    ``MAX_EMPTY_PAYLOAD_POLLS`` consecutive times, then returned as-is.
    Poll errors propagate unchanged; exceeding ``timeout_seconds`` raises
    ``AutomationTimeoutError``.
    """
    started_at = clock()
    empty_payloads = 0

    def elapsed() -> float:
        return clock() - started_at

    async def poll() -> RunStatus:
        nonlocal empty_payloads
        run = await backend.get_run(run_id)
        if run.status == "COMPLETED" and run.payload is None:
            empty_payloads += 1
        else:
            empty_payloads = 0
        return run

    def unsettled(run: RunStatus) -> bool:
        if run.status == "COMPLETED" and run.payload is None:
            return empty_payloads < MAX_EMPTY_PAYLOAD_POLLS
        return not run.is_terminal

    retrying = AsyncRetrying(
        retry=retry_if_result(unsettled),
        wait=lambda _state: poll_interval_for_elapsed(elapsed()),
        stop=lambda _state: elapsed() >= timeout_seconds,
        sleep=sleep,
        before_sleep=before_sleep_log(logger, logging.DEBUG),
    )
    try:
        return await retrying(poll)
    except RetryError as exc:
        raise AutomationTimeoutError(
            f"Automation run {run_id} timed out after {round(timeout_seconds)}s"
        ) from exc


async def _start_runs(
    backend: RunBackend,
    runs: list[tuple[JobSource, RunRequest]],
) -> tuple[list[tuple[JobSource, str]], list[str]]:
    outcomes = await asyncio.gather(
        *(backend.start_run(request) for _, request in runs),
        return_exceptions=True,
    )
    started: list[tuple[JobSource, str]] = []
    errors: list[str] = []
    seen_run_ids: set[str] = set()
    for (source, _), outcome in zip(runs, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.warning("failed to start %s run: %s", source.name, outcome)
            errors.append(f"{source.name}: {_error_message(outcome)}")
            continue
        run_id = str(outcome or "").strip()
        if not run_id or run_id in seen_run_ids:
            continue
        seen_run_ids.add(run_id)
        started.append((source, run_id))
    return started, errors


def _run_failure(source: JobSource, run: RunStatus) -> str | None:
    if run.status == "COMPLETED":
        if run.payload is None:
            return f"{source.name}: Run {run.run_id} completed without payload"
        return None
    if run.status == "FAILED":
        return f"{source.name}: {run.error or 'Unknown run error'}"
    return f"{source.name}: Run {run.run_id} was cancelled"


async def search_jobs_multi_source(
    backend: RunBackend,
    query: str,
    criteria: SearchCriteria | None = None,
    *,
    limit: int = DEFAULT_JOB_RESULTS_LIMIT,
    sources: tuple[JobSource, ...] = JOB_SOURCES,
    browser_profile: BrowserProfile = "stealth",
    proxy_config: ProxyConfig | None = None,
    api_integration_prefix: str = "tinyfinder-ui",
    run_timeout_seconds: float = RUN_TIMEOUT_SECONDS,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
) -> SearchResult:
    runs = build_job_run_requests(
        query,
        criteria,
        max_results=limit,
        sources=sources,
        browser_profile=browser_profile,
        proxy_config=proxy_config,
        api_integration_prefix=api_integration_prefix,
    )
    started, start_errors = await _start_runs(backend, runs)
    if not started:
        raise SearchFailedError(
            "Automation service did not return run IDs for multi-source search.", start_errors
        )
    logger.info("started %d of %d source runs", len(started), len(runs))

    settled = await asyncio.gather(
        *(
            wait_for_run_completion(
                backend,
                run_id,
                timeout_seconds=run_timeout_seconds,
                sleep=sleep,
                clock=clock,
            )
            for _, run_id in started
        ),
        return_exceptions=True,
    )

    payloads: list[Any] = []
    run_errors: list[str] = []
    for (source, run_id), outcome in zip(started, settled):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.warning("run %s (%s) failed: %s", run_id, source.name, outcome)
            run_errors.append(f"{source.name}: {_error_message(outcome)}")
            continue
        failure = _run_failure(source, outcome)
        if failure:
            logger.warning("run %s did not produce results: %s", run_id, failure)
            run_errors.append(failure)
        else:
            payloads.append(outcome.payload)

    error_messages = run_errors + start_errors
    if not payloads:
        raise SearchFailedError("Multi-source search returned no completed runs.", error_messages)

    # Payloads stay in source order so duplicate resolution does not depend on
    # which run finished first.
    records = [record for payload in payloads for record in collect_job_records(payload)]
    jobs = normalize_jobs(records)
    opportunities = rank_opportunities(dedupe_opportunities(to_opportunities(jobs, "job")), limit)
    logger.info(
        "collected %d records from %d payloads, returning %d opportunities",
        len(records),
        len(payloads),
        len(opportunities),
    )
    return SearchResult(
        opportunities=opportunities,
        started_run_count=len(started),
        completed_payload_count=len(payloads),
        record_count=len(records),
        error_messages=error_messages,
    )


async def search_jobs(
    settings: Settings,
    query: str,
    criteria: SearchCriteria | None = None,
    *,
    backend: RunBackend | None = None,
    limit: int | None = None,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
) -> SearchResult:
    options = dict(
        limit=limit or settings.results_limit,
        browser_profile=settings.browser_profile,
        proxy_config=settings.proxy_config,
        api_integration_prefix=settings.api_integration_prefix,
        run_timeout_seconds=settings.run_timeout_seconds,
        sleep=sleep,
        clock=clock,
    )
    if backend is not None:
        return await search_jobs_multi_source(backend, query, criteria, **options)

    async with AutomationClient(
        settings.api_key,
        base_url=settings.base_url,
        timeout_seconds=settings.request_timeout_seconds,
    ) as client:
        return await search_jobs_multi_source(client, query, criteria, **options)
