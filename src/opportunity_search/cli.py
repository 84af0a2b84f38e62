from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import datetime, timezone

from opportunity_search.automation.client import AutomationClient
from opportunity_search.config import (
    RUN_REQUIRED_ENVS,
    Settings,
    assert_required_envs,
    load_settings,
    mask_secret,
    missing_envs,
)
from opportunity_search.errors import AutomationError
from opportunity_search.models import Opportunity, RunEvent, RunRequest, SearchCriteria
from opportunity_search.pipeline import search_jobs
from opportunity_search.storage import OpportunityStore


def _criteria_pair(value: str) -> tuple[str, str]:
    key, sep, raw = value.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {value!r}")
    return key.strip(), raw.strip()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="opportunity-search")
    subparsers = parser.add_subparsers(dest="command", required=True)

    search_parser = subparsers.add_parser(
        "search", help="Run a multi-source job search through the automation service"
    )
    search_parser.add_argument("query", nargs="?", default="", help="Role keywords")
    search_parser.add_argument(
        "--criteria",
        "-c",
        type=_criteria_pair,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Search filter such as job_location=UK or job_mode=Remote (repeatable)",
    )
    search_parser.add_argument("--limit", type=int, default=None, help="Maximum results")
    search_parser.add_argument("--save", action="store_true", help="Import results into the store")
    search_parser.add_argument("--user", default="", help="User id to import results for")

    run_parser = subparsers.add_parser(
        "run", help="Run one automation goal against a URL and wait for the final event"
    )
    run_parser.add_argument("url")
    run_parser.add_argument("goal")

    status_parser = subparsers.add_parser("status", help="Show the status of one automation run")
    status_parser.add_argument("run_id")

    list_parser = subparsers.add_parser("list", help="List stored opportunities for a user")
    list_parser.add_argument("--user", required=True)
    list_parser.add_argument("--type", choices=("job", "scholarship", "visa"), default=None)

    subparsers.add_parser("healthcheck", help="Validate config and local runtime readiness")
    return parser


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s %(message)s",
    )


def _format_opportunity(index: int, item: Opportunity) -> str:
    score = f"{item.match_score:g}" if item.match_score is not None else "-"
    return f"{index}. [{score}] {item.title} @ {item.organization} ({item.location}) {item.link}".rstrip()


def _cmd_search(args: argparse.Namespace) -> int:
    settings = load_settings()
    assert_required_envs(RUN_REQUIRED_ENVS)
    if args.save and not args.user:
        raise ValueError("--user is required with --save")
    _configure_logging(settings)

    criteria: SearchCriteria = dict(args.criteria)
    result = asyncio.run(search_jobs(settings, args.query, criteria, limit=args.limit))

    print(
        "search summary:",
        f"started_runs={result.started_run_count}",
        f"completed_payloads={result.completed_payload_count}",
        f"records={result.record_count}",
        f"opportunities={len(result.opportunities)}",
        f"errors={len(result.error_messages)}",
    )
    for index, item in enumerate(result.opportunities, start=1):
        print(_format_opportunity(index, item))
    for error in result.error_messages:
        print(f"- {error}")

    if args.save:
        run_at = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        with OpportunityStore(settings.db_path) as store:
            created = store.import_opportunities(args.user, result.opportunities)
            store.log_search(run_at, args.query, created, len(result.error_messages))
        print(f"imported {created} opportunities for {args.user}")
    return 0


async def _stream_run(settings: Settings, request: RunRequest) -> RunEvent:
    async with AutomationClient(
        settings.api_key,
        base_url=settings.base_url,
        timeout_seconds=settings.request_timeout_seconds,
    ) as client:
        return await client.run(request)


async def _fetch_status(settings: Settings, run_id: str):
    async with AutomationClient(
        settings.api_key,
        base_url=settings.base_url,
        timeout_seconds=settings.request_timeout_seconds,
    ) as client:
        return await client.get_run(run_id)


def _cmd_status(args: argparse.Namespace) -> int:
    settings = load_settings()
    assert_required_envs(RUN_REQUIRED_ENVS)
    _configure_logging(settings)

    run = asyncio.run(_fetch_status(settings, args.run_id))
    print(f"run {run.run_id}: {run.status or 'UNKNOWN'}")
    if run.error:
        print(f"error: {run.error}")
    print(f"payload attached: {run.payload is not None}")
    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    settings = load_settings()
    assert_required_envs(RUN_REQUIRED_ENVS)
    _configure_logging(settings)

    request = RunRequest(
        url=args.url,
        goal=args.goal,
        browser_profile=settings.browser_profile,
        proxy_config=settings.proxy_config,
        api_integration=settings.api_integration_prefix,
    )
    event = asyncio.run(_stream_run(settings, request))
    print(f"run {event.run_id or '-'}: {event.type} {event.status or ''}".rstrip())
    if event.error:
        print(f"error: {event.error}")
    if event.payload is not None:
        print(json.dumps(event.payload, ensure_ascii=False, indent=2))
    return 0 if event.status == "COMPLETED" or event.type.upper() == "COMPLETE" else 1


def _cmd_list(args: argparse.Namespace) -> int:
    settings = load_settings()
    with OpportunityStore(settings.db_path) as store:
        items = store.list_opportunities(args.user, args.type)
    print(f"{len(items)} stored opportunities for {args.user}")
    for index, item in enumerate(items, start=1):
        print(_format_opportunity(index, item))
    return 0


def _cmd_healthcheck() -> int:
    settings = load_settings()
    missing = missing_envs(RUN_REQUIRED_ENVS)
    if missing:
        print("missing required env vars:", ", ".join(missing))
        return 1

    try:
        with OpportunityStore(settings.db_path):
            pass
    except Exception as exc:
        print(f"opportunity db check failed: {exc}")
        return 1

    print(f"api key: {mask_secret(settings.api_key)}")
    print(f"automation endpoint: {settings.base_url}")
    print("healthcheck passed")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "search":
            return _cmd_search(args)
        if args.command == "run":
            return _cmd_run(args)
        if args.command == "status":
            return _cmd_status(args)
        if args.command == "list":
            return _cmd_list(args)
        if args.command == "healthcheck":
            return _cmd_healthcheck()
    except (ValueError, AutomationError) as exc:
        print(exc)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
