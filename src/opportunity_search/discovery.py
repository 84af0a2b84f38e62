"""Shape-agnostic search for job-like records inside automation payloads.

The automation service does not guarantee where (or whether) its JSON ends up
in a run result: it may be a top-level list, nested under wrapper keys, or a
JSON document serialized into a string. The walker below tolerates all of
these and never raises on malformed input.
"""

from __future__ import annotations

import json
from typing import Any

from opportunity_search.models import RawJobRecord
from opportunity_search.text import normalize_token, pick_value

MAX_DEPTH = 8

TITLE_KEYS = ("title", "job_title", "position", "role")
COMPANY_KEYS = ("company", "organization", "employer")
LINK_KEYS = ("source_url", "url", "link", "job_url", "apply_url")
SIGNAL_KEYS = (
    "company",
    "organization",
    "employer",
    "location",
    "requirements",
    "salary",
    "salary_range",
    "work_mode",
    "responsibilities",
    "benefits",
    "application_steps",
    "faq",
    "important_notes",
    "url",
    "link",
    "source_url",
    "job_url",
    "apply_url",
    "match_reason",
    "visa_note",
    "seniority",
)
IDENTIFYING_KEYS = TITLE_KEYS + COMPANY_KEYS + ("url", "link", "job_url", "source_url")
CONTAINER_KEYS = (
    "resultJson",
    "result_json",
    "result",
    "results",
    "items",
    "listings",
    "jobs",
    "opportunities",
    "data",
    "output",
    "payload",
    "response",
    "content",
    "message",
    "text",
)


def try_parse_json(value: str) -> Any:
    text = value.strip()
    if not text or ("{" not in text and "[" not in text):
        return None
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


def looks_like_job_record(value: Any) -> bool:
    if not isinstance(value, dict):
        return False
    if pick_value(value, TITLE_KEYS) is None:
        return False
    if any(key in value for key in SIGNAL_KEYS):
        return True
    # A bare title still counts; junk is filtered during normalization.
    return pick_value(value, IDENTIFYING_KEYS) is not None


def record_key(record: dict[str, Any]) -> str:
    title = normalize_token(pick_value(record, TITLE_KEYS))
    company = normalize_token(pick_value(record, COMPANY_KEYS))
    link = normalize_token(pick_value(record, LINK_KEYS))
    return "::".join((title, company, link))


def collect_job_records(payload: Any) -> list[RawJobRecord]:
    records: list[RawJobRecord] = []
    seen_keys: set[str] = set()
    # Holds a reference to every visited dict so ids are not recycled mid-walk.
    seen_objects: dict[int, dict[str, Any]] = {}

    def walk(node: Any, depth: int = 0) -> None:
        if depth > MAX_DEPTH or node is None:
            return

        if isinstance(node, str):
            parsed = try_parse_json(node)
            if parsed is not None:
                walk(parsed, depth + 1)
            return

        if isinstance(node, (list, tuple)):
            for item in node:
                walk(item, depth + 1)
            return

        if not isinstance(node, dict) or id(node) in seen_objects:
            return
        seen_objects[id(node)] = node

        if looks_like_job_record(node):
            key = record_key(node)
            if key not in seen_keys:
                seen_keys.add(key)
                records.append(node)

        for key in CONTAINER_KEYS:
            if key in node:
                walk(node[key], depth + 1)
        for value in list(node.values()):
            if isinstance(value, (str, list, tuple, dict)):
                walk(value, depth + 1)

    walk(payload)
    return records
