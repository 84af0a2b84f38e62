from __future__ import annotations

import re
from typing import Any, Iterable

from opportunity_search.models import ConfidenceLevel, NormalizedJob, RawJobRecord
from opportunity_search.text import (
    as_string_list,
    dedupe_strings,
    normalize_token,
    pick_text,
    pick_value,
    to_number_or_none,
)

NOT_AVAILABLE = "N/A"
SALARY_NOT_STATED = "Not stated"
DEFAULT_COMPANY = "Unknown"
DEFAULT_MATCH_REASON = "Strong relevance to your selected role and filters."
DEFAULT_VISA_NOTE = "unclear"

MAX_REQUIREMENTS = 8
MAX_RESPONSIBILITIES = 6
MAX_BENEFITS = 6
MAX_APPLICATION_STEPS = 5
MAX_FAQ = 5

CONFIDENCE_SCORES: dict[str, float] = {"high": 92, "medium": 78, "low": 64}

_SALARY_RE = re.compile(
    r"((?:[$€£₦]|USD|EUR|GBP|NGN)\s?\d[\d,]*"
    r"(?:\s?-\s?(?:[$€£₦]|USD|EUR|GBP|NGN)?\s?\d[\d,]*)?"
    r"(?:\s*(?:/|per)\s*(?:year|month|hour|annum|yr|mo|hr))?)",
    re.IGNORECASE,
)

_TITLE_KEYS = ("title", "role", "job_title", "position")
_COMPANY_KEYS = ("company", "organization", "employer", "hiring_company")
_SOURCE_URL_KEYS = (
    "source_url",
    "apply_link",
    "application_url",
    "official_url",
    "url",
    "link",
    "job_url",
    "apply_url",
)
_SUMMARY_KEYS = ("description", "summary", "snippet", "job_summary", "requirements_text")
_SALARY_KEYS = (
    "salary",
    "salary_range",
    "compensation",
    "pay",
    "remuneration",
    "salary_band",
    "salary_info",
)
_MATCH_REASON_KEYS = ("match_reason", "why_match", "fit_summary", "alignment_reason")
_LOCATION_KEYS = ("location", "work_location", "city", "country", "remote_type", "work_mode")
_EMPLOYMENT_TYPE_KEYS = ("employment_type", "job_type", "contract_type", "engagement_type")
_POSTED_DATE_KEYS = ("posted_date", "date_posted", "published_at", "listed_at", "created_at")
_DEADLINE_KEYS = ("application_deadline", "deadline", "apply_by", "closing_date", "expires_at")
_NOTES_KEYS = ("important_notes", "notes", "caveats", "eligibility_notes", "geo_restrictions")
_SCORE_KEYS = ("matchScore", "match_score", "score")


def normalize_confidence(value: Any) -> ConfidenceLevel | None:
    raw = normalize_token(value)
    if not raw:
        return None
    if "high" in raw:
        return "high"
    if "medium" in raw or "med" in raw:
        return "medium"
    if "low" in raw:
        return "low"
    return None


def confidence_to_match_score(confidence: ConfidenceLevel | None) -> float | None:
    if confidence is None:
        return None
    return CONFIDENCE_SCORES[confidence]


def extract_salary_hint(text: str) -> str:
    if not text:
        return ""
    match = _SALARY_RE.search(text)
    return match.group(1).strip() if match else ""


def _explicit_score(raw: RawJobRecord) -> float | None:
    for key in _SCORE_KEYS:
        if raw.get(key) is not None:
            return to_number_or_none(raw[key])
    return None


def _capped(values: list[str], limit: int) -> list[str]:
    return dedupe_strings(values)[:limit]


def job_key(job: NormalizedJob) -> str:
    return "::".join((job.title.lower(), job.company.lower(), job.source_url.lower()))


def normalize_job(raw: RawJobRecord) -> NormalizedJob | None:
    """Map one discovered record onto the canonical shape.

    Returns ``None`` when the record has no usable title.
    """
    title = pick_text(raw, _TITLE_KEYS)
    if not title:
        return None
    company = pick_text(raw, _COMPANY_KEYS) or DEFAULT_COMPANY

    requirements = as_string_list(raw.get("requirements"))
    responsibilities = as_string_list(
        pick_value(raw, ("responsibilities", "duties", "tasks", "what_youll_do"))
    )
    benefits = as_string_list(pick_value(raw, ("benefits", "perks", "what_we_offer")))
    application_steps = as_string_list(
        pick_value(raw, ("application_steps", "steps_to_apply", "how_to_apply", "apply_steps"))
    )
    faq = as_string_list(pick_value(raw, ("faq", "candidate_faq", "job_faq")))

    summary = pick_text(raw, _SUMMARY_KEYS)
    if not summary:
        fallback_parts = [pick_text(raw, ("match_reason", "why_match")), "; ".join(requirements[:2])]
        summary = " ".join(part for part in fallback_parts if part)

    salary = pick_text(raw, _SALARY_KEYS) or extract_salary_hint(summary) or SALARY_NOT_STATED
    confidence = normalize_confidence(raw.get("confidence"))
    explicit_score = _explicit_score(raw)

    return NormalizedJob(
        title=title,
        company=company,
        location=pick_text(raw, _LOCATION_KEYS) or NOT_AVAILABLE,
        source_url=pick_text(raw, _SOURCE_URL_KEYS),
        summary=summary,
        seniority=pick_text(raw, ("seniority", "level")) or NOT_AVAILABLE,
        employment_type=pick_text(raw, _EMPLOYMENT_TYPE_KEYS) or NOT_AVAILABLE,
        work_mode=pick_text(raw, ("work_mode", "remote_type", "work_arrangement")) or NOT_AVAILABLE,
        posted_date=pick_text(raw, _POSTED_DATE_KEYS) or NOT_AVAILABLE,
        application_deadline=pick_text(raw, _DEADLINE_KEYS) or NOT_AVAILABLE,
        salary=salary,
        match_reason=pick_text(raw, _MATCH_REASON_KEYS) or DEFAULT_MATCH_REASON,
        requirements=_capped(requirements, MAX_REQUIREMENTS),
        responsibilities=_capped(responsibilities, MAX_RESPONSIBILITIES),
        benefits=_capped(benefits, MAX_BENEFITS),
        application_steps=_capped(application_steps, MAX_APPLICATION_STEPS),
        faq=_capped(faq, MAX_FAQ),
        important_notes=pick_text(raw, _NOTES_KEYS),
        visa_note=pick_text(raw, ("visa_note", "visa", "visa_sponsorship")) or DEFAULT_VISA_NOTE,
        confidence=confidence,
        match_score=explicit_score if explicit_score is not None else confidence_to_match_score(confidence),
    )


def dedupe_jobs(jobs: Iterable[NormalizedJob]) -> list[NormalizedJob]:
    """Collapse duplicate (title, company, source url) keys.

    When the same key appears more than once the higher match score wins; on a
    tie the first one seen is kept, so callers control precedence by order.
    """
    best: dict[str, NormalizedJob] = {}
    for job in jobs:
        key = job_key(job)
        current = best.get(key)
        if current is None or (job.match_score or 0) > (current.match_score or 0):
            best[key] = job
    return list(best.values())


def normalize_jobs(records: Iterable[RawJobRecord]) -> list[NormalizedJob]:
    jobs = [job for job in (normalize_job(raw) for raw in records) if job is not None]
    return dedupe_jobs(jobs)
