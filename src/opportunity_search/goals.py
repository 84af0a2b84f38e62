"""Goal text and target URLs handed to the automation service, one per source."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from urllib.parse import quote

from opportunity_search.models import BrowserProfile, ProxyConfig, RunRequest, SearchCriteria
from opportunity_search.text import as_text, normalize_token

DEFAULT_JOB_RESULTS_LIMIT = 10
DEFAULT_JOB_TITLE = "Software Engineer"
DEFAULT_JOB_LOCATION = "Remote"
DEFAULT_JOB_SOURCES = (
    "LinkedIn Jobs, Indeed, Jobberman, MyJobMag, Djinni (Tech Jobs), Company Career Pages"
)
ALL_TRUSTED_SOURCES = "All + Other Trusted Sites"

SKIP_VALUES = ("any", "skip")
LOCATION_SKIP_VALUES = ("any", "skip", "global")

JOB_OUTPUT_SHAPE = {
    "results": [
        {
            "title": "Role title",
            "company": "Company name",
            "location": "Location / remote type",
            "seniority": "Internship/Entry/Mid/Senior",
            "employment_type": "Full-time/Part-time/Contract/Internship or N/A",
            "work_mode": "Remote/Hybrid/Onsite or N/A",
            "posted_date": "YYYY-MM-DD or relative date, or N/A",
            "application_deadline": "YYYY-MM-DD or N/A",
            "salary": "Expected salary/range with currency and period, or Not stated",
            "match_reason": "1-2 lines explaining why this job matches the selected criteria",
            "requirements": ["req 1", "req 2", "req 3"],
            "responsibilities": ["task 1", "task 2"],
            "benefits": ["benefit 1", "benefit 2"],
            "application_steps": ["step 1", "step 2"],
            "faq": ["faq item 1", "faq item 2"],
            "important_notes": "Location/visa/restriction caveats users should know",
            "source_url": "Official apply URL",
            "visa_note": "mentioned | unclear",
            "confidence": "high | medium | low",
        }
    ]
}


def criterion(
    criteria: Mapping[str, str],
    key: str,
    fallback: str,
    blocked: tuple[str, ...] = SKIP_VALUES,
) -> str:
    value = as_text(criteria.get(key))
    if not value or value.lower() in blocked:
        return fallback
    return value


def _encode(value: str) -> str:
    return quote(value, safe="!~*'()")


def _keywords(query: str, criteria: Mapping[str, str]) -> str:
    return query or criterion(criteria, "job_title", DEFAULT_JOB_TITLE)


def _location(criteria: Mapping[str, str]) -> str:
    return criterion(criteria, "job_location", DEFAULT_JOB_LOCATION, LOCATION_SKIP_VALUES)


def build_linkedin_url(query: str, criteria: Mapping[str, str]) -> str:
    return (
        "https://www.linkedin.com/jobs/search/"
        f"?keywords={_encode(_keywords(query, criteria))}&location={_encode(_location(criteria))}"
    )


def build_google_jobs_url(query: str, criteria: Mapping[str, str]) -> str:
    google_query = f"{_keywords(query, criteria)} {_location(criteria)} jobs"
    return f"https://www.google.com/search?ibp=htl;jobs&q={_encode(google_query)}"


def build_indeed_url(query: str, criteria: Mapping[str, str]) -> str:
    return (
        "https://www.indeed.com/jobs"
        f"?q={_encode(_keywords(query, criteria))}&l={_encode(_location(criteria))}"
    )


@dataclass(frozen=True)
class JobSource:
    name: str
    slug: str
    build_url: Callable[[str, Mapping[str, str]], str]


JOB_SOURCES: tuple[JobSource, ...] = (
    JobSource(name="LinkedIn Jobs", slug="linkedin", build_url=build_linkedin_url),
    JobSource(name="Google Jobs", slug="google-jobs", build_url=build_google_jobs_url),
    JobSource(name="Indeed", slug="indeed", build_url=build_indeed_url),
)


def build_job_goal(
    query: str,
    criteria: Mapping[str, str],
    max_results: int,
    source_name: str,
    *,
    strict_source_only: bool = False,
) -> str:
    role_level = criterion(criteria, "job_level", "Any")
    role_keywords = criterion(criteria, "job_title", query or "Any")
    focus = criterion(criteria, "job_focus", "Any")
    location = criterion(criteria, "job_location", "Any", ("skip", "global"))
    work_mode = criterion(criteria, "job_mode", "Any")
    skills = criterion(criteria, "job_stack", "Any", ("skip",))
    visa = criterion(criteria, "job_visa", "Any", ("skip",))
    salary_band = criterion(criteria, "job_salary", "Any", ("skip",))
    company_type = criterion(criteria, "job_company", "Any")
    preferred_sources = criterion(criteria, "job_source", DEFAULT_JOB_SOURCES, ("skip", "any"))
    allow_other_sources = normalize_token(criteria.get("job_source")) == normalize_token(
        ALL_TRUSTED_SOURCES
    )

    lines = [
        "You are finding job opportunities from trusted public job boards and official company career pages.",
        f"Primary source for this run: {source_name}.",
    ]
    if strict_source_only:
        lines.append(f"For this run, collect jobs from {source_name} only.")
        lines.append("Do not switch this run to another job board.")
    lines.extend(
        [
            "Prefer sources like LinkedIn Jobs, Indeed, Jobberman, MyJobMag, Djinni (Tech Jobs), and company career pages.",
            "Prefer official application links and avoid duplicates.",
            "Prioritize results that best match selected criteria: role keywords, industry, location, "
            "work mode, skills, visa preference, salary band, and company type.",
            f"Role level: {role_level}",
            f"Role keywords: {role_keywords}",
            f"Industry/field: {focus}",
            f"Location: {location}",
            f"Work mode: {work_mode}",
            f"Skills/tools (optional): {skills}",
            f"Visa sponsorship needed: {visa}",
            f"Company type: {company_type}",
            f"Salary band: {salary_band}",
            f"Preferred primary sources: {preferred_sources}",
            "Include salary information whenever available on the posting.",
            "If salary is missing, set salary to 'Not stated'.",
            "For each result, include a short 'match_reason' tied to selected criteria.",
            "Provide practical apply-ready context: responsibilities, benefits, application steps, "
            "FAQ, and important notes when available.",
            "Do not overly shorten requirements; include the most actionable 5-8 items when present.",
            f"Search other trusted sources too: {'yes' if allow_other_sources else 'no'}",
            f"Return up to {max_results} items.",
            "Return strict JSON only using this shape:",
            json.dumps(JOB_OUTPUT_SHAPE, ensure_ascii=False, separators=(",", ":")),
        ]
    )
    return "\n".join(lines)


def build_job_run_requests(
    query: str,
    criteria: SearchCriteria | None = None,
    *,
    max_results: int = DEFAULT_JOB_RESULTS_LIMIT,
    sources: tuple[JobSource, ...] = JOB_SOURCES,
    browser_profile: BrowserProfile = "stealth",
    proxy_config: ProxyConfig | None = None,
    api_integration_prefix: str = "tinyfinder-ui",
) -> list[tuple[JobSource, RunRequest]]:
    criteria = criteria or {}
    return [
        (
            source,
            RunRequest(
                url=source.build_url(query, criteria),
                goal=build_job_goal(
                    query, criteria, max_results, source.name, strict_source_only=True
                ),
                browser_profile=browser_profile,
                proxy_config=proxy_config or ProxyConfig(),
                enable_agent_memory=False,
                api_integration=f"{api_integration_prefix}-{source.slug}",
            ),
        )
        for source in sources
    ]
