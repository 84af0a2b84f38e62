from __future__ import annotations

import time
from typing import Iterable

from opportunity_search.models import NormalizedJob, Opportunity, OpportunityType
from opportunity_search.normalize import NOT_AVAILABLE, SALARY_NOT_STATED
from opportunity_search.text import normalize_token


def _available(value: str) -> str | None:
    return value if value and value != NOT_AVAILABLE else None


def build_description(job: NormalizedJob) -> str:
    lines: list[str] = []
    if job.match_reason:
        lines.append(f"Match reason: {job.match_reason}")
    role_meta = " • ".join(
        value for value in (job.seniority, job.employment_type, job.work_mode) if _available(value)
    )
    if role_meta:
        lines.append(f"Role details: {role_meta}")
    if job.salary and job.salary != SALARY_NOT_STATED:
        lines.append(f"Salary: {job.salary}")
    if _available(job.posted_date):
        lines.append(f"Posted: {job.posted_date}")
    if _available(job.application_deadline):
        lines.append(f"Apply by: {job.application_deadline}")
    if job.summary:
        lines.append(job.summary)
    if job.responsibilities:
        lines.append(f"Responsibilities: {'; '.join(job.responsibilities[:3])}")
    if job.benefits:
        lines.append(f"Benefits: {'; '.join(job.benefits[:3])}")
    if job.application_steps:
        lines.append(f"Apply steps: {'; '.join(job.application_steps[:3])}")
    if job.important_notes:
        lines.append(f"Notes: {job.important_notes}")
    return "\n".join(lines)


def to_opportunities(
    jobs: Iterable[NormalizedJob],
    opportunity_type: OpportunityType = "job",
    *,
    now_ms: int | None = None,
) -> list[Opportunity]:
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return [
        Opportunity(
            id=f"{opportunity_type}-{stamp}-{index}",
            type=opportunity_type,
            title=job.title,
            organization=job.company,
            location=job.location,
            description=build_description(job),
            requirements=list(job.requirements),
            link=job.source_url,
            deadline=_available(job.application_deadline),
            match_score=job.match_score,
            salary=job.salary,
            seniority=_available(job.seniority),
            employment_type=_available(job.employment_type),
            work_mode=_available(job.work_mode),
            posted_date=_available(job.posted_date),
            match_reason=job.match_reason,
            responsibilities=list(job.responsibilities),
            benefits=list(job.benefits),
            application_steps=list(job.application_steps),
            faq=list(job.faq),
            important_notes=job.important_notes or None,
            confidence=job.confidence,
            source_url=job.source_url or None,
        )
        for index, job in enumerate(jobs)
    ]


def opportunity_key(item: Opportunity) -> str:
    return "::".join(
        (
            normalize_token(item.title),
            normalize_token(item.organization),
            normalize_token(item.link or item.source_url or ""),
        )
    )


def dedupe_opportunities(items: Iterable[Opportunity]) -> list[Opportunity]:
    seen: set[str] = set()
    deduped: list[Opportunity] = []
    for item in items:
        key = opportunity_key(item)
        if key in seen:
            continue
        seen.add(key)
        deduped.append(item)
    return deduped


def rank_opportunities(items: Iterable[Opportunity], limit: int) -> list[Opportunity]:
    ranked = sorted(items, key=lambda item: item.match_score or 0, reverse=True)
    return ranked[:limit]
