from opportunity_search.normalize import normalize_job
from opportunity_search.opportunities import (
    build_description,
    dedupe_opportunities,
    rank_opportunities,
    to_opportunities,
)


def _job(**overrides):
    raw = {"title": "Data Engineer", "company": "Acme", "source_url": "https://jobs.test/1"}
    raw.update(overrides)
    job = normalize_job(raw)
    assert job is not None
    return job


def test_build_description_skips_placeholders() -> None:
    job = _job(
        match_reason="Uses your Spark experience",
        seniority="Senior",
        work_mode="Hybrid",
        salary="£70,000 per year",
        description="Own the lakehouse.",
        responsibilities=["Build pipelines", "Review code", "Mentor", "On-call"],
        important_notes="UK right to work required",
    )
    description = build_description(job)
    assert description.splitlines() == [
        "Match reason: Uses your Spark experience",
        "Role details: Senior • Hybrid",
        "Salary: £70,000 per year",
        "Own the lakehouse.",
        "Responsibilities: Build pipelines; Review code; Mentor",
        "Notes: UK right to work required",
    ]


def test_to_opportunities_maps_fields_and_drops_not_available() -> None:
    opportunities = to_opportunities(
        [_job(confidence="medium", application_deadline="2026-12-01"), _job(title="Analyst")],
        "job",
        now_ms=1700000000000,
    )
    first, second = opportunities
    assert first.id == "job-1700000000000-0"
    assert second.id == "job-1700000000000-1"
    assert first.type == "job"
    assert first.organization == "Acme"
    assert first.link == "https://jobs.test/1"
    assert first.source_url == "https://jobs.test/1"
    assert first.deadline == "2026-12-01"
    assert first.match_score == 78
    assert first.confidence == "medium"
    assert first.seniority is None
    assert first.posted_date is None
    assert first.important_notes is None
    assert second.deadline is None


def test_dedupe_opportunities_uses_link_or_source_url() -> None:
    items = to_opportunities([_job(), _job(title="data engineer "), _job(source_url="https://jobs.test/2")])
    assert len(dedupe_opportunities(items)) == 2


def test_rank_opportunities_sorts_descending_and_truncates() -> None:
    items = to_opportunities(
        [
            _job(title="Low", confidence="low"),
            _job(title="Unscored"),
            _job(title="High", confidence="high"),
            _job(title="Explicit", match_score=85),
        ]
    )
    ranked = rank_opportunities(items, 3)
    assert [item.title for item in ranked] == ["High", "Explicit", "Low"]
    assert [item.title for item in rank_opportunities(items, 10)][-1] == "Unscored"
