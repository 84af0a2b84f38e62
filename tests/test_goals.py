import json

from opportunity_search.goals import (
    DEFAULT_JOB_SOURCES,
    JOB_OUTPUT_SHAPE,
    build_google_jobs_url,
    build_indeed_url,
    build_job_goal,
    build_job_run_requests,
    build_linkedin_url,
    criterion,
)
from opportunity_search.models import ProxyConfig


def test_criterion_falls_back_on_blank_and_sentinels() -> None:
    criteria = {"job_level": " Any ", "job_stack": "skip", "job_mode": "", "job_title": "Analyst"}
    assert criterion(criteria, "job_level", "fallback") == "fallback"
    assert criterion(criteria, "job_stack", "fallback") == "fallback"
    assert criterion(criteria, "job_mode", "fallback") == "fallback"
    assert criterion(criteria, "missing", "fallback") == "fallback"
    assert criterion(criteria, "job_title", "fallback") == "Analyst"
    assert criterion({"job_visa": "any"}, "job_visa", "Any", ("skip",)) == "any"


def test_source_urls_encode_keywords_and_location() -> None:
    criteria = {"job_location": "United Kingdom"}
    assert (
        build_linkedin_url("Data Engineer", criteria)
        == "https://www.linkedin.com/jobs/search/?keywords=Data%20Engineer&location=United%20Kingdom"
    )
    assert (
        build_google_jobs_url("Nurse", {"job_location": "Lagos"})
        == "https://www.google.com/search?ibp=htl;jobs&q=Nurse%20Lagos%20jobs"
    )
    assert build_indeed_url("C++ Dev", {}) == "https://www.indeed.com/jobs?q=C%2B%2B%20Dev&l=Remote"


def test_source_urls_use_defaults_when_criteria_skipped() -> None:
    criteria = {"job_location": "Global", "job_title": "skip"}
    assert (
        build_linkedin_url("", criteria)
        == "https://www.linkedin.com/jobs/search/?keywords=Software%20Engineer&location=Remote"
    )
    assert (
        build_indeed_url("", {"job_title": "Product Manager"})
        == "https://www.indeed.com/jobs?q=Product%20Manager&l=Remote"
    )


def test_goal_renders_criteria_and_output_contract() -> None:
    goal = build_job_goal(
        "Backend Engineer",
        {
            "job_level": "Senior",
            "job_location": "Global",
            "job_stack": "Python, Django",
            "job_salary": "skip",
            "job_source": "All + Other Trusted Sites",
        },
        7,
        "Indeed",
        strict_source_only=True,
    )
    lines = goal.splitlines()
    assert "Primary source for this run: Indeed." in lines
    assert "For this run, collect jobs from Indeed only." in lines
    assert "Role level: Senior" in lines
    assert "Role keywords: Backend Engineer" in lines
    assert "Location: Any" in lines
    assert "Skills/tools (optional): Python, Django" in lines
    assert "Salary band: Any" in lines
    assert "Preferred primary sources: All + Other Trusted Sites" in lines
    assert "Search other trusted sources too: yes" in lines
    assert "Return up to 7 items." in lines
    assert lines[-2] == "Return strict JSON only using this shape:"
    assert json.loads(lines[-1]) == JOB_OUTPUT_SHAPE


def test_goal_without_strict_source_uses_default_preferences() -> None:
    lines = build_job_goal("", {}, 10, "LinkedIn Jobs").splitlines()
    assert not any(line.startswith("For this run, collect jobs from") for line in lines)
    assert "Role keywords: Any" in lines
    assert f"Preferred primary sources: {DEFAULT_JOB_SOURCES}" in lines
    assert "Search other trusted sources too: no" in lines


def test_build_job_run_requests_creates_one_request_per_source() -> None:
    runs = build_job_run_requests(
        "Data Scientist",
        {"job_location": "Canada"},
        max_results=5,
        proxy_config=ProxyConfig(enabled=True, country_code="CA"),
        api_integration_prefix="finder",
    )
    assert [source.name for source, _ in runs] == ["LinkedIn Jobs", "Google Jobs", "Indeed"]
    assert [request.api_integration for _, request in runs] == [
        "finder-linkedin",
        "finder-google-jobs",
        "finder-indeed",
    ]

    _, linkedin = runs[0]
    payload = linkedin.to_payload()
    assert payload["url"].startswith("https://www.linkedin.com/jobs/search/?keywords=Data%20Scientist")
    assert payload["browser_profile"] == "stealth"
    assert payload["proxy_config"] == {"enabled": True, "country_code": "CA"}
    assert payload["feature_flags"] == {"enable_agent_memory": False}
    assert "LinkedIn Jobs only." in payload["goal"]
    assert "Return up to 5 items." in payload["goal"]


def test_default_request_payload_disables_proxy() -> None:
    (_, request), *_ = build_job_run_requests("Engineer")
    assert request.to_payload()["proxy_config"] == {"enabled": False}
