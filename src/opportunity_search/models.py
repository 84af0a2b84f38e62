from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

BrowserProfile = Literal["lite", "stealth"]
ConfidenceLevel = Literal["high", "medium", "low"]
OpportunityType = Literal["job", "scholarship", "visa"]
SearchCriteria = dict[str, str]
RawJobRecord = dict[str, Any]

TERMINAL_STATUSES = ("COMPLETED", "FAILED", "CANCELLED")


@dataclass(frozen=True)
class ProxyConfig:
    enabled: bool = False
    country_code: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"enabled": self.enabled}
        if self.country_code:
            payload["country_code"] = self.country_code
        return payload


@dataclass(frozen=True)
class RunRequest:
    url: str
    goal: str
    browser_profile: BrowserProfile = "stealth"
    proxy_config: ProxyConfig = field(default_factory=ProxyConfig)
    enable_agent_memory: bool = False
    api_integration: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "url": self.url,
            "goal": self.goal,
            "browser_profile": self.browser_profile,
            "proxy_config": self.proxy_config.to_payload(),
            "feature_flags": {"enable_agent_memory": self.enable_agent_memory},
        }
        if self.api_integration:
            payload["api_integration"] = self.api_integration
        return payload


@dataclass(frozen=True)
class RunStatus:
    run_id: str
    status: str
    payload: Any = None
    error: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", str(self.status or "").strip().upper())

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class RunEvent:
    type: str
    status: str | None = None
    run_id: str | None = None
    payload: Any = None
    error: str | None = None


@dataclass(frozen=True)
class NormalizedJob:
    title: str
    company: str
    location: str
    source_url: str
    summary: str
    seniority: str
    employment_type: str
    work_mode: str
    posted_date: str
    application_deadline: str
    salary: str
    match_reason: str
    requirements: list[str]
    responsibilities: list[str]
    benefits: list[str]
    application_steps: list[str]
    faq: list[str]
    important_notes: str
    visa_note: str
    confidence: ConfidenceLevel | None = None
    match_score: float | None = None


@dataclass(frozen=True)
class Opportunity:
    id: str
    type: OpportunityType
    title: str
    organization: str
    location: str
    description: str
    requirements: list[str]
    link: str
    deadline: str | None = None
    match_score: float | None = None
    salary: str | None = None
    seniority: str | None = None
    employment_type: str | None = None
    work_mode: str | None = None
    posted_date: str | None = None
    match_reason: str | None = None
    responsibilities: list[str] = field(default_factory=list)
    benefits: list[str] = field(default_factory=list)
    application_steps: list[str] = field(default_factory=list)
    faq: list[str] = field(default_factory=list)
    important_notes: str | None = None
    confidence: ConfidenceLevel | None = None
    source_url: str | None = None


@dataclass(frozen=True)
class SearchResult:
    opportunities: list[Opportunity]
    started_run_count: int
    completed_payload_count: int
    record_count: int
    error_messages: list[str]
