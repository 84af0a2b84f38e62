from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Mapping, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

from opportunity_search.models import ProxyConfig

MODULE_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_DB_PATH = MODULE_ROOT / "data" / "opportunities.sqlite"
DEFAULT_BASE_URL = "https://agent.tinyfish.ai/v1/automation"

RUN_REQUIRED_ENVS = ("TINYFISH_API_KEY",)


class Settings(BaseModel):
    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    request_timeout_seconds: float = Field(default=420.0, gt=0)
    run_timeout_seconds: float = Field(default=720.0, gt=0)
    results_limit: int = Field(default=10, ge=1)
    browser_profile: Literal["lite", "stealth"] = "stealth"
    proxy_country_code: str | None = None
    api_integration_prefix: str = "tinyfinder-ui"
    db_path: Path = Field(default=DEFAULT_DB_PATH)
    log_level: str = "INFO"

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, value: str) -> str:
        if not value.startswith(("https://", "http://")):
            raise ValueError("TINYFISH_BASE_URL must use http:// or https://")
        return value.rstrip("/")

    @field_validator("proxy_country_code")
    @classmethod
    def _validate_country_code(cls, value: str | None) -> str | None:
        if value is None:
            return None
        code = value.strip().upper()
        if code and len(code) != 2:
            raise ValueError("PROXY_COUNTRY_CODE must be a two-letter country code")
        return code or None

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown LOG_LEVEL: {value}")
        return level

    @property
    def proxy_config(self) -> ProxyConfig:
        if self.proxy_country_code:
            return ProxyConfig(enabled=True, country_code=self.proxy_country_code)
        return ProxyConfig()


def _env_value(environ: Mapping[str, str], key: str) -> str:
    return environ.get(key, "").strip()


def missing_envs(required: Sequence[str], environ: Mapping[str, str] | None = None) -> list[str]:
    source = os.environ if environ is None else environ
    return [key for key in required if not _env_value(source, key)]


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    source = os.environ if environ is None else environ
    try:
        payload = {
            "api_key": _env_value(source, "TINYFISH_API_KEY"),
            "base_url": _env_value(source, "TINYFISH_BASE_URL") or DEFAULT_BASE_URL,
            "request_timeout_seconds": float(_env_value(source, "REQUEST_TIMEOUT_SECONDS") or "420"),
            "run_timeout_seconds": float(_env_value(source, "RUN_TIMEOUT_SECONDS") or "720"),
            "results_limit": int(_env_value(source, "RESULTS_LIMIT") or "10"),
            "browser_profile": _env_value(source, "BROWSER_PROFILE").lower() or "stealth",
            "proxy_country_code": _env_value(source, "PROXY_COUNTRY_CODE") or None,
            "api_integration_prefix": _env_value(source, "API_INTEGRATION_PREFIX") or "tinyfinder-ui",
            "db_path": Path(_env_value(source, "OPPORTUNITY_DB_PATH") or DEFAULT_DB_PATH),
            "log_level": _env_value(source, "LOG_LEVEL") or "INFO",
        }
        return Settings(**payload)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


def assert_required_envs(required: Sequence[str], environ: Mapping[str, str] | None = None) -> None:
    missing = missing_envs(required, environ)
    if missing:
        keys = ", ".join(missing)
        raise ValueError(f"Missing required environment variables: {keys}")


def mask_secret(value: str, visible_prefix: int = 3, visible_suffix: int = 2) -> str:
    if not value:
        return ""
    if len(value) <= visible_prefix + visible_suffix:
        return "*" * len(value)
    hidden = "*" * (len(value) - visible_prefix - visible_suffix)
    return f"{value[:visible_prefix]}{hidden}{value[-visible_suffix:]}"
