"""
Application configuration via Pydantic Settings.
All values can be overridden by environment variables or a .env file.
"""
from __future__ import annotations

import re

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_FACTORY_PATH = re.compile(r"^[A-Za-z_][\w.]*:[A-Za-z_]\w*$")

WAIT_BOUND_FIELDS = (
    "DNS_PROPAGATION_DEFAULT_SECONDS",
    "DNS_PROPAGATION_MAX_SECONDS",
    "CHALLENGE_CHECK_TIMEOUT_SECONDS",
    "ORDER_READY_TIMEOUT_SECONDS",
    "ORDER_VALID_TIMEOUT_SECONDS",
    "POLL_INITIAL_DELAY_SECONDS",
    "POLL_MAX_DELAY_SECONDS",
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── DNS-01 propagation ─────────────────────────────────────────────────
    DNS_PROPAGATION_DEFAULT_SECONDS: int = 10   # used when the provider gives none
    DNS_PROPAGATION_MAX_SECONDS: int = 600      # larger requests are fatal

    # ── Bounded waits ──────────────────────────────────────────────────────
    CHALLENGE_CHECK_TIMEOUT_SECONDS: int = 300
    ORDER_READY_TIMEOUT_SECONDS: int = 60
    ORDER_VALID_TIMEOUT_SECONDS: int = 60
    POLL_INITIAL_DELAY_SECONDS: int = 5         # doubles after every attempt
    POLL_MAX_DELAY_SECONDS: int = 30

    # ── Event history ──────────────────────────────────────────────────────
    HISTORY_STORE_PATH: str = "./history"

    # ── Collaborators ──────────────────────────────────────────────────────
    # "package.module:callable" returning an IssuanceActivities instance
    ACTIVITIES_FACTORY: str = ""

    LOG_LEVEL: str = "INFO"

    @field_validator(
        "DNS_PROPAGATION_MAX_SECONDS",
        "CHALLENGE_CHECK_TIMEOUT_SECONDS",
        "ORDER_READY_TIMEOUT_SECONDS",
        "ORDER_VALID_TIMEOUT_SECONDS",
        "POLL_INITIAL_DELAY_SECONDS",
        "POLL_MAX_DELAY_SECONDS",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timeouts and delays must be positive")
        return v

    @field_validator("DNS_PROPAGATION_DEFAULT_SECONDS")
    @classmethod
    def validate_default_propagation(cls, v: int) -> int:
        if v < 0:
            raise ValueError("DNS_PROPAGATION_DEFAULT_SECONDS must not be negative")
        return v

    @field_validator("ACTIVITIES_FACTORY")
    @classmethod
    def validate_factory_path(cls, v: str) -> str:
        if v and not _FACTORY_PATH.match(v):
            raise ValueError("ACTIVITIES_FACTORY must look like 'package.module:callable'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown LOG_LEVEL {v!r}")
        return level

    @model_validator(mode="after")
    def validate_poll_delays(self) -> "Settings":
        if self.POLL_MAX_DELAY_SECONDS < self.POLL_INITIAL_DELAY_SECONDS:
            raise ValueError(
                "POLL_MAX_DELAY_SECONDS must be >= POLL_INITIAL_DELAY_SECONDS"
            )
        if self.DNS_PROPAGATION_DEFAULT_SECONDS > self.DNS_PROPAGATION_MAX_SECONDS:
            raise ValueError(
                "DNS_PROPAGATION_DEFAULT_SECONDS must not exceed DNS_PROPAGATION_MAX_SECONDS"
            )
        return self

    def wait_bounds(self) -> dict:
        """Timer and polling bounds, frozen into each new instance's history."""
        return {name: getattr(self, name) for name in WAIT_BOUND_FIELDS}


# Module-level singleton: import and use everywhere.
settings = Settings()
