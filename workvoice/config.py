"""Runtime configuration for the moderation engine.

Values come from ``WORKVOICE_*`` environment variables, optionally layered
on top of a YAML file (see :meth:`Settings.from_yaml`).
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="WORKVOICE_", extra="ignore")

    data_dir: Path = Path.home() / ".workvoice"

    # Fernet key used to seal anonymous authors. Loaded once, never logged.
    anonymity_key: Optional[SecretStr] = None

    report_page_size: int = 100
    admin_report_page_size: int = 200
    activity_page_size: int = 50

    restriction_days: int = 7
    suspension_days: int = 30

    store_lock_timeout: float = 5.0
    store_retry_backoff: float = 0.05

    audit_failure_alert_threshold: int = 3

    @field_validator("report_page_size", "admin_report_page_size")
    @classmethod
    def _bounded_page(cls, v: int) -> int:
        if not 1 <= v <= 200:
            raise ValueError("page size must be between 1 and 200")
        return v

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML mapping; environment variables still win."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")
        env_overrides = cls().model_dump(exclude_unset=True)
        data.update(env_overrides)
        return cls(**data)
