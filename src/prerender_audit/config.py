"""Audit configuration using pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All configuration loaded from environment (``PRERENDER_*``) / .env file."""

    # ── Storage ───────────────────────────────────────────────────────────────
    scraper_bucket: str = Field(default="spacecat-scraper", description="Bucket holding scraped pages")
    storage_prefix: str = Field(default="prerender", description="Top-level key prefix of the audit")
    storage_dir: str = Field(default="data/blobs", description="Root directory of the file blob store")

    # ── Analysis ──────────────────────────────────────────────────────────────
    content_gain_threshold: float = Field(default=1.2)
    top_pages_limit: int = Field(default=25, ge=1)
    max_concurrency: int = Field(default=10, ge=1)
    forbidden_policy: Literal["all", "any"] = Field(default="all")

    # ── Polling ───────────────────────────────────────────────────────────────
    wait_for_scrapes: bool = Field(default=False)
    poll_interval_ms: int = Field(default=30_000, ge=0)
    max_wait_ms: int = Field(default=600_000, ge=0)

    # ── Guidance ──────────────────────────────────────────────────────────────
    guidance_queue_url: Optional[str] = Field(default=None)

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(
        env_prefix="PRERENDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
