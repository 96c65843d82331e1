"""
Configuration loading for site-hydrator.

Loads non-secret settings from config.yaml, secrets from environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

SIX_HOURS_MS = 6 * 60 * 60 * 1000


class WebAppConfig(BaseModel):
    """One web application card backed by a GitHub repository."""

    key: str
    label: str
    repo: str = Field(pattern=r"^[^/\s]+/[^/\s]+$", description="owner/name")


class AppConfig(BaseModel):
    """Application configuration. Secrets come from env vars, rest from YAML."""

    # Secrets (from environment only)
    github_token: Optional[str] = None

    # Upstreams
    github_base_url: str = "https://api.github.com"
    github_org: str = "EuphoriaDevelopmentOrg"
    euphoria_base_url: str = "https://api.euphoriadevelopment.uk"
    request_timeout: float = Field(default=10.0, gt=0)

    # Cache settings
    storage_dir: str = ".site-hydrator"
    cache_ttl_ms: int = Field(default=SIX_HOURS_MS, ge=0)
    namespace_ttl_ms: dict[str, int] = Field(default_factory=dict)
    namespace_versions: dict[str, int] = Field(default_factory=dict)

    # Configured web application cards
    web_apps: list[WebAppConfig] = Field(default_factory=list)

    @field_validator("namespace_ttl_ms")
    @classmethod
    def validate_ttls(cls, value: dict[str, int]) -> dict[str, int]:
        negative = [name for name, ttl in value.items() if ttl < 0]
        if negative:
            raise ValueError(f"Negative TTL for namespaces: {sorted(negative)}")
        return value

    @field_validator("namespace_versions")
    @classmethod
    def validate_versions(cls, value: dict[str, int]) -> dict[str, int]:
        invalid = [name for name, version in value.items() if version < 1]
        if invalid:
            raise ValueError(f"Namespace versions must be >= 1: {sorted(invalid)}")
        return value

    @model_validator(mode="after")
    def validate_unique_keys(self) -> "AppConfig":
        keys = [app.key for app in self.web_apps]
        duplicates = [k for k in keys if keys.count(k) > 1]
        if duplicates:
            raise ValueError(f"Duplicate web app keys: {set(duplicates)}")
        return self

    def ttl_for(self, namespace: str) -> int:
        """TTL of a cache namespace, falling back to cache_ttl_ms."""
        return self.namespace_ttl_ms.get(namespace, self.cache_ttl_ms)

    def get_web_app(self, key: str) -> WebAppConfig | None:
        """Look up a web app config by key."""
        for app in self.web_apps:
            if app.key == key:
                return app
        return None


def load_config(config_path: str | None = None) -> AppConfig:
    """
    Load configuration from YAML file + environment variables.

    Args:
        config_path: Path to config.yaml. If None, reads CONFIG_PATH env var
                     (default: config.yaml in current directory).

    Returns:
        Validated AppConfig instance.
    """
    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", "config.yaml")

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}

    # Inject secrets from environment (never from YAML)
    config_data = {
        **raw,
        "github_token": os.environ.get("GITHUB_TOKEN"),
    }

    return AppConfig(**config_data)
