"""
Pydantic models shared by the hydration layer and the upstream clients.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class OutcomeKind(str, Enum):
    fresh = "fresh"
    stale = "stale"
    rate_limited = "rate_limited"
    error = "error"


class ErrorKind(str, Enum):
    storage_unavailable = "storage_unavailable"
    rate_limited = "rate_limited"
    upstream_error = "upstream_error"
    malformed_response = "malformed_response"


class Outcome(BaseModel):
    """Result of one hydration. Each branch of the protocol maps to one kind."""

    key: str
    kind: OutcomeKind
    payload: Any = None
    reason: Optional[ErrorKind] = None
    from_cache: bool = False
    stored_at: Optional[int] = Field(
        default=None, description="Epoch millis of the cache entry that was rendered"
    )


class ReleaseKind(str, Enum):
    asset = "asset"
    no_release = "no_release"
    no_asset = "no_asset"


class ReleaseDownload(BaseModel):
    """Best downloadable asset of a repository's most recent release."""

    kind: ReleaseKind
    url: Optional[str] = None
    asset_name: str = ""


class Plugin(BaseModel):
    """The fields of a GitHub repository that the plugin cards render."""

    name: str
    html_url: str
    description: Optional[str] = None
    stargazers_count: int = 0
    forks_count: int = 0
    language: Optional[str] = None
    updated_at: Optional[str] = None
    archived: bool = False
    fork: bool = False


class RepoMeta(BaseModel):
    language: str = "Unknown"
    stars: int = 0
    forks: int = 0
    updated_at: Optional[str] = None
