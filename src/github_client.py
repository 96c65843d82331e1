"""
Async GitHub REST client.

Thin wrapper around httpx. Lists an organization's Endstone plugin
repositories, looks up repository metadata and resolves the best release
download. Raises the errors of src.errors on failures.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from src.errors import MalformedResponse, UpstreamError
from src.fetch import get_json
from src.models import Plugin, ReleaseDownload, ReleaseKind, RepoMeta

logger = logging.getLogger(__name__)

UPSTREAM = "github"
GITHUB_ACCEPT = "application/vnd.github+json"

_ENDSTONE_SUFFIX = re.compile(r"-endstone$", re.IGNORECASE)


def is_endstone_repo(repo: Any) -> bool:
    if not isinstance(repo, dict):
        return False
    if repo.get("archived") or repo.get("fork"):
        return False
    return bool(_ENDSTONE_SUFFIX.search(repo.get("name") or ""))


def normalize_name(name: Optional[str]) -> str:
    """Display name of a plugin repository ("Foo-Endstone" -> "Foo")."""
    return _ENDSTONE_SUFFIX.sub("", name or "")


def pick_best_asset(assets: Any) -> Optional[dict]:
    """
    Prefer a .jar asset, then a .zip, then any asset with a download URL.
    Assets without a browser_download_url are never picked.
    """
    candidates = [
        a
        for a in (assets if isinstance(assets, list) else [])
        if isinstance(a, dict) and a.get("browser_download_url")
    ]
    for suffix in (".jar", ".zip"):
        for asset in candidates:
            name = asset.get("name")
            if isinstance(name, str) and name.lower().endswith(suffix):
                return asset
    return candidates[0] if candidates else None


def _download_from_release(release: Any) -> ReleaseDownload:
    assets = release.get("assets") if isinstance(release, dict) else None
    best = pick_best_asset(assets)
    if best is None:
        return ReleaseDownload(kind=ReleaseKind.no_asset)
    return ReleaseDownload(
        kind=ReleaseKind.asset,
        url=best["browser_download_url"],
        asset_name=str(best.get("name") or ""),
    )


class GitHubClient:
    """Async client for the GitHub REST API."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        org: str,
        base_url: str = "https://api.github.com",
        token: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self._http = http_client
        self._org = org
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        if self._token:
            return {"Authorization": f"Bearer {self._token}"}
        return {}

    async def fetch_org_plugins(self) -> list[Plugin]:
        """
        List the organization's Endstone plugins.

        Keeps non-archived, non-fork repositories whose name ends with
        "-endstone", trimmed to the fields the cards render.
        """
        repos = await self._get(
            f"/orgs/{quote(self._org, safe='')}/repos",
            params={"per_page": "100", "sort": "updated"},
        )
        if not isinstance(repos, list):
            return []
        try:
            return [
                Plugin(
                    name=repo["name"],
                    html_url=repo.get("html_url") or "",
                    description=repo.get("description"),
                    stargazers_count=repo.get("stargazers_count") or 0,
                    forks_count=repo.get("forks_count") or 0,
                    language=repo.get("language"),
                    updated_at=repo.get("updated_at"),
                    archived=bool(repo.get("archived")),
                    fork=bool(repo.get("fork")),
                )
                for repo in filter(is_endstone_repo, repos)
            ]
        except ValidationError as exc:
            raise MalformedResponse(f"Unexpected repository listing: {exc}") from exc

    async def fetch_repo_meta(self, repo_path: str) -> RepoMeta:
        """Fetch language, stars, forks and last update of owner/repo."""
        if not repo_path:
            raise ValueError("Missing repo path")
        repo = await self._get(f"/repos/{repo_path}")
        if not isinstance(repo, dict):
            repo = {}
        stars = repo.get("stargazers_count")
        forks = repo.get("forks_count")
        return RepoMeta(
            language=str(repo.get("language") or "Unknown"),
            stars=stars if isinstance(stars, int) else 0,
            forks=forks if isinstance(forks, int) else 0,
            updated_at=str(repo["updated_at"]) if repo.get("updated_at") else None,
        )

    async def fetch_release_download(self, repo_name: str) -> ReleaseDownload:
        """
        Resolve the download of a plugin's latest release.

        1. Try /releases/latest (stable releases only).
        2. On 404 (repos that only publish pre-releases), list recent
           releases and use the first non-draft one.
        """
        repo_path = f"/repos/{quote(self._org, safe='')}/{quote(repo_name, safe='')}"
        try:
            latest = await self._get(f"{repo_path}/releases/latest")
        except UpstreamError as exc:
            if exc.status_code != 404:
                raise
        else:
            return _download_from_release(latest)

        try:
            releases = await self._get(
                f"{repo_path}/releases", params={"per_page": "10"}
            )
        except UpstreamError as exc:
            logger.info("No release list for %s: %s", repo_name, exc)
            return ReleaseDownload(kind=ReleaseKind.no_release)

        published = [
            r
            for r in (releases if isinstance(releases, list) else [])
            if isinstance(r, dict) and not r.get("draft")
        ]
        if not published:
            return ReleaseDownload(kind=ReleaseKind.no_release)
        return _download_from_release(published[0])

    async def _get(self, path: str, params: Optional[dict] = None) -> Any:
        return await get_json(
            self._http,
            f"{self._base_url}{path}",
            upstream=UPSTREAM,
            params=params,
            headers=self._headers(),
            accept=GITHUB_ACCEPT,
            timeout=self._timeout,
        )
