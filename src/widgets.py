"""
Widget factories: one hydrated resource per page widget.

Each factory binds a cache namespace, TTL, fetch function and render
callbacks to the shared Hydrator. Widgets that feed the "total projects"
counter publish their counts on the AggregationBus instead of reading each
other's state.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Optional
from urllib.parse import quote, urlparse

import httpx

from src.bus import AggregationBus, safe_count
from src.cache import PersistentCache
from src.config import AppConfig, WebAppConfig
from src.euphoria_client import EuphoriaClient
from src.euphoria_client import UPSTREAM as EUPHORIA
from src.github_client import UPSTREAM as GITHUB
from src.github_client import GitHubClient, normalize_name
from src.hydrator import Hydrator, Resource
from src.models import ErrorKind, ReleaseKind
from src.page import Page, SlotState
from src.ratelimit import RateLimitGuard
from src.storage import FileStorage, Storage

logger = logging.getLogger(__name__)

# Cache namespaces. Bump a version when its payload shape changes.
PLUGINS = "endstonePlugins"
RELEASES = "endstoneReleases"
REPO_META = "webAppsRepoMeta"
STATS = "stats"
DONATORS = "donators"

DEFAULT_VERSIONS = {PLUGINS: 1, RELEASES: 1, REPO_META: 1, STATS: 1, DONATORS: 1}

# Aggregation sources
ENDSTONE_SOURCE = "endstone"
APPS_SOURCE = "apps"
BLUEPRINT_SOURCE = "blueprint"

GITHUB_RATE_LIMIT_MESSAGE = "GitHub rate limit exceeded. Please try again later."


@dataclass
class WidgetContext:
    """Everything the widget factories share on one page."""

    config: AppConfig
    hydrator: Hydrator
    bus: AggregationBus
    page: Page
    github: GitHubClient
    euphoria: EuphoriaClient


def safe_url(url: Any) -> Optional[str]:
    """Return url if it is an absolute http(s) URL, else None."""
    if not url:
        return None
    parsed = urlparse(str(url))
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return parsed.geturl()


# ---------------------------------------------------------------------------
# Endstone plugins
# ---------------------------------------------------------------------------


def plugins_widget(ctx: WidgetContext) -> Resource:
    slot = ctx.page.slot("endstone-plugins")
    count_slot = ctx.page.slot("endstone-plugin-count")

    async def fetch() -> list[dict]:
        plugins = await ctx.github.fetch_org_plugins()
        return [p.model_dump(mode="json") for p in plugins]

    def set_count(count: int) -> None:
        count_slot.render(count)
        ctx.bus.publish(ENDSTONE_SOURCE, count)

    def render(payload: Any) -> None:
        plugins = [p for p in (payload or []) if isinstance(p, dict) and p.get("name")]
        set_count(len(plugins))
        if not plugins:
            slot.show_empty("No Endstone plugins found yet.")
            return
        slot.render(
            [{**p, "display_name": normalize_name(p["name"])} for p in plugins]
        )
        for plugin in plugins:
            release_download_resource(ctx, plugin["name"]).spawn()

    def on_error(reason: ErrorKind) -> None:
        # A stale grid already on screen stays there, count included
        if slot.state == SlotState.ready:
            return
        if reason == ErrorKind.rate_limited:
            slot.show_error(GITHUB_RATE_LIMIT_MESSAGE)
        else:
            slot.show_error("Unable to load plugins at this time.")
        set_count(0)

    return ctx.hydrator.resource(
        PLUGINS,
        ttl_millis=ctx.config.ttl_for(PLUGINS),
        fetch_fn=fetch,
        render_fn=render,
        on_error=on_error,
        upstream=GITHUB,
    )


_RELEASE_LABELS = {
    ReleaseKind.no_release.value: ("No Release", "No GitHub releases found for this plugin."),
    ReleaseKind.no_asset.value: ("No Download", "No downloadable release assets found."),
}


def release_download_resource(ctx: WidgetContext, repo_name: str) -> Resource:
    """Download button of one plugin card."""
    slot = ctx.page.slot(f"download:{repo_name}")
    if slot.renders == 0:
        slot.message = "Fetching latest GitHub release..."

    async def fetch() -> dict:
        download = await ctx.github.fetch_release_download(repo_name)
        return download.model_dump(mode="json")

    def render(payload: Any) -> None:
        kind = payload.get("kind") if isinstance(payload, dict) else None
        if kind == ReleaseKind.asset.value and payload.get("url"):
            asset_name = payload.get("asset_name")
            title = f"Download {asset_name}" if asset_name else "Download from GitHub Releases"
            slot.render({"label": "Download", "href": payload["url"]}, title)
            return
        if kind in _RELEASE_LABELS:
            label, title = _RELEASE_LABELS[kind]
            slot.show_empty(title, {"label": label, "href": None})
            return
        slot.show_error(
            "Unable to load release downloads right now.",
            {"label": "Unavailable", "href": None},
        )

    def on_error(reason: ErrorKind) -> None:
        if slot.state in (SlotState.ready, SlotState.empty):
            return
        if reason == ErrorKind.rate_limited:
            slot.show_error(GITHUB_RATE_LIMIT_MESSAGE, {"label": "Rate Limited", "href": None})
        else:
            slot.show_error(
                "Unable to load release downloads right now.",
                {"label": "Unavailable", "href": None},
            )

    return ctx.hydrator.resource(
        f"{RELEASES}/{repo_name}",
        ttl_millis=ctx.config.ttl_for(RELEASES),
        fetch_fn=fetch,
        render_fn=render,
        on_error=on_error,
        upstream=GITHUB,
    )


# ---------------------------------------------------------------------------
# Web applications
# ---------------------------------------------------------------------------


def repo_meta_resource(ctx: WidgetContext, app: WebAppConfig) -> Resource:
    """Language/stars/forks strip of one web application card."""
    slot = ctx.page.slot(f"web-app:{app.key}")

    async def fetch() -> dict:
        meta = await ctx.github.fetch_repo_meta(app.repo)
        return meta.model_dump(mode="json")

    def render(payload: Any) -> None:
        if isinstance(payload, dict):
            slot.render({"label": app.label, **payload})

    def on_error(reason: ErrorKind) -> None:
        if slot.state == SlotState.ready:
            return
        # The card itself is static; only its metadata strip disappears
        slot.hide()

    return ctx.hydrator.resource(
        f"{REPO_META}/{app.repo}",
        ttl_millis=ctx.config.ttl_for(REPO_META),
        fetch_fn=fetch,
        render_fn=render,
        on_error=on_error,
        upstream=GITHUB,
    )


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def stats_widget(ctx: WidgetContext) -> Resource:
    api_calls = ctx.page.slot("api-calls")
    active_panels = ctx.page.slot("active-panels")

    def render(payload: Any) -> None:
        data = payload if isinstance(payload, dict) else {}
        extensions = data.get("blueprintExtensions")
        # The API lists Blueprint addons and themes together
        ctx.bus.publish(
            BLUEPRINT_SOURCE, len(extensions) if isinstance(extensions, list) else 0
        )
        api_calls.render(safe_count(data.get("totalApiCalls")))
        active_panels.render(safe_count(data.get("totalInstalls")))

    def on_error(reason: ErrorKind) -> None:
        if api_calls.state == SlotState.ready:
            return
        for slot in (api_calls, active_panels):
            slot.show_error("Unable to load statistics at this time.", slot.content)

    return ctx.hydrator.resource(
        STATS,
        ttl_millis=ctx.config.ttl_for(STATS),
        fetch_fn=ctx.euphoria.fetch_stats,
        render_fn=render,
        on_error=on_error,
        upstream=EUPHORIA,
    )


def total_projects(ctx: WidgetContext) -> Callable[[], None]:
    """
    Keep the "total-projects" slot in sync with the bus.

    Nothing is shown until the Blueprint count is known, since it dominates
    the total. Returns the unsubscribe function.
    """
    slot = ctx.page.slot("total-projects")

    def update(total: int) -> None:
        if BLUEPRINT_SOURCE in ctx.bus.counts():
            slot.render(total)

    update(ctx.bus.total())
    return ctx.bus.subscribe(update)


# ---------------------------------------------------------------------------
# Donators
# ---------------------------------------------------------------------------


def donator_card(donator: dict) -> dict:
    name = str(donator.get("Name") or "Unknown")
    donation = str(donator.get("Donation") or "")
    fallback_avatar = (
        f"https://ui-avatars.com/api/?name={quote(name, safe='')}"
        "&background=3b82f6&color=fff&size=96"
    )
    return {
        "name": name,
        "badge": donation or "Supporter",
        "link": safe_url(donator.get("Link")),
        "image": safe_url(donator.get("Image")) or fallback_avatar,
    }


def donators_widget(ctx: WidgetContext) -> Resource:
    slot = ctx.page.slot("donators")

    def render(payload: Any) -> None:
        donators = [d for d in (payload or []) if isinstance(d, dict)]
        if not donators:
            slot.show_empty("No donators found yet.")
            return
        slot.render([donator_card(d) for d in donators])

    def on_error(reason: ErrorKind) -> None:
        if slot.state == SlotState.ready:
            return
        slot.show_error("Unable to load donators at this time.")

    return ctx.hydrator.resource(
        DONATORS,
        ttl_millis=ctx.config.ttl_for(DONATORS),
        fetch_fn=ctx.euphoria.fetch_donators,
        render_fn=render,
        on_error=on_error,
        upstream=EUPHORIA,
    )


# ---------------------------------------------------------------------------
# Page load
# ---------------------------------------------------------------------------


def build_widgets(ctx: WidgetContext) -> list[Resource]:
    """All top-level resources of the page, in page order."""
    ctx.bus.publish(APPS_SOURCE, len(ctx.config.web_apps))
    resources = [plugins_widget(ctx)]
    resources.extend(repo_meta_resource(ctx, app) for app in ctx.config.web_apps)
    resources.append(stats_widget(ctx))
    resources.append(donators_widget(ctx))
    return resources


def build_cache(config: AppConfig, storage: Storage) -> PersistentCache:
    return PersistentCache(storage, {**DEFAULT_VERSIONS, **config.namespace_versions})


@asynccontextmanager
async def open_site(
    config: AppConfig,
    storage: Optional[Storage] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[WidgetContext]:
    """Create the shared cache, guard, bus and clients for one page lifetime."""
    if storage is None:
        storage = FileStorage(config.storage_dir)

    if http_client is not None:
        yield _make_context(config, storage, http_client)
        return

    async with httpx.AsyncClient() as http:
        yield _make_context(config, storage, http)


def _make_context(
    config: AppConfig, storage: Storage, http: httpx.AsyncClient
) -> WidgetContext:
    github = GitHubClient(
        http_client=http,
        org=config.github_org,
        base_url=config.github_base_url,
        token=config.github_token,
        timeout=config.request_timeout,
    )
    euphoria = EuphoriaClient(
        http_client=http,
        base_url=config.euphoria_base_url,
        timeout=config.request_timeout,
    )
    hydrator = Hydrator(cache=build_cache(config, storage), guard=RateLimitGuard(storage))
    return WidgetContext(
        config=config,
        hydrator=hydrator,
        bus=AggregationBus(),
        page=Page(),
        github=github,
        euphoria=euphoria,
    )


async def load_page(ctx: WidgetContext) -> Page:
    """Hydrate every widget and wait until all of them have settled."""
    total_projects(ctx)
    for resource in build_widgets(ctx):
        resource.spawn()
    outcomes = await ctx.hydrator.wait_idle()
    logger.info(
        "Hydrated %d resources (%d from cache, %d failed)",
        len(outcomes),
        sum(1 for o in outcomes if o.from_cache),
        sum(1 for o in outcomes if o.reason is not None),
    )
    return ctx.page
