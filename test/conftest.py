"""
Shared test fixtures for site-hydrator.

Provides:
- A controllable epoch-millis clock
- Cache / guard / hydrator stacks on in-memory storage
- Fake GitHub and Euphoria API servers for E2E tests
- Temporary config files
"""

import json
from pathlib import Path

import pytest
from pytest_httpserver import HTTPServer

from src.cache import PersistentCache
from src.dedup import RequestDeduplicator
from src.hydrator import Hydrator
from src.ratelimit import RateLimitGuard
from src.storage import MemoryStorage

FIXTURES_DIR = Path(__file__).parent / "fixtures"

START_MS = 1_700_000_000_000


# ---------------------------------------------------------------------------
# Fixture data loaders
# ---------------------------------------------------------------------------

def load_fixture(name: str):
    """Load a JSON fixture from test/fixtures/."""
    with open(FIXTURES_DIR / name) as f:
        return json.load(f)


# ---------------------------------------------------------------------------
# Clock and hydration stack
# ---------------------------------------------------------------------------

class FakeClock:
    """Controllable epoch-millis clock for deterministic tests."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int) -> None:
        self.now += millis


class Stack:
    """A hydrator with its collaborators, all on one fake clock."""

    def __init__(self, storage=None, clock=None):
        self.storage = storage if storage is not None else MemoryStorage()
        self.clock = clock or FakeClock()
        self.cache = PersistentCache(self.storage)
        self.cache._clock = self.clock
        self.guard = RateLimitGuard(self.storage)
        self.guard._clock = self.clock
        self.dedup = RequestDeduplicator()
        self.hydrator = Hydrator(cache=self.cache, guard=self.guard, dedup=self.dedup)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def stack(clock):
    return Stack(clock=clock)


# ---------------------------------------------------------------------------
# E2E fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def fake_upstream():
    """
    A real HTTP server impersonating both the GitHub API and the Euphoria
    API. Tests register the responses they need.
    """
    server = HTTPServer(host="127.0.0.1")
    server.start()
    yield server
    server.clear()
    if server.is_running():
        server.stop()


@pytest.fixture()
def config_file(fake_upstream, tmp_path):
    """
    Write a temporary config.yaml that points both upstreams at the fake
    server. Returns the path to the config file.
    """
    base_url = f"http://{fake_upstream.host}:{fake_upstream.port}"
    config_content = f"""\
github_base_url: "{base_url}"
github_org: "TestOrg"
euphoria_base_url: "{base_url}"
storage_dir: "{tmp_path / 'storage'}"
cache_ttl_ms: 60000

web_apps:
  - key: "panel"
    label: "Panel"
    repo: "TestOrg/panel"
"""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_content)
    return str(config_path)
