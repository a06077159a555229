"""Shared test fixtures for specref.

Provides fixture document paths, a loader that records every load call,
HTTP mocking through :class:`httpx.MockTransport`, isolated config
environments, and a CLI runner. These fixtures are automatically
discovered by pytest.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable

import httpx
import pytest

from specref.models import LoaderConfig
from specref.output import reset_output
from specref.parser.loader import DocumentLoader, ResolvedDocument


FIXTURES_DIR = Path(__file__).parent / "fixtures"
SPEC_DIR = FIXTURES_DIR / "spec"


# ---------------------------------------------------------------------------
# Global state resets
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_global_state() -> None:
    """Reset the global OutputManager and the CLI's log handler after every test.

    Both hold references to the sys.stdout/sys.stderr streams that were
    current when the CLI callback ran; CliRunner closes those streams when
    the invocation ends.
    """
    yield
    reset_output()
    logger = logging.getLogger("specref")
    logger.handlers = []
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


class CountingLoader(DocumentLoader):
    """DocumentLoader that records each locator it is asked to load."""

    def __init__(self, *args, delay: float = 0.0, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.calls: list[str] = []
        self._delay = delay
        self._calls_lock = threading.Lock()

    def load(self, locator: str) -> ResolvedDocument:
        with self._calls_lock:
            self.calls.append(locator)
        if self._delay:
            time.sleep(self._delay)
        return super().load(locator)


@pytest.fixture
def spec_dir() -> Path:
    """Directory holding the multi-file fixture spec."""
    return SPEC_DIR


@pytest.fixture
def root_yaml() -> str:
    return str(SPEC_DIR / "root.yaml")


@pytest.fixture
def counting_loader() -> CountingLoader:
    loader = CountingLoader()
    yield loader
    loader.close()


@pytest.fixture
def slow_loader() -> CountingLoader:
    """CountingLoader that sleeps before each load, widening race windows."""
    loader = CountingLoader(delay=0.05)
    yield loader
    loader.close()


@pytest.fixture
def mock_http() -> Callable[[dict[str, httpx.Response]], httpx.Client]:
    """Build an httpx client whose responses come from a URL -> Response table.

    Unknown URLs answer 404. The returned factory also records requested
    URLs on ``client.requested``.
    """
    clients: list[httpx.Client] = []

    def factory(routes: dict[str, httpx.Response]) -> httpx.Client:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            requested.append(url)
            if url in routes:
                return routes[url]
            return httpx.Response(404, text="not found")

        client = httpx.Client(transport=httpx.MockTransport(handler))
        client.requested = requested  # type: ignore[attr-defined]
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()


@pytest.fixture
def fast_config() -> LoaderConfig:
    return LoaderConfig(timeout=2.0)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG config and data homes into tmp_path, clears all
    SPECREF_* environment variables, and changes the working directory to
    tmp_path so no project ``specref.json`` leaks in.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("specref.config._is_xdg_platform", lambda: True)
    for var in ["SPECREF_TIMEOUT", "SPECREF_FORMAT"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
