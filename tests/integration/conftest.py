"""Integration test fixtures.

Provides a fully wired AppState backed by a real JSON cache and session
store under tmp_path, driving the fake browser from tests/conftest.py.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from rednote.cache import SearchCache
from rednote.details import DetailFetcher
from rednote.pipeline import SearchPipeline
from rednote.session import build_session_manager
from rednote.state import AppState

if TYPE_CHECKING:
    from rednote.config import Settings


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Baseline env for subprocess-based MCP tests.

    Forces stdio transport and points every data path into tmp_path so a
    local rednote.yaml or real cookie jar can never leak in.
    """
    env = {key: value for key, value in os.environ.items() if not key.startswith("REDNOTE__")}
    env["REDNOTE__SERVER__TRANSPORT"] = "stdio"
    env["REDNOTE__CACHE__PATH"] = str(tmp_path / "search-cache.json")
    env["REDNOTE__SESSION__COOKIES_PATH"] = str(tmp_path / "cookies.json")
    env["REDNOTE__SERVER__MOCK_RESULTS_PATH"] = str(tmp_path / "mock-search.json")
    env["REDNOTE__LOGGING__LEVEL"] = "WARNING"
    return env


@pytest.fixture()
def app_state(settings: Settings, launcher) -> AppState:
    """AppState wired like server.build_state, but with the fake browser."""
    session_manager = build_session_manager(settings)
    return AppState(
        settings=settings,
        cache=SearchCache(Path(settings.cache.path)),
        session_manager=session_manager,
        pipeline=SearchPipeline(
            settings,
            launcher,
            session_manager,
            DetailFetcher(settings.fetch, settings.browser),
        ),
    )
