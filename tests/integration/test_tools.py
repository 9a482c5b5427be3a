"""Integration tests for MCP tool handlers.

Tests the full path through each handler: input validation → cache →
pipeline → output serialisation. Uses a real AppState whose browser is the
in-memory fake.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from rednote.errors import ErrorCode, RedNoteError, SessionUnavailable
from rednote.tools import cache_admin, login, mock_search, search

if TYPE_CHECKING:
    from rednote.state import AppState


def _save_cookies(state: AppState, cookies: list[dict]) -> None:
    path = Path(state.settings.session.cookies_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cookies), encoding="utf-8")


class TestSearchHandler:
    """Full handler pipeline tests for search_xiaohongshu."""

    async def test_cache_miss_runs_pipeline(
        self, app_state: AppState, site, valid_cookie: dict
    ) -> None:
        _save_cookies(app_state, [valid_cookie])
        site.with_notes(3)

        result = await search.handle("coffee", 3, app_state)

        assert result["query"] == "coffee"
        assert result["count"] == 3
        assert result["cached"] is False
        first = result["results"][0]
        assert first["title"] == "Note 0"
        assert first["authorDesc"] == "bio 0"
        assert first["link"] == site.note_url(0)
        assert first["likes"] == 12000

    async def test_second_call_is_served_from_cache(
        self, app_state: AppState, launcher, site, valid_cookie: dict
    ) -> None:
        _save_cookies(app_state, [valid_cookie])
        site.with_notes(2)

        first = await search.handle("Coffee ", 2, app_state)
        second = await search.handle("coffee", 2, app_state)

        assert second["cached"] is True
        assert second["results"] == first["results"]
        assert len(launcher.contexts) == 1

    async def test_degraded_records_are_returned(
        self, app_state: AppState, site, valid_cookie: dict
    ) -> None:
        _save_cookies(app_state, [valid_cookie])
        site.with_notes(2)
        site.details[site.note_url(0)] = RuntimeError("boom")

        result = await search.handle("coffee", 2, app_state)

        assert result["results"][0]["content"] == "Failed to get content"
        assert "likes" not in result["results"][0]
        assert result["results"][1]["content"] == "Body of note 1"

    async def test_empty_result_is_not_cached(
        self, app_state: AppState, valid_cookie: dict
    ) -> None:
        _save_cookies(app_state, [valid_cookie])

        result = await search.handle("nothing", 5, app_state)

        assert result["results"] == []
        assert (await app_state.cache.stats()).total_entries == 0

    async def test_concurrent_identical_searches_share_one_run(
        self, app_state: AppState, launcher, site, valid_cookie: dict
    ) -> None:
        _save_cookies(app_state, [valid_cookie])
        site.with_notes(2)

        results = await asyncio.gather(
            search.handle("coffee", 2, app_state),
            search.handle("coffee", 2, app_state),
        )

        assert sorted(result["cached"] for result in results) == [False, True]
        assert len(launcher.contexts) == 1

    async def test_session_unavailable_propagates(self, app_state: AppState, site) -> None:
        site.with_notes(2)

        with pytest.raises(SessionUnavailable) as exc_info:
            await search.handle("coffee", 2, app_state)

        assert exc_info.value.code == ErrorCode.SESSION_UNAVAILABLE
        assert exc_info.value.to_dict()["error"]["recoverable"] is False

    @pytest.mark.parametrize(
        ("query", "count"),
        [("", 5), ("   ", 5), ("a" * 501, 5), ("coffee", 0), ("coffee", 101)],
    )
    async def test_invalid_input(self, app_state: AppState, query: str, count: int) -> None:
        with pytest.raises(RedNoteError) as exc_info:
            await search.handle(query, count, app_state)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
        assert exc_info.value.recoverable is False


class TestCacheAdminHandlers:
    async def test_stats_on_empty_cache(self, app_state: AppState) -> None:
        result = await cache_admin.handle_stats(app_state)
        assert result == {"total_entries": 0, "oldest_entry": None, "newest_entry": None}

    async def test_stats_after_search(
        self, app_state: AppState, site, valid_cookie: dict
    ) -> None:
        _save_cookies(app_state, [valid_cookie])
        site.with_notes(1)
        await search.handle("Coffee", 1, app_state)

        result = await cache_admin.handle_stats(app_state)

        assert result["total_entries"] == 1
        assert result["oldest_entry"]["key"] == "coffee:1"
        assert result["oldest_entry"]["query"] == "Coffee"
        assert result["newest_entry"] == result["oldest_entry"]

    async def test_clear_empties_cache(
        self, app_state: AppState, site, valid_cookie: dict
    ) -> None:
        _save_cookies(app_state, [valid_cookie])
        site.with_notes(1)
        await search.handle("coffee", 1, app_state)

        assert await cache_admin.handle_clear(app_state) == {"cleared": True}
        assert (await cache_admin.handle_stats(app_state))["total_entries"] == 0


class TestLoginHandler:
    async def test_stored_cookies_are_used_by_next_search(
        self, app_state: AppState, launcher, site, valid_cookie: dict
    ) -> None:
        site.with_notes(1)

        result = await login.handle([valid_cookie], app_state)
        assert result == {"stored": True, "cookie_count": 1}

        searched = await search.handle("coffee", 1, app_state)
        assert searched["count"] == 1
        # No interactive login was needed
        assert [context.headless for context in launcher.contexts] == [True]

    @pytest.mark.parametrize(
        "cookies",
        [[], [{"name": "web_session"}], [{"value": "abc"}]],
    )
    async def test_invalid_cookies_rejected(self, app_state: AppState, cookies: list) -> None:
        with pytest.raises(RedNoteError) as exc_info:
            await login.handle(cookies, app_state)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
        assert not Path(app_state.settings.session.cookies_path).exists()


class TestMockSearchHandler:
    @staticmethod
    def _write_fixture(state: AppState, text: str) -> None:
        path = Path(state.settings.server.mock_results_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    async def test_object_fixture_is_returned_verbatim(self, app_state: AppState) -> None:
        fixture = {"query": "咖啡", "count": 1, "cached": False, "results": [{"title": "t"}]}
        self._write_fixture(app_state, json.dumps(fixture, ensure_ascii=False))

        assert await mock_search.handle(app_state) == fixture

    async def test_array_fixture_is_wrapped(self, app_state: AppState) -> None:
        self._write_fixture(app_state, json.dumps([{"title": "a"}, {"title": "b"}]))

        result = await mock_search.handle(app_state)

        assert result == {
            "query": "mock",
            "count": 2,
            "cached": False,
            "results": [{"title": "a"}, {"title": "b"}],
        }

    async def test_does_not_touch_browser_or_cache(
        self, app_state: AppState, launcher
    ) -> None:
        self._write_fixture(app_state, "[]")

        await mock_search.handle(app_state)

        assert launcher.contexts == []
        assert (await app_state.cache.stats()).total_entries == 0

    @pytest.mark.parametrize("text", [None, "{not json", '"just a string"'])
    async def test_unusable_fixture_is_mock_data_unavailable(
        self, app_state: AppState, text: str | None
    ) -> None:
        if text is not None:
            self._write_fixture(app_state, text)

        with pytest.raises(RedNoteError) as exc_info:
            await mock_search.handle(app_state)

        assert exc_info.value.code == ErrorCode.MOCK_DATA_UNAVAILABLE
        assert exc_info.value.recoverable is False
