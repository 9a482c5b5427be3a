"""Bounded-concurrency detail fetcher.

Turns the ordered ``LinkReference`` list from discovery into ``DetailRecord``s.
A fixed pool of ``min(max_concurrency, N)`` workers drains a shared queue;
each worker opens its own tab per note. Results are written into a
pre-sized slot list by the reference's original index, so the output order
always equals the input order regardless of which note finishes first.

A note that cannot be loaded or read never fails the batch: it is replaced
by a degraded record carrying only the title, author and link from the
listing card.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from rednote.browser import close_page
from rednote.errors import ErrorCode, RedNoteError
from rednote.models.notes import NO_CONTENT, DetailRecord
from rednote.site import EXTRACT_DETAIL_SCRIPT, NOTE_CONTAINER_SELECTOR, parse_count

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page

    from rednote.config import BrowserSettings, FetchSettings
    from rednote.models.notes import LinkReference

log = structlog.get_logger()


class DetailFetcher:
    """Fetches note detail pages through a shared authenticated context."""

    def __init__(self, fetch: FetchSettings, browser: BrowserSettings) -> None:
        self._fetch = fetch
        self._navigation_timeout_ms = browser.navigation_timeout_seconds * 1000
        self._element_timeout_ms = browser.element_timeout_seconds * 1000

    async def fetch_all(
        self,
        context: BrowserContext,
        refs: list[LinkReference],
    ) -> list[DetailRecord]:
        """Fetch every reference; ``result[i]`` always belongs to ``refs[i]``."""
        if not refs:
            log.info("detail_fetch_skipped", reason="no_links")
            return []

        concurrency = min(self._fetch.max_concurrency, len(refs))
        log.info("detail_fetch_started", notes=len(refs), concurrency=concurrency)

        queue: asyncio.Queue[tuple[int, LinkReference]] = asyncio.Queue()
        for index, ref in enumerate(refs):
            queue.put_nowait((index, ref))

        slots: list[DetailRecord | None] = [None] * len(refs)
        workers = [
            asyncio.create_task(self._worker(worker_id, context, queue, slots))
            for worker_id in range(concurrency)
        ]
        await asyncio.gather(*workers)

        records = [
            slot if slot is not None else DetailRecord.degraded_from(ref)
            for slot, ref in zip(slots, refs, strict=True)
        ]
        log.info(
            "detail_fetch_complete",
            notes=len(records),
            degraded=sum(1 for record in records if record.degraded),
        )
        return records

    async def _worker(
        self,
        worker_id: int,
        context: BrowserContext,
        queue: asyncio.Queue[tuple[int, LinkReference]],
        slots: list[DetailRecord | None],
    ) -> None:
        # Stagger the first pull so workers don't hit the site in lockstep
        await asyncio.sleep(worker_id * self._fetch.worker_stagger_seconds)

        while True:
            try:
                index, ref = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            log.debug("detail_worker_pull", worker=worker_id, index=index)
            slots[index] = await self.fetch_one(context, ref, index)

            if queue.empty():
                return
            await asyncio.sleep(self._fetch.request_delay_seconds)

    async def fetch_one(
        self,
        context: BrowserContext,
        ref: LinkReference,
        index: int,
    ) -> DetailRecord:
        """Fetch a single note. Never raises; failures yield a degraded record."""
        note_log = log.bind(index=index, url=ref.url)
        page: Page | None = None
        try:
            page = await context.new_page()
            await self._load(page, ref)
            data = await self._extract(page, ref)
        except RedNoteError as exc:
            note_log.warning("note_fetch_failed", code=exc.code, message=exc.message)
            return DetailRecord.degraded_from(ref)
        except Exception:
            note_log.warning("note_fetch_failed", code="UNEXPECTED", exc_info=True)
            return DetailRecord.degraded_from(ref)
        finally:
            if page is not None:
                await close_page(page, url=ref.url)

        note_log.info("note_fetched", title=data.title)
        return data

    async def _load(self, page: Page, ref: LinkReference) -> None:
        try:
            await page.goto(
                ref.url,
                timeout=self._navigation_timeout_ms,
                wait_until="domcontentloaded",
            )
        except Exception as exc:
            raise RedNoteError(
                code=ErrorCode.NAVIGATION_FAILED,
                message=f"Could not open note {ref.url}: {exc}",
                suggestion="The note may be deleted or the site is rate limiting requests.",
                recoverable=True,
            ) from exc

        try:
            await page.wait_for_selector(NOTE_CONTAINER_SELECTOR, timeout=self._element_timeout_ms)
        except PlaywrightTimeoutError:
            # Soft timeout: the container marker is missing, read what is there
            log.warning("note_container_missing", url=ref.url)

    async def _extract(self, page: Page, ref: LinkReference) -> DetailRecord:
        try:
            raw = await page.evaluate(EXTRACT_DETAIL_SCRIPT)
        except Exception as exc:
            raise RedNoteError(
                code=ErrorCode.EXTRACTION_FAILED,
                message=f"Could not read note {ref.url}: {exc}",
                suggestion="The note page layout may have changed.",
                recoverable=True,
            ) from exc
        if not isinstance(raw, dict):
            raise RedNoteError(
                code=ErrorCode.EXTRACTION_FAILED,
                message=f"Unexpected extraction result for {ref.url}: {type(raw).__name__}",
                suggestion="The note page layout may have changed.",
                recoverable=True,
            )
        return build_record(ref, raw)


def build_record(ref: LinkReference, raw: dict) -> DetailRecord:
    """Merge the in-page extraction result with what the listing card knew."""
    counts = list(raw.get("counts") or [])
    counts += [None] * (3 - len(counts))
    likes, collects, comments = (parse_count(value) for value in counts[:3])

    return DetailRecord(
        title=raw.get("title") or ref.title,
        content=raw.get("content") or NO_CONTENT,
        author=raw.get("author") or ref.author_stub,
        author_desc=raw.get("authorDesc") or None,
        link=ref.url,
        likes=likes,
        collects=collects,
        comments=comments,
        tags=list(raw.get("tags") or []),
        images=list(raw.get("images") or []),
    )
