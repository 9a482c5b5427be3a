"""Note link discovery on a search results page."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from urllib.parse import urljoin

import structlog

from rednote.models.notes import LinkReference
from rednote.site import EXTRACT_LINKS_SCRIPT, SCROLL_STEP_SCRIPT

if TYPE_CHECKING:
    from playwright.async_api import Page

    from rednote.config import FetchSettings

log = structlog.get_logger()

_DEFAULT_TITLE = "No Title"
_DEFAULT_AUTHOR = "Unknown Author"


async def auto_scroll(page: Page, settings: FetchSettings) -> int:
    """Scroll down in fixed steps so the feed lazy-loads more cards.

    Stops after ``max_scrolls`` steps, or earlier once the viewport has hit
    the bottom and the last step did not make the page any taller. Returns
    the number of steps taken.
    """
    last_height = 0
    steps = 0
    for steps in range(1, settings.max_scrolls + 1):
        position = await page.evaluate(SCROLL_STEP_SCRIPT, settings.scroll_distance)
        await asyncio.sleep(settings.scroll_settle_seconds)
        height = int(position["height"])
        at_bottom = int(position["bottom"]) >= height
        if at_bottom and height <= last_height:
            break
        last_height = height

    # Give the last batch of lazily loaded cards time to render
    await asyncio.sleep(settings.scroll_final_settle_seconds)
    log.debug("auto_scroll_complete", steps=steps, page_height=last_height)
    return steps


async def extract_links(page: Page, max_count: int, *, base_url: str) -> list[LinkReference]:
    """Read up to ``max_count`` note cards from the listing in DOM order.

    Cards without a link are dropped; the rest keep their relative order.
    Returns an empty list if the page cannot be evaluated.
    """
    try:
        cards = await page.evaluate(EXTRACT_LINKS_SCRIPT, max_count)
    except Exception:
        log.warning("link_extraction_failed", exc_info=True)
        return []

    refs: list[LinkReference] = []
    for card in cards[:max_count]:
        href = (card.get("href") or "").strip()
        if not href:
            continue
        refs.append(
            LinkReference(
                title=card.get("title") or _DEFAULT_TITLE,
                url=urljoin(base_url, href),
                author_stub=card.get("author") or _DEFAULT_AUTHOR,
            )
        )

    log.info("links_extracted", requested=max_count, cards=len(cards), links=len(refs))
    return refs
