"""Xiaohongshu page structure.

Selectors and in-page extraction routines for the current site revision.
Everything that breaks when the site ships a new frontend lives here; the
session, discovery and detail modules only call into it.
"""

from __future__ import annotations

import re
from decimal import Decimal
from urllib.parse import quote

LOGIN_MARKER_SELECTOR = ".login-container"
LOGIN_URL_FRAGMENTS = ("login", "sign")

FEED_CONTAINER_SELECTOR = ".feeds-container"
NOTE_CONTAINER_SELECTOR = "#noteContainer"

# Placeholder labels shown instead of a number when a count is zero
COUNT_PLACEHOLDERS = frozenset({"赞", "收藏", "评论", "点赞", "Like", "Collect", "Comment"})

_COUNT_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*(万|w|W|k|K)?\+?$")
_COUNT_MULTIPLIERS = {"万": 10_000, "w": 10_000, "W": 10_000, "k": 1_000, "K": 1_000}

# Returns up to `maxCount` cards in DOM order. `href` is left unresolved so
# that URL joining happens in Python against the configured base URL.
EXTRACT_LINKS_SCRIPT = """
(maxCount) => {
  const cards = Array.from(document.querySelectorAll('.note-item')).slice(0, maxCount);
  return cards.map((card) => {
    const titleEl = card.querySelector('.title span');
    const coverLink = card.querySelector('a.cover.mask');
    const hiddenLink = card.querySelector('a[style="display: none;"]');
    const authorEl = card.querySelector('.card-bottom-wrapper .name span.name');
    return {
      title: titleEl ? titleEl.innerText.trim() : '',
      href: (coverLink && coverLink.getAttribute('href'))
        || (hiddenLink && hiddenLink.getAttribute('href'))
        || '',
      author: authorEl ? authorEl.innerText.trim() : '',
    };
  });
}
"""

# Body text skips <a> children: those are the inline #hashtag links, which
# are reported separately under `tags`.
EXTRACT_DETAIL_SCRIPT = """
() => {
  const text = (el) => (el && el.textContent ? el.textContent.trim() : '');

  const descEl = document.querySelector('#detail-desc .note-text');
  let content = '';
  if (descEl) {
    for (const node of Array.from(descEl.childNodes)) {
      if (node.nodeType === Node.TEXT_NODE) {
        content += node.textContent;
      } else if (node.nodeType === Node.ELEMENT_NODE && node.tagName !== 'A') {
        content += node.textContent;
      }
    }
  }

  const bioEl = document.querySelector('.user-desc');
  const counts = Array.from(document.querySelectorAll('.engage-bar-style .count')).map(text);

  return {
    title: text(document.querySelector('#detail-title')),
    content: content.trim(),
    author: text(document.querySelector('.author-wrapper .username')),
    authorDesc: bioEl ? text(bioEl) : null,
    counts: counts.slice(0, 3),
    images: Array.from(document.querySelectorAll('.note-slider-img'))
      .map((img) => img.src)
      .filter(Boolean),
    tags: Array.from(document.querySelectorAll('#detail-desc .tag')).map(text).filter(Boolean),
  };
}
"""

SCROLL_STEP_SCRIPT = """
(distance) => {
  window.scrollBy(0, distance);
  return {
    height: document.body.scrollHeight,
    bottom: window.scrollY + window.innerHeight,
  };
}
"""


def search_url(template: str, keyword: str) -> str:
    return template.format(keyword=quote(keyword, safe=""))


def parse_count(raw: str | None) -> int:
    """Turn an engagement counter label into an int.

    ``"1.2万"`` → 12000, ``"356"`` → 356. Placeholder labels (``"赞"``) and
    anything else unparseable count as 0.
    """
    if raw is None:
        return 0
    text = raw.strip().replace(",", "")
    if not text or text in COUNT_PLACEHOLDERS:
        return 0
    match = _COUNT_PATTERN.match(text)
    if match is None:
        return 0
    # Decimal keeps "1.13万" at 11300; float arithmetic lands just below it
    value = Decimal(match.group(1))
    multiplier = _COUNT_MULTIPLIERS.get(match.group(2) or "", 1)
    return int(value * multiplier)
