"""
Page content access: one document per page key in the `pages` collection.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from cms.store import ContentStore
from shared.firebase_constants import PAGES_COLLECTION
from shared.models import PageContent, PageKey


def page_path(page_key: PageKey | str) -> str:
    return f"{PAGES_COLLECTION}/{PageKey(page_key).value}"


def fetch_page_content(
    store: ContentStore, page_key: PageKey | str
) -> Optional[PageContent]:
    """
    Reads the content document for a page.

    Returns None when the page has never been saved, so callers can tell
    "never created" apart from "saved empty". Missing or malformed fields
    come back as their defaults. Transport errors propagate.
    """
    data = store.get(page_path(page_key))
    if data is None:
        return None
    paragraphs = data.get("paragraphs")
    featured = data.get("featured")
    return PageContent(
        summary=data.get("summary") or "",
        paragraphs=list(paragraphs) if isinstance(paragraphs, list) else [],
        featured=list(featured) if isinstance(featured, list) else [],
        banner=data.get("banner"),
    )


def save_page_content(
    store: ContentStore, page_key: PageKey | str, content: PageContent
) -> None:
    """Merge-upserts the page document, leaving out unset (None) fields."""
    clean = {key: value for key, value in asdict(content).items() if value is not None}
    store.set(page_path(page_key), clean, merge=True)
