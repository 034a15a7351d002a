"""
Read-only page assembly for the public site and the admin dashboard.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from cms.content import fetch_page_content
from cms.errors import NotFoundError, StoreUnavailableError
from cms.store import ContentStore
from shared.firebase_constants import (
    EVENTS_COLLECTION,
    GALLERY_GROUPS_COLLECTION,
    STAFF_MEMBERS_COLLECTION,
    SUPPORTERS_COLLECTION,
    TESTIMONIALS_COLLECTION,
    photos_collection_path,
)
from shared.models import (
    ENTITY_SPECS,
    Event,
    GalleryGroup,
    PageContent,
    PageKey,
    Photo,
    entity_from_document,
    today_iso,
)

logger = logging.getLogger(__name__)

FEATURED_ON_PAGE = 3
GALLERY_SAMPLE_SIZE = 3
UPCOMING_ON_DASHBOARD = 3


@dataclass
class ArrangedEvent:
    event: Event
    is_past: bool


@dataclass
class GalleryCover:
    group: GalleryGroup
    cover: Optional[str] = None


@dataclass
class HomeView:
    content: PageContent
    summaries: Dict[str, str]
    what_we_do_featured: List[str]
    events: List[ArrangedEvent]
    staff: List[Any]
    supporters: List[Any]
    testimonials: List[Any]
    gallery_sample: List[str]


@dataclass
class DashboardView:
    groups: Optional[List[Dict[str, Any]]] = None
    staff_count: Optional[int] = None
    supporters_count: Optional[int] = None
    testimonials_count: Optional[int] = None
    upcoming: Optional[List[Event]] = None
    unavailable: List[str] = field(default_factory=list)


def page_content(store: ContentStore, key: PageKey | str) -> PageContent:
    """Page content for display; unsaved pages render empty."""
    content = fetch_page_content(store, key) or PageContent()
    content.featured = [url for url in content.featured if url][:FEATURED_ON_PAGE]
    return content


def list_ordered(store: ContentStore, collection: str) -> List[Any]:
    spec = ENTITY_SPECS[collection]
    records = store.list(collection, order_by="order")
    return [spec.from_document(r.id, r.data) for r in records]


def list_events(store: ContentStore) -> List[Event]:
    records = store.list(EVENTS_COLLECTION, order_by="date")
    return [entity_from_document(Event, r.id, r.data) for r in records]


def arrange_events(events: List[Event], today: Optional[str] = None) -> List[ArrangedEvent]:
    """
    The most recent past event followed by every upcoming event (today
    included) in date order. Undated events are not shown.
    """
    today = today or today_iso()
    dated = [e for e in events if isinstance(e.date, str) and e.date]
    past = sorted((e for e in dated if e.date < today), key=lambda e: e.date, reverse=True)
    upcoming = sorted((e for e in dated if e.date >= today), key=lambda e: e.date)
    return [ArrangedEvent(e, True) for e in past[:1]] + [
        ArrangedEvent(e, False) for e in upcoming
    ]


def upcoming_events(events: List[Event], today: Optional[str] = None, limit: int = UPCOMING_ON_DASHBOARD) -> List[Event]:
    today = today or today_iso()
    dated = [e for e in events if isinstance(e.date, str) and e.date]
    return sorted((e for e in dated if e.date >= today), key=lambda e: e.date)[:limit]


def gallery_photo_urls(store: ContentStore) -> List[str]:
    urls = []
    for group in store.list(GALLERY_GROUPS_COLLECTION, order_by="date", descending=True):
        for photo in store.list(photos_collection_path(group.id), order_by="order"):
            if photo.data.get("url"):
                urls.append(photo.data["url"])
    return urls


def home_view(
    store: ContentStore,
    today: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> HomeView:
    rng = rng or random.Random()
    content = fetch_page_content(store, PageKey.HOME) or PageContent()
    summaries = {}
    what_we_do_featured: List[str] = []
    for key in PageKey:
        if key == PageKey.HOME:
            continue
        page = fetch_page_content(store, key)
        summaries[key.value] = page.summary if page else ""
        if key == PageKey.WHAT_WE_DO and page:
            what_we_do_featured = [url for url in page.featured if url]
    pool = gallery_photo_urls(store)
    return HomeView(
        content=content,
        summaries=summaries,
        what_we_do_featured=what_we_do_featured,
        events=arrange_events(list_events(store), today),
        staff=list_ordered(store, STAFF_MEMBERS_COLLECTION),
        supporters=list_ordered(store, SUPPORTERS_COLLECTION),
        testimonials=list_ordered(store, TESTIMONIALS_COLLECTION),
        gallery_sample=rng.sample(pool, min(GALLERY_SAMPLE_SIZE, len(pool))),
    )


def gallery_covers(store: ContentStore) -> List[GalleryCover]:
    covers = []
    for record in store.list(GALLERY_GROUPS_COLLECTION, order_by="date", descending=True):
        group = entity_from_document(GalleryGroup, record.id, record.data)
        if not group.title:
            group.title = "Untitled"
        photos = store.list(photos_collection_path(record.id), order_by="order")
        cover = next((p.data["url"] for p in photos if p.data.get("url")), None)
        covers.append(GalleryCover(group=group, cover=cover))
    return covers


def gallery_group(store: ContentStore, group_id: str) -> tuple[GalleryGroup, List[Photo]]:
    data = store.get(f"{GALLERY_GROUPS_COLLECTION}/{group_id}")
    if data is None:
        raise NotFoundError("Gallery group", group_id)
    group = entity_from_document(GalleryGroup, group_id, data)
    photos = [
        entity_from_document(Photo, r.id, r.data)
        for r in store.list(photos_collection_path(group_id), order_by="order")
    ]
    return group, photos


def _section(view: DashboardView, name: str, load: Callable[[], Any]) -> Any:
    try:
        return load()
    except StoreUnavailableError as e:
        logger.warning("Dashboard section %s unavailable: %s", name, e.detail)
        view.unavailable.append(name)
        return None


def dashboard_view(store: ContentStore, today: Optional[str] = None) -> DashboardView:
    """Admin overview. Each section loads on its own; failures don't sink the rest."""
    view = DashboardView()

    def _groups() -> List[Dict[str, Any]]:
        return [
            {
                "id": r.id,
                "title": r.data.get("title") or "Untitled",
                "size": store.count(photos_collection_path(r.id)),
            }
            for r in store.list(GALLERY_GROUPS_COLLECTION, order_by="date", descending=True)
        ]

    view.groups = _section(view, "groups", _groups)
    view.staff_count = _section(view, "staff", lambda: store.count(STAFF_MEMBERS_COLLECTION))
    view.supporters_count = _section(view, "supporters", lambda: store.count(SUPPORTERS_COLLECTION))
    view.upcoming = _section(view, "events", lambda: upcoming_events(list_events(store), today))
    view.testimonials_count = _section(
        view, "testimonials", lambda: store.count(TESTIMONIALS_COLLECTION)
    )
    return view
