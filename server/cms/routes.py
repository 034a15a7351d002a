"""
HTTP routes for the public site.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from cms import public
from cms.auth import Identity
from cms.dependencies import get_content_store, get_identity
from cms.schemas import (
    ArrangedEventResponse,
    EventsPageResponse,
    GalleryCoverResponse,
    GalleryPageResponse,
    GroupResponse,
    HomePageResponse,
    IdentityResponse,
    ListPhotosResponse,
    PageContentPayload,
    PageContentResponse,
    PhotoResponse,
    TestimonialsPageResponse,
    WhoWeArePageResponse,
)
from cms.store import ContentStore
from shared.firebase_constants import (
    STAFF_MEMBERS_COLLECTION,
    SUPPORTERS_COLLECTION,
    TESTIMONIALS_COLLECTION,
)
from shared.models import (
    GalleryGroup,
    PageContent,
    PageKey,
    Photo,
    entity_to_document,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def entity_payload(entity: Any) -> dict:
    return {"id": entity.id, **entity_to_document(entity)}


def page_payload(content: PageContent) -> PageContentPayload:
    return PageContentPayload(**asdict(content))


def group_response(group: GalleryGroup, size: int | None = None) -> GroupResponse:
    return GroupResponse(**asdict(group), size=size)


def photo_response(photo: Photo) -> PhotoResponse:
    return PhotoResponse(**asdict(photo))


def arranged_payload(items: list[public.ArrangedEvent]) -> list[ArrangedEventResponse]:
    return [
        ArrangedEventResponse(event=entity_payload(a.event), is_past=a.is_past)
        for a in items
    ]


def parse_page_key(key: str) -> PageKey:
    try:
        return PageKey(key)
    except ValueError:
        raise HTTPException(status_code=404, detail="Page not found")


@router.get("/auth/me", response_model=IdentityResponse)
def whoami(identity: Identity = Depends(get_identity)):
    user = asdict(identity.current_user) if identity.current_user else None
    return IdentityResponse(user=user, is_admin=identity.is_admin)


@router.get("/pages/{key}", response_model=PageContentResponse)
def get_page(key: str, store: ContentStore = Depends(get_content_store)):
    page_key = parse_page_key(key)
    return PageContentResponse(
        key=page_key.value, content=page_payload(public.page_content(store, page_key))
    )


@router.get("/home", response_model=HomePageResponse)
def get_home(store: ContentStore = Depends(get_content_store)):
    view = public.home_view(store)
    return HomePageResponse(
        page=page_payload(view.content),
        summaries=view.summaries,
        what_we_do_featured=view.what_we_do_featured,
        events=arranged_payload(view.events),
        staff=[entity_payload(s) for s in view.staff],
        supporters=[entity_payload(s) for s in view.supporters],
        testimonials=[entity_payload(t) for t in view.testimonials],
        gallery_sample=view.gallery_sample,
    )


@router.get("/events", response_model=EventsPageResponse)
def get_events(store: ContentStore = Depends(get_content_store)):
    return EventsPageResponse(
        page=page_payload(public.page_content(store, PageKey.EVENTS)),
        events=arranged_payload(public.arrange_events(public.list_events(store))),
    )


@router.get("/who-we-are", response_model=WhoWeArePageResponse)
def get_who_we_are(store: ContentStore = Depends(get_content_store)):
    return WhoWeArePageResponse(
        page=page_payload(public.page_content(store, PageKey.WHO_WE_ARE)),
        staff=[entity_payload(s) for s in public.list_ordered(store, STAFF_MEMBERS_COLLECTION)],
        supporters=[
            entity_payload(s) for s in public.list_ordered(store, SUPPORTERS_COLLECTION)
        ],
    )


@router.get("/testimonials", response_model=TestimonialsPageResponse)
def get_testimonials(store: ContentStore = Depends(get_content_store)):
    return TestimonialsPageResponse(
        page=page_payload(public.page_content(store, PageKey.TESTIMONIALS)),
        testimonials=[
            entity_payload(t) for t in public.list_ordered(store, TESTIMONIALS_COLLECTION)
        ],
    )


@router.get("/gallery", response_model=GalleryPageResponse)
def get_gallery(store: ContentStore = Depends(get_content_store)):
    return GalleryPageResponse(
        page=page_payload(public.page_content(store, PageKey.GALLERY)),
        groups=[
            GalleryCoverResponse(group=group_response(c.group), cover=c.cover)
            for c in public.gallery_covers(store)
        ],
    )


@router.get("/gallery/{group_id}", response_model=ListPhotosResponse)
def get_gallery_group(group_id: str, store: ContentStore = Depends(get_content_store)):
    group, photos = public.gallery_group(store, group_id)
    return ListPhotosResponse(
        group=group_response(group, size=len(photos)),
        photos=[photo_response(p) for p in photos],
    )
