"""
Pydantic schemas for the content service API.

Entity payloads are passed through as camelCase documents plus their id,
the same shape the site front end reads from the store.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

ISO_DATE = r"^\d{4}-\d{2}-\d{2}$"


class PageContentPayload(BaseModel):
    summary: str = ""
    paragraphs: list[str] = Field(default_factory=list)
    featured: list[str] = Field(default_factory=list)
    banner: Optional[str] = None


class PageContentResponse(BaseModel):
    key: str
    content: PageContentPayload


class PageEditPatch(BaseModel):
    summary: Optional[str] = None
    paragraphs: Optional[list[str]] = None
    featured: Optional[list[str]] = None
    banner: Optional[str] = None


class IdentityResponse(BaseModel):
    user: Optional[dict] = None
    is_admin: bool


class EditorSessionResponse(BaseModel):
    session_id: str
    kind: Literal["collection", "page"]
    target: str
    dirty: bool
    selection: Optional[str] = None
    items: Optional[list[dict]] = None
    pending_deletes: list[str] = Field(default_factory=list)
    content: Optional[PageContentPayload] = None
    exists: Optional[bool] = None


class CommitResponse(BaseModel):
    session: EditorSessionResponse
    written: int = 0
    deleted: list[str] = Field(default_factory=list)
    failed_deletes: list[str] = Field(default_factory=list)


class ItemPatchRequest(BaseModel):
    fields: dict[str, Any]


class ReorderRequest(BaseModel):
    from_index: int = Field(..., ge=0)
    to_index: int = Field(..., ge=0)


class SelectRequest(BaseModel):
    item_id: Optional[str] = None


class SlotSetRequest(BaseModel):
    url: Optional[str] = None


class GroupCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    date: Optional[str] = Field(default=None, pattern=ISO_DATE)


class GroupUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    date: Optional[str] = Field(default=None, pattern=ISO_DATE)


class GroupResponse(BaseModel):
    id: str
    title: str
    description: str = ""
    date: Optional[str] = None
    size: Optional[int] = None


class ListGroupsResponse(BaseModel):
    groups: list[GroupResponse]


class DeleteGroupResponse(BaseModel):
    photos_deleted: int
    objects_deleted: int
    object_delete_failures: list[str] = Field(default_factory=list)


class PhotoResponse(BaseModel):
    id: str
    url: Optional[str] = None
    caption: str = ""
    date: Optional[str] = None
    name: Optional[str] = None
    order: Optional[int] = None
    file_name: Optional[str] = None


class ListPhotosResponse(BaseModel):
    group: GroupResponse
    photos: list[PhotoResponse]


class PhotoUpdateRequest(BaseModel):
    caption: Optional[str] = None
    date: Optional[str] = Field(default=None, pattern=ISO_DATE)
    name: Optional[str] = None


class PhotoOrderRequest(BaseModel):
    photo_ids: list[str]


class RemovePhotoResponse(BaseModel):
    status: Literal["ok"]
    object_deleted: bool


class UploadStatusResponse(BaseModel):
    upload_id: str
    group_id: str
    file_name: str
    progress: int = Field(..., ge=0, le=100)
    state: Literal["uploading", "done", "error"]
    photo_id: Optional[str] = None
    error: Optional[str] = None


class UploadBatchResponse(BaseModel):
    uploads: list[UploadStatusResponse]


class PhotoChoiceGroupResponse(BaseModel):
    group_id: str
    title: str
    photos: list[dict]


class PhotoChoicesResponse(BaseModel):
    groups: list[PhotoChoiceGroupResponse]


class ArrangedEventResponse(BaseModel):
    event: dict
    is_past: bool


class EventsPageResponse(BaseModel):
    page: PageContentPayload
    events: list[ArrangedEventResponse]


class WhoWeArePageResponse(BaseModel):
    page: PageContentPayload
    staff: list[dict]
    supporters: list[dict]


class TestimonialsPageResponse(BaseModel):
    page: PageContentPayload
    testimonials: list[dict]


class GalleryCoverResponse(BaseModel):
    group: GroupResponse
    cover: Optional[str] = None


class GalleryPageResponse(BaseModel):
    page: PageContentPayload
    groups: list[GalleryCoverResponse]


class HomePageResponse(BaseModel):
    page: PageContentPayload
    summaries: dict[str, str]
    what_we_do_featured: list[str]
    events: list[ArrangedEventResponse]
    staff: list[dict]
    supporters: list[dict]
    testimonials: list[dict]
    gallery_sample: list[str]


class DashboardResponse(BaseModel):
    groups: Optional[list[dict]] = None
    staff_count: Optional[int] = None
    supporters_count: Optional[int] = None
    testimonials_count: Optional[int] = None
    upcoming: Optional[list[dict]] = None
    unavailable: list[str] = Field(default_factory=list)
