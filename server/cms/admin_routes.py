"""
HTTP routes for the admin content editor. Every route requires an admin.

Editor sessions stand in for the admin screens: opening one loads the
collection (or page) into a private edit buffer, the calls below edit it
locally, and only commit writes to the store.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import ContextManager, List, Optional

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from starlette.concurrency import run_in_threadpool

from cms.auth import Identity
from cms.config import get_settings
from cms.content import save_page_content
from cms.dependencies import (
    get_content_store,
    get_editor_registry,
    get_gallery_service,
    get_upload_tracker,
    require_admin,
)
from cms.editor import EditorSession, EditorSessionRegistry
from cms.errors import InvalidFieldError
from cms.gallery import GalleryService, PhotoUpload, UploadTracker
from cms.public import dashboard_view
from cms.routes import entity_payload, group_response, page_payload, parse_page_key, photo_response
from cms.schemas import (
    CommitResponse,
    DashboardResponse,
    DeleteGroupResponse,
    EditorSessionResponse,
    GroupCreateRequest,
    GroupResponse,
    GroupUpdateRequest,
    ItemPatchRequest,
    ListGroupsResponse,
    ListPhotosResponse,
    PageContentPayload,
    PageContentResponse,
    PageEditPatch,
    PhotoChoiceGroupResponse,
    PhotoChoicesResponse,
    PhotoOrderRequest,
    PhotoResponse,
    PhotoUpdateRequest,
    RemovePhotoResponse,
    ReorderRequest,
    SelectRequest,
    SlotSetRequest,
    UploadBatchResponse,
    UploadStatusResponse,
)
from cms.slots import SlotList, photo_choices
from cms.store import ContentStore
from shared.models import PageContent

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


def _owner(identity: Identity) -> str:
    return identity.current_user.uid


def session_response(session: EditorSession) -> EditorSessionResponse:
    editor = session.editor
    if session.kind == "page":
        return EditorSessionResponse(
            session_id=session.session_id,
            kind="page",
            target=session.target,
            dirty=editor.is_dirty(),
            content=page_payload(editor.current_content()),
            exists=editor.exists,
        )
    return EditorSessionResponse(
        session_id=session.session_id,
        kind="collection",
        target=session.target,
        dirty=editor.is_dirty(),
        selection=editor.selection,
        items=[entity_payload(item) for item in editor.items],
        pending_deletes=sorted(editor.pending_deletes),
    )


def _slot_list(session: EditorSession, item_id: Optional[str]) -> ContextManager[SlotList]:
    if session.kind == "page":
        return session.editor.edit_slots()
    if item_id is None:
        raise InvalidFieldError("item_id is required for collection slots", "item_id")
    return session.editor.edit_slots(item_id)


def _status_response(status) -> UploadStatusResponse:
    return UploadStatusResponse(**{**asdict(status), "state": status.state.value})


# Pages


@router.put("/pages/{key}", response_model=PageContentResponse)
def save_page(
    key: str,
    payload: PageContentPayload,
    store: ContentStore = Depends(get_content_store),
):
    page_key = parse_page_key(key)
    content = PageContent(**payload.model_dump())
    save_page_content(store, page_key, content)
    return PageContentResponse(key=page_key.value, content=page_payload(content))


@router.post("/pages/{key}/editor", response_model=EditorSessionResponse, status_code=201)
def open_page_editor(
    key: str,
    identity: Identity = Depends(require_admin),
    store: ContentStore = Depends(get_content_store),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    session = registry.open_page(
        _owner(identity), key, store, max_slots=get_settings().max_featured_slots
    )
    return session_response(session)


@router.patch("/editors/{session_id}/content", response_model=EditorSessionResponse)
def update_page_content(
    session_id: str,
    patch: PageEditPatch,
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    session = registry.get(session_id, _owner(identity), kind="page")
    session.editor.update(patch.model_dump(exclude_unset=True))
    return session_response(session)


# Ordered collections


@router.post(
    "/collections/{collection}/editor",
    response_model=EditorSessionResponse,
    status_code=201,
)
def open_collection_editor(
    collection: str,
    identity: Identity = Depends(require_admin),
    store: ContentStore = Depends(get_content_store),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    session = registry.open_collection(
        _owner(identity), collection, store, max_slots=get_settings().max_featured_slots
    )
    return session_response(session)


@router.get("/editors/{session_id}", response_model=EditorSessionResponse)
def get_editor(
    session_id: str,
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    return session_response(registry.get(session_id, _owner(identity)))


@router.delete("/editors/{session_id}", status_code=204)
def close_editor(
    session_id: str,
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    registry.close(session_id, _owner(identity))
    return Response(status_code=204)


@router.post("/editors/{session_id}/items", response_model=EditorSessionResponse, status_code=201)
def add_item(
    session_id: str,
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    session = registry.get(session_id, _owner(identity), kind="collection")
    session.editor.add()
    return session_response(session)


@router.patch("/editors/{session_id}/items/{item_id}", response_model=EditorSessionResponse)
def update_item(
    session_id: str,
    item_id: str,
    payload: ItemPatchRequest,
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    session = registry.get(session_id, _owner(identity), kind="collection")
    session.editor.update(item_id, payload.fields)
    return session_response(session)


@router.delete("/editors/{session_id}/items/{item_id}", response_model=EditorSessionResponse)
def remove_item(
    session_id: str,
    item_id: str,
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    session = registry.get(session_id, _owner(identity), kind="collection")
    session.editor.remove(item_id)
    return session_response(session)


@router.post("/editors/{session_id}/reorder", response_model=EditorSessionResponse)
def reorder_items(
    session_id: str,
    payload: ReorderRequest,
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    session = registry.get(session_id, _owner(identity), kind="collection")
    session.editor.reorder(payload.from_index, payload.to_index)
    return session_response(session)


@router.post("/editors/{session_id}/select", response_model=EditorSessionResponse)
def select_item(
    session_id: str,
    payload: SelectRequest,
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    session = registry.get(session_id, _owner(identity), kind="collection")
    session.editor.select(payload.item_id)
    return session_response(session)


@router.post("/editors/{session_id}/cancel", response_model=EditorSessionResponse)
def cancel_edits(
    session_id: str,
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    session = registry.get(session_id, _owner(identity))
    session.editor.cancel()
    return session_response(session)


@router.post("/editors/{session_id}/commit", response_model=CommitResponse)
def commit_edits(
    session_id: str,
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    """
    Saves the session. On a store failure the buffer is untouched and the
    response is 503 with `retryable: true`; calling commit again retries.
    """
    session = registry.get(session_id, _owner(identity))
    result = session.editor.commit()
    if session.kind == "page":
        return CommitResponse(session=session_response(session))
    return CommitResponse(session=session_response(session), **asdict(result))


# Featured-photo slots (page sessions omit item_id)


@router.post("/editors/{session_id}/slots", response_model=EditorSessionResponse)
def add_slot(
    session_id: str,
    item_id: Optional[str] = Query(None),
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    session = registry.get(session_id, _owner(identity))
    with _slot_list(session, item_id) as slots:
        slots.add_slot()
    return session_response(session)


@router.put("/editors/{session_id}/slots/{index}", response_model=EditorSessionResponse)
def set_slot(
    session_id: str,
    index: int,
    payload: SlotSetRequest,
    item_id: Optional[str] = Query(None),
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    session = registry.get(session_id, _owner(identity))
    with _slot_list(session, item_id) as slots:
        slots.set_slot(index, payload.url)
    return session_response(session)


@router.delete("/editors/{session_id}/slots/{index}", response_model=EditorSessionResponse)
def remove_slot(
    session_id: str,
    index: int,
    item_id: Optional[str] = Query(None),
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    session = registry.get(session_id, _owner(identity))
    with _slot_list(session, item_id) as slots:
        slots.remove_slot(index)
    return session_response(session)


@router.post("/editors/{session_id}/slots/reorder", response_model=EditorSessionResponse)
def reorder_slots(
    session_id: str,
    payload: ReorderRequest,
    item_id: Optional[str] = Query(None),
    identity: Identity = Depends(require_admin),
    registry: EditorSessionRegistry = Depends(get_editor_registry),
):
    session = registry.get(session_id, _owner(identity))
    with _slot_list(session, item_id) as slots:
        slots.reorder_slots(payload.from_index, payload.to_index)
    return session_response(session)


@router.get("/photo-choices", response_model=PhotoChoicesResponse)
def list_photo_choices(store: ContentStore = Depends(get_content_store)):
    return PhotoChoicesResponse(
        groups=[
            PhotoChoiceGroupResponse(
                group_id=g.group_id,
                title=g.title,
                photos=[asdict(p) for p in g.photos],
            )
            for g in photo_choices(store)
        ]
    )


# Gallery


@router.get("/gallery/groups", response_model=ListGroupsResponse)
def list_groups(gallery: GalleryService = Depends(get_gallery_service)):
    return ListGroupsResponse(
        groups=[group_response(s.group, size=s.size) for s in gallery.list_groups()]
    )


@router.post("/gallery/groups", response_model=GroupResponse, status_code=201)
def create_group(
    payload: GroupCreateRequest,
    gallery: GalleryService = Depends(get_gallery_service),
):
    return group_response(gallery.create_group(payload.title, payload.date), size=0)


@router.patch("/gallery/groups/{group_id}", response_model=GroupResponse)
def update_group(
    group_id: str,
    payload: GroupUpdateRequest,
    gallery: GalleryService = Depends(get_gallery_service),
):
    return group_response(gallery.update_group(group_id, **payload.model_dump()))


@router.delete("/gallery/groups/{group_id}", response_model=DeleteGroupResponse)
def delete_group(group_id: str, gallery: GalleryService = Depends(get_gallery_service)):
    return DeleteGroupResponse(**asdict(gallery.delete_group(group_id)))


@router.get("/gallery/groups/{group_id}/photos", response_model=ListPhotosResponse)
def list_photos(group_id: str, gallery: GalleryService = Depends(get_gallery_service)):
    group = gallery.get_group(group_id)
    photos = gallery.list_photos(group_id)
    return ListPhotosResponse(
        group=group_response(group, size=len(photos)),
        photos=[photo_response(p) for p in photos],
    )


@router.post("/gallery/groups/{group_id}/photos", response_model=UploadBatchResponse)
async def upload_photos(
    group_id: str,
    files: List[UploadFile] = File(...),
    gallery: GalleryService = Depends(get_gallery_service),
):
    uploads = [
        PhotoUpload(
            file_name=f.filename or "photo",
            data=await f.read(),
            content_type=f.content_type,
        )
        for f in files
    ]
    statuses = await run_in_threadpool(gallery.upload_photos, group_id, uploads)
    return UploadBatchResponse(uploads=[_status_response(s) for s in statuses])


@router.put("/gallery/groups/{group_id}/photos/order", response_model=ListPhotosResponse)
def save_photo_order(
    group_id: str,
    payload: PhotoOrderRequest,
    gallery: GalleryService = Depends(get_gallery_service),
):
    group = gallery.get_group(group_id)
    photos = gallery.save_photo_order(group_id, payload.photo_ids)
    return ListPhotosResponse(
        group=group_response(group, size=len(photos)),
        photos=[photo_response(p) for p in photos],
    )


@router.patch("/gallery/groups/{group_id}/photos/{photo_id}", response_model=PhotoResponse)
def update_photo(
    group_id: str,
    photo_id: str,
    payload: PhotoUpdateRequest,
    gallery: GalleryService = Depends(get_gallery_service),
):
    return photo_response(gallery.update_photo(group_id, photo_id, **payload.model_dump()))


@router.delete("/gallery/groups/{group_id}/photos/{photo_id}", response_model=RemovePhotoResponse)
def remove_photo(
    group_id: str,
    photo_id: str,
    gallery: GalleryService = Depends(get_gallery_service),
):
    return RemovePhotoResponse(
        status="ok", object_deleted=gallery.remove_photo(group_id, photo_id)
    )


@router.get("/gallery/uploads", response_model=UploadBatchResponse)
def list_uploads(
    group_id: Optional[str] = Query(None),
    tracker: UploadTracker = Depends(get_upload_tracker),
):
    return UploadBatchResponse(uploads=[_status_response(s) for s in tracker.list(group_id)])


@router.delete("/gallery/uploads", status_code=204)
def clear_uploads(tracker: UploadTracker = Depends(get_upload_tracker)):
    tracker.clear_finished()
    return Response(status_code=204)


@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(store: ContentStore = Depends(get_content_store)):
    view = dashboard_view(store)
    return DashboardResponse(
        groups=view.groups,
        staff_count=view.staff_count,
        supporters_count=view.supporters_count,
        testimonials_count=view.testimonials_count,
        upcoming=[entity_payload(e) for e in view.upcoming] if view.upcoming is not None else None,
        unavailable=view.unavailable,
    )
