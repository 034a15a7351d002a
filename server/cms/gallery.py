"""
Gallery groups, photo uploads and cascading deletes.
"""

from __future__ import annotations

import logging
import mimetypes
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Dict, List, Optional, Sequence

from cms.errors import InvalidFieldError, NotFoundError, StoreUnavailableError
from cms.storage import StorageClient
from cms.store import MAX_BATCH_WRITES, ContentStore
from shared.firebase_constants import (
    GALLERY_GROUPS_COLLECTION,
    photo_storage_path,
    photos_collection_path,
)
from shared.models import (
    GalleryGroup,
    Photo,
    entity_from_document,
    entity_to_document,
    today_iso,
)

logger = logging.getLogger(__name__)


class UploadState(StrEnum):
    UPLOADING = "uploading"
    DONE = "done"
    ERROR = "error"


@dataclass
class UploadStatus:
    upload_id: str
    group_id: str
    file_name: str
    progress: int = 0  # percent, 0-100
    state: UploadState = UploadState.UPLOADING
    photo_id: Optional[str] = None
    error: Optional[str] = None


class UploadTracker:
    """Per-file upload progress shared with status polling."""

    def __init__(self):
        self._statuses: Dict[str, UploadStatus] = {}
        self._lock = threading.Lock()

    def start(self, group_id: str, file_name: str, upload_id: str) -> UploadStatus:
        status = UploadStatus(upload_id=upload_id, group_id=group_id, file_name=file_name)
        with self._lock:
            self._statuses[upload_id] = status
        return status

    def progress(self, upload_id: str, sent: int, total: int) -> None:
        percent = 100 if total <= 0 else round(sent * 100 / total)
        with self._lock:
            status = self._statuses[upload_id]
            status.progress = max(status.progress, min(percent, 100))

    def finish(self, upload_id: str, photo_id: str) -> None:
        with self._lock:
            status = self._statuses[upload_id]
            status.progress = 100
            status.state = UploadState.DONE
            status.photo_id = photo_id

    def fail(self, upload_id: str, error: str) -> None:
        with self._lock:
            status = self._statuses[upload_id]
            status.state = UploadState.ERROR
            status.error = error

    def fail_pending(self, upload_ids: Sequence[str], error: str) -> None:
        """Marks the given uploads as errored unless they already finished."""
        with self._lock:
            for upload_id in upload_ids:
                status = self._statuses.get(upload_id)
                if status is not None and status.state == UploadState.UPLOADING:
                    status.state = UploadState.ERROR
                    status.error = error

    def list(self, group_id: Optional[str] = None) -> List[UploadStatus]:
        with self._lock:
            return [
                UploadStatus(**vars(s))
                for s in self._statuses.values()
                if group_id is None or s.group_id == group_id
            ]

    def clear_finished(self) -> int:
        with self._lock:
            finished = [
                k for k, s in self._statuses.items() if s.state != UploadState.UPLOADING
            ]
            for key in finished:
                del self._statuses[key]
            return len(finished)


@dataclass
class PhotoUpload:
    file_name: str
    data: bytes
    content_type: Optional[str] = None


@dataclass
class GroupSummary:
    group: GalleryGroup
    size: int


@dataclass
class DeleteGroupResult:
    photos_deleted: int
    objects_deleted: int
    object_delete_failures: List[str] = field(default_factory=list)


class GalleryService:
    def __init__(
        self,
        store: ContentStore,
        storage: StorageClient,
        tracker: Optional[UploadTracker] = None,
        max_workers: int = 4,
    ):
        self.store = store
        self.storage = storage
        self.tracker = tracker or UploadTracker()
        self.max_workers = max_workers

    # Groups

    def list_groups(self) -> List[GroupSummary]:
        records = self.store.list(GALLERY_GROUPS_COLLECTION, order_by="date", descending=True)
        return [
            GroupSummary(
                group=entity_from_document(GalleryGroup, r.id, r.data),
                size=self.store.count(photos_collection_path(r.id)),
            )
            for r in records
        ]

    def get_group(self, group_id: str) -> GalleryGroup:
        data = self.store.get(self._group_path(group_id))
        if data is None:
            raise NotFoundError("Gallery group", group_id)
        return entity_from_document(GalleryGroup, group_id, data)

    def create_group(self, title: str, date: Optional[str] = None) -> GalleryGroup:
        title = title.strip()
        if not title:
            raise InvalidFieldError("Group title is required", "title")
        group = GalleryGroup(
            id=str(uuid.uuid4()),
            title=title,
            description=f"{title} highlights",
            date=date or today_iso(),
        )
        self.store.set(self._group_path(group.id), entity_to_document(group))
        logger.info("Created gallery group %s (%s)", group.id, group.title)
        return group

    def update_group(
        self,
        group_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        date: Optional[str] = None,
    ) -> GalleryGroup:
        group = self.get_group(group_id)
        if title is not None:
            group.title = title
        if description is not None:
            group.description = description
        if date is not None:
            group.date = date
        self.store.set(self._group_path(group_id), entity_to_document(group), merge=True)
        return group

    def delete_group(self, group_id: str) -> DeleteGroupResult:
        """
        Deletes every photo document, then the group document, in batches of
        at most MAX_BATCH_WRITES writes. The group document is in the last
        batch, so a failure part way leaves the group listed and retryable.
        Stored objects are then removed on a best-effort basis.
        """
        self.get_group(group_id)
        photos = self._load_photos(group_id)
        doc_paths = [self._photo_path(group_id, photo.id) for photo in photos]
        doc_paths.append(self._group_path(group_id))
        for start in range(0, len(doc_paths), MAX_BATCH_WRITES):
            batch = self.store.batch()
            for path in doc_paths[start : start + MAX_BATCH_WRITES]:
                batch.delete(path)
            batch.commit()

        paths = [p for p in (self._object_path(group_id, photo) for photo in photos) if p]
        result = DeleteGroupResult(photos_deleted=len(photos), objects_deleted=0)
        if paths:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                outcomes = list(pool.map(self._delete_object, paths))
            for path, ok in zip(paths, outcomes):
                if ok:
                    result.objects_deleted += 1
                else:
                    result.object_delete_failures.append(path)
        logger.info(
            "Deleted gallery group %s with %d photos (%d object delete failures)",
            group_id,
            len(photos),
            len(result.object_delete_failures),
        )
        return result

    # Photos

    def list_photos(self, group_id: str) -> List[Photo]:
        """
        Returns the group's photos by `order`. Photos stored without an order
        are numbered 0..n-1 and the numbering is persisted.
        """
        photos = self._load_photos(group_id)
        if any(photo.order is None for photo in photos):
            self._write_orders(group_id, photos)
            logger.info("Assigned order to %d photos in group %s", len(photos), group_id)
        return photos

    def upload_photos(self, group_id: str, files: Sequence[PhotoUpload]) -> List[UploadStatus]:
        """
        Uploads files concurrently and records one photo document per
        successful upload. A failed file is marked as errored and does not
        stop the others.
        """
        group = self.get_group(group_id)
        start = self.store.count(photos_collection_path(group_id))
        statuses = [
            self.tracker.start(group_id, f.file_name, upload_id=str(uuid.uuid4()))
            for f in files
        ]

        def _upload(args: tuple[PhotoUpload, UploadStatus]) -> Optional[str]:
            upload, status = args
            path = photo_storage_path(group_id, status.upload_id, upload.file_name)
            content_type = (
                upload.content_type
                or mimetypes.guess_type(upload.file_name)[0]
                or "application/octet-stream"
            )
            try:
                return self.storage.upload_bytes(
                    path,
                    upload.data,
                    content_type=content_type,
                    on_progress=lambda sent, total: self.tracker.progress(
                        status.upload_id, sent, total
                    ),
                )
            except Exception as e:
                logger.warning("Upload of %s failed: %s", upload.file_name, e)
                self.tracker.fail(status.upload_id, str(e))
                return None

        photos: List[Photo] = []
        written = 0
        try:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                urls = list(pool.map(_upload, zip(files, statuses)))

            for upload, status, url in zip(files, statuses, urls):
                if url is None:
                    continue
                position = start + len(photos)
                photos.append(
                    Photo(
                        id=status.upload_id,
                        url=url,
                        caption="",
                        date=today_iso(),
                        name=f"{group.title or 'Gallery'} {position + 1}",
                        order=position,
                        file_name=upload.file_name,
                    )
                )
            for start in range(0, len(photos), MAX_BATCH_WRITES):
                batch = self.store.batch()
                for photo in photos[start : start + MAX_BATCH_WRITES]:
                    batch.set(self._photo_path(group_id, photo.id), entity_to_document(photo))
                batch.commit()
                written = start + MAX_BATCH_WRITES
        except Exception as e:
            for photo in photos[:written]:
                self.tracker.finish(photo.id, photo.id)
            self.tracker.fail_pending([s.upload_id for s in statuses], str(e))
            # Objects whose documents were never written are orphans.
            for photo in photos[written:]:
                path = self._object_path(group_id, photo)
                if path:
                    self._delete_object(path)
            raise
        for photo in photos:
            self.tracker.finish(photo.id, photo.id)
        logger.info(
            "Uploaded %d of %d photos to group %s", len(photos), len(files), group_id
        )
        return [self._status_of(status.upload_id) for status in statuses]

    def update_photo(
        self,
        group_id: str,
        photo_id: str,
        caption: Optional[str] = None,
        date: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Photo:
        data = self.store.get(self._photo_path(group_id, photo_id))
        if data is None:
            raise NotFoundError("Photo", photo_id)
        photo = entity_from_document(Photo, photo_id, data)
        changes = {"caption": caption, "date": date, "name": name}
        changes = {k: v for k, v in changes.items() if v is not None}
        for key, value in changes.items():
            setattr(photo, key, value)
        self.store.set(self._photo_path(group_id, photo_id), changes, merge=True)
        return photo

    def remove_photo(self, group_id: str, photo_id: str) -> bool:
        """Deletes the photo document; returns whether the stored object went too."""
        data = self.store.get(self._photo_path(group_id, photo_id))
        if data is None:
            raise NotFoundError("Photo", photo_id)
        photo = entity_from_document(Photo, photo_id, data)
        self.store.delete(self._photo_path(group_id, photo_id))
        path = self._object_path(group_id, photo)
        return self._delete_object(path) if path else False

    def save_photo_order(self, group_id: str, photo_ids: Sequence[str]) -> List[Photo]:
        photos = {photo.id: photo for photo in self._load_photos(group_id)}
        unknown = [pid for pid in photo_ids if pid not in photos]
        if unknown:
            raise NotFoundError("Photo", ", ".join(unknown))
        # Photos missing from the request keep their relative order at the end.
        ordered = [photos[pid] for pid in photo_ids]
        seen = set(photo_ids)
        ordered += [p for p in photos.values() if p.id not in seen]
        self._write_orders(group_id, ordered)
        return ordered

    # Helpers

    def _write_orders(self, group_id: str, photos: Sequence[Photo]) -> None:
        """Renumbers `order` to 0..n-1 following the given sequence."""
        for index, photo in enumerate(photos):
            photo.order = index
        for start in range(0, len(photos), MAX_BATCH_WRITES):
            batch = self.store.batch()
            for photo in photos[start : start + MAX_BATCH_WRITES]:
                batch.set(
                    self._photo_path(group_id, photo.id), {"order": photo.order}, merge=True
                )
            batch.commit()

    def _load_photos(self, group_id: str) -> List[Photo]:
        records = self.store.list(photos_collection_path(group_id), order_by="order")
        return [entity_from_document(Photo, r.id, r.data) for r in records]

    def _delete_object(self, path: str) -> bool:
        try:
            self.storage.delete(path)
            return True
        except (StoreUnavailableError, FileNotFoundError) as e:
            logger.warning("Best-effort delete of stored object %s failed: %s", path, e)
            return False

    def _status_of(self, upload_id: str) -> UploadStatus:
        for status in self.tracker.list():
            if status.upload_id == upload_id:
                return status
        raise NotFoundError("Upload", upload_id)

    @staticmethod
    def _object_path(group_id: str, photo: Photo) -> Optional[str]:
        if photo.file_name:
            return photo_storage_path(group_id, photo.id, photo.file_name)
        return None

    @staticmethod
    def _group_path(group_id: str) -> str:
        return f"{GALLERY_GROUPS_COLLECTION}/{group_id}"

    @classmethod
    def _photo_path(cls, group_id: str, photo_id: str) -> str:
        return f"{photos_collection_path(group_id)}/{photo_id}"
