"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from typing import Optional

import firebase_admin
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import credentials

from cms.auth import (
    AdminPolicy,
    FirebaseTokenVerifier,
    Identity,
    IdentityVerifier,
    StaticTokenVerifier,
)
from cms.config import get_settings
from cms.editor import EditorSessionRegistry
from cms.gallery import GalleryService, UploadTracker
from cms.storage import (
    CosStorageClient,
    GcsStorageClient,
    InMemoryStorageClient,
    StorageClient,
)
from cms.store import (
    ContentStore,
    FirestoreContentStore,
    InMemoryContentStore,
    SqlContentStore,
)

logger = logging.getLogger(__name__)

_content_store: ContentStore | None = None
_storage_client: StorageClient | None = None
_identity_verifier: IdentityVerifier | None = None
_editor_registry: EditorSessionRegistry | None = None
_upload_tracker: UploadTracker | None = None

bearer = HTTPBearer(auto_error=False)


def _firebase_initialized() -> bool:
    try:
        firebase_admin.get_app()
    except ValueError:
        return False
    return True


def _init_firebase() -> None:
    if _firebase_initialized():
        return
    settings = get_settings()
    options = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    if settings.firebase_storage_bucket:
        options["storageBucket"] = settings.firebase_storage_bucket
    cred = (
        credentials.Certificate(settings.firebase_credentials_path)
        if settings.firebase_credentials_path
        else None
    )
    firebase_admin.initialize_app(cred, options or None)


def get_content_store() -> ContentStore:
    """
    Return a singleton document store. Firestore when a Firebase project is
    configured, SQL when DATABASE_URL is set, in-memory otherwise.
    """
    global _content_store
    if _content_store:
        return _content_store

    settings = get_settings()
    if settings.use_in_memory_backends:
        _content_store = InMemoryContentStore()
    elif settings.firebase_project_id:
        _init_firebase()
        _content_store = FirestoreContentStore()
    elif settings.database_url:
        _content_store = SqlContentStore(settings.database_url)
    else:
        logger.warning("No document store configured; using in-memory store")
        _content_store = InMemoryContentStore()
    return _content_store


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _storage_client = InMemoryStorageClient()
    elif settings.cos_bucket:
        _storage_client = CosStorageClient(
            bucket=settings.cos_bucket,
            region=settings.cos_region or "",
            endpoint=settings.cos_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.cos_public_base_url or "",
        )
    elif settings.firebase_storage_bucket:
        _init_firebase()
        _storage_client = GcsStorageClient(bucket_name=settings.firebase_storage_bucket)
    else:
        logger.warning("No object storage configured; using in-memory storage")
        _storage_client = InMemoryStorageClient()
    return _storage_client


def get_identity_verifier() -> IdentityVerifier:
    global _identity_verifier
    if _identity_verifier:
        return _identity_verifier

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.firebase_project_id:
        _identity_verifier = StaticTokenVerifier(settings.dev_tokens)
    else:
        _init_firebase()
        _identity_verifier = FirebaseTokenVerifier()
    return _identity_verifier


def get_editor_registry() -> EditorSessionRegistry:
    global _editor_registry
    if _editor_registry is None:
        _editor_registry = EditorSessionRegistry(
            ttl_seconds=get_settings().editor_session_ttl_seconds
        )
    return _editor_registry


def get_upload_tracker() -> UploadTracker:
    global _upload_tracker
    if _upload_tracker is None:
        _upload_tracker = UploadTracker()
    return _upload_tracker


def get_gallery_service(
    store: ContentStore = Depends(get_content_store),
    storage: StorageClient = Depends(get_storage_client),
    tracker: UploadTracker = Depends(get_upload_tracker),
) -> GalleryService:
    return GalleryService(
        store,
        storage,
        tracker=tracker,
        max_workers=get_settings().upload_max_workers,
    )


def get_identity(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> Identity:
    policy = AdminPolicy(get_settings().admin_emails)
    if creds is None:
        return Identity.anonymous()
    return policy.identity_for(verifier.verify(creds.credentials))


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    """Gate for every write endpoint."""
    if identity.current_user is None:
        raise HTTPException(status_code=401, detail="Sign in required")
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return identity
