"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from cardshelf.admin import AdminController
from cardshelf.auth import AuthClient, FirebaseAuthClient, InMemoryAuthClient
from cardshelf.config import get_settings
from cardshelf.db import (
    FirestoreRecordStore,
    InMemoryRecordStore,
    RecordStore,
    SqlRecordStore,
)
from cardshelf.public import PublicController
from cardshelf.storage import CosStorageClient, InMemoryStorageClient, StorageClient

logger = logging.getLogger(__name__)

_record_store: RecordStore | None = None
_storage_client: StorageClient | None = None
_auth_client: AuthClient | None = None
_admin_controller: AdminController | None = None
_public_controller: PublicController | None = None


def _init_firebase(settings) -> None:
    import firebase_admin
    from firebase_admin import credentials

    try:
        firebase_admin.get_app()
        return
    except ValueError:
        pass
    cred = (
        credentials.Certificate(settings.firebase_credentials_file)
        if settings.firebase_credentials_file
        else None
    )
    firebase_admin.initialize_app(
        cred, {"projectId": settings.firebase_project_id}
    )


def get_record_store() -> RecordStore:
    """
    Return a singleton record store so both mirrors watch the same data.
    """
    global _record_store
    if _record_store:
        return _record_store

    settings = get_settings()
    if settings.use_in_memory_backends:
        _record_store = InMemoryRecordStore()
    elif settings.firebase_project_id:
        _init_firebase(settings)
        _record_store = FirestoreRecordStore(settings.collection_name)
    elif settings.database_url:
        _record_store = SqlRecordStore(settings.database_url)
    else:
        _record_store = InMemoryRecordStore()
    logger.info("Record store: %s", _record_store.__class__.__name__)
    return _record_store


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.cos_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = CosStorageClient(
            bucket=settings.cos_bucket,
            region=settings.cos_region or "",
            endpoint=settings.cos_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_auth_client() -> AuthClient:
    global _auth_client
    if _auth_client:
        return _auth_client

    settings = get_settings()
    if settings.firebase_api_key and not settings.use_in_memory_backends:
        _auth_client = FirebaseAuthClient(api_key=settings.firebase_api_key)
    else:
        accounts = {}
        if settings.admin_email and settings.admin_password:
            accounts[settings.admin_email] = settings.admin_password
        _auth_client = InMemoryAuthClient(accounts=accounts)
    return _auth_client


def get_admin_controller() -> AdminController:
    global _admin_controller
    if _admin_controller:
        return _admin_controller

    settings = get_settings()
    _admin_controller = AdminController(
        get_record_store(),
        get_storage_client(),
        get_auth_client(),
        blob_prefix=settings.blob_prefix,
        cache_control=settings.blob_cache_control,
        url_expires_in=settings.download_url_expires_in,
    )
    return _admin_controller


def get_public_controller() -> PublicController:
    """
    Return the public controller, opening its subscription on first use.
    """
    global _public_controller
    if _public_controller:
        return _public_controller

    settings = get_settings()
    _public_controller = PublicController(
        get_record_store(),
        get_storage_client(),
        url_expires_in=settings.download_url_expires_in,
    )
    _public_controller.start()
    return _public_controller


def shutdown_controllers() -> None:
    """Close any open subscriptions. Called when the app stops."""
    if _admin_controller:
        _admin_controller.mirror.stop()
    if _public_controller:
        _public_controller.stop()
