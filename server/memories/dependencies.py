"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Depends

from memories.config import get_settings
from memories.invites import InviteComposer
from memories.mail import MailSender, build_mail_sender
from memories.places import PlacesStore
from memories.storage import InMemoryObjectStore, ObjectStore, S3ObjectStore
from memories.uploads import UploadService

_storage_client: ObjectStore | None = None
_places_store: PlacesStore | None = None
_mail_sender: MailSender | None = None


def get_storage_client() -> ObjectStore:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryObjectStore()
    else:
        _storage_client = S3ObjectStore(
            bucket=settings.s3_bucket,
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.s3_access_key or "",
            secret_access_key=settings.s3_secret_key or "",
            region=settings.s3_region or "",
            public_base_url=settings.s3_public_url,
        )
    return _storage_client


def get_places_store() -> PlacesStore:
    """
    Return a singleton places store so every request shares one local file.
    """
    global _places_store
    if _places_store:
        return _places_store

    settings = get_settings()
    _places_store = PlacesStore(get_storage_client(), settings.places_file)
    return _places_store


def get_mail_sender() -> MailSender:
    global _mail_sender
    if _mail_sender:
        return _mail_sender

    _mail_sender = build_mail_sender(get_settings())
    return _mail_sender


def get_upload_service(
    storage: ObjectStore = Depends(get_storage_client),
    places: PlacesStore = Depends(get_places_store),
) -> UploadService:
    settings = get_settings()
    return UploadService(storage, places, convert_heic=settings.convert_heic)


def get_invite_composer(
    mail_sender: MailSender = Depends(get_mail_sender),
) -> InviteComposer:
    settings = get_settings()
    return InviteComposer(
        mail_sender,
        default_recipient=settings.default_recipient,
        extra_recipients=settings.extra_recipient_list,
        tz_name=settings.timezone,
        uid_domain=settings.ics_uid_domain,
    )
