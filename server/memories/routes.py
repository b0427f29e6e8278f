"""
HTTP routes for the memories backend.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from memories.dependencies import (
    get_invite_composer,
    get_places_store,
    get_upload_service,
)
from memories.errors import BadRequestError, NotFoundError, UpstreamError
from memories.invites import InviteComposer, InviteRequest
from memories.places import PlacesStore, record_coords
from memories.schemas import (
    HealthResponse,
    SendInviteRequest,
    SendInviteResponse,
    UpdateCaptionRequest,
    UpdateCaptionResponse,
    UploadPhotoRequest,
    UploadPhotoResponse,
    UploadResponse,
)
from memories.uploads import UploadService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_class=PlainTextResponse)
def index():
    return "ICS mail server is running"


@router.get("/health", response_model=HealthResponse)
def health(places: PlacesStore = Depends(get_places_store)):
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        placesCount=places.count(),
    )


@router.post("/send-invite", response_model=SendInviteResponse)
def send_invite(
    payload: SendInviteRequest,
    composer: InviteComposer = Depends(get_invite_composer),
):
    request = InviteRequest(
        city=payload.city,
        place=payload.place,
        date=payload.date,
        time_start=payload.timeStart or payload.time,
        time_end=payload.timeEnd,
        email=payload.email,
    )
    composer.send_invite(request)
    return SendInviteResponse(message="Invite sent")


@router.post("/upload", response_model=UploadResponse)
async def upload(
    photo: UploadFile | None = File(None),
    file: UploadFile | None = File(None),
    gps: str | None = Form(None),
    place_title: str | None = Form(None, alias="placeTitle"),
    caption: str | None = Form(None),
    exif_date: str | None = Form(None, alias="exifDate"),
    service: UploadService = Depends(get_upload_service),
):
    upload_file = photo or file
    if upload_file is None:
        raise BadRequestError("No file uploaded")

    content = await upload_file.read()
    result = await run_in_threadpool(
        service.upload,
        content,
        upload_file.content_type,
        upload_file.filename,
        gps,
        place_title,
        caption,
        exif_date,
    )
    return UploadResponse(
        success=True, photo=result.url, fileUrl=result.url, place=result.record
    )


@router.post("/upload-photo", response_model=UploadPhotoResponse)
def upload_photo(
    payload: UploadPhotoRequest,
    service: UploadService = Depends(get_upload_service),
):
    result = service.upload_base64(payload.imageBase64 or "", payload.filename)
    return UploadPhotoResponse(success=True, url=result.url)


@router.get("/places.json", response_model=list[dict])
def places_document(places: PlacesStore = Depends(get_places_store)):
    return places.load()


@router.get("/photos", response_model=list[dict])
def photos(places: PlacesStore = Depends(get_places_store)):
    return places.load()


@router.post("/update-caption", response_model=UpdateCaptionResponse)
def update_caption(
    payload: UpdateCaptionRequest,
    places: PlacesStore = Depends(get_places_store),
):
    coords = record_coords({"coords": payload.coords})
    if coords is None:
        raise BadRequestError("Missing required fields: coords")

    try:
        place = places.update_caption(coords, payload.caption, payload.photoIndex)
    except Exception as exc:
        logger.exception("Failed to save caption")
        raise UpstreamError("Failed to save caption", str(exc)) from exc
    if place is None:
        raise NotFoundError("Place not found")
    return UpdateCaptionResponse(success=True, place=place)
