"""
Pydantic schemas for the memories backend.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class SendInviteRequest(BaseModel):
    city: Optional[str] = None
    place: Optional[str] = None
    date: Optional[str] = None
    timeStart: Optional[str] = None
    # Older page revisions post a single ``time`` field for the start.
    time: Optional[str] = None
    timeEnd: Optional[str] = None
    email: Optional[str] = None


class SendInviteResponse(BaseModel):
    success: Literal[True] = True
    message: str


class UploadResponse(BaseModel):
    success: bool
    photo: str
    fileUrl: str
    place: dict


class UploadPhotoRequest(BaseModel):
    imageBase64: Optional[str] = None
    filename: Optional[str] = Field(default=None, max_length=255)


class UploadPhotoResponse(BaseModel):
    success: bool
    url: str


class UpdateCaptionRequest(BaseModel):
    # Either [lat, lon] or {"latitude": ..., "longitude": ...}.
    coords: Any = None
    photoIndex: Optional[int] = None
    caption: str = Field(..., max_length=2000)


class UpdateCaptionResponse(BaseModel):
    success: bool
    place: Optional[dict] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    placesCount: int
