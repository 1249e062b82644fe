"""
Podcast and live session endpoints
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.orm import Session
import logging

from ...core.change_feed import ChangeFeed
from ...core.config import settings
from ...core.database import get_db
from ...core.exceptions import CampusCastError
from ...core.security import Actor, get_current_actor
from ...schemas.session import SessionResponse, SessionStatusResponse, SignedUrlResponse
from ...services.audit_service import AuditService
from ...services.live_session_service import LiveSessionService
from ...services.podcast_service import PodcastService
from ...services.storage_service import StorageService
from ..deps import get_change_feed, get_storage, to_http_exception

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=List[SessionResponse])
async def list_podcasts(
    course_id: Optional[int] = Query(None),
    live: Optional[bool] = Query(None),
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Podcasts visible to the current user, newest first"""
    try:
        return PodcastService(db, None).list_podcasts(current_actor, course_id=course_id, live=live)
    except CampusCastError as e:
        raise to_http_exception(e)


@router.post("/upload", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def upload_podcast(
    request: Request,
    course_id: int = Form(...),
    title: str = Form(...),
    description: Optional[str] = Form(None),
    duration: int = Form(0),
    file: UploadFile = File(...),
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    storage: Optional[StorageService] = Depends(get_storage)
):
    """Upload a recorded lecture to a course"""
    data = await file.read()
    try:
        podcast = await PodcastService(db, storage).upload_recording(
            course_id=course_id,
            actor=current_actor,
            title=title,
            data=data,
            filename=file.filename or "",
            content_type=file.content_type or "application/octet-stream",
            description=description,
            duration=duration
        )
    except CampusCastError as e:
        raise to_http_exception(e)

    AuditService.log_podcast_action(db, current_actor, "upload", podcast, request)
    return podcast


@router.get("/{podcast_id}", response_model=SessionResponse)
async def get_podcast(
    podcast_id: int,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Podcast detail; every fetch counts as a view"""
    try:
        return LiveSessionService(db).fetch_session_detail(podcast_id, current_actor)
    except CampusCastError as e:
        raise to_http_exception(e)


@router.get("/{podcast_id}/status", response_model=SessionStatusResponse)
async def get_podcast_status(
    podcast_id: int,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Live status without touching the view count"""
    try:
        return LiveSessionService(db).get_session_status(podcast_id)
    except CampusCastError as e:
        raise to_http_exception(e)


@router.post("/{podcast_id}/end", response_model=SessionResponse)
async def end_live_session(
    podcast_id: int,
    request: Request,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    change_feed: ChangeFeed = Depends(get_change_feed)
):
    """End a live session"""
    try:
        podcast = await LiveSessionService(db, change_feed).end_session(podcast_id, current_actor)
    except CampusCastError as e:
        raise to_http_exception(e)

    AuditService.log_session_ended(db, current_actor, podcast, request)
    return podcast


@router.get("/{podcast_id}/signed-url", response_model=SignedUrlResponse)
async def get_signed_url(
    podcast_id: int,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    storage: Optional[StorageService] = Depends(get_storage)
):
    """Time-limited playback URL for an uploaded recording"""
    ttl = settings.signed_url_ttl_seconds
    try:
        url = await PodcastService(db, storage).get_signed_url(podcast_id, current_actor, ttl)
    except CampusCastError as e:
        raise to_http_exception(e)
    return SignedUrlResponse(url=url, expires_in=ttl)


@router.delete("/{podcast_id}")
async def delete_podcast(
    podcast_id: int,
    request: Request,
    current_actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    storage: Optional[StorageService] = Depends(get_storage)
):
    """Delete a podcast and its stored audio"""
    try:
        podcast = await PodcastService(db, storage).delete_podcast(podcast_id, current_actor)
    except CampusCastError as e:
        raise to_http_exception(e)

    AuditService.log_podcast_action(db, current_actor, "delete", podcast, request)
    return {"success": True, "message": "Podcast deleted successfully"}
