"""
Podcast Service
Uploaded recordings: store the audio, create the record, hand out signed
URLs and delete both again.
"""
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import os
import uuid
import logging

from ..core.exceptions import Conflict, NotFound, PermissionDenied, PersistenceError
from ..core.security import Actor
from ..models.podcast import Podcast, SessionStatus, LIVESTREAM_PATH_PREFIX
from ..models.user import UserRole
from .permission_service import PermissionService, CourseAction
from .storage_service import StorageService

logger = logging.getLogger(__name__)


class PodcastService:
    def __init__(self, db: Session, storage: Optional[StorageService]):
        self.db = db
        self.storage = storage
        self.permissions = PermissionService(db)

    def _require_storage(self) -> StorageService:
        if self.storage is None:
            raise PersistenceError("Object storage is not configured")
        return self.storage

    def get_podcast(self, podcast_id: int) -> Podcast:
        podcast = self.db.query(Podcast).filter(Podcast.id == podcast_id).first()
        if not podcast:
            raise NotFound(f"Podcast {podcast_id} not found")
        return podcast

    def _get_course(self, course_id: int):
        course = self.permissions.get_course(course_id)
        if not course:
            raise NotFound(f"Course {course_id} not found")
        return course

    async def upload_recording(
        self,
        course_id: int,
        actor: Actor,
        title: str,
        data: bytes,
        filename: str,
        content_type: str,
        description: Optional[str] = None,
        duration: int = 0
    ) -> Podcast:
        """Store an uploaded recording and create its podcast record"""
        course = self._get_course(course_id)
        self.permissions.require(actor, course, CourseAction.upload)
        storage = self._require_storage()

        extension = os.path.splitext(filename or "")[1]
        path = f"{course_id}/{uuid.uuid4()}{extension}"
        stored_path = await storage.upload(path, data, content_type)

        podcast = Podcast(
            course_id=course_id,
            recorded_by=actor.id,
            title=title,
            description=description,
            status=SessionStatus.ended,  # a finished recording, never live
            file_url=storage.public_url(stored_path),
            storage_path=stored_path,
            duration=duration,
            view_count=0
        )
        self.db.add(podcast)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to save podcast record for {stored_path}: {e}")
            # Don't leave an orphaned blob behind
            await storage.remove([stored_path])
            raise PersistenceError("Failed to save podcast") from e

        self.db.refresh(podcast)
        logger.info(f"Podcast {podcast.id} uploaded to course {course_id} by user {actor.id}")
        return podcast

    async def get_signed_url(self, podcast_id: int, actor: Actor, ttl_seconds: int) -> str:
        podcast = self.get_podcast(podcast_id)
        self.permissions.require(actor, self._get_course(podcast.course_id), CourseAction.view)

        if not has_stored_recording(podcast):
            raise NotFound(f"Podcast {podcast_id} has no stored recording")

        return await self._require_storage().create_signed_url(podcast.storage_path, ttl_seconds)

    async def delete_podcast(self, podcast_id: int, actor: Actor) -> Podcast:
        """Administrative delete of a podcast and its stored audio"""
        podcast = self.get_podcast(podcast_id)
        self.permissions.require(
            actor,
            self._get_course(podcast.course_id),
            CourseAction.delete_podcast,
            recorded_by=podcast.recorded_by
        )

        if podcast.status == SessionStatus.live:
            raise Conflict(f"Podcast {podcast_id} is live; end the session before deleting it")

        stored_path = podcast.storage_path if has_stored_recording(podcast) else None
        if stored_path:
            self._require_storage()

        # Row before blob
        try:
            self.db.delete(podcast)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to delete podcast {podcast_id}: {e}")
            raise PersistenceError("Failed to delete podcast") from e

        logger.info(f"Podcast {podcast_id} deleted by user {actor.id}")

        if stored_path:
            await remove_stored_blobs(self.storage, [stored_path])
        return podcast

    def list_podcasts(
        self,
        actor: Actor,
        course_id: Optional[int] = None,
        live: Optional[bool] = None
    ) -> List[Podcast]:
        """Podcasts visible to actor, newest first; students only see their own courses"""
        query = self.db.query(Podcast)

        if actor.role in (UserRole.student, UserRole.course_rep):
            visible = self.permissions.visible_course_ids(actor)
            if course_id is not None and course_id not in visible:
                raise PermissionDenied(f"User {actor.id} has no access to course {course_id}")
            if not visible:
                return []
            query = query.filter(Podcast.course_id.in_(visible))

        if course_id is not None:
            query = query.filter(Podcast.course_id == course_id)
        if live is not None:
            query = query.filter(Podcast.is_live if live else ~Podcast.is_live)

        return query.order_by(Podcast.created_at.desc(), Podcast.id.desc()).all()


def has_stored_recording(podcast: Podcast) -> bool:
    return bool(podcast.storage_path) and not podcast.storage_path.startswith(LIVESTREAM_PATH_PREFIX)


async def remove_stored_blobs(storage: Optional[StorageService], paths: List[str]):
    """Best-effort blob cleanup after the rows are gone; failures are only logged"""
    if not paths:
        return
    if storage is None:
        logger.error(f"Object storage is not configured, orphaned blobs: {paths}")
        return
    try:
        await storage.remove(paths)
    except PersistenceError as e:
        logger.error(f"Orphaned blobs {paths} after delete: {e}")
