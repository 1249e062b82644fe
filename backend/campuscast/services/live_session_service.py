"""
Live Session Service
Owns the scheduled -> live -> ended lifecycle of a podcast record and
republishes every transition on the change feed.
"""
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
import inspect
import logging

from ..core.change_feed import ChangeFeed
from ..core.exceptions import NotFound, PersistenceError
from ..core.security import Actor
from ..models.podcast import (
    Podcast,
    SessionStatus,
    LIVESTREAM_URL_PREFIX,
    LIVESTREAM_PATH_PREFIX,
    ENDED_STREAM_URL,
)
from ..schemas.session import SessionChangeEvent
from .permission_service import PermissionService, CourseAction

logger = logging.getLogger(__name__)

STATUS_ORDER = {
    SessionStatus.scheduled: 0,
    SessionStatus.live: 1,
    SessionStatus.ended: 2,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LiveSessionService:
    """Start, end and read live sessions"""

    def __init__(self, db: Session, change_feed: Optional[ChangeFeed] = None):
        self.db = db
        self.change_feed = change_feed
        self.permissions = PermissionService(db)
        self.created = False  # set when start_session inserted a new session

    @contextmanager
    def _store_call(self, description: str):
        """Roll back and raise PersistenceError when the store fails"""
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Store failure while {description}: {e}")
            raise PersistenceError(f"Failed while {description}") from e

    def _load_course(self, course_id: int):
        with self._store_call("loading course"):
            course = self.permissions.get_course(course_id)
        if not course:
            raise NotFound(f"Course {course_id} not found")
        return course

    def get_live_session(self, course_id: int) -> Optional[Podcast]:
        """Current live session of a course, if any"""
        with self._store_call("looking up live session"):
            return self.db.query(Podcast).filter(
                Podcast.course_id == course_id,
                Podcast.status == SessionStatus.live
            ).order_by(Podcast.created_at.desc()).first()

    def get_session_status(self, session_id: int) -> Podcast:
        """Read-only fetch for the initial page load"""
        with self._store_call("fetching session"):
            podcast = self.db.query(Podcast).filter(Podcast.id == session_id).first()
        if not podcast:
            raise NotFound(f"Session {session_id} not found")
        return podcast

    async def start_session(self, course_id: int, actor: Actor) -> Podcast:
        """Go live on a course, or return the session already live there"""
        course = self._load_course(course_id)

        self.permissions.require(actor, course, CourseAction.start_live)

        existing = self.get_live_session(course_id)
        if existing:
            logger.info(f"Course {course_id} already live as session {existing.id}, joining it")
            return existing

        podcast = Podcast(
            course_id=course_id,
            recorded_by=actor.id,
            title=f"Live Stream: {course.title}",
            description=f"Live streaming session for {course.title}",
            status=SessionStatus.live,
            start_time=utcnow(),
            file_url=f"{LIVESTREAM_URL_PREFIX}{course_id}",
            storage_path=f"{LIVESTREAM_PATH_PREFIX}{course_id}",
            duration=0,
            view_count=0
        )
        self.db.add(podcast)

        try:
            self.db.commit()
        except IntegrityError:
            # Lost the race on uq_podcasts_one_live_per_course
            self.db.rollback()
            winner = self.get_live_session(course_id)
            if winner is None:
                logger.error(f"Insert conflict for course {course_id} but no live session found")
                raise PersistenceError("Failed to start live session")
            logger.info(f"Concurrent start on course {course_id}, returning session {winner.id}")
            return winner
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to start live session for course {course_id}: {e}")
            raise PersistenceError("Failed to start live session") from e

        self.created = True
        self.db.refresh(podcast)
        logger.info(f"Session {podcast.id} is live on course {course_id} (started by user {actor.id})")

        await self._publish("INSERT", None, podcast)
        return podcast

    async def end_session(self, session_id: int, actor: Actor) -> Podcast:
        """End a live session; an already ended session is never touched"""
        podcast = self.get_session_status(session_id)
        self.permissions.require(actor, self._load_course(podcast.course_id), CourseAction.end_live)

        if podcast.status != SessionStatus.live:
            raise NotFound(f"Session {session_id} is not live")

        old = podcast.to_payload()

        # Conditional update so two concurrent ends cannot both succeed
        with self._store_call("ending session"):
            updated = self.db.query(Podcast).filter(
                Podcast.id == session_id,
                Podcast.status == SessionStatus.live
            ).update(
                {
                    Podcast.status: SessionStatus.ended,
                    Podcast.end_time: utcnow(),
                    Podcast.file_url: ENDED_STREAM_URL,
                },
                synchronize_session=False
            )
            if updated == 0:
                self.db.rollback()
                raise NotFound(f"Session {session_id} is not live")
            self.db.commit()
            self.db.refresh(podcast)

        logger.info(f"Session {session_id} ended by user {actor.id}")

        await self._publish("UPDATE", old, podcast)
        return podcast

    def fetch_session_detail(self, session_id: int, actor: Actor) -> Podcast:
        """Viewer fetch; counts one view per call"""
        podcast = self.get_session_status(session_id)
        self.permissions.require(actor, self._load_course(podcast.course_id), CourseAction.view)

        with self._store_call("counting view"):
            self.db.query(Podcast).filter(Podcast.id == session_id).update(
                {Podcast.view_count: Podcast.view_count + 1},
                synchronize_session=False
            )
            self.db.commit()
            self.db.refresh(podcast)
        return podcast

    async def _publish(self, event_type: str, old: Optional[dict], podcast: Podcast):
        if not self.change_feed:
            return
        await self.change_feed.publish(SessionChangeEvent(
            event_type=event_type,
            old=old,
            new=podcast.to_payload()
        ))


@dataclass(frozen=True)
class SessionState:
    session_id: int
    course_id: Optional[int]
    status: SessionStatus
    is_live: bool
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @classmethod
    def from_podcast(cls, podcast: Podcast) -> "SessionState":
        return decode_session_change(SessionChangeEvent(event_type="SNAPSHOT", new=podcast.to_payload()))

    def to_message(self) -> dict:
        return {
            "type": "session_update",
            "data": {
                "id": self.session_id,
                "course_id": self.course_id,
                "status": self.status.value,
                "is_live": self.is_live,
                "start_time": self.start_time,
                "end_time": self.end_time,
            }
        }


def decode_session_change(event: SessionChangeEvent) -> SessionState:
    """Decode the new row of a change event; is_live always follows status"""
    row = event.new
    raw_status = row.get("status")
    if raw_status is not None:
        status = SessionStatus(raw_status)
    else:
        # Rows written before status existed only carry the flag
        status = SessionStatus.live if row.get("is_live") else SessionStatus.ended

    return SessionState(
        session_id=row["id"],
        course_id=row.get("course_id"),
        status=status,
        is_live=status == SessionStatus.live,
        start_time=row.get("start_time"),
        end_time=row.get("end_time"),
    )


class SessionWatcher:
    """
    Local view of one session (or of the current session of a course).

    Observers only ever see the state move forward: late or duplicated
    notifications for the same session are dropped.
    """

    def __init__(self):
        self.state: Optional[SessionState] = None
        self.observers: List[Callable[[SessionState], object]] = []

    def add_observer(self, observer: Callable[[SessionState], object]):
        self.observers.append(observer)

    async def apply(self, state: SessionState) -> bool:
        """Accept state if it does not regress; returns True when observers were told"""
        current = self.state
        if current is not None and current.session_id == state.session_id:
            if STATUS_ORDER[state.status] < STATUS_ORDER[current.status]:
                logger.debug(
                    f"Ignoring stale {state.status.value} for session {state.session_id} "
                    f"(already {current.status.value})"
                )
                return False
            if state == current:
                return False

        self.state = state
        for observer in list(self.observers):
            try:
                result = observer(state)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Session observer failed: {e}")
        return True

    async def on_change_notification(self, event: SessionChangeEvent) -> bool:
        try:
            state = decode_session_change(event)
        except (KeyError, ValueError) as e:
            logger.error(f"Undecodable change notification: {e}")
            return False
        return await self.apply(state)
