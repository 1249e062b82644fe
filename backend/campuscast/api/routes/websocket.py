from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import json
import logging
from typing import Optional

from ...core.change_feed import course_key, session_key
from ...core.database import SessionLocal
from ...core.exceptions import CampusCastError, MediaAccessError, NotFound
from ...core.security import Actor, get_actor_from_token
from ...services.live_session_service import LiveSessionService, SessionState, SessionWatcher
from ...services.permission_service import PermissionService, CourseAction
from ...services.presence_relay import Participant, RoomMembership, room_for_session

logger = logging.getLogger(__name__)

router = APIRouter()


async def authenticate_socket(websocket: WebSocket) -> Optional[Actor]:
    """Accept the socket and read the token from the first message"""
    await websocket.accept()
    try:
        initial_msg = json.loads(await websocket.receive_text())
        actor = get_actor_from_token(initial_msg.get("token"))
    except (ValueError, AttributeError) as e:
        logger.error(f"Invalid initial WebSocket message: {e}")
        await websocket.close(code=4003, reason="Invalid initial message")
        return None

    if actor is None:
        logger.error("WebSocket token rejected")
        await websocket.close(code=4003, reason="Unauthorized")
        return None
    return actor


@router.websocket("/ws/podcasts/{podcast_id}")
async def podcast_socket(websocket: WebSocket, podcast_id: int):
    """Live status feed for one session plus its presence room"""
    actor = await authenticate_socket(websocket)
    if actor is None:
        return

    change_feed = websocket.app.state.change_feed
    relay = websocket.app.state.presence_relay

    db = SessionLocal()
    try:
        podcast = LiveSessionService(db).get_session_status(podcast_id)
        permission_service = PermissionService(db)
        course = permission_service.get_course(podcast.course_id)
        if course is None or not permission_service.check(actor, course, CourseAction.view):
            await websocket.close(code=4003, reason="Access denied")
            return
        can_broadcast = permission_service.check(actor, course, CourseAction.start_live).allowed
        initial_state = SessionState.from_podcast(podcast)
    except NotFound:
        await websocket.close(code=4004, reason="Podcast not found")
        return
    except CampusCastError as e:
        logger.error(f"Failed to load podcast {podcast_id} for socket: {e}")
        await websocket.close(code=1011, reason="Failed to load podcast")
        return
    finally:
        db.close()

    room_id = room_for_session(podcast_id)
    participant = Participant(user_id=actor.id, name=actor.name, connection=websocket)
    membership: Optional[RoomMembership] = None

    async def send_state(state: SessionState):
        await websocket.send_json(state.to_message())

    async def sync_room(state: SessionState):
        # Viewers sit in the room only while the session is live.
        # membership is updated before any await so concurrent calls see it.
        nonlocal membership
        if state.is_live and membership is None:
            membership = relay.add(room_id, participant)
            await relay.broadcast_presence(room_id)
        elif not state.is_live and membership is not None:
            current, membership = membership, None
            await current.leave()

    watcher = SessionWatcher()
    watcher.add_observer(send_state)
    watcher.add_observer(sync_room)

    subscription = change_feed.subscribe(session_key(podcast_id), watcher.on_change_notification)
    try:
        await watcher.apply(initial_state)

        while True:
            message = await websocket.receive_json()
            message_type = message.get("type")

            if message_type == "signal":
                if membership is None or not can_broadcast:
                    await websocket.send_json({"type": "error", "detail": "Not allowed to signal in this room"})
                    continue
                try:
                    await relay.signal(room_id, actor.id, message.get("event"), message.get("payload"))
                except ValueError:
                    await websocket.send_json({"type": "error", "detail": "Unknown signal event"})

            elif message_type == "media-error":
                # Only the reporting client hears about its own device failure
                error = MediaAccessError(message.get("detail") or "Failed to access microphone")
                logger.warning(f"User {actor.id} media access failed in {room_id}: {error.message}")
                reply = {"type": "media-error", "detail": error.message}
                if membership is not None:
                    await relay.send_to_user(room_id, actor.id, reply)
                else:
                    await websocket.send_json(reply)

            elif message_type == "ping":
                await websocket.send_json({"type": "pong"})

    except WebSocketDisconnect:
        logger.info(f"User {actor.id} disconnected from podcast {podcast_id}")
    except Exception as e:
        logger.error(f"WebSocket error on podcast {podcast_id}: {e}")
    finally:
        subscription.unsubscribe()
        if membership is not None:
            current, membership = membership, None
            await current.leave()


@router.websocket("/ws/courses/{course_id}")
async def course_socket(websocket: WebSocket, course_id: int):
    """Live status feed for whichever session is current on a course"""
    actor = await authenticate_socket(websocket)
    if actor is None:
        return

    change_feed = websocket.app.state.change_feed

    db = SessionLocal()
    try:
        permission_service = PermissionService(db)
        course = permission_service.get_course(course_id)
        if course is None:
            await websocket.close(code=4004, reason="Course not found")
            return
        if not permission_service.check(actor, course, CourseAction.view):
            await websocket.close(code=4003, reason="Access denied")
            return
        live = LiveSessionService(db).get_live_session(course_id)
        initial_state = SessionState.from_podcast(live) if live else None
    except CampusCastError as e:
        logger.error(f"Failed to load course {course_id} for socket: {e}")
        await websocket.close(code=1011, reason="Failed to load course")
        return
    finally:
        db.close()

    async def send_state(state: SessionState):
        await websocket.send_json(state.to_message())

    watcher = SessionWatcher()
    watcher.add_observer(send_state)

    subscription = change_feed.subscribe(course_key(course_id), watcher.on_change_notification)
    try:
        if initial_state is not None:
            await watcher.apply(initial_state)
        else:
            await websocket.send_json({"type": "session_update", "data": None})

        while True:
            message = await websocket.receive_json()
            if message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})

    except WebSocketDisconnect:
        logger.info(f"User {actor.id} disconnected from course {course_id}")
    except Exception as e:
        logger.error(f"WebSocket error on course {course_id}: {e}")
    finally:
        subscription.unsubscribe()
