"""
Presence Relay
Tracks who is connected to a live room and relays lightweight signaling
events between them. Audio itself travels through the voice SDK.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol
import enum
import logging

logger = logging.getLogger(__name__)


class Connection(Protocol):
    async def send_json(self, data: Any) -> None:
        ...


class SignalEvent(enum.Enum):
    stream_started = "stream-started"
    stream_stopped = "stream-stopped"
    audio_chunk = "audio-chunk"


@dataclass
class Participant:
    user_id: int
    name: Optional[str]
    connection: Connection


@dataclass
class PresenceEntry:
    room_id: str
    user_id: int
    name: Optional[str]
    connection: Connection
    joined_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "joined_at": self.joined_at.isoformat(),
        }


def room_for_session(session_id: Any) -> str:
    return f"room:{session_id}"


class RoomMembership:
    """Handle returned by join(); leaving twice is a no-op"""

    def __init__(self, relay: "PresenceRelay", room_id: str, entry: PresenceEntry):
        self.relay = relay
        self.room_id = room_id
        self.entry = entry
        self.active = True

    async def leave(self):
        if not self.active:
            return
        self.active = False
        await self.relay._remove_entry(self.room_id, self.entry)


class PresenceRelay:
    """Per-room presence with full-state sync broadcasts"""

    def __init__(self):
        self.rooms: Dict[str, Dict[int, PresenceEntry]] = {}

    def presence(self, room_id: str) -> List[PresenceEntry]:
        return sorted(self.rooms.get(room_id, {}).values(), key=lambda entry: entry.joined_at)

    def room_size(self, room_id: str) -> int:
        return len(self.rooms.get(room_id, {}))

    async def join(self, room_id: str, participant: Participant) -> RoomMembership:
        """Register presence and send every member the full participant set"""
        membership = self.add(room_id, participant)
        await self.broadcast_presence(room_id)
        return membership

    def add(self, room_id: str, participant: Participant) -> RoomMembership:
        """Register presence without broadcasting; the caller follows up with broadcast_presence()"""
        entry = PresenceEntry(
            room_id=room_id,
            user_id=participant.user_id,
            name=participant.name,
            connection=participant.connection
        )

        room = self.rooms.setdefault(room_id, {})
        previous = room.get(participant.user_id)
        if previous is not None:
            # Reconnect: the new connection replaces the stale one
            logger.info(f"User {participant.user_id} rejoined {room_id}, replacing old connection")

        room[participant.user_id] = entry
        logger.info(f"User {participant.user_id} joined {room_id}. Room size: {len(room)}")
        return RoomMembership(self, room_id, entry)

    async def leave(self, room_id: str, user_id: int):
        room = self.rooms.get(room_id)
        if not room or user_id not in room:
            return
        await self._remove_entry(room_id, room[user_id])

    async def _remove_entry(self, room_id: str, entry: PresenceEntry):
        room = self.rooms.get(room_id)
        # A rejoin may already have replaced this entry
        if not room or room.get(entry.user_id) is not entry:
            return

        del room[entry.user_id]
        if not room:
            del self.rooms[room_id]
        logger.info(f"User {entry.user_id} left {room_id}")

        await self.broadcast_presence(room_id)

    async def broadcast_presence(self, room_id: str):
        """Send the full presence snapshot to all members of a room"""
        entries = self.presence(room_id)
        message = {
            "type": "presence-sync",
            "room_id": room_id,
            "participants": [entry.to_dict() for entry in entries],
        }
        failed = await self._send_all(entries, message)
        # No resync here: members dropped on a snapshot get the next one when they rejoin
        self._drop(room_id, failed)

    async def signal(
        self,
        room_id: str,
        sender_id: int,
        event: str,
        payload: Optional[Any] = None
    ):
        """Relay a signaling event to every other member; best-effort, at most once"""
        signal_event = SignalEvent(event)

        recipients = [entry for entry in self.presence(room_id) if entry.user_id != sender_id]
        message = {
            "type": "signal",
            "room_id": room_id,
            "event": signal_event.value,
            "from": sender_id,
            "payload": payload,
        }
        failed = await self._send_all(recipients, message)

        if failed:
            self._drop(room_id, failed)
            await self.broadcast_presence(room_id)

    async def _send_all(self, entries: List[PresenceEntry], message: dict) -> List[PresenceEntry]:
        failed = []
        for entry in entries:
            try:
                await entry.connection.send_json(message)
            except Exception as e:
                logger.error(f"Error sending {message['type']} to user {entry.user_id}: {e}")
                failed.append(entry)
        return failed

    def _drop(self, room_id: str, entries: List[PresenceEntry]):
        room = self.rooms.get(room_id)
        if not room:
            return
        for entry in entries:
            if room.get(entry.user_id) is entry:
                del room[entry.user_id]
                logger.info(f"Dropped unreachable user {entry.user_id} from {room_id}")
        if not room:
            del self.rooms[room_id]

    async def send_to_user(self, room_id: str, user_id: int, message: dict):
        """Send a message to one member only (e.g. a media access error)"""
        entry = self.rooms.get(room_id, {}).get(user_id)
        if entry is None:
            return
        failed = await self._send_all([entry], message)
        self._drop(room_id, failed)
