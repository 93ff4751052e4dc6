"""
Session directory - the receiver's view of currently announced sessions.
"""

import enum
import time
from typing import Optional

from .packet import MessageType, Packet


class SessionEvent(enum.Enum):
    NEW = "new"
    REFRESHED = "refreshed"  # re-announced, payload unchanged
    CHANGED = "changed"  # re-announced with a different payload
    DELETED = "deleted"


class Session:
    """An announced session and when it was last heard."""

    def __init__(self, packet: Packet, first_seen: float):
        self.packet = packet
        self.first_seen = first_seen
        self.last_seen = first_seen
        self.announcements = 1

    @property
    def unique_id(self) -> str:
        return self.packet.unique_id

    @property
    def name(self) -> Optional[str]:
        """SDP session name (s= line), if the payload is SDP."""
        return session_name(self.packet.payload)

    def __repr__(self) -> str:
        return f"Session(id={self.unique_id}, name={self.name!r}, announcements={self.announcements})"


def session_name(payload: bytes) -> Optional[str]:
    for line in payload.decode("utf-8", "replace").splitlines():
        if line.startswith("s="):
            return line[2:].strip()
    return None


class SessionDirectory:
    """
    Tracks sessions by unique id (origin + id hash).

    Announcements add or refresh an entry, deletions remove it, and
    expire() drops entries that were not re-announced in time.
    """

    def __init__(self):
        self.sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self.sessions)

    def __contains__(self, unique_id: str) -> bool:
        return unique_id in self.sessions

    def get(self, unique_id: str) -> Optional[Session]:
        return self.sessions.get(unique_id)

    def update(self, packet: Packet, now: Optional[float] = None) -> Optional[SessionEvent]:
        """
        Apply a received packet.

        Args:
            packet: Decoded announcement or deletion
            now: Receive time (default: time.time())

        Returns:
            What happened, or None for a deletion of an unknown session
        """
        if now is None:
            now = time.time()

        key = packet.unique_id

        if packet.type is MessageType.DELETION:
            if self.sessions.pop(key, None) is None:
                return None
            return SessionEvent.DELETED

        session = self.sessions.get(key)
        if session is None:
            self.sessions[key] = Session(packet, now)
            return SessionEvent.NEW

        changed = session.packet.payload != packet.payload
        session.packet = packet
        session.last_seen = now
        session.announcements += 1
        return SessionEvent.CHANGED if changed else SessionEvent.REFRESHED

    def expire(self, max_age: float, now: Optional[float] = None) -> list[Session]:
        """
        Remove sessions not announced within max_age seconds.

        Returns:
            The removed sessions
        """
        if now is None:
            now = time.time()

        expired = [s for s in self.sessions.values() if now - s.last_seen > max_age]
        for session in expired:
            del self.sessions[session.unique_id]
        return expired
