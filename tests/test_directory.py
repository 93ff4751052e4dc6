"""
Tests for the session directory.
"""

from sap import MessageType, Packet, SessionDirectory, SessionEvent
from sap.directory import session_name

SDP = b"v=0\r\no=- 1 1 IN IP4 192.0.2.10\r\ns=Feed A\r\nt=0 0\r\n"
SDP_CHANGED = b"v=0\r\no=- 1 2 IN IP4 192.0.2.10\r\ns=Feed A (HD)\r\nt=0 0\r\n"


def announcement(payload=SDP, id_hash=1, origin="192.0.2.10"):
    return Packet(origin, id_hash=id_hash, payload=payload)


class TestSessionName:

    def test_name_from_sdp(self):
        assert session_name(SDP) == "Feed A"

    def test_no_name(self):
        assert session_name(b"v=0\r\nt=0 0\r\n") is None


class TestSessionDirectory:
    """Test announcement bookkeeping."""

    def test_new_then_refreshed(self):
        directory = SessionDirectory()

        assert directory.update(announcement(), now=10.0) is SessionEvent.NEW
        assert directory.update(announcement(), now=20.0) is SessionEvent.REFRESHED

        session = directory.get(announcement().unique_id)
        assert session.first_seen == 10.0
        assert session.last_seen == 20.0
        assert session.announcements == 2
        assert session.name == "Feed A"

    def test_changed_payload(self):
        directory = SessionDirectory()
        directory.update(announcement(), now=0.0)

        assert directory.update(announcement(SDP_CHANGED), now=1.0) is SessionEvent.CHANGED
        assert directory.get(announcement().unique_id).name == "Feed A (HD)"
        assert len(directory) == 1

    def test_deletion_matches_identity(self):
        directory = SessionDirectory()
        directory.update(announcement(), now=0.0)

        deletion = Packet("192.0.2.10", id_hash=1, payload=b"o=- 1 1 IN IP4 192.0.2.10",
                          payload_type="", type=MessageType.DELETION)
        assert directory.update(deletion, now=1.0) is SessionEvent.DELETED
        assert len(directory) == 0

    def test_deletion_of_unknown_session(self):
        directory = SessionDirectory()
        directory.update(announcement(), now=0.0)

        other_origin = announcement(origin="192.0.2.99").with_type(MessageType.DELETION)
        assert directory.update(other_origin, now=1.0) is None
        assert len(directory) == 1

    def test_same_id_hash_different_origin(self):
        directory = SessionDirectory()
        directory.update(announcement(origin="192.0.2.10"), now=0.0)
        directory.update(announcement(origin="2001:db8::1"), now=0.0)

        assert len(directory) == 2

    def test_expire(self):
        directory = SessionDirectory()
        directory.update(announcement(id_hash=1), now=0.0)
        directory.update(announcement(id_hash=2), now=0.0)
        directory.update(announcement(id_hash=2), now=500.0)

        expired = directory.expire(max_age=600.0, now=700.0)

        assert [s.packet.id_hash for s in expired] == [1]
        assert announcement(id_hash=1).unique_id not in directory
        assert announcement(id_hash=2).unique_id in directory
