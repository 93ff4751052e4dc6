"""
SAP - Session Announcement Protocol (RFC 2974)
Multicast announcement and withdrawal of session descriptions.
"""

__version__ = "0.1.0"

# Network constants
SAP_PORT = 9875
SAP_GROUP_IPV4 = "224.2.127.254"  # global scope SAP group
SAP_GROUP_ADMIN_SCOPE = "239.255.255.255"  # admin-local scope SAP group
MAX_DATAGRAM_SIZE = 8192

# Timing (RFC 2974, section 3.1)
BANDWIDTH_LIMIT_BITS = 4000  # bits per second
MIN_INTERVAL_DEFAULT = 300.0  # seconds

# Payload
SDP_PAYLOAD_TYPE = "application/sdp"
SDP_MAGIC = b"v=0"  # an SDP body is never a legal MIME type (RFC 2974, section 6)

from .errors import (
    SAPError,
    EncodeError,
    AuthenticationDataTooLong,
    DecodeError,
    PacketTooShort,
    InvalidIntegrity,
    SocketError,
    SendError,
    ReceiveError,
)
from .packet import Packet, MessageType, Flags
from .announcer import Announcer, AnnouncerState, Cancelled, compute_interval, jittered_offset
from .listener import Listener
from .directory import SessionDirectory, SessionEvent, Session
from .duration import parse_duration

__all__ = [
    "Packet",
    "MessageType",
    "Flags",
    "Announcer",
    "AnnouncerState",
    "Cancelled",
    "compute_interval",
    "jittered_offset",
    "Listener",
    "SessionDirectory",
    "SessionEvent",
    "Session",
    "parse_duration",
    "SAPError",
    "EncodeError",
    "AuthenticationDataTooLong",
    "DecodeError",
    "PacketTooShort",
    "InvalidIntegrity",
    "SocketError",
    "SendError",
    "ReceiveError",
]
