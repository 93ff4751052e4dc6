"""
SAP exception hierarchy.

Codec errors (EncodeError, DecodeError) concern a single packet and never
the socket it travels on; SocketError and its subclasses are fatal to the
Announcer or Listener that owns the socket.
"""


class SAPError(Exception):
    """Base class for all SAP errors."""


class EncodeError(SAPError):
    """A packet could not be serialized."""


class AuthenticationDataTooLong(EncodeError):
    """Authentication data does not fit the one-byte length field."""

    def __init__(self, length: int):
        super().__init__(f"authentication data too long: {length} bytes (max 255)")
        self.length = length


class DecodeError(SAPError):
    """A datagram is not a valid SAP packet."""


class PacketTooShort(DecodeError):
    """Input ended before a fixed-size field could be read."""


class InvalidIntegrity(DecodeError):
    """Bad version bits or unparsable payload section."""


class SocketError(SAPError):
    """Socket could not be opened, bound or joined."""


class SendError(SocketError):
    """Writing a packet to the network failed."""


class ReceiveError(SocketError):
    """Reading a datagram from the network failed."""
