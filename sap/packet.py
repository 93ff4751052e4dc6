"""
SAP packet structure and serialization (RFC 2974, section 5).
"""

import base64
import copy
import enum
import ipaddress
import struct
import zlib
from dataclasses import dataclass
from typing import Union

from . import SDP_PAYLOAD_TYPE, SDP_MAGIC
from .errors import (
    AuthenticationDataTooLong,
    EncodeError,
    InvalidIntegrity,
    PacketTooShort,
)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

HEADER_FMT = ">BBH"  # flags, auth length, msg id hash
HEADER_SIZE = struct.calcsize(HEADER_FMT)

MAX_AUTH_LENGTH = 0xFF


class MessageType(enum.Enum):
    ANNOUNCEMENT = 0
    DELETION = 1


@dataclass(frozen=True)
class Flags:
    """
    The first byte of a SAP header.

    Bit layout (MSB first):
    - V: 3 bits - protocol version, always 001
    - A: 1 bit  - address type (0 = IPv4, 1 = IPv6)
    - R: 1 bit  - reserved, sent as 0 and ignored on receipt
    - T: 1 bit  - message type (0 = announcement, 1 = deletion)
    - E: 1 bit  - encrypted
    - C: 1 bit  - compressed
    """

    message_type: MessageType = MessageType.ANNOUNCEMENT
    ipv6: bool = False
    encrypted: bool = False
    compressed: bool = False

    VERSION_MASK = 0b11100000
    VERSION_1 = 0b00100000
    ADDRESS_IPV6 = 1 << 4
    DELETION = 1 << 2
    ENCRYPTED = 1 << 1
    COMPRESSED = 1 << 0

    def to_byte(self) -> int:
        value = self.VERSION_1
        if self.ipv6:
            value |= self.ADDRESS_IPV6
        if self.message_type is MessageType.DELETION:
            value |= self.DELETION
        if self.encrypted:
            value |= self.ENCRYPTED
        if self.compressed:
            value |= self.COMPRESSED
        return value

    @classmethod
    def from_byte(cls, value: int) -> "Flags":
        """Parse a flags byte, rejecting anything but version 1."""
        if value & cls.VERSION_MASK != cls.VERSION_1:
            raise InvalidIntegrity(f"unsupported SAP version bits in flags 0x{value:02x}")

        if value & cls.DELETION:
            message_type = MessageType.DELETION
        else:
            message_type = MessageType.ANNOUNCEMENT

        return cls(
            message_type=message_type,
            ipv6=bool(value & cls.ADDRESS_IPV6),
            encrypted=bool(value & cls.ENCRYPTED),
            compressed=bool(value & cls.COMPRESSED),
        )


def normalize_origin(origin) -> IPAddress:
    """
    Convert an origin given as string, packed bytes or address object.

    IPv4-mapped IPv6 addresses are reduced to plain IPv4 so they go on the
    wire as 4 bytes.
    """
    if isinstance(origin, (bytes, bytearray)):
        origin = bytes(origin)
    address = ipaddress.ip_address(origin)
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


class Packet:
    """
    Represents a single SAP message.

    Packet structure:
    - Flags: 8 bits (see Flags)
    - Authentication length: 8 bits - auth data length in bytes
    - Message ID hash: 16 bits
    - Originating source: 32 or 128 bits
    - Authentication data: variable
    - Payload type: optional NUL-terminated MIME type
    - Payload: remainder of the datagram

    Everything after the authentication data is zlib-compressed as one
    stream when the compressed flag is set.
    """

    def __init__(
        self,
        origin,
        id_hash: int = 0,
        payload: bytes = b"",
        payload_type: str = SDP_PAYLOAD_TYPE,
        type: MessageType = MessageType.ANNOUNCEMENT,
        encrypted: bool = False,
        compressed: bool = False,
        authentication_data: bytes = b"",
    ):
        """
        Initialize a packet.

        Args:
            origin: Announcing host address (IPv4 or IPv6)
            id_hash: Message ID hash (0 to 65535)
            payload: Session description bytes
            payload_type: MIME type of the payload
            type: Announcement or deletion
            encrypted: Encrypted flag (no encryption is performed)
            compressed: Compress the payload section on encode
            authentication_data: Opaque authentication data (max 255 bytes)
        """
        if not 0 <= id_hash <= 0xFFFF:
            raise ValueError("id_hash must be 16-bit unsigned")

        self.type = type
        self.id_hash = id_hash
        self.origin = normalize_origin(origin)
        self.encrypted = encrypted
        self.compressed = compressed
        self.authentication_data = bytes(authentication_data)
        self.payload_type = payload_type
        self.payload = bytes(payload)

    @property
    def unique_id(self) -> str:
        """
        Session identity: origin bytes followed by the id hash, low byte first.

        A deletion withdraws the announcement with the same unique_id.
        """
        raw = self.origin.packed + bytes([self.id_hash & 0xFF, self.id_hash >> 8])
        return base64.b64encode(raw).decode("ascii")

    @property
    def flags(self) -> Flags:
        return Flags(
            message_type=self.type,
            ipv6=self.origin.version == 6,
            encrypted=self.encrypted,
            compressed=self.compressed,
        )

    def with_type(self, message_type: MessageType) -> "Packet":
        """Return a copy of this packet with a different message type."""
        clone = copy.copy(self)
        clone.type = message_type
        return clone

    def _payload_section(self) -> bytes:
        section = b""
        if self.payload_type:
            if "\x00" in self.payload_type:
                raise EncodeError("payload type must not contain NUL")
            try:
                section = self.payload_type.encode("utf-8") + b"\x00"
            except UnicodeEncodeError as e:
                raise EncodeError(f"invalid payload type: {e}") from e
        elif not self.payload.startswith(SDP_MAGIC):
            # Only an SDP body can be recognized without a type field
            raise EncodeError("payload type may only be omitted for SDP payloads")
        section += self.payload

        if self.compressed:
            section = zlib.compress(section)

        return section

    def encode(self) -> bytes:
        """
        Encode packet to wire bytes.

        Returns:
            Header, origin, authentication data and payload section

        Raises:
            AuthenticationDataTooLong: auth data exceeds 255 bytes
            EncodeError: payload type contains NUL, or is empty for a non-SDP payload
        """
        if len(self.authentication_data) > MAX_AUTH_LENGTH:
            raise AuthenticationDataTooLong(len(self.authentication_data))

        header = struct.pack(
            HEADER_FMT,
            self.flags.to_byte(),
            len(self.authentication_data),
            self.id_hash,
        )

        return header + self.origin.packed + self.authentication_data + self._payload_section()

    @classmethod
    def decode(cls, data: bytes) -> "Packet":
        """
        Decode packet from wire bytes.

        Args:
            data: One complete SAP datagram

        Returns:
            Decoded packet

        Raises:
            PacketTooShort: header, origin or auth data truncated
            InvalidIntegrity: bad version or unparsable payload section
        """
        data = bytes(data)

        if len(data) < HEADER_SIZE:
            raise PacketTooShort(f"need {HEADER_SIZE} header bytes, got {len(data)}")

        flags_byte, auth_len, id_hash = struct.unpack_from(HEADER_FMT, data)
        flags = Flags.from_byte(flags_byte)
        offset = HEADER_SIZE

        origin_len = 16 if flags.ipv6 else 4
        if len(data) < offset + origin_len:
            raise PacketTooShort(f"truncated {origin_len}-byte origin address")
        raw_origin = data[offset:offset + origin_len]
        offset += origin_len

        if flags.ipv6:
            origin = ipaddress.IPv6Address(raw_origin)
        else:
            origin = ipaddress.IPv4Address(raw_origin)

        if len(data) < offset + auth_len:
            raise PacketTooShort(f"truncated authentication data ({auth_len} bytes declared)")
        auth_data = data[offset:offset + auth_len]
        offset += auth_len

        section = data[offset:]
        if flags.compressed:
            section = _inflate(section)

        payload_type, payload = _split_payload_section(section)

        packet = cls(
            origin=origin,
            id_hash=id_hash,
            payload=payload,
            payload_type=payload_type,
            type=flags.message_type,
            encrypted=flags.encrypted,
            compressed=flags.compressed,
            authentication_data=auth_data,
        )
        # Keep the address exactly as received, even an IPv4-mapped IPv6 one.
        packet.origin = origin
        return packet

    def _key(self) -> tuple:
        return (
            self.type,
            self.id_hash,
            self.origin,
            self.encrypted,
            self.compressed,
            self.authentication_data,
            self.payload_type,
            self.payload,
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, Packet):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __repr__(self) -> str:
        return (
            f"Packet(type={self.type.name}, origin={self.origin}, "
            f"id_hash=0x{self.id_hash:04x}, payload_type={self.payload_type!r}, "
            f"payload={len(self.payload)} bytes)"
        )


def _inflate(section: bytes) -> bytes:
    inflater = zlib.decompressobj()
    try:
        result = inflater.decompress(section) + inflater.flush()
    except zlib.error as e:
        raise InvalidIntegrity(f"corrupt compressed payload: {e}") from e
    if not inflater.eof:
        raise InvalidIntegrity("truncated compressed payload")
    return result


def _split_payload_section(section: bytes) -> tuple[str, bytes]:
    """
    Separate payload type from payload.

    A section starting with the SDP magic has no type field at all; anything
    else must carry a NUL-terminated MIME type.
    """
    if section.startswith(SDP_MAGIC):
        return SDP_PAYLOAD_TYPE, section

    end = section.find(b"\x00")
    if end < 0:
        raise InvalidIntegrity("payload type is not NUL-terminated")

    try:
        payload_type = section[:end].decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidIntegrity(f"payload type is not valid text: {e}") from e

    return payload_type, section[end + 1:]
