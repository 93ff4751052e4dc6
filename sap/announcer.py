"""
SAP Announcer - periodically multicasts a session announcement and
withdraws it when stopped (RFC 2974, section 3.1).
"""

import enum
import ipaddress
import logging
import socket
import threading
from typing import Optional

import numpy as np

from . import SAP_PORT, BANDWIDTH_LIMIT_BITS, MIN_INTERVAL_DEFAULT
from .errors import SendError, SocketError
from .packet import MessageType, Packet

# Module-level logger
_logger = logging.getLogger(__name__)


class AnnouncerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    WITHDRAWING = "withdrawing"
    STOPPED = "stopped"


class Cancelled:
    """
    Returned by Announcer.run() after a withdrawal was sent.

    Attributes:
        unique_id: Identity of the withdrawn session
        announcements_sent: Number of announcement packets written
    """

    def __init__(self, unique_id: str, announcements_sent: int):
        self.unique_id = unique_id
        self.announcements_sent = announcements_sent

    def __repr__(self) -> str:
        return f"Cancelled(unique_id={self.unique_id!r}, announcements_sent={self.announcements_sent})"


def compute_interval(
    packet_size: int,
    min_interval: float = MIN_INTERVAL_DEFAULT,
    bandwidth_bits: int = BANDWIDTH_LIMIT_BITS,
) -> float:
    """
    Base announcement interval in seconds.

    The whole announcement set of a scope shares a 4000 bit/s budget, so a
    packet may not repeat faster than its own transmission time at that rate,
    nor faster than min_interval.
    """
    return max(float(min_interval), 8.0 * packet_size / bandwidth_bits)


def jittered_offset(interval: float, rng) -> float:
    """
    Randomize the next wait by up to a third of the interval either way.

    Args:
        interval: Base interval in seconds
        rng: Any object with uniform(low, high), e.g. numpy Generator or random.Random

    Returns:
        Wait time in [2/3 * interval, 4/3 * interval]
    """
    spread = interval / 3.0
    return interval + float(rng.uniform(-spread, spread))


def open_socket(destination, port: int = SAP_PORT, ttl: Optional[int] = None) -> socket.socket:
    """
    Open a UDP socket connected to a unicast or multicast destination.

    Raises:
        SocketError: address family unsupported or connect failed
    """
    address = ipaddress.ip_address(destination)
    family = socket.AF_INET if address.version == 4 else socket.AF_INET6

    try:
        sock = socket.socket(family, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    except OSError as e:
        raise SocketError(f"cannot create socket for {address}: {e}") from e

    try:
        if ttl is not None:
            if family == socket.AF_INET:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, ttl)
            else:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_HOPS, ttl)
        sock.connect((str(address), port))
    except OSError as e:
        sock.close()
        raise SocketError(f"cannot connect to {address}:{port}: {e}") from e

    return sock


class Announcer:
    """
    Announces one session until told to stop.

    The announcement is encoded once at construction. run() sends it,
    sleeps a jittered interval and repeats; when the stop event is set it
    sends a single deletion for the same origin and id hash and returns.
    """

    def __init__(
        self,
        destination,
        packet: Packet,
        min_interval: float = MIN_INTERVAL_DEFAULT,
        port: int = SAP_PORT,
        ttl: Optional[int] = None,
        rng=None,
        sock: Optional[socket.socket] = None,
    ):
        """
        Initialize announcer.

        Args:
            destination: Multicast group (or unicast address) to send to
            packet: Session to announce; the announcer works on its own copy
            min_interval: Lower bound for the announcement interval (seconds)
            port: Destination UDP port
            ttl: Multicast TTL / hop limit (None = system default)
            rng: Random source for jitter (default: numpy default_rng())
            sock: Already connected socket to use instead of opening one

        Raises:
            EncodeError: packet cannot be encoded
            SocketError: socket cannot be opened
        """
        self.packet = packet.with_type(MessageType.ANNOUNCEMENT)
        self.raw = self.packet.encode()

        self.destination = destination
        self.port = port
        self.interval = compute_interval(len(self.raw), min_interval)
        self.rng = rng if rng is not None else np.random.default_rng()

        self.sock = sock if sock is not None else open_socket(destination, port, ttl)
        self.state = AnnouncerState.IDLE

        # Statistics
        self.announcements_sent = 0

        _logger.debug(
            f"Announcer ready: dest={destination}:{port}, id={self.packet.unique_id}, "
            f"size={len(self.raw)}, interval={self.interval:.1f}s"
        )

    def _send(self, raw: bytes, what: str):
        try:
            self.sock.send(raw)
        except OSError as e:
            raise SendError(f"sending {what} packet: {e}") from e

    def _withdraw(self):
        """Send the deletion for this session once; errors are not retried."""
        self.state = AnnouncerState.WITHDRAWING
        self.packet = self.packet.with_type(MessageType.DELETION)
        raw = self.packet.encode()
        self._send(raw, "deletion")
        _logger.info(f"Withdrew session {self.packet.unique_id}")

    def next_wait(self) -> float:
        """Seconds to wait before the next announcement."""
        return jittered_offset(self.interval, self.rng)

    def run(self, stop_event: threading.Event) -> Cancelled:
        """
        Announce until stop_event is set, then withdraw.

        The socket is closed when this returns or raises.

        Args:
            stop_event: Cancellation signal

        Returns:
            Cancelled describing the withdrawn session

        Raises:
            SendError: an announcement or the deletion could not be sent
            EncodeError: the deletion could not be encoded
        """
        if self.sock is None:
            raise SocketError("announcer socket already closed")

        self.state = AnnouncerState.RUNNING
        try:
            while True:
                self._send(self.raw, "announcement")
                self.announcements_sent += 1

                wait = self.next_wait()
                _logger.debug(f"Announced {self.packet.unique_id}, next in {wait:.1f}s")

                if stop_event.wait(wait):
                    self._withdraw()
                    return Cancelled(self.packet.unique_id, self.announcements_sent)
        finally:
            self.state = AnnouncerState.STOPPED
            self.close()

    def close(self):
        """Release the socket."""
        if self.sock is not None:
            self.sock.close()
            self.sock = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
