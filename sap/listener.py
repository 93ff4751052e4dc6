"""
SAP Listener - receives raw datagrams from a joined multicast group.
"""

import ipaddress
import logging
import socket
import struct
from typing import Iterator, Optional

from . import SAP_GROUP_IPV4, SAP_PORT, MAX_DATAGRAM_SIZE
from .errors import DecodeError, ReceiveError, SocketError
from .packet import Packet

# Module-level logger
_logger = logging.getLogger(__name__)


def interface_index(interface: Optional[str]) -> int:
    """
    Resolve an interface name (or numeric index) to its index.

    Returns:
        Interface index, 0 for "any"

    Raises:
        SocketError: no such interface
    """
    if not interface:
        return 0
    if interface.isdigit():
        return int(interface)
    try:
        return socket.if_nametoindex(interface)
    except OSError as e:
        raise SocketError(f"no such interface: {interface}") from e


def membership_request(group, ifindex: int = 0) -> tuple[int, int, bytes]:
    """
    Build the setsockopt() arguments that join a multicast group.

    Returns:
        (level, option, value) tuple
    """
    address = ipaddress.ip_address(group)
    if address.version == 4:
        if ifindex:
            # struct ip_mreqn: group, local address, interface index
            value = struct.pack("=4s4si", address.packed, bytes(4), ifindex)
        else:
            value = struct.pack("=4s4s", address.packed, socket.inet_aton("0.0.0.0"))
        return socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, value

    # struct ipv6_mreq: group, interface index
    value = struct.pack("=16sI", address.packed, ifindex)
    return socket.IPPROTO_IPV6, socket.IPV6_JOIN_GROUP, value


class Listener:
    """
    Joins a SAP multicast group and hands out datagrams.

    receive() returns raw bytes; packets() decodes them, logging and
    skipping anything that is not a valid SAP packet.
    """

    def __init__(
        self,
        group=SAP_GROUP_IPV4,
        port: int = SAP_PORT,
        interface: Optional[str] = None,
        buffer_size: int = MAX_DATAGRAM_SIZE,
        sock: Optional[socket.socket] = None,
    ):
        """
        Initialize listener.

        Args:
            group: Multicast group to join
            port: UDP port to bind
            interface: Interface name or index to join on (None = default)
            buffer_size: Maximum datagram size read at once
            sock: Already bound socket to use instead of joining a group

        Raises:
            SocketError: socket cannot be opened, bound or joined
        """
        try:
            self.group = ipaddress.ip_address(group)
        except ValueError as e:
            raise SocketError(f"invalid multicast group: {e}") from e
        self.port = port
        self.buffer_size = buffer_size

        # Statistics
        self.packets_received = 0
        self.packets_invalid = 0

        self.sock = sock if sock is not None else self._open(interface)

    def _open(self, interface: Optional[str]) -> socket.socket:
        family = socket.AF_INET if self.group.version == 4 else socket.AF_INET6
        ifindex = interface_index(interface)

        try:
            sock = socket.socket(family, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        except OSError as e:
            raise SocketError(f"cannot create socket: {e}") from e

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, self.buffer_size)
            sock.bind(("", self.port))
            level, option, value = membership_request(self.group, ifindex)
            sock.setsockopt(level, option, value)
        except OSError as e:
            sock.close()
            raise SocketError(f"cannot join {self.group} on port {self.port}: {e}") from e

        _logger.debug(f"Joined {self.group}:{self.port} (ifindex={ifindex})")
        return sock

    def receive(self) -> bytes:
        """
        Block until one datagram arrives.

        Raises:
            ReceiveError: socket failure or listener closed
        """
        if self.sock is None:
            raise ReceiveError("listener is closed")
        try:
            data, _ = self.sock.recvfrom(self.buffer_size)
        except OSError as e:
            raise ReceiveError(f"reading datagram: {e}") from e

        self.packets_received += 1
        return data

    def packets(self) -> Iterator[Packet]:
        """
        Yield decoded packets until the socket fails.

        Invalid datagrams are logged and skipped; ReceiveError propagates.
        """
        while True:
            data = self.receive()
            try:
                packet = Packet.decode(data)
            except DecodeError as e:
                self.packets_invalid += 1
                _logger.warning(f"Dropping invalid SAP datagram ({len(data)} bytes): {e}")
                continue
            yield packet

    def get_statistics(self) -> dict:
        return {
            "packets_received": self.packets_received,
            "packets_invalid": self.packets_invalid,
        }

    def close(self):
        if self.sock is not None:
            self.sock.close()
            self.sock = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
