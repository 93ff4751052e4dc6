#!/usr/bin/env python3
"""
SAP Announcer CLI - Announce a session description until stopped.
"""

import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

import click

from sap import (
    SAP_GROUP_ADMIN_SCOPE,
    SAP_PORT,
    SDP_PAYLOAD_TYPE,
    Announcer,
    Packet,
    SAPError,
)
from sap.cli import DurationType, default_outbound_ip, setup_logging

_logger = logging.getLogger(__name__)


def make_sdp(origin: str, name: str = "SAP test session") -> bytes:
    """Minimal SDP body used when no payload file is given."""
    family = "IP6" if ":" in origin else "IP4"
    lines = [
        "v=0",
        f"o=- 1 1 IN {family} {origin}",
        f"s={name}",
        "t=0 0",
    ]
    return ("\r\n".join(lines) + "\r\n").encode("utf-8")


@click.command()
@click.argument(
    "payload_file",
    type=click.Path(exists=True, dir_okay=False),
    required=False,
)
@click.option(
    "-d", "--dest",
    default=SAP_GROUP_ADMIN_SCOPE,
    envvar="SAP_DEST",
    show_default=True,
    help="Multicast group to announce to",
)
@click.option(
    "-o", "--origin",
    envvar="SAP_ORIGIN",
    help="Origin address in sent packets (default: outbound interface address)",
)
@click.option(
    "--id-hash",
    type=click.IntRange(0, 0xFFFF),
    default=0x2342,
    show_default=True,
    help="Message ID hash",
)
@click.option(
    "-t", "--payload-type",
    default=SDP_PAYLOAD_TYPE,
    show_default=True,
    help="MIME type of the payload",
)
@click.option(
    "-c", "--compress",
    is_flag=True,
    help="Compress the payload section",
)
@click.option(
    "--timeout",
    type=DurationType(),
    default="0",
    help="Stop and withdraw after this long (e.g. '30s', '5m'; 0 = until Ctrl+C)",
)
@click.option(
    "-i", "--min-interval",
    type=DurationType(),
    default="300",
    envvar="SAP_MIN_INTERVAL",
    show_default=True,
    help="Minimum announcement interval",
)
@click.option(
    "-p", "--port",
    type=int,
    default=SAP_PORT,
    envvar="SAP_PORT",
    show_default=True,
    help="Destination UDP port",
)
@click.option(
    "--ttl",
    type=click.IntRange(0, 255),
    help="Multicast TTL / hop limit",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
def main(payload_file: Optional[str], dest: str, origin: Optional[str], id_hash: int, payload_type: str,
         compress: bool, timeout: float, min_interval: float, port: int, ttl: Optional[int], verbose: bool):
    """
    Announce a session description via SAP until stopped.

    On Ctrl+C or when the timeout expires a deletion is sent for the
    session before exiting.

    Examples:

        sap-announce session.sdp

        sap-announce session.sdp -d 239.255.255.255 --timeout 5m

        sap-announce --origin 192.0.2.10 --min-interval 30s
    """
    setup_logging(verbose)

    origin = origin or default_outbound_ip()

    if payload_file:
        payload = Path(payload_file).read_bytes()
    else:
        payload = make_sdp(origin)

    try:
        packet = Packet(
            origin=origin,
            id_hash=id_hash,
            payload=payload,
            payload_type=payload_type,
            compressed=compress,
        )
        announcer = Announcer(dest, packet, min_interval=min_interval, port=port, ttl=ttl)
    except (SAPError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    stop = threading.Event()

    def shutdown(sig, frame):
        stop.set()

    previous = {
        signal.SIGINT: signal.signal(signal.SIGINT, shutdown),
        signal.SIGTERM: signal.signal(signal.SIGTERM, shutdown),
    }
    timer = None
    if timeout > 0:
        timer = threading.Timer(timeout, stop.set)
        timer.daemon = True
        timer.start()

    click.echo(
        f"Announcing {packet.unique_id} to {dest}:{port} "
        f"(origin {packet.origin}, every ~{announcer.interval:.0f}s)"
    )
    if timeout <= 0:
        click.echo("Press Ctrl+C to stop.")

    try:
        result = announcer.run(stop)
        click.echo(f"✓ Withdrew session after {result.announcements_sent} announcement(s)")
    except SAPError as e:
        _logger.error(f"Announcing failed: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        if timer is not None:
            timer.cancel()
        for sig, handler in previous.items():
            signal.signal(sig, handler)


if __name__ == "__main__":
    main()
