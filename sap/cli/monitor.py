#!/usr/bin/env python3
"""
SAP Monitor CLI - Listen for announcements and optionally store them.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Optional

import click

from sap import (
    SAP_GROUP_ADMIN_SCOPE,
    SAP_PORT,
    Listener,
    MessageType,
    Packet,
    ReceiveError,
    SessionDirectory,
    SessionEvent,
    SocketError,
)
from sap.cli import DurationType, setup_logging
from sap.directory import session_name

_logger = logging.getLogger(__name__)


def payload_path(output_dir: Path, packet: Packet) -> Path:
    """File for a session: one per origin and id hash, matching its unique id."""
    origin = str(packet.origin).replace(":", "_")
    return output_dir / f"{origin}-{packet.id_hash:04x}.sdp"


def describe(packet: Packet) -> str:
    """One-line summary of a packet for the console."""
    kind = "announcement" if packet.type is MessageType.ANNOUNCEMENT else "deletion"
    name = session_name(packet.payload) if packet.payload else None
    parts = [
        f"origin={packet.origin}",
        f"id-hash={packet.id_hash:04x}",
        f"type={kind}",
        f"compressed={packet.compressed}",
        f"payload-type={packet.payload_type}",
    ]
    if name:
        parts.append(f"name={name!r}")
    return " ".join(parts)


def handle_packet(
    packet: Packet,
    directory: SessionDirectory,
    output_dir: Optional[Path] = None,
    now: Optional[float] = None,
) -> Optional[SessionEvent]:
    """
    Record a received packet and mirror it to output_dir if given.

    Announcements (re)write <origin>-<id-hash>.sdp, deletions remove it.
    File errors are logged and never stop the caller.
    """
    event = directory.update(packet, now)
    _logger.info(f"Packet received: {describe(packet)}")

    if output_dir is None or event is None:
        return event

    path = payload_path(output_dir, packet)
    try:
        if event is SessionEvent.DELETED:
            path.unlink(missing_ok=True)
            click.echo(f"Deleted {packet.unique_id} -> removed {path}")
        elif event in (SessionEvent.NEW, SessionEvent.CHANGED):
            path.write_bytes(packet.payload)
            click.echo(f"{event.value.capitalize()}: {packet.unique_id} -> wrote {path}")
    except OSError as e:
        _logger.error(f"Failed to update {path}: {e}")

    return event


def expire_sessions(directory: SessionDirectory, max_age: float, output_dir: Optional[Path] = None,
                    now: Optional[float] = None) -> list:
    expired = directory.expire(max_age, now)
    for session in expired:
        _logger.info(f"Session expired: {session.unique_id} ({session.name})")
        if output_dir is None:
            continue
        path = payload_path(output_dir, session.packet)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            _logger.error(f"Failed to remove {path}: {e}")
    return expired


@click.command()
@click.option(
    "-d", "--dest",
    default=SAP_GROUP_ADMIN_SCOPE,
    envvar="SAP_DEST",
    show_default=True,
    help="Multicast group to listen to",
)
@click.option(
    "--iface",
    envvar="SAP_IFACE",
    help="Interface name to use",
)
@click.option(
    "-p", "--port",
    type=int,
    default=SAP_PORT,
    envvar="SAP_PORT",
    show_default=True,
    help="UDP port to listen on",
)
@click.option(
    "-w", "--write-file",
    is_flag=True,
    help="Write payloads to <origin>-<id-hash>.sdp files",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Directory for --write-file",
)
@click.option(
    "--expire",
    type=DurationType(),
    default="0",
    help="Forget sessions not re-announced within this long (0 = never)",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
def main(dest: str, iface: Optional[str], port: int, write_file: bool, output_dir: str, expire: float,
         verbose: bool):
    """
    Listen for SAP packets and log them.

    Examples:

        sap-monitor

        sap-monitor -d 224.2.127.254 --iface eth0

        sap-monitor --write-file --output-dir sessions --expire 1h
    """
    setup_logging(verbose)

    out_dir = None
    if write_file:
        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

    try:
        listener = Listener(dest, port=port, interface=iface)
    except SocketError as e:
        _logger.error(f"Failed to listen: {e}")
        sys.exit(1)

    directory = SessionDirectory()
    click.echo(f"Listening for SAP packets on {dest}:{port}")
    click.echo("Press Ctrl+C to stop.")
    click.echo("-" * 40)

    try:
        with listener:
            for packet in listener.packets():
                handle_packet(packet, directory, out_dir)
                if expire > 0:
                    expire_sessions(directory, expire, out_dir, time.time())
    except KeyboardInterrupt:
        click.echo("\n\nStopped.")
        if verbose:
            click.echo(f"Stats: {listener.get_statistics()}")
    except ReceiveError as e:
        _logger.error(f"Failed to read packet: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
