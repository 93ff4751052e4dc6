"""
Tests for the command-line tools.
"""

import logging
import socket

import pytest
from click.testing import CliRunner

from sap import Listener, MessageType, Packet, SessionDirectory, SessionEvent
from sap.cli import DurationType
from sap.cli.announce import main as announce_main, make_sdp
from sap.cli.monitor import describe, expire_sessions, handle_packet, main as monitor_main, payload_path

SDP = b"v=0\r\no=- 1 1 IN IP4 192.0.2.10\r\ns=Feed A\r\nt=0 0\r\n"


@pytest.fixture
def receiver():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(5.0)
    yield sock
    sock.close()


class TestDurationType:

    def test_convert(self):
        assert DurationType().convert("5m", None, None) == 300.0
        assert DurationType().convert(2, None, None) == 2.0


class TestAnnounceCLI:
    """Test sap-announce."""

    def test_make_sdp(self):
        sdp = make_sdp("192.0.2.10")
        assert sdp.startswith(b"v=0\r\n")
        assert b"IN IP4 192.0.2.10" in sdp

        assert b"IN IP6 2001:db8::1" in make_sdp("2001:db8::1")

    def test_announce_and_withdraw(self, receiver, tmp_path):
        payload_file = tmp_path / "session.sdp"
        payload_file.write_bytes(SDP)
        port = receiver.getsockname()[1]

        runner = CliRunner()
        result = runner.invoke(announce_main, [
            str(payload_file),
            "--dest", "127.0.0.1",
            "--port", str(port),
            "--origin", "192.0.2.10",
            "--id-hash", "4660",
            "--min-interval", "1s",
            "--timeout", "200ms",
        ])

        assert result.exit_code == 0, result.output
        assert "Withdrew session" in result.output

        packets = []
        while True:
            packet = Packet.decode(receiver.recv(65535))
            packets.append(packet)
            if packet.type is MessageType.DELETION:
                break

        assert packets[0].type is MessageType.ANNOUNCEMENT
        assert packets[0].payload == SDP
        assert packets[0].id_hash == 0x1234
        assert packets[-1].unique_id == packets[0].unique_id

    def test_invalid_id_hash(self):
        result = CliRunner().invoke(announce_main, ["--id-hash", "70000"])
        assert result.exit_code == 2

    def test_invalid_duration(self):
        result = CliRunner().invoke(announce_main, ["--timeout", "soon"])
        assert result.exit_code == 2
        assert "not a valid duration" in result.output

    def test_invalid_destination(self):
        result = CliRunner().invoke(announce_main, ["--dest", "nowhere", "--origin", "192.0.2.10"])
        assert result.exit_code == 1


class TestMonitor:
    """Test sap-monitor packet handling."""

    def test_describe(self):
        packet = Packet("192.0.2.10", id_hash=0x2342, payload=SDP, compressed=True)
        line = describe(packet)

        assert "origin=192.0.2.10" in line
        assert "id-hash=2342" in line
        assert "type=announcement" in line
        assert "compressed=True" in line
        assert "payload-type=application/sdp" in line
        assert "name='Feed A'" in line

    def test_without_output_dir(self):
        directory = SessionDirectory()
        packet = Packet("192.0.2.10", id_hash=1, payload=SDP)

        assert handle_packet(packet, directory) is SessionEvent.NEW
        assert packet.unique_id in directory

    def test_write_and_delete_file(self, tmp_path):
        directory = SessionDirectory()
        packet = Packet("192.0.2.10", id_hash=0x00ab, payload=SDP)

        assert handle_packet(packet, directory, tmp_path) is SessionEvent.NEW
        path = tmp_path / "192.0.2.10-00ab.sdp"
        assert path.read_bytes() == SDP

        assert handle_packet(packet.with_type(MessageType.DELETION), directory, tmp_path) is SessionEvent.DELETED
        assert not path.exists()

    def test_changed_rewrites_file(self, tmp_path):
        directory = SessionDirectory()
        handle_packet(Packet("192.0.2.10", id_hash=1, payload=SDP), directory, tmp_path)

        updated = SDP.replace(b"Feed A", b"Feed B")
        event = handle_packet(Packet("192.0.2.10", id_hash=1, payload=updated), directory, tmp_path)

        assert event is SessionEvent.CHANGED
        assert (tmp_path / "192.0.2.10-0001.sdp").read_bytes() == updated

    def test_unknown_deletion_ignored(self, tmp_path):
        directory = SessionDirectory()
        deletion = Packet("192.0.2.10", id_hash=1, payload=SDP, type=MessageType.DELETION)

        assert handle_packet(deletion, directory, tmp_path) is None
        assert list(tmp_path.iterdir()) == []

    def test_expire_removes_file(self, tmp_path):
        directory = SessionDirectory()
        handle_packet(Packet("192.0.2.10", id_hash=1, payload=SDP), directory, tmp_path, now=0.0)

        expired = expire_sessions(directory, 60.0, tmp_path, now=120.0)

        assert len(expired) == 1
        assert not (tmp_path / "192.0.2.10-0001.sdp").exists()

    def test_payload_path_per_origin(self, tmp_path):
        v4 = Packet("192.0.2.10", id_hash=0x00ab, payload=SDP)
        v6 = Packet("2001:db8::1", id_hash=0x00ab, payload=SDP)

        assert payload_path(tmp_path, v4).name == "192.0.2.10-00ab.sdp"
        assert payload_path(tmp_path, v6).name == "2001_db8__1-00ab.sdp"

    def test_deletion_keeps_other_origin_file(self, tmp_path):
        directory = SessionDirectory()
        first = Packet("192.0.2.10", id_hash=1, payload=SDP)
        second = Packet("192.0.2.20", id_hash=1, payload=SDP)
        handle_packet(first, directory, tmp_path)
        handle_packet(second, directory, tmp_path)

        handle_packet(first.with_type(MessageType.DELETION), directory, tmp_path)

        assert second.unique_id in directory
        assert not (tmp_path / "192.0.2.10-0001.sdp").exists()
        assert (tmp_path / "192.0.2.20-0001.sdp").read_bytes() == SDP

    def test_file_error_logged_not_raised(self, tmp_path, caplog):
        directory = SessionDirectory()
        packet = Packet("192.0.2.10", id_hash=1, payload=SDP)
        payload_path(tmp_path, packet).mkdir()

        with caplog.at_level(logging.ERROR):
            assert handle_packet(packet, directory, tmp_path) is SessionEvent.NEW

        assert packet.unique_id in directory
        assert "Failed to update" in caplog.text

    def test_expire_file_error_logged(self, tmp_path, caplog):
        directory = SessionDirectory()
        packet = Packet("192.0.2.10", id_hash=1, payload=SDP)
        handle_packet(packet, directory, None, now=0.0)
        blocker = payload_path(tmp_path, packet)
        blocker.mkdir()
        (blocker / "keep").write_bytes(b"")

        with caplog.at_level(logging.ERROR):
            expired = expire_sessions(directory, 60.0, tmp_path, now=120.0)

        assert len(expired) == 1
        assert "Failed to remove" in caplog.text


class ScriptedSocket:
    """Returns queued datagrams, raising any queued exception in turn."""

    def __init__(self, items):
        self.items = list(items)

    def recvfrom(self, size):
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item, ("192.0.2.10", 9875)

    def close(self):
        pass


class TestMonitorCLI:
    """Test sap-monitor end to end."""

    def test_invalid_group(self):
        result = CliRunner().invoke(monitor_main, ["--dest", "nowhere"])
        assert result.exit_code == 1
        assert not isinstance(result.exception, ValueError)

    def test_unknown_interface(self):
        result = CliRunner().invoke(monitor_main, ["--iface", "no-such-iface0"])
        assert result.exit_code == 1

    def test_skips_bad_datagram_then_exits_on_socket_error(self, tmp_path, monkeypatch):
        packet = Packet("192.0.2.10", id_hash=0x0042, payload=SDP)
        sock = ScriptedSocket([
            b"\x40\x00\x00\x01garbage",
            b"\x20",
            packet.encode(),
            OSError("network down"),
        ])

        def fake_listener(dest, port, interface):
            return Listener(dest, port=port, sock=sock)

        monkeypatch.setattr("sap.cli.monitor.Listener", fake_listener)

        result = CliRunner().invoke(monitor_main, [
            "--write-file",
            "--output-dir", str(tmp_path),
        ])

        assert result.exit_code == 1
        assert sock.items == []
        assert (tmp_path / "192.0.2.10-0042.sdp").read_bytes() == SDP
