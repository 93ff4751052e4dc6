"""
Command-line tools: sap-announce and sap-monitor.
"""

import logging
import socket

import click

from sap.duration import parse_duration


class DurationType(click.ParamType):
    """Click parameter accepting '300', '90s', '5m', '1:30', '500ms' as seconds."""

    name = "duration"

    def convert(self, value, param, ctx):
        if isinstance(value, (int, float)):
            return float(value)
        try:
            return parse_duration(value)
        except ValueError as e:
            self.fail(f"{value!r} is not a valid duration ({e})", param, ctx)


def setup_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')


def default_outbound_ip() -> str:
    """Address of the interface that routes to the internet, 0.0.0.0 if none."""
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("8.8.8.8", 53))  # no traffic sent; used to select interface
        return s.getsockname()[0]
    except OSError:
        return "0.0.0.0"
    finally:
        s.close()
