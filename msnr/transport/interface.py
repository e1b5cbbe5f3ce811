"""
Transport interface - a point-to-point link to one mesh radio.

The transport layer handles:
- Opening the link and the radio's configuration handshake
- Encoding and sending mesh packets (admin, traceroute, generic)
- Delivering inbound decoded packets as a FrameStream

It does not interpret responses; that is the engine's job. TCP and serial
links share these semantics exactly.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from meshtastic.protobuf import admin_pb2

from .frames import FrameStream


@runtime_checkable
class ITransport(Protocol):
    """
    Transport layer interface.

    Destinations are textual node ids ("!hex", "0xhex", decimal) or the
    number 0 / "0" for the directly attached radio.
    """

    # === Lifecycle ===

    def connect(self) -> FrameStream:
        """
        Open the link and wait for the radio's configuration exchange.

        Returns the inbound frame stream. Raises TransportError on failure.
        """
        ...

    def disconnect(self) -> None:
        """Close the link. The frame stream is closed as well."""
        ...

    # === Identity ===

    def set_identity(self, private_key: bytes) -> None:
        """
        Install the client signing identity (raw 32-byte X25519 key).

        Raises ValueError for malformed key material.
        """
        ...

    # === TX Path ===

    def send_packet(self, dest: str, portnum: int, payload: bytes) -> None:
        """Send an arbitrary payload on ``portnum`` asking for a response."""
        ...

    def send_admin(self, dest: str, message: admin_pb2.AdminMessage) -> None:
        """
        Send an admin message (PKI-flagged, reliable, want-response).

        The caller attaches the session passkey; the transport sends the
        message as given.
        """
        ...

    def run_traceroute(self, dest: str) -> None:
        """Send a route-discovery probe; the response arrives as a frame."""
        ...
