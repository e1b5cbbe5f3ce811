"""
Radio transport built on the meshtastic Python library.

One implementation serves both physical media: the only difference between
TCP and serial is which library interface gets opened, so the concrete
interface is supplied as an opener callable.
"""
from __future__ import annotations

import base64
from typing import Any, Callable

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey
from meshtastic import LOCAL_ADDR
from meshtastic.mesh_interface import MeshInterface
from meshtastic.protobuf import admin_pb2, mesh_pb2, portnums_pb2
from meshtastic.serial_interface import SerialInterface
from meshtastic.tcp_interface import TCPInterface
from pubsub import pub

from ..config import Config, TransportMode
from ..errors import TransportError
from ..log import LogSink, null_logger
from ..nodes import BROADCAST_NUM, LOCAL_NODE, parse_node_id
from .frames import Frame, FrameStream
from .interface import ITransport

RECEIVE_TOPIC = "meshtastic.receive"
CONNECTION_LOST_TOPIC = "meshtastic.connection.lost"

TRACEROUTE_HOP_LIMIT = 6


class RadioTransport(ITransport):
    """
    Transport over a meshtastic ``MeshInterface``.

    The library's reader thread publishes every received packet; we turn
    decoded ones into Frames and push them into the FrameStream.
    """

    def __init__(
        self,
        opener: Callable[[], MeshInterface],
        label: str,
        frame_queue_size: int = 256,
        logger: LogSink | None = None,
    ):
        self._opener = opener
        self.label = label
        self._frame_queue_size = frame_queue_size
        self._logger = logger or null_logger

        self._iface: MeshInterface | None = None
        self._stream: FrameStream | None = None
        self._identity_public: bytes | None = None
        self._subscribed = False

    # === Properties ===

    @property
    def is_connected(self) -> bool:
        return self._iface is not None

    @property
    def identity_public_key(self) -> bytes | None:
        """Public half of the installed identity, if any."""
        return self._identity_public

    # === Lifecycle ===

    def connect(self) -> FrameStream:
        self._logger("info", f"[Transport] Connecting to {self.label}...")
        try:
            # The interface constructor blocks until the radio has sent its config.
            iface = self._opener()
        except (OSError, MeshInterface.MeshInterfaceError) as e:
            raise TransportError(f"Failed to connect to {self.label}: {e}") from e

        self._iface = iface
        self._stream = FrameStream(self._frame_queue_size)
        pub.subscribe(self._on_receive, RECEIVE_TOPIC)
        pub.subscribe(self._on_connection_lost, CONNECTION_LOST_TOPIC)
        self._subscribed = True
        self._logger("info", f"[Transport] Connected to {self.label}")
        return self._stream

    def disconnect(self) -> None:
        self._logger("info", f"[Transport] Disconnecting from {self.label}")
        iface, self._iface = self._iface, None
        self._unsubscribe()
        if self._stream is not None:
            self._stream.close()
        if iface is not None:
            iface.close()

    def _unsubscribe(self) -> None:
        if not self._subscribed:
            return
        self._subscribed = False
        pub.unsubscribe(self._on_receive, RECEIVE_TOPIC)
        pub.unsubscribe(self._on_connection_lost, CONNECTION_LOST_TOPIC)

    # === Identity ===

    def set_identity(self, private_key: bytes) -> None:
        key = X25519PrivateKey.from_private_bytes(private_key)
        public = key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self._identity_public = public
        self._logger(
            "info",
            f"[Transport] Client identity installed (public key {base64.b64encode(public).decode()})",
        )

    # === TX Path ===

    def send_packet(self, dest: str, portnum: int, payload: bytes) -> None:
        iface = self._require_iface()
        iface.sendData(
            payload,
            destinationId=self._resolve_destination(dest),
            portNum=portnum,
            wantAck=True,
            wantResponse=True,
        )

    def send_admin(self, dest: str, message: admin_pb2.AdminMessage) -> None:
        iface = self._require_iface()
        self._logger("debug", f"[Transport] Sending admin PKI packet to {dest}")
        iface.sendData(
            message,
            destinationId=self._resolve_destination(dest),
            portNum=portnums_pb2.PortNum.ADMIN_APP,
            wantAck=True,
            wantResponse=True,
            pkiEncrypted=True,
        )

    def run_traceroute(self, dest: str) -> None:
        iface = self._require_iface()
        self._logger("info", f"[Transport] Sending traceroute to {dest}")
        iface.sendData(
            mesh_pb2.RouteDiscovery(),
            destinationId=self._resolve_destination(dest),
            portNum=portnums_pb2.PortNum.TRACEROUTE_APP,
            wantResponse=True,
            hopLimit=TRACEROUTE_HOP_LIMIT,
        )

    # === Helpers ===

    def _require_iface(self) -> MeshInterface:
        if self._iface is None:
            raise TransportError("Not connected")
        return self._iface

    @staticmethod
    def _resolve_destination(dest: str | int) -> int | str:
        num = dest if isinstance(dest, int) else parse_node_id(dest)
        if num is None:
            return BROADCAST_NUM
        if num == LOCAL_NODE:
            return LOCAL_ADDR
        return num

    # === Library callbacks (reader thread) ===

    def _on_receive(self, packet: dict[str, Any], interface: Any = None) -> None:
        if interface is not None and interface is not self._iface:
            return
        stream = self._stream
        if stream is None:
            return
        frame = Frame.from_packet_dict(packet)
        if frame is not None:
            stream.put(frame)

    def _on_connection_lost(self, interface: Any = None) -> None:
        if interface is not None and interface is not self._iface:
            return
        self._logger("error", f"[Transport] Connection to {self.label} lost")
        if self._stream is not None:
            self._stream.close()


# === Media ===

class IpTransport(RadioTransport):
    """Radio reachable over TCP (WiFi/Ethernet API port)."""

    def __init__(self, host: str, port: int = 4403, **kwargs: Any):
        self.host = host
        self.port = port
        super().__init__(
            lambda: TCPInterface(hostname=host, portNumber=port),
            label=f"{host}:{port}",
            **kwargs,
        )


class SerialTransport(RadioTransport):
    """Radio attached over USB serial."""

    def __init__(self, port_name: str, **kwargs: Any):
        self.port_name = port_name
        super().__init__(
            lambda: SerialInterface(devPath=port_name),
            label=port_name,
            **kwargs,
        )


def transport_from_config(config: Config, logger: LogSink | None = None) -> RadioTransport:
    """Build the transport named by ``config.transport_mode``."""
    queue_size = config.timings.frame_queue_size
    if config.transport_mode is TransportMode.SERIAL:
        if not config.serial_port:
            raise ValueError("Serial port not specified")
        return SerialTransport(config.serial_port, frame_queue_size=queue_size, logger=logger)
    return IpTransport(
        config.ip or "127.0.0.1",
        config.port or 4403,
        frame_queue_size=queue_size,
        logger=logger,
    )


__all__ = [
    "RadioTransport",
    "IpTransport",
    "SerialTransport",
    "transport_from_config",
]
