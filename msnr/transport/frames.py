"""
Inbound frames and the single-consumer frame stream.

The radio library hands us decoded MeshPackets on its reader thread. We keep
only what the engine needs (sender, port, payload) and push it into a
bounded queue that the engine drains on the run thread.

Payload decoding happens lazily on the consumer side: a frame that does not
parse as the expected protobuf is simply "not that kind of frame".
"""
from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import Any

from google.protobuf.message import DecodeError
from meshtastic.protobuf import admin_pb2, mesh_pb2, portnums_pb2

from ..errors import TransportError

ADMIN_APP = portnums_pb2.PortNum.ADMIN_APP
TRACEROUTE_APP = portnums_pb2.PortNum.TRACEROUTE_APP


@dataclass(frozen=True)
class Frame:
    """A decoded (not encrypted) packet received from the mesh."""

    sender: int
    portnum: int
    payload: bytes
    to: int = 0

    @classmethod
    def from_mesh_packet(cls, packet: mesh_pb2.MeshPacket) -> "Frame | None":
        if not packet.HasField("decoded"):
            return None
        return cls(
            sender=getattr(packet, "from"),
            portnum=packet.decoded.portnum,
            payload=bytes(packet.decoded.payload),
            to=packet.to,
        )

    @classmethod
    def from_packet_dict(cls, packet: dict[str, Any]) -> "Frame | None":
        """Build from the dict published on the library's receive topic."""
        raw = packet.get("raw")
        if isinstance(raw, mesh_pb2.MeshPacket):
            return cls.from_mesh_packet(raw)
        decoded = packet.get("decoded")
        if not isinstance(decoded, dict) or "payload" not in decoded:
            return None
        portnum = decoded.get("portnum")
        if isinstance(portnum, str):
            try:
                portnum = portnums_pb2.PortNum.Value(portnum)
            except ValueError:
                return None
        return cls(
            sender=int(packet.get("from", 0)),
            portnum=int(portnum or 0),
            payload=bytes(decoded["payload"]),
            to=int(packet.get("to", 0)),
        )


# === Decoders ===

def decode_admin(frame: Frame) -> admin_pb2.AdminMessage | None:
    if frame.portnum != ADMIN_APP:
        return None
    try:
        return admin_pb2.AdminMessage.FromString(frame.payload)
    except DecodeError:
        return None


def decode_route(frame: Frame) -> mesh_pb2.RouteDiscovery | None:
    if frame.portnum != TRACEROUTE_APP:
        return None
    try:
        return mesh_pb2.RouteDiscovery.FromString(frame.payload)
    except DecodeError:
        return None


def lora_config_of(admin: admin_pb2.AdminMessage | None):
    """LoRaConfig carried by a GetConfig response, if any."""
    if admin is None or admin.WhichOneof("payload_variant") != "get_config_response":
        return None
    config = admin.get_config_response
    if config.WhichOneof("payload_variant") != "lora":
        return None
    return config.lora


def owner_of(admin: admin_pb2.AdminMessage | None):
    """User carried by a GetOwner response, if any."""
    if admin is None or admin.WhichOneof("payload_variant") != "get_owner_response":
        return None
    return admin.get_owner_response


# === Stream ===

_CLOSED = object()


class FrameStream:
    """
    Bounded, single-consumer queue of inbound frames.

    Producers never block: when full, the oldest frame is dropped.
    After ``close()`` the consumer drains what is left, then gets
    TransportError.
    """

    def __init__(self, maxsize: int = 256):
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=max(1, maxsize))
        self._lock = threading.Lock()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, frame: Frame) -> None:
        if self._closed:
            return
        self._put(frame)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._put(_CLOSED)

    def _put(self, item: Any) -> None:
        with self._lock:
            while True:
                try:
                    self._queue.put_nowait(item)
                    return
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                        self.dropped += 1
                    except queue.Empty:
                        pass

    def get(self, timeout: float) -> Frame | None:
        """Next frame, or None if nothing arrived within ``timeout`` seconds."""
        try:
            item = self._queue.get(timeout=max(0.0, timeout))
        except queue.Empty:
            if self._closed:
                raise TransportError("Inbound frame stream closed")
            return None
        if item is _CLOSED:
            raise TransportError("Inbound frame stream closed")
        return item
