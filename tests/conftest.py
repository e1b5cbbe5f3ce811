"""
Pytest configuration for msnr tests.

This file provides fixtures and utilities for testing: a fake radio that
emulates the admin and traceroute behaviour of real nodes, frame builders,
and a collecting log sink.
"""
import pytest
import sys
from pathlib import Path

from meshtastic.protobuf import admin_pb2, mesh_pb2, portnums_pb2

# Ensure msnr package is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from msnr.config import Config, ProtocolTimings  # noqa: E402
from msnr.nodes import LOCAL_NODE, parse_node_id  # noqa: E402
from msnr.transport.frames import Frame, FrameStream  # noqa: E402

LOCAL = 0x11111111
ROOF = 0x22222222
MOUNTAIN = 0x33333333

LOCAL_ID = "!11111111"
ROOF_ID = "!22222222"
MOUNTAIN_ID = "!33333333"


# === Frame builders ===

def admin_frame(sender: int, message: admin_pb2.AdminMessage) -> Frame:
    return Frame(
        sender=sender,
        portnum=portnums_pb2.PortNum.ADMIN_APP,
        payload=message.SerializeToString(),
    )


def lora_response(sender: int, boosted: bool, passkey: bytes = b"") -> Frame:
    message = admin_pb2.AdminMessage()
    message.get_config_response.lora.sx126x_rx_boosted_gain = boosted
    message.get_config_response.lora.hop_limit = 3
    if passkey:
        message.session_passkey = passkey
    return admin_frame(sender, message)


def route_frame(sender: int, route, snr_towards, snr_back) -> Frame:
    discovery = mesh_pb2.RouteDiscovery()
    discovery.route.extend(route)
    discovery.snr_towards.extend(snr_towards)
    discovery.snr_back.extend(snr_back)
    return Frame(
        sender=sender,
        portnum=portnums_pb2.PortNum.TRACEROUTE_APP,
        payload=discovery.SerializeToString(),
    )


# === Fake radio ===

class FakeRadio:
    """
    In-memory ITransport.

    Remote nodes answer admin requests synchronously by pushing frames into
    the stream, the way a responsive mesh would a moment later.
    """

    def __init__(
        self,
        boosted=None,
        local_num: int = LOCAL,
        ignore_sets: bool = False,
        silent_nodes=(),
        traceroute_reply=None,
        fail_connect: bool = False,
    ):
        # node num -> current sx126x_rx_boosted_gain
        self.boosted = dict(boosted if boosted is not None else {ROOF: False, MOUNTAIN: False})
        self.local_num = local_num
        self.ignore_sets = ignore_sets
        self.silent_nodes = set(silent_nodes)
        # callable(radio, dest_num) -> Frame | None
        self.traceroute_reply = traceroute_reply
        self.fail_connect = fail_connect

        self.stream = None
        self.connected = False
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.identity = None
        self.admin_sent = []
        self.traceroutes = []
        self.packets = []

    def passkey_for(self, node_num: int) -> bytes:
        return f"key-{node_num:08x}".encode()

    # === ITransport ===

    def connect(self) -> FrameStream:
        from msnr.errors import TransportError

        self.connect_calls += 1
        if self.fail_connect:
            raise TransportError("Failed to connect to fake radio")
        self.stream = FrameStream(64)
        self.connected = True
        return self.stream

    def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False
        if self.stream is not None:
            self.stream.close()

    def set_identity(self, private_key: bytes) -> None:
        if len(private_key) != 32:
            raise ValueError("X25519 private key must be 32 bytes")
        self.identity = private_key

    def send_packet(self, dest: str, portnum: int, payload: bytes) -> None:
        self.packets.append((dest, portnum, payload))

    def send_admin(self, dest: str, message: admin_pb2.AdminMessage) -> None:
        copy = admin_pb2.AdminMessage()
        copy.CopyFrom(message)
        self.admin_sent.append((dest, copy))

        num = parse_node_id(dest)
        if num == LOCAL_NODE:
            self._answer_owner()
            return
        if num is None or num in self.silent_nodes or num not in self.boosted:
            return

        variant = message.WhichOneof("payload_variant")
        if variant == "get_config_request":
            if message.get_config_request == admin_pb2.AdminMessage.ConfigType.LORA_CONFIG:
                self.stream.put(lora_response(num, self.boosted[num], self.passkey_for(num)))
            else:
                reply = admin_pb2.AdminMessage()
                reply.session_passkey = self.passkey_for(num)
                self.stream.put(admin_frame(num, reply))
        elif variant == "set_config" and message.set_config.HasField("lora"):
            if not self.ignore_sets:
                self.boosted[num] = message.set_config.lora.sx126x_rx_boosted_gain

    def run_traceroute(self, dest: str) -> None:
        self.traceroutes.append(dest)
        if self.traceroute_reply is None:
            return
        frame = self.traceroute_reply(self, parse_node_id(dest))
        if frame is not None:
            self.stream.put(frame)

    def _answer_owner(self) -> None:
        reply = admin_pb2.AdminMessage()
        reply.get_owner_response.id = f"!{self.local_num:08x}"
        reply.get_owner_response.long_name = "Room Node"
        reply.get_owner_response.short_name = "ROOM"
        self.stream.put(admin_frame(self.local_num, reply))

    # === Inspection ===

    def admin_variants(self, dest=None):
        return [
            message.WhichOneof("payload_variant")
            for to, message in self.admin_sent
            if dest is None or to == dest
        ]


# === Fixtures ===

@pytest.fixture
def fast_timings():
    """Protocol timings shrunk so failure paths finish in well under a second."""
    return ProtocolTimings(
        settle_s=0.0,
        owner_timeout_s=0.05,
        response_timeout_s=0.1,
        ack_timeout_s=0.02,
        fetch_attempts=3,
        verify_attempts=3,
        verify_settle_s=0.0,
        retry_delay_s=0.0,
        tick_s=1.0,
    )


@pytest.fixture
def make_config(fast_timings, tmp_path):
    """Factory for relay-topology configs pointing at the fake nodes."""

    def factory(**overrides):
        values = dict(
            roof_node_id=ROOF_ID,
            mountain_node_id=MOUNTAIN_ID,
            output_path=str(tmp_path / "results.csv"),
            timings=fast_timings,
        )
        values.update(overrides)
        return Config(**values)

    return factory


class CollectingLog:
    """Log sink that remembers every (level, message)."""

    def __init__(self):
        self.records = []

    def __call__(self, level, message):
        self.records.append((level, message))

    def messages(self, level=None):
        return [m for lvl, m in self.records if level is None or lvl == level]

    def contains(self, text, level=None):
        return any(text in m for m in self.messages(level))


@pytest.fixture
def log():
    return CollectingLog()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: runs real-time measurement windows (a few seconds)"
    )
