"""
Frames, decoders and the bounded frame stream.
"""
import threading

import pytest
from meshtastic.protobuf import mesh_pb2, portnums_pb2

from msnr.errors import TransportError
from msnr.transport.frames import (
    Frame,
    FrameStream,
    decode_admin,
    decode_route,
    lora_config_of,
    owner_of,
)

from conftest import ROOF, lora_response, route_frame


class TestFrameConversion:

    def test_from_mesh_packet(self):
        packet = mesh_pb2.MeshPacket()
        setattr(packet, "from", ROOF)
        packet.to = 0x11111111
        packet.decoded.portnum = portnums_pb2.PortNum.TRACEROUTE_APP
        packet.decoded.payload = b"\x0a\x01\x02"

        frame = Frame.from_mesh_packet(packet)

        assert frame == Frame(ROOF, portnums_pb2.PortNum.TRACEROUTE_APP, b"\x0a\x01\x02", 0x11111111)

    def test_encrypted_packet_ignored(self):
        packet = mesh_pb2.MeshPacket()
        packet.encrypted = b"\x00\x01"
        assert Frame.from_mesh_packet(packet) is None

    def test_from_packet_dict_prefers_raw(self):
        packet = mesh_pb2.MeshPacket()
        setattr(packet, "from", ROOF)
        packet.decoded.portnum = portnums_pb2.PortNum.ADMIN_APP
        packet.decoded.payload = b"abc"

        frame = Frame.from_packet_dict({"raw": packet, "from": 1})
        assert frame.sender == ROOF

    def test_from_packet_dict_string_portnum(self):
        frame = Frame.from_packet_dict({
            "from": ROOF,
            "to": 5,
            "decoded": {"portnum": "TRACEROUTE_APP", "payload": b"xy"},
        })
        assert frame.portnum == portnums_pb2.PortNum.TRACEROUTE_APP
        assert frame.payload == b"xy"

    def test_from_packet_dict_without_payload(self):
        assert Frame.from_packet_dict({"from": ROOF, "decoded": {"portnum": "TEXT_MESSAGE_APP"}}) is None


class TestDecoders:

    def test_lora_config(self):
        admin = decode_admin(lora_response(ROOF, boosted=True, passkey=b"pk"))
        assert admin.session_passkey == b"pk"
        assert lora_config_of(admin).sx126x_rx_boosted_gain is True
        assert owner_of(admin) is None

    def test_route_on_admin_port_is_not_a_route(self):
        assert decode_route(lora_response(ROOF, boosted=False)) is None

    def test_route(self):
        route = decode_route(route_frame(ROOF, [ROOF], [40, 20], [-8, 12]))
        assert list(route.route) == [ROOF]
        assert list(route.snr_towards) == [40, 20]

    def test_garbage_payload(self):
        frame = Frame(ROOF, portnums_pb2.PortNum.ADMIN_APP, b"\xff\xff\xff")
        assert decode_admin(frame) is None


class TestFrameStream:

    def test_timeout_returns_none(self):
        assert FrameStream().get(0.01) is None

    def test_fifo(self):
        stream = FrameStream()
        first = route_frame(ROOF, [ROOF], [1], [2])
        second = route_frame(ROOF, [ROOF], [3], [4])
        stream.put(first)
        stream.put(second)
        assert stream.get(0.1) is first
        assert stream.get(0.1) is second

    def test_drops_oldest_when_full(self):
        stream = FrameStream(maxsize=2)
        for frame in (lora_response(n, False) for n in (1, 2, 3)):
            stream.put(frame)

        assert stream.dropped == 1
        assert stream.get(0.1).sender == 2
        assert stream.get(0.1).sender == 3

    def test_close_drains_then_raises(self):
        stream = FrameStream()
        frame = route_frame(ROOF, [ROOF], [1], [2])
        stream.put(frame)
        stream.close()

        assert stream.closed
        assert stream.get(0.1) is frame
        with pytest.raises(TransportError):
            stream.get(0.1)

    def test_close_wakes_blocked_consumer(self):
        stream = FrameStream()
        timer = threading.Timer(0.05, stream.close)
        timer.start()
        try:
            with pytest.raises(TransportError):
                stream.get(5.0)
        finally:
            timer.cancel()
