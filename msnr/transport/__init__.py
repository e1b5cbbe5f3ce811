"""
msnr transport layer.

A link to one mesh radio plus the inbound frame stream it feeds.
"""
from .interface import ITransport
from .frames import Frame, FrameStream, decode_admin, decode_route
from .radio import RadioTransport, IpTransport, SerialTransport, transport_from_config

__all__ = [
    "ITransport",
    "Frame",
    "FrameStream",
    "decode_admin",
    "decode_route",
    "RadioTransport",
    "IpTransport",
    "SerialTransport",
    "transport_from_config",
]
