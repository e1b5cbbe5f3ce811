"""
Session passkeys for authenticated admin commands.

Remote nodes hand out a short-lived passkey inside their admin responses.
Every admin message we send to that node must echo it back. We learn keys
opportunistically from whatever admin traffic arrives, whatever we were
waiting for at the time.
"""
from __future__ import annotations

import threading
import time
from typing import Iterator

from meshtastic.protobuf import admin_pb2

from .errors import RunCancelled
from .log import LogSink, null_logger
from .nodes import format_node_id, normalize_node_id
from .transport.frames import Frame, FrameStream, decode_admin
from .transport.interface import ITransport

# Longest single blocking wait, so cancellation is noticed promptly.
_CANCEL_POLL_S = 0.25


class SessionKeyStore:
    """Normalized node id -> passkey. Lives for one run, never pruned."""

    def __init__(self, logger: LogSink | None = None):
        self._keys: dict[str, bytes] = {}
        self._logger = logger or null_logger

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, node_id: object) -> bool:
        if not isinstance(node_id, (str, int)):
            return False
        return self.get(node_id) is not None

    def get(self, node_id: str | int) -> bytes | None:
        normalized = normalize_node_id(node_id)
        if normalized is None:
            return None
        return self._keys.get(normalized)

    def store(self, node_num: int, passkey: bytes) -> None:
        if not passkey:
            return
        normalized = format_node_id(node_num)
        if normalized not in self._keys:
            self._logger("info", f"[Session] Stored session key for node {normalized}")
        self._keys[normalized] = bytes(passkey)

    def harvest(self, frame: Frame) -> bool:
        """Remember the passkey carried by ``frame``, if any. Returns True if stored."""
        admin = decode_admin(frame)
        if admin is None or not admin.session_passkey:
            return False
        self.store(frame.sender, admin.session_passkey)
        return True

    def apply(self, node_id: str | int, message: admin_pb2.AdminMessage) -> bool:
        """Attach the cached passkey for ``node_id`` to ``message``."""
        key = self.get(node_id)
        if key is None:
            return False
        message.session_passkey = key
        return True


class AdminSession:
    """
    The engine's view of one connected radio.

    Wraps the transport and its frame stream so that every frame read is
    harvested for passkeys, and every admin frame sent carries the key we
    currently hold for its destination.
    """

    def __init__(
        self,
        transport: ITransport,
        frames: FrameStream,
        keys: SessionKeyStore,
        logger: LogSink | None = None,
        cancel_event: threading.Event | None = None,
    ):
        self.transport = transport
        self.frames = frames
        self.keys = keys
        self._logger = logger or null_logger
        self._cancel = cancel_event or threading.Event()

    # === Suspension points ===

    def check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise RunCancelled("Run cancelled")

    def sleep(self, seconds: float) -> None:
        """Wait ``seconds``, waking early (and raising) on cancellation."""
        if seconds > 0 and self._cancel.wait(seconds):
            raise RunCancelled("Run cancelled")
        self.check_cancelled()

    def send_admin(self, dest: str, template: admin_pb2.AdminMessage) -> None:
        message = admin_pb2.AdminMessage()
        message.CopyFrom(template)
        if not self.keys.apply(dest, message):
            self._logger("debug", f"[Session] No session key for {dest}, sending unkeyed")
        self.transport.send_admin(dest, message)

    def next_frame(self, timeout: float) -> Frame | None:
        """
        Next frame, harvested for passkeys.

        Waits at most ``timeout`` seconds, possibly less; None means nothing
        arrived, not that the timeout elapsed.
        """
        self.check_cancelled()
        frame = self.frames.get(min(timeout, _CANCEL_POLL_S))
        if frame is not None:
            self.keys.harvest(frame)
        return frame

    def frames_until(self, deadline: float) -> Iterator[Frame]:
        """Yield harvested frames until the monotonic ``deadline`` passes."""
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self.check_cancelled()
                return
            frame = self.next_frame(remaining)
            if frame is not None:
                yield frame
