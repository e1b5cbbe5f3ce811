"""
Remote LNA toggling.

Writes over a lossy mesh link are not reliably acknowledged, so a change is
only considered done once an independent read-back of the node's LoRa config
shows the requested value.

    fetch LoRa config (retry) -> SetConfig -> wait ack -> settle -> read back
                                     ^                                 |
                                     +------------ mismatch -----------+
"""
from __future__ import annotations

import time

from meshtastic.protobuf import admin_pb2, config_pb2

from .config import Config, ProtocolTimings
from .errors import AmplifierToggleError
from .log import LogSink, null_logger
from .nodes import LOCAL_NODE, format_node_id, parse_node_id
from .session import AdminSession
from .transport.frames import decode_admin, lora_config_of, owner_of

ConfigType = admin_pb2.AdminMessage.ConfigType


def _get_config_request(config_type: int) -> admin_pb2.AdminMessage:
    message = admin_pb2.AdminMessage()
    message.get_config_request = config_type
    return message


def _get_owner_request() -> admin_pb2.AdminMessage:
    message = admin_pb2.AdminMessage()
    message.get_owner_request = True
    return message


def _set_lora_request(lora: config_pb2.Config.LoRaConfig) -> admin_pb2.AdminMessage:
    message = admin_pb2.AdminMessage()
    message.set_config.lora.CopyFrom(lora)
    return message


class AmplifierController:
    """
    Implements SetAmplifierMode for the node selected by the config.

    Usage:
        controller = AmplifierController(config, session, logger=log)
        controller.set_mode(True)   # raises AmplifierToggleError on failure
    """

    def __init__(
        self,
        config: Config,
        session: AdminSession,
        logger: LogSink | None = None,
    ):
        self._config = config
        self._timings: ProtocolTimings = config.timings
        self._session = session
        self._logger = logger or null_logger

        # Learned from the GetOwner response
        self.local_node_id: str | None = None

    @property
    def target(self) -> str | None:
        return self._config.lna_target_node_id

    # === SetAmplifierMode ===

    def set_mode(self, enable: bool) -> None:
        target = self.target
        if not target:
            self._logger("info", "[Amplifier] LNA control disabled, leaving device untouched")
            return
        target_num = parse_node_id(target)
        if target_num is None:
            raise AmplifierToggleError(f"Invalid LNA target node id '{target}'")

        self._fetch_local_identity()

        self._logger("info", f"[Amplifier] Requesting LoRa config from {target}...")
        if target not in self._session.keys:
            self._session.send_admin(target, _get_config_request(ConfigType.SESSIONKEY_CONFIG))

        lora = self._fetch_lora_config(target, target_num)
        self._logger(
            "info",
            f"[Amplifier] Received LoRa config. Current RX boosted gain: {lora.sx126x_rx_boosted_gain}",
        )

        self._write_and_verify(target, target_num, lora, enable)

    # === Steps ===

    def _fetch_local_identity(self) -> None:
        """Best effort: who are we? Only informational."""
        self._logger("info", "[Amplifier] Fetching local node info...")
        self._session.send_admin(str(LOCAL_NODE), _get_owner_request())

        deadline = time.monotonic() + self._timings.owner_timeout_s
        for frame in self._session.frames_until(deadline):
            user = owner_of(decode_admin(frame))
            if user is None:
                continue
            self._logger(
                "info",
                f"[Amplifier] Local node identity: ID: {user.id}, "
                f"LongName: {user.long_name}, ShortName: {user.short_name}",
            )
            self._logger(
                "info",
                f"[Amplifier] > Please ensure THIS ID ({user.id}) is in the target node's admin list.",
            )
            if parse_node_id(user.id) is not None:
                self.local_node_id = user.id
            return
        self._logger("warn", "[Amplifier] Could not fetch local node info.")

    def _read_lora_config(self, target: str, target_num: int):
        """Send one GetConfig(LoRa) and wait for the target's answer, or None."""
        self._session.send_admin(target, _get_config_request(ConfigType.LORA_CONFIG))
        deadline = time.monotonic() + self._timings.response_timeout_s
        for frame in self._session.frames_until(deadline):
            if frame.sender != target_num:
                continue
            lora = lora_config_of(decode_admin(frame))
            if lora is not None:
                return lora
        return None

    def _fetch_lora_config(self, target: str, target_num: int):
        attempts = self._timings.fetch_attempts
        for attempt in range(1, attempts + 1):
            lora = self._read_lora_config(target, target_num)
            if lora is not None:
                return lora
            self._logger(
                "warn",
                f"[Amplifier] Get config timed out for {target} (attempt {attempt}/{attempts})",
            )
            if attempt < attempts:
                self._session.sleep(self._timings.retry_delay_s)
        raise AmplifierToggleError(
            f"Get config for {target} timed out after {attempts} attempts, aborting LNA toggle"
        )

    def _wait_for_ack(self, target_num: int) -> None:
        """Log whatever the target says back; silence is normal on success."""
        deadline = time.monotonic() + self._timings.ack_timeout_s
        for frame in self._session.frames_until(deadline):
            if frame.sender != target_num:
                continue
            admin = decode_admin(frame)
            variant = admin.WhichOneof("payload_variant") if admin is not None else None
            self._logger(
                "info",
                f"[Amplifier] Response from target on port {frame.portnum}"
                + (f": {variant}" if variant else ""),
            )
            return
        self._logger("info", "[Amplifier] Wait for set ACK timed out (normal if node is silent on success).")

    def _write_and_verify(self, target: str, target_num: int, lora, enable: bool) -> None:
        desired = config_pb2.Config.LoRaConfig()
        desired.CopyFrom(lora)
        desired.sx126x_rx_boosted_gain = enable
        request = _set_lora_request(desired)

        attempts = self._timings.verify_attempts
        for attempt in range(1, attempts + 1):
            self._logger("info", f"[Amplifier] Attempt {attempt}/{attempts}: setting LNA to {enable}...")
            self._session.send_admin(target, request)
            self._wait_for_ack(target_num)

            self._logger("info", "[Amplifier] Verifying...")
            self._session.sleep(self._timings.verify_settle_s)
            current = self._read_lora_config(target, target_num)

            if current is None:
                self._logger("warn", f"[Amplifier] Verification read timed out (attempt {attempt})")
            elif current.sx126x_rx_boosted_gain == enable:
                self._logger("info", f"[Amplifier] LNA setting verified (current: {enable})")
                return
            else:
                self._logger(
                    "warn",
                    f"[Amplifier] LNA verification failed (expected: {enable}, "
                    f"got: {current.sx126x_rx_boosted_gain})",
                )

            if attempt < attempts:
                self._logger("warn", f"[Amplifier] Attempt {attempt} failed, retrying...")
                self._session.sleep(self._timings.retry_delay_s)

        raise AmplifierToggleError(
            f"Failed to toggle LNA on {format_node_id(target_num)} to {enable} "
            f"after {attempts} attempts"
        )
