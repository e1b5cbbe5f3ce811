"""
Run configuration.

Config is immutable for the lifetime of a run. Hosts build it directly,
from a mapping (``Config.from_dict``) or from a YAML file (``load_config``).
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml

from .nodes import parse_node_id


class TransportMode(Enum):
    IP = "ip"
    SERIAL = "serial"


class Topology(Enum):
    RELAY = "relay"    # local -> roof -> mountain
    DIRECT = "direct"  # local -> target


class LnaControl(Enum):
    """Which node's LNA gets toggled under the Relay topology."""
    DISABLED = "disabled"
    ROOF = "roof"
    MOUNTAIN = "mountain"


class OutputFormat(Enum):
    CSV = "csv"
    JSON = "json"


@dataclass(frozen=True)
class ProtocolTimings:
    """
    Policy constants of the toggle protocol and measurement loop.

    Defaults match the behaviour of the field tool; tests shrink them.
    """

    settle_s: float = 5.0               # after every LNA change
    owner_timeout_s: float = 3.0        # best-effort GetOwner
    response_timeout_s: float = 30.0    # GetConfig fetch / verify read-back
    ack_timeout_s: float = 30.0         # after each SetConfig send
    fetch_attempts: int = 10
    verify_attempts: int = 10
    verify_settle_s: float = 2.0        # between SetConfig and read-back
    retry_delay_s: float = 1.0
    tick_s: float = 1.0

    snr_floor_db: float = -32.0         # firmware reports this when it has no reading
    snr_floor_epsilon: float = 1e-6

    frame_queue_size: int = 256


@dataclass(frozen=True)
class Config:
    # Connection
    transport_mode: TransportMode = TransportMode.IP
    ip: str | None = "192.168.1.100"
    port: int | None = 4403
    serial_port: str | None = None

    # Topology
    topology: Topology = Topology.RELAY
    lna_control: LnaControl = LnaControl.ROOF

    # Test parameters
    interval_ms: int = 30_000
    phase_duration_ms: int = 450_000   # 7.5 minutes per phase
    cycles: int = 2

    # Node ids ("!hex", "0xhex" or decimal)
    local_node_id: str | None = None
    roof_node_id: str | None = None
    mountain_node_id: str | None = None
    target_node_id: str | None = None

    # Output
    output_path: str = "results.csv"
    output_format: OutputFormat = OutputFormat.CSV

    timings: ProtocolTimings = field(default_factory=ProtocolTimings)

    def __post_init__(self):
        if self.phase_duration_ms <= 0:
            raise ValueError("phase_duration_ms must be > 0")
        if self.cycles < 0:
            raise ValueError("cycles must be >= 0")
        if self.interval_ms < 0:
            raise ValueError("interval_ms must be >= 0")

    # === Derived values ===

    @property
    def phase_duration_s(self) -> float:
        return self.phase_duration_ms / 1000.0

    @property
    def lna_target_node_id(self) -> str | None:
        """Node whose LNA is toggled, or None when control is disabled."""
        if self.lna_control is LnaControl.DISABLED:
            return None
        if self.topology is Topology.DIRECT:
            return self.target_node_id or None
        if self.lna_control is LnaControl.MOUNTAIN:
            return self.mountain_node_id or None
        return self.roof_node_id or None

    @property
    def traceroute_destination(self) -> str | None:
        if self.topology is Topology.RELAY:
            return self.mountain_node_id or None
        return self.target_node_id or None

    @property
    def roof_num(self) -> int | None:
        return parse_node_id(self.roof_node_id)

    @property
    def mountain_num(self) -> int | None:
        return parse_node_id(self.mountain_node_id)

    @property
    def local_num(self) -> int | None:
        return parse_node_id(self.local_node_id)

    def with_overrides(self, **changes: Any) -> "Config":
        return replace(self, **changes)

    # === (De)serialization ===

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        for key, value in out.items():
            if isinstance(value, Enum):
                out[key] = value.value
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """
        Build a Config from a plain mapping (e.g. parsed YAML).

        Enum fields accept their value or member name in any case.
        Unknown keys raise ValueError.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")

        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if key in _ENUM_FIELDS and value is not None:
                kwargs[key] = _coerce_enum(_ENUM_FIELDS[key], value)
            elif key == "timings" and value is not None:
                kwargs[key] = _timings_from(value)
            elif key in _NODE_ID_FIELDS and value is not None:
                kwargs[key] = _node_id_text(key, value)
            else:
                kwargs[key] = value
        return cls(**kwargs)


# YAML reads unquoted 0x2a or 42 as an int
_NODE_ID_FIELDS = ("local_node_id", "roof_node_id", "mountain_node_id", "target_node_id")

_ENUM_FIELDS: dict[str, type[Enum]] = {
    "transport_mode": TransportMode,
    "topology": Topology,
    "lna_control": LnaControl,
    "output_format": OutputFormat,
}


def _coerce_enum(enum_cls: type[Enum], value: Any) -> Enum:
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip().lower().replace("-", "_")
    for member in enum_cls:
        if text in (member.value, member.name.lower()):
            return member
    choices = ", ".join(m.value for m in enum_cls)
    raise ValueError(f"Invalid {enum_cls.__name__} '{value}'. Expected one of: {choices}")


def _node_id_text(key: str, value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValueError(f"Invalid {key} {value!r}: expected a node id such as '!2a3b4c5d'")
    return str(value)


def _timings_from(value: Any) -> ProtocolTimings:
    if isinstance(value, ProtocolTimings):
        return value
    known = {f.name for f in fields(ProtocolTimings)}
    unknown = set(value) - known
    if unknown:
        raise ValueError(f"Unknown timings keys: {sorted(unknown)}")
    return ProtocolTimings(**value)


def load_config(path: str | Path, **overrides: Any) -> Config:
    """
    Load a Config from a YAML file.

    Keyword overrides (e.g. from the command line) win over file values;
    None overrides are ignored.
    """
    with Path(path).open("r", encoding="utf-8") as fp:
        try:
            data = yaml.safe_load(fp) or {}
        except yaml.YAMLError as e:
            # e.g. an unquoted !2a3b4c5d, which YAML reads as a tag
            raise ValueError(f"{path}: invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    data.update({k: v for k, v in overrides.items() if v is not None})
    return Config.from_dict(data)
