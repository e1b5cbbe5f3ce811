from .config import (
    Config,
    LnaControl,
    OutputFormat,
    ProtocolTimings,
    Topology,
    TransportMode,
    load_config,
)
from .engine import Engine
from .errors import AmplifierToggleError, MsnrError, RunCancelled, TransportError
from .progress import ProgressState
from .stats import AverageStats
from .transport import IpTransport, SerialTransport, transport_from_config

__all__ = [
    "Config",
    "LnaControl",
    "OutputFormat",
    "ProtocolTimings",
    "Topology",
    "TransportMode",
    "load_config",
    "Engine",
    "MsnrError",
    "TransportError",
    "AmplifierToggleError",
    "RunCancelled",
    "ProgressState",
    "AverageStats",
    "IpTransport",
    "SerialTransport",
    "transport_from_config",
]

__version__ = "0.1.0"
