"""
Run protocol - pure functional state machine.

RunProtocol.step() takes the current run state and an event, and returns the
new state plus the actions the engine must execute.
"""
from .state import RunState, Stage
from .events import (
    Event,
    StartRun,
    Connected,
    AmplifierSet,
    SettleElapsed,
    MeasurementComplete,
    SummaryEmitted,
    Disconnected,
    RunFailed,
)
from .actions import (
    Action,
    Connect,
    Disconnect,
    EmitPhaseStart,
    SetAmplifier,
    Settle,
    Measure,
    EmitSummary,
    Log,
)
from .machine import RunProtocol

__all__ = [
    # State
    "RunState",
    "Stage",
    # Events
    "Event",
    "StartRun",
    "Connected",
    "AmplifierSet",
    "SettleElapsed",
    "MeasurementComplete",
    "SummaryEmitted",
    "Disconnected",
    "RunFailed",
    # Actions
    "Action",
    "Connect",
    "Disconnect",
    "EmitPhaseStart",
    "SetAmplifier",
    "Settle",
    "Measure",
    "EmitSummary",
    "Log",
    # Protocol
    "RunProtocol",
]
