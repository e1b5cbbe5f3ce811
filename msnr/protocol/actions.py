"""
Actions are outputs from the run state machine.

The engine executes them against the transport, the amplifier controller,
the statistics and the progress callback.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Action:
    """Base class for all run actions."""
    pass


# === Link ===

@dataclass(frozen=True)
class Connect(Action):
    """Open the transport and install the client identity."""
    pass


@dataclass(frozen=True)
class Disconnect(Action):
    pass


# === Phase ===

@dataclass(frozen=True)
class EmitPhaseStart(Action):
    cycle: int
    lna_on: bool


@dataclass(frozen=True)
class SetAmplifier(Action):
    enable: bool


@dataclass(frozen=True)
class Settle(Action):
    """Let the radio settle after an LNA change."""
    pass


@dataclass(frozen=True)
class Measure(Action):
    """Run one measurement window."""
    cycle: int
    lna_on: bool


# === Wrap-up ===

@dataclass(frozen=True)
class EmitSummary(Action):
    """Terminal progress snapshot plus the on/off comparison log."""
    pass


# === Logging ===

@dataclass(frozen=True)
class Log(Action):
    level: str  # "debug", "info", "warn", "error"
    message: str
