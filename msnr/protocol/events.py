"""
Events are inputs to the run state machine.

The engine reports the outcome of each action it executed as an event.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Event:
    """Base class for all run events."""
    pass


@dataclass(frozen=True)
class StartRun(Event):
    cycles: int


@dataclass(frozen=True)
class Connected(Event):
    pass


@dataclass(frozen=True)
class AmplifierSet(Event):
    """The LNA now holds the requested setting (or control is disabled)."""
    enabled: bool


@dataclass(frozen=True)
class SettleElapsed(Event):
    pass


@dataclass(frozen=True)
class MeasurementComplete(Event):
    """The phase's measurement window has closed."""
    samples: int = 0


@dataclass(frozen=True)
class SummaryEmitted(Event):
    pass


@dataclass(frozen=True)
class Disconnected(Event):
    pass


@dataclass(frozen=True)
class RunFailed(Event):
    """A fatal error aborted the action in progress."""
    reason: str
