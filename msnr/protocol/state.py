"""
Run state representation.

RunState is immutable (frozen dataclass) so that every transition produces
a new instance. Stage is the position in the cycle/phase lifecycle.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class Stage(Enum):
    """Run lifecycle stages."""

    # Nothing started yet
    IDLE = auto()

    # Opening the radio link
    CONNECTING = auto()

    # One cycle: OFF phase then ON phase
    TOGGLE_OFF = auto()
    SETTLE = auto()        # shared by both phases; lna_on says which one follows
    MEASURE_OFF = auto()
    TOGGLE_ON = auto()
    MEASURE_ON = auto()

    # Wrap-up
    SUMMARIZE = auto()
    DISCONNECT = auto()

    # Terminal
    DONE = auto()
    FAILED = auto()


TERMINAL_STAGES = frozenset({Stage.DONE, Stage.FAILED})


@dataclass(frozen=True)
class RunState:
    """
    Immutable run state.

    ``cycle`` is the zero-based index of the cycle in progress and
    ``lna_on`` the amplifier setting of the phase in progress.
    """

    stage: Stage = Stage.IDLE
    total_cycles: int = 0
    cycle: int = 0
    lna_on: bool = False

    # Set once the radio link is open, so failures know to close it
    connected: bool = False

    last_error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    @property
    def phases_passed(self) -> int:
        """Whole phases completed before the current one."""
        return self.cycle * 2 + (1 if self.lna_on else 0)
