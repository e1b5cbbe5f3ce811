"""
Progress snapshots emitted to the host while a run executes.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .stats import AverageStats

PHASE_LNA_OFF = "LNA OFF"
PHASE_LNA_ON = "LNA ON"
PHASE_DONE = "Done"

# Global progress never reaches 1.0 until the terminal snapshot.
RUNNING_PROGRESS_CAP = 0.99


def phase_name(lna_on: bool) -> str:
    return PHASE_LNA_ON if lna_on else PHASE_LNA_OFF


@dataclass(frozen=True)
class ProgressState:
    total_progress: float
    current_round_progress: float
    status_message: str
    eta_seconds: int
    phase: str
    snr_towards: list[float] | None = None
    snr_back: list[float] | None = None
    average_stats: AverageStats | None = None

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form for event relays (JSON-serializable)."""
        return {
            "total_progress": self.total_progress,
            "current_round_progress": self.current_round_progress,
            "status_message": self.status_message,
            "eta_seconds": self.eta_seconds,
            "snr_towards": self.snr_towards,
            "snr_back": self.snr_back,
            "phase": self.phase,
            "average_stats": self.average_stats.to_dict() if self.average_stats else None,
        }


ProgressCallback = Callable[[ProgressState], None]
