"""
Running SNR averages, kept separately for the LNA-off and LNA-on phases.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class ChannelStats:
    """Samples for one direction of one phase."""

    sample_count: int = 0
    total: float = 0.0

    def add(self, value: float) -> None:
        self.sample_count += 1
        self.total += value

    @property
    def average(self) -> float | None:
        if self.sample_count == 0:
            return None
        return self.total / self.sample_count


@dataclass
class PhaseStats:
    """Both directions of the roof <-> mountain leg for one LNA setting."""

    roof_to_mtn: ChannelStats = field(default_factory=ChannelStats)
    mtn_to_roof: ChannelStats = field(default_factory=ChannelStats)
    samples: int = 0

    def add_sample(self, roof_to_mtn: float | None, mtn_to_roof: float | None) -> None:
        """A missing reading leaves that direction untouched."""
        if roof_to_mtn is not None:
            self.roof_to_mtn.add(roof_to_mtn)
        if mtn_to_roof is not None:
            self.mtn_to_roof.add(mtn_to_roof)
        self.samples += 1


def _delta(on: float | None, off: float | None) -> float | None:
    if on is None or off is None:
        return None
    return on - off


@dataclass(frozen=True)
class AverageStats:
    lna_off_samples: int = 0
    lna_off_roof_to_mtn: float | None = None
    lna_off_mtn_to_roof: float | None = None
    lna_on_samples: int = 0
    lna_on_roof_to_mtn: float | None = None
    lna_on_mtn_to_roof: float | None = None

    @classmethod
    def from_phases(cls, off: PhaseStats, on: PhaseStats) -> "AverageStats":
        return cls(
            lna_off_samples=off.samples,
            lna_off_roof_to_mtn=off.roof_to_mtn.average,
            lna_off_mtn_to_roof=off.mtn_to_roof.average,
            lna_on_samples=on.samples,
            lna_on_roof_to_mtn=on.roof_to_mtn.average,
            lna_on_mtn_to_roof=on.mtn_to_roof.average,
        )

    @property
    def delta_roof_to_mtn(self) -> float | None:
        return _delta(self.lna_on_roof_to_mtn, self.lna_off_roof_to_mtn)

    @property
    def delta_mtn_to_roof(self) -> float | None:
        return _delta(self.lna_on_mtn_to_roof, self.lna_off_mtn_to_roof)

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["delta_roof_to_mtn"] = self.delta_roof_to_mtn
        out["delta_mtn_to_roof"] = self.delta_mtn_to_roof
        return out

    def summary_lines(self) -> list[str]:
        """Human-readable on/off/delta comparison."""

        def fmt(value: float | None) -> str:
            return "--" if value is None else f"{value:.2f}"

        return [
            "================ LNA Comparison Summary ================",
            f"Samples - LNA OFF: {self.lna_off_samples}, LNA ON: {self.lna_on_samples}",
            (
                f"Roof -> Mountain (avg) | OFF: {fmt(self.lna_off_roof_to_mtn)} dB"
                f" | ON: {fmt(self.lna_on_roof_to_mtn)} dB"
                f" | Δ: {fmt(self.delta_roof_to_mtn)} dB"
            ),
            (
                f"Mountain -> Roof (avg) | OFF: {fmt(self.lna_off_mtn_to_roof)} dB"
                f" | ON: {fmt(self.lna_on_mtn_to_roof)} dB"
                f" | Δ: {fmt(self.delta_mtn_to_roof)} dB"
            ),
            "========================================================",
        ]
