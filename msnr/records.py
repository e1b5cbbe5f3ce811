"""
Persisted traceroute samples.

One record per accepted Relay-topology sample. Files are only ever appended
to, so several runs can share an output file.
"""
from __future__ import annotations

import csv
import json
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from pathlib import Path
from typing import Protocol, Sequence

from .config import Config, OutputFormat


@dataclass(frozen=True)
class TracerouteRecord:
    timestamp: str
    cycle: int
    phase: str
    route: str
    snr_towards_1_room_roof: float | None = None
    snr_towards_2_roof_mtn: float | None = None
    snr_back_1_mtn_roof: float | None = None
    snr_back_2_roof_room: float | None = None

    @classmethod
    def from_sample(
        cls,
        cycle: int,
        phase: str,
        route: Sequence[int],
        snr_towards: Sequence[float],
        snr_back: Sequence[float],
        now: datetime | None = None,
    ) -> "TracerouteRecord":
        def at(values: Sequence[float], index: int) -> float | None:
            return float(values[index]) if len(values) > index else None

        stamp = (now or datetime.now()).astimezone()
        return cls(
            timestamp=stamp.isoformat(),
            cycle=cycle,
            phase=phase,
            route=str([int(hop) for hop in route]),
            snr_towards_1_room_roof=at(snr_towards, 0),
            snr_towards_2_roof_mtn=at(snr_towards, 1),
            snr_back_1_mtn_roof=at(snr_back, 0),
            snr_back_2_roof_room=at(snr_back, 1),
        )


FIELDNAMES = [f.name for f in fields(TracerouteRecord)]


class RecordSink(Protocol):
    def append(self, record: TracerouteRecord) -> None:
        """Persist one record. Raises OSError on write failure."""
        ...


class CsvRecordSink:
    """CSV file; the header is written once, when the file is new or empty."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def append(self, record: TracerouteRecord) -> None:
        needs_header = not self.path.exists() or self.path.stat().st_size == 0
        with self.path.open("a", newline="", encoding="utf-8") as fp:
            writer = csv.DictWriter(fp, fieldnames=FIELDNAMES)
            if needs_header:
                writer.writeheader()
            row = {k: ("" if v is None else v) for k, v in asdict(record).items()}
            writer.writerow(row)


class JsonLinesRecordSink:
    """One JSON object per line."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def append(self, record: TracerouteRecord) -> None:
        with self.path.open("a", encoding="utf-8") as fp:
            fp.write(json.dumps(asdict(record)) + "\n")


def open_record_sink(config: Config) -> RecordSink:
    if config.output_format is OutputFormat.JSON:
        return JsonLinesRecordSink(config.output_path)
    return CsvRecordSink(config.output_path)
