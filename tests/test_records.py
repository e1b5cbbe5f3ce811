"""
Record persistence.
"""
import csv
import json
from datetime import datetime, timezone

from msnr.config import Config, OutputFormat
from msnr.records import (
    FIELDNAMES,
    CsvRecordSink,
    JsonLinesRecordSink,
    TracerouteRecord,
    open_record_sink,
)

from conftest import ROOF

FIXED_TIME = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


def _record(cycle=0, phase="LNA OFF", towards=(10.0, 5.25), back=(-3.0, 7.5)):
    return TracerouteRecord.from_sample(cycle, phase, [ROOF], list(towards), list(back), now=FIXED_TIME)


class TestTracerouteRecord:

    def test_from_sample(self):
        record = _record()
        assert record.route == str([ROOF])
        assert record.snr_towards_1_room_roof == 10.0
        assert record.snr_towards_2_roof_mtn == 5.25
        assert record.snr_back_1_mtn_roof == -3.0
        assert record.snr_back_2_roof_room == 7.5
        assert datetime.fromisoformat(record.timestamp) == FIXED_TIME

    def test_short_arrays_leave_fields_empty(self):
        record = _record(towards=(10.0,), back=())
        assert record.snr_towards_2_roof_mtn is None
        assert record.snr_back_1_mtn_roof is None


class TestCsvRecordSink:

    def test_header_written_once(self, tmp_path):
        path = tmp_path / "out.csv"
        sink = CsvRecordSink(path)
        sink.append(_record(phase="LNA OFF"))
        sink.append(_record(phase="LNA ON"))

        with path.open(newline="") as fp:
            rows = list(csv.reader(fp))

        assert rows[0] == FIELDNAMES
        assert len(rows) == 3
        assert rows[1][2] == "LNA OFF"
        assert rows[2][2] == "LNA ON"

    def test_appends_to_existing_file(self, tmp_path):
        path = tmp_path / "out.csv"
        CsvRecordSink(path).append(_record())
        CsvRecordSink(path).append(_record(cycle=1))

        with path.open(newline="") as fp:
            rows = list(csv.DictReader(fp))

        assert [row["cycle"] for row in rows] == ["0", "1"]

    def test_missing_values_are_empty(self, tmp_path):
        path = tmp_path / "out.csv"
        CsvRecordSink(path).append(_record(back=()))

        with path.open(newline="") as fp:
            row = next(csv.DictReader(fp))
        assert row["snr_back_1_mtn_roof"] == ""


class TestJsonLinesRecordSink:

    def test_one_object_per_line(self, tmp_path):
        path = tmp_path / "out.jsonl"
        sink = JsonLinesRecordSink(path)
        sink.append(_record())
        sink.append(_record(cycle=1, phase="LNA ON"))

        lines = path.read_text().splitlines()
        assert len(lines) == 2
        second = json.loads(lines[1])
        assert second["cycle"] == 1
        assert second["phase"] == "LNA ON"
        assert set(second) == set(FIELDNAMES)


def test_open_record_sink_follows_format(tmp_path):
    csv_config = Config(output_path=str(tmp_path / "a.csv"))
    json_config = Config(output_path=str(tmp_path / "a.jsonl"), output_format=OutputFormat.JSON)
    assert isinstance(open_record_sink(csv_config), CsvRecordSink)
    assert isinstance(open_record_sink(json_config), JsonLinesRecordSink)
