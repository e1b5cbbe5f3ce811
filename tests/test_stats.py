"""
Running averages and the on/off comparison.
"""
import pytest

from msnr.stats import AverageStats, ChannelStats, PhaseStats


class TestChannelStats:

    def test_empty_has_no_average(self):
        assert ChannelStats().average is None

    def test_average(self):
        channel = ChannelStats()
        for value in (-5.0, -7.0, -9.0):
            channel.add(value)
        assert channel.sample_count == 3
        assert channel.average == pytest.approx(-7.0)


class TestPhaseStats:

    def test_missing_direction_is_skipped(self):
        phase = PhaseStats()
        phase.add_sample(10.0, None)
        phase.add_sample(20.0, 4.0)

        assert phase.samples == 2
        assert phase.roof_to_mtn.average == pytest.approx(15.0)
        # Only one reading in this direction, averaged over its own count
        assert phase.mtn_to_roof.sample_count == 1
        assert phase.mtn_to_roof.average == pytest.approx(4.0)


class TestAverageStats:

    def test_deltas(self):
        off, on = PhaseStats(), PhaseStats()
        off.add_sample(-10.0, -12.0)
        on.add_sample(-6.5, -11.0)

        stats = AverageStats.from_phases(off, on)

        assert stats.lna_off_samples == 1
        assert stats.lna_on_samples == 1
        assert stats.delta_roof_to_mtn == pytest.approx(3.5)
        assert stats.delta_mtn_to_roof == pytest.approx(1.0)

    def test_delta_absent_without_both_sides(self):
        off = PhaseStats()
        off.add_sample(-10.0, -12.0)

        stats = AverageStats.from_phases(off, PhaseStats())

        assert stats.lna_on_roof_to_mtn is None
        assert stats.delta_roof_to_mtn is None
        assert stats.to_dict()["delta_mtn_to_roof"] is None

    def test_summary_lines(self):
        off = PhaseStats()
        off.add_sample(-10.0, None)
        lines = AverageStats.from_phases(off, PhaseStats()).summary_lines()

        text = "\n".join(lines)
        assert "LNA Comparison Summary" in text
        assert "OFF: -10.00 dB" in text
        assert "--" in text
