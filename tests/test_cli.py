"""
Command-line host.
"""
import pytest

from msnr import cli
from msnr.config import Topology, TransportMode
from msnr.progress import ProgressState

from conftest import FakeRadio


def _args(*argv):
    return cli.build_parser().parse_args(["run", *argv])


class TestConfigFromArgs:

    def test_flags(self):
        config = cli.config_from_args(_args(
            "--ip", "10.1.1.1", "--roof", "!22222222", "--mountain", "!33333333",
            "--duration", "90", "--interval", "15", "--cycles", "3", "--topology", "relay",
        ))
        assert config.ip == "10.1.1.1"
        assert config.phase_duration_ms == 90_000
        assert config.interval_ms == 15_000
        assert config.cycles == 3
        assert config.topology is Topology.RELAY

    def test_flags_override_file(self, tmp_path):
        path = tmp_path / "run.yaml"
        path.write_text("transport_mode: serial\nserial_port: /dev/ttyACM0\ncycles: 5\n")

        config = cli.config_from_args(_args("--config", str(path), "--cycles", "1"))

        assert config.transport_mode is TransportMode.SERIAL
        assert config.serial_port == "/dev/ttyACM0"
        assert config.cycles == 1


def test_render_progress():
    line = cli.render_progress(ProgressState(
        total_progress=0.5,
        current_round_progress=0.0,
        status_message="Cycle 1/1: Starting Phase 2 (LNA ON)",
        eta_seconds=450,
        phase="LNA ON",
    ))
    assert line.startswith("[" + "#" * 10 + "-" * 10 + "]")
    assert " 50.0%" in line
    assert "ETA   450s" in line


class TestMain:

    def test_serial_without_port_is_usage_error(self):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["run", "--transport", "serial"])
        assert excinfo.value.code == 2

    def test_unquoted_bang_id_in_config_is_usage_error(self, tmp_path, capsys):
        path = tmp_path / "run.yaml"
        path.write_text("roof_node_id: !22222222\nmountain_node_id: '!33333333'\n")

        with pytest.raises(SystemExit) as excinfo:
            cli.main(["run", "--config", str(path)])

        assert excinfo.value.code == 2
        assert "invalid YAML" in capsys.readouterr().err

    def test_success(self, monkeypatch, tmp_path, capsys):
        monkeypatch.setattr(cli, "transport_from_config", lambda config, logger=None: FakeRadio())

        code = cli.main(["run", "--cycles", "0", "--output", str(tmp_path / "out.csv")])

        assert code == 0
        out = capsys.readouterr().out
        assert "Test Completed" in out
        assert "LNA Comparison Summary" in out

    def test_fatal_error_exit_code(self, monkeypatch, capsys):
        monkeypatch.setattr(
            cli, "transport_from_config", lambda config, logger=None: FakeRadio(fail_connect=True),
        )

        assert cli.main(["run", "--cycles", "0"]) == 1
        assert "Test failed" in capsys.readouterr().err
