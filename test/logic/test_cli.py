import socket
from unittest.mock import patch

import click.testing
import pytest

from arraysim.cli import cli
from arraysim.system import SimulatorSettings


@pytest.fixture
def cli_runner():
    return click.testing.CliRunner()


@pytest.fixture
def no_settings(tmp_path):
    return str(tmp_path / "absent.ini")


def test_tree(cli_runner):
    result = cli_runner.invoke(cli, ["--tree"])
    assert result.exit_code == 0
    for name in ("server", "list", "kill", "probe", "settings", "show", "init"):
        assert name in result.output


class TestServerCLI:
    @patch("arraysim.cli.base.start_server")
    def test_default_values(self, mock_start_server, cli_runner, no_settings):
        result = cli_runner.invoke(cli, ["server", "-s", no_settings])
        assert result.exit_code == 0, result.output
        mock_start_server.assert_called_once()
        (settings,), kwargs = mock_start_server.call_args
        assert settings == SimulatorSettings()
        assert kwargs["emulator_name"] == "mock"
        assert kwargs["log_to_file"] is True

    @patch("arraysim.cli.base.start_server")
    def test_flags_override_settings(self, mock_start_server, cli_runner, tmp_path):
        settings_file = tmp_path / "settings.ini"
        settings_file.write_text("[simulator]\nport = 9001\nmax_devices = 4\n")
        result = cli_runner.invoke(
            cli,
            [
                "server",
                "--settings-file",
                str(settings_file),
                "--host-address",
                "127.0.0.1",
                "--port",
                "9100",
                "--no-log-to-file",
                "--no-log-to-stdout",
                "--log-path",
                "/tmp/test.log",
                "--log-level",
                "debug",
            ],
        )
        assert result.exit_code == 0, result.output
        (settings,), kwargs = mock_start_server.call_args
        assert settings.port == 9100
        assert settings.host == "127.0.0.1"
        assert settings.max_devices == 4
        assert settings.log_level == "DEBUG"
        assert kwargs["log_to_file"] is False
        assert kwargs["log_path"] == "/tmp/test.log"

    @patch("arraysim.cli.base.start_server")
    def test_bad_settings_file(self, mock_start_server, cli_runner, tmp_path):
        settings_file = tmp_path / "settings.ini"
        settings_file.write_text("[simulator]\nbogus = 1\n")
        result = cli_runner.invoke(cli, ["server", "-s", str(settings_file)])
        assert result.exit_code != 0
        mock_start_server.assert_not_called()

    def test_unknown_emulator(self, cli_runner, no_settings):
        result = cli_runner.invoke(cli, ["server", "-s", no_settings, "-e", "nope"])
        assert result.exit_code != 0


class TestRegistryCLI:
    @patch("arraysim.cli.base.list_running_servers")
    def test_list(self, mock_list, cli_runner):
        mock_list.return_value = [
            {
                "pid": 42,
                "timestamp": "2024-01-01_12:00:00",
                "host": "0.0.0.0",
                "port": 8080,
                "running": True,
            }
        ]
        result = cli_runner.invoke(cli, ["list"])
        assert result.exit_code == 0
        assert "PID: 42 (RUNNING)" in result.output
        assert "0.0.0.0:8080" in result.output

    @patch("arraysim.cli.base.list_running_servers", return_value=[])
    def test_list_empty(self, mock_list, cli_runner):
        result = cli_runner.invoke(cli, ["list"])
        assert "No servers found" in result.output

    @patch("arraysim.cli.base.kill_arraysim_servers", return_value=2)
    def test_kill(self, mock_kill, cli_runner):
        result = cli_runner.invoke(cli, ["kill"])
        assert result.exit_code == 0
        assert "Killed 2 arraysim server(s)" in result.output


class TestSettingsCLI:
    def test_init_then_show(self, cli_runner, tmp_path):
        path = tmp_path / "settings.ini"
        result = cli_runner.invoke(cli, ["settings", "init", "-s", str(path)])
        assert result.exit_code == 0
        assert path.exists()

        result = cli_runner.invoke(cli, ["settings", "show", "-s", str(path)])
        assert result.exit_code == 0
        assert "port = 8080" in result.output
        assert str(path) in result.output

    def test_init_refuses_overwrite(self, cli_runner, tmp_path):
        path = tmp_path / "settings.ini"
        path.write_text("[simulator]\n")
        result = cli_runner.invoke(cli, ["settings", "init", "-s", str(path)])
        assert result.exit_code == 1
        result = cli_runner.invoke(cli, ["settings", "init", "-s", str(path), "-f"])
        assert result.exit_code == 0

    def test_show_defaults(self, cli_runner, no_settings):
        result = cli_runner.invoke(cli, ["settings", "show", "-s", no_settings])
        assert result.exit_code == 0
        assert "defaults" in result.output


def test_probe_unreachable(cli_runner, tmp_path):
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    log_path = tmp_path / "probe.log"
    result = cli_runner.invoke(
        cli, ["probe", "-p", str(port), "-t", "1", "-lp", str(log_path)]
    )
    assert result.exit_code == 1
    assert "Could not connect" in result.output
    assert f"Log: {log_path}" in result.output
    assert "Connection to 127.0.0.1" in log_path.read_text()
