"""Unit tests for the console entry point."""

from __future__ import annotations

import logging
from unittest import mock

import pytest

from embeddb import main as console


@pytest.fixture(autouse=True)
def keep_test_logging():
    """main() reconfigures the root logger; keep pytest's handlers in place."""
    with mock.patch.object(console, "setup_logging") as setup:
        yield setup


class TestCheckConfiguration:
    def test_local_distribution_passes(self, make_config, make_distribution) -> None:
        make_distribution()
        assert console.check_configuration(make_config())

    def test_download_url_passes(self, make_config) -> None:
        config = make_config(version="remote-1.0", download_url_template="https://example.invalid/{version}.zip")
        assert console.check_configuration(config)

    def test_missing_distribution_fails(self, make_config, caplog: pytest.LogCaptureFixture) -> None:
        assert not console.check_configuration(make_config(version="absent-1.0"))
        assert "CONFIG CHECK FAILED" in caplog.text


class TestExecuteCommand:
    def test_help_succeeds(self, make_config, capsys: pytest.CaptureFixture) -> None:
        assert console.execute_command("help", make_config())
        assert "Usage:" in capsys.readouterr().out

    def test_unknown_command_fails(self, make_config, capsys: pytest.CaptureFixture, caplog: pytest.LogCaptureFixture) -> None:
        assert not console.execute_command("explode", make_config())
        assert "Unknown command: 'explode'" in caplog.text
        assert "Usage:" in capsys.readouterr().out

    def test_dispatches_to_handler(self, make_config) -> None:
        config = make_config()
        with mock.patch.object(console, "install_only", return_value=True) as install_only:
            assert console.execute_command("install", config)
        install_only.assert_called_once_with(config)


class TestMain:
    def test_flags_configure_logging(self, keep_test_logging) -> None:
        assert console.main(["help", "--verbose", "--quiet"]) == 0
        keep_test_logging.assert_called_once_with(logging.DEBUG, show_server_output=False)

    def test_command_failure_exit_code(self) -> None:
        with mock.patch.object(console, "execute_command", return_value=False):
            assert console.main(["install"]) == 1

    def test_invalid_configuration_exit_code(self) -> None:
        with mock.patch.object(console.Configuration, "from_settings", side_effect=ValueError("port out of range")):
            assert console.main(["run"]) == 2

    def test_command_is_case_insensitive(self) -> None:
        with mock.patch.object(console, "execute_command", return_value=True) as execute:
            console.main(["CHECK-CONFIG"])
        assert execute.call_args.args[0] == "check-config"
