"""Tests for the command line entry point."""

from __future__ import annotations

import json

import pytest

from multiboot_provisioner import logging as logging_module
from multiboot_provisioner import main
from multiboot_provisioner.config import settings
from multiboot_provisioner.domain.models import DeviceInfo, GateResult
from multiboot_provisioner.storage.exceptions import DeviceNotFoundError


@pytest.fixture(autouse=True)
def reset_logging_and_settings():
    yield
    logging_module.logger.remove()
    settings.settings_store.values = json.loads(json.dumps(settings.DEFAULT_SETTINGS))


@pytest.fixture
def config_file(temp_settings_file):
    temp_settings_file.write_text(json.dumps({"validate_images": False}))
    return temp_settings_file


@pytest.fixture
def discovery(mocker, terabyte_device):
    mock_cls = mocker.patch("multiboot_provisioner.main.LsblkDeviceDiscovery")
    mock_cls.return_value.find_device.return_value = terabyte_device
    return mock_cls.return_value


@pytest.fixture
def gate(mocker):
    mock_cls = mocker.patch("multiboot_provisioner.main.SystemPreconditionGate")
    mock_cls.return_value.check.return_value = GateResult(ready=True)
    return mock_cls.return_value


@pytest.fixture
def runner(mocker, make_runner):
    fake = make_runner()
    mocker.patch("multiboot_provisioner.main.SubprocessCommandRunner", return_value=fake)
    return fake


def run_main(tmp_path, config_file, *args):
    return main.main([*args, "--config", str(config_file), "--log-dir", str(tmp_path / "logs")])


class TestArgumentParsing:
    def test_device_choices(self):
        parser = main.build_parser()

        assert parser.parse_args(["sda"]).device == "sda"
        assert parser.parse_args(["nvme0n1", "-n"]).dry_run is True

    def test_unsupported_device_rejected(self):
        with pytest.raises(SystemExit) as exc_info:
            main.build_parser().parse_args(["sdb"])

        assert exc_info.value.code == 2

    def test_verbosity_counts(self):
        args = main.build_parser().parse_args(["sda", "-vv"])

        assert args.verbose == 2
        assert args.dry_run is False


class TestDryRun:
    def test_prints_plan_and_skipped_commands(self, tmp_path, config_file, discovery, runner, capsys):
        exit_code = run_main(tmp_path, config_file, "nvme0n1", "--dry-run")

        out = capsys.readouterr().out
        assert exit_code == main.EXIT_OK
        assert runner.commands == []
        assert "[SKIP]  0 parted -s /dev/nvme0n1 mklabel gpt" in out
        assert "efibootmgr --create" in out
        discovery.find_device.assert_called_once_with("nvme0n1")

    def test_gate_not_consulted(self, tmp_path, config_file, discovery, runner, gate):
        gate.check.return_value = GateResult(ready=False, reason="Run as root")

        assert run_main(tmp_path, config_file, "nvme0n1", "-n") == main.EXIT_OK
        gate.check.assert_not_called()


class TestApply:
    def test_successful_run(self, tmp_path, config_file, discovery, runner, gate, capsys):
        exit_code = run_main(tmp_path, config_file, "nvme0n1")

        out = capsys.readouterr().out
        assert exit_code == main.EXIT_OK
        assert runner.commands[0].argv == ["parted", "-s", "/dev/nvme0n1", "mklabel", "gpt"]
        assert runner.commands[-1].program == "efibootmgr"
        assert "[OK  ]" in out
        gate.check.assert_called_once()

    def test_halted_run(self, tmp_path, config_file, discovery, runner, gate, capsys):
        runner.fail_at = {2}
        runner.stderr = "Error: device busy"

        exit_code = run_main(tmp_path, config_file, "nvme0n1")

        captured = capsys.readouterr()
        assert exit_code == main.EXIT_HALTED
        assert len(runner.commands) == 3
        assert "[FAIL]" in captured.out
        assert "Halted at action 2" in captured.err

    def test_precondition_failure(self, tmp_path, config_file, discovery, runner, gate, capsys):
        gate.check.return_value = GateResult(ready=False, reason="Run as root")

        exit_code = run_main(tmp_path, config_file, "sda")

        assert exit_code == main.EXIT_PRECONDITION
        assert runner.commands == []
        assert "Run as root" in capsys.readouterr().err


class TestErrors:
    def test_device_not_found(self, tmp_path, config_file, discovery, runner):
        discovery.find_device.side_effect = DeviceNotFoundError("sda")

        assert run_main(tmp_path, config_file, "sda") == main.EXIT_ERROR
        assert runner.commands == []

    def test_overcommitted_layout(self, tmp_path, temp_settings_file, mocker, runner, capsys):
        mock_cls = mocker.patch("multiboot_provisioner.main.LsblkDeviceDiscovery")
        mock_cls.return_value.find_device.return_value = DeviceInfo("sda", 100_000_000)

        exit_code = run_main(tmp_path, temp_settings_file, "sda", "-n")

        assert exit_code == main.EXIT_ERROR
        assert "overcommitted" in capsys.readouterr().err
        assert runner.commands == []

    def test_invalid_layout_in_settings(self, tmp_path, temp_settings_file, discovery, runner):
        temp_settings_file.write_text(json.dumps({"layout": [{"name": "a", "role": "swap", "weight": 1}]}))

        assert run_main(tmp_path, temp_settings_file, "nvme0n1", "-n") == main.EXIT_ERROR
