"""Tests for domain models."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from multiboot_provisioner.domain import (
    ApplyArchive,
    CommandOutcome,
    CommandSpec,
    CopyImage,
    CreatePartition,
    CreateTable,
    DeviceInfo,
    ExecutionReport,
    ExecutionResult,
    Fixed,
    Outcome,
    PartitionRole,
    PartitionSpec,
    Plan,
    Proportional,
    RegisterBootEntry,
    ResolvedPartition,
    RunMode,
    RunState,
    SetFlag,
)


class TestDeviceInfo:
    def test_device_path(self):
        assert DeviceInfo("nvme0n1", 1).device_path == "/dev/nvme0n1"
        assert DeviceInfo("/dev/sda", 1).device_path == "/dev/sda"

    def test_size_gb(self):
        assert DeviceInfo("sda", 2 * 1024**3).size_gb == 2.0

    def test_frozen(self):
        device = DeviceInfo("sda", 1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            device.capacity_bytes = 2


class TestPartitionSpec:
    def test_is_fixed(self):
        assert PartitionSpec("efi", PartitionRole.ESP, Fixed(1)).is_fixed is True
        assert PartitionSpec("data", PartitionRole.EXT_DATA, Proportional(0.5)).is_fixed is False

    def test_flags_default_empty(self):
        assert PartitionSpec("data", PartitionRole.EXT_DATA, Fixed(1)).flags == frozenset()

    @pytest.mark.parametrize(
        "role,hint",
        [
            (PartitionRole.ESP, "fat32"),
            (PartitionRole.NTFS_DATA, "ntfs"),
            (PartitionRole.LVM_DATA, None),
            (PartitionRole.FAT32_DATA, "fat32"),
            (PartitionRole.EXT_DATA, "ext3"),
        ],
    )
    def test_filesystem_hint(self, role, hint):
        assert role.filesystem_hint == hint


class TestPlan:
    def test_sequence_behaviour(self, multiboot_plan):
        assert len(multiboot_plan) == 5
        assert multiboot_plan[-1].name == "ext3"
        assert [p.name for p in multiboot_plan][:2] == ["efi", "ntfs"]

    def test_index_of(self, multiboot_plan):
        assert multiboot_plan.index_of("fat32") == 3
        with pytest.raises(KeyError):
            multiboot_plan.index_of("swap")

    def test_resolved_partition_size(self):
        assert ResolvedPartition("a", PartitionRole.EXT_DATA, 100, 350).size_bytes == 250

    def test_plans_compare_by_value(self):
        parts = (ResolvedPartition("a", PartitionRole.EXT_DATA, 0, 10),)
        assert Plan(DeviceInfo("sda", 10), parts) == Plan(DeviceInfo("sda", 10), parts)


class TestActions:
    @pytest.mark.parametrize(
        "action,kind,ref",
        [
            (CreateTable("sda"), "create-table", None),
            (CreatePartition(1, PartitionRole.NTFS_DATA, 0, 10), "create-partition", 1),
            (SetFlag(2, "lvm"), "set-flag", 2),
            (CopyImage(Path("/a.iso"), 3), "copy-image", 3),
            (ApplyArchive(Path("/a.wim"), 4), "apply-archive", 4),
            (RegisterBootEntry(0, "A", "\\a.efi"), "register-boot-entry", 0),
        ],
    )
    def test_kind_and_partition_ref(self, action, kind, ref):
        assert action.kind == kind
        assert action.partition_ref == ref

    def test_archive_entry_defaults_to_one(self):
        assert ApplyArchive(Path("/a.wim"), 1).archive_entry_index == 1

    def test_kind_is_not_a_field(self):
        assert "kind" not in {f.name for f in dataclasses.fields(CreateTable("sda"))}


class TestCommandSpec:
    def test_argv(self):
        assert CommandSpec("dd", ("if=/a", "of=/b")).argv == ["dd", "if=/a", "of=/b"]

    def test_str_quotes_arguments(self):
        command = CommandSpec("efibootmgr", ("--label", "Windows Boot Manager"))
        assert str(command) == "efibootmgr --label 'Windows Boot Manager'"


class TestCommandOutcome:
    def test_ok(self):
        outcome = CommandOutcome.ok()
        assert outcome.succeeded is True
        assert outcome.exit_code == 0

    @pytest.mark.parametrize(
        "exit_code,stderr,reason",
        [
            (1, "", "exit code 1"),
            (1, "Warning: x\nError: device busy\n", "exit code 1: Error: device busy"),
            (None, "timed out after 5 seconds", "timed out after 5 seconds"),
            (None, "", "Command did not complete"),
        ],
    )
    def test_reason(self, exit_code, stderr, reason):
        assert CommandOutcome.failed(exit_code, stderr).reason == reason


class TestExecutionReport:
    def _result(self, index, outcome, reason=None):
        return ExecutionResult(index, CreateTable("sda"), outcome, reason=reason)

    def test_new_report_is_idle_and_empty(self):
        report = ExecutionReport(RunMode.APPLY)

        assert len(report) == 0
        assert report.state is RunState.IDLE
        assert report.completed is False
        assert report.failure is None

    def test_failure_is_result_at_halt_index(self):
        report = ExecutionReport(
            RunMode.APPLY,
            [self._result(0, Outcome.SUCCEEDED), self._result(1, Outcome.FAILED, "exit code 2")],
            RunState.HALTED,
            1,
        )

        assert report.failure is report[1]
        assert report[-1].reason == "exit code 2"
        assert list(reversed(report))[0] is report[1]

    def test_result_to_dict(self):
        result = ExecutionResult(
            0, SetFlag(0, "esp"), Outcome.SKIPPED, CommandSpec("parted", ("set",)), "dry-run"
        )

        data = result.to_dict()

        assert data["action"] == "set-flag"
        assert data["outcome"] == "skipped"
        assert data["command"] == "parted set"
        assert data["reason"] == "dry-run"
        assert data["timestamp"].endswith("+00:00")
