"""
Pytest configuration and shared fixtures for multiboot-provisioner tests.

This module provides common fixtures and utilities used across all test modules.
"""

import json
from typing import Any, Dict, List

import pytest

from multiboot_provisioner.domain.models import (
    CommandOutcome,
    CommandSpec,
    DeviceInfo,
    Fixed,
    GateResult,
    ImageCheck,
    PartitionRole,
    PartitionSpec,
    Proportional,
)
from multiboot_provisioner.storage import geometry


# ==============================================================================
# Fakes for injected collaborators
# ==============================================================================


class FakeCommandRunner:
    """Records every command and fails the ones listed in ``fail_at``."""

    def __init__(self, fail_at=(), stderr="mock failure"):
        self.fail_at = set(fail_at)
        self.stderr = stderr
        self.commands: List[CommandSpec] = []

    def invoke(self, command: CommandSpec) -> CommandOutcome:
        index = len(self.commands)
        self.commands.append(command)
        if index in self.fail_at:
            return CommandOutcome.failed(1, self.stderr)
        return CommandOutcome.ok()


class FakeGate:
    def __init__(self, ready=True, reason=""):
        self.result = GateResult(ready=ready, reason=reason)
        self.calls = 0

    def check(self) -> GateResult:
        self.calls += 1
        return self.result


class FakeImageValidator:
    def __init__(self, valid=True, reason="bad signature"):
        self.valid = valid
        self.reason = reason
        self.calls = []

    def validate(self, path, kind) -> ImageCheck:
        self.calls.append((path, kind))
        if self.valid:
            return ImageCheck(valid=True)
        return ImageCheck(valid=False, reason=self.reason)


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def ready_gate() -> FakeGate:
    return FakeGate(ready=True)


# ==============================================================================
# Device & Layout Fixtures
# ==============================================================================


@pytest.fixture
def terabyte_device() -> DeviceInfo:
    """A 1 TB (decimal) NVMe disk."""
    return DeviceInfo(identifier="nvme0n1", capacity_bytes=1_000_000_000_000)


@pytest.fixture
def sata_device() -> DeviceInfo:
    return DeviceInfo(identifier="sda", capacity_bytes=500_000_000_000)


@pytest.fixture
def multiboot_specs() -> List[PartitionSpec]:
    """Five-partition layout whose proportional weights sum to 1."""
    return [
        PartitionSpec("efi", PartitionRole.ESP, Fixed(300_000_000), frozenset({"esp", "boot"})),
        PartitionSpec("ntfs", PartitionRole.NTFS_DATA, Proportional(0.1667), frozenset({"msftdata"})),
        PartitionSpec("lvm", PartitionRole.LVM_DATA, Proportional(0.3333), frozenset({"lvm"})),
        PartitionSpec("fat32", PartitionRole.FAT32_DATA, Proportional(0.1667), frozenset({"msftdata"})),
        PartitionSpec("ext3", PartitionRole.EXT_DATA, Proportional(0.3333)),
    ]


@pytest.fixture
def multiboot_plan(terabyte_device, multiboot_specs):
    return geometry.resolve(terabyte_device, multiboot_specs)


# ==============================================================================
# lsblk Mock Fixtures
# ==============================================================================


@pytest.fixture
def mock_nvme_disk() -> Dict[str, Any]:
    """
    Fixture providing a whole NVMe disk as reported by lsblk -b -J -d.

    Returns:
        Dict representing the lsblk entry.
    """
    return {"name": "nvme0n1", "size": 1000204886016, "type": "disk"}


@pytest.fixture
def mock_lsblk_output(mock_nvme_disk) -> str:
    return json.dumps({"blockdevices": [mock_nvme_disk]})


# ==============================================================================
# File System Fixtures
# ==============================================================================


@pytest.fixture
def temp_settings_file(tmp_path):
    """
    Fixture providing a temporary settings file path.

    Args:
        tmp_path: pytest's built-in temporary directory fixture.

    Returns:
        Path to a temporary settings file.
    """
    settings_dir = tmp_path / ".config" / "multiboot-provisioner"
    settings_dir.mkdir(parents=True, exist_ok=True)
    return settings_dir / "settings.json"


@pytest.fixture
def hybrid_iso(tmp_path):
    """A small file carrying an MBR boot signature, like a hybrid ISO."""
    path = tmp_path / "linux.iso"
    data = bytearray(4096)
    data[510:512] = b"\x55\xaa"
    path.write_bytes(bytes(data))
    return path


@pytest.fixture
def iso9660_image(tmp_path):
    """A file with an ISO 9660 primary volume descriptor and no MBR."""
    path = tmp_path / "plain.iso"
    data = bytearray(0x8800)
    data[0x8000] = 1
    data[0x8001:0x8006] = b"CD001"
    path.write_bytes(bytes(data))
    return path


@pytest.fixture
def wim_archive(tmp_path):
    path = tmp_path / "install.wim"
    path.write_bytes(b"MSWIM\x00\x00\x00" + b"\x00" * 200)
    return path


# ==============================================================================
# Factories for configurable fakes
# ==============================================================================


@pytest.fixture
def make_runner():
    return FakeCommandRunner


@pytest.fixture
def make_gate():
    return FakeGate


@pytest.fixture
def make_validator():
    return FakeImageValidator
