"""Block device discovery using lsblk.

Supplies the DeviceInfo (identifier and capacity in bytes) the geometry
planner needs. Only whole disks are accepted as provisioning targets.

Recognised Targets:
    nvme0n1  first NVMe namespace
    sda      first SATA/SCSI disk

Example:
    >>> from multiboot_provisioner.storage.devices import LsblkDeviceDiscovery
    >>> device = LsblkDeviceDiscovery().find_device("nvme0n1")
    >>> print(f"{device.identifier}: {human_size(device.capacity_bytes)}")
    nvme0n1: 931.5GB
"""

from __future__ import annotations

import json
import subprocess
from typing import Protocol

from multiboot_provisioner.domain.models import DeviceInfo
from multiboot_provisioner.logging import LoggerFactory

from .exceptions import DeviceNotFoundError
from .naming import disk_node


log = LoggerFactory.for_devices()

SUPPORTED_DEVICES = ("nvme0n1", "sda")


class DeviceDiscovery(Protocol):
    def find_device(self, identifier: str) -> DeviceInfo:
        ...


def human_size(size_bytes):
    if size_bytes is None:
        return "0B"
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PB"


def run_command(command, check=True):
    log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(command, check=check, text=True, capture_output=True)
    except subprocess.CalledProcessError as error:
        log.debug(f"Command failed: {' '.join(command)}")
        if error.stderr:
            log.debug(f"stderr: {error.stderr.strip()}")
        raise
    log.debug(f"Command completed with return code {result.returncode}")
    return result


class LsblkDeviceDiscovery:
    """Looks up whole disks with ``lsblk -b -J -d``."""

    def __init__(self, lsblk: str = "lsblk"):
        self.lsblk = lsblk

    def find_device(self, identifier: str) -> DeviceInfo:
        """Return the identifier and byte capacity of a whole disk.

        Raises:
            DeviceNotFoundError: If lsblk does not know the device, reports it
                as something other than a disk, or reports no size
        """
        node = disk_node(identifier)
        name = node[len("/dev/"):]
        try:
            result = run_command(
                [self.lsblk, "-b", "-J", "-d", "-o", "NAME,SIZE,TYPE", node]
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as error:
            log.warning(f"lsblk could not query {node}: {error}")
            raise DeviceNotFoundError(name) from error

        try:
            devices = json.loads(result.stdout).get("blockdevices", [])
        except json.JSONDecodeError as error:
            raise DeviceNotFoundError(name) from error

        for device in devices:
            if device.get("name") != name:
                continue
            if device.get("type") != "disk" or device.get("size") is None:
                break
            info = DeviceInfo(identifier=name, capacity_bytes=int(device["size"]))
            log.info(f"Found {name}: {human_size(info.capacity_bytes)}")
            return info
        raise DeviceNotFoundError(name)
