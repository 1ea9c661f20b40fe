"""Partition device-node naming.

Plan entries are addressed by index; the kernel addresses partitions by node
name. This module is the one place where one is turned into the other.

Naming Conventions:
    sda, vdb, xvdc        -> /dev/sda1, /dev/vdb2 (number appended directly)
    nvme0n1, mmcblk0, loop0 -> /dev/nvme0n1p1, /dev/mmcblk0p2 ("p" separator,
                               used whenever the disk name ends in a digit)

Partition numbers follow creation order, so plan index i is partition i + 1.
"""

from __future__ import annotations

from dataclasses import dataclass

from multiboot_provisioner.domain.models import Plan, ResolvedPartition

from .exceptions import UnresolvedPartitionError


def disk_node(disk_id: str) -> str:
    """Convert a disk name to its device node path."""
    return disk_id if disk_id.startswith("/dev/") else f"/dev/{disk_id}"


class PartitionNamer:
    """Builds partition node paths for the Linux block-device convention."""

    separator = "p"

    def partition_node(self, disk_id: str, number: int) -> str:
        """Device node for partition ``number`` (1-based) of ``disk_id``.

        Raises:
            ValueError: If number is less than 1
        """
        if number < 1:
            raise ValueError(f"Partition numbers start at 1, got {number}")
        base = disk_node(disk_id)
        if base[-1].isdigit():
            return f"{base}{self.separator}{number}"
        return f"{base}{number}"


@dataclass(frozen=True)
class PartitionTarget:
    """A plan entry with its on-disk identity."""

    index: int
    number: int
    node: str
    partition: ResolvedPartition


class DevicePathResolver:
    """Resolves plan indexes to partition numbers and device nodes."""

    def __init__(self, plan: Plan, namer: PartitionNamer | None = None):
        self.plan = plan
        self.namer = namer or PartitionNamer()
        self.disk = disk_node(plan.device.identifier)

    def resolve(self, index: int) -> PartitionTarget:
        """Resolve a plan index.

        Raises:
            UnresolvedPartitionError: If index is outside the plan
        """
        if isinstance(index, bool) or not 0 <= index < len(self.plan):
            raise UnresolvedPartitionError(index, len(self.plan))
        number = index + 1
        return PartitionTarget(
            index=index,
            number=number,
            node=self.namer.partition_node(self.plan.device.identifier, number),
            partition=self.plan[index],
        )
