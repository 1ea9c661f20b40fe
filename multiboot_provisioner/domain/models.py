"""Domain model for multi-boot provisioning.

Type-safe, immutable objects shared by the geometry planner and the execution
sequencer: the device being provisioned, the declarative partition layout,
the resolved plan, the actions run against it and the results they produce.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import ClassVar, Iterator, Optional, Sequence, Union

from multiboot_provisioner.storage.exceptions import ActionFailure


# ==============================================================================
# Device & Layout Domain
# ==============================================================================


@dataclass(frozen=True)
class DeviceInfo:
    """A block device to be provisioned.

    Supplied by the caller (usually via device discovery); the planner never
    looks the device up itself.
    """

    identifier: str  # e.g., "nvme0n1"
    capacity_bytes: int

    @property
    def device_path(self) -> str:
        """Device node path (e.g., /dev/nvme0n1)."""
        if self.identifier.startswith("/dev/"):
            return self.identifier
        return f"/dev/{self.identifier}"

    @property
    def size_gb(self) -> float:
        """Size in gigabytes."""
        return self.capacity_bytes / (1024**3)


class PartitionRole(Enum):
    """What a partition is for."""

    ESP = "esp"
    NTFS_DATA = "ntfs"
    LVM_DATA = "lvm"
    FAT32_DATA = "fat32"
    EXT_DATA = "ext"

    @property
    def filesystem_hint(self) -> Optional[str]:
        """File system type passed to the partitioning tool, if any."""
        return _FILESYSTEM_HINTS[self]


_FILESYSTEM_HINTS = {
    PartitionRole.ESP: "fat32",
    PartitionRole.NTFS_DATA: "ntfs",
    PartitionRole.LVM_DATA: None,
    PartitionRole.FAT32_DATA: "fat32",
    PartitionRole.EXT_DATA: "ext3",
}


@dataclass(frozen=True)
class Fixed:
    """Absolute partition size in bytes."""

    size_bytes: int


@dataclass(frozen=True)
class Proportional:
    """Share of the space left after all fixed partitions, in (0, 1]."""

    weight: float


Sizing = Union[Fixed, Proportional]


@dataclass(frozen=True)
class PartitionSpec:
    """One row of a desired layout. Input order is layout order."""

    name: str
    role: PartitionRole
    sizing: Sizing
    flags: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_fixed(self) -> bool:
        return isinstance(self.sizing, Fixed)


@dataclass(frozen=True)
class ResolvedPartition:
    """A concrete byte range, start inclusive and end exclusive."""

    name: str
    role: PartitionRole
    start_byte: int
    end_byte: int
    flags: frozenset[str] = field(default_factory=frozenset)

    @property
    def size_bytes(self) -> int:
        return self.end_byte - self.start_byte


class AllocationMode(Enum):
    """How proportional sizes are rounded to whole bytes."""

    ROUNDED = "rounded"  # per-item round half away from zero
    STRICT = "strict"  # largest remainder, sums exactly


@dataclass(frozen=True)
class Plan:
    """Resolved partition layout for one device.

    Produced once per planning call and never mutated afterwards.
    """

    device: DeviceInfo
    partitions: tuple[ResolvedPartition, ...]

    def __len__(self) -> int:
        return len(self.partitions)

    def __iter__(self) -> Iterator[ResolvedPartition]:
        return iter(self.partitions)

    def __getitem__(self, index: int) -> ResolvedPartition:
        return self.partitions[index]

    def index_of(self, name: str) -> int:
        """Plan index of the partition called ``name``.

        Raises:
            KeyError: If no partition has that name
        """
        for index, partition in enumerate(self.partitions):
            if partition.name == name:
                return index
        raise KeyError(name)

    @property
    def end_byte(self) -> int:
        """End of the last region, or 0 for an empty plan."""
        if not self.partitions:
            return 0
        return self.partitions[-1].end_byte


# ==============================================================================
# Action Domain
# ==============================================================================


@dataclass(frozen=True)
class Action:
    """Base for every step the sequencer can run."""

    kind: ClassVar[str] = "action"

    @property
    def partition_ref(self) -> Optional[int]:
        """Plan index this action touches, or None for disk-level actions."""
        return None


@dataclass(frozen=True)
class CreateTable(Action):
    disk_id: str

    kind: ClassVar[str] = "create-table"


@dataclass(frozen=True)
class CreatePartition(Action):
    partition_index: int
    role: PartitionRole
    start_byte: int
    end_byte: int

    kind: ClassVar[str] = "create-partition"

    @property
    def partition_ref(self) -> Optional[int]:
        return self.partition_index


@dataclass(frozen=True)
class SetFlag(Action):
    partition_index: int
    flag: str

    kind: ClassVar[str] = "set-flag"

    @property
    def partition_ref(self) -> Optional[int]:
        return self.partition_index


@dataclass(frozen=True)
class CopyImage(Action):
    """Raw block copy of an image onto a partition."""

    source_path: Path
    target_partition_index: int

    kind: ClassVar[str] = "copy-image"

    @property
    def partition_ref(self) -> Optional[int]:
        return self.target_partition_index


@dataclass(frozen=True)
class ApplyArchive(Action):
    """Extract one entry of a WIM-style archive onto a partition."""

    source_path: Path
    target_partition_index: int
    archive_entry_index: int = 1

    kind: ClassVar[str] = "apply-archive"

    @property
    def partition_ref(self) -> Optional[int]:
        return self.target_partition_index


@dataclass(frozen=True)
class RegisterBootEntry(Action):
    """Firmware boot entry pointing at a loader on a partition."""

    target_partition_index: int
    label: str
    loader_path: str

    kind: ClassVar[str] = "register-boot-entry"

    @property
    def partition_ref(self) -> Optional[int]:
        return self.target_partition_index


# ==============================================================================
# Command Domain
# ==============================================================================


@dataclass(frozen=True)
class CommandSpec:
    """A fully rendered external command. Never passed through a shell."""

    program: str
    args: tuple[str, ...] = ()

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    def __str__(self) -> str:
        return shlex.join(self.argv)


@dataclass(frozen=True)
class CommandOutcome:
    """What the command runner reports back. Stdout is never inspected."""

    succeeded: bool
    exit_code: Optional[int] = 0
    stderr: str = ""

    @classmethod
    def ok(cls) -> CommandOutcome:
        return cls(succeeded=True, exit_code=0)

    @classmethod
    def failed(cls, exit_code: Optional[int], stderr: str = "") -> CommandOutcome:
        return cls(succeeded=False, exit_code=exit_code, stderr=stderr)

    @property
    def reason(self) -> str:
        """Short failure description for the result log."""
        message = self.stderr.strip()
        if message:
            message = message.splitlines()[-1]
        if self.exit_code is None:
            return message or "Command did not complete"
        if message:
            return f"exit code {self.exit_code}: {message}"
        return f"exit code {self.exit_code}"


@dataclass(frozen=True)
class GateResult:
    """Outcome of a precondition check."""

    ready: bool
    reason: str = ""


@dataclass(frozen=True)
class ImageCheck:
    """Outcome of an image signature check."""

    valid: bool
    reason: str = ""


# ==============================================================================
# Execution Domain
# ==============================================================================


class RunMode(Enum):
    """Whether commands are executed or only recorded."""

    APPLY = "apply"
    DRY_RUN = "dry-run"


class Outcome(Enum):
    """Per-action result."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunState(Enum):
    """Sequencer lifecycle. A halted run cannot be resumed."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    HALTED = "halted"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ExecutionResult:
    """The outcome of a single action."""

    index: int
    action: Action
    outcome: Outcome
    command: Optional[CommandSpec] = None
    reason: Optional[str] = None  # failure reason, or "dry-run" when skipped
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, object]:
        """Flat representation for structured logs."""
        return {
            "index": self.index,
            "action": self.action.kind,
            "outcome": self.outcome.value,
            "command": str(self.command) if self.command else None,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ExecutionReport(Sequence[ExecutionResult]):
    """Append-only results of one sequencer run.

    Behaves like the plain list of results; also carries the terminal state
    and, for a halted run, the index of the action that failed.
    """

    mode: RunMode
    results: list[ExecutionResult] = field(default_factory=list)
    state: RunState = RunState.IDLE
    halted_at: Optional[int] = None

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[ExecutionResult]:
        return iter(self.results)

    def __getitem__(self, index):  # type: ignore[override]
        return self.results[index]

    @property
    def completed(self) -> bool:
        return self.state is RunState.COMPLETED

    @property
    def failure(self) -> Optional[ExecutionResult]:
        """The terminal failed result, if the run halted."""
        if self.halted_at is None:
            return None
        return self.results[self.halted_at]

    def raise_for_failure(self) -> None:
        """Raise ActionFailure if the run halted.

        Raises:
            ActionFailure: Carrying the halting index, action, reason and
                every result collected up to and including the failure
        """
        failed = self.failure
        if failed is None:
            return
        raise ActionFailure(
            failed.index, failed.action, failed.reason or "unknown", self.results
        )
