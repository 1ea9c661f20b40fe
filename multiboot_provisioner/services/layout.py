"""Multi-boot layout and action list construction.

Turns the configured layout and boot targets into the inputs the planner and
the sequencer work with: PartitionSpec rows for resolve(), and the ordered
action list for ExecutionSequencer.run().

Action Order:
    1. CreateTable on the target disk
    2. CreatePartition for every plan entry, in plan order
    3. SetFlag for every flag of every partition (flags sorted by name)
    4. CopyImage / ApplyArchive for every boot target, in configured order
    5. RegisterBootEntry on the ESP for every boot target
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

from multiboot_provisioner.domain.models import (
    Action,
    ApplyArchive,
    CopyImage,
    CreatePartition,
    CreateTable,
    Fixed,
    PartitionRole,
    PartitionSpec,
    Plan,
    Proportional,
    RegisterBootEntry,
    SetFlag,
)
from multiboot_provisioner.storage.validation import ARCHIVE_KIND, IMAGE_KIND


@dataclass(frozen=True)
class BootTarget:
    """An operating system to install and register with the firmware."""

    label: str
    kind: str  # "image" (raw copy) or "archive" (WIM apply)
    source: Path
    partition: str  # name of the plan entry receiving the payload
    loader: str  # loader path on the ESP
    archive_index: int = 1


def partition_spec_from_dict(entry: Mapping[str, Any]) -> PartitionSpec:
    """Build a PartitionSpec from a settings entry.

    Entries carry either ``size_bytes`` (Fixed) or ``weight`` (Proportional).

    Raises:
        ValueError: If the role is unknown or the sizing is missing/ambiguous
    """
    name = entry.get("name")
    if not name:
        raise ValueError(f"Layout entry without a name: {dict(entry)}")
    try:
        role = PartitionRole(entry.get("role"))
    except ValueError as error:
        raise ValueError(f"Unknown role for partition {name}: {entry.get('role')!r}") from error

    has_size = entry.get("size_bytes") is not None
    has_weight = entry.get("weight") is not None
    if has_size == has_weight:
        raise ValueError(f"Partition {name} needs exactly one of size_bytes or weight")
    sizing = Fixed(int(entry["size_bytes"])) if has_size else Proportional(float(entry["weight"]))

    return PartitionSpec(
        name=name,
        role=role,
        sizing=sizing,
        flags=frozenset(entry.get("flags") or ()),
    )


def partition_specs_from_settings(entries: Iterable[Mapping[str, Any]]) -> list[PartitionSpec]:
    return [partition_spec_from_dict(entry) for entry in entries]


def boot_target_from_dict(entry: Mapping[str, Any]) -> BootTarget:
    """Build a BootTarget from a settings entry.

    Raises:
        ValueError: If a required key is missing or the kind is unknown
    """
    missing = [key for key in ("label", "kind", "source", "partition", "loader") if not entry.get(key)]
    if missing:
        raise ValueError(f"Boot target missing {', '.join(missing)}: {dict(entry)}")
    if entry["kind"] not in (IMAGE_KIND, ARCHIVE_KIND):
        raise ValueError(f"Unknown boot target kind: {entry['kind']!r}")
    return BootTarget(
        label=entry["label"],
        kind=entry["kind"],
        source=Path(entry["source"]),
        partition=entry["partition"],
        loader=entry["loader"],
        archive_index=int(entry.get("archive_index", 1)),
    )


def boot_targets_from_settings(entries: Iterable[Mapping[str, Any]]) -> list[BootTarget]:
    return [boot_target_from_dict(entry) for entry in entries]


def find_esp_index(plan: Plan) -> int:
    """Plan index of the first EFI System Partition.

    Raises:
        ValueError: If the plan has no ESP
    """
    for index, partition in enumerate(plan):
        if partition.role is PartitionRole.ESP:
            return index
    raise ValueError("Layout has no EFI System Partition")


def build_actions(
    plan: Plan,
    targets: Sequence[BootTarget],
    *,
    esp_index: Optional[int] = None,
) -> list[Action]:
    """Ordered action list that provisions ``plan`` and installs ``targets``.

    Raises:
        ValueError: If a target names a partition missing from the plan, or
            the plan has no ESP for the boot entries
    """
    actions: list[Action] = [CreateTable(plan.device.identifier)]

    for index, partition in enumerate(plan):
        actions.append(
            CreatePartition(index, partition.role, partition.start_byte, partition.end_byte)
        )
    for index, partition in enumerate(plan):
        for flag in sorted(partition.flags):
            actions.append(SetFlag(index, flag))

    if not targets:
        return actions

    if esp_index is None:
        esp_index = find_esp_index(plan)

    for target in targets:
        try:
            index = plan.index_of(target.partition)
        except KeyError:
            raise ValueError(
                f"Boot target {target.label} refers to unknown partition {target.partition}"
            ) from None
        if target.kind == ARCHIVE_KIND:
            actions.append(ApplyArchive(target.source, index, target.archive_index))
        else:
            actions.append(CopyImage(target.source, index))

    for target in targets:
        actions.append(RegisterBootEntry(esp_index, target.label, target.loader))

    return actions
