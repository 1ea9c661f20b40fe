"""Domain models for multi-boot provisioning.

This package contains the immutable objects passed between the geometry
planner, the execution sequencer and their external collaborators.
"""

from __future__ import annotations

from .models import (
    Action,
    AllocationMode,
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
    GateResult,
    ImageCheck,
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
    Sizing,
)


__all__ = [
    "Action",
    "AllocationMode",
    "ApplyArchive",
    "CommandOutcome",
    "CommandSpec",
    "CopyImage",
    "CreatePartition",
    "CreateTable",
    "DeviceInfo",
    "ExecutionReport",
    "ExecutionResult",
    "Fixed",
    "GateResult",
    "ImageCheck",
    "Outcome",
    "PartitionRole",
    "PartitionSpec",
    "Plan",
    "Proportional",
    "RegisterBootEntry",
    "ResolvedPartition",
    "RunMode",
    "RunState",
    "SetFlag",
    "Sizing",
]
