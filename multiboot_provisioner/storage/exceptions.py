"""Custom exceptions for provisioning operations.

This module defines a hierarchy of exceptions for planning and sequencing so
callers can tell a bad layout apart from a bad environment or a failed tool.

Exception Hierarchy:
    ProvisionError (base)
        ├── GeometryError
        │   ├── OvercommittedError
        │   ├── NegativeRemainderError
        │   ├── NameCollisionError
        │   └── InvalidSizingError
        ├── SequenceError
        │   ├── PreconditionFailedError
        │   └── UnresolvedPartitionError
        ├── ActionFailure
        └── DeviceNotFoundError

Geometry errors are always raised before any device is touched. Every error
is terminal for the current run.

Usage:
    from multiboot_provisioner.storage.exceptions import OvercommittedError

    if fixed_total > device.capacity_bytes:
        raise OvercommittedError(device.identifier, fixed_total, device.capacity_bytes)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from multiboot_provisioner.domain.models import Action, ExecutionResult


class ProvisionError(Exception):
    """Base exception for all provisioning operations."""



class GeometryError(ProvisionError):
    """Base exception for partition layouts that cannot be resolved."""



class OvercommittedError(GeometryError):
    """Requested partitions need more space than the device has."""

    def __init__(self, device_name: str, requested_bytes: int, capacity_bytes: int):
        self.device_name = device_name
        self.requested_bytes = requested_bytes
        self.capacity_bytes = capacity_bytes
        super().__init__(
            f"Layout for {device_name} is overcommitted: "
            f"{requested_bytes} bytes requested, {capacity_bytes} bytes available"
        )


class NegativeRemainderError(GeometryError):
    """No space is left for proportional partitions."""

    def __init__(self, device_name: str, remaining_bytes: int):
        self.device_name = device_name
        self.remaining_bytes = remaining_bytes
        super().__init__(
            f"Layout for {device_name} leaves a negative remainder "
            f"({remaining_bytes} bytes) for proportional partitions"
        )


class NameCollisionError(GeometryError):
    """Two partition specs share the same name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Duplicate partition name in layout: {name}")


class InvalidSizingError(GeometryError):
    """A partition spec carries a size or weight that cannot be laid out."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid sizing for partition {name}: {reason}")


class SequenceError(ProvisionError):
    """Base exception for action lists that cannot be executed."""



class PreconditionFailedError(SequenceError):
    """The environment is not ready to modify the device."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Precondition check failed: {reason}")


class UnresolvedPartitionError(SequenceError):
    """An action references a partition index outside the plan."""

    def __init__(self, partition_index: int, plan_size: int, action: Action | None = None):
        self.partition_index = partition_index
        self.plan_size = plan_size
        self.action = action
        super().__init__(
            f"Partition index {partition_index} is out of range "
            f"for a plan of {plan_size} partitions"
        )


class ActionFailure(ProvisionError):
    """An external command failed and the run was halted."""

    def __init__(
        self,
        index: int,
        action: Action,
        reason: str,
        results: Sequence[ExecutionResult] = (),
    ):
        self.index = index
        self.action = action
        self.reason = reason
        self.results = list(results)
        super().__init__(f"Action {index} ({action.kind}) failed: {reason}")


class DeviceNotFoundError(ProvisionError):
    """Device was not found or does not exist."""

    def __init__(self, device_name: str):
        self.device_name = device_name
        super().__init__(f"Device not found: {device_name}")
