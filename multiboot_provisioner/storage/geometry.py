"""Partition geometry planning.

Turns a device capacity and an ordered list of partition specs into a plan of
consecutive, non-overlapping byte ranges. Pure computation: no I/O and no
device access, so identical inputs always produce equal plans.

Sizing Rules:
    Fixed:        exact byte count, subtracted from capacity first
    Proportional: share of what is left after the leading offset and all
                  fixed partitions

Allocation Modes:
    ROUNDED: every proportional size is round(remaining * weight), rounded
             half away from zero independently per partition. The sizes need
             not add up to the remainder exactly.
    STRICT:  largest-remainder allocation. Quotas are floored and the leftover
             bytes go to the largest fractional parts (input order breaks
             ties), so weights summing to 1 fill the remainder exactly.

Capacity Guarantee:
    The last region never ends past the device capacity. Weights summing to
    more than 1 are overcommitted by construction and rejected. With weights
    summing to at most 1, per-item rounding can overshoot by at most half a
    byte per proportional partition; that overshoot is taken from the last
    proportional region (and the ones before it, for tiny remainders).

Reserves and Alignment:
    leading_offset bytes before the first region and trailing_reserve bytes
    after the last one are never allocated. With an alignment, the offset and
    fixed sizes must be multiples of it and proportional sizes are rounded
    down to it, so every boundary lands on an aligned byte.

Example:
    >>> device = DeviceInfo("sda", 1_000_000)
    >>> specs = [
    ...     PartitionSpec("efi", PartitionRole.ESP, Fixed(100_000)),
    ...     PartitionSpec("data", PartitionRole.EXT_DATA, Proportional(1.0)),
    ... ]
    >>> [(p.start_byte, p.end_byte) for p in resolve(device, specs)]
    [(0, 100000), (100000, 1000000)]
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Sequence

from multiboot_provisioner.domain.models import (
    AllocationMode,
    DeviceInfo,
    Fixed,
    PartitionSpec,
    Plan,
    Proportional,
    ResolvedPartition,
)
from multiboot_provisioner.logging import LoggerFactory

from .exceptions import (
    InvalidSizingError,
    NameCollisionError,
    NegativeRemainderError,
    OvercommittedError,
)


log = LoggerFactory.for_planner()


def _weight(value: float) -> Decimal:
    # str() keeps the weight as written (0.1667, not its binary expansion)
    return Decimal(str(value))


def round_half_away(value: Decimal) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def check_unique_names(specs: Sequence[PartitionSpec]) -> None:
    """Raise NameCollisionError for the first repeated name."""
    seen: set[str] = set()
    for spec in specs:
        if spec.name in seen:
            raise NameCollisionError(spec.name)
        seen.add(spec.name)


def check_sizing(specs: Sequence[PartitionSpec]) -> None:
    """Raise InvalidSizingError for sizes that cannot be laid out."""
    for spec in specs:
        sizing = spec.sizing
        if isinstance(sizing, Fixed):
            if isinstance(sizing.size_bytes, bool) or not isinstance(sizing.size_bytes, int):
                raise InvalidSizingError(spec.name, "fixed size must be an integer")
            if sizing.size_bytes < 0:
                raise InvalidSizingError(spec.name, "fixed size must not be negative")
        elif isinstance(sizing, Proportional):
            if not 0 < sizing.weight <= 1:
                raise InvalidSizingError(
                    spec.name, f"weight {sizing.weight} is outside (0, 1]"
                )
        else:
            raise InvalidSizingError(spec.name, f"unknown sizing {sizing!r}")


def check_reserves(
    specs: Sequence[PartitionSpec],
    leading_offset: int,
    trailing_reserve: int,
    alignment: int,
) -> None:
    """Raise InvalidSizingError for unusable reserves or alignment."""
    if leading_offset < 0:
        raise InvalidSizingError("<leading offset>", "offset must not be negative")
    if trailing_reserve < 0:
        raise InvalidSizingError("<trailing reserve>", "reserve must not be negative")
    if isinstance(alignment, bool) or not isinstance(alignment, int) or alignment < 1:
        raise InvalidSizingError("<alignment>", "alignment must be a positive integer")
    if leading_offset % alignment:
        raise InvalidSizingError(
            "<leading offset>", f"offset is not a multiple of {alignment} bytes"
        )
    for spec in specs:
        if spec.is_fixed and spec.sizing.size_bytes % alignment:
            raise InvalidSizingError(
                spec.name, f"fixed size is not a multiple of {alignment} bytes"
            )


def proportional_sizes(
    remaining: int,
    weights: Sequence[float],
    allocation: AllocationMode = AllocationMode.ROUNDED,
) -> list[int]:
    """Byte sizes for proportional partitions, in the order given."""
    quotas = [Decimal(remaining) * _weight(weight) for weight in weights]
    if allocation is AllocationMode.ROUNDED:
        return [round_half_away(quota) for quota in quotas]

    floors = [int(quota.to_integral_value(rounding=ROUND_FLOOR)) for quota in quotas]
    target = int(sum(quotas, Decimal(0)).to_integral_value(rounding=ROUND_FLOOR))
    leftover = target - sum(floors)
    by_remainder = sorted(
        range(len(quotas)),
        key=lambda i: (-(quotas[i] - floors[i]), i),
    )
    for i in by_remainder[:leftover]:
        floors[i] += 1
    return floors


def resolve(
    device: DeviceInfo,
    specs: Sequence[PartitionSpec],
    *,
    leading_offset: int = 0,
    trailing_reserve: int = 0,
    alignment: int = 1,
    allocation: AllocationMode = AllocationMode.ROUNDED,
) -> Plan:
    """Resolve partition specs into concrete byte ranges on ``device``.

    Args:
        device: Target device and its capacity
        specs: Partition specs in layout order
        leading_offset: Bytes reserved before the first partition
        trailing_reserve: Bytes left unallocated at the end of the device
            (room for the backup GPT)
        alignment: Boundary every start and end falls on. The offset and
            fixed sizes must already be multiples of it; proportional sizes
            are rounded down to it
        allocation: Rounding strategy for proportional partitions

    Returns:
        Plan with one ResolvedPartition per spec, in input order

    Raises:
        NameCollisionError: If two specs share a name (checked first)
        InvalidSizingError: If a size, weight, offset, reserve or the
            alignment is malformed, or a fixed boundary is unaligned
        OvercommittedError: If fixed sizes exceed capacity, or the
            proportional weights add up to more than the whole remainder
        NegativeRemainderError: If the reserves and fixed sizes leave less
            than nothing for proportional partitions
    """
    check_unique_names(specs)
    check_sizing(specs)
    check_reserves(specs, leading_offset, trailing_reserve, alignment)

    capacity = device.capacity_bytes
    fixed_total = sum(spec.sizing.size_bytes for spec in specs if spec.is_fixed)
    if fixed_total > capacity:
        raise OvercommittedError(device.identifier, fixed_total, capacity)

    remaining = capacity - leading_offset - fixed_total - trailing_reserve
    if remaining < 0:
        raise NegativeRemainderError(device.identifier, remaining)

    proportional = [spec for spec in specs if not spec.is_fixed]
    weights = [spec.sizing.weight for spec in proportional]
    if sum((_weight(w) for w in weights), Decimal(0)) > 1:
        requested = capacity - remaining + sum(
            proportional_sizes(remaining, weights, allocation)
        )
        raise OvercommittedError(device.identifier, requested, capacity)

    sizes = dict(
        zip(
            (spec.name for spec in proportional),
            proportional_sizes(remaining, weights, allocation),
        )
    )
    overshoot = sum(sizes.values()) - remaining
    if overshoot > 0:
        log.debug(f"Per-item rounding overshoots capacity by {overshoot} bytes")
        # With tiny remainders the last region may be too small to absorb it.
        for spec in reversed(proportional):
            taken = min(overshoot, sizes[spec.name])
            sizes[spec.name] -= taken
            overshoot -= taken
            if not overshoot:
                break
    if alignment > 1:
        sizes = {name: size - size % alignment for name, size in sizes.items()}

    partitions = []
    start = leading_offset
    for spec in specs:
        size = spec.sizing.size_bytes if spec.is_fixed else sizes[spec.name]
        end = start + size
        partitions.append(
            ResolvedPartition(
                name=spec.name,
                role=spec.role,
                start_byte=start,
                end_byte=end,
                flags=frozenset(spec.flags),
            )
        )
        start = end

    plan = Plan(device=device, partitions=tuple(partitions))
    log.debug(
        f"Resolved {len(plan)} partitions on {device.identifier}: "
        f"end {plan.end_byte} of {capacity} bytes"
    )
    return plan
