"""External command rendering and execution.

Every action the sequencer runs becomes exactly one structured CommandSpec
(program plus argument list). Commands are executed without a shell, so no
argument is ever re-interpreted.

Tools:
    parted         partition table, partitions and flags
    dd             raw block copy of disk images
    wimlib-imagex  extraction of WIM archives
    efibootmgr     firmware boot entry registration

Commands:
    CreateTable        parted -s /dev/sda mklabel gpt
    CreatePartition    parted -s /dev/sda unit B mkpart <name> [<fs>] <start>B <last>B
    SetFlag            parted -s /dev/sda set <n> <flag> on
    CopyImage          dd if=<image> of=/dev/sda<n> bs=4M conv=fsync
    ApplyArchive       wimlib-imagex apply <archive> <entry> /dev/sda<n>
    RegisterBootEntry  efibootmgr --create --disk /dev/sda --part <n> --label <label> --loader <path>

parted treats the end of a byte range as inclusive, so the exclusive end of a
resolved partition is rendered as end - 1.
"""

from __future__ import annotations

import subprocess
from typing import Mapping, Optional, Protocol

from multiboot_provisioner.domain.models import (
    Action,
    ApplyArchive,
    CommandOutcome,
    CommandSpec,
    CopyImage,
    CreatePartition,
    CreateTable,
    RegisterBootEntry,
    SetFlag,
)
from multiboot_provisioner.logging import LoggerFactory

from .naming import DevicePathResolver, disk_node


log = LoggerFactory.for_commands()
output_log = LoggerFactory.for_command_output()

DEFAULT_TOOLS: dict[str, str] = {
    "partition": "parted",
    "copy": "dd",
    "archive": "wimlib-imagex",
    "boot": "efibootmgr",
}

PARTITION_TABLE_TYPE = "gpt"
DD_BLOCK_SIZE = "4M"


class CommandRunner(Protocol):
    """Executes one rendered command and reports whether it succeeded."""

    def invoke(self, command: CommandSpec) -> CommandOutcome:
        ...


class CommandRenderer:
    """Translates actions into structured commands against a resolved plan."""

    def __init__(
        self,
        resolver: DevicePathResolver,
        tools: Optional[Mapping[str, str]] = None,
    ):
        self.resolver = resolver
        self.tools = {**DEFAULT_TOOLS, **(tools or {})}

    def render(self, action: Action) -> CommandSpec:
        """Render ``action`` into a command.

        Raises:
            UnresolvedPartitionError: If the action references a partition
                index outside the plan
            TypeError: If the action type is unknown
        """
        if isinstance(action, CreateTable):
            return self._parted(disk_node(action.disk_id), "mklabel", PARTITION_TABLE_TYPE)

        if isinstance(action, CreatePartition):
            target = self.resolver.resolve(action.partition_index)
            args = ["unit", "B", "mkpart", target.partition.name]
            fs_hint = action.role.filesystem_hint
            if fs_hint:
                args.append(fs_hint)
            args += [f"{action.start_byte}B", f"{action.end_byte - 1}B"]
            return self._parted(self.resolver.disk, *args)

        if isinstance(action, SetFlag):
            target = self.resolver.resolve(action.partition_index)
            return self._parted(
                self.resolver.disk, "set", str(target.number), action.flag, "on"
            )

        if isinstance(action, CopyImage):
            target = self.resolver.resolve(action.target_partition_index)
            return CommandSpec(
                self.tools["copy"],
                (
                    f"if={action.source_path}",
                    f"of={target.node}",
                    f"bs={DD_BLOCK_SIZE}",
                    "conv=fsync",
                ),
            )

        if isinstance(action, ApplyArchive):
            target = self.resolver.resolve(action.target_partition_index)
            return CommandSpec(
                self.tools["archive"],
                (
                    "apply",
                    str(action.source_path),
                    str(action.archive_entry_index),
                    target.node,
                ),
            )

        if isinstance(action, RegisterBootEntry):
            target = self.resolver.resolve(action.target_partition_index)
            return CommandSpec(
                self.tools["boot"],
                (
                    "--create",
                    "--disk",
                    self.resolver.disk,
                    "--part",
                    str(target.number),
                    "--label",
                    action.label,
                    "--loader",
                    action.loader_path,
                ),
            )

        raise TypeError(f"Unsupported action: {action!r}")

    def _parted(self, disk: str, *args: str) -> CommandSpec:
        return CommandSpec(self.tools["partition"], ("-s", disk, *args))


class SubprocessCommandRunner:
    """Runs commands with subprocess, blocking until each one exits.

    Stdout is logged at TRACE and otherwise ignored; only the exit status
    decides the outcome.
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = timeout_seconds

    def invoke(self, command: CommandSpec) -> CommandOutcome:
        log.debug(f"Running command: {command}")
        try:
            result = subprocess.run(
                command.argv,
                text=True,
                capture_output=True,
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError:
            log.error(f"Command not found: {command.program}")
            return CommandOutcome.failed(None, f"{command.program}: command not found")
        except subprocess.TimeoutExpired:
            log.error(f"Command timed out after {self.timeout_seconds}s: {command}")
            return CommandOutcome.failed(
                None, f"timed out after {self.timeout_seconds} seconds"
            )
        except OSError as error:
            log.error(f"Could not start {command.program}: {error}")
            return CommandOutcome.failed(None, f"{command.program}: {error}")

        if result.stdout:
            output_log.trace(f"stdout: {result.stdout.strip()}")
        if result.stderr:
            output_log.trace(f"stderr: {result.stderr.strip()}")
        log.debug(f"Command completed with return code {result.returncode}")

        if result.returncode != 0:
            return CommandOutcome.failed(result.returncode, result.stderr or "")
        return CommandOutcome.ok()
