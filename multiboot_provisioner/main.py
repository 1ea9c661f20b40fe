import argparse
import sys
from pathlib import Path

from multiboot_provisioner.config import settings
from multiboot_provisioner.domain.models import AllocationMode, Outcome, RunMode
from multiboot_provisioner.logging import EventLogger, LoggerFactory, operation_context, setup_logging
from multiboot_provisioner.services.audit import LoggerAuditSink
from multiboot_provisioner.services.layout import (
    boot_targets_from_settings,
    build_actions,
    partition_specs_from_settings,
)
from multiboot_provisioner.services.sequencer import ExecutionSequencer
from multiboot_provisioner.storage import geometry
from multiboot_provisioner.storage.commands import DEFAULT_TOOLS, SubprocessCommandRunner
from multiboot_provisioner.storage.devices import SUPPORTED_DEVICES, LsblkDeviceDiscovery, human_size
from multiboot_provisioner.storage.exceptions import (
    PreconditionFailedError,
    ProvisionError,
)
from multiboot_provisioner.storage.validation import SignatureImageValidator, SystemPreconditionGate

EXIT_OK = 0
EXIT_HALTED = 1
EXIT_PRECONDITION = 2
EXIT_ERROR = 3


def build_parser():
    parser = argparse.ArgumentParser(
        prog="multiboot-provisioner",
        description="Partition a disk and install boot material for three operating systems",
    )
    parser.add_argument("device", choices=SUPPORTED_DEVICES, help="Target disk")
    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        help="Print the commands that would run without touching the disk",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v debug, -vv trace)",
    )
    parser.add_argument("--config", type=Path, help="Settings file (JSON)")
    parser.add_argument("--log-dir", type=Path, help="Directory for log files")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.verbose >= 1, trace=args.verbose >= 2, log_dir=args.log_dir)
    log = LoggerFactory.for_system()

    settings.load_settings(args.config)
    mode = RunMode.DRY_RUN if args.dry_run else RunMode.APPLY
    tools = {**DEFAULT_TOOLS, **(settings.get_setting("tools") or {})}

    try:
        with operation_context("provision", device=args.device, mode=mode.value) as op_log:
            device = LsblkDeviceDiscovery().find_device(args.device)
            specs = partition_specs_from_settings(settings.get_setting("layout"))
            plan = geometry.resolve(
                device,
                specs,
                leading_offset=int(settings.get_setting("leading_offset_bytes", 0)),
                trailing_reserve=int(settings.get_setting("trailing_reserved_bytes", 0)),
                alignment=int(settings.get_setting("alignment_bytes", 1)),
                allocation=AllocationMode(settings.get_setting("allocation", "rounded")),
            )
            EventLogger.log_plan_resolved(op_log, device, plan)
            for part in plan:
                print(
                    f"  {part.name:<8} {part.role.value:<6} "
                    f"{part.start_byte:>16} - {part.end_byte:<16} {human_size(part.size_bytes)}"
                )

            targets = boot_targets_from_settings(settings.get_setting("boot_targets"))
            actions = build_actions(plan, targets)

            sequencer = ExecutionSequencer(
                SubprocessCommandRunner(settings.get_setting("command_timeout_seconds")),
                gate=SystemPreconditionGate(tools.values()),
                audit=LoggerAuditSink(),
                image_validator=(
                    SignatureImageValidator() if settings.get_bool("validate_images", True) else None
                ),
                tools=tools,
            )
            report = sequencer.run(plan, actions, mode)
    except PreconditionFailedError as error:
        log.error(str(error))
        print(f"Not ready: {error.reason}", file=sys.stderr)
        return EXIT_PRECONDITION
    except (ProvisionError, ValueError) as error:
        log.error(str(error))
        print(f"Error: {error}", file=sys.stderr)
        return EXIT_ERROR

    for result in report:
        marker = {
            Outcome.SUCCEEDED: "OK  ",
            Outcome.FAILED: "FAIL",
            Outcome.SKIPPED: "SKIP",
        }[result.outcome]
        print(f"[{marker}] {result.index:>2} {result.command}")

    if not report.completed:
        failed = report.failure
        print(
            f"Halted at action {report.halted_at} ({failed.action.kind}): {failed.reason}",
            file=sys.stderr,
        )
        return EXIT_HALTED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
