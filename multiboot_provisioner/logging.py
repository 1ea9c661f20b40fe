from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

    from multiboot_provisioner.domain.models import (
        DeviceInfo,
        ExecutionReport,
        ExecutionResult,
        Plan,
    )

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "MULTIBOOT_PROVISIONER_LOG_DIR",
        Path.home() / ".local" / "state" / "multiboot-provisioner" / "logs",
    )
)

COMMAND_OUTPUT_TAG = "command-output"


def _should_log_command_output(record) -> bool:
    """Filter raw tool output - only show in TRACE mode."""
    tags = record["extra"].get("tags", [])

    # Always log errors
    if record["level"].no >= logger.level("WARNING").no:
        return True

    if COMMAND_OUTPUT_TAG in tags:
        return record["level"].no <= logger.level("TRACE").no

    return True


def _combined_filter(record) -> bool:
    """Combined filter for all console suppression rules."""
    return _should_log_command_output(record)


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup multi-tier logging with separate sinks for different log levels.

    Logging Tiers:
    - CRITICAL/ERROR: Halted runs, failed preconditions
    - SUCCESS/INFO: Planned layout, each executed action, run summary
    - DEBUG: Rendered commands, resolved device paths
    - TRACE: Raw stderr from external tools

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when debug or trace is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs, the persisted audit trail (30 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Custom log directory (defaults to ~/.local/state/multiboot-provisioner/logs)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr) - Operator-facing, filtered
    logger.add(
        sys.stderr,
        level=console_level,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        filter=_combined_filter,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "<blue>{extra[job_id]: <18}</blue> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations Log - Important events only (INFO+)
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <18} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log - Detailed diagnostics (DEBUG+, or TRACE+ when trace=True)
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            enqueue=True,
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <18} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Structured JSON Log - Audit trail for every executed action
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        enqueue=True,
        serialize=True,
        format="{message}",
    )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking a provisioning run
        tags: Tags for filtering (e.g., ["sequencer", "audit"])
        source: Source component (e.g., "planner", "sequencer")

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


def new_job_id(operation: str) -> str:
    return f"{operation}-{uuid.uuid4().hex[:8]}"


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking a long-running operation with automatic timing.

    Logs operation start, completion, and failure with duration tracking.

    Args:
        operation: Operation name (e.g., "provision", "plan")
        **details: Operation-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("provision", device="nvme0n1") as log:
            log.debug("Resolving layout")
    """
    job_id = new_job_id(operation)

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating component loggers with automatic context.

    Each factory method returns a logger pre-configured with the source and
    tags for that component.
    """

    @staticmethod
    def for_planner() -> Logger:
        """Logger for partition geometry planning."""
        return logger.bind(source="planner", tags=["planner", "geometry"])

    @staticmethod
    def for_sequencer(job_id: str | None = None) -> Logger:
        """Logger for a sequencer run."""
        if job_id is None:
            job_id = new_job_id("run")
        return logger.bind(job_id=job_id, source="sequencer", tags=["sequencer"])

    @staticmethod
    def for_commands() -> Logger:
        """Logger for external command execution."""
        return logger.bind(source="command", tags=["command"])

    @staticmethod
    def for_command_output() -> Logger:
        """Logger for raw tool output, shown on the console only at TRACE."""
        return logger.bind(source="command", tags=["command", COMMAND_OUTPUT_TAG])

    @staticmethod
    def for_devices() -> Logger:
        """Logger for device discovery and precondition checks."""
        return logger.bind(source="devices", tags=["devices", "hardware"])

    @staticmethod
    def for_audit(job_id: str | None = None) -> Logger:
        """Logger for the per-action audit trail."""
        extras: dict[str, object] = {"source": "audit", "tags": ["audit"]}
        if job_id is not None:
            extras["job_id"] = job_id
        return logger.bind(**extras)

    @staticmethod
    def for_system() -> Logger:
        """Logger for system operations (startup, shutdown, config)."""
        return logger.bind(source="system", tags=["system"])


class EventLogger:
    """
    Structured event logger using standardized schemas.

    Provides methods for logging the provisioning events with consistent
    structure and fields.
    """

    @staticmethod
    def log_plan_resolved(log: Logger, device: DeviceInfo, plan: Plan, **extra) -> None:
        """Log a resolved partition plan."""
        log.info(
            f"Resolved {len(plan)} partitions for {device.identifier}",
            event_type="plan_resolved",
            device=device.identifier,
            capacity_bytes=device.capacity_bytes,
            end_byte=plan.end_byte,
            partitions=[
                {
                    "name": part.name,
                    "role": part.role.value,
                    "start_byte": part.start_byte,
                    "end_byte": part.end_byte,
                }
                for part in plan
            ],
            **extra,
        )

    @staticmethod
    def log_run_started(log: Logger, mode: str, action_count: int, **extra) -> None:
        """Log sequencer run start."""
        log.info(
            f"Run started ({mode}, {action_count} actions)",
            event_type="run_started",
            mode=mode,
            action_count=action_count,
            **extra,
        )

    @staticmethod
    def log_step_result(log: Logger, result: ExecutionResult, **extra) -> None:
        """Log the outcome of one action."""
        fields = result.to_dict()
        message = f"[{result.index}] {result.action.kind} {result.outcome.value}"
        if result.command is not None:
            message += f": {result.command}"
        step_log = log.bind(event_type="step_result", **fields, **extra)
        if result.outcome.value == "failed":
            step_log.error(message)
        else:
            step_log.info(message)

    @staticmethod
    def log_run_finished(log: Logger, report: ExecutionReport, **extra) -> None:
        """Log sequencer run end."""
        if report.completed:
            log.success(
                f"Run completed ({len(report)} actions)",
                event_type="run_finished",
                state=report.state.value,
                result_count=len(report),
                **extra,
            )
        else:
            log.error(
                f"Run halted at action {report.halted_at}",
                event_type="run_finished",
                state=report.state.value,
                halted_at=report.halted_at,
                result_count=len(report),
                **extra,
            )
