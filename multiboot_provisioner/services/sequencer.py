"""Ordered execution of provisioning actions.

The sequencer takes a resolved Plan and a list of actions and runs them one
at a time against an injected command runner, collecting one ExecutionResult
per action.

Run Lifecycle:
    IDLE -> RUNNING -> COMPLETED
                    -> HALTED (at the index of the first failure)

    A halted run is never resumed. The disk state after a failure is not
    trusted, so the caller must re-plan and start over.

Modes:
    APPLY:   the precondition gate is checked once, then every command is
             invoked synchronously. The first failure is recorded and nothing
             after it runs. No retries, no rollback, no cleanup.
    DRY_RUN: nothing is invoked and the gate is not consulted. Every action
             is recorded as skipped together with the command it would have
             issued.

Partition references are resolved for the whole action list before anything
runs, so an out-of-range index fails the run with no command issued.

Example:
    sequencer = ExecutionSequencer(SubprocessCommandRunner(), gate=gate, audit=sink)
    report = sequencer.run(plan, actions, RunMode.APPLY)
    report.raise_for_failure()
"""

from __future__ import annotations

from typing import Mapping, Optional, Sequence

from multiboot_provisioner.domain.models import (
    Action,
    ApplyArchive,
    CommandOutcome,
    CommandSpec,
    CopyImage,
    ExecutionReport,
    ExecutionResult,
    Outcome,
    Plan,
    RunMode,
    RunState,
)
from multiboot_provisioner.logging import EventLogger, LoggerFactory, new_job_id
from multiboot_provisioner.storage.commands import CommandRenderer, CommandRunner
from multiboot_provisioner.storage.exceptions import (
    PreconditionFailedError,
    UnresolvedPartitionError,
)
from multiboot_provisioner.storage.naming import DevicePathResolver, PartitionNamer
from multiboot_provisioner.storage.validation import (
    ARCHIVE_KIND,
    IMAGE_KIND,
    ImageValidator,
    PreconditionGate,
)

from .audit import AuditSink


DRY_RUN_REASON = "dry-run"


class ExecutionSequencer:
    """Runs actions strictly in order and stops at the first failure."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        gate: Optional[PreconditionGate] = None,
        audit: Optional[AuditSink] = None,
        image_validator: Optional[ImageValidator] = None,
        namer: Optional[PartitionNamer] = None,
        tools: Optional[Mapping[str, str]] = None,
        job_id: Optional[str] = None,
    ):
        self.runner = runner
        self.gate = gate
        self.audit = audit
        self.image_validator = image_validator
        self.namer = namer or PartitionNamer()
        self.tools = tools
        self.job_id = job_id or new_job_id("run")
        self.state = RunState.IDLE
        self.log = LoggerFactory.for_sequencer(self.job_id)

    def render(self, plan: Plan, actions: Sequence[Action]) -> list[CommandSpec]:
        """Render every action against ``plan`` without running anything.

        Raises:
            UnresolvedPartitionError: If any action references a partition
                index outside the plan
        """
        renderer = CommandRenderer(DevicePathResolver(plan, self.namer), self.tools)
        commands = []
        for action in actions:
            try:
                commands.append(renderer.render(action))
            except UnresolvedPartitionError as error:
                self.log.error(f"Unresolved partition reference in {action.kind}: {error}")
                raise UnresolvedPartitionError(
                    error.partition_index, error.plan_size, action
                ) from error
        return commands

    def run(
        self,
        plan: Plan,
        actions: Sequence[Action],
        mode: RunMode = RunMode.APPLY,
    ) -> ExecutionReport:
        """Execute (or, in DRY_RUN, record) ``actions`` in order.

        Returns:
            ExecutionReport with one result per attempted action. A halted
            run ends with its single FAILED result.

        Raises:
            UnresolvedPartitionError: Before anything runs, if an action
                references a partition outside the plan
            PreconditionFailedError: Before anything runs in APPLY mode, if
                the gate reports the environment is not ready
            Exception: Whatever the runner raises, after the action has been
                recorded as the halting FAILED result
        """
        self.state = RunState.IDLE
        report = ExecutionReport(mode=mode)
        commands = self.render(plan, actions)

        if mode is RunMode.APPLY and self.gate is not None:
            gate_result = self.gate.check()
            if not gate_result.ready:
                self.log.error(f"Precondition failed: {gate_result.reason}")
                raise PreconditionFailedError(gate_result.reason)

        self._set_state(report, RunState.RUNNING)
        EventLogger.log_run_started(self.log, mode.value, len(actions))

        for index, (action, command) in enumerate(zip(actions, commands)):
            if mode is RunMode.DRY_RUN:
                result = ExecutionResult(
                    index, action, Outcome.SKIPPED, command, DRY_RUN_REASON
                )
            else:
                outcome = self._execute(report, index, action, command)
                if outcome.succeeded:
                    result = ExecutionResult(index, action, Outcome.SUCCEEDED, command)
                else:
                    result = ExecutionResult(
                        index, action, Outcome.FAILED, command, outcome.reason
                    )
            self._append(report, result)
            if result.outcome is Outcome.FAILED:
                report.halted_at = index
                self._set_state(report, RunState.HALTED)
                break
        else:
            self._set_state(report, RunState.COMPLETED)

        EventLogger.log_run_finished(self.log, report)
        return report

    def _execute(
        self,
        report: ExecutionReport,
        index: int,
        action: Action,
        command: CommandSpec,
    ) -> CommandOutcome:
        rejection = self._check_image(action)
        if rejection is not None:
            return CommandOutcome.failed(None, rejection)
        self.log.debug(f"Invoking: {command}")
        try:
            return self.runner.invoke(command)
        except Exception as error:
            self.log.exception(f"Command runner raised while running {action.kind}")
            self._append(
                report,
                ExecutionResult(
                    index,
                    action,
                    Outcome.FAILED,
                    command,
                    f"{type(error).__name__}: {error}",
                ),
            )
            report.halted_at = index
            self._set_state(report, RunState.HALTED)
            EventLogger.log_run_finished(self.log, report)
            raise

    def _check_image(self, action: Action) -> Optional[str]:
        if self.image_validator is None:
            return None
        if isinstance(action, CopyImage):
            kind = IMAGE_KIND
        elif isinstance(action, ApplyArchive):
            kind = ARCHIVE_KIND
        else:
            return None
        check = self.image_validator.validate(action.source_path, kind)
        if check.valid:
            return None
        self.log.error(f"Image rejected: {check.reason}")
        return check.reason or f"Image rejected: {action.source_path}"

    def _append(self, report: ExecutionReport, result: ExecutionResult) -> None:
        report.results.append(result)
        if self.audit is not None:
            self.audit.record(result)

    def _set_state(self, report: ExecutionReport, state: RunState) -> None:
        self.state = state
        report.state = state
