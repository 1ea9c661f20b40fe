"""Audit sinks for sequencer results.

The sequencer hands every ExecutionResult to an AuditSink as soon as it is
appended. Sinks only consume; nothing is ever read back from them.
"""

from __future__ import annotations

from typing import Protocol

from multiboot_provisioner.domain.models import ExecutionResult
from multiboot_provisioner.logging import EventLogger, LoggerFactory


class AuditSink(Protocol):
    def record(self, result: ExecutionResult) -> None:
        ...


class LoggerAuditSink:
    """Emits one structured log event per result.

    Persisted by the structured JSONL sink configured in setup_logging().
    """

    def __init__(self, job_id: str | None = None):
        self.log = LoggerFactory.for_audit(job_id)

    def record(self, result: ExecutionResult) -> None:
        EventLogger.log_step_result(self.log, result)


class ListAuditSink:
    """Keeps results in memory, in the order they were recorded."""

    def __init__(self) -> None:
        self.results: list[ExecutionResult] = []

    def record(self, result: ExecutionResult) -> None:
        self.results.append(result)
