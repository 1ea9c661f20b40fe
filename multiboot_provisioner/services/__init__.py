"""Provisioning services: layout construction, action sequencing and the
audit trail.

Main Entry Points:
    - build_actions(): Ordered action list for a resolved plan
    - ExecutionSequencer.run(): Execute or dry-run an action list
"""

from .audit import AuditSink, ListAuditSink, LoggerAuditSink
from .layout import BootTarget, build_actions
from .sequencer import ExecutionSequencer

__all__ = [
    "AuditSink",
    "BootTarget",
    "ExecutionSequencer",
    "ListAuditSink",
    "LoggerAuditSink",
    "build_actions",
]
