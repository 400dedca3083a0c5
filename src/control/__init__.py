"""Controlled execution module.

This module provides the execute-with-controls pipeline and the per-domain
wiring of the control plane components.
"""

from src.control.bootstrap import ApprovalStats, DomainControls
from src.control.executor import ControlledExecutor, ExecutionResult

__all__ = [
    "ApprovalStats",
    "ControlledExecutor",
    "DomainControls",
    "ExecutionResult",
]
