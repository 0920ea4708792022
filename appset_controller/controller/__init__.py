"""Reconciler for ApplicationSets and the Applications they own."""

from .controller import ApplicationSetController, ApplicationSetControllerConfig
from .result import (
    Action,
    ApplyOperation,
    ReconcileError,
    ReconcileResult,
    compute_operations,
)

__all__ = [
    "ApplicationSetController",
    "ApplicationSetControllerConfig",
    "Action",
    "ApplyOperation",
    "ReconcileError",
    "ReconcileResult",
    "compute_operations",
]
