"""Orchestrator for appset-controller.

Loads ApplicationSets, Applications and cluster Secrets from the filesystem
into a store and runs the controller against them.
"""

from .orchestrator import Orchestrator, OrchestratorConfig
from .loader import ResourceLoader, LoadOptions

__all__ = [
    "Orchestrator",
    "OrchestratorConfig",
    "ResourceLoader",
    "LoadOptions",
]
