"""
.. include:: ../README.md
"""

__all__ = [
    "manifest",
    "generators",
    "params",
    "template",
    "resource_diff",
    "controller",
    "orchestrator",
    "store",
    "repo_server",
    "task",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
