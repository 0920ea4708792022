"""Status information for a resource."""

from enum import StrEnum
from dataclasses import dataclass, field


class Status(StrEnum):
    """Reconciliation status for a resource."""

    PENDING = "Pending"
    READY = "Ready"
    FAILED = "Failed"


@dataclass
class StatusInfo:
    """Reconciliation status and the errors recorded by the last pass."""

    status: Status
    error: str | None = None
    errors: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        """Return a string representation of the status."""
        if self.error:
            return f"{self.status}: {self.error}"
        return str(self.status)
