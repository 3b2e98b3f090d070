"""Per-pass trace of decisions and skipped records."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class PassTrace:
    """Captured trace entries for one reconciliation pass."""

    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    details: list[tuple[str, str]] = field(default_factory=list)  # (type, message)

    def add(self, detail_type: str, message: str) -> None:
        self.details.append((detail_type, message))

    def of_type(self, detail_type: str) -> list[str]:
        return [message for kind, message in self.details if kind == detail_type]
