"""SQLite request logging for API."""

import sqlite3
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from core.config import DB_PATH

REQUEST_COLUMNS = (
    "request_id",
    "timestamp",
    "endpoint",
    "method",
    "client_ip",
    "payload_size_bytes",
    "from_date",
    "to_date",
    "status_code",
    "error_code",
    "error_message",
    "processing_time_ms",
    "items_returned",
)


@dataclass
class RequestLog:
    """One API call: what was asked, how it ended and how long it took."""

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    endpoint: str = ""
    method: str = ""
    client_ip: str | None = None
    payload_size_bytes: int | None = None
    from_date: str | None = None
    to_date: str | None = None
    status_code: int = 0
    error_code: str | None = None
    error_message: str | None = None
    processing_time_ms: int = 0
    items_returned: int | None = None
    details: list[tuple[str, str]] = field(default_factory=list)  # (type, message)
    started: float = field(default_factory=time.perf_counter, repr=False)

    def finish(self, status_code: int, items_returned: int | None = None) -> None:
        self.status_code = status_code
        self.items_returned = items_returned
        self.processing_time_ms = int((time.perf_counter() - self.started) * 1000)

    def fail(self, status_code: int, code: str | None, message: str, details: list[str] = ()) -> None:
        self.error_code = code
        self.error_message = message
        self.details.extend(("validation_error", d) for d in details)
        self.finish(status_code)


def log_request(log: RequestLog) -> None:
    """Write the request row and its detail rows."""
    placeholders = ", ".join("?" for _ in REQUEST_COLUMNS)
    conn = sqlite3.connect(DB_PATH)
    try:
        conn.execute(
            f"INSERT INTO api_requests ({', '.join(REQUEST_COLUMNS)}) VALUES ({placeholders})",
            tuple(getattr(log, column) for column in REQUEST_COLUMNS),
        )
        conn.executemany(
            "INSERT INTO api_request_details (request_id, detail_type, message) VALUES (?, ?, ?)",
            [(log.request_id, detail_type, message) for detail_type, message in log.details],
        )
        conn.commit()
    finally:
        conn.close()
