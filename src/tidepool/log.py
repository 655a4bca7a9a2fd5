"""
=============================================================================
LOGGING
=============================================================================

Tidepool logs through the standard `logging` module. Every module uses

    logger = logging.getLogger(__name__)

so levels can be tuned per component:

    tidepool.core.thread_pool   worker start/stop, task failures
    tidepool.core.listener      bind, accept errors
    tidepool.core.shutdown      shutdown sequence
    tidepool.access             one line per response

=============================================================================
LOG FORMATS
=============================================================================

    TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 2026-10-19 12:00:00 [INFO] tidepool.access: 127.0.0.1 - - [19/Oct/  │
    │ 2026:12:00:00 +0000] "GET /index.html HTTP/1.1" 200 143 1.20ms      │
    └─────────────────────────────────────────────────────────────────────┘

    JSON (one object per line, for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"time": "...", "level": "INFO", "logger": "tidepool.access",       │
    │  "message": "...", "method": "GET", "path": "/index.html",          │
    │  "status_code": 200, "content_length": 143, "duration_ms": 1.2}     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import json
import logging
import time
from dataclasses import dataclass, asdict
from typing import Optional


TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

access_logger = logging.getLogger("tidepool.access")


class JsonFormatter(logging.Formatter):
    """
    Formats each record as a single JSON line.

    Access-log records carry their structured fields in `record.access`;
    those are merged into the top-level object.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }

        access = getattr(record, "access", None)
        if isinstance(access, dict):
            entry.update(access)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False)


def configure_logging(level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure root logging for the process.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        log_format: "text" or "json".
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))

    logging.basicConfig(level=numeric_level, handlers=[handler])
    logging.getLogger("tidepool").setLevel(numeric_level)


@dataclass
class RequestLog:
    """
    Structured access-log entry for one response.

    Attributes:
        connection_id: Id of the connection (matches the DEBUG logs).
        client_ip: Client's IP address.
        method: Request method, "-" if the request could not be parsed.
        target: Request target as sent, "-" if unknown.
        version: HTTP version, "-" if unknown.
        status_code: Status sent to the client.
        content_length: Body size in bytes (even for HEAD).
        duration_ms: Time from reading the request to sending the response.
        user_agent: User-Agent header, "-" if absent.
        timestamp: Apache-style timestamp.
    """

    connection_id: str
    client_ip: str
    method: str
    target: str
    version: str
    status_code: int
    content_length: int
    duration_ms: float
    user_agent: str = "-"
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = time.strftime("%d/%b/%Y:%H:%M:%S %z")

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        """Apache common log format, plus the duration."""
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.target} {self.version}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


def log_request(entry: RequestLog, level: Optional[int] = None) -> None:
    """
    Emit an access-log line.

    Server errors are logged at WARNING, everything else at INFO.
    """
    if level is None:
        level = logging.WARNING if entry.status_code >= 500 else logging.INFO
    access_logger.log(level, entry.to_text(), extra={"access": entry.to_dict()})
