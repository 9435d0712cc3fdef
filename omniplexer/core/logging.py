"""Logging configuration for omniplexer.

Everything goes to stdout through one handler on the root logger.  Two
formatters are available:

  _ContainerFormatter: human-readable, single-line, for local runs.

  _JsonFormatter: one JSON object per line, for log pipelines.  Context
    passed through ``extra=`` (request id, upstream server name, upstream
    error or status) is lifted to top-level keys so it can be filtered on
    without regexes:

      {"level": "ERROR", "message": "Upstream HTTP error",
       "server": "node-a", "status": 503, "request_id": "..."}

Set LOG_JSON=true to switch to JSON output.
"""

from __future__ import annotations

import json
import logging
import sys


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    - Always: ISO-8601 timestamp, level, logger name, message
    - WARNING+: appends [filename:lineno]
    - Upstream context (server/error/status) is appended as key=value pairs
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"
    _UPSTREAM_FIELDS = ("server", "error", "status")

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        output = super().format(record)

        pairs = [
            f"{key}={getattr(record, key)}"
            for key in self._UPSTREAM_FIELDS
            if getattr(record, key, None) is not None
        ]
        if not pairs:
            return output
        # Keep any traceback below the first line
        first, sep, rest = output.partition("\n")
        return f"{first}  {' '.join(pairs)}{sep}{rest}"


class _JsonFormatter(logging.Formatter):
    """JSON formatter for machine-parseable log output (JSON Lines).

    Request fields are injected by RequestContextMiddleware; upstream
    fields by the fetcher when an upstream call fails.
    """

    _CONTEXT_FIELDS = (
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        "route_mode",
        "server",
        "error",
        "status",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger for container environments.

    Args:
        level_name: Log level string (debug/info/warning/error).  Unknown
                    names fall back to INFO.
        json_format: If True, emit JSON lines.  Controlled by LOG_JSON.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # httpx logs every upstream request at INFO; one scrape fans out to N of them
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
