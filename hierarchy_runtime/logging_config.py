"""
Logging setup for the hierarchy API and the dump_org CLI.

HierarchySession logs one line per committed, conflicted or aborted unit
of work and passes its details as ``extra=``. In JSON mode those details
become top-level keys, so commits per kind or conflicts per operation can
be counted without parsing the message.
"""
import json
import logging
import sys

UNIT_OF_WORK_FIELDS = (
    "operation", "kind", "attempt", "error_code",
    "duration_ms", "people_written", "departments_written",
)


class UnitOfWorkFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": round(record.created, 3),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in UNIT_OF_WORK_FIELDS:
            if hasattr(record, name):
                entry[name] = getattr(record, name)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Send every logger to stdout. Unknown level names fall back to INFO."""
    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(UnitOfWorkFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
        ))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # per-request access lines would drown the per-unit lines
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
