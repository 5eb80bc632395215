"""
JSONL logging bootstrap.
Installs a single JSONL sink early in CLI startup.
"""

import json
import logging
import os
from datetime import UTC
from datetime import datetime
from pathlib import Path

LOG_PATH_ENV_VAR = "PROFILEKEEPER_LOG_PATH"
LOG_LEVEL_ENV_VAR = "PROFILEKEEPER_LOG_LEVEL"

DEFAULT_PATH = os.environ.get(LOG_PATH_ENV_VAR, "./profilekeeper.log.jsonl")
DEFAULT_LEVEL = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper()

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset(
    (
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "name",
        "taskName",
    )
)


class JsonlHandler(logging.Handler):
    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            base = {
                "ts": datetime.now(UTC).isoformat(timespec="milliseconds"),
                "lvl": record.levelname,
                "schema": {"name": "profilekeeper.log", "ver": "1.0.0"},
                "logger": record.name,
                "thread": record.threadName,
                "message": record.getMessage(),
            }
            for k, v in record.__dict__.items():
                if k in _RESERVED_ATTRS:
                    continue
                base.setdefault(k, v)
            line = json.dumps(base, ensure_ascii=False, default=str)
            # Handler.lock serializes writers from concurrent threads.
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception:
            self.handleError(record)


def init_json_logging(path: str | Path | None = None, level: str | None = None) -> JsonlHandler:
    path = path or DEFAULT_PATH
    level = (level or DEFAULT_LEVEL).upper()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    # Remove existing handlers of the same kind to avoid duplicates
    for h in list(root.handlers):
        if isinstance(h, JsonlHandler):
            root.removeHandler(h)
    handler = JsonlHandler(path)
    root.addHandler(handler)
    return handler
