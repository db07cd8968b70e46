from __future__ import annotations

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# dedicated audit streams: logger name -> file
AUDIT_LOGS = {
    "kasira.transactions": "transactions.log",
    "kasira.insights": "insights.log",
}


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``key=value`` message bodies are kept verbatim."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _rotating(path: Path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=2_000_000, backupCount=5, encoding="utf-8")
    handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    handler.setLevel(level)
    return handler


def setup_logging(logs_dir: Path, level: int = logging.INFO, console: bool = False) -> None:
    """Attach file handlers once per process; later calls only adjust the level."""
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    if root.handlers:
        return

    root.addHandler(_rotating(logs_dir / "app.log", logging.INFO))
    root.addHandler(_rotating(logs_dir / "errors.log", logging.ERROR))
    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        stream.setLevel(logging.WARNING)
        root.addHandler(stream)

    for name, filename in AUDIT_LOGS.items():
        audit = logging.getLogger(name)
        audit.addHandler(_rotating(logs_dir / filename, logging.INFO))
        audit.setLevel(logging.INFO)
