"""
Structured Logging Configuration

Console output is colourised on a terminal and plain otherwise; with
``json_lines`` every record is a single JSON object. Workflow code passes
``extra={"workflow_id": ..., "phase": ...}`` and both show up in the output.
"""
import json
import logging
import sys
from typing import Any, Dict, Optional
from datetime import datetime, timezone


CONTEXT_FIELDS = ("workflow_id", "phase", "agent")


class StructuredFormatter(logging.Formatter):
    """Single-line formatter: timestamp, level, logger, context, message."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, use_color: bool = False, json_lines: bool = False):
        super().__init__()
        self.use_color = use_color
        self.json_lines = json_lines

    @staticmethod
    def context_of(record: logging.LogRecord) -> Dict[str, Any]:
        return {
            name: getattr(record, name)
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        }

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        context = self.context_of(record)

        if self.json_lines:
            payload: Dict[str, Any] = {
                "timestamp": timestamp,
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
                **context,
            }
            if record.exc_info:
                payload["exception"] = self.formatException(record.exc_info)
            return json.dumps(payload, ensure_ascii=False, default=str)

        tags = "".join(f" {key}={value}" for key, value in context.items())
        line = f"[{timestamp}] {record.levelname:8} [{record.name}]{tags} {record.getMessage()}"
        if self.use_color:
            line = f"{self.COLORS.get(record.levelname, '')}{line}{self.RESET}"

        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_lines: bool = False,
) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path; the file always gets plain lines
        json_lines: Emit one JSON object per record on the console
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter(
        use_color=sys.stdout.isatty() and not json_lines,
        json_lines=json_lines,
    ))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Logger for a module (pass ``__name__``)."""
    return logging.getLogger(name)
