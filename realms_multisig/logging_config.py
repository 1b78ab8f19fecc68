"""
Structured Logging Configuration

Provides:
- Correlation IDs tying together the RPC calls of one multisig operation
- Multisig / proposal context on every record
- JSON formatting for machine parsing
- Human-readable console output
- Log rotation support
"""

import contextvars
import json
import logging
import logging.handlers
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union
from uuid import uuid4


correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)
multisig_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "multisig", default=None
)
operation_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "operation", default=None
)
proposal_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "proposal", default=None
)

# Third-party clients log full transaction payloads at DEBUG
for _noisy in ("solana", "solders", "httpx", "httpcore"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)


def short_key(value: Any) -> str:
    """Abbreviate an address or signature for log lines."""
    text = str(value)
    if len(text) <= 12:
        return text
    return f"{text[:8]}...{text[-4:]}"


class OperationContext:
    """Context manager for tagging log records with the operation in flight."""

    def __init__(
        self,
        operation: Optional[str] = None,
        multisig: Any = None,
        proposal: Any = None,
        correlation_id: Optional[str] = None,
    ):
        self.operation = operation
        self.correlation_id = correlation_id or str(uuid4())
        self.multisig = str(multisig) if multisig is not None else None
        self.proposal = str(proposal) if proposal is not None else None
        self._tokens = []

    def __enter__(self):
        self._tokens.append((correlation_id_var, correlation_id_var.set(self.correlation_id)))
        if self.operation:
            self._tokens.append((operation_var, operation_var.set(self.operation)))
        if self.multisig:
            self._tokens.append((multisig_var, multisig_var.set(self.multisig)))
        if self.proposal:
            self._tokens.append((proposal_var, proposal_var.set(self.proposal)))
        return self

    def __exit__(self, *args):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


def _context_fields() -> Dict[str, str]:
    fields = {}
    correlation_id = correlation_id_var.get()
    operation = operation_var.get()
    multisig = multisig_var.get()
    proposal = proposal_var.get()
    if correlation_id:
        fields["correlation_id"] = correlation_id
    if operation:
        fields["operation"] = operation
    if multisig:
        fields["multisig"] = multisig
    if proposal:
        fields["proposal"] = proposal
    return fields


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(
        self,
        include_traceback: bool = True,
        include_context: bool = True,
        extra_fields: Optional[Dict[str, Any]] = None,
    ):
        super().__init__()
        self.include_traceback = include_traceback
        self.include_context = include_context
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if self.include_context:
            log_data.update(_context_fields())

        log_data.update(self.extra_fields)

        if record.exc_info and self.include_traceback:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        if hasattr(record, "extra_data"):
            log_data["extra"] = record.extra_data

        return json.dumps(log_data, default=str)


class StructuredFormatter(logging.Formatter):
    """Human-readable structured formatter for console output."""

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color
        self.colors = {
            "DEBUG": "\033[36m",  # Cyan
            "INFO": "\033[32m",  # Green
            "WARNING": "\033[33m",  # Yellow
            "ERROR": "\033[31m",  # Red
            "CRITICAL": "\033[35m",  # Magenta
            "RESET": "\033[0m",
        }

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        level = record.levelname
        if self.use_color and sys.stderr.isatty():
            color = self.colors.get(level, "")
            reset = self.colors["RESET"]
            level = f"{color}{level}{reset}"

        parts = [
            f"[{timestamp}]",
            f"[{level}]",
            f"[{record.name}]",
            record.getMessage(),
        ]

        context = _context_fields()
        context_parts = []
        if "correlation_id" in context:
            context_parts.append(f"correlation_id={context['correlation_id'][:8]}")
        if "operation" in context:
            context_parts.append(f"op={context['operation']}")
        if "multisig" in context:
            context_parts.append(f"multisig={short_key(context['multisig'])}")
        if "proposal" in context:
            context_parts.append(f"proposal={short_key(context['proposal'])}")
        if context_parts:
            parts.append(f"[{', '.join(context_parts)}]")

        if record.exc_info:
            exc_text = "\n".join(traceback.format_exception(*record.exc_info))
            parts.append(f"\n{exc_text}")

        return " ".join(parts)


def setup_logging(
    level: Union[str, int] = logging.INFO,
    json_format: bool = False,
    log_dir: Optional[Union[str, Path]] = None,
    log_file: str = "realms_multisig.log",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    extra_fields: Optional[Dict[str, Any]] = None,
) -> logging.Logger:
    """
    Configure logging for the CLI and scripts.

    Console output goes to stderr so command results on stdout stay
    machine-readable. A rotating file handler is added when ``log_dir`` is
    given.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Emit JSON lines on the console instead of plain text
        log_dir: Directory for the rotating log file (JSON formatted)
        log_file: Name of the log file
        max_bytes: Max size of log file before rotation
        backup_count: Number of backup files to keep
        extra_fields: Additional fields to include in all JSON logs

    Returns:
        Configured root logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    if json_format:
        console_handler.setFormatter(JSONFormatter(extra_fields=extra_fields))
    else:
        console_handler.setFormatter(StructuredFormatter(use_color=True))
    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path / log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter(extra_fields=extra_fields))
        root_logger.addHandler(file_handler)

    return root_logger
