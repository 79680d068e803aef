"""
Logging for Splice.

Provides structured logging with:
- Console output (colorized if supported)
- File output (JSON lines for parsing)
- Context tracking (component, file, edit index, operation)
- Error categorization via ERROR_CODES

Engine modules log through logging.getLogger(__name__); setup_logger
attaches handlers to the package logger so every module is covered.

Usage:
    from splice.core.logger import setup_logger

    logger = setup_logger("splice", log_file=Path("splice.log"))
    logger.info("Applying batch", extra={"file_path": "src/app.ts"})
    logger.error("Fragment not found", extra={"edit_index": 2, "error_code": "MAT-01"})
"""

import json
import logging
import sys
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

ERROR_CODES = {
    # Validation
    "VAL-00": "Invalid edit batch",
    "VAL-01": "Overlapping diff ranges",
    "VAL-02": "Missing required parameters",
    "VAL-03": "Target file not found",
    "VAL-04": "Path outside workspace",

    # Matching
    "MAT-01": "Content not found",
    "MAT-02": "Low-confidence match",

    # Approval
    "APR-01": "Changes rejected",

    # File system
    "IO-01": "Write failed",
    "IO-02": "Read failed",
    "IO-03": "File too large",

    # Structure
    "STR-01": "Structural warning",

    # Configuration
    "CFG-01": "Config file not found",
    "CFG-02": "Malformed config file",
    "CFG-04": "Invalid confidence threshold",
}

CONTEXT_FIELDS = ('component', 'file_path', 'line_number', 'edit_index', 'error_code', 'operation')


@dataclass
class LogContext:
    """Context information for log entries."""
    component: Optional[str] = None
    file_path: Optional[str] = None
    line_number: Optional[int] = None
    edit_index: Optional[int] = None
    error_code: Optional[str] = None
    operation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, excluding None values."""
        return {k: v for k, v in asdict(self).items() if v is not None}


class ContextFilter(logging.Filter):
    """Add context information to log records."""

    def __init__(self, default_context: Optional[LogContext] = None):
        super().__init__()
        self.context = default_context or LogContext()

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.context.to_dict().items():
            if not hasattr(record, key):
                setattr(record, key, value)

        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, None)

        return True


class ColoredFormatter(logging.Formatter):
    """Colorized console formatter."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        if self.use_colors:
            parts = [f"{self.COLORS.get(level, '')}{level}{self.COLORS['RESET']}"]
        else:
            parts = [level]

        context_parts = []
        if getattr(record, 'component', None):
            context_parts.append(f"[{record.component}]")
        if getattr(record, 'file_path', None):
            file_info = str(record.file_path)
            if getattr(record, 'line_number', None) is not None:
                file_info += f":{record.line_number}"
            context_parts.append(f"({file_info})")
        if getattr(record, 'edit_index', None) is not None:
            context_parts.append(f"<edit {record.edit_index}>")
        if context_parts:
            parts.append(' '.join(context_parts))

        parts.append(record.getMessage())

        if getattr(record, 'error_code', None):
            error_desc = ERROR_CODES.get(record.error_code, "Unknown error")
            parts.append(f"[{record.error_code}: {error_desc}]")

        text = ' '.join(parts)
        if record.exc_info:
            text += '\n' + self.formatException(record.exc_info)
        return text


class JSONFormatter(logging.Formatter):
    """JSON formatter for file logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.now().isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name,
        }

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        extra_details = getattr(record, 'details', None)
        if extra_details:
            log_entry['details'] = extra_details

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logger(
    name: str = "splice",
    log_file: Optional[Path] = None,
    level: int = logging.INFO,
    console: bool = True,
    use_colors: bool = True
) -> logging.Logger:
    """
    Setup logger with file and console output.

    Console output goes to stderr so command output on stdout stays clean.

    Args:
        name: Logger name (the package logger covers every engine module)
        log_file: Path to log file (JSON lines)
        level: Logging level
        console: Enable console output
        use_colors: Use ANSI colors in console

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()

    # Filters live on handlers so records propagated from child loggers get context too
    context_filter = ContextFilter()

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.addFilter(context_filter)
        console_handler.setFormatter(ColoredFormatter(use_colors))
        logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(context_filter)
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)
        if level > logging.DEBUG:
            logger.setLevel(logging.DEBUG)
            if console:
                console_handler.setLevel(level)

    return logger


def get_logger(name: str = "splice") -> logging.Logger:
    """Get existing logger or create new one."""
    return logging.getLogger(name)


class EngineLogger:
    """
    Logger wrapper for engine components with automatic context.

    Usage:
        log = EngineLogger("applier")
        log.operation_start("apply", file_path="src/app.ts")
        log.track_operation("apply", success=True, duration=0.01, applied=3)
    """

    def __init__(self, component: str, logger: Optional[logging.Logger] = None):
        self.component = component
        self._logger = logger or get_logger(f"splice.{component}")

    def _log(
        self,
        level: int,
        message: str,
        file_path: Optional[str] = None,
        line_number: Optional[int] = None,
        edit_index: Optional[int] = None,
        error_code: Optional[str] = None,
        **kwargs
    ):
        extra = {
            'component': self.component,
            'file_path': str(file_path) if file_path else None,
            'line_number': line_number,
            'edit_index': edit_index,
            'error_code': error_code,
            **kwargs
        }
        self._logger.log(level, message, extra=extra)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def edit_error(
        self,
        message: str,
        file_path: str,
        edit_index: int,
        line_number: Optional[int] = None,
        error_code: Optional[str] = None
    ):
        """Log a failure tied to one edit of a batch."""
        self.error(
            message,
            file_path=file_path,
            edit_index=edit_index,
            line_number=line_number,
            error_code=error_code
        )

    def operation_start(self, operation: str, file_path: Optional[str] = None):
        """Log start of an operation."""
        self.debug(f"Starting: {operation}", file_path=file_path, operation=operation)

    def track_operation(
        self,
        operation: str,
        success: bool,
        duration: float,
        file_path: Optional[str] = None,
        **details
    ):
        """
        Record the outcome of an operation with its timing and counters.

        The details dict ends up in the JSON log line.
        """
        status = "ok" if success else "failed"
        self.info(
            f"{operation} {status} in {duration * 1000:.1f}ms",
            file_path=file_path,
            operation=operation,
            details=details or None,
        )
