"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.

Logging module for teradatapyapi.
Logging is disabled by default and costs a single level check per call until
setup_logging() is called.
"""

import logging
from logging.handlers import RotatingFileHandler
import os
import sys
import threading
import datetime
import re
import contextvars
from typing import Optional


DEBUG = logging.DEBUG

# Output destination constants
STDOUT = 'stdout'  # Log to stdout only
FILE = 'file'      # Log to file only (default)
BOTH = 'both'      # Log to both file and stdout

LOG_DIR_NAME = "teradatapyapi_logs"

# Module-level context variable for trace IDs (thread-safe, async-safe)
_trace_id_var = contextvars.ContextVar('trace_id', default=None)


class TraceIDFilter(logging.Filter):
    """Filter that adds trace_id to all log records."""

    def filter(self, record):
        trace_id = _trace_id_var.get()
        record.trace_id = trace_id if trace_id else '-'
        return True


class TeradataLogger:
    """
    Singleton logger for teradatapyapi.

    Features:
    - Disabled until setup_logging() is called
    - Automatic file rotation (512MB, 5 backups)
    - Credential sanitization for JSON connection parameters
    - Trace ID support with contextvars
    - Thread-safe operation

    The native driver has its own diagnostic output, controlled by the
    ``log`` connection parameter; this logger only covers the binding layer.
    """

    _instance: Optional['TeradataLogger'] = None
    _lock = threading.Lock()

    def __new__(cls) -> 'TeradataLogger':
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(TeradataLogger, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if hasattr(self, '_initialized'):
            return

        self._initialized = True

        self._logger = logging.getLogger('teradatapyapi')
        self._logger.setLevel(logging.CRITICAL)  # Disabled by default
        self._logger.propagate = False

        self._logger.addFilter(TraceIDFilter())

        self._trace_counter = 0
        self._trace_lock = threading.Lock()

        self._output_mode = FILE
        self._file_handler = None
        self._stdout_handler = None
        self._log_file = None
        self._custom_log_path = None
        # Handlers are created lazily so that changing the output mode before
        # enabling logging never creates an empty log file
        self._handlers_initialized = False

    def _setup_handlers(self):
        """Create the file and/or stdout handlers for the current output mode."""
        if self._logger.handlers:
            for handler in self._logger.handlers[:]:
                handler.close()
                self._logger.removeHandler(handler)

        self._file_handler = None
        self._stdout_handler = None

        formatter = logging.Formatter(
            '%(asctime)s [%(trace_id)s] - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
        )

        if self._output_mode in (FILE, BOTH):
            if self._custom_log_path:
                self._log_file = self._custom_log_path
                log_dir = os.path.dirname(self._custom_log_path)
                if log_dir and not os.path.exists(log_dir):
                    os.makedirs(log_dir, exist_ok=True)
            else:
                log_dir = os.path.join(os.getcwd(), LOG_DIR_NAME)
                if not os.path.exists(log_dir):
                    os.makedirs(log_dir, exist_ok=True)

                timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
                self._log_file = os.path.join(
                    log_dir,
                    f"teradatapyapi_trace_{timestamp}_{os.getpid()}.log"
                )

            self._file_handler = RotatingFileHandler(
                self._log_file,
                maxBytes=512 * 1024 * 1024,  # 512MB
                backupCount=5
            )
            self._file_handler.setFormatter(formatter)
            self._logger.addHandler(self._file_handler)
        else:
            self._log_file = None

        if self._output_mode in (STDOUT, BOTH):
            self._stdout_handler = logging.StreamHandler(sys.stdout)
            self._stdout_handler.setFormatter(formatter)
            self._logger.addHandler(self._stdout_handler)

    @staticmethod
    def _sanitize_message(msg: str) -> str:
        """
        Mask credentials in a log message.

        Handles JSON members such as ``"password":"secret"`` (connection
        parameters are JSON documents) as well as ``password=secret`` pairs.

        Args:
            msg: The message to sanitize

        Returns:
            str: Sanitized message with credentials replaced by ***
        """
        patterns = [
            (r'("(?:password|logdata|jws_private_key|oidc_token|oidc_clientsecret)"\s*:\s*)"(?:[^"\\]|\\.)*"',
             r'\1"***"'),
            (r'(PWD|Password|pwd|password)\s*=\s*[^;,\s]+', r'\1=***'),
            (r'(Authorization:\s*Bearer\s+)[^\s;,]+', r'\1***'),
        ]

        sanitized = msg
        for pattern, replacement in patterns:
            sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)

        return sanitized

    def generate_trace_id(self, prefix: str = "TRACE") -> str:
        """
        Generate a unique trace ID for correlating log messages.

        Format: PREFIX-PID-ThreadID-Counter, e.g. CONN-12345-67890-1

        Args:
            prefix: Prefix for the trace ID (e.g., "CONN", "CURS")

        Returns:
            str: Unique trace ID
        """
        with self._trace_lock:
            self._trace_counter += 1
            counter = self._trace_counter

        return f"{prefix}-{os.getpid()}-{threading.get_ident()}-{counter}"

    def set_trace_id(self, trace_id: str):
        """Set the trace ID for the current context."""
        _trace_id_var.set(trace_id)

    def get_trace_id(self) -> Optional[str]:
        """Get the trace ID for the current context."""
        return _trace_id_var.get()

    def clear_trace_id(self):
        """Clear the trace ID for the current context."""
        _trace_id_var.set(None)

    def _log(self, level: int, msg: str, *args, **kwargs):
        # Fast level check (zero overhead if disabled)
        if not self._logger.isEnabledFor(level):
            return

        if args:
            msg = msg % args

        self._logger.log(level, self._sanitize_message(msg), **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        """Log at DEBUG level"""
        self._log(logging.DEBUG, f"[Python] {msg}", *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        """Log at INFO level"""
        self._log(logging.INFO, f"[Python] {msg}", *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        """Log at WARNING level"""
        self._log(logging.WARNING, f"[Python] {msg}", *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        """Log at ERROR level"""
        self._log(logging.ERROR, f"[Python] {msg}", *args, **kwargs)

    def _setLevel(self, level: int, output: Optional[str] = None, log_file_path: Optional[str] = None):
        """
        Internal method to set logging level (use setup_logging() instead).

        Raises:
            ValueError: If output mode is invalid
        """
        if output is not None:
            if output not in (FILE, STDOUT, BOTH):
                raise ValueError(
                    f"Invalid output mode: {output}. "
                    f"Must be one of: {FILE}, {STDOUT}, {BOTH}"
                )
            self._output_mode = output

        if log_file_path is not None:
            self._custom_log_path = log_file_path

        if not self._handlers_initialized or output is not None or log_file_path is not None:
            self._setup_handlers()
            self._handlers_initialized = True

        self._logger.setLevel(level)

    @property
    def handlers(self) -> list:
        return self._logger.handlers

    @property
    def output(self) -> str:
        """Get the current output mode"""
        return self._output_mode

    @property
    def log_file(self) -> Optional[str]:
        """Get the current log file path (None if file output is disabled)"""
        return self._log_file

    @property
    def level(self) -> int:
        return self._logger.level


# Singleton logger instance
logger = TeradataLogger()


def setup_logging(output: str = 'file', log_file_path: Optional[str] = None):
    """
    Enable DEBUG logging for the binding layer.

    Args:
        output: Where to send logs: 'file' (default), 'stdout' or 'both'
        log_file_path: Optional custom path for the log file. If not
                       specified, a file is created in ./teradatapyapi_logs/

    Examples:
        import teradatapyapi

        teradatapyapi.setup_logging()
        teradatapyapi.setup_logging(output='stdout')
        teradatapyapi.setup_logging(output='both', log_file_path="/tmp/debug.log")
    """
    logger._setLevel(logging.DEBUG, output, log_file_path)
    return logger
