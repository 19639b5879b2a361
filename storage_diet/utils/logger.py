import logging
from logging import handlers
from pathlib import Path
import socket
from typing import Optional, Dict
import os
from datetime import datetime, timezone
import sys

# Cache for loggers to avoid duplicate creation
_logger_cache: Dict[str, logging.Logger] = {}

DEFAULT_LOG_DIR = Path.home() / ".storage-diet" / "logs"


def get_worker_name() -> str:
    """Get the worker name used in log lines (the host name)."""
    try:
        return socket.gethostname()
    except OSError:
        return "unknown-worker"


class RotatingFileHandlerWithCompression(handlers.RotatingFileHandler):
    """Rotating file handler that compresses old log files"""
    def emit(self, record):
        # Check if Python is shutting down
        if not sys or not sys.modules:
            return
        super().emit(record)

    def doRollover(self):
        if self.stream:
            self.stream.close()
            self.stream = None
        if self.backupCount > 0:
            for i in range(self.backupCount - 1, 0, -1):
                sfn = self.rotation_filename("%s.%d.gz" % (self.baseFilename, i))
                dfn = self.rotation_filename("%s.%d.gz" % (self.baseFilename, i + 1))
                if os.path.exists(sfn):
                    if os.path.exists(dfn):
                        os.remove(dfn)
                    os.rename(sfn, dfn)
            dfn = self.rotation_filename(self.baseFilename + ".1.gz")
            if os.path.exists(dfn):
                os.remove(dfn)
            # Compress the current log file
            import gzip
            with open(self.baseFilename, 'rb') as f_in:
                with gzip.open(dfn, 'wb') as f_out:
                    f_out.writelines(f_in)
        self.mode = 'w'
        self.stream = self._open()


class WorkerLogFormatter(logging.Formatter):
    """Formatter for worker-level logs: timestamp, host.logger, level, message"""
    def format(self, record):
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime('%Y-%m-%d %H:%M:%S')
        logger_name = record.name.split('.')[-1] if '.' in record.name else record.name
        line = f"{timestamp} [{get_worker_name()}.{logger_name}] [{record.levelname}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _resolve_log_dir(log_dir: Optional[Path]) -> Path:
    if log_dir is not None:
        return Path(log_dir)
    try:
        from .config import load_config, get_section
        base_path = get_section(load_config(), 'logging').get('base_path')
        if base_path:
            return Path(base_path)
    except (OSError, ValueError) as e:
        print(f"Warning: could not read logging config, using {DEFAULT_LOG_DIR}: {e}")
    return DEFAULT_LOG_DIR


def setup_worker_logger(worker_type: str,
                        log_dir: Optional[Path] = None,
                        level: int = logging.INFO,
                        console: bool = True) -> logging.Logger:
    """Set up a named logger with a compressed rotating file and a console handler.

    Library modules keep using logging.getLogger(__name__); those records
    propagate to the 'storage_diet' root logger, so configuring it once here
    from the CLI captures everything.

    Args:
        worker_type: Logical name of the worker (e.g. 'slim_user')
        log_dir: Directory for log files (defaults to logging.base_path from config)
        level: Log level for the console and file handlers
        console: Whether to also log to stderr
    """
    logger_name = "storage_diet" if worker_type in ("", "main") else f"storage_diet.{worker_type}"

    # Return cached logger if it exists
    if logger_name in _logger_cache:
        return _logger_cache[logger_name]

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    # Remove any existing handlers
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    formatter = WorkerLogFormatter()

    directory = _resolve_log_dir(log_dir)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        log_path = directory / f"{get_worker_name()}_{worker_type or 'main'}.log"
        fh = RotatingFileHandlerWithCompression(
            str(log_path),
            maxBytes=10*1024*1024,
            backupCount=5
        )
        fh.setFormatter(formatter)
        logger.addHandler(fh)
    except OSError as e:
        print(f"Warning: Could not create file handler in {directory}: {e}")

    if console:
        ch = logging.StreamHandler()
        ch.setFormatter(formatter)
        logger.addHandler(ch)

    _logger_cache[logger_name] = logger
    return logger
