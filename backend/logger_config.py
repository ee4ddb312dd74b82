"""
Logging configuration for the edge classifier.

**LOG FILES:**
- logs/edgecls_YYYY-MM-DD_HHMMSS.log - DTG-stamped log files
- Oldest files pruned once the logs directory exceeds the storage cap
- Console: progress lines on stdout at the configured console level

Usage:
    from logger_config import get_logger

    logger = get_logger('pipeline')
    logger.info('Loaded graph', extra={'model_bytes': 4951})
    logger.perf(f'compute took {elapsed:.1f}ms')  # Only prints if perf enabled
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

# =============================================================================
# CONFIGURATION
# =============================================================================

# Maximum total log storage in bytes (100 MB default)
MAX_LOG_STORAGE_BYTES = 100 * 1024 * 1024

# Individual log file max size before rotation (10 MB)
MAX_LOG_FILE_SIZE = 10 * 1024 * 1024

DEFAULT_LOGS_DIR = Path(__file__).parent.parent / "logs"

_PERF_ENABLED = False
_PERF_INTERVAL = 1
_perf_counters = {}


def _cleanup_old_logs(logs_dir: Path, max_bytes: int = MAX_LOG_STORAGE_BYTES):
    """Delete oldest log files when total size exceeds max_bytes."""
    log_files = sorted(
        logs_dir.glob("edgecls_*.log*"),
        key=lambda f: f.stat().st_mtime,
    )

    total_size = sum(f.stat().st_size for f in log_files)

    while total_size > max_bytes and len(log_files) > 1:
        oldest = log_files.pop(0)
        file_size = oldest.stat().st_size
        oldest.unlink()
        total_size -= file_size


def _get_log_filename() -> str:
    """Generate DTG-stamped log filename: edgecls_YYYY-MM-DD_HHMMSS.log"""
    dtg = datetime.now().strftime("%Y-%m-%d_%H%M%S")
    return f"edgecls_{dtg}.log"


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


def configure_logging(
    level: str = "INFO",
    console_level: str = "INFO",
    perf_enabled: bool = False,
    perf_interval: int = 1,
    json_format: bool = False,
    enable_file_logging: bool = False,
    logs_dir: Path | None = None,
    max_storage_mb: int = 100,
    stream=None,
):
    """
    Configure global logging.

    Args:
        level: Minimum level reaching any handler ('DEBUG', 'INFO', 'WARNING', 'ERROR')
        console_level: Minimum level written to the console stream
        perf_enabled: Whether to print performance logs
        perf_interval: Only print every N perf logs per component
        json_format: Use structured JSON logging
        enable_file_logging: Also write to a rotating DTG-stamped file
        logs_dir: Directory for log files (default: <repo>/logs)
        max_storage_mb: Maximum log storage in MB
        stream: Console stream (default: sys.stdout)
    """
    global _PERF_ENABLED, _PERF_INTERVAL

    _PERF_ENABLED = perf_enabled
    _PERF_INTERVAL = max(1, perf_interval)

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(getattr(logging, console_level.upper(), logging.INFO))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    if enable_file_logging:
        logs_dir = Path(logs_dir or DEFAULT_LOGS_DIR)
        logs_dir.mkdir(parents=True, exist_ok=True)
        max_bytes = max_storage_mb * 1024 * 1024
        _cleanup_old_logs(logs_dir, max_bytes)

        file_handler = RotatingFileHandler(
            logs_dir / _get_log_filename(),
            maxBytes=MAX_LOG_FILE_SIZE,
            backupCount=max(1, max_bytes // MAX_LOG_FILE_SIZE - 1),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Silence noisy libraries
    logging.getLogger("onnxruntime").setLevel(logging.WARNING)


# =============================================================================
# LOGGER CLASS
# =============================================================================


class PipelineLogger:
    """Logger wrapper with component prefix, structured extras and perf logging."""

    def __init__(self, name: str):
        self.name = name
        self._logger = logging.getLogger(f"edgecls.{name}")

    def debug(self, msg: str, extra: dict | None = None):
        self._log(logging.DEBUG, f"[{self.name}] {msg}", extra)

    def info(self, msg: str, extra: dict | None = None):
        self._log(logging.INFO, f"[{self.name}] {msg}", extra)

    def warning(self, msg: str, extra: dict | None = None):
        self._log(logging.WARNING, f"[WARN] [{self.name}] {msg}", extra)

    def error(self, msg: str, extra: dict | None = None):
        self._log(logging.ERROR, f"[ERR] [{self.name}] {msg}", extra)

    def _log(self, level: int, msg: str, extra: dict | None = None):
        if extra:
            self._logger.log(level, msg, extra={"extra_fields": extra})
        else:
            self._logger.log(level, msg)

    def perf(self, msg: str) -> bool:
        """
        Performance log - throttled by perf_interval.

        Returns True if the message was actually logged.
        """
        if not _PERF_ENABLED:
            return False

        _perf_counters[self.name] = _perf_counters.get(self.name, 0) + 1
        if _perf_counters[self.name] % _PERF_INTERVAL != 0:
            return False

        self._logger.info(f"[PERF] [{self.name}] {msg}")
        return True


def get_logger(name: str) -> PipelineLogger:
    """Get a logger instance for the given component name."""
    return PipelineLogger(name)
