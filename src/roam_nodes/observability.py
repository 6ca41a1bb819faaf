"""Logging setup and per-operation timing for roam-nodes.

``timed_operation`` wraps each pipeline step (candidate listing, tool calls)
and feeds ``metrics``; the MCP status tool reads the collected numbers back.
"""
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, replace
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

ROOT_LOGGER_NAME = "roam_nodes"
DEFAULT_LOG_DIR = Path.home() / ".roam-nodes" / "logs"
LOG_FILE_NAME = "roam-nodes.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def _has_file_handler(target: logging.Logger) -> bool:
    return any(isinstance(h, RotatingFileHandler) for h in target.handlers)


def _has_console_handler(target: logging.Logger) -> bool:
    # RotatingFileHandler is a StreamHandler subclass too
    return any(type(h) is logging.StreamHandler for h in target.handlers)


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    console: bool = True,
) -> Path:
    """Attach a rotating log file (and optionally stderr) to the package logger.

    Calling it again does not add duplicate handlers.

    Returns:
        The directory holding ``roam-nodes.log``.
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    handlers = []
    if not _has_file_handler(package_logger):
        handlers.append(
            RotatingFileHandler(
                log_path / LOG_FILE_NAME,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )
    if console and not _has_console_handler(package_logger):
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    package_logger.info(f"Logging to {log_path / LOG_FILE_NAME}")
    return log_path


@dataclass
class OperationStats:
    """Running totals for one operation name."""

    calls: int = 0
    failures: int = 0
    total_ms: float = 0.0
    slowest_ms: float = 0.0
    # Sum of the result_count values reported by the operation
    results: int = 0
    last_error: Optional[str] = None

    @property
    def mean_ms(self) -> float:
        return self.total_ms / self.calls if self.calls else 0.0


class MetricsCollector:
    """Thread-safe in-memory totals keyed by operation name."""

    def __init__(self):
        self._stats: Dict[str, OperationStats] = defaultdict(OperationStats)
        self._lock = Lock()
        self._started = time.monotonic()

    def record(
        self,
        operation: str,
        duration_ms: float,
        error: Optional[str] = None,
        results: int = 0,
    ) -> None:
        """Add one finished call of ``operation``."""
        with self._lock:
            stats = self._stats[operation]
            stats.calls += 1
            stats.total_ms += duration_ms
            stats.slowest_ms = max(stats.slowest_ms, duration_ms)
            stats.results += results
            if error is not None:
                stats.failures += 1
                stats.last_error = error

    def snapshot(self) -> Dict[str, OperationStats]:
        """Copies of the current totals, safe to read without the lock."""
        with self._lock:
            return {name: replace(stats) for name, stats in self._stats.items()}

    def summary(self) -> Dict[str, Any]:
        """Totals across every operation."""
        with self._lock:
            calls = sum(s.calls for s in self._stats.values())
            failures = sum(s.failures for s in self._stats.values())
            return {
                "uptime_seconds": time.monotonic() - self._started,
                "calls": calls,
                "failures": failures,
                "success_rate": (calls - failures) / calls if calls else 1.0,
            }

    def reset(self) -> None:
        """Forget all totals and restart the uptime clock."""
        with self._lock:
            self._stats.clear()
            self._started = time.monotonic()


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time a block, log START/END at debug level and record it in ``metrics``.

    The yielded dict collects result details for the END line. An integer
    ``result_count`` entry is added to the operation's result total, and an
    ``error`` entry marks the call as failed when the block handles its own
    exception.

    Example:
        with timed_operation("list_candidates", sort="file-mtime") as op:
            candidates = build()
            op["result_count"] = len(candidates)
    """
    tag = uuid.uuid4().hex[:8]
    details: Dict[str, Any] = {}
    started = time.perf_counter()
    logger.debug(
        f"[{tag}] START {operation} ({', '.join(f'{k}={v}' for k, v in context.items())})"
    )

    error = None
    try:
        yield details
    except Exception as e:
        error = str(e)
        raise
    finally:
        if error is None and details.get("error"):
            error = str(details["error"])
        elapsed_ms = (time.perf_counter() - started) * 1000
        result_count = details.get("result_count")
        metrics.record(
            operation,
            elapsed_ms,
            error=error,
            results=result_count if isinstance(result_count, int) else 0,
        )
        outcome = "OK" if error is None else f"ERROR: {error}"
        logger.debug(
            f"[{tag}] END {operation} ({elapsed_ms:.2f}ms) [{outcome}] "
            + ", ".join(f"{k}={v}" for k, v in details.items())
        )
