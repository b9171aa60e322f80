"""Logging and per-operation metrics for Storm Notes.

Every tool call and every ranking pass runs inside ``timed_operation``. Besides
timing and success, the operation can report what it produced by putting
integer counters into the yielded dict (``result_count`` for tag bars and
suggestions, ``direct_count``/``related_count`` for a filter). The collector
keeps running totals of those counters, so the status tool can tell how large
the tag bar and the related list typically are.
"""
import functools
import json
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

STORM_HOME = Path.home() / ".storm"
DEFAULT_LOG_DIR = STORM_HOME / "logs"
DEFAULT_METRICS_FILE = STORM_HOME / "metrics.json"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

F = TypeVar("F", bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 2 * 1024 * 1024,
    backup_count: int = 3,
    console: bool = True,
) -> Path:
    """Send the ``storm_notes`` loggers to a rotating file, and to stderr.

    stdout is the MCP channel, so nothing may log there.

    Args:
        log_dir: Where ``storm.log`` goes. Defaults to ~/.storm/logs/
        level: Level for the package loggers.
        max_bytes: Size at which the file is rotated.
        backup_count: Rotated files to keep.
        console: Also log to stderr.

    Returns:
        The log directory.
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    package_logger = logging.getLogger("storm_notes")
    package_logger.setLevel(level)

    file_handler = RotatingFileHandler(
        log_path / "storm.log",
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    package_logger.addHandler(file_handler)

    has_stderr = any(
        type(h) is logging.StreamHandler for h in package_logger.handlers
    )
    if console and not has_stderr:
        stderr_handler = logging.StreamHandler()
        stderr_handler.setFormatter(formatter)
        package_logger.addHandler(stderr_handler)

    package_logger.info(f"Logging to {log_path / 'storm.log'}")
    return log_path


def _sanitize_error_message(message: Optional[str], max_length: int = 200) -> Optional[str]:
    """Error text fit for the metrics file: one line, no home path, bounded."""
    if message is None:
        return None
    text = message.replace(str(Path.home()), "~")
    text = text.replace("\r", " ").replace("\n", " ")
    if len(text) > max_length:
        text = text[: max_length - 3] + "..."
    return text


@dataclass
class OperationMetrics:
    """Running totals for one operation name."""
    count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    # Sums of the integer counters the operation reported, e.g. related_count
    counters: Dict[str, int] = field(default_factory=dict)
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None

    @property
    def success_count(self) -> int:
        return self.count - self.error_count

    def to_record(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "error_count": self.error_count,
            "total_duration_ms": self.total_duration_ms,
            "max_duration_ms": self.max_duration_ms,
            "counters": dict(self.counters),
            "last_error": self.last_error,
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "OperationMetrics":
        counters = data.get("counters") or {}
        return cls(
            count=int(data.get("count", 0)),
            error_count=int(data.get("error_count", 0)),
            total_duration_ms=float(data.get("total_duration_ms", 0.0)),
            max_duration_ms=float(data.get("max_duration_ms", 0.0)),
            counters={k: int(v) for k, v in counters.items()},
            last_error=data.get("last_error"),
        )


def _numeric_counters(info: Dict[str, Any]) -> Dict[str, int]:
    # bools are flags like "found", not quantities
    return {
        k: v for k, v in info.items()
        if isinstance(v, int) and not isinstance(v, bool)
    }


class MetricsCollector:
    """Thread-safe metrics for tool calls and ranking passes.

    Optionally backed by a JSON file: totals are loaded when the file is
    attached and written by ``save_metrics`` (called at exit).
    """

    def __init__(self, metrics_file: Optional[Union[str, Path]] = None):
        self._ops: Dict[str, OperationMetrics] = {}
        self._lock = Lock()
        self._started = datetime.now(timezone.utc)
        self._metrics_file: Optional[Path] = None
        if metrics_file is not None:
            self.use_file(metrics_file)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
        counters: Optional[Dict[str, int]] = None,
    ) -> None:
        """Add one run of ``operation`` to the totals."""
        with self._lock:
            m = self._ops.setdefault(operation, OperationMetrics())
            m.count += 1
            m.total_duration_ms += duration_ms
            m.max_duration_ms = max(m.max_duration_ms, duration_ms)
            for name, value in (counters or {}).items():
                m.counters[name] = m.counters.get(name, 0) + value
            if not success:
                m.error_count += 1
                m.last_error = _sanitize_error_message(error)
                m.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-operation snapshot, with averages per call."""
        with self._lock:
            snapshot = {}
            for name, m in self._ops.items():
                calls = m.count or 1
                snapshot[name] = {
                    "count": m.count,
                    "success_count": m.success_count,
                    "error_count": m.error_count,
                    "success_rate": m.success_count / m.count if m.count else 0,
                    "avg_duration_ms": round(m.total_duration_ms / calls, 2),
                    "max_duration_ms": round(m.max_duration_ms, 2),
                    "avg_counters": {
                        k: round(v / calls, 2) for k, v in m.counters.items()
                    },
                    "last_error": m.last_error,
                    "last_error_time": (
                        m.last_error_time.isoformat() if m.last_error_time else None
                    ),
                }
            return snapshot

    def get_summary(self) -> Dict[str, Any]:
        """Totals across all operations."""
        with self._lock:
            total = sum(m.count for m in self._ops.values())
            errors = sum(m.error_count for m in self._ops.values())
            return {
                "uptime_seconds": (datetime.now(timezone.utc) - self._started).total_seconds(),
                "total_operations": total,
                "total_success": total - errors,
                "total_errors": errors,
                "overall_success_rate": (total - errors) / total if total else 1.0,
                "operations_tracked": sorted(self._ops),
            }

    def use_file(self, metrics_file: Union[str, Path]) -> None:
        """Persist to a file from now on, loading whatever it already holds."""
        self._metrics_file = Path(metrics_file)
        with self._lock:
            self._load_metrics()

    def reset(self) -> None:
        with self._lock:
            self._ops.clear()
            self._started = datetime.now(timezone.utc)

    def _load_metrics(self) -> bool:
        if self._metrics_file is None or not self._metrics_file.exists():
            return False
        try:
            data = json.loads(self._metrics_file.read_text(encoding="utf-8"))
            for name, record in data.get("operations", {}).items():
                self._ops[name] = OperationMetrics.from_record(record)
        except (OSError, json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable metrics file {self._metrics_file}: {e}")
            return False
        logger.debug(f"Loaded metrics for {len(self._ops)} operations")
        return True

    def save_metrics(self) -> bool:
        """Write the totals to the metrics file.

        Returns:
            False when no file is attached or the write failed.
        """
        if self._metrics_file is None:
            return False
        with self._lock:
            data = {
                "saved_at": datetime.now(timezone.utc).isoformat(),
                "operations": {name: m.to_record() for name, m in self._ops.items()},
            }
        try:
            self._metrics_file.parent.mkdir(parents=True, exist_ok=True)
            # Write beside the target, then swap it in
            tmp = self._metrics_file.with_suffix(".tmp")
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp.replace(self._metrics_file)
        except OSError as e:
            logger.error(f"Failed to save metrics to {self._metrics_file}: {e}")
            return False
        return True


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time a block, log it, and record it in ``metrics``.

    Yields a dict; integer values put into it are added to the operation's
    counters, other values only show up in the debug log.

    Example:
        with timed_operation("storm_filter_notes", selected="a,b") as op:
            relevance = browse.filter_notes(["a", "b"])
            op["direct_count"] = len(relevance.direct)
            op["related_count"] = len(relevance.related)
    """
    ref = uuid.uuid4().hex[:8]
    info: Dict[str, Any] = {}
    logger.debug(
        f"[{ref}] {operation} started "
        + " ".join(f"{k}={v}" for k, v in context.items())
    )
    started = time.perf_counter()
    error: Optional[str] = None
    try:
        yield info
    except Exception as e:
        error = str(e)
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(
            operation,
            elapsed_ms,
            error is None,
            error,
            counters=_numeric_counters(info),
        )
        outcome = "ok" if error is None else f"failed: {error}"
        logger.debug(
            f"[{ref}] {operation} {outcome} in {elapsed_ms:.2f}ms "
            + " ".join(f"{k}={v}" for k, v in info.items())
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Run the decorated function inside ``timed_operation``.

    Sized results (tag lists, suggestion lists) are counted as
    ``result_count``; a NoteRelevance reports its direct and related sizes.
    """
    def decorator(func: F) -> F:
        name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with timed_operation(name) as op:
                result = func(*args, **kwargs)
                if hasattr(result, "direct") and hasattr(result, "related"):
                    op["direct_count"] = len(result.direct)
                    op["related_count"] = len(result.related)
                elif hasattr(result, "__len__"):
                    op["result_count"] = len(result)
                return result

        return wrapper  # type: ignore
    return decorator
