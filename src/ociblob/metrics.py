"""Prometheus metrics definitions for ociblob.

All metrics use the ``ociblob_`` prefix. Nothing is registered until
``init_metrics()`` is called; until then the module-level references stay
``None`` and the backend skips recording.
"""

from __future__ import annotations

from pathlib import Path

from prometheus_client import REGISTRY, Counter, write_to_textfile

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# ---------------------------------------------------------------------------
# Backend operation counter  (labels: operation, status)
# ---------------------------------------------------------------------------
backend_operations_total: Counter | None = None

# ---------------------------------------------------------------------------
# Byte counters
# ---------------------------------------------------------------------------
bytes_written_total: Counter | None = None
bytes_read_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics in the global registry.

    Safe to call more than once; only the first call registers collectors.
    """
    global _initialized
    global backend_operations_total, bytes_written_total, bytes_read_total

    if _initialized:
        return

    backend_operations_total = Counter(
        "ociblob_backend_operations_total",
        "Total backend operations by type and outcome",
        ["operation", "status"],
    )

    bytes_written_total = Counter(
        "ociblob_bytes_written_total",
        "Total bytes uploaded by Save",
    )

    bytes_read_total = Counter(
        "ociblob_bytes_read_total",
        "Total bytes downloaded by Load",
    )

    _initialized = True


def record_operation(operation: str, status: str) -> None:
    """Count one backend operation if metrics are enabled."""
    if backend_operations_total is not None:
        backend_operations_total.labels(operation=operation, status=status).inc()


def record_bytes_written(n: int) -> None:
    if bytes_written_total is not None:
        bytes_written_total.inc(n)


def record_bytes_read(n: int) -> None:
    if bytes_read_total is not None:
        bytes_read_total.inc(n)


def write_textfile(path: str | Path) -> None:
    """Write all registered metrics to *path* in the text exposition format.

    The file is replaced atomically.
    """
    write_to_textfile(str(path), REGISTRY)
