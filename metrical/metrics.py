"""Metric models and collection of process runtime statistics."""

from __future__ import annotations

import gc
import random
import sys
import tracemalloc
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Protocol

try:
    import resource
except ImportError:  # not available on every platform
    resource = None


class MetricType(str, Enum):
    """Kinds of metric the server understands."""

    GAUGE = "gauge"
    COUNTER = "counter"


METRIC_ALLOC = "Alloc"
METRIC_BUCK_HASH_SYS = "BuckHashSys"
METRIC_FREES = "Frees"
METRIC_GC_CPU_FRACTION = "GCCPUFraction"
METRIC_GC_SYS = "GCSys"
METRIC_HEAP_ALLOC = "HeapAlloc"
METRIC_HEAP_IDLE = "HeapIdle"
METRIC_HEAP_INUSE = "HeapInuse"
METRIC_HEAP_OBJECTS = "HeapObjects"
METRIC_HEAP_RELEASED = "HeapReleased"
METRIC_HEAP_SYS = "HeapSys"
METRIC_LAST_GC = "LastGC"
METRIC_LOOKUPS = "Lookups"
METRIC_MCACHE_INUSE = "MCacheInuse"
METRIC_MCACHE_SYS = "MCacheSys"
METRIC_MSPAN_INUSE = "MSpanInuse"
METRIC_MSPAN_SYS = "MSpanSys"
METRIC_MALLOCS = "Mallocs"
METRIC_NEXT_GC = "NextGC"
METRIC_NUM_FORCED_GC = "NumForcedGC"
METRIC_NUM_GC = "NumGC"
METRIC_OTHER_SYS = "OtherSys"
METRIC_PAUSE_TOTAL_NS = "PauseTotalNs"
METRIC_STACK_INUSE = "StackInuse"
METRIC_STACK_SYS = "StackSys"
METRIC_SYS = "Sys"
METRIC_TOTAL_ALLOC = "TotalAlloc"

METRIC_RANDOM_VALUE = "RandomValue"
METRIC_POLL_COUNT = "PollCount"


@dataclass
class Metric:
    """A single metric as exchanged with the server in JSON."""

    id: str = ""
    mtype: str = ""
    delta: int | None = None
    value: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready mapping; absent delta/value are omitted."""
        data: dict[str, Any] = {"id": self.id, "type": self.mtype}
        if self.delta is not None:
            data["delta"] = self.delta
        if self.value is not None:
            data["value"] = self.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Metric:
        """Build a metric from a decoded JSON mapping."""
        delta = data.get("delta")
        value = data.get("value")
        if isinstance(delta, bool) or (delta is not None and not isinstance(delta, int)):
            raise ValueError(f"delta must be an integer, got {delta!r}")
        if isinstance(value, bool) or (value is not None and not isinstance(value, (int, float))):
            raise ValueError(f"value must be a number, got {value!r}")
        return cls(
            id=str(data.get("id", "")),
            mtype=str(data.get("type", "")),
            delta=delta,
            value=None if value is None else float(value),
        )


@dataclass
class MemStats:
    """Memory statistics of the running process."""

    alloc: float = 0
    buck_hash_sys: float = 0
    frees: float = 0
    gc_cpu_fraction: float = 0.0
    gc_sys: float = 0
    heap_alloc: float = 0
    heap_idle: float = 0
    heap_inuse: float = 0
    heap_objects: float = 0
    heap_released: float = 0
    heap_sys: float = 0
    last_gc: float = 0
    lookups: float = 0
    mcache_inuse: float = 0
    mcache_sys: float = 0
    mspan_inuse: float = 0
    mspan_sys: float = 0
    mallocs: float = 0
    next_gc: float = 0
    num_forced_gc: float = 0
    num_gc: float = 0
    other_sys: float = 0
    pause_total_ns: float = 0
    stack_inuse: float = 0
    stack_sys: float = 0
    sys: float = 0
    total_alloc: float = 0


_RUNTIME_GAUGES: tuple[tuple[str, str], ...] = (
    (METRIC_ALLOC, "alloc"),
    (METRIC_BUCK_HASH_SYS, "buck_hash_sys"),
    (METRIC_FREES, "frees"),
    (METRIC_GC_CPU_FRACTION, "gc_cpu_fraction"),
    (METRIC_GC_SYS, "gc_sys"),
    (METRIC_HEAP_ALLOC, "heap_alloc"),
    (METRIC_HEAP_IDLE, "heap_idle"),
    (METRIC_HEAP_INUSE, "heap_inuse"),
    (METRIC_HEAP_OBJECTS, "heap_objects"),
    (METRIC_HEAP_RELEASED, "heap_released"),
    (METRIC_HEAP_SYS, "heap_sys"),
    (METRIC_LAST_GC, "last_gc"),
    (METRIC_LOOKUPS, "lookups"),
    (METRIC_MCACHE_INUSE, "mcache_inuse"),
    (METRIC_MCACHE_SYS, "mcache_sys"),
    (METRIC_MSPAN_INUSE, "mspan_inuse"),
    (METRIC_MSPAN_SYS, "mspan_sys"),
    (METRIC_MALLOCS, "mallocs"),
    (METRIC_NEXT_GC, "next_gc"),
    (METRIC_NUM_FORCED_GC, "num_forced_gc"),
    (METRIC_NUM_GC, "num_gc"),
    (METRIC_OTHER_SYS, "other_sys"),
    (METRIC_PAUSE_TOTAL_NS, "pause_total_ns"),
    (METRIC_STACK_INUSE, "stack_inuse"),
    (METRIC_STACK_SYS, "stack_sys"),
    (METRIC_SYS, "sys"),
    (METRIC_TOTAL_ALLOC, "total_alloc"),
)

RUNTIME_GAUGE_NAMES: tuple[str, ...] = tuple(name for name, _ in _RUNTIME_GAUGES)

assert {attr for _, attr in _RUNTIME_GAUGES} == {f.name for f in fields(MemStats)}


@dataclass
class Metrics:
    """Gauge metrics (replaced on update) and counter metrics (accumulated)."""

    gauges: dict[str, float] = field(default_factory=dict)
    counters: dict[str, int] = field(default_factory=dict)

    def all_metrics(self) -> dict[str, float | int]:
        """Return gauges and counters merged into one mapping."""
        return {**self.gauges, **self.counters}


class MetricsCollector(Protocol):
    """Something that gathers metrics."""

    def collect(self) -> dict[str, Any]:
        """Gather fresh metric values."""

    def all_metrics(self) -> dict[str, Any]:
        """Return every metric currently held."""


class MetricsSender(Protocol):
    """Something that delivers metrics to a server."""

    def send(self, metrics: dict[str, Any]) -> None:
        """Deliver a batch of metrics."""

    def send_single(self, name: str, value: Any) -> None:
        """Deliver one metric."""


def _max_rss_bytes() -> int:
    if resource is None:
        return 0
    rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    return rss if sys.platform == "darwin" else rss * 1024


def read_mem_stats() -> MemStats:
    """Sample memory and garbage-collector statistics of this process."""
    generations = gc.get_stats()
    collections = sum(gen.get("collections", 0) for gen in generations)
    collected = sum(gen.get("collected", 0) for gen in generations)
    blocks = sys.getallocatedblocks()
    current, peak = tracemalloc.get_traced_memory()
    rss = _max_rss_bytes()
    return MemStats(
        alloc=current,
        heap_alloc=current,
        total_alloc=peak,
        heap_objects=blocks,
        mallocs=blocks + collected,
        frees=collected,
        num_gc=collections,
        next_gc=gc.get_threshold()[0],
        heap_sys=rss,
        sys=rss,
    )


def fill_runtime_metrics(metrics: Metrics, mem_stats: MemStats) -> None:
    """Store all 27 runtime gauges from ``mem_stats`` into ``metrics``."""
    for name, attr in _RUNTIME_GAUGES:
        metrics.gauges[name] = float(getattr(mem_stats, attr))


def fill_additional_metrics(metrics: Metrics) -> None:
    """Store a random gauge in [0, 1)."""
    metrics.gauges[METRIC_RANDOM_VALUE] = random.random()


def update_counter_metrics(metrics: Metrics) -> None:
    """Increment the poll counter by one."""
    metrics.counters[METRIC_POLL_COUNT] = metrics.counters.get(METRIC_POLL_COUNT, 0) + 1