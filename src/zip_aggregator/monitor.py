# src/zip_aggregator/monitor.py

"""
Resource accounting for the aggregation pipelines.

Samples process memory counters and prints them as CSV lines so the memory
profile of the streaming and buffered strategies can be compared side by
side. The CSV goes to stdout; logs never do.

Column mapping (Python has no single equivalent of a runtime MemStats call):

    Alloc        bytes currently traced by tracemalloc
    HeapAlloc    resident set size of the process
    TotalAlloc   tracemalloc peak, a monotonic high-water mark for the run
    HeapObjects  memory blocks currently allocated by the interpreter
    Sys          virtual memory size of the process
    NumGC        garbage collector runs, all generations
"""

import gc
import logging
import sys
import tracemalloc
from typing import TextIO

import psutil

from .schemas import ResourceSample

logger = logging.getLogger(__name__)

CSV_HEADER = ("#", "Alloc", "HeapAlloc", "TotalAlloc", "HeapObjects", "Sys", "NumGC")


def sample_resources(label: str) -> ResourceSample:
    """Reads the current process memory counters. Never fails."""
    if tracemalloc.is_tracing():
        current, peak = tracemalloc.get_traced_memory()
    else:
        current = peak = 0
    memory = psutil.Process().memory_info()
    return ResourceSample(
        label=label,
        allocated_bytes=current,
        heap_allocated_bytes=memory.rss,
        cumulative_allocated_bytes=peak,
        live_heap_objects=sys.getallocatedblocks(),
        system_reserved_bytes=memory.vms,
        gc_cycle_count=sum(generation["collections"] for generation in gc.get_stats()),
    )


class ResourceMonitor:
    """
    Writes one header line, then one CSV line per checkpoint.

    Every sample taken is also kept in `samples`, in order, for callers that
    inspect a finished run. The list grows by one per processed object.
    """

    def __init__(self, stream: TextIO | None = None, trace_allocations: bool = True):
        self._stream = stream
        self._trace_allocations = trace_allocations
        self._started_tracing = False
        self._header_emitted = False
        self.samples: list[ResourceSample] = []

    def emit_header(self) -> None:
        if self._header_emitted:
            logger.debug("Resource header already emitted; ignoring.")
            return
        if self._trace_allocations and not tracemalloc.is_tracing():
            tracemalloc.start()
            self._started_tracing = True
        self._write(",".join(CSV_HEADER))
        self._header_emitted = True

    def snapshot(self, label: str) -> ResourceSample:
        if not self._header_emitted:
            self.emit_header()
        sample = sample_resources(label)
        self.samples.append(sample)
        self._write(sample.to_row())
        return sample

    def stop(self) -> None:
        """Stops allocation tracing, if this monitor started it."""
        if self._started_tracing:
            tracemalloc.stop()
            self._started_tracing = False

    def _write(self, line: str) -> None:
        # Resolve stdout lazily so redirected/captured streams are honoured.
        stream = self._stream if self._stream is not None else sys.stdout
        print(line, file=stream, flush=True)
