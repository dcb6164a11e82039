import threading
import time
from ._types import PerformanceCounters

class PerformanceTracker:
    def __init__(self, clock = time.perf_counter):
        self._clock = clock
        self._lock = threading.Lock()
        self._counters = PerformanceCounters()
        self._last_success_clock = None

    def record_request(self):
        with self._lock:
            self._counters = self._counters._replace(total_requests = self._counters.total_requests + 1)

    def record_success(self, now = None):
        if now is None:
            now = self._clock()
        with self._lock:
            freq = self._counters.measured_frequency_hz
            if self._last_success_clock is not None:
                dt_ms = (now - self._last_success_clock) * 1000.
                if dt_ms > 0:
                    freq = 1000. / dt_ms
            self._last_success_clock = now
            self._counters = self._counters._replace(
                successful_requests = self._counters.successful_requests + 1,
                last_update_timestamp = time.time(),
                measured_frequency_hz = freq
            )

    def snapshot(self):
        # NamedTuple is immutable, handing out the reference is a consistent copy
        with self._lock:
            return self._counters

    def reset(self):
        with self._lock:
            self._counters = PerformanceCounters()
            self._last_success_clock = None

    def summary(self):
        c = self.snapshot()
        return f"{c.successful_requests}/{c.total_requests} requests successful " \
            f"({c.success_ratio*100.:.1f}%), {c.measured_frequency_hz:.1f} Hz"
