import pytest
from abb_rws_telemetry import PerformanceTracker, PerformanceCounters

class FakeClock:
    def __init__(self):
        self.now = 100.

    def __call__(self):
        return self.now

def test_counters_and_frequency():
    clock = FakeClock()
    tracker = PerformanceTracker(clock=clock)
    for _ in range(4):
        tracker.record_request()
    tracker.record_success()
    c = tracker.snapshot()
    assert c.total_requests == 4
    assert c.successful_requests == 1
    # One success is not enough to measure a rate
    assert c.measured_frequency_hz == 0.
    assert c.last_update_timestamp > 0

    clock.now += 0.02
    tracker.record_success()
    c = tracker.snapshot()
    assert c.measured_frequency_hz == pytest.approx(50.)
    assert c.success_ratio == pytest.approx(0.5)

def test_explicit_timestamps():
    tracker = PerformanceTracker()
    tracker.record_success(now=1.)
    tracker.record_success(now=1.004)
    assert tracker.snapshot().measured_frequency_hz == pytest.approx(250.)

def test_reset_and_summary():
    tracker = PerformanceTracker(clock=FakeClock())
    tracker.record_request()
    tracker.record_request()
    tracker.record_success()
    assert tracker.summary().startswith("1/2 requests successful (50.0%)")
    tracker.reset()
    assert tracker.snapshot() == PerformanceCounters()
    assert PerformanceCounters().success_ratio == 0.
