import threading
from abb_rws_telemetry import TelemetryRelay, TelemetrySample

def _sample(i):
    return TelemetrySample.create([float(i)] * 6, timestamp=float(i))

def test_latest_returns_newest_sample():
    relay = TelemetryRelay()
    assert relay.latest() is None
    for i in range(5):
        relay.publish(_sample(i))
    assert relay.latest().timestamp == 4.
    # Peeking does not consume
    assert relay.latest().timestamp == 4.
    assert relay.published == 5
    assert relay.dropped == 4

def test_take_consumes_once():
    relay = TelemetryRelay()
    assert relay.take() is None
    relay.publish(_sample(1))
    assert relay.take().timestamp == 1.
    assert relay.take() is None
    assert relay.latest().timestamp == 1.
    relay.publish(_sample(2))
    assert relay.take().timestamp == 2.
    assert relay.dropped == 0

def test_clear():
    relay = TelemetryRelay()
    relay.publish(_sample(1))
    relay.clear()
    assert relay.latest() is None
    assert relay.take() is None

def test_concurrent_reader_never_sees_older_sample():
    relay = TelemetryRelay()
    n = 5000
    done = threading.Event()

    def producer():
        for i in range(n):
            relay.publish(_sample(i))
        done.set()

    t = threading.Thread(target=producer)
    t.start()
    seen = []
    while not done.is_set():
        s = relay.latest()
        if s is not None:
            seen.append(s.timestamp)
    t.join()

    assert all(a <= b for a, b in zip(seen, seen[1:]))
    assert relay.latest().timestamp == n - 1
    # Samples are never torn between writers and readers
    assert all((relay.latest().joint_angles == n - 1))
