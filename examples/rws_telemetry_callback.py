# Example telemetry client receiving joint angles through the on_sample event
#
# Events fire on the telemetry worker thread. Handlers must return quickly.

from abb_rws_telemetry import RWSTelemetryClient, Endpoint, Credentials, StreamOptions
import time
import numpy as np

c = RWSTelemetryClient()

last_print = [0.]

def sample_received(sample):
    if sample.timestamp - last_print[0] > 0.5:
        last_print[0] = sample.timestamp
        print(np.round(sample.joint_angles, 2))

c.on_sample += sample_received
c.on_status += lambda s: print(f"Controller {s.controller_state}, mode {s.operation_mode}, {s.execution_state}")

# Polling only, with controller status every second
c.start(Endpoint("127.0.0.1"), Credentials("Default User", "robotics"),
    StreamOptions(prefer_socket=False, polling_interval_ms=20, status_interval_s=1.))

time.sleep(10)

c.stop()
