# Example telemetry client printing joint angles streamed from the controller
#
# The controller must have Robot Web Services enabled. RobotStudio virtual controllers listen on port 80
# of the host running RobotStudio. Subscription sockets are used when available, HTTP polling otherwise.

from abb_rws_telemetry import RWSTelemetryClient, Endpoint, Credentials, StreamOptions, ConnectionState
import time
import numpy as np

c = RWSTelemetryClient()

c.on_connected += lambda mode: print(f"Connected using {mode.name}")
c.on_disconnected += lambda reason: print(f"Disconnected: {reason}")
c.on_error += lambda msg: print(f"Error: {msg}")

c.start(Endpoint("127.0.0.1", 80, "T_ROB1"), Credentials("Default User", "robotics"),
    StreamOptions(polling_interval_ms=50))

if not c.wait_for_state((ConnectionState.connected, ConnectionState.error), 10):
    print("Timed out waiting for connection")

for i in range(50):
    sample = c.latest_sample()
    if sample is not None:
        print(np.round(sample.joint_angles, 2))
    time.sleep(0.2)

c.stop()

print(c.performance())
