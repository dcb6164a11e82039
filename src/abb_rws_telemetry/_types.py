from typing import NamedTuple, Mapping, Optional, Tuple
from enum import IntEnum
from types import MappingProxyType
import time
import numpy as np

JOINT_COUNT = 6

class ConnectionState(IntEnum):
    disconnected = 0
    connecting = 1
    connected = 2
    error = 3
    stopping = 4

class TransportMode(IntEnum):
    unset = 0
    socket = 1
    polling = 2

class Endpoint(NamedTuple):
    host: str
    port: int = 80
    task_name: str = "T_ROB1"

    @property
    def base_url(self):
        return f"http://{self.host}:{self.port}"

    def socket_url(self, path):
        if path.startswith("ws://") or path.startswith("wss://"):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return f"ws://{self.host}:{self.port}{path}"

class Credentials(NamedTuple):
    username: str
    password: str

    def __repr__(self):
        return f"Credentials(username={self.username!r}, password='***')"

    __str__ = __repr__

class Session(NamedTuple):
    cookies: Mapping[str, str]
    established_at: float

    @classmethod
    def from_cookies(cls, cookies):
        return cls(MappingProxyType(dict(cookies)), time.time())

    def cookie_header(self):
        return "; ".join(f"{k}={v}" for k, v in self.cookies.items())

class Subscription(NamedTuple):
    resource: str
    resource_path: str
    priority: int
    subscription_id: str
    location: Optional[str] = None

class TelemetrySample(NamedTuple):
    joint_angles: np.ndarray
    timestamp: float

    @classmethod
    def create(cls, joint_angles, timestamp = None):
        a = np.array(joint_angles, dtype=np.float64).reshape(JOINT_COUNT)
        a.flags.writeable = False
        if timestamp is None:
            timestamp = time.time()
        return cls(a, timestamp)

class PerformanceCounters(NamedTuple):
    total_requests: int = 0
    successful_requests: int = 0
    last_update_timestamp: float = 0.
    measured_frequency_hz: float = 0.

    @property
    def success_ratio(self):
        if self.total_requests == 0:
            return 0.
        return self.successful_requests / self.total_requests

class ControllerStatus(NamedTuple):
    controller_state: str
    operation_mode: str
    execution_state: str
    signals: Tuple[Tuple[str, int], ...]
    timestamp: float
