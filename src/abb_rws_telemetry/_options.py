from typing import NamedTuple, Mapping, Tuple
from types import MappingProxyType
import abb_robot_client.rws as rws

# Controller firmware versions expose the joint target under different paths,
# tried in this order.
DEFAULT_SUBSCRIPTION_CANDIDATES = MappingProxyType({
    "jointtarget": (
        "/rw/motionsystem/mechunits/{mechunit}/jointtarget",
        "/rw/motionsystem?resource=change-count",
        "/rw/rapid/tasks/{task}/motion?resource=jointtarget",
        "/rw/motionsystem/mechunits/{mechunit}",
        "/rw/rapid/tasks/{task}/motion",
    ),
    "robtarget": (
        "/rw/motionsystem/mechunits/{mechunit}/robtarget",
        "/rw/rapid/tasks/{task}/motion?resource=robtarget",
        "/rw/motionsystem/mechunits/{mechunit}",
        "/rw/rapid/tasks/{task}/motion",
    ),
})

DEFAULT_SOCKET_PATHS = ("/poll", "/subscription", "/ws")

MIN_POLLING_INTERVAL_MS = 10

class StreamOptions(NamedTuple):
    polling_interval_ms: int = 100
    prefer_socket: bool = True
    request_timeout_ms: int = 3000
    subscription_candidates: Mapping[str, Tuple[str, ...]] = DEFAULT_SUBSCRIPTION_CANDIDATES
    socket_paths: Tuple[str, ...] = DEFAULT_SOCKET_PATHS
    socket_subprotocol: str = "robapi2_subscription"
    polling_path: str = "/rw/rapid/tasks/{task}/motion?resource=jointtarget&json=1"
    subscription_priority: rws.SubscriptionResourcePriority = rws.SubscriptionResourcePriority.Medium
    mechunit: str = "ROB_1"
    max_consecutive_failures: int = 10
    error_guard_delay_ms: int = 1000
    status_interval_s: float = 0.
    status_signals: Tuple[str, ...] = ()
    seed_socket_sample: bool = True

    @property
    def request_timeout_s(self):
        return self.request_timeout_ms * 1e-3

    @property
    def polling_interval_s(self):
        return self.polling_interval_ms * 1e-3

    def validate(self):
        if self.polling_interval_ms < MIN_POLLING_INTERVAL_MS:
            raise ValueError(f"polling_interval_ms must be >= {MIN_POLLING_INTERVAL_MS}, "
                f"got {self.polling_interval_ms}")
        if self.request_timeout_ms <= 0:
            raise ValueError("request_timeout_ms must be positive")
        if self.max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be at least 1")
        if self.error_guard_delay_ms < 0:
            raise ValueError("error_guard_delay_ms must not be negative")
        if self.status_interval_s < 0:
            raise ValueError("status_interval_s must not be negative")
        return self

    def resource_paths(self, resource, task_name):
        try:
            templates = self.subscription_candidates[resource]
        except KeyError:
            raise ValueError(f"No subscription candidates configured for resource {resource!r}") from None
        return [t.format(task=task_name, mechunit=self.mechunit) for t in templates]

    def polling_url_path(self, task_name):
        return self.polling_path.format(task=task_name, mechunit=self.mechunit)
