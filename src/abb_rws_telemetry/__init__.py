from ._types import ConnectionState, TransportMode, Endpoint, Credentials, Session, Subscription, \
    TelemetrySample, PerformanceCounters, ControllerStatus
from ._options import StreamOptions, DEFAULT_SUBSCRIPTION_CANDIDATES, DEFAULT_SOCKET_PATHS
from ._errors import RWSTelemetryError, AuthenticationError, SubscriptionError, TransportError, \
    ParseError, RequestError
from ._parser import parse_payload
from ._relay import TelemetryRelay
from ._performance import PerformanceTracker
from ._stream import RWSTelemetryClient
