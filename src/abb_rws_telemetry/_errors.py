class RWSTelemetryError(Exception):
    """Base class of all errors raised by the telemetry core"""

class AuthenticationError(RWSTelemetryError):
    """Credentials rejected or authentication handshake malformed"""

class SubscriptionError(RWSTelemetryError):
    """Every candidate resource path was rejected by the controller"""

class TransportError(RWSTelemetryError):
    """Socket handshake/receive failure or polling failure threshold reached"""

class ParseError(RWSTelemetryError):
    """Payload is neither JSON nor XML"""

class RequestError(RWSTelemetryError):
    """A single HTTP request failed"""

def classify(exc):
    """Host visible reason string for an exception that ended an attempt"""
    if isinstance(exc, RWSTelemetryError):
        name = type(exc).__name__
    else:
        name = "TransportError"
    msg = str(exc) or type(exc).__name__
    return f"{name}: {msg}"
