import logging
import httpx
from ._types import Session
from ._errors import AuthenticationError, TransportError

_log = logging.getLogger(__name__)

SYSTEM_INFO_PATH = "/rw/system"
LOGOUT_PATH = "/logout"

def create_http_client(endpoint, credentials, timeout, transport = None):
    """HTTP client for one connection attempt. Its cookie jar carries the session."""
    return httpx.AsyncClient(
        base_url = endpoint.base_url,
        auth = httpx.DigestAuth(credentials.username, credentials.password),
        timeout = timeout,
        headers = {"Accept-Language": "en-US"},
        transport = transport,
        trust_env = False
    )

class Authenticator:
    def __init__(self, http_client, timeout):
        self._http = http_client
        self._timeout = timeout
        self.session = None

    async def authenticate(self):
        try:
            res = await self._http.get(SYSTEM_INFO_PATH, params={"json": "1"}, timeout=self._timeout)
        except httpx.HTTPError as e:
            raise TransportError(f"Controller unreachable: {e}") from e

        if res.status_code in (401, 403):
            raise AuthenticationError(f"Credentials rejected by controller (HTTP {res.status_code})")
        if not res.is_success:
            raise AuthenticationError(f"Unexpected response to authentication request (HTTP {res.status_code})")

        _log.debug("Authenticated against %s, system info format: %s", self._http.base_url,
            _response_format(res.text))

        self.session = Session.from_cookies({c.name: c.value for c in self._http.cookies.jar})
        return self.session

    async def logout(self):
        """Release the controller session, best effort"""
        if self.session is None:
            return
        self.session = None
        try:
            res = await self._http.get(LOGOUT_PATH, timeout=self._timeout)
            if not res.is_success:
                _log.warning("Logout failed: HTTP %d", res.status_code)
        except Exception as e:
            _log.warning("Logout failed: %s", e)

def _response_format(text):
    t = text.lstrip()
    if t.startswith("{"):
        return "json"
    if t.startswith("<"):
        return "xml"
    return "unknown"
