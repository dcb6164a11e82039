import asyncio
import hashlib
import json
import threading
from urllib.parse import parse_qs, urlparse
from urllib.request import parse_http_list, parse_keqv_list
import httpx
from websockets.exceptions import ConnectionClosedError, InvalidHandshake
from websockets.protocol import State

from abb_rws_telemetry import Endpoint, Credentials, StreamOptions
from abb_rws_telemetry._options import DEFAULT_SUBSCRIPTION_CANDIDATES

ENDPOINT = Endpoint("127.0.0.1", 80, "T_ROB1")
CREDENTIALS = Credentials("Default User", "robotics")
WRONG_CREDENTIALS = Credentials("Default User", "wrong")

JOINT_CANDIDATES = [p.format(task="T_ROB1", mechunit="ROB_1") for p in DEFAULT_SUBSCRIPTION_CANDIDATES["jointtarget"]]

def _md5(s):
    return hashlib.md5(s.encode()).hexdigest()

def joint_state_json(joints, subscription = None):
    state = {"_type": "rap-jointtarget"}
    state.update({f"j{i+1}": f"{v:.4f}" for i, v in enumerate(joints)})
    data = {"_links": {"base": {"href": "http://127.0.0.1/rw/rapid/"}}, "_embedded": {"_state": [state]}}
    if subscription is not None:
        data["subscription"] = subscription
    return json.dumps(data)

class FakeController:
    """Robot Web Services stand-in served through ``httpx.MockTransport``"""
    realm = "validusers@robapi.abb"
    nonce = "2f6d0ad2c8a4e2c1"
    session_cookie = "5c2f0a6e-e2a1"

    def __init__(self, accepted_paths = None, subscription_format = "xml", joints = (10., 20., 30., 40., 50., 60.)):
        self.username = CREDENTIALS.username
        self.password = CREDENTIALS.password
        self.accepted_paths = list(JOINT_CANDIDATES[:1] if accepted_paths is None else accepted_paths)
        self.subscription_format = subscription_format
        self.joints = list(joints)
        self.delete_status = 204
        self.poll_status = 200
        self.lock = threading.Lock()
        self.requests = []
        self.subscription_posts = []
        self.deleted = []
        self.polls = 0
        self._next_id = 1
        self.transport = httpx.MockTransport(self.handler)

    def _authorized(self, request):
        if f"-http-session-={self.session_cookie}" in request.headers.get("cookie", ""):
            return True
        auth = request.headers.get("authorization", "")
        if not auth.startswith("Digest "):
            return False
        fields = parse_keqv_list(parse_http_list(auth[len("Digest "):]))
        if fields.get("username") != self.username:
            return False
        ha1 = _md5(f"{self.username}:{self.realm}:{self.password}")
        ha2 = _md5(f"{request.method}:{fields['uri']}")
        expected = _md5(f"{ha1}:{fields['nonce']}:{fields['nc']}:{fields['cnonce']}:{fields['qop']}:{ha2}")
        return fields.get("response") == expected

    def handler(self, request):
        path = request.url.path
        with self.lock:
            self.requests.append((request.method, path))
        if not self._authorized(request):
            return httpx.Response(401, headers={"WWW-Authenticate":
                f'Digest realm="{self.realm}", nonce="{self.nonce}", qop="auth"'})

        if request.method == "GET" and path == "/rw/system":
            return httpx.Response(200, json={"_embedded": {"_state": [{"name": "IRB1200"}]}},
                headers=[("Set-Cookie", f"-http-session-={self.session_cookie}; Path=/"),
                    ("Set-Cookie", "ABBCX=17; Path=/")])

        if request.method == "GET" and path == "/logout":
            return httpx.Response(204)

        if request.method == "POST" and path == "/subscription":
            form = parse_qs(request.content.decode())
            resource_path = form["1"][0]
            with self.lock:
                self.subscription_posts.append(resource_path)
                if resource_path not in self.accepted_paths:
                    return httpx.Response(400, text="<html><body>Error: invalid resource</body></html>")
                sub_id = str(self._next_id)
                self._next_id += 1
            return self._subscription_response(sub_id)

        if request.method == "DELETE" and path.startswith("/subscription/"):
            with self.lock:
                self.deleted.append(path.rsplit("/", 1)[-1])
            return httpx.Response(self.delete_status)

        if request.method == "GET" and path.startswith("/rw/rapid/tasks/"):
            with self.lock:
                self.polls += 1
            if self.poll_status != 200:
                return httpx.Response(self.poll_status)
            return httpx.Response(200, text=joint_state_json(self.joints))

        return httpx.Response(404)

    def _subscription_response(self, sub_id):
        if self.subscription_format == "xml":
            body = f'<html xmlns="http://www.w3.org/1999/xhtml"><body><div class="state">' \
                f'<a href="/poll/{sub_id}" rel="self"></a></div></body></html>'
            return httpx.Response(201, text=body)
        if self.subscription_format == "json":
            return httpx.Response(201, json={"subscription": sub_id})
        return httpx.Response(201, text=f"{sub_id}\n")

class FakeSocket:
    def __init__(self, messages = (), hold_open = True):
        self.state = State.OPEN
        self.closed = False
        self.received = 0
        self._messages = list(messages)
        self._hold_open = hold_open

    async def recv(self):
        if self._messages:
            self.received += 1
            await asyncio.sleep(0.01)
            return self._messages.pop(0)
        if self._hold_open and not self.closed:
            await asyncio.sleep(3600)
        self.state = State.CLOSED
        raise ConnectionClosedError(None, None)

    async def close(self):
        self.closed = True
        self.state = State.CLOSED

class FakeConnector:
    """Stand-in for ``websockets.asyncio.client.connect``"""
    def __init__(self, sockets = None, hang_paths = ()):
        self.sockets = dict(sockets or {})
        self.hang_paths = tuple(hang_paths)
        self.calls = []
        self.called = threading.Event()

    async def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        path = urlparse(url).path
        self.called.set()
        if path in self.hang_paths:
            await asyncio.sleep(3600)
        if path in self.sockets:
            return self.sockets[path]
        raise InvalidHandshake(f"handshake with {url} failed")

    @property
    def urls(self):
        return [c[0] for c in self.calls]

def fast_options(**kwargs):
    kwargs.setdefault("polling_interval_ms", 10)
    kwargs.setdefault("request_timeout_ms", 2000)
    kwargs.setdefault("error_guard_delay_ms", 10)
    return StreamOptions(**kwargs)
