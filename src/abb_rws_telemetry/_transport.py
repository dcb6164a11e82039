import asyncio
import logging
import time
from contextlib import suppress
import httpx
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State
from ._types import TransportMode
from ._errors import RequestError, SubscriptionError, TransportError

_log = logging.getLogger(__name__)

JOINT_RESOURCE = "jointtarget"

async def fetch_joint_target(http_client, path, timeout, performance):
    performance.record_request()
    try:
        res = await http_client.get(path, timeout=timeout)
        res.raise_for_status()
    except httpx.HTTPError as e:
        raise RequestError(f"GET {path} failed: {e}") from e
    return res.text

class SocketTransport:
    mode = TransportMode.socket

    def __init__(self, connection, subscription, url, performance):
        self.url = url
        self.subscription = subscription
        self._connection = connection
        self._performance = performance
        self._closed = False

    @property
    def subscription_id(self):
        return self.subscription.subscription_id

    async def payloads(self):
        while True:
            try:
                message = await self._connection.recv()
            except ConnectionClosed as e:
                raise TransportError(f"Socket closed by peer ({e})") from e
            except Exception as e:
                raise TransportError(f"Socket receive failed: {e}") from e
            self._performance.record_request()
            yield message

    async def close(self):
        if self._closed:
            return
        self._closed = True
        with suppress(Exception):
            await self._connection.close()

class PollingTransport:
    mode = TransportMode.polling
    subscription_id = None

    def __init__(self, http_client, path, options, performance, clock = time.monotonic, sleep = asyncio.sleep):
        self.path = path
        self._http = http_client
        self._options = options
        self._performance = performance
        self._clock = clock
        self._sleep = sleep

    async def payloads(self):
        interval = self._options.polling_interval_s
        max_failures = self._options.max_consecutive_failures
        failures = 0
        while True:
            start = self._clock()
            failed = False
            try:
                payload = await fetch_joint_target(self._http, self.path, self._options.request_timeout_s,
                    self._performance)
            except RequestError as e:
                failures += 1
                failed = True
                _log.warning("Polling request failed (%d/%d): %s", failures, max_failures, e)
                if failures >= max_failures:
                    raise TransportError(f"{failures} consecutive polling requests failed") from e
            else:
                failures = 0
                yield payload

            # Slow requests shorten the next sleep but never make it negative
            delay = max(0., interval - (self._clock() - start))
            if failed:
                delay += self._options.error_guard_delay_ms * 1e-3
            if delay > 0:
                await self._sleep(delay)

    async def close(self):
        pass

class TransportNegotiator:
    """
    Chooses the transport for one connection attempt: a subscription socket
    when the controller accepts one, HTTP polling otherwise. Exactly one
    transport is activated per negotiation.
    """
    def __init__(self, http_client, endpoint, options, subscriptions, performance, connect = None):
        self._http = http_client
        self._endpoint = endpoint
        self._options = options
        self._subscriptions = subscriptions
        self._performance = performance
        self._connect = connect if connect is not None else ws_connect

    async def negotiate(self, session):
        if self._options.prefer_socket:
            try:
                return await self._try_socket(session)
            except (SubscriptionError, TransportError) as e:
                _log.warning("%s, falling back to HTTP polling", e)
        return self._activate_polling()

    def socket_candidates(self, subscription):
        urls = []
        if subscription.location:
            urls.append(self._endpoint.socket_url(subscription.location))
        for p in self._options.socket_paths:
            url = self._endpoint.socket_url(p)
            if url not in urls:
                urls.append(url)
        return urls

    async def _try_socket(self, session):
        subscription = await self._subscriptions.create_subscription(JOINT_RESOURCE)
        if subscription is None:
            raise SubscriptionError("Failed to create joint subscription")

        connection, url = await self._open_socket(session, subscription)
        if connection is None:
            await self._subscriptions.delete_subscription(subscription)
            raise TransportError("No socket endpoint accepted the connection")
        return self._activate_socket(connection, subscription, url)

    async def _open_socket(self, session, subscription):
        headers = {}
        cookie = session.cookie_header()
        if cookie:
            # Socket libraries do not attach the HTTP session cookies on their own
            headers["Cookie"] = cookie
        else:
            _log.warning("No session cookies available for socket connection")

        timeout = self._options.request_timeout_s
        for url in self.socket_candidates(subscription):
            _log.debug("Attempting socket connection to %s", url)
            # A connection is not reusable after a failed handshake, each candidate gets a new one
            try:
                connection = await asyncio.wait_for(self._connect(url,
                    subprotocols = [self._options.socket_subprotocol],
                    additional_headers = headers,
                    open_timeout = timeout), timeout)
            except Exception as e:
                _log.info("Socket endpoint %s failed: %s", url, e)
                continue
            if connection.state is State.OPEN:
                return connection, url
            _log.info("Socket endpoint %s did not reach open state", url)
            with suppress(Exception):
                await connection.close()
        return None, None

    def _activate_socket(self, connection, subscription, url):
        _log.info("Socket connected to %s, subscription %s", url, subscription.subscription_id)
        return SocketTransport(connection, subscription, url, self._performance)

    def _activate_polling(self):
        path = self._options.polling_url_path(self._endpoint.task_name)
        _log.info("Using HTTP polling of %s every %d ms", path, self._options.polling_interval_ms)
        return PollingTransport(self._http, path, self._options, self._performance)
