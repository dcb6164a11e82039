import asyncio
import logging
import threading
from contextlib import suppress
from RobotRaconteur.RobotRaconteurPythonUtil import EventHook
from ._types import ConnectionState, TransportMode
from ._options import StreamOptions
from ._errors import RWSTelemetryError, ParseError, RequestError, classify
from ._auth import Authenticator, create_http_client
from ._subscription import SubscriptionManager
from ._transport import TransportNegotiator, fetch_joint_target
from ._parser import parse_payload
from ._relay import TelemetryRelay
from ._performance import PerformanceTracker
from ._status import ControllerStatusMonitor

_log = logging.getLogger(__name__)

_allowed_transitions = {
    ConnectionState.disconnected: (ConnectionState.connecting,),
    ConnectionState.connecting: (ConnectionState.connected, ConnectionState.error, ConnectionState.stopping),
    ConnectionState.connected: (ConnectionState.error, ConnectionState.stopping),
    ConnectionState.error: (ConnectionState.stopping,),
    ConnectionState.stopping: (ConnectionState.disconnected,),
}

STOPPED_REASON = "stopped"

class _Attempt:
    def __init__(self, endpoint, credentials, options):
        self.endpoint = endpoint
        self.credentials = credentials
        self.options = options
        self.loop = None
        self.task = None
        self.thread = None
        self.transport = None
        self.status_monitor = None
        self.status_task = None
        self.cleaning = False
        self.finalized = False

    def request_cancel(self):
        def _cancel():
            # Cleanup must run to completion once started
            if not self.cleaning and self.task is not None:
                self.task.cancel()
        with suppress(RuntimeError):
            self.loop.call_soon_threadsafe(_cancel)

class RWSTelemetryClient:
    """
    Streams joint telemetry from an ABB controller through Robot Web Services.

    Each ``start()`` launches one connection attempt on a dedicated worker
    thread running its own asyncio event loop. The worker authenticates,
    negotiates a subscription socket or HTTP polling, and publishes parsed
    samples to the ``relay``. The host never blocks on network I/O: it reads
    ``latest_sample()`` or registers handlers on the event hooks.

    Events fire on the worker thread:

    * ``on_connected(transport_mode)``
    * ``on_disconnected(reason)``
    * ``on_error(message)``
    * ``on_sample(sample)``
    * ``on_state_changed(state)``
    * ``on_status(controller_status)``
    """
    def __init__(self, http_transport = None, socket_connect = None):
        self._http_transport = http_transport
        self._socket_connect = socket_connect
        self._lock = threading.RLock()
        self._state_cv = threading.Condition(self._lock)
        self._state = ConnectionState.disconnected
        self._transport_mode = TransportMode.unset
        self._attempt = None
        self._last_error = None
        self._controller_status = None
        self._relay = TelemetryRelay()
        self._performance = PerformanceTracker()

        self.on_connected = EventHook()
        self.on_disconnected = EventHook()
        self.on_error = EventHook()
        self.on_sample = EventHook()
        self.on_state_changed = EventHook()
        self.on_status = EventHook()

    @property
    def state(self):
        with self._lock:
            return self._state

    @property
    def transport_mode(self):
        with self._lock:
            return self._transport_mode

    @property
    def last_error(self):
        with self._lock:
            return self._last_error

    @property
    def controller_status(self):
        with self._lock:
            return self._controller_status

    @property
    def relay(self):
        return self._relay

    def latest_sample(self):
        return self._relay.latest()

    def take_sample(self):
        return self._relay.take()

    def performance(self):
        return self._performance.snapshot()

    def wait_for_state(self, states, timeout = None):
        if isinstance(states, ConnectionState):
            states = (states,)
        with self._state_cv:
            return self._state_cv.wait_for(lambda: self._state in states, timeout)

    def start(self, endpoint, credentials, options = None):
        if options is None:
            options = StreamOptions()
        options.validate()

        with self._lock:
            state = self._state
        if state in (ConnectionState.connecting, ConnectionState.connected):
            _log.info("Already connected or connecting")
            return False
        if state == ConnectionState.stopping:
            _log.warning("Cannot start while stopping")
            return False
        if state == ConnectionState.error:
            self.stop()

        with self._lock:
            if self._state != ConnectionState.disconnected:
                _log.warning("Cannot start from state %s", self._state.name)
                return False
            attempt = _Attempt(endpoint, credentials, options)
            self._attempt = attempt
            self._transport_mode = TransportMode.unset
            self._last_error = None
            self._controller_status = None
            self._relay.clear()
            self._performance.reset()
            self._transition_locked(ConnectionState.connecting)

            attempt.loop = asyncio.new_event_loop()
            attempt.task = attempt.loop.create_task(self._run_attempt(attempt))
            attempt.thread = threading.Thread(target=self._worker_main, args=(attempt,),
                name=f"rws-telemetry-{endpoint.host}", daemon=True)
            attempt.thread.start()
        _log.info("Starting Robot Web Services connection to %s:%d", endpoint.host, endpoint.port)
        return True

    def stop(self, timeout = None):
        """Request shutdown and wait until the client is disconnected"""
        with self._lock:
            state = self._state
            attempt = self._attempt
            if state == ConnectionState.disconnected:
                return
            if state != ConnectionState.stopping:
                self._transition_locked(ConnectionState.stopping)
            worker_done = attempt is None or attempt.finalized
            if worker_done:
                self._disconnect_locked(STOPPED_REASON)
            else:
                attempt.request_cancel()
        _log.info("Stopping Robot Web Services connection")

        if worker_done or attempt.thread is threading.current_thread():
            return
        attempt.thread.join(timeout)
        if attempt.thread.is_alive():
            _log.warning("Telemetry worker did not stop within %s s", timeout)

    def _fire(self, hook, *args):
        try:
            hook.fire(*args)
        except Exception:
            _log.exception("Telemetry event handler raised an exception")

    def _transition_locked(self, new_state):
        old_state = self._state
        if new_state not in _allowed_transitions[old_state]:
            raise RuntimeError(f"Invalid connection state transition {old_state.name} -> {new_state.name}")
        self._state = new_state
        self._state_cv.notify_all()
        _log.debug("Connection state %s -> %s", old_state.name, new_state.name)
        self._fire(self.on_state_changed, new_state)

    def _disconnect_locked(self, reason):
        self._transition_locked(ConnectionState.disconnected)
        self._transport_mode = TransportMode.unset
        self._attempt = None
        self._fire(self.on_disconnected, reason)

    def _worker_main(self, attempt):
        asyncio.set_event_loop(attempt.loop)
        try:
            attempt.loop.run_until_complete(attempt.task)
        except asyncio.CancelledError:
            pass
        except Exception:
            _log.exception("Telemetry worker failed")
        finally:
            with suppress(Exception):
                attempt.loop.run_until_complete(attempt.loop.shutdown_asyncgens())
            attempt.loop.close()
            # Cancelled before the attempt coroutine ever ran
            if not attempt.finalized:
                self._finalize(attempt)

    async def _run_attempt(self, attempt):
        options = attempt.options
        endpoint = attempt.endpoint
        http = create_http_client(endpoint, attempt.credentials, options.request_timeout_s, self._http_transport)
        subscriptions = SubscriptionManager(http, endpoint, options)
        authenticator = Authenticator(http, options.request_timeout_s)
        try:
            session = await authenticator.authenticate()
            negotiator = TransportNegotiator(http, endpoint, options, subscriptions, self._performance,
                self._socket_connect)
            transport = await negotiator.negotiate(session)
            attempt.transport = transport
            with self._lock:
                self._transport_mode = transport.mode
            if transport.mode == TransportMode.socket and options.seed_socket_sample:
                await self._seed_sample(attempt, http)
            await self._stream(attempt, transport)
        except Exception as e:
            if not isinstance(e, RWSTelemetryError):
                _log.exception("Unexpected telemetry failure")
            self._attempt_failed(attempt, e)
        finally:
            attempt.cleaning = True
            await self._cleanup(attempt, http, subscriptions, authenticator)
            self._finalize(attempt)

    async def _stream(self, attempt, transport):
        payloads = transport.payloads()
        try:
            async for payload in payloads:
                try:
                    sample = parse_payload(payload, transport.subscription_id)
                except ParseError as e:
                    _log.warning("Dropping telemetry message: %s", e)
                    continue
                if sample is not None:
                    self._accept_sample(attempt, sample)
        finally:
            with suppress(Exception):
                await payloads.aclose()

    async def _seed_sample(self, attempt, http):
        # Subscription events only arrive on change, read the current value once
        options = attempt.options
        path = options.polling_url_path(attempt.endpoint.task_name)
        try:
            payload = await fetch_joint_target(http, path, options.request_timeout_s, self._performance)
            sample = parse_payload(payload)
        except (RequestError, ParseError) as e:
            _log.warning("Initial joint target read failed: %s", e)
            return
        if sample is not None:
            self._accept_sample(attempt, sample)

    def _accept_sample(self, attempt, sample):
        first = False
        with self._lock:
            if self._attempt is not attempt:
                return
            if self._state not in (ConnectionState.connecting, ConnectionState.connected):
                return
            self._performance.record_success()
            if self._state == ConnectionState.connecting:
                self._transition_locked(ConnectionState.connected)
                _log.info("Connection established using %s", self._transport_mode.name)
                self._fire(self.on_connected, self._transport_mode)
                first = True
            # on_connected handlers may have stopped the client
            if self._state != ConnectionState.connected:
                return
            self._relay.publish(sample)
        if first:
            self._start_status_monitor(attempt)
        self._fire(self.on_sample, sample)

    def _start_status_monitor(self, attempt):
        options = attempt.options
        if options.status_interval_s <= 0:
            return
        attempt.status_monitor = ControllerStatusMonitor(attempt.endpoint, attempt.credentials,
            options.status_interval_s, options.status_signals)
        attempt.status_task = asyncio.get_running_loop().create_task(
            attempt.status_monitor.run(self._status_updated))

    def _status_updated(self, status):
        with self._lock:
            self._controller_status = status
        self._fire(self.on_status, status)

    def _attempt_failed(self, attempt, exc):
        reason = classify(exc)
        _log.error("Connection attempt failed: %s", reason)
        with self._lock:
            if self._attempt is not attempt:
                return
            self._last_error = reason
            if self._state == ConnectionState.connected:
                self._transition_locked(ConnectionState.error)
                self._fire(self.on_error, reason)
                # Handlers run on this thread and may already have called stop()
                if self._state == ConnectionState.error:
                    self._transition_locked(ConnectionState.stopping)

    async def _cleanup(self, attempt, http, subscriptions, authenticator):
        if attempt.status_task is not None:
            attempt.status_task.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await attempt.status_task
        await subscriptions.delete_all()
        if attempt.transport is not None:
            await attempt.transport.close()
        if attempt.status_monitor is not None:
            await attempt.status_monitor.close()
        # Controllers limit concurrent sessions
        await authenticator.logout()
        with suppress(Exception):
            await http.aclose()
        _log.info("Performance summary: %s", self._performance.summary())

    def _finalize(self, attempt):
        with self._lock:
            attempt.finalized = True
            if self._attempt is not attempt:
                return
            state = self._state
            if state == ConnectionState.connecting:
                reason = self._last_error or "TransportError: connection attempt ended"
                self._last_error = reason
                self._transport_mode = TransportMode.unset
                self._transition_locked(ConnectionState.error)
                self._fire(self.on_error, reason)
            elif state == ConnectionState.connected:
                reason = self._last_error or "TransportError: telemetry stream ended"
                self._last_error = reason
                self._transition_locked(ConnectionState.error)
                self._fire(self.on_error, reason)
                if self._attempt is not attempt:
                    return
                if self._state == ConnectionState.error:
                    self._transition_locked(ConnectionState.stopping)
                self._disconnect_locked(reason)
            elif state == ConnectionState.stopping:
                reason = self._last_error if self._last_error else STOPPED_REASON
                self._disconnect_locked(reason)
