import asyncio
import logging
import time
from contextlib import suppress
import abb_robot_client.rws_aio as rws_aio
from ._types import ControllerStatus

_log = logging.getLogger(__name__)

class ControllerStatusMonitor:
    """
    Periodically reads controller state, operation mode, RAPID execution
    state and selected digital signals on a separate RWS session.
    """
    def __init__(self, endpoint, credentials, interval_s, signals = (), robot_client = None):
        self._interval = interval_s
        self._signals = tuple(signals)
        if robot_client is None:
            robot_client = rws_aio.RWS_AIO(endpoint.base_url, credentials.username, credentials.password)
        self._robot_client = robot_client
        self.last_status = None

    async def read_status(self):
        controller_state = await self._robot_client.get_controller_state()
        opmode = await self._robot_client.get_operation_mode()
        exec_state = (await self._robot_client.get_execution_state()).ctrlexecstate
        signals = []
        for s in self._signals:
            signals.append((s, int(await self._robot_client.get_digital_io(s))))
        self.last_status = ControllerStatus(str(controller_state), str(opmode), str(exec_state),
            tuple(signals), time.time())
        return self.last_status

    async def run(self, callback):
        while True:
            try:
                status = await self.read_status()
            except Exception as e:
                _log.warning("Failed to update controller status: %s", e)
            else:
                callback(status)
            await asyncio.sleep(self._interval)

    async def close(self):
        with suppress(Exception):
            await self._robot_client.logout()
