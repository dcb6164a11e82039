import argparse
import asyncio
import logging
import signal
import sys
from contextlib import suppress
import numpy as np
from aioconsole import ainput
from ._types import Endpoint, Credentials
from ._options import StreamOptions
from ._stream import RWSTelemetryClient

def _parse_args(argv):
    parser = argparse.ArgumentParser(description="Stream joint telemetry from an ABB robot controller")
    parser.add_argument("--robot-host", type=str, default="127.0.0.1", help="Controller IP address or host name")
    parser.add_argument("--robot-port", type=int, default=80, help="Robot Web Services port")
    parser.add_argument("--username", type=str, default="Default User", help="Robot Web Services user")
    parser.add_argument("--password", type=str, default="robotics", help="Robot Web Services password")
    parser.add_argument("--task", type=str, default="T_ROB1", help="RAPID task name")
    parser.add_argument("--polling-interval-ms", type=int, default=100, help="HTTP polling interval")
    parser.add_argument("--request-timeout-ms", type=int, default=3000, help="HTTP and socket connect timeout")
    parser.add_argument("--no-socket", action='store_true', default=False, help="Always use HTTP polling")
    parser.add_argument("--status-interval", type=float, default=0.,
        help="Controller status update period in seconds, 0 to disable")
    parser.add_argument("--print-rate", type=float, default=2., help="Sample print rate in Hz")
    parser.add_argument("--wait-signal",action='store_const',const=True,default=False,
        help="wait for SIGTERM or SIGINT (Linux only)")
    parser.add_argument("--verbose", "-v", action='store_true', default=False, help="Enable debug logging")
    return parser.parse_args(argv)

async def _print_samples(client, rate):
    # Host side consumer, only ever reads the newest sample
    while True:
        sample = client.take_sample()
        if sample is not None:
            angles = np.array2string(sample.joint_angles, precision=2, suppress_small=True)
            print(f"{client.transport_mode.name}: {angles}")
        await asyncio.sleep(1.0 / rate)

async def amain(argv = None):
    args = _parse_args(argv)

    logging.basicConfig(level = logging.DEBUG if args.verbose else logging.INFO,
        format = "%(asctime)s %(levelname)s %(name)s: %(message)s")

    endpoint = Endpoint(args.robot_host, args.robot_port, args.task)
    credentials = Credentials(args.username, args.password)
    options = StreamOptions(
        polling_interval_ms = args.polling_interval_ms,
        prefer_socket = not args.no_socket,
        request_timeout_ms = args.request_timeout_ms,
        status_interval_s = args.status_interval
    )
    try:
        options.validate()
    except ValueError as e:
        print(f"Invalid options: {e}", file=sys.stderr)
        return 2

    client = RWSTelemetryClient()
    client.on_error += lambda msg: print(f"Connection error: {msg}", file=sys.stderr)
    client.on_status += lambda s: print(f"Controller: {s.controller_state}, {s.operation_mode}, {s.execution_state}")

    loop = asyncio.get_running_loop()
    client.start(endpoint, credentials, options)
    printer = asyncio.create_task(_print_samples(client, args.print_rate))
    try:
        if args.wait_signal:
            exit_evt = asyncio.Event()
            print("Press Ctrl-C to quit...")
            loop.add_signal_handler(signal.SIGTERM, exit_evt.set)
            loop.add_signal_handler(signal.SIGINT, exit_evt.set)
            await exit_evt.wait()
        else:
            await ainput("Streaming started, press enter to quit...\n")
    finally:
        printer.cancel()
        with suppress(asyncio.CancelledError):
            await printer
        await loop.run_in_executor(None, client.stop)

    counters = client.performance()
    print(f"Performance Summary: {counters.successful_requests}/{counters.total_requests} requests successful "
        f"({counters.success_ratio*100.:.1f}%), {counters.measured_frequency_hz:.1f} Hz")
    return 0 if client.last_error is None else 1

def main():
    sys.exit(asyncio.run(amain()))
