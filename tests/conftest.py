import socket
import threading

import pytest

from ntpclock.clock import timestamp
from ntpclock.clock.timestamp import Instant
from ntpclock.config import config
from ntpclock.log import log

SERVER_LVM = 0b00_011_100  # version 3, server mode


class FakeNtpServer:
    '''
    UDP listener on 127.0.0.1 that hands every datagram to `respond` and sends
    back whatever it returns. Returning None drops the request.
    '''

    def __init__(self, respond):
        self.respond = respond
        self.requests = []

        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(('127.0.0.1', 0))
        self.sock.settimeout(0.05)

        self.stopped = threading.Event()
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    @property
    def port(self):
        return self.sock.getsockname()[1]

    @property
    def address(self):
        return f'127.0.0.1:{self.port}'

    def _serve(self):
        while not self.stopped.is_set():
            try:
                data, addr = self.sock.recvfrom(1024)
            except TimeoutError:
                continue

            self.requests.append(data)
            reply = self.respond(data)

            if reply is not None:
                self.sock.sendto(reply, addr)

    def close(self):
        self.stopped.set()
        self.thread.join()
        self.sock.close()


class StepClock:
    '''Time source that moves forward by a fixed step on every call.'''

    def __init__(self, start=None, step_ms=10):
        self.current = start or Instant(seconds=1_700_000_000)
        self.step_ms = step_ms
        self.calls = 0

    def __call__(self):
        value = self.current
        self.current = self.current.shifted(self.step_ms)
        self.calls += 1
        return value


def build_reply(rx, tx, lvm=SERVER_LVM, stratum=1):
    data = bytearray(48)
    data[0] = lvm
    data[1] = stratum
    data[32:40] = timestamp.encode(timestamp.from_instant(rx))
    data[40:48] = timestamp.encode(timestamp.from_instant(tx))

    return bytes(data)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path):
    config.use_file(tmp_path / 'config.toml')
    log.quiet = False
    yield
    config.use_file()
    log.quiet = False


@pytest.fixture
def ntp_server():
    servers = []

    def start(respond):
        server = FakeNtpServer(respond)
        servers.append(server)
        return server

    yield start

    for server in servers:
        server.close()


@pytest.fixture
def make_reply():
    return build_reply


@pytest.fixture
def step_clock():
    return StepClock()


@pytest.fixture
def closed_port():
    # a port nothing listens on, so a connected UDP socket sees ICMP refusal
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(('127.0.0.1', 0))
    port = sock.getsockname()[1]
    sock.close()

    return port
