import socket
from dataclasses import dataclass
from enum import Enum

from . import timestamp
from .errors import NetworkError, ProtocolError, ResponseTimeout
from .timestamp import Instant

NTP_MESSAGE_LENGTH = 48
NTP_PORT = 123
NTP_VERSION = 3
LOCAL_BIND_ADDRESS = '0.0.0.0'
RECV_BUFFER_SIZE = 1024

RX_TIMESTAMP_OFFSET = 32
TX_TIMESTAMP_OFFSET = 40


class LEAP(Enum):
    NONE = 0
    ADD = 1
    REMOVE = 2
    UNSYNCHRONIZED = 3


class MODE(Enum):
    UNSPECIFIED = 0
    SYMMETRIC_ACTIVE = 1
    SYMMETRIC_PASSIVE = 2
    CLIENT = 3
    SERVER = 4
    BROADCAST_MULTICAST = 5
    CONTROL_MESSAGE = 6
    RESERVED = 7


@dataclass
class LeapVerMode:
    leap: LEAP
    mode: MODE
    version: int = NTP_VERSION

    @classmethod
    def from_packed(cls, value):
        return cls(
            leap=LEAP((value & 0b11000000) >> 6),
            version=(value & 0b00111000) >> 3,
            mode=MODE(value & 0b00000111))

    def to_packed(self):
        return (self.leap.value << 6) \
            | (self.version << 3) \
            | self.mode.value


class NtpMessage:
    def __init__(self, data=None):
        if data is None:
            data = bytes(NTP_MESSAGE_LENGTH)

        self.data = bytearray(data)

    @classmethod
    def client(cls):
        msg = cls()
        msg.data[0] = LeapVerMode(leap=LEAP.NONE, mode=MODE.CLIENT).to_packed()

        return msg

    @classmethod
    def from_reply(cls, payload):
        if len(payload) < NTP_MESSAGE_LENGTH:
            raise ProtocolError(
                f'short reply: {len(payload)} bytes, expected {NTP_MESSAGE_LENGTH}')

        return cls(payload[:NTP_MESSAGE_LENGTH])

    @property
    def lvm(self):
        return LeapVerMode.from_packed(self.data[0])

    @property
    def stratum(self):
        return self.data[1]

    def rx_time(self):
        return timestamp.decode(self.data, RX_TIMESTAMP_OFFSET)

    def tx_time(self):
        return timestamp.decode(self.data, TX_TIMESTAMP_OFFSET)

    def check_server_reply(self):
        '''
        Reject replies a well-behaved server would never send. Only used in
        strict mode; by default every field but the two timestamps is ignored.
        '''
        lvm = self.lvm
        tx = self.tx_time()

        ok = lvm.leap != LEAP.UNSYNCHRONIZED \
            and lvm.mode == MODE.SERVER \
            and 0 < self.stratum < 16 \
            and (tx.seconds, tx.fraction) != (0, 0)

        if not ok:
            raise ProtocolError(f'unusable server reply: {lvm=} stratum={self.stratum}')

    def __bytes__(self):
        return bytes(self.data)


@dataclass(frozen=True)
class RoundtripSample:
    t1: Instant
    t2: Instant
    t3: Instant
    t4: Instant
    server: str = None

    @property
    def delay_ms(self):
        return ((self.t4 - self.t1) - (self.t3 - self.t2)) / 1_000_000

    @property
    def offset_ms(self):
        return abs(self.delay_ms) / 2

    @property
    def standard_offset_ms(self):
        return ((self.t2 - self.t1) + (self.t3 - self.t4)) / 2 / 1_000_000


def roundtrip(host, port=NTP_PORT, timeout=1, now=Instant.now,
              bind_address=LOCAL_BIND_ADDRESS, strict=False):
    request = bytes(NtpMessage.client())

    try:
        family, _, _, _, address = socket.getaddrinfo(
            host, port, type=socket.SOCK_DGRAM)[0]
    except (socket.gaierror, UnicodeError, OverflowError) as e:
        raise NetworkError(f'cannot resolve {host}: {e}') from e

    if family == socket.AF_INET6 and bind_address == LOCAL_BIND_ADDRESS:
        bind_address = '::'

    try:
        client = socket.socket(family, socket.SOCK_DGRAM)
    except OSError as e:
        raise NetworkError(f'cannot open socket: {e}') from e

    with client:
        client.settimeout(timeout)

        try:
            client.bind((bind_address, 0))
            client.connect(address)

            t1 = now()
            client.send(request)
            payload = client.recv(RECV_BUFFER_SIZE)
            t4 = now()
        except TimeoutError as e:
            raise ResponseTimeout(f'no reply from {host} within {timeout}s') from e
        except OSError as e:
            raise NetworkError(f'exchange with {host} failed: {e}') from e

    reply = NtpMessage.from_reply(payload)

    if strict:
        reply.check_server_reply()

    try:
        t2 = timestamp.to_instant(reply.rx_time())
        t3 = timestamp.to_instant(reply.tx_time())
    except ValueError as e:
        raise ProtocolError(f'undecodable timestamp from {host}: {e}') from e

    return RoundtripSample(t1=t1, t2=t2, t3=t3, t4=t4, server=host)
