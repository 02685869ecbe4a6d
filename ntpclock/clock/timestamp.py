'''
Conversions between NTP's 64-bit fixed-point timestamps and absolute UTC
instants.

An NTP timestamp is two unsigned 32-bit integers: whole seconds since the NTP
epoch (1900-01-01T00:00:00Z) and a binary fraction of a second, where 2**32
units make one second. One fraction unit is roughly 0.233 nanoseconds, so every
nanosecond value survives the trip through a timestamp and back unchanged.

Instants are kept as integer Unix seconds plus integer nanoseconds because
`datetime` stops at microseconds.
'''

import struct
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .errors import TimestampDecodeError

MAX32 = 2 ** 32
NS_PER_SECOND = 10 ** 9
NTP_TD_UNIX_SECONDS = 2_208_988_800
TIMESTAMP_FORMAT = '!2I'
TIMESTAMP_LENGTH = struct.calcsize(TIMESTAMP_FORMAT)

UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
MIN_UNIX_SECONDS = int((datetime.min.replace(tzinfo=timezone.utc) - UNIX_EPOCH).total_seconds())
MAX_UNIX_SECONDS = int((datetime.max.replace(tzinfo=timezone.utc) - UNIX_EPOCH).total_seconds())


@dataclass(frozen=True, order=True)
class Instant:
    seconds: int
    nanos: int = 0

    def __post_init__(self):
        if not 0 <= self.nanos < NS_PER_SECOND:
            raise ValueError(f'nanoseconds out of range: {self.nanos}')

        if not MIN_UNIX_SECONDS <= self.seconds <= MAX_UNIX_SECONDS:
            raise ValueError(f'not a representable calendar instant: {self.seconds}s')

    @classmethod
    def from_ns(cls, total_ns):
        seconds, nanos = divmod(total_ns, NS_PER_SECOND)
        return cls(seconds=seconds, nanos=nanos)

    @classmethod
    def from_datetime(cls, dt):
        if dt.tzinfo is None:
            raise ValueError('naive datetimes have no absolute instant')

        delta = dt - UNIX_EPOCH
        total_us = (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds
        return cls.from_ns(total_us * 1_000)

    @classmethod
    def now(cls):
        return cls.from_ns(time.time_ns())

    @property
    def total_ns(self):
        return self.seconds * NS_PER_SECOND + self.nanos

    def to_datetime(self):
        # sub-microsecond precision is truncated
        return UNIX_EPOCH + timedelta(seconds=self.seconds, microseconds=self.nanos // 1_000)

    def shifted(self, milliseconds):
        return Instant.from_ns(self.total_ns + round(milliseconds * 1_000_000))

    def __sub__(self, other):
        if not isinstance(other, Instant):
            return NotImplemented

        return self.total_ns - other.total_ns


@dataclass(frozen=True)
class NtpTimestamp:
    seconds: int = 0
    fraction: int = 0

    def __post_init__(self):
        for name in ('seconds', 'fraction'):
            value = getattr(self, name)
            if not 0 <= value < MAX32:
                raise ValueError(f'{name} is not an unsigned 32-bit value: {value}')


def decode(buf, offset=0):
    try:
        seconds, fraction = struct.unpack_from(TIMESTAMP_FORMAT, buf, offset)
    except struct.error as e:
        raise TimestampDecodeError(
            f'need {TIMESTAMP_LENGTH} bytes at offset {offset}, have {max(len(buf) - offset, 0)}') from e

    return NtpTimestamp(seconds=seconds, fraction=fraction)


def encode(ts):
    return struct.pack(TIMESTAMP_FORMAT, ts.seconds, ts.fraction)


def to_instant(ts):
    # round half up, in integers so no precision is lost on large fractions
    nanos = (ts.fraction * NS_PER_SECOND + MAX32 // 2) // MAX32
    seconds = ts.seconds - NTP_TD_UNIX_SECONDS

    if nanos == NS_PER_SECOND:
        seconds += 1
        nanos = 0

    return Instant(seconds=seconds, nanos=nanos)


def from_instant(instant):
    seconds = instant.seconds + NTP_TD_UNIX_SECONDS
    fraction = (instant.nanos * MAX32 + NS_PER_SECOND // 2) // NS_PER_SECOND

    if not 0 <= seconds < MAX32:
        raise ValueError(f'instant is outside NTP era 0: {instant}')

    return NtpTimestamp(seconds=seconds, fraction=fraction)
