import ctypes
import sys
import time

from .errors import ClockError
from ntpclock.log import log


class ClockWriter:
    def set(self, instant):
        raise NotImplementedError


class PosixClockWriter(ClockWriter):
    def set(self, instant):
        try:
            time.clock_settime_ns(time.CLOCK_REALTIME, instant.total_ns)
        except OSError as e:
            raise ClockError(f'Unable to set the time: {e.strerror}', errno=e.errno) from e


class SYSTEMTIME(ctypes.Structure):
    _fields_ = [
        ('wYear', ctypes.c_ushort),
        ('wMonth', ctypes.c_ushort),
        ('wDayOfWeek', ctypes.c_ushort),
        ('wDay', ctypes.c_ushort),
        ('wHour', ctypes.c_ushort),
        ('wMinute', ctypes.c_ushort),
        ('wSecond', ctypes.c_ushort),
        ('wMilliseconds', ctypes.c_ushort)]

    @classmethod
    def from_instant(cls, instant):
        dt = instant.to_datetime()

        return cls(
            wYear=dt.year,
            wMonth=dt.month,
            wDayOfWeek=dt.isoweekday() % 7,  # Sunday is 0
            wDay=dt.day,
            wHour=dt.hour,
            wMinute=dt.minute,
            wSecond=dt.second,
            wMilliseconds=instant.nanos // 1_000_000)


class WindowsClockWriter(ClockWriter):
    def __init__(self):
        self.kernel32 = ctypes.WinDLL('kernel32', use_last_error=True)

    def set(self, instant):
        systime = SYSTEMTIME.from_instant(instant)

        if not self.kernel32.SetSystemTime(ctypes.byref(systime)):
            errno = ctypes.get_last_error()
            raise ClockError(f'Unable to set the time: {ctypes.FormatError(errno)}', errno=errno)


class DryRunClockWriter(ClockWriter):
    def __init__(self):
        self.last_instant = None

    def set(self, instant):
        self.last_instant = instant
        log.print(f'dry run, not setting clock to {instant.to_datetime().astimezone().isoformat()}')


def clock_writer(dry_run=False):
    if dry_run:
        return DryRunClockWriter()

    if sys.platform == 'win32':
        return WindowsClockWriter()

    return PosixClockWriter()
