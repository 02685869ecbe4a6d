class NTPError(Exception):
    pass


class NetworkError(NTPError):
    pass


class ResponseTimeout(NetworkError, TimeoutError):
    pass


class ProtocolError(NTPError):
    pass


class TimestampDecodeError(ProtocolError):
    pass


class AggregationError(NTPError):
    pass


class ClockError(Exception):
    def __init__(self, message, errno=None):
        super().__init__(message)
        self.errno = errno
