import math
from concurrent.futures import ThreadPoolExecutor

from . import sntp
from .errors import AggregationError, NetworkError, NTPError, ResponseTimeout
from .timestamp import Instant
from ntpclock.config import config
from ntpclock.log import log

OFFSET_FORMULAS = ('absolute-delay', 'standard')


def split_server(server, default_port):
    '''
    Split a `host` or `host:port` server entry. Bracketed IPv6 literals
    (`[::1]:123`) are accepted; a bare IPv6 literal always uses the default port.
    '''
    if server.startswith('['):
        host, _, rest = server[1:].partition(']')
        port = rest.removeprefix(':')
        return host, _parse_port(port, server) if port else default_port

    if server.count(':') == 1:
        host, port = server.split(':')
        return host, _parse_port(port, server)

    return server, default_port


def _parse_port(text, server):
    try:
        port = int(text)
    except ValueError:
        raise NetworkError(f'bad port in server entry: {server}')

    if not 0 < port < 65536:
        raise NetworkError(f'port out of range in server entry: {server}')

    return port


def sample_weight(delay_ms):
    try:
        return 1_000_000 / (delay_ms * delay_ms)
    except (ZeroDivisionError, OverflowError):
        return math.inf


def weighted_mean(pairs):
    '''
    Weighted mean of `(value, weight)` pairs. Pairs with a non-finite weight are
    dropped. Returns NaN when nothing is left, which callers must treat as "no
    estimate" rather than as zero.
    '''
    result = 0.0
    sum_of_weights = 0.0

    for value, weight in pairs:
        if not math.isfinite(weight):
            continue

        result += value * weight
        sum_of_weights += weight

    if sum_of_weights == 0:
        return math.nan

    return result / sum_of_weights


def bounded_adjustment(offset_ms, max_adjust_ms=200, divisor=5):
    return math.copysign(min(abs(offset_ms), max_adjust_ms), offset_ms) / divisor


class Clock:
    def __init__(self, servers=None, port=None, timeout=None, offset_formula=None,
                 parallel=None, now=Instant.now, exchange=sntp.roundtrip):
        self.servers = list(servers or config.gimme('clock.servers'))
        self.port = config.gimme('clock.port') if port is None else port
        self.timeout = config.gimme('clock.timeout') if timeout is None else timeout
        self.offset_formula = offset_formula or config.gimme('clock.offset_formula')
        self.parallel = config.gimme('clock.parallel') if parallel is None else parallel
        self.now = now
        self.exchange = exchange

        if self.offset_formula not in OFFSET_FORMULAS:
            raise ValueError(f'unknown offset formula: {self.offset_formula}')

    def sample_offset(self, sample):
        if self.offset_formula == 'standard':
            return sample.standard_offset_ms

        return sample.offset_ms

    def query(self, server):
        try:
            host, port = split_server(server, self.port)
            return self.exchange(
                host, port=port, timeout=self.timeout, now=self.now,
                bind_address=config.gimme('clock.bind_address'),
                strict=config.gimme('clock.strict'))
        except NTPError as e:
            return e

    def collect(self):
        '''
        Query every server and return `(server, sample_or_error)` in server
        order. Nothing is returned until all exchanges have finished.
        '''
        if self.parallel and len(self.servers) > 1:
            workers = min(len(self.servers), config.gimme('clock.max_workers'))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                outcomes = list(executor.map(self.query, self.servers))
        else:
            outcomes = [self.query(server) for server in self.servers]

        return list(zip(self.servers, outcomes))

    def samples(self):
        good = []

        for server, outcome in self.collect():
            log.print_partial(f'{server}=>')

            if isinstance(outcome, ResponseTimeout):
                log.finish(' ? [response took too long]')
            elif isinstance(outcome, NTPError):
                log.finish(f' ? [unreachable: {outcome}]')
            else:
                log.finish(f'{self.sample_offset(outcome):.3f}ms away from local system time'
                           f' (delay {outcome.delay_ms:.3f}ms)')
                good.append(outcome)

        return good

    def estimate_offset(self):
        pairs = (
            (self.sample_offset(s), sample_weight(s.delay_ms))
            for s in self.samples())

        return weighted_mean(pairs)

    def corrected_now(self):
        offset = self.estimate_offset()

        if not math.isfinite(offset):
            raise AggregationError('cannot estimate offset: no usable server replies')

        adjust_ms = bounded_adjustment(
            offset,
            max_adjust_ms=config.gimme('clock.max_adjust_ms'),
            divisor=config.gimme('clock.adjust_divisor'))
        log.print(f'weighted offset {offset:.3f}ms; adjusting by {adjust_ms:.3f}ms')

        return self.now().shifted(adjust_ms)

    def check_and_adjust(self, writer):
        writer.set(self.corrected_now())
