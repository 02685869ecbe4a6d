import argparse
import sys
from datetime import datetime

from ntpclock import __version__
from ntpclock.clock import Clock
from ntpclock.clock.errors import AggregationError, ClockError
from ntpclock.clock.writer import clock_writer
from ntpclock.config import STANDARDS, ConfigError, config
from ntpclock.formats import TimeFormatError, parse, render
from ntpclock.log import log

ACTIONS = ('get', 'set', 'check-ntp')


def make_parser():
    p = argparse.ArgumentParser(
        prog='ntpclock',
        description='Gets and sets the time, optionally checking it against NTP servers.',
        epilog='Note: UNIX timestamps are parsed as whole seconds since 1st January 1970 '
               '0:00:00 UTC. For more accuracy, use another format.')
    p.add_argument('action', nargs='?', choices=ACTIONS, default='get',
                   help='get: print the time; set: apply <datetime>; '
                        'check-ntp: compare against NTP servers and nudge the clock')
    p.add_argument('datetime', nargs='?', default='',
                   help="When <action> is 'set', apply <datetime>. Otherwise, ignore.")
    p.add_argument('-s', '--use-standard', dest='standard', choices=STANDARDS, default=None,
                   help='Time format for reading and writing (default: rfc3339)')
    p.add_argument('--config', default=None, help='Path to a TOML config file')
    p.add_argument('--server', dest='servers', action='append', default=None,
                   help='NTP server as host or host:port; repeat for more (overrides config)')
    p.add_argument('--parallel', action='store_true', default=None,
                   help='Query NTP servers concurrently')
    p.add_argument('--dry-run', action='store_true',
                   help='check-ntp: report the correction without setting the clock')
    p.add_argument('-q', '--quiet', action='store_true', help='Suppress progress output')
    p.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    return p


def do_get(standard):
    print(render(datetime.now().astimezone(), standard))


def do_set(text, standard, writer):
    writer.set(parse(text, standard))


def do_check_ntp(servers, parallel, writer):
    Clock(servers=servers, parallel=parallel).check_and_adjust(writer)


def main(argv=None):
    parser = make_parser()
    ns = parser.parse_intermixed_args(argv)

    if ns.config is not None:
        config.use_file(ns.config)

    log.quiet = ns.quiet

    if ns.action == 'set' and not ns.datetime:
        parser.error("the 'set' action requires a <datetime>")

    try:
        standard = ns.standard or config.gimme('output.standard')

        match ns.action:
            case 'get':
                do_get(standard)
            case 'set':
                do_set(ns.datetime, standard, clock_writer(dry_run=ns.dry_run))
            case 'check-ntp':
                do_check_ntp(ns.servers, ns.parallel, clock_writer(dry_run=ns.dry_run))

    except (AggregationError, ClockError, ConfigError, TimeFormatError) as e:
        log.error(e)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
