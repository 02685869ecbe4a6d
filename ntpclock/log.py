import sys
from datetime import datetime


class Log:
    def __init__(self):
        self.in_partial = False
        self.quiet = False

    @staticmethod
    def timestamp():
        return datetime.now().astimezone().strftime('%Y/%m/%d %H:%M:%S')

    def _end_partial(self):
        if self.in_partial:
            print()
            self.in_partial = False

    def print(self, *args, **kwargs):
        if self.quiet:
            return

        self._end_partial()
        print(f'[{self.timestamp()}]', *args, **kwargs)

    def print_partial(self, *args, **kwargs):
        if self.quiet:
            return

        self._end_partial()
        print(f'[{self.timestamp()}]', *args, **kwargs, end='', flush=True)
        self.in_partial = True

    def finish(self, *args, **kwargs):
        if self.quiet:
            return

        print(*args, **kwargs)
        self.in_partial = False

    def error(self, *args, **kwargs):
        if self.in_partial:
            print(flush=True)
            self.in_partial = False

        print(*args, **kwargs, file=sys.stderr)


log = Log()
