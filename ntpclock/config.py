import os
import pathlib
import tomllib

CONFIG_FILENAME = 'config.toml'
CONFIG_ENV_VAR = 'NTPCLOCK_CONFIG'
SELF_DIR = pathlib.Path(__file__).parent.resolve()

DEFAULT_SERVERS = [
    'time.nist.gov',
    'time.apple.com',
    'time.euro.apple.com',
    'time.google.com',
    'time2.google.com',
]

STANDARDS = ('rfc2822', 'rfc3339', 'timestamp')

CONFIG_SCHEMA = {
    'clock': {
        'adjust_divisor': {'default': 5},
        'bind_address': {'default': '0.0.0.0'},
        'max_adjust_ms': {'default': 200},
        'max_workers': {'default': 5},
        'offset_formula': {'default': 'absolute-delay', 'choices': ('absolute-delay', 'standard')},
        'parallel': {'default': False},
        'port': {'default': 123},
        'servers': {'default': DEFAULT_SERVERS},
        'strict': {'default': False},
        'timeout': {'default': 1},
    },
    'output': {
        'standard': {'default': 'rfc3339', 'choices': STANDARDS},
    },
}


class ConfigError(Exception):
    pass


class Config:
    def __init__(self, config_file=None):
        self.use_file(config_file)

    def use_file(self, config_file=None):
        if config_file is None:
            config_file = os.environ.get(CONFIG_ENV_VAR) or SELF_DIR / CONFIG_FILENAME

        self.config_file = pathlib.Path(config_file)

    def get_config_dict(self):
        try:
            with open(self.config_file, 'rb') as f:
                return tomllib.load(f)
        except FileNotFoundError:
            return {}
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f'cannot parse {self.config_file}: {e}') from e

    def gimme(self, lookup):
        cfg = self.get_config_dict()
        parts = lookup.split('.')

        if len(parts) == 2:
            section, key = parts

            try:
                schema = CONFIG_SCHEMA[section][key]
            except KeyError:
                raise ConfigError(f'not a valid config lookup: {lookup}')

            try:
                value = cfg[section][key]
            except KeyError:
                try:
                    return schema['default']
                except KeyError:
                    raise ConfigError(f'config key is required: {lookup}')

            choices = schema.get('choices')
            if choices is not None and value not in choices:
                raise ConfigError(f'{lookup} must be one of {", ".join(choices)}; got {value!r}')

            return value

        raise ConfigError(f'not a valid config lookup: {lookup}')


config = Config()
