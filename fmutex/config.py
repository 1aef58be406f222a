"""Configuration handler for fmutex"""

import logging
import os
import tempfile
import yaml
from typing import Dict, Mapping, Optional

from .errors import MutexConfigError
from .lock import DEFAULT_DEAD_AGE, DEFAULT_PULSE, DEFAULT_REFRESH
from .utils import is_empty, parse_bool, parse_duration

logger = logging.getLogger(__name__)

ENV_ROOT = 'FMUTEX_ROOT'
ENV_ID = 'FMUTEX_ID'
ENV_CONFIG = 'FMUTEX_CONFIG'

DURATION_KEYS = ('pulse', 'refresh', 'limit', 'timeout')


def _first(*values):
    for value in values:
        if value is not None and not (isinstance(value, str) and is_empty(value)):
            return value
    return None


class Config:
    """Configuration handler"""

    DEFAULT_CONFIG_FILE = '.fmutex.yml'

    DEFAULTS = {
        'root': None,
        'id': None,
        'silent': False,
        'pulse': DEFAULT_PULSE,
        'refresh': DEFAULT_REFRESH,
        'limit': DEFAULT_DEAD_AGE,
        'timeout': 0.0,
    }

    @staticmethod
    def load_config(config_path: Optional[str] = None, environ: Optional[Mapping] = None) -> Dict:
        """Load configuration from YAML file"""
        environ = os.environ if environ is None else environ
        if config_path is None:
            config_path = environ.get(ENV_CONFIG) or os.path.join(os.getcwd(), Config.DEFAULT_CONFIG_FILE)
        if not os.path.exists(config_path):
            return {}

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config file {config_path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring config file {config_path}: expected a mapping")
            return {}
        return data

    @staticmethod
    def load_env(environ: Optional[Mapping] = None) -> Dict:
        """Settings taken from FMUTEX_* environment variables"""
        environ = os.environ if environ is None else environ
        config = {
            'root': environ.get(ENV_ROOT),
            'id': environ.get(ENV_ID),
        }
        return {k: v for k, v in config.items() if not is_empty(v)}

    @staticmethod
    def merge_config(file_config: Dict, cli_args: Dict, env_config: Optional[Dict] = None) -> Dict:
        """Merge file config, environment and CLI arguments.

        CLI args take precedence over the environment, which takes precedence
        over the file; anything still unset gets its default.
        """
        env_config = env_config or {}
        config = {}
        for key, default in Config.DEFAULTS.items():
            config[key] = _first(cli_args.get(key), env_config.get(key), file_config.get(key), default)

        if config['root'] is None:
            config['root'] = tempfile.gettempdir()
        config['root'] = str(config['root'])
        if config['id'] is not None:
            config['id'] = str(config['id']).strip()
        try:
            config['silent'] = parse_bool(config['silent'])
        except ValueError as e:
            raise MutexConfigError(f"silent: {e}") from e

        for key in DURATION_KEYS:
            try:
                config[key] = parse_duration(config[key])
            except ValueError as e:
                raise MutexConfigError(f"{key}: {e}") from e
        return config
