"""
Settings for the bracket engine.

Defaults can be overridden by a YAML file and then by environment variables:
BRACKETS_CONFIG (path of the YAML file), BRACKETS_DATA_DIR,
BRACKETS_MAX_RETRIES, BRACKETS_LOCK_TIMEOUT, BRACKETS_LOG_LEVEL.
"""
import logging
import os
from typing import Optional

import yaml

from .errors import ConfigurationError
from .models import BracketFormat

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

ENV_OVERRIDES = {
    'BRACKETS_DATA_DIR': 'data_dir',
    'BRACKETS_MAX_RETRIES': 'max_result_retries',
    'BRACKETS_LOCK_TIMEOUT': 'lock_timeout',
    'BRACKETS_LOG_LEVEL': 'log_level',
}

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def get_default_settings() -> dict:
    return {
        'data_dir': os.path.join(BASE_DIR, 'data'),
        'max_result_retries': 3,
        'lock_timeout': 10,
        'log_level': 'INFO',
        'default_format': BracketFormat.DOUBLE.value,
    }


def _validated(settings: dict) -> dict:
    try:
        settings['max_result_retries'] = int(settings['max_result_retries'])
        settings['lock_timeout'] = float(settings['lock_timeout'])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid numeric setting: {e}")
    if settings['max_result_retries'] < 1:
        raise ConfigurationError("max_result_retries must be at least 1.")
    if settings['lock_timeout'] <= 0:
        raise ConfigurationError("lock_timeout must be positive.")

    level = str(settings['log_level']).upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got '{settings['log_level']}'.")
    settings['log_level'] = level

    settings['default_format'] = BracketFormat.parse(settings['default_format']).value
    settings['data_dir'] = str(settings['data_dir'])
    return settings


def load_settings(path: Optional[str] = None) -> dict:
    """Load settings from defaults, an optional YAML file and the environment."""
    settings = get_default_settings()

    path = path or os.environ.get('BRACKETS_CONFIG')
    if path:
        if not os.path.exists(path):
            raise ConfigurationError(f"Settings file {path} does not exist.")
        with open(path, 'r', encoding='utf-8') as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Settings file {path} is not valid YAML: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {path} must contain a mapping.")
        unknown = sorted(set(data) - set(settings))
        if unknown:
            logger.warning("Ignoring unknown settings in %s: %s", path, ', '.join(unknown))
        settings.update({k: v for k, v in data.items() if k in settings})

    for env_name, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            settings[key] = value

    return _validated(settings)


def configure_logging(settings: dict):
    logging.basicConfig(
        level=getattr(logging, settings.get('log_level', 'INFO')),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
