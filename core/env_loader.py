"""
Environment variable loading
Reads the project's unified .env file once, then exposes typed getters
"""
import os
import logging
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
ENV_FILE = Path(os.environ.get('ENV_FILE', BASE_DIR / '.env'))

if ENV_FILE.exists():
    load_dotenv(ENV_FILE, override=False)


def get_env(name, default=None):
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return value


def get_bool_env(name, default=False):
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def get_int_env(name, default=0):
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Environment variable {name}={value!r} is not an integer, using {default}")
        return default


def get_list_env(name, default=None, separator=','):
    value = os.environ.get(name)
    if value is None or value == '':
        return list(default or [])
    return [item.strip() for item in value.split(separator) if item.strip()]
