import os
import re
from datetime import datetime, timedelta, timezone

from dotenv import dotenv_values

from football_pool.errors import ConfigError

basedir = os.path.abspath(os.path.dirname(__file__))

DEFAULT_ENV = "prod"

DEFAULTS = {
    "FOOTBALL_POOL_HOST": "localhost",
    "FOOTBALL_POOL_PORT": "8080",
    "DATABASE_URL": "sqlite:///" + os.path.join(basedir, "football-pool.db"),
    "ESPN_BASE_URL": "https://site.api.espn.com/apis/site/v2/sports/football/nfl",
    "ESPN_CACHE_DIR": "assets/cache",
    "ESPN_SYNC_ENABLED": "false",
    "ESPN_SYNC_INTERVAL": "1h",
    "ESPN_CACHE_EXPIRY": "24h",
    "ESPN_SEASON_YEAR": "2025",
    "ESPN_WEEK1_DATE": "2025-09-04T00:00:00Z",
    "THEODDSAPI_BASE_URL": "https://api.the-odds-api.com/v4",
    "THEODDSAPI_API_KEY": "",
    "THEODDSAPI_REGION": "us",
    "LOG_LEVEL": "INFO",
    "LOG_TO_CONSOLE": "true",
    "LOG_TO_FILE": "true",
    "LOG_DIR": "logs",
    "CACHE_TYPE": "SimpleCache",
    "CACHE_DEFAULT_TIMEOUT": "300",
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}


def parse_duration(value):
    """Parse a compact duration ("1h30m", "90s", "-1") into a timedelta.

    Bare numbers are seconds.
    """
    if isinstance(value, timedelta):
        return value
    text = str(value).strip()
    if not text:
        raise ConfigError(f"Invalid duration: {value!r}")

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    try:
        return timedelta(seconds=sign * float(text))
    except ValueError:
        pass

    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ConfigError(f"Invalid duration: {value!r}")
    return timedelta(seconds=sign * seconds)


def parse_datetime(value):
    """Parse an ISO-8601 date or datetime; naive values are treated as UTC"""
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise ConfigError(f"Invalid date: {value!r}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_bool(value):
    return str(value).strip().lower() in ["true", "on", "1", "yes"]


def load_settings(env=None, environ=None, env_dir=None):
    """
    Merge defaults, the named environment file and the process environment.

    Process environment wins over file values, which win over defaults.
    A missing environment file is fatal unless the environment is "prod".
    """
    environ = os.environ if environ is None else environ
    env = env or environ.get("FOOTBALL_POOL_ENV") or DEFAULT_ENV
    env_dir = env_dir or os.path.join(basedir, "envs")

    settings = dict(DEFAULTS)

    env_file = os.path.join(env_dir, f"{env}.env")
    if os.path.exists(env_file):
        settings.update(
            {k: v for k, v in dotenv_values(env_file).items() if v is not None}
        )
    elif env != DEFAULT_ENV:
        raise ConfigError(f"Environment file not found: {env_file}")

    for key in DEFAULTS:
        if key in environ:
            settings[key] = environ[key]

    settings["FOOTBALL_POOL_ENV"] = env
    return settings


class Config:
    TESTING = False
    DEBUG = False
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CACHE_KEY_PREFIX = "football_pool:"

    def __init__(self, env=None, environ=None, env_dir=None):
        """Build configuration values from defaults, env file and environment"""
        settings = load_settings(env=env, environ=environ, env_dir=env_dir)
        self.ENV_NAME = settings["FOOTBALL_POOL_ENV"]

        # Server
        self.SERVER_HOST = settings["FOOTBALL_POOL_HOST"]
        self.SERVER_PORT = int(settings["FOOTBALL_POOL_PORT"])

        # Database
        self.SQLALCHEMY_DATABASE_URI = settings["DATABASE_URL"]

        # ESPN sync
        self.ESPN_BASE_URL = settings["ESPN_BASE_URL"].rstrip("/")
        self.ESPN_CACHE_DIR = settings["ESPN_CACHE_DIR"]
        self.ESPN_SYNC_ENABLED = parse_bool(settings["ESPN_SYNC_ENABLED"])
        self.ESPN_SYNC_INTERVAL = parse_duration(settings["ESPN_SYNC_INTERVAL"])
        self.ESPN_CACHE_EXPIRY = parse_duration(settings["ESPN_CACHE_EXPIRY"])
        self.ESPN_SEASON_YEAR = int(settings["ESPN_SEASON_YEAR"])
        self.ESPN_WEEK1_DATE = parse_datetime(settings["ESPN_WEEK1_DATE"])

        # The Odds API
        self.THEODDSAPI_BASE_URL = settings["THEODDSAPI_BASE_URL"].rstrip("/")
        self.THEODDSAPI_API_KEY = settings["THEODDSAPI_API_KEY"]
        self.THEODDSAPI_REGION = settings["THEODDSAPI_REGION"]

        # Logging
        self.LOG_LEVEL = settings["LOG_LEVEL"]
        self.LOG_TO_CONSOLE = parse_bool(settings["LOG_TO_CONSOLE"])
        self.LOG_TO_FILE = parse_bool(settings["LOG_TO_FILE"])
        self.LOG_DIR = settings["LOG_DIR"]

        # Response caching
        self.CACHE_TYPE = settings["CACHE_TYPE"]
        self.CACHE_DEFAULT_TIMEOUT = int(settings["CACHE_DEFAULT_TIMEOUT"])

        if self.ESPN_SYNC_INTERVAL <= timedelta(0):
            raise ConfigError("ESPN_SYNC_INTERVAL must be positive")


class DevelopmentConfig(Config):
    """Development configuration with helpful defaults"""

    DEBUG = True
    SQLALCHEMY_ECHO = os.environ.get("SQLALCHEMY_ECHO", "False").lower() == "true"

    def __init__(self, env=None, environ=None, env_dir=None):
        super().__init__(env=env or "dev", environ=environ, env_dir=env_dir)


class ProductionConfig(Config):
    """Production configuration"""

    def __init__(self, env=None, environ=None, env_dir=None):
        super().__init__(env=env, environ=environ, env_dir=env_dir)


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True

    def __init__(self, env=None, environ=None, env_dir=None):
        # Tests never read the developer's environment or env files
        super().__init__(env=DEFAULT_ENV, environ={}, env_dir=env_dir or os.devnull)
        self.SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
        self.ESPN_SYNC_ENABLED = False
        self.LOG_TO_FILE = False
        self.LOG_TO_CONSOLE = False
        self.CACHE_TYPE = "NullCache"


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": ProductionConfig,
}
