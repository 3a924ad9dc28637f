import logging
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .constants import (
    APP_NAME,
    DEFAULT_API_URL,
    DEFAULT_MAX_LOG_SIZE,
    DEFAULT_QUEUE_SIZE,
    DEFAULT_RATE_LIMIT,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_WORKER_COUNT,
)
from .exceptions import ConfigError

logger = logging.getLogger(APP_NAME)

REQUIRED_KEYS = ("github_token", "github_user", "repos_dir", "poll_interval")

_DURATION_PART = r"(\d+(?:\.\d+)?)\s*(ms|sec|min|hr|h|m|s)s?"
_DURATION_RE = re.compile(rf"(?:{_DURATION_PART}\s*)+")
_DURATION_PART_RE = re.compile(_DURATION_PART)
_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1,
    "sec": 1,
    "m": 60,
    "min": 60,
    "h": 3600,
    "hr": 3600,
}


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_duration(value: int | float | str) -> float:
    """Converts duration strings (e.g., '30s', '1h30m', '500ms') to seconds.

    Bare numbers are taken as seconds. Compound values add up their parts, so
    '1h30m' is 5400 seconds.

    Args:
        value (int | float | str): The raw configuration value.

    Returns:
        float: The duration in seconds.

    Raises:
        ValueError: If the value is not a recognisable duration.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration format '{value}'")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().lower()
    if not _DURATION_RE.fullmatch(text):
        raise ValueError(f"Invalid duration format '{value}'")
    return sum(
        float(num) * _DURATION_UNITS[unit]
        for num, unit in _DURATION_PART_RE.findall(text)
    )


def _parse_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Expected an integer, got '{value}'")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Expected an integer, got '{value}'") from e


def _parse_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got '{value}'")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Expected a number, got '{value}'") from e


def _parse_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected true or false, got '{value}'")
    return value


def _parse_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


_PARSERS = {
    "github_token": _parse_str,
    "github_user": _parse_str,
    "repos_dir": lambda v: Path(str(v)).expanduser(),
    "poll_interval": parse_duration,
    "worker_count": _parse_int,
    "queue_size": _parse_int,
    "api_url": lambda v: _parse_str(v).rstrip("/"),
    "rate_limit": _parse_float,
    "transport_auth": _parse_bool,
    "request_timeout": parse_duration,
    "log_file": lambda v: Path(str(v)).expanduser() if v else None,
    "max_log_size": parse_size,
}


@dataclass(frozen=True)
class Config:
    """Immutable run parameters for the sync service.

    A single instance is built at startup and passed explicitly to the
    GitHub client, the updater, the orchestrator and the run loop.

    Attributes:
        github_token (str): Personal access token for the API and git transport.
        github_user (str): The account whose repositories are mirrored.
        repos_dir (Path): Root directory holding one mirror per repository.
        poll_interval (float): Seconds to sleep between sync cycles.
        worker_count (int): Number of concurrent workers per cycle.
        queue_size (int): Capacity of the bounded task queue.
        api_url (str): GitHub REST API root.
        rate_limit (float): Operations per second allowed for each worker.
        transport_auth (bool): Whether clone/pull send the token.
        request_timeout (float): Timeout in seconds for API requests.
        log_file (Path | None): Optional rotating log file.
        max_log_size (int): Max bytes for the log file before rotation.
    """

    github_token: str
    github_user: str
    repos_dir: Path
    poll_interval: float
    worker_count: int = DEFAULT_WORKER_COUNT
    queue_size: int = DEFAULT_QUEUE_SIZE
    api_url: str = DEFAULT_API_URL
    rate_limit: float = DEFAULT_RATE_LIMIT
    transport_auth: bool = True
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    log_file: Path | None = None
    max_log_size: int = DEFAULT_MAX_LOG_SIZE

    def __post_init__(self) -> None:
        if not self.github_token:
            raise ConfigError("github_token must not be empty")
        if not self.github_user:
            raise ConfigError("github_user must not be empty")
        if self.worker_count < 1:
            raise ConfigError(f"worker_count must be >= 1, got {self.worker_count}")
        if self.queue_size < 1:
            raise ConfigError(f"queue_size must be >= 1, got {self.queue_size}")
        if self.poll_interval <= 0:
            raise ConfigError(
                f"poll_interval must be positive, got {self.poll_interval}s"
            )
        if self.rate_limit <= 0:
            raise ConfigError(f"rate_limit must be positive, got {self.rate_limit}")
        if self.request_timeout <= 0:
            raise ConfigError(
                f"request_timeout must be positive, got {self.request_timeout}s"
            )

    @classmethod
    def load(cls, path: str | Path) -> "Config":
        """Reads and validates a YAML configuration file.

        Args:
            path (str | Path): Location of the YAML file.

        Returns:
            Config: The validated configuration.

        Raises:
            ConfigError: If the file cannot be read, is not valid YAML, is not a
                mapping, or holds missing or invalid values.
        """
        path = Path(path)
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(
                f"Config {path} must be a YAML mapping, got {type(data).__name__}"
            )
        return cls.from_dict(data, source=str(path))

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str = "config") -> "Config":
        """Builds a Config from a raw mapping, parsing human-readable values.

        Unknown keys are logged and ignored; missing required keys and
        unparsable values are fatal.
        """
        valid_keys = {f.name for f in fields(cls)}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(data) - valid_keys
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in {source}: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        missing = [k for k in REQUIRED_KEYS if data.get(k) in (None, "")]
        if missing:
            raise ConfigError(
                f"Missing required config keys in {source}: {', '.join(missing)}"
            )

        # 2. Route every known key through its parser
        values: dict[str, Any] = {}
        for k, v in data.items():
            if k not in valid_keys or v is None:
                continue
            try:
                values[k] = _PARSERS[k](v)
            except ValueError as e:
                raise ConfigError(f"Config error in {source}.{k}: {e}") from e

        return cls(**values)
