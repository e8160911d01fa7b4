import os
import requests
from typing import Mapping, Optional, Tuple
from errors import ConfigurationError


def resolve_value(env_key: str, explicit: Optional[str], environ: Mapping[str, str] = os.environ, default: Optional[str] = None) -> Optional[str]:
    """Explicit flag value wins over the environment, which wins over the default"""
    if explicit is not None:
        return explicit
    value = environ.get(env_key)
    if value is not None and value != "":
        return value
    return default


def require_value(env_key: str, explicit: Optional[str], environ: Mapping[str, str] = os.environ) -> str:
    value = resolve_value(env_key, explicit, environ)
    if value is None:
        raise ConfigurationError(f"{env_key} must be set")
    return value


def resolve_int(env_key: str, explicit: Optional[int], environ: Mapping[str, str] = os.environ, default: int = 0) -> int:
    if explicit is not None:
        return explicit
    raw = environ.get(env_key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{env_key} must be an integer, got {raw!r}")


def resolve_bool(env_key: str, explicit: Optional[bool], environ: Mapping[str, str] = os.environ, default: bool = False) -> bool:
    if explicit:
        return True
    raw = environ.get(env_key)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:

    def __init__(self, url: str, repository: str, index_filter: str, keep_days: int = 15, cert_file_path: Optional[str] = None, key_file_path: Optional[str] = None, verify_certs: bool = False, request_timeout_seconds: int = 60, poll_interval_seconds: int = 10, fail_on_snapshot_error: bool = False, max_failed_snapshot_polls: int = 3, retirement_hour: int = 1) -> None:
        self.url: str = url.rstrip("/")
        self.repository: str = repository
        self.index_filter: str = index_filter
        self.keep_days: int = keep_days
        self.cert_file_path: Optional[str] = cert_file_path
        self.key_file_path: Optional[str] = key_file_path
        self.verify_certs: bool = verify_certs
        self.request_timeout_seconds: int = request_timeout_seconds
        self.poll_interval_seconds: int = poll_interval_seconds
        self.fail_on_snapshot_error: bool = fail_on_snapshot_error
        self.max_failed_snapshot_polls: int = max_failed_snapshot_polls
        self.retirement_hour: int = retirement_hour
        self._validate()

    @classmethod
    def from_sources(cls, url: Optional[str] = None, repository: Optional[str] = None, index_filter: Optional[str] = None, keep_days: Optional[int] = None, fail_on_snapshot_error: Optional[bool] = None, environ: Mapping[str, str] = os.environ) -> "Settings":
        """Build settings from explicit (command line) values, falling back to the environment"""
        return cls(
            url=require_value("ELASTICSEARCH_ADDRESS", url, environ),
            repository=require_value("ELASTICSEARCH_REPOSITORY", repository, environ),
            index_filter=require_value("ELASTICSEARCH_INDEX_FILTER", index_filter, environ),
            keep_days=resolve_int("KEEP_DAYS", keep_days, environ, 15),
            cert_file_path=resolve_value("CERT_FILE_PATH", None, environ),
            key_file_path=resolve_value("KEY_FILE_PATH", None, environ),
            verify_certs=resolve_bool("VERIFY_CERTS", None, environ, False),
            request_timeout_seconds=resolve_int("REQUEST_TIMEOUT_SECONDS", None, environ, 60),
            poll_interval_seconds=resolve_int("POLL_INTERVAL_SECONDS", None, environ, 10),
            fail_on_snapshot_error=resolve_bool("FAIL_ON_SNAPSHOT_ERROR", fail_on_snapshot_error, environ, False),
            max_failed_snapshot_polls=resolve_int("MAX_FAILED_SNAPSHOT_POLLS", None, environ, 3),
            retirement_hour=resolve_int("RETIREMENT_HOUR", None, environ, 1),
        )

    @property
    def index_patterns(self) -> Tuple[str, ...]:
        return split_index_filter(self.index_filter)

    def get_requests_object(self) -> requests.Session:
        s: requests.Session = requests.Session()
        if self.cert_file_path and self.key_file_path:
            cert: Tuple[str, str] = (self.cert_file_path, self.key_file_path)
            s.cert = cert
        s.verify = self.verify_certs
        s.headers = {"content-type": "application/json", 'charset':'UTF-8'}
        return s

    def _validate(self) -> None:
        if not self.url:
            raise ConfigurationError("Cluster address must not be empty")
        if not self.repository:
            raise ConfigurationError("Snapshot repository must not be empty")
        if self.keep_days < 0:
            raise ConfigurationError(f"Keep days must be >= 0, got {self.keep_days}")
        if self.poll_interval_seconds <= 0:
            raise ConfigurationError(f"Poll interval must be > 0, got {self.poll_interval_seconds}")
        if self.max_failed_snapshot_polls <= 0:
            raise ConfigurationError(f"Max failed snapshot polls must be > 0, got {self.max_failed_snapshot_polls}")
        if not 0 <= self.retirement_hour <= 23:
            raise ConfigurationError(f"Retirement hour must be between 0 and 23, got {self.retirement_hour}")
        if not self.index_patterns:
            raise ConfigurationError("At least one index pattern must be specified")


def split_index_filter(index_filter: str) -> Tuple[str, ...]:
    """Split a comma separated filter like "logstash-*,kong-*" into patterns"""
    return tuple(pattern.strip() for pattern in index_filter.split(",") if pattern.strip())
