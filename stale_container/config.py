"""Configuration for registries, caching and background jobs."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union
import json

DEFAULT_CACHE_TTL_HOURS = 2
DEFAULT_JOB_WORKERS = 4
# Interval of the background sweep that drops expired cache entries
DEFAULT_GC_INTERVAL_SECONDS = 5 * 60
DEFAULT_POLL_INTERVAL_SECONDS = 1.0

DEFAULT_PORT = 5000

API_PREFIX = "/api/v1"
CHECK_PATH = f"{API_PREFIX}/check"
JOB_PATH = API_PREFIX + "/jobs/{job_id}"
EVALUATION_PATH = API_PREFIX + "/evaluations/{job_id}"


@dataclass
class RegistryConfig:
    """Connection settings for a single registry domain."""

    auth_domain: str
    # Skip TLS certificate verification
    insecure: bool = False
    # Talk plain HTTP to the registry and its token service
    non_ssl: bool = False
    skip_ping: bool = False
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_dict(cls, domain: str, data: Dict[str, Any]) -> 'RegistryConfig':
        return cls(
            auth_domain=data.get("auth_domain") or domain,
            insecure=bool(data.get("insecure", False)),
            non_ssl=bool(data.get("non_ssl", False)),
            skip_ping=bool(data.get("skip_ping", False)),
            username=data.get("username") or None,
            password=data.get("password") or None,
        )


@dataclass
class Config:
    """Settings shared by the CLI, the worker and the HTTP service."""

    registries: Dict[str, RegistryConfig] = field(default_factory=dict)
    cache_ttl_hours: float = DEFAULT_CACHE_TTL_HOURS
    job_workers: int = DEFAULT_JOB_WORKERS
    gc_interval_seconds: float = DEFAULT_GC_INTERVAL_SECONDS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS

    def __post_init__(self):
        # a zero TTL in the file means "use the default"
        if not self.cache_ttl_hours:
            self.cache_ttl_hours = DEFAULT_CACHE_TTL_HOURS
        if self.job_workers < 1:
            raise ValueError(f"job_workers must be at least 1, got {self.job_workers}")

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600

    def get_registry_config(self, domain: str) -> RegistryConfig:
        """Settings for ``domain``, falling back to secure defaults."""
        if domain in self.registries:
            return self.registries[domain]
        return RegistryConfig(auth_domain=domain)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        registries = {
            domain: RegistryConfig.from_dict(domain, settings or {})
            for domain, settings in (data.get("registries") or {}).items()
        }
        return cls(
            registries=registries,
            cache_ttl_hours=data.get("cache_ttl_hours") or DEFAULT_CACHE_TTL_HOURS,
            job_workers=data.get("job_workers") or DEFAULT_JOB_WORKERS,
            gc_interval_seconds=data.get("gc_interval_seconds") or DEFAULT_GC_INTERVAL_SECONDS,
            poll_interval_seconds=data.get("poll_interval_seconds") or DEFAULT_POLL_INTERVAL_SECONDS,
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'Config':
        """Load the JSON configuration file.

        Example::

            {
              "cache_ttl_hours": 4,
              "registries": {
                "registry.local:5000": {"non_ssl": true, "skip_ping": true},
                "quay.io": {"username": "bot", "password": "secret"}
              }
            }
        """
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a JSON object")
        return cls.from_dict(data)
