from typing import Dict, List

import pytest

from stale_container.cache import Cache, MemoryStore
from stale_container.config import Config
from stale_container.exceptions import RegistryUnavailable
from stale_container.worker import JobQueue


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeRegistry:
    """Serves tag lists from a dict keyed by ``domain/path``."""

    def __init__(self, tags: Dict[str, List[str]] = None):
        self.tags = tags or {}
        self.calls = []
        self.closed = False

    def list_tags(self, domain: str, path: str) -> List[str]:
        self.calls.append((domain, path))
        key = f"{domain}/{path}"
        if key not in self.tags:
            raise RegistryUnavailable(f"{key}: registry answered HTTP 404")
        return sorted(self.tags[key])

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class RecordingQueue(JobQueue):
    """Holds submitted jobs until the test runs them."""

    def __init__(self):
        self.jobs = []
        self.handler = None

    def submit(self, job):
        self.jobs.append(job)

    def run_all(self):
        jobs, self.jobs = self.jobs, []
        for job in jobs:
            self.handler(job)


INFLUXDB_TAGS = ["1.4.0", "1.5.0", "1.5.1", "1.5.2", "1.5.6-alpine", "1.6.3", "latest"]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def cache(store):
    return Cache(store, ttl=Config().cache_ttl_seconds)


@pytest.fixture
def registry():
    return FakeRegistry({
        "docker.io/library/influxdb": INFLUXDB_TAGS,
        "docker.io/library/nginx": ["alpine-1.4.0", "alpine-1.5.6", "alpine-2.0.3", "1.9.9"],
    })


@pytest.fixture
def queue():
    return RecordingQueue()
