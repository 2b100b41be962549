"""Key/value store with per-key expiry, and the typed cache built on it.

Key layout::

    tags/<domain>/<path>[#<prefix>]   JSON list of the tags last fetched
    jobs/<id>                         "queued" while a job waits for a worker
    evaluations/<id>                  JSON evaluation written by the worker
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple
import json
import logging
import threading
import time

from .exceptions import CacheUnavailable, EvaluationExpired
from .image import Image, cache_key
from .models import Evaluation

logger = logging.getLogger(__name__)

JOB_QUEUED = "queued"


class KeyValueStore(ABC):
    """Storage backend: string keys, string values, optional TTL in seconds."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Value of ``key``, or None when absent or expired."""
        pass

    @abstractmethod
    def put(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def gc(self) -> int:
        """Drop expired entries, returning how many were removed."""
        pass


class MemoryStore(KeyValueStore):
    """In-process store; expired entries are evicted lazily on read and in bulk by :meth:`gc`."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        # key -> (value, expiry or None)
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def _has_expired(self, expiry: Optional[float]) -> bool:
        return expiry is not None and self._clock() >= expiry

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expiry = entry
            if self._has_expired(expiry):
                del self._data[key]
                return None
            return value

    def put(self, key: str, value: str, ttl: Optional[float] = None) -> None:
        expiry = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._data[key] = (value, expiry)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def gc(self) -> int:
        with self._lock:
            expired = [k for k, (_, expiry) in self._data.items() if self._has_expired(expiry)]
            for key in expired:
                del self._data[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class Cache:
    """Typed access to tag lists, job markers and evaluations.

    Every entry expires after ``ttl`` seconds. Failures of the underlying
    store are reported as :class:`CacheUnavailable`.
    """

    def __init__(self, store: KeyValueStore, ttl: float):
        self.store = store
        self.ttl = ttl

    def _get(self, key: str) -> Optional[str]:
        try:
            return self.store.get(key)
        except Exception as e:
            logger.error(f"Cache read of {key} failed: {e}")
            raise CacheUnavailable(f"Cache read failed: {e}") from e

    def _put(self, key: str, value: str) -> None:
        try:
            self.store.put(key, value, self.ttl)
        except Exception as e:
            logger.error(f"Cache write of {key} failed: {e}")
            raise CacheUnavailable(f"Cache write failed: {e}") from e

    def get_image_tags(self, image: Image) -> Optional[List[str]]:
        """Tags cached for the image and its prefix, or None on a miss."""
        raw = self._get(f"tags/{cache_key(image)}")
        if raw is None:
            logger.debug(f"No cached tags for {cache_key(image)}")
            return None
        tags = json.loads(raw)
        logger.debug(f"Cached tags for {cache_key(image)}: {tags}")
        return tags

    def set_image_tags(self, image: Image, tags: List[str]) -> None:
        self._put(f"tags/{cache_key(image)}", json.dumps(list(tags)))

    def set_job_queued(self, job_id: str) -> None:
        self._put(f"jobs/{job_id}", JOB_QUEUED)

    def is_job_queued(self, job_id: str) -> bool:
        return self._get(f"jobs/{job_id}") is not None

    def set_evaluation(self, job_id: str, evaluation: Evaluation) -> None:
        self._put(f"evaluations/{job_id}", evaluation.to_json())

    def get_raw_evaluation(self, job_id: str) -> str:
        """Persisted evaluation JSON, exactly as the worker wrote it."""
        raw = self._get(f"evaluations/{job_id}")
        if raw is None:
            raise EvaluationExpired(f"Evaluation {job_id} not found")
        return raw

    def get_evaluation(self, job_id: str) -> Evaluation:
        return Evaluation.from_json(self.get_raw_evaluation(job_id))

    def has_evaluation(self, job_id: str) -> bool:
        return self._get(f"evaluations/{job_id}") is not None

    def gc(self) -> int:
        try:
            return self.store.gc()
        except Exception as e:
            raise CacheUnavailable(f"Cache garbage collection failed: {e}") from e


class GarbageCollector:
    """Background thread that sweeps expired cache entries on a fixed interval."""

    def __init__(self, cache: Cache, interval: float):
        self.cache = cache
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> int:
        try:
            removed = self.cache.gc()
        except CacheUnavailable as e:
            logger.warning(f"Cache garbage collection failed: {e}")
            return 0
        if removed:
            logger.debug(f"Removed {removed} expired cache entries")
        return removed

    def _loop(self):
        while not self._stop_event.wait(self.interval):
            self.run_once()

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="cache-gc", daemon=True)
        self._thread.start()

    def stop(self):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
