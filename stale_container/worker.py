"""Background processing of evaluation jobs."""

from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional
import logging

from .cache import Cache
from .evaluation import build_evaluation, failed_evaluation
from .image import image_name, parse_image
from .models import Job

logger = logging.getLogger(__name__)


class JobQueue(ABC):
    """Dispatches each submitted job to a handler, once."""

    @abstractmethod
    def submit(self, job: Job) -> None:
        pass

    def close(self) -> None:
        pass


class ThreadPoolJobQueue(JobQueue):
    """In-process queue running jobs on a pool of worker threads."""

    def __init__(self, handler: Callable[[Job], None], max_workers: int = 4):
        self.handler = handler
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="stale-container-job",
        )

    def submit(self, job: Job) -> None:
        future = self._executor.submit(self.handler, job)
        future.add_done_callback(lambda f: self._log_failure(job, f))

    @staticmethod
    def _log_failure(job: Job, future: Future):
        if future.cancelled():
            logger.warning(f"Job {job.id} was cancelled")
        elif future.exception() is not None:
            logger.error(f"Job {job.id} crashed: {future.exception()}")

    def close(self) -> None:
        self._executor.shutdown(wait=True)


class BackgroundWorker:
    """Queues evaluations and processes them off the request path.

    ``registry`` is anything with a ``list_tags(domain, path)`` method.
    When no ``queue`` is given, jobs run on a :class:`ThreadPoolJobQueue`.
    """

    def __init__(
        self,
        cache: Cache,
        registry,
        queue: Optional[JobQueue] = None,
        max_workers: int = 4,
    ):
        self.cache = cache
        self.registry = registry
        self.queue = queue or ThreadPoolJobQueue(self.process_job, max_workers=max_workers)

    def add_job(self, image: str, constraint: str, tag_prefix: str = "") -> str:
        """Mark a new job as queued and hand it to the queue; returns its id."""
        job = Job(image=image, constraint=constraint, tag_prefix=tag_prefix)
        self.cache.set_job_queued(job.id)
        self.queue.submit(job)
        logger.debug(f"Queued job {job.id} for {image} ({constraint!r}, prefix {tag_prefix!r})")
        return job.id

    def process_job(self, job: Job) -> None:
        """Fetch tags, cache them, evaluate and store the evaluation.

        Failures are stored as failed evaluations so that pollers always
        reach a final state. Running the same job twice overwrites the same
        keys.
        """
        action = "parse_image"
        try:
            image = parse_image(job.image, job.tag_prefix)

            action = "fetch_tags"
            tags = self.registry.list_tags(image.domain, image.path)

            action = "save_tags"
            self.cache.set_image_tags(image, tags)
            logger.debug(f"Job {job.id}: cached {len(tags)} tags for {image_name(image)}")

            action = "evaluate"
            evaluation = build_evaluation(image, job.constraint, tags)

            action = "save_evaluation"
            self.cache.set_evaluation(job.id, evaluation)
        except Exception as e:
            logger.error(
                f"Job {job.id} failed at {action}: image={job.image} "
                f"constraint={job.constraint!r} tagPrefix={job.tag_prefix!r} error={e}"
            )
            self.cache.set_evaluation(job.id, failed_evaluation(job, e))
            return

        logger.info(f"Job {job.id}: {evaluation.image} stale={evaluation.stale}")

    def close(self) -> None:
        self.queue.close()
