"""Client for a remote stale-container server."""

from typing import Callable, Optional
import logging
import time

import httpx

from . import __version__
from .config import CHECK_PATH, DEFAULT_POLL_INTERVAL_SECONDS
from .exceptions import (
    EvaluationExpired,
    JobNotFound,
    RemoteEvaluationError,
    RemoteEvaluationTimeout,
)
from .models import Evaluation, JobStatus

logger = logging.getLogger(__name__)


def _unexpected(response: httpx.Response) -> RemoteEvaluationError:
    return RemoteEvaluationError(
        f"{response.request.url} - Response code: {response.status_code} - Body {response.text}",
        status_code=response.status_code,
    )


class RemoteEvaluation:
    """Handle on an evaluation requested from a remote server.

    Either ready right away (the server had the tags cached) or pending on
    a job whose status lives at ``job_status_url``.
    """

    def __init__(
        self,
        client: httpx.Client,
        evaluation: Optional[Evaluation] = None,
        job_status_url: Optional[str] = None,
    ):
        self._client = client
        self.evaluation = evaluation
        self.job_status_url = job_status_url

    @property
    def pending(self) -> bool:
        return self.evaluation is None

    def is_ready(self) -> bool:
        """Poll the job once; fetches the evaluation when the job is done."""
        if not self.pending:
            return True

        logger.debug(f"Poll job status {self.job_status_url}")
        response = self._client.get(self.job_status_url)

        if response.status_code == 303:
            location = response.headers.get("Location")
            if not location:
                raise _unexpected(response)
            self.evaluation = self._fetch_evaluation(location)
            return True
        if response.status_code == 200:
            status = response.json().get("status")
            if status == JobStatus.PENDING.value:
                return False
            raise RemoteEvaluationError(
                f"{response.request.url} - unexpected job status {status!r}",
                status_code=200,
            )
        if response.status_code == 404:
            raise JobNotFound(f"{response.request.url} - job not found, it may have expired")
        raise _unexpected(response)

    def _fetch_evaluation(self, location: str) -> Evaluation:
        response = self._client.get(location)
        if response.status_code == 404:
            raise EvaluationExpired(f"{response.request.url} - evaluation not found, it may have expired")
        if response.status_code != 200:
            try:
                failed = Evaluation.from_dict(response.json())
            except (ValueError, KeyError):
                raise _unexpected(response)
            message = failed.error.message if failed.error else response.text
            raise RemoteEvaluationError(
                f"Remote evaluation of {failed.image} failed: {message}",
                status_code=response.status_code,
            )
        return Evaluation.from_dict(response.json())

    def wait(
        self,
        interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        timeout: Optional[float] = None,
        on_poll: Optional[Callable[[int], None]] = None,
    ) -> Evaluation:
        """Poll every ``interval`` seconds until the evaluation is ready.

        There is no limit on the number of polls unless ``timeout`` is given.

        Args:
            interval: Seconds between two polls.
            sleep: Function used to wait between polls.
            clock: Monotonic clock used to enforce ``timeout``.
            timeout: Seconds after which :class:`RemoteEvaluationTimeout` is raised.
            on_poll: Called with the attempt number after each pending poll.
        """
        deadline = clock() + timeout if timeout is not None else None
        attempt = 0
        while not self.is_ready():
            attempt += 1
            if on_poll:
                on_poll(attempt)
            if deadline is not None and clock() + interval > deadline:
                raise RemoteEvaluationTimeout(
                    f"Evaluation at {self.job_status_url} not ready after {timeout} seconds"
                )
            sleep(interval)
        return self.evaluation


class RemoteClient:
    """Submits checks to a stale-container server."""

    def __init__(
        self,
        server: str,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.server = server
        # redirects are part of the job protocol, they are handled explicitly
        self.client = httpx.Client(
            base_url=server,
            timeout=timeout,
            headers={"User-Agent": f"stale-container/{__version__}"},
            follow_redirects=False,
            transport=transport,
        )

    def check(self, image: str, constraint: str, tag_prefix: str = "") -> RemoteEvaluation:
        params = {"image": image, "constraint": constraint}
        if tag_prefix:
            params["tagPrefix"] = tag_prefix

        response = self.client.get(CHECK_PATH, params=params)
        logger.debug(
            f"Remote evaluation response for {image}: {response.status_code} {dict(response.headers)}"
        )

        if response.status_code == 202:
            location = response.headers.get("Location")
            if not location:
                raise _unexpected(response)
            return RemoteEvaluation(self.client, job_status_url=location)
        if response.status_code == 200:
            return RemoteEvaluation(self.client, evaluation=Evaluation.from_dict(response.json()))
        raise _unexpected(response)

    def evaluate(self, image: str, constraint: str, tag_prefix: str = "", **wait_options) -> Evaluation:
        """Submit a check and wait for its evaluation."""
        return self.check(image, constraint, tag_prefix).wait(**wait_options)

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
