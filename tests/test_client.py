import httpx
import pytest

from stale_container.client import RemoteClient
from stale_container.exceptions import (
    EvaluationExpired,
    JobNotFound,
    RemoteEvaluationError,
    RemoteEvaluationTimeout,
)

SERVER = "http://stale.example.com:5000"
JOB_URL = "/api/v1/jobs/1234"
EVALUATION_URL = "/api/v1/evaluations/1234"
EVALUATION = {
    "image": "docker.io/library/influxdb",
    "constraint": ">= 1.5.0 < 1.6.0",
    "tagPrefix": "",
    "current_version": "1.5.0",
    "next_version": "1.5.2",
    "stale": True,
}


class FakeServer:
    """Scripted responses: the job stays pending for ``pending_polls`` polls."""

    def __init__(self, pending_polls=0, check_status=202, evaluation_status=200, evaluation=None):
        self.pending_polls = pending_polls
        self.check_status = check_status
        self.evaluation_status = evaluation_status
        self.evaluation = evaluation or EVALUATION
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        path = request.url.path
        if path == "/api/v1/check":
            if self.check_status == 202:
                return httpx.Response(202, headers={"Location": JOB_URL})
            if self.check_status == 200:
                return httpx.Response(200, json=self.evaluation)
            return httpx.Response(self.check_status, json={"error": "Invalid condition '> 1.0'"})
        if path == JOB_URL:
            if self.pending_polls is None:
                return httpx.Response(404, json={"error": "Job not found"})
            if self.pending_polls > 0:
                self.pending_polls -= 1
                return httpx.Response(200, json={"status": "pending"})
            return httpx.Response(303, headers={"Location": EVALUATION_URL})
        if path == EVALUATION_URL:
            if self.evaluation_status == 404:
                return httpx.Response(404, json={"error": "Evaluation 1234 not found"})
            return httpx.Response(self.evaluation_status, json=self.evaluation)
        return httpx.Response(404)


def make_client(server):
    return RemoteClient(SERVER, transport=httpx.MockTransport(server))


def test_cached_evaluation_is_ready_immediately():
    server = FakeServer(check_status=200)
    sleeps = []

    with make_client(server) as client:
        remote = client.check("influxdb:1.5.0", ">= 1.5.0 < 1.6.0")
        assert not remote.pending
        evaluation = remote.wait(sleep=sleeps.append)

    assert evaluation.next_version == "1.5.2"
    assert sleeps == []
    assert len(server.requests) == 1


def test_polls_until_redirected():
    server = FakeServer(pending_polls=2)
    sleeps, polls = [], []

    with make_client(server) as client:
        remote = client.check("influxdb:1.5.0", ">= 1.5.0 < 1.6.0")
        assert remote.pending
        assert remote.job_status_url == JOB_URL
        evaluation = remote.wait(interval=0.5, sleep=sleeps.append, on_poll=polls.append)

    assert evaluation.stale is True
    assert evaluation.next_version == "1.5.2"
    assert sleeps == [0.5, 0.5]
    assert polls == [1, 2]
    assert [r.url.path for r in server.requests] == [
        "/api/v1/check", JOB_URL, JOB_URL, JOB_URL, EVALUATION_URL,
    ]


def test_check_query_parameters():
    server = FakeServer(check_status=200)
    with make_client(server) as client:
        client.check("influxdb:1.5.0", ">= 1.5.0 < 1.6.0")
        client.check("nginx:alpine-1.5.0", ">= 1.5.0", "alpine-")

    first, second = (r.url.params for r in server.requests)
    assert first["image"] == "influxdb:1.5.0"
    assert first["constraint"] == ">= 1.5.0 < 1.6.0"
    assert "tagPrefix" not in first
    assert second["tagPrefix"] == "alpine-"


def test_wait_times_out():
    server = FakeServer(pending_polls=100)
    now = [0.0]

    def sleep(seconds):
        now[0] += seconds

    with make_client(server) as client:
        remote = client.check("influxdb:1.5.0", ">= 1.5.0")
        with pytest.raises(RemoteEvaluationTimeout):
            remote.wait(interval=1.0, sleep=sleep, clock=lambda: now[0], timeout=2.5)

    assert now[0] <= 2.5


def test_check_rejected():
    server = FakeServer(check_status=400)
    with make_client(server) as client:
        with pytest.raises(RemoteEvaluationError) as excinfo:
            client.check("influxdb:1.5.0", "> 1.0")
    assert excinfo.value.status_code == 400
    assert "> 1.0" in str(excinfo.value)


def test_unknown_job():
    server = FakeServer(pending_polls=None)
    with make_client(server) as client:
        remote = client.check("influxdb:1.5.0", ">= 1.5.0")
        with pytest.raises(JobNotFound):
            remote.is_ready()


def test_expired_evaluation():
    server = FakeServer(evaluation_status=404)
    with make_client(server) as client:
        remote = client.check("influxdb:1.5.0", ">= 1.5.0")
        with pytest.raises(EvaluationExpired):
            remote.is_ready()


def test_failed_evaluation():
    failed = {
        "image": "unknown/image:1.0.0",
        "constraint": ">= 1.0.0",
        "tagPrefix": "",
        "current_version": "",
        "next_version": "",
        "stale": False,
        "error": {"message": "registry answered HTTP 404", "kind": "RegistryUnavailable", "status": 500},
    }
    server = FakeServer(evaluation_status=500, evaluation=failed)
    with make_client(server) as client:
        with pytest.raises(RemoteEvaluationError) as excinfo:
            client.evaluate("unknown/image:1.0.0", ">= 1.0.0", sleep=lambda s: None)
    assert excinfo.value.status_code == 500
    assert "registry answered HTTP 404" in str(excinfo.value)


@pytest.mark.parametrize("status,path", [
    (202, "/api/v1/check"),
    (303, JOB_URL),
])
def test_redirect_without_location(status, path):
    server = FakeServer()

    def handler(request):
        if request.url.path == path:
            server.requests.append(request)
            return httpx.Response(status)
        return server(request)

    with RemoteClient(SERVER, transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(RemoteEvaluationError) as excinfo:
            client.check("influxdb:1.5.0", ">= 1.5.0").is_ready()
    assert excinfo.value.status_code == status
