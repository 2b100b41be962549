import json

import httpx
import pytest

from stale_container import cli
from stale_container.client import RemoteClient

from .test_client import FakeServer


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "STALE_CONFIG_FILE",
        "STALE_DEBUG",
        "STALE_CONSTRAINT",
        "STALE_OUTPUT",
        "STALE_SERVER",
        "STALE_TAG_PREFIX",
        "STALE_PORT",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def local_registry(monkeypatch, registry):
    monkeypatch.setattr(cli, "RegistryClient", lambda config: registry)
    return registry


@pytest.fixture
def remote_server(monkeypatch):
    server = FakeServer()
    monkeypatch.setattr(
        cli,
        "RemoteClient",
        lambda url: RemoteClient(url, transport=httpx.MockTransport(server)),
    )
    return server


class TestCheckLocal:
    def test_up_to_date(self, local_registry, capsys):
        code = cli.main(["check", "--constraint", ">= 1.5.0 < 1.6.0", "influxdb:1.5.2"])
        assert code == 0
        assert "is already the latest version available" in capsys.readouterr().out

    def test_stale(self, local_registry, capsys):
        code = cli.main(["check", "--constraint", ">= 1.5.0 < 1.6.0", "influxdb:1.5.0"])
        assert code == 1
        out = capsys.readouterr().out
        assert "can be upgraded from the '1.5.0' tag to the '1.5.2' one" in out
        assert local_registry.closed

    def test_json_output(self, local_registry, capsys):
        code = cli.main([
            "check", "--constraint", ">= 1.5.0 < 1.6.0", "--output", "json", "influxdb:1.5.0",
        ])
        assert code == 0
        assert json.loads(capsys.readouterr().out) == {
            "image": "docker.io/library/influxdb",
            "constraint": ">= 1.5.0 < 1.6.0",
            "tagPrefix": "",
            "current_version": "1.5.0",
            "next_version": "1.5.2",
            "stale": True,
        }

    def test_tag_prefix(self, local_registry, capsys):
        code = cli.main([
            "check", "--constraint", ">= 1.4.0 < 2.0.0", "--tagPrefix", "alpine-",
            "-o", "json", "nginx:alpine-1.4.0",
        ])
        assert code == 0
        assert json.loads(capsys.readouterr().out)["next_version"] == "alpine-1.5.6"

    def test_environment_defaults(self, local_registry, monkeypatch, capsys):
        monkeypatch.setenv("STALE_CONSTRAINT", ">= 1.5.0 < 1.6.0")
        monkeypatch.setenv("STALE_OUTPUT", "json")
        code = cli.main(["check", "influxdb:1.5.0"])
        assert code == 0
        assert json.loads(capsys.readouterr().out)["stale"] is True

    @pytest.mark.parametrize("argv", [
        ["check", "--constraint", "> 1.0", "influxdb:1.5.0"],
        ["check", "influxdb:1.5.0"],
        ["check", "--constraint", ">= 1.0.0", "--output", "yaml", "influxdb:1.5.0"],
        ["check", "--constraint", ">= 1.0.0", "influxdb:latest"],
        ["check", "--constraint", ">= 1.0.0", "unknown/image:1.0.0"],
        ["--config", "/does/not/exist.json", "check", "--constraint", ">= 1.0.0", "influxdb:1.5.0"],
        [],
    ])
    def test_errors_exit_1(self, local_registry, argv):
        assert cli.main(argv) == 1

    def test_invalid_input_is_rejected_before_the_registry(self, local_registry):
        assert cli.main(["check", "--constraint", "> 1.0", "influxdb:1.5.0"]) == 1
        assert local_registry.calls == []

    def test_interrupted(self, local_registry, monkeypatch):
        def interrupt(*args):
            raise KeyboardInterrupt

        monkeypatch.setattr(cli, "local_evaluation", interrupt)
        assert cli.main(["check", "--constraint", ">= 1.0.0", "influxdb:1.5.0"]) == 130

    def test_config_file(self, local_registry, tmp_path, capsys):
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"cache_ttl_hours": 4}))
        code = cli.main([
            "--config", str(config_file), "check", "--constraint", ">= 1.5.0 < 1.6.0", "influxdb:1.5.2",
        ])
        assert code == 0


class TestCheckRemote:
    def test_remote_evaluation(self, remote_server, local_registry, capsys):
        code = cli.main([
            "check", "--server", "http://stale.example.com", "--constraint", ">= 1.5.0 < 1.6.0",
            "influxdb:1.5.0",
        ])
        assert code == 1
        assert "'1.5.2'" in capsys.readouterr().out
        assert local_registry.calls == []
        assert remote_server.requests[0].url.host == "stale.example.com"

    def test_config_is_ignored_with_server(self, remote_server, monkeypatch, capsys):
        monkeypatch.setenv("STALE_SERVER", "http://stale.example.com")
        code = cli.main([
            "--config", "/does/not/exist.json", "check", "--constraint", ">= 1.5.0",
            "-o", "json", "influxdb:1.5.0",
        ])
        assert code == 0
        out = capsys.readouterr().out
        assert "--config is ignored" in out

    def test_server_unreachable(self, monkeypatch):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        monkeypatch.setattr(
            cli,
            "RemoteClient",
            lambda url: RemoteClient(url, transport=httpx.MockTransport(refuse)),
        )
        code = cli.main(["check", "--server", "http://localhost:1", "--constraint", ">= 1.0.0", "influxdb:1.5.0"])
        assert code == 1


class TestServer:
    @pytest.fixture
    def served(self, monkeypatch):
        calls = []
        monkeypatch.setattr(
            cli,
            "run_server",
            lambda config, host, port, log_level: calls.append((config, host, port, log_level)),
        )
        return calls

    def test_defaults(self, served):
        assert cli.main(["server"]) == 0
        config, host, port, log_level = served[0]
        assert (host, port, log_level) == ("0.0.0.0", 5000, "info")
        assert config.job_workers == 4

    def test_options(self, served, monkeypatch):
        monkeypatch.setenv("STALE_PORT", "8080")
        assert cli.main(["--debug", "server", "--host", "127.0.0.1", "--workers", "2"]) == 0
        config, host, port, log_level = served[0]
        assert (host, port, log_level) == ("127.0.0.1", 8080, "debug")
        assert config.job_workers == 2

    def test_invalid_workers(self, served):
        assert cli.main(["server", "--workers", "0"]) == 1
        assert served == []
