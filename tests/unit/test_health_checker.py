"""
Unit tests for the HTTP health checks.
"""
import time

import httpx
import pytest

from dorch.ENGINE.errors import ErrorKind, OrchestrationError
from dorch.MANAGERS.health_checker import HealthChecker
from dorch.MANAGERS.repo import Repo
from dorch.MODELS.container_conf import Ping
from dorch.MODELS.identity import Id

WEB = Id("web")


def make_checker(client, make_config, handler, pings=(), **kwargs):
    config = make_config({"web": {"health_checks": {"pings": list(pings)}}})
    http = httpx.Client(transport=httpx.MockTransport(handler))
    kwargs.setdefault("sleep", lambda seconds: None)
    return HealthChecker(client, Repo(client, config), http_client=http, **kwargs)


class TestPing:
    """Tests for HealthChecker.ping."""

    def test_match_on_first_attempt(self, client, make_config):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text='{"status": "UP"}')

        checker = make_checker(client, make_config, handler)
        assert checker.ping("http://localhost:8080/health", Ping(url="unused", pattern="UP"))
        assert len(requests) == 1

    def test_retries_until_pattern_matches(self, client, make_config):
        bodies = iter(["starting", "starting", "status: UP"])
        slept = []

        def handler(request):
            return httpx.Response(200, text=next(bodies))

        checker = make_checker(client, make_config, handler, sleep=slept.append, poll_interval=0.25)
        assert checker.ping("http://localhost/health", Ping(url="unused", pattern="UP", timeout=60))
        assert slept == [0.25, 0.25]

    def test_connection_errors_are_retried(self, client, make_config):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, text="ok")

        checker = make_checker(client, make_config, handler)
        assert checker.ping("http://localhost/", Ping(url="unused", timeout=60))
        assert len(attempts) == 3

    def test_pattern_is_searched_not_matched(self, client, make_config):
        checker = make_checker(
            client, make_config, lambda request: httpx.Response(200, text="<h1>Welcome</h1>")
        )
        assert checker.ping("http://localhost/", Ping(url="unused", pattern="Wel+come"))

    def test_times_out(self, client, make_config):
        checker = make_checker(
            client,
            make_config,
            lambda request: httpx.Response(503, text="down"),
            sleep=time.sleep,
            poll_interval=0.05,
        )
        started = time.monotonic()
        assert not checker.ping("http://localhost/", Ping(url="unused", pattern="UP", timeout=0.3))
        elapsed = time.monotonic() - started
        assert 0.3 <= elapsed < 5

    def test_bad_pattern_is_a_configuration_error(self, client, make_config):
        checker = make_checker(client, make_config, lambda request: httpx.Response(200))
        with pytest.raises(OrchestrationError) as excinfo:
            checker.ping("http://localhost/", Ping(url="unused", pattern="("))
        assert excinfo.value.kind == ErrorKind.CONFIGURATION


class TestCheck:
    """Tests for HealthChecker.check and URL resolution."""

    def test_container_ip_placeholder(self, client, make_config):
        image = client.add_image("me/demo_web:1.0")
        container = client.add_container("demo_web", image, running=True)
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            return httpx.Response(200, text="ok")

        checker = make_checker(
            client, make_config, handler, pings=[{"url": "http://__CONTAINER.IP__:8080/health"}]
        )
        checker.check(WEB)
        assert hosts == [container.ip_address]

    def test_timeout_raises(self, client, make_config):
        checker = make_checker(
            client,
            make_config,
            lambda request: httpx.Response(200, text="starting"),
            pings=[{"url": "http://localhost/health", "pattern": "UP", "timeout": 0.1}],
            sleep=time.sleep,
            poll_interval=0.02,
        )
        with pytest.raises(OrchestrationError) as excinfo:
            checker.check(WEB)
        assert excinfo.value.kind == ErrorKind.HEALTH_CHECK_TIMEOUT
        assert "http://localhost/health" in str(excinfo.value)
        assert "UP" in str(excinfo.value)

    def test_pings_run_in_order_and_fail_fast(self, client, make_config):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, text="ok" if request.url.path == "/a" else "no")

        checker = make_checker(
            client,
            make_config,
            handler,
            pings=[
                {"url": "http://localhost/a", "pattern": "ok"},
                {"url": "http://localhost/b", "pattern": "ok", "timeout": 0.05},
                {"url": "http://localhost/c", "pattern": "ok"},
            ],
            sleep=time.sleep,
            poll_interval=0.01,
        )
        with pytest.raises(OrchestrationError):
            checker.check(WEB)
        assert paths[0] == "/a"
        assert "/c" not in paths

    @pytest.mark.parametrize("url", ["not a url", "ftp://localhost/file", "http://"])
    def test_malformed_url_is_a_configuration_error(self, client, make_config, url):
        checker = make_checker(client, make_config, lambda request: httpx.Response(200))
        with pytest.raises(OrchestrationError) as excinfo:
            checker.resolve_url(WEB, url)
        assert excinfo.value.kind == ErrorKind.CONFIGURATION

    def test_placeholder_without_container(self, client, make_config):
        checker = make_checker(client, make_config, lambda request: httpx.Response(200))
        with pytest.raises(OrchestrationError) as excinfo:
            checker.resolve_url(WEB, "http://__CONTAINER.IP__/")
        assert excinfo.value.kind == ErrorKind.NOT_FOUND


class TestSession:
    """Tests for the lifetime of the HTTP client used by checks."""

    def test_own_client_closed_after_check(self, client, make_config, monkeypatch):
        opened = []
        real_client = httpx.Client

        def open_client(**kwargs):
            http = real_client(transport=httpx.MockTransport(lambda request: httpx.Response(200)), **kwargs)
            opened.append(http)
            return http

        monkeypatch.setattr(httpx, "Client", open_client)
        config = make_config({"web": {"health_checks": {"pings": [{"url": "http://localhost/"}]}}})
        checker = HealthChecker(client, Repo(client, config), sleep=lambda seconds: None)
        checker.check(WEB)

        [http] = opened
        assert http.is_closed

    def test_given_client_left_open(self, client, make_config):
        http = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        config = make_config({"web": {"health_checks": {"pings": [{"url": "http://localhost/"}]}}})
        HealthChecker(client, Repo(client, config), http_client=http).check(WEB)

        assert not http.is_closed
