import json
import logging
import threading
import time
import unittest
import urllib.request
from io import BytesIO
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock, patch

import pytest
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge

from conftest import make_response
from pyenvoy import __version__
from pyenvoy.exceptions import AuthenticationError, ConfigurationError, TransportError
from pyenvoy.exporter import server
from pyenvoy.exporter.config import load_settings
from pyenvoy.exporter.server import (ExporterHTTPServer, Handler, JsonFormatter, authenticate_with_retry,
                                     build_exporter)

ENV_VARS = ["ENVOY_ADDRESS", "ENVOY_SERIAL", "ENVOY_JWT", "ENVOY_USERNAME", "ENVOY_PASSWORD", "ENVOY_TIMEOUT",
            "EXPORTER_BIND_ADDRESS", "EXPORTER_PORT", "SHUTDOWN_GRACE", "AUTH_RETRIES", "AUTH_RETRY_DELAY",
            "LOG_LEVEL", "LOG_FORMAT"]


@pytest.fixture
def env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ENVOY_ADDRESS", "https://envoy.local")
    monkeypatch.setenv("ENVOY_SERIAL", "123456789")
    monkeypatch.setenv("ENVOY_JWT", "test-jwt")
    return monkeypatch


class UnittestHandler(Handler):
    """A testable version of Handler that doesn't auto-handle requests"""

    def __init__(self):
        self.path = ""
        self.send_response = Mock()
        self.send_header = Mock()
        self.end_headers = Mock()
        self.wfile = BytesIO()
        self.rfile = BytesIO()
        self.headers = {}
        self.client_address = ('127.0.0.1', 12345)
        self.server = Mock()
        self.request_version = 'HTTP/1.1'
        self.command = 'GET'


class TestHandler(unittest.TestCase):
    def setUp(self):
        self.handler = UnittestHandler()
        self.handler.server.registry = CollectorRegistry()
        Gauge('enphase_test_gauge', 'Test gauge', registry=self.handler.server.registry).set(42)
        self.handler.server.probe.liveness.return_value = (200, "OK")
        self.handler.server.probe.readiness.return_value = (200, "Ready")

    def get(self, path):
        self.handler.path = path
        self.handler.wfile = BytesIO()
        self.handler.do_GET()
        return self.handler.wfile.getvalue()

    def test_metrics(self):
        body = self.get("/metrics")
        self.handler.send_response.assert_called_with(200)
        self.handler.send_header.assert_any_call('Content-type', CONTENT_TYPE_LATEST)
        self.assertIn(b"enphase_test_gauge 42.0", body)

    def test_health(self):
        body = self.get("/health")
        self.handler.send_response.assert_called_with(200)
        self.assertEqual(body, b"OK")

    def test_ready(self):
        body = self.get("/ready")
        self.handler.send_response.assert_called_with(200)
        self.assertEqual(body, b"Ready")

    def test_not_ready(self):
        self.handler.server.probe.readiness.return_value = (503, "Not Ready: gateway unreachable")
        body = self.get("/ready")
        self.handler.send_response.assert_called_with(503)
        self.assertEqual(body, b"Not Ready: gateway unreachable")

    def test_index(self):
        body = self.get("/")
        self.handler.send_response.assert_called_with(200)
        self.assertIn(b"/metrics", body)
        self.assertIn(__version__.encode(), body)

    def test_query_string_ignored(self):
        body = self.get("/health?verbose=1")
        self.assertEqual(body, b"OK")

    def test_unknown_path(self):
        body = self.get("/api/status")
        self.handler.send_response.assert_called_with(404)
        self.assertEqual(body, b"Not Found")
        self.handler.server.probe.readiness.assert_not_called()

    def test_content_length(self):
        body = self.get("/ready")
        self.handler.send_header.assert_any_call('Content-Length', str(len(body)))


# Settings

def test_settings_from_environment(env):
    env.setenv("EXPORTER_PORT", "9100")
    env.setenv("LOG_FORMAT", "json")
    settings = load_settings(env_file=None)
    assert settings.envoy_address == "https://envoy.local"
    assert settings.envoy_serial == "123456789"
    assert settings.envoy_jwt == "test-jwt"
    assert settings.port == 9100
    assert settings.log_format == "json"
    assert settings.envoy_timeout == 30
    assert settings.shutdown_grace == 30
    assert settings.auth_retries == 5


def test_settings_username_password(env):
    env.delenv("ENVOY_JWT")
    env.setenv("ENVOY_USERNAME", "user@example.com")
    env.setenv("ENVOY_PASSWORD", "secret")
    settings = load_settings(env_file=None)
    assert settings.envoy_jwt is None
    assert settings.summary()["envoy_password"] == "******"


@pytest.mark.parametrize("missing", ["ENVOY_ADDRESS", "ENVOY_SERIAL", "ENVOY_JWT"])
def test_settings_missing_required(env, missing):
    env.delenv(missing)
    with pytest.raises(ConfigurationError) as exc_info:
        load_settings(env_file=None)
    assert missing in str(exc_info.value)


def test_settings_invalid_port(env):
    env.setenv("EXPORTER_PORT", "70000")
    with pytest.raises(ConfigurationError):
        load_settings(env_file=None)


def test_settings_from_env_file(tmp_path, monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("ENVOY_ADDRESS=192.168.1.50\nENVOY_SERIAL=42\nENVOY_JWT=abc\n")
    settings = load_settings(env_file=str(env_file))
    assert settings.envoy_address == "192.168.1.50"
    assert settings.envoy_serial == "42"


def test_summary_masks_secrets(env):
    summary = load_settings(env_file=None).summary()
    assert summary["envoy_jwt"] == "********"
    assert "test-jwt" not in json.dumps(summary)


# Startup authentication

def test_authenticate_with_retry_recovers():
    client = Mock()
    client.authenticate.side_effect = [AuthenticationError("down"), TransportError("down"), None]
    sleeps = []
    authenticate_with_retry(client, retries=5, delay=1, sleep=sleeps.append)
    assert client.authenticate.call_count == 3
    assert sleeps == [1, 2]


def test_authenticate_with_retry_gives_up():
    client = Mock()
    client.authenticate.side_effect = AuthenticationError("rejected", status_code=401)
    sleeps = []
    with pytest.raises(AuthenticationError) as exc_info:
        authenticate_with_retry(client, retries=3, delay=5, sleep=sleeps.append)
    assert client.authenticate.call_count == 3
    assert sleeps == [5, 10]
    assert "after 3 attempts" in str(exc_info.value)


# Server

def test_build_exporter(env, gateway):
    settings = load_settings(env_file=None)
    client, registry = build_exporter(settings, http=gateway)
    assert gateway.calls == []
    assert registry.get_sample_value("enphase_exporter_build_info",
                                     {"version": __version__, "build": server.BUILD}) == 1
    assert registry.get_sample_value("enphase_production_watts", {"device_type": "eim"}) == 2500.5
    assert registry.get_sample_value("enphase_api_call_duration_seconds_count", {"endpoint": "production"}) >= 1
    client.close()


def test_build_exporter_scrape_with_gateway_down(env, gateway):
    gateway.routes["/ivp/meters/readings"] = make_response(503, "unavailable")
    _, registry = build_exporter(load_settings(env_file=None), http=gateway)
    assert registry.get_sample_value("enphase_voltage_volts", {"meter_id": "12345", "phase": "total"}) is None
    assert registry.get_sample_value("enphase_inverter_watts", {"serial_number": "INV001"}) == 250


def test_server_routes_and_drain():
    release = threading.Event()
    probe = Mock()
    probe.liveness.return_value = (200, "OK")

    def slow_readiness():
        release.wait(5)
        return 200, "Ready"
    probe.readiness.side_effect = slow_readiness

    httpd = ExporterHTTPServer(('127.0.0.1', 0), Handler, CollectorRegistry(), probe)
    worker = threading.Thread(target=httpd.serve_forever, daemon=True)
    worker.start()
    base = "http://127.0.0.1:%d" % httpd.server_address[1]
    try:
        with urllib.request.urlopen(base + "/health", timeout=5) as r:
            assert r.read() == b"OK"

        result = {}

        def slow_request():
            with urllib.request.urlopen(base + "/ready", timeout=5) as r:
                result["body"] = r.read()
        requester = threading.Thread(target=slow_request)
        requester.start()
        deadline = time.time() + 5
        while httpd.inflight == 0 and time.time() < deadline:
            time.sleep(0.01)
        assert httpd.inflight == 1

        httpd.shutdown()
        assert httpd.drain(0.1) is False
        release.set()
        assert httpd.drain(5) is True
        requester.join(5)
        assert result["body"] == b"Ready"
    finally:
        release.set()
        httpd.server_close()


def test_serve_stops_on_event():
    settings = SimpleNamespace(bind_address="127.0.0.1", port=0, shutdown_grace=1)
    client = MagicMock()
    stop = threading.Event()
    threading.Timer(0.2, stop.set).start()
    server.serve(settings, client, CollectorRegistry(), stop)
    client.guard.stop_session_refresh.assert_called_once()
    client.close.assert_called_once()


def test_run_fails_when_authentication_fails(env):
    settings = load_settings(env_file=None)
    client = MagicMock()
    with patch('pyenvoy.exporter.server.build_exporter', return_value=(client, CollectorRegistry())), \
            patch('pyenvoy.exporter.server.authenticate_with_retry', side_effect=AuthenticationError("rejected")):
        assert server.run(settings) == 1
    client.close.assert_called_once()
    client.guard.start_session_refresh.assert_not_called()


def test_main_fails_on_missing_config(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    with patch('pyenvoy.exporter.server.configure_logging'):
        assert server.main() == 1


def test_json_formatter():
    record = logging.LogRecord("pyenvoy.exporter", logging.WARNING, __file__, 1, "gateway %s", ("down",), None)
    entry = json.loads(JsonFormatter().format(record))
    assert entry["level"] == "WARNING"
    assert entry["logger"] == "pyenvoy.exporter"
    assert entry["msg"] == "gateway down"
