#!/usr/bin/env python
# pyEnvoy Module - Prometheus Exporter Server
# -*- coding: utf-8 -*-
"""
 Prometheus exporter for the Enphase IQ Gateway

 Polls the gateway on every scrape and serves:
    /metrics  - production, consumption, meter and inverter metrics
    /health   - liveness probe (always OK once running)
    /ready    - readiness probe (OK once the gateway session is valid)

 Run:
    python -m pyenvoy exporter

 Configuration is read from the environment, see pyenvoy.exporter.config.
"""
import json
import logging
import signal
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from socketserver import ThreadingMixIn
from typing import Callable, Optional, Tuple

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest

from pyenvoy import __version__
from pyenvoy.client import EnvoyClient
from pyenvoy.collectors import metric_name, new_api_call_histogram, register_collectors
from pyenvoy.exceptions import AuthenticationError, ConfigurationError, EnvoyError
from pyenvoy.exporter.config import ExporterSettings, load_settings
from pyenvoy.probe import HealthProbe

BUILD = "e1"

log = logging.getLogger("pyenvoy.exporter")

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

INDEX_PAGE = """<!DOCTYPE html>
<html>
<head><title>Enphase Exporter</title></head>
<body>
<h1>Enphase Prometheus Exporter</h1>
<p>Version: %s</p>
<p><a href="/metrics">Metrics</a></p>
<p><a href="/health">Health</a> (liveness probe)</p>
<p><a href="/ready">Ready</a> (readiness probe)</p>
</body>
</html>
"""


class JsonFormatter(logging.Formatter):
    """One JSON object per log line, for log aggregation"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S%z", time.localtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(level: str = "info", fmt: str = "text") -> None:
    handler = logging.StreamHandler(sys.stderr)
    if fmt.lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s:%(name)s:%(message)s'))
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(LOG_LEVELS.get(level.lower(), logging.INFO))


def authenticate_with_retry(client, retries: int = 5, delay: float = 5.0,
                            sleep: Callable[[float], None] = time.sleep) -> None:
    """
    Authenticate on startup, retrying transient failures with exponential backoff

    Raises AuthenticationError once all attempts have failed.
    """
    last_error = None
    for attempt in range(1, retries + 1):
        try:
            client.authenticate()
            return
        except EnvoyError as exc:
            last_error = exc
            log.warning(f"Authentication attempt {attempt}/{retries} failed: {exc}")
            if attempt < retries:
                sleep(delay)
                delay *= 2
    raise AuthenticationError(f"Authentication failed after {retries} attempts: {last_error}") from last_error


class ExporterHTTPServer(ThreadingMixIn, HTTPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, server_address, handler_class, registry: CollectorRegistry, probe: HealthProbe):
        self.registry = registry
        self.probe = probe
        self._inflight = 0
        self._inflight_cond = threading.Condition()
        super().__init__(server_address, handler_class)

    def process_request_thread(self, request, client_address):
        with self._inflight_cond:
            self._inflight += 1
        try:
            super().process_request_thread(request, client_address)
        finally:
            with self._inflight_cond:
                self._inflight -= 1
                self._inflight_cond.notify_all()

    @property
    def inflight(self) -> int:
        return self._inflight

    def drain(self, timeout: float) -> bool:
        """Wait up to timeout seconds for in-flight requests, True if none are left"""
        with self._inflight_cond:
            return self._inflight_cond.wait_for(lambda: self._inflight == 0, timeout)


# noinspection PyPep8Naming
class Handler(BaseHTTPRequestHandler):
    timeout = 10  # socket read timeout for slow clients

    def log_message(self, log_format, *args):
        log.debug("%s %s" % (self.address_string(), log_format % args))

    def address_string(self):
        # replace function to avoid lookup delays
        hostaddr, hostport = self.client_address[:2]
        return hostaddr

    def do_GET(self):
        path = self.path.split('?', 1)[0]
        if path == '/metrics':
            status, contenttype, message = 200, CONTENT_TYPE_LATEST, generate_latest(self.server.registry)
        elif path == '/health':
            status, text = self.server.probe.liveness()
            contenttype, message = 'text/plain; charset=utf-8', text.encode("utf8")
        elif path == '/ready':
            status, text = self.server.probe.readiness()
            contenttype, message = 'text/plain; charset=utf-8', text.encode("utf8")
        elif path == '/':
            status, contenttype = 200, 'text/html; charset=utf-8'
            message = (INDEX_PAGE % __version__).encode("utf8")
        else:
            status, contenttype, message = 404, 'text/plain; charset=utf-8', b'Not Found'
        self.send_response(status)
        self.send_header('Content-type', contenttype)
        self.send_header('Content-Length', str(len(message)))
        self.end_headers()
        self.wfile.write(message)


def build_exporter(settings: ExporterSettings, http=None) -> Tuple[EnvoyClient, CollectorRegistry]:
    """Create the gateway client and a private registry with every exporter metric"""
    registry = CollectorRegistry()
    client = EnvoyClient(settings.envoy_address, settings.envoy_serial, token=settings.envoy_jwt,
                         username=settings.envoy_username, password=settings.envoy_password,
                         timeout=settings.envoy_timeout, api_duration=new_api_call_histogram(registry),
                         http=http)
    register_collectors(registry, client)
    build_info = Gauge(metric_name('exporter_build_info'), 'Build information for the enphase exporter',
                       ['version', 'build'], registry=registry)
    build_info.labels(version=__version__, build=BUILD).set(1)
    return client, registry


def serve(settings: ExporterSettings, client: EnvoyClient, registry: CollectorRegistry,
          stop: Optional[threading.Event] = None) -> None:
    """Serve until stop is set (SIGTERM/SIGINT set it when running in the main thread)"""
    stop = stop or threading.Event()
    server = ExporterHTTPServer((settings.bind_address, settings.port), Handler, registry, HealthProbe(client))
    worker = threading.Thread(target=server.serve_forever, name="exporter-http", daemon=True)
    worker.start()
    log.info(f"Listening on {settings.bind_address or '*'}:{settings.port}")

    try:
        stop.wait()
    finally:
        log.info("Shutting down server")
        client.guard.stop_session_refresh()
        server.shutdown()
        if not server.drain(settings.shutdown_grace):
            log.error(f"Server forced to shutdown with {server.inflight} request(s) in flight")
        server.server_close()
        client.close()
        log.info("Server exited")


def run(settings: ExporterSettings) -> int:
    log.info(f"Starting Enphase Exporter {__version__} [{BUILD}]")
    log.info("Config: %s" % settings.summary())

    try:
        client, registry = build_exporter(settings)
    except ConfigurationError as exc:
        log.error(f"Failed to create Enphase client: {exc}")
        return 1
    log.info(f"Configured Enphase gateway connection {client.address} (serial {client.serial})")

    try:
        authenticate_with_retry(client, settings.auth_retries, settings.auth_retry_delay)
    except AuthenticationError as exc:
        log.error(f"Failed to authenticate with Enphase gateway: {exc}")
        client.close()
        return 1
    log.info("Successfully authenticated with Enphase gateway")

    client.guard.start_session_refresh()

    stop = threading.Event()

    # noinspection PyUnusedLocal
    def sig_handle(signum, frame):
        log.info(f"Received signal {signal.Signals(signum).name}")
        stop.set()

    signal.signal(signal.SIGTERM, sig_handle)
    signal.signal(signal.SIGINT, sig_handle)
    serve(settings, client, registry, stop)
    return 0


def main() -> int:
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        configure_logging()
        log.error(f"Configuration validation failed: {exc}")
        return 1
    configure_logging(settings.log_level, settings.log_format)
    return run(settings)


if __name__ == "__main__":
    sys.exit(main())
