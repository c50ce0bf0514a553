"""Pytest configuration and fixtures."""
import json
import threading
from unittest.mock import Mock
from urllib.parse import urlparse

import pytest
import requests

from pyenvoy.client import EnvoyClient

ADDRESS = "https://envoy.local"
SERIAL = "123456789"
TOKEN = "test-jwt"

PRODUCTION_REPORT = {
    "createdAt": 1704067200,
    "reportType": "production",
    "cumulative": {"currW": 2500.5, "rmsVoltage": 240.5, "rmsCurrent": 10.3, "pwrFactor": 0.99,
                   "whDlvdCum": 1500000.0},
    "lines": [],
}

CONSUMPTION_REPORT = [
    {"createdAt": 1704067200, "reportType": "total-consumption",
     "cumulative": {"currW": 1500.0, "whDlvdCum": 3000000.0}, "lines": []},
    {"createdAt": 1704067200, "reportType": "net-consumption",
     "cumulative": {"currW": -1000.0, "whDlvdCum": 1500000.0}, "lines": []},
]

METER_READINGS = [
    {"eid": 12345, "timestamp": 1704067200, "actEnergyDlvd": 1000.0, "actEnergyRcvd": 200.0,
     "activePower": 2450.0, "pwrFactor": 0.99, "voltage": 240.5, "current": 10.3, "freq": 60.0,
     "channels": [
         {"eid": 1, "voltage": 120.2, "current": 5.1, "activePower": 612.0, "pwrFactor": 0.98,
          "actEnergyDlvd": 600.0, "actEnergyRcvd": 100.0},
         {"eid": 2, "voltage": 120.3, "current": 5.2, "activePower": 625.0, "pwrFactor": 0.99,
          "actEnergyDlvd": 400.0, "actEnergyRcvd": 100.0},
     ]},
]

INVERTERS = [
    {"serialNumber": "INV001", "lastReportDate": 1704067200, "devType": 1, "lastReportWatts": 250,
     "maxReportWatts": 300},
    {"serialNumber": "INV002", "lastReportDate": 1704067260, "devType": 1, "lastReportWatts": 245,
     "maxReportWatts": 300},
]


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_response(status_code=200, body=None):
    """Mock requests.Response - body may be a str or anything json serializable"""
    if body is None:
        text = ""
    elif isinstance(body, str):
        text = body
    else:
        text = json.dumps(body)
    r = Mock(spec=requests.Response)
    r.status_code = status_code
    r.text = text
    r.content = text.encode("utf8")
    return r


class FakeGateway:
    """Stand-in for requests.Session answering by URL path"""

    def __init__(self):
        self.routes = {
            "/auth/check_jwt": make_response(200, '<!DOCTYPE html><h2>Valid token.</h2>'),
            "/ivp/meters/reports/production": make_response(200, PRODUCTION_REPORT),
            "/ivp/meters/reports/consumption": make_response(200, CONSUMPTION_REPORT),
            "/ivp/meters/readings": make_response(200, METER_READINGS),
            "/api/v1/production/inverters": make_response(200, INVERTERS),
        }
        self.calls = []
        self._lock = threading.Lock()
        self.get = Mock(side_effect=self._handle("GET"))
        self.post = Mock(side_effect=self._handle("POST"))
        self.close = Mock()

    def _handle(self, method):
        def handler(url, **kwargs):
            path = urlparse(url).path
            with self._lock:
                self.calls.append((method, path, kwargs))
            route = self.routes.get(path)
            if isinstance(route, BaseException):
                raise route
            if callable(route) and not isinstance(route, Mock):
                return route(url, **kwargs)
            return route if route is not None else make_response(404, "Not Found")
        return handler

    def count(self, path):
        return sum(1 for _, p, _ in self.calls if p == path)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(gateway, clock):
    c = EnvoyClient(ADDRESS, SERIAL, token=TOKEN, http=gateway, clock=clock)
    yield c
    c.guard.stop_session_refresh()
