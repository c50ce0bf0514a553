# pyEnvoy - Gateway Data Client
# -*- coding: utf-8 -*-
"""
 Typed, authenticated reads of the Enphase IQ Gateway local API

 Class:
    EnvoyClient(address, serial, token, username, password, timeout, api_duration, http, clock)

 Functions:
    get_production_report()   # /ivp/meters/reports/production  -> MeterReport
    get_consumption_report()  # /ivp/meters/reports/consumption -> [MeterReport]
    get_meter_readings()      # /ivp/meters/readings            -> [MeterReading]
    get_inverters()           # /api/v1/production/inverters    -> [Inverter]
    authenticate()            # Force a new gateway session
    is_ready()                # True if the session is established and valid
    close()                   # Close the http session

 Every read makes sure the session is valid first, issues exactly one GET and
 either returns a fully decoded snapshot or raises:
    AuthenticationError - the session could not be established
    TransportError      - network failure or non-2xx response
    DecodeError         - the payload did not match the snapshot shape
"""
import logging
import time
from typing import Callable, List, Optional

import requests

from pyenvoy import models
from pyenvoy.endpoints import (ENDPOINT_CONSUMPTION_REPORT, ENDPOINT_INVERTERS, ENDPOINT_METER_READINGS,
                               ENDPOINT_PRODUCTION_REPORT)
from pyenvoy.exceptions import ConfigurationError, TransportError
from pyenvoy.session import DEFAULT_TIMEOUT, SessionGuard

log = logging.getLogger(__name__)


def normalize_address(address: str) -> str:
    address = (address or "").strip().rstrip("/")
    if address and "://" not in address:
        address = "https://" + address
    return address


class EnvoyClient:
    def __init__(self, address: str, serial: str, token: Optional[str] = None,
                 username: Optional[str] = None, password: Optional[str] = None,
                 timeout: float = DEFAULT_TIMEOUT, api_duration=None,
                 http: Optional[requests.Session] = None, clock: Callable[[], float] = time.time):
        """
        Represents one Enphase IQ Gateway

        Args:
            address      = Hostname, IP or URL of the gateway (https:// is assumed)
            serial       = Gateway serial number
            token        = Bearer token (JWT) generated at https://entrez.enphaseenergy.com
            username     = Enlighten username - used with password when no token is given
            password     = Enlighten password
            timeout      = Seconds for the timeout on each http request
            api_duration = Histogram (labelled by endpoint) to observe call latency, or None
            http         = requests.Session to use (a new one is created if None)
            clock        = Callable returning the current Unix time
        """
        address = normalize_address(address)
        if not address:
            raise ConfigurationError("address is required")
        if not serial:
            raise ConfigurationError("serial is required")
        self.address = address
        self.serial = serial
        self.timeout = timeout
        self.api_duration = api_duration
        self.guard = SessionGuard(address, serial, token=token, username=username, password=password,
                                  timeout=timeout, http=http, clock=clock)

    def authenticate(self) -> None:
        self.guard.authenticate()

    def is_ready(self) -> bool:
        return self.guard.is_ready()

    def close(self) -> None:
        self.guard.stop_session_refresh()
        self.guard.http.close()

    def get_production_report(self) -> models.MeterReport:
        return self._get("production", ENDPOINT_PRODUCTION_REPORT, models.decode_production_report)

    def get_consumption_report(self) -> List[models.MeterReport]:
        return self._get("consumption", ENDPOINT_CONSUMPTION_REPORT, models.decode_consumption_report)

    def get_meter_readings(self) -> List[models.MeterReading]:
        return self._get("meter_readings", ENDPOINT_METER_READINGS, models.decode_meter_readings)

    def get_inverters(self) -> List[models.Inverter]:
        return self._get("inverters", ENDPOINT_INVERTERS, models.decode_inverters)

    def _get(self, endpoint: str, api: str, decode):
        self.guard.ensure_authenticated()
        url = self.address + api
        log.debug(' -- envoy: Request gateway for %s' % api)
        start = time.perf_counter()
        try:
            r = self.guard.http.get(url, verify=False, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            raise TransportError(f"Timeout waiting for gateway API {url}", url=url) from exc
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"Unable to connect to gateway at {url}: {exc}", url=url) from exc
        finally:
            if self.api_duration is not None:
                self.api_duration.labels(endpoint=endpoint).observe(time.perf_counter() - start)
        if not 200 <= r.status_code < 300:
            raise TransportError(f"Gateway API {url} returned status {r.status_code}: {r.text}",
                                 status_code=r.status_code, body=r.text, url=url)
        return decode(r.content)
