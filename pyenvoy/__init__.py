# pyEnvoy Module
# -*- coding: utf-8 -*-
"""
 Python module to read telemetry from an Enphase IQ Gateway (Envoy)

 Features
    * Works with the local IQ Gateway API (firmware 7+, token authentication)
    * Uses a bearer token (JWT) or mints one from Enlighten username/password
    * Keeps one gateway session and renews it before it expires
    * Safe to share between threads - one login per expired session
    * Typed snapshots for meter reports, meter readings and inverters
    * Prometheus exporter with liveness and readiness probes

 Classes
    EnvoyClient(address, serial, token, username, password, timeout, api_duration, http, clock)
    SessionGuard(address, serial, token, username, password, timeout, http, clock)

 Parameters
    address                   # Hostname, IP or URL of the gateway
    serial                    # Gateway serial number
    token                     # Bearer token (JWT) for the gateway
    username / password       # Enlighten credentials used to mint a token
    timeout = 30              # Timeout for HTTPS calls in seconds

 Functions
    get_production_report()   # Production meter report (cumulative + lines)
    get_consumption_report()  # Consumption meter reports (total / net)
    get_meter_readings()      # Per-meter readings with per-phase channels
    get_inverters()           # Per-inverter production
    authenticate()            # Force a new gateway session
    is_ready()                # True if the session is established and valid

 Requirements
    This module requires the following modules: requests, pydantic, prometheus_client
    pip install requests pydantic prometheus_client
"""
import logging
import sys

version_tuple = (0, 1, 0)
version = __version__ = '%d.%d.%d' % version_tuple
__author__ = 'pyenvoy'

from pyenvoy.client import EnvoyClient  # noqa: E402
from pyenvoy.exceptions import (AuthenticationError, ConfigurationError, DecodeError, EnvoyError,  # noqa: E402
                                TransportError)
from pyenvoy.session import Session, SessionGuard  # noqa: E402

log = logging.getLogger(__name__)
log.debug('%s version %s', __name__, __version__)
log.debug('Python %s on %s', sys.version, sys.platform)


def set_debug(toggle=True, color=True):
    """Enable verbose logging"""
    if toggle:
        if color:
            logging.basicConfig(format='\x1b[31;1m%(levelname)s:%(message)s\x1b[0m', level=logging.DEBUG)
        else:
            logging.basicConfig(format='%(levelname)s:%(message)s', level=logging.DEBUG)
        log.setLevel(logging.DEBUG)
        log.debug("%s [%s]\n" % (__name__, __version__))
    else:
        log.setLevel(logging.NOTSET)
