# pyEnvoy - Gateway Session Guard
# -*- coding: utf-8 -*-
"""
 Authenticated session management for the Enphase IQ Gateway

 The gateway accepts a bearer token (JWT) on /auth/check_jwt and answers with
 a session cookie that authorizes every further local API call. The cookie is
 kept in the requests.Session cookie jar. The gateway does not tell us how
 long the session lives, so a local expiry is tracked and the session is
 renewed REFRESH_BUFFER seconds before it runs out.

 Class:
    SessionGuard(address, serial, token, username, password, timeout, http, clock)

 Functions:
    ensure_authenticated()     # Authenticate only if the session is not valid
    authenticate()             # Authenticate now (used by readiness repair)
    is_ready()                 # True if authenticated and not about to expire
    start_session_refresh()    # Background renewal before expiry
    stop_session_refresh()     # Stop the background renewal thread

 Note:
    The gateway presents a self-signed certificate, so certificate
    verification is disabled for gateway requests. Enlighten cloud requests
    (token minting) are verified normally.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import requests
import urllib3
from urllib3.exceptions import InsecureRequestWarning

from pyenvoy.api_lock import acquire_lock_with_backoff
from pyenvoy.endpoints import ENDPOINT_AUTH_CHECK_JWT, ENLIGHTEN_LOGIN_URL, ENLIGHTEN_TOKEN_URL
from pyenvoy.exceptions import AuthenticationError, ConfigurationError, EnvoyError

urllib3.disable_warnings(InsecureRequestWarning)

log = logging.getLogger(__name__)

SESSION_DURATION = 10 * 60  # gateway sessions last about 10 minutes
REFRESH_BUFFER = 60  # renew 1 minute before expiry
DEFAULT_TIMEOUT = 30  # seconds per gateway request


@dataclass
class Session:
    authenticated: bool = False
    expires_at: float = 0.0

    def valid(self, now: float, refresh_buffer: float = REFRESH_BUFFER) -> bool:
        return self.authenticated and now + refresh_buffer < self.expires_at


class SessionGuard:
    def __init__(self, address: str, serial: str, token: Optional[str] = None,
                 username: Optional[str] = None, password: Optional[str] = None,
                 timeout: float = DEFAULT_TIMEOUT, http: Optional[requests.Session] = None,
                 clock: Callable[[], float] = time.time, lock_timeout: Optional[float] = None):
        """
        Guards the authenticated session against one IQ Gateway

        Args:
            address      = Gateway base address (e.g. https://envoy.local)
            serial       = Gateway serial number (needed to mint a token)
            token        = Bearer token (JWT) - if set, Enlighten is never contacted
            username     = Enlighten username (email) used to mint a token
            password     = Enlighten password used to mint a token
            timeout      = Seconds for the timeout on each http request
            http         = requests.Session to use (a new one is created if None)
            clock        = Callable returning the current Unix time
            lock_timeout = Seconds to wait for an in-flight authentication
        """
        if not token and not (username and password):
            raise ConfigurationError("A token or a username/password pair is required")
        self.address = address
        self.serial = serial
        self.token = token
        self.username = username
        self.password = password
        self.timeout = timeout
        self.http = http if http is not None else requests.Session()
        self.clock = clock
        self.lock_timeout = lock_timeout if lock_timeout is not None else 2 * timeout + 5
        self.session = Session()
        self.ready = False
        self._lock = threading.Lock()
        self._refresh_stop: Optional[threading.Event] = None
        self._refresh_thread: Optional[threading.Thread] = None

    def is_ready(self) -> bool:
        # Non-exclusive read - never blocks behind an in-flight login
        return self.ready and self.session.valid(self.clock())

    def ensure_authenticated(self) -> None:
        with acquire_lock_with_backoff(self._lock, self.lock_timeout):
            if self.session.valid(self.clock()):
                return
            self._authenticate_locked()

    def authenticate(self) -> None:
        with acquire_lock_with_backoff(self._lock, self.lock_timeout):
            self._authenticate_locked()

    def _authenticate_locked(self) -> None:
        try:
            token = self.token or self._get_enlighten_token()
            self._validate_token(token)
        except EnvoyError:
            self.ready = False
            self.session.authenticated = False
            raise
        self.session.authenticated = True
        self.session.expires_at = self.clock() + SESSION_DURATION
        self.ready = True
        log.info("Gateway session established (expires %s)" %
                 time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime(self.session.expires_at)))

    def _validate_token(self, token: str) -> None:
        # Exchange the JWT for a gateway session cookie
        url = self.address + ENDPOINT_AUTH_CHECK_JWT
        log.debug('Validating JWT with gateway at %s' % url)
        try:
            r = self.http.get(url, headers={"Authorization": "Bearer " + token},
                              verify=False, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise AuthenticationError(f"check_jwt request to {url} failed: {exc}") from exc
        if not 200 <= r.status_code < 300:
            raise AuthenticationError(f"JWT validation failed with status {r.status_code}: {r.text}",
                                      status_code=r.status_code, body=r.text)
        # Older firmware answers with an HTML page instead of JSON
        log.debug('check_jwt - %s' % r.text[:200])

    def _get_enlighten_token(self) -> str:
        log.debug('Logging into Enlighten as %s' % self.username)
        try:
            r = self.http.post(ENLIGHTEN_LOGIN_URL,
                               data={"user[email]": self.username, "user[password]": self.password},
                               timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise AuthenticationError(f"Enlighten login request failed: {exc}") from exc
        if r.status_code != 200:
            raise AuthenticationError(f"Enlighten login failed with status {r.status_code}: {r.text}",
                                      status_code=r.status_code, body=r.text)

        log.debug('Fetching JWT for gateway serial %s' % self.serial)
        try:
            r = self.http.get(ENLIGHTEN_TOKEN_URL, params={"serial_num": self.serial}, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise AuthenticationError(f"Enlighten token request failed: {exc}") from exc
        if r.status_code != 200:
            raise AuthenticationError(f"Enlighten token request failed with status {r.status_code}: {r.text}",
                                      status_code=r.status_code, body=r.text)
        # The token endpoint returns the JWT as plain text
        token = r.text.strip()
        if not token:
            raise AuthenticationError("Received empty token from Enlighten")
        return token

    # Proactive renewal

    def start_session_refresh(self, interval: Optional[float] = None) -> None:
        """
        Renew the session in the background so scrapes never see it expire

        Args:
            interval = Seconds between checks (default half of REFRESH_BUFFER)
        """
        if self._refresh_thread is not None and self._refresh_thread.is_alive():
            return
        interval = interval if interval is not None else REFRESH_BUFFER / 2
        self._refresh_stop = threading.Event()
        self._refresh_thread = threading.Thread(target=self._refresh_loop, args=(self._refresh_stop, interval),
                                                name="envoy-session-refresh", daemon=True)
        self._refresh_thread.start()
        log.debug('Session refresh started (interval %ss)' % interval)

    def stop_session_refresh(self, timeout: float = 5) -> None:
        if self._refresh_thread is None:
            return
        self._refresh_stop.set()
        self._refresh_thread.join(timeout)
        if self._refresh_thread.is_alive():
            log.warning('Session refresh thread did not stop within %ss' % timeout)
        else:
            log.debug('Session refresh stopped')
        self._refresh_thread = None

    def _refresh_loop(self, stop: threading.Event, interval: float) -> None:
        while not stop.wait(interval):
            try:
                self.ensure_authenticated()
            except EnvoyError as exc:
                log.warning(f"Session refresh failed - will retry in {interval}s: {exc}")
