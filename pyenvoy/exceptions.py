from typing import Optional


class EnvoyError(Exception):
    """Base class for all errors raised while talking to the IQ Gateway"""


class ConfigurationError(EnvoyError):
    """Missing or invalid configuration (fatal at startup)"""


class AuthenticationError(EnvoyError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TransportError(EnvoyError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None,
                 url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.url = url


class DecodeError(EnvoyError):
    """Payload could not be decoded into the expected snapshot shape"""


class LockTimeoutError(EnvoyError, TimeoutError):
    """Gave up waiting for the session lock"""
