import logging
from typing import Tuple

from pyenvoy.exceptions import EnvoyError

log = logging.getLogger(__name__)


class HealthProbe:
    """
    Liveness and readiness checks for orchestration

    Readiness follows the gateway session: when the session is not valid, one
    synchronous re-authentication is attempted before reporting not ready, so a
    session that merely expired does not keep the exporter out of rotation.
    """

    def __init__(self, client):
        self.client = client

    def liveness(self) -> Tuple[int, str]:
        return 200, "OK"

    def readiness(self) -> Tuple[int, str]:
        if self.client.is_ready():
            return 200, "Ready"
        try:
            self.client.authenticate()
        except EnvoyError as exc:
            log.warning(f"Readiness check: re-authentication failed: {exc}")
            return 503, f"Not Ready: {exc}"
        return 200, "Ready"
