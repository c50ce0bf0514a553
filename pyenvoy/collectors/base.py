import logging

from prometheus_client.registry import Collector

from pyenvoy.exceptions import EnvoyError

NAMESPACE = "enphase"


def metric_name(name: str) -> str:
    return f"{NAMESPACE}_{name}"


class EnvoyCollector(Collector):
    """
    Base for collectors that derive metrics from a fresh gateway snapshot on every scrape

    A failed fetch is logged and the collector emits nothing for that scrape, so
    its series go stale instead of reporting zeros. Other collectors are not affected.
    """
    name = "envoy"

    def __init__(self, client):
        self.client = client
        self.log = logging.getLogger(f"pyenvoy.collectors.{self.name}")

    def fetch(self, what: str, func):
        try:
            snapshot = func()
        except EnvoyError as exc:
            self.log.error(f"Failed to get {what}: {exc}")
            return None
        if snapshot is None:
            self.log.error(f"No {what} returned by gateway")
        return snapshot

    def families(self):
        raise NotImplementedError

    def describe(self):
        # Empty families - registering a collector must not reach the gateway
        return list(self.families().values())
