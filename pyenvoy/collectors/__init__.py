from pyenvoy.collectors.base import NAMESPACE, EnvoyCollector, metric_name
from pyenvoy.collectors.inverters import InvertersCollector
from pyenvoy.collectors.meters import MetersCollector
from pyenvoy.collectors.production import ProductionCollector, lifetime_wh, net_watts
from pyenvoy.collectors.timing import API_CALL_BUCKETS, new_api_call_histogram


def register_collectors(registry, client) -> list:
    """Register the production, meters and inverters collectors for client on registry"""
    collectors = [ProductionCollector(client), MetersCollector(client), InvertersCollector(client)]
    for collector in collectors:
        registry.register(collector)
    return collectors
