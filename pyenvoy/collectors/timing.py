from prometheus_client import Histogram

from pyenvoy.collectors.base import metric_name

API_CALL_BUCKETS = (0.1, 0.25, 0.5, 1, 2, 3, 4, 5, 7.5, 10, 15, 20)


def new_api_call_histogram(registry) -> Histogram:
    """Histogram of gateway API call durations, labelled by endpoint"""
    return Histogram(metric_name('api_call_duration_seconds'), 'Duration of API calls to the Enphase gateway',
                     ['endpoint'], buckets=API_CALL_BUCKETS, registry=registry)
