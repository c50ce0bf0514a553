from prometheus_client.core import GaugeMetricFamily

from pyenvoy.collectors.base import EnvoyCollector, metric_name


class InvertersCollector(EnvoyCollector):
    name = "inverters"

    def families(self):
        return {
            'watts': GaugeMetricFamily(
                metric_name('inverter_watts'), 'Current inverter production in watts',
                labels=['serial_number']),
            'max_watts': GaugeMetricFamily(
                metric_name('inverter_max_watts'), 'Maximum reported inverter production in watts',
                labels=['serial_number']),
            'last_report': GaugeMetricFamily(
                metric_name('inverter_last_report_timestamp'), 'Unix timestamp of last inverter report',
                labels=['serial_number']),
        }

    def collect(self):
        inverters = self.fetch("inverter data", self.client.get_inverters)
        if inverters is None:
            return

        f = self.families()
        for inv in inverters:
            f['watts'].add_metric([inv.serial_number], inv.last_report_watts)
            f['max_watts'].add_metric([inv.serial_number], inv.max_report_watts)
            f['last_report'].add_metric([inv.serial_number], inv.last_report_date)
        yield from f.values()
