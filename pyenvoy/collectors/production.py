"""
Production and consumption metrics from the gateway meter reports

The "production" report carries one cumulative block for the production meter
(device type "eim"), the "consumption" report one entry per measurement type
("total-consumption", "net-consumption"). Both may carry a per-line breakdown
on split-phase installations.
"""
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

from pyenvoy.collectors.base import EnvoyCollector, metric_name

DEVICE_TYPE = "eim"
TOTAL_CONSUMPTION = "total-consumption"


def lifetime_wh(report) -> float:
    """
    Lifetime energy for a meter report

    On split-phase (two-leg, 120/240V) installations the cumulative whDlvdCum is
    counted twice by the gateway firmware, so the per-line values are summed
    whenever a line breakdown exists.
    """
    if report.lines:
        return sum(line.wh_dlvd_cum for line in report.lines)
    return report.cumulative.wh_dlvd_cum


def net_watts(production, consumption) -> float:
    # Positive = exporting to grid, negative = importing
    total = 0.0
    for entry in consumption:
        if entry.report_type == TOTAL_CONSUMPTION:
            total = entry.cumulative.curr_w
    return production.cumulative.curr_w - total


class ProductionCollector(EnvoyCollector):
    name = "production"

    def families(self):
        return {
            'production_watts': GaugeMetricFamily(
                metric_name('production_watts'), 'Current solar production in watts',
                labels=['device_type']),
            'production_voltage': GaugeMetricFamily(
                metric_name('production_voltage_volts'), 'RMS voltage',
                labels=['device_type']),
            'production_current': GaugeMetricFamily(
                metric_name('production_current_amps'), 'RMS current in amps',
                labels=['device_type']),
            'production_power_factor': GaugeMetricFamily(
                metric_name('production_power_factor'), 'Power factor',
                labels=['device_type']),
            'production_wh': CounterMetricFamily(
                metric_name('production_wh_total'), 'Total lifetime production in watt-hours',
                labels=['device_type']),
            'consumption_watts': GaugeMetricFamily(
                metric_name('consumption_watts'), 'Current consumption in watts',
                labels=['measurement_type']),
            'consumption_wh': CounterMetricFamily(
                metric_name('consumption_wh_total'), 'Total lifetime consumption in watt-hours',
                labels=['measurement_type']),
            'net_watts': GaugeMetricFamily(
                metric_name('net_watts'),
                'Net power (production - consumption). Positive = exporting, negative = importing'),
        }

    def collect(self):
        production = self.fetch("production report", self.client.get_production_report)
        if production is None:
            return
        consumption = self.fetch("consumption report", self.client.get_consumption_report)
        if consumption is None:
            return

        f = self.families()
        cumulative = production.cumulative
        f['production_watts'].add_metric([DEVICE_TYPE], cumulative.curr_w)
        f['production_voltage'].add_metric([DEVICE_TYPE], cumulative.rms_voltage)
        f['production_current'].add_metric([DEVICE_TYPE], cumulative.rms_current)
        f['production_power_factor'].add_metric([DEVICE_TYPE], cumulative.pwr_factor)
        f['production_wh'].add_metric([DEVICE_TYPE], lifetime_wh(production))

        for entry in consumption:
            label = entry.report_type or "unknown"
            f['consumption_watts'].add_metric([label], entry.cumulative.curr_w)
            f['consumption_wh'].add_metric([label], lifetime_wh(entry))

        f['net_watts'].add_metric([], net_watts(production, consumption))
        yield from f.values()
