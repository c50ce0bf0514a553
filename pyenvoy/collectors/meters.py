from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

from pyenvoy.collectors.base import EnvoyCollector, metric_name


class MetersCollector(EnvoyCollector):
    """Per-meter electrical readings, as totals (phase="total") and per channel (phase="L1", "L2", ...)"""
    name = "meters"

    def families(self):
        phase_labels = ['meter_id', 'phase']
        return {
            'voltage': GaugeMetricFamily(
                metric_name('voltage_volts'), 'Grid voltage in volts', labels=phase_labels),
            'current': GaugeMetricFamily(
                metric_name('current_amps'), 'Current in amps', labels=phase_labels),
            'active_power': GaugeMetricFamily(
                metric_name('active_power_watts'), 'Active power in watts', labels=phase_labels),
            'power_factor': GaugeMetricFamily(
                metric_name('power_factor'), 'Power factor', labels=phase_labels),
            'frequency': GaugeMetricFamily(
                metric_name('frequency_hz'), 'Grid frequency in Hz', labels=['meter_id']),
            'exported': CounterMetricFamily(
                metric_name('energy_exported_wh'), 'Cumulative energy exported to grid in watt-hours',
                labels=phase_labels),
            'imported': CounterMetricFamily(
                metric_name('energy_imported_wh'), 'Cumulative energy imported from grid in watt-hours',
                labels=phase_labels),
        }

    def collect(self):
        readings = self.fetch("meter readings", self.client.get_meter_readings)
        if readings is None:
            return

        f = self.families()
        for reading in readings:
            meter_id = str(reading.eid)
            self._add_phase(f, reading, meter_id, "total")
            # The gateway does not report frequency per phase
            f['frequency'].add_metric([meter_id], reading.freq)
            for i, channel in enumerate(reading.channels, start=1):
                self._add_phase(f, channel, meter_id, f"L{i}")
        yield from f.values()

    @staticmethod
    def _add_phase(f, values, meter_id: str, phase: str):
        labels = [meter_id, phase]
        f['voltage'].add_metric(labels, values.voltage)
        f['current'].add_metric(labels, values.current)
        f['active_power'].add_metric(labels, values.active_power)
        f['power_factor'].add_metric(labels, values.pwr_factor)
        f['exported'].add_metric(labels, values.act_energy_dlvd)
        f['imported'].add_metric(labels, values.act_energy_rcvd)
