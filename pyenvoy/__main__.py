# pyEnvoy Module - Command Line
# -*- coding: utf-8 -*-
"""
 Python module to read telemetry from an Enphase IQ Gateway

 Commands:
    python -m pyenvoy exporter          # Run the Prometheus exporter (configured by environment)
    python -m pyenvoy get [-format]     # Print current production, consumption, meters and inverters
    python -m pyenvoy version           # Print version information

 The gateway connection is configured with ENVOY_ADDRESS, ENVOY_SERIAL and
 ENVOY_JWT (or ENVOY_USERNAME / ENVOY_PASSWORD), see pyenvoy.exporter.config.
"""
import argparse
import json
import sys

from pyenvoy import EnvoyClient, set_debug, version
from pyenvoy.collectors import lifetime_wh, net_watts
from pyenvoy.exceptions import ConfigurationError, EnvoyError


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pyenvoy", description=f"pyEnvoy Module v{version}")
    subparsers = p.add_subparsers(dest="command", title='commands (run <command> -h to see usage information)',
                                  required=True)
    subparsers.add_parser("exporter", help='Run the Prometheus exporter')
    get_args = subparsers.add_parser("get", help='Print current gateway readings')
    get_args.add_argument("-format", type=str, default="text", choices=["text", "json"],
                          help="Output format: text or json")
    subparsers.add_parser("version", help='Print version information')
    p.add_argument("-debug", action="store_true", default=False, help="Enable debug output")
    return p


def get_readings(client: EnvoyClient) -> dict:
    production = client.get_production_report()
    consumption = client.get_consumption_report()
    return {
        "production": {
            "watts": production.cumulative.curr_w,
            "wh_lifetime": lifetime_wh(production),
        },
        "consumption": {
            entry.report_type or "unknown": {"watts": entry.cumulative.curr_w, "wh_lifetime": lifetime_wh(entry)}
            for entry in consumption
        },
        "net_watts": net_watts(production, consumption),
        "meters": [reading.model_dump() for reading in client.get_meter_readings()],
        "inverters": [inv.model_dump() for inv in client.get_inverters()],
    }


def print_readings(data: dict) -> None:
    print("Production:  %10.1f W  %14.1f Wh lifetime" %
          (data["production"]["watts"], data["production"]["wh_lifetime"]))
    for name, entry in data["consumption"].items():
        print("%-18s %5.1f W  %14.1f Wh lifetime" % (name + ":", entry["watts"], entry["wh_lifetime"]))
    print("Net:         %10.1f W" % data["net_watts"])
    for meter in data["meters"]:
        print("Meter %-10s %7.1f V %7.2f A %9.1f W  PF %5.2f  %5.2f Hz" %
              (meter["eid"], meter["voltage"], meter["current"], meter["active_power"],
               meter["pwr_factor"], meter["freq"]))
    for inv in data["inverters"]:
        print("Inverter %-14s %6.0f W (max %6.0f W)" %
              (inv["serial_number"], inv["last_report_watts"], inv["max_report_watts"]))


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.debug:
        set_debug(True)

    if args.command == 'version':
        print("pyEnvoy [%s]" % version)
        return 0

    if args.command == 'exporter':
        from pyenvoy.exporter.server import main as exporter_main
        return exporter_main()

    # get
    from pyenvoy.exporter.config import load_settings
    try:
        settings = load_settings()
        client = EnvoyClient(settings.envoy_address, settings.envoy_serial, token=settings.envoy_jwt,
                             username=settings.envoy_username, password=settings.envoy_password,
                             timeout=settings.envoy_timeout)
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    try:
        data = get_readings(client)
    except EnvoyError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        client.close()
    if args.format == "json":
        print(json.dumps(data, indent=4))
    else:
        print_readings(data)
    return 0


if __name__ == "__main__":
    sys.exit(main())
