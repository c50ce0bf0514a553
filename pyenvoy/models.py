# pyEnvoy - Gateway Snapshot Models
# -*- coding: utf-8 -*-
"""
 Typed snapshots decoded from IQ Gateway JSON payloads.

 Every snapshot is read-only and only valid for the scrape that fetched it.
 The gateway omits fields (or sends null) depending on firmware and on the
 meters installed, so every numeric field defaults to zero.

 Decoders:
    decode_production_report(payload)   # /ivp/meters/reports/production  -> MeterReport
    decode_consumption_report(payload)  # /ivp/meters/reports/consumption -> [MeterReport]
    decode_meter_readings(payload)      # /ivp/meters/readings            -> [MeterReading]
    decode_inverters(payload)           # /api/v1/production/inverters    -> [Inverter]
"""
from typing import List, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from pyenvoy.exceptions import DecodeError


class Snapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @field_validator("*", mode="before")
    @classmethod
    def _null_is_default(cls, value, info):
        # Firmware sends null for values it does not measure
        if value is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value


class MeterReportData(Snapshot):
    curr_w: float = Field(0.0, alias="currW")
    act_power: float = Field(0.0, alias="actPower")
    apprnt_pwr: float = Field(0.0, alias="apprntPwr")
    react_pwr: float = Field(0.0, alias="reactPwr")
    wh_dlvd_cum: float = Field(0.0, alias="whDlvdCum")
    wh_rcvd_cum: float = Field(0.0, alias="whRcvdCum")
    varh_lag_cum: float = Field(0.0, alias="varhLagCum")
    varh_lead_cum: float = Field(0.0, alias="varhLeadCum")
    vah_cum: float = Field(0.0, alias="vahCum")
    rms_voltage: float = Field(0.0, alias="rmsVoltage")
    rms_current: float = Field(0.0, alias="rmsCurrent")
    pwr_factor: float = Field(0.0, alias="pwrFactor")
    freq_hz: float = Field(0.0, alias="freqHz")


class MeterReport(Snapshot):
    """One meter report: "production", "total-consumption" or "net-consumption"."""
    created_at: int = Field(0, alias="createdAt")
    report_type: str = Field("", alias="reportType",
                             validation_alias=AliasChoices("reportType", "measurementType"))
    cumulative: MeterReportData = Field(default_factory=MeterReportData)
    lines: List[MeterReportData] = Field(default_factory=list)


class MeterChannel(Snapshot):
    eid: int = 0
    timestamp: int = 0
    act_energy_dlvd: float = Field(0.0, alias="actEnergyDlvd")
    act_energy_rcvd: float = Field(0.0, alias="actEnergyRcvd")
    apparent_energy: float = Field(0.0, alias="apparentEnergy")
    react_energy_lagg: float = Field(0.0, alias="reactEnergyLagg")
    react_energy_lead: float = Field(0.0, alias="reactEnergyLead")
    instantaneous_demand: float = Field(0.0, alias="instantaneousDemand")
    active_power: float = Field(0.0, alias="activePower")
    apparent_power: float = Field(0.0, alias="apparentPower")
    reactive_power: float = Field(0.0, alias="reactivePower")
    pwr_factor: float = Field(0.0, alias="pwrFactor")
    voltage: float = 0.0
    current: float = 0.0
    freq: float = 0.0


class MeterReading(MeterChannel):
    """Meter totals plus one channel per phase, in phase order."""
    channels: List[MeterChannel] = Field(default_factory=list)


class Inverter(Snapshot):
    serial_number: str = Field("", alias="serialNumber")
    last_report_date: int = Field(0, alias="lastReportDate")
    dev_type: int = Field(0, alias="devType")
    last_report_watts: float = Field(0.0, alias="lastReportWatts")
    max_report_watts: float = Field(0.0, alias="maxReportWatts")


_consumption_adapter = TypeAdapter(List[MeterReport])
_readings_adapter = TypeAdapter(List[MeterReading])
_inverters_adapter = TypeAdapter(List[Inverter])


def _decode(adapter_or_model, payload: Union[str, bytes], what: str):
    try:
        if isinstance(adapter_or_model, TypeAdapter):
            return adapter_or_model.validate_json(payload)
        return adapter_or_model.model_validate_json(payload)
    except ValidationError as exc:
        raise DecodeError(f"Unable to decode {what}: {exc.error_count()} error(s): {exc}") from exc


def decode_production_report(payload: Union[str, bytes]) -> MeterReport:
    return _decode(MeterReport, payload, "production report")


def decode_consumption_report(payload: Union[str, bytes]) -> List[MeterReport]:
    return _decode(_consumption_adapter, payload, "consumption report")


def decode_meter_readings(payload: Union[str, bytes]) -> List[MeterReading]:
    return _decode(_readings_adapter, payload, "meter readings")


def decode_inverters(payload: Union[str, bytes]) -> List[Inverter]:
    return _decode(_inverters_adapter, payload, "inverters")
