"""Prometheus exporter server for the Enphase IQ Gateway"""
