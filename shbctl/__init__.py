"""Simionic G1000 bezel BLE streaming tool."""

__version__ = "0.1.0"
