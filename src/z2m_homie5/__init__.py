"""Zigbee2MQTT to Homie 5 bridge."""

__version__ = "0.1.0"
