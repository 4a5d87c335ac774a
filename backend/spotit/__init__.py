"""Spot engine: location-anchored messages with geofenced visibility."""

__version__ = "0.1.0"
