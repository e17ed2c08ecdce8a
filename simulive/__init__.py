"""Simulive: simulated-live playback synchronization engine."""

__version__ = "0.1.0"
