"""Simulive CLI.

Registers every command on the main group.
"""

from simulive.cli.main import cli
from simulive.cli.phase import countdown, phase
from simulive.cli.simulate import simulate

__all__ = [
    "cli",
    "countdown",
    "phase",
    "simulate",
]
