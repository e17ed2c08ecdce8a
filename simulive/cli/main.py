"""Main CLI group for Simulive."""

from __future__ import annotations

import click

import simulive


@click.group()
@click.version_option(version=simulive.__version__, prog_name="simulive")
def cli() -> None:
    """Simulive - synchronized simulated-live playback engine."""
