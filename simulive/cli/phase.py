"""`simulive phase` and `simulive countdown` commands."""

from __future__ import annotations

from datetime import UTC, datetime

import click

from simulive._types import PhasePolicy, to_utc
from simulive.cli.main import cli
from simulive.session.countdown import format_duration, time_remaining
from simulive.session.phase import resolve_phase


def _parse_instant(
    ctx: click.Context, param: click.Parameter, value: str | None
) -> datetime | None:
    if value is None:
        return None
    try:
        return to_utc(value)
    except ValueError as exc:
        msg = f"not an ISO-8601 instant: {value!r}"
        raise click.BadParameter(msg, ctx=ctx, param=param) from exc


@cli.command()
@click.option(
    "--start",
    required=True,
    callback=_parse_instant,
    help="Scheduled start (ISO-8601, naive means UTC).",
)
@click.option("--end", callback=_parse_instant, help="Scheduled end (SCHEDULE policy only).")
@click.option("--now", callback=_parse_instant, help="Instant to evaluate at. Default: now.")
@click.option("--live/--not-live", default=False, show_default=True, help="Session live flag.")
@click.option(
    "--policy",
    type=click.Choice([p.value for p in PhasePolicy]),
    default=PhasePolicy.FLAG.value,
    show_default=True,
    help="Phase policy.",
)
def phase(
    start: datetime,
    end: datetime | None,
    now: datetime | None,
    live: bool,
    policy: str,
) -> None:
    """Resolves the phase of a session from its timing facts."""
    resolved = resolve_phase(
        live,
        start,
        now or datetime.now(UTC),
        policy=PhasePolicy(policy),
        scheduled_end=end,
    )
    click.echo(resolved.value)


@cli.command()
@click.option(
    "--start",
    required=True,
    callback=_parse_instant,
    help="Scheduled start (ISO-8601, naive means UTC).",
)
@click.option("--now", callback=_parse_instant, help="Instant to count from. Default: now.")
def countdown(start: datetime, now: datetime | None) -> None:
    """Shows the time remaining until a scheduled start."""
    current = now or datetime.now(UTC)
    remaining = time_remaining(start, current)
    if remaining.is_zero:
        click.echo("Starting now")
        return

    seconds = (start - current).total_seconds()
    if remaining.days:
        click.echo(f"{remaining.days}d {format_duration(seconds - remaining.days * 86_400)}")
    else:
        click.echo(format_duration(seconds))
