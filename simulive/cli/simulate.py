"""`simulive simulate` command: runs a live session against an in-memory store.

The in-memory store's clock is skewed relative to the local clock, the
round trip has simulated latency, one stream plays slightly slow and the
other stalls midway, so the run exercises clock sync, anchoring and drift
correction end to end.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import click

from simulive.cli.main import cli
from simulive.config.settings import PlaybackSettings, SimuliveSettings
from simulive.engine import SimuliveEngine
from simulive.logging import configure_logging, get_logger
from simulive.playback.simulated import SimulatedMediaElement
from simulive.store.interface import SERVER_TIMESTAMP
from simulive.store.memory import MemoryDocumentStore

logger = get_logger("cli.simulate")

_SESSION_ID = "simulated-session"


@cli.command()
@click.option("--duration", default=12.0, type=float, show_default=True, help="Run time (s).")
@click.option(
    "--skew-ms",
    default=1500,
    type=int,
    show_default=True,
    help="How far the server clock runs ahead of the local clock.",
)
@click.option(
    "--latency-ms",
    default=80,
    type=int,
    show_default=True,
    help="Simulated one-way store latency.",
)
@click.option(
    "--started-ago",
    default=100.0,
    type=float,
    show_default=True,
    help="Seconds since the scheduled start (late join).",
)
@click.option(
    "--correction-interval",
    default=2.0,
    type=float,
    show_default=True,
    help="Drift correction period (s).",
)
@click.option(
    "--slow-rate",
    default=0.95,
    type=float,
    show_default=True,
    help="Playback rate of the slow stream.",
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    default="console",
    show_default=True,
    help="Log format.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="INFO",
    show_default=True,
    help="Log level.",
)
def simulate(
    duration: float,
    skew_ms: int,
    latency_ms: int,
    started_ago: float,
    correction_interval: float,
    slow_rate: float,
    log_format: str,
    log_level: str,
) -> None:
    """Simulates a late join into a live session and prints the outcome."""
    configure_logging(log_format=log_format, level=log_level, force=True)
    settings = SimuliveSettings(
        playback=PlaybackSettings(correction_interval_s=correction_interval),
    )
    summary = asyncio.run(
        _simulate(
            settings,
            duration=duration,
            skew=timedelta(milliseconds=skew_ms),
            latency_s=latency_ms / 1000.0,
            started_ago=started_ago,
            slow_rate=slow_rate,
        ),
    )
    for line in summary:
        click.echo(line)


async def _simulate(
    settings: SimuliveSettings,
    *,
    duration: float,
    skew: timedelta,
    latency_s: float,
    started_ago: float,
    slow_rate: float,
) -> list[str]:
    store = MemoryDocumentStore(clock=lambda: datetime.now(UTC) + skew, latency_s=latency_s)
    await store.set_document(
        "sessions",
        _SESSION_ID,
        {
            "scheduled_start": store.server_now() - timedelta(seconds=started_ago),
            "is_live": True,
        },
    )
    for text in ("Welcome!", "Hello from the simulation"):
        await store.add_document(
            "messages",
            {
                "session_id": _SESSION_ID,
                "user_id": "host",
                "user_name": "Host",
                "content": text,
                "message_type": "admin",
                "created_at": SERVER_TIMESTAMP,
            },
        )

    main = SimulatedMediaElement("main.mp4")
    slow = SimulatedMediaElement("slides.mp4", rate=slow_rate)
    engine = SimuliveEngine(store, settings)
    session = await engine.open(_SESSION_ID, {"main": main, "slides": slow})
    try:
        await asyncio.sleep(duration / 2)
        logger.info("stream_stalled", stream_id="main", seconds=1.0)
        main.stall(1.0)
        await asyncio.sleep(duration / 2)

        drift = session.drift
        expected = drift.expected_offset_s() if drift is not None else 0.0
        offset = engine.clock.offset
        return [
            f"phase:            {session.phase.value if session.phase else 'unknown'}",
            f"clock offset:     {offset.offset_ms if offset else 'n/a'} ms "
            f"(true skew {int(skew.total_seconds() * 1000)} ms)",
            f"expected offset:  {expected:.2f} s",
            f"main position:    {main.current_time:.2f} s ({main.seek_count} seeks)",
            f"slides position:  {slow.current_time:.2f} s ({slow.seek_count} seeks)",
            f"feed records:     {len(session.feed.view)}",
        ]
    finally:
        await engine.close()
