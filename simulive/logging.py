"""Structured logging shared by the clock, phase, playback and feed components.

Every component logs through ``get_logger("<area>.<part>")`` with a
snake_case event name and keyword context, e.g.

    logger.info("drift_corrected", session_id=..., stream_id=..., drift_s=0.41)

so a single session can be followed across components by filtering on
``session_id``. Output goes through stdlib logging to stderr, rendered
either for a terminal (``console``, default) or as one JSON object per line
(``json``) for log shippers. The ``simulive`` CLI reconfigures it from
``--log-format`` / ``--log-level``.
"""

from __future__ import annotations

import logging
import os

import structlog

_configured = False


def configure_logging(
    log_format: str | None = None,
    level: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Install the structlog pipeline on the root logger.

    Runs implicitly on the first ``get_logger()`` call with the
    ``SIMULIVE_LOG_*`` environment; later calls are no-ops unless ``force``
    is set, which the CLI uses to apply its options.

    Args:
        log_format: "json" or "console". Default via SIMULIVE_LOG_FORMAT env or "console".
        level: Log level (DEBUG, INFO, WARNING, ERROR). Default via SIMULIVE_LOG_LEVEL env
            or "INFO".
    """
    global _configured
    if _configured and not force:
        return

    resolved_format = log_format or os.environ.get("SIMULIVE_LOG_FORMAT", "console")
    resolved_level = level or os.environ.get("SIMULIVE_LOG_LEVEL", "INFO")

    shared_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    if resolved_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, resolved_level.upper(), logging.INFO))

    _configured = True


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Logger for one engine component, e.g. ``get_logger("playback.drift")``.

    The name is bound as the ``component`` field of every event.
    """
    configure_logging()
    return structlog.get_logger().bind(component=component)  # type: ignore[no-any-return]
