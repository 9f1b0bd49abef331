"""Composition root for the preflight test.

This module is the one place that combines settings, logging and the
core test with a caller-supplied transport. The surrounding
application provides the transport and decides what to do with the
report.
"""

import json
import logging
import sys
from collections.abc import Mapping
from typing import Any

from preflight.config import Settings, load_settings
from preflight.core.models import TestStatus
from preflight.core.orchestrator import PreflightTest
from preflight.core.ports import VoiceTransportPort


class JsonLineFormatter(logging.Formatter):
    """Formats each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(log_level: str, log_format: str) -> None:
    """Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json, text).
    """
    level = getattr(logging, log_level, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    logging.basicConfig(level=level, handlers=[handler])


def summarize(test: PreflightTest) -> dict[str, Any]:
    """Render a finished test as a plain dictionary for logging or JSON output."""
    summary: dict[str, Any] = {
        "status": test.status.value,
        "failure_reason": test.failure_reason.value if test.failure_reason else None,
    }
    results = test.results
    if results is None:
        return summary

    summary.update(
        {
            "start_time": results.start_time.isoformat(),
            "end_time": results.end_time.isoformat(),
            "duration_ms": round(results.duration_ms),
            "connect_latency_ms": (
                round(results.connect_latency_ms)
                if results.connect_latency_ms is not None
                else None
            ),
            "sample_count": len(results.samples),
            "call_quality": results.call_quality.value if results.call_quality else None,
            "stats": {
                name: {
                    "min": stats.minimum,
                    "max": stats.maximum,
                    "average": stats.average,
                }
                for name, stats in results.stats.items()
            },
            "warnings": [warning.name for warning in results.warnings],
            "errors": [error.reason.value for error in results.errors],
        }
    )
    return summary


async def run_preflight(
    transport: VoiceTransportPort,
    token: str,
    connect_params: Mapping[str, Any],
    settings: Settings | None = None,
    **overrides: Any,
) -> PreflightTest:
    """Run a preflight test to completion.

    Steps:
    1. Load settings (unless provided)
    2. Build options for this run
    3. Start the test and wait for its terminal state

    Args:
        transport: Transport used to place the diagnostic call.
        token: Access credential for the transport.
        connect_params: Call target parameters.
        settings: Preloaded settings; loaded from environment if None.
        **overrides: PreflightOptions fields overriding the settings.

    Returns:
        The finished PreflightTest; inspect `status` and `results`.
    """
    settings = settings or load_settings()
    logger = logging.getLogger(__name__)

    options = settings.to_options(connect_params, **overrides)
    test = PreflightTest(transport, token, options)
    test.start()

    status = await test.wait()
    if status is TestStatus.COMPLETED:
        logger.info(f"Preflight completed: {summarize(test)}")
    else:
        logger.warning(f"Preflight failed: {summarize(test)}")
    return test
