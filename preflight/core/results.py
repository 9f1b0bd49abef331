"""Assembly of the terminal preflight report."""

import logging
from collections.abc import Sequence
from datetime import datetime

from .models import CallQuality, PreflightWarning, TestError, TestResults
from .samples import SampleCollector

logger = logging.getLogger(__name__)


def call_quality_for(mos: float | None) -> CallQuality | None:
    """Map an average MOS to a call quality rating.

    Thresholds:
    - above 4.2: EXCELLENT
    - 4.1 to 4.2: GREAT
    - 3.7 to 4.1: GOOD
    - 3.1 to 3.7: FAIR
    - below 3.1: DEGRADED
    """
    if mos is None:
        return None
    if mos > 4.2:
        return CallQuality.EXCELLENT
    if mos >= 4.1:
        return CallQuality.GREAT
    if mos >= 3.7:
        return CallQuality.GOOD
    if mos >= 3.1:
        return CallQuality.FAIR
    return CallQuality.DEGRADED


class ResultAggregator:
    """Builds the immutable TestResults snapshot for a finished test."""

    def __init__(self, quality_field: str = "mos"):
        self.quality_field = quality_field

    def build(
        self,
        start_time: datetime,
        end_time: datetime,
        collector: SampleCollector,
        warnings: Sequence[PreflightWarning],
        errors: Sequence[TestError],
        connected_time: datetime | None = None,
    ) -> TestResults:
        """Snapshot everything accumulated during the test.

        Args:
            start_time: When the test started.
            end_time: When the terminal condition was observed.
            collector: Samples and running aggregates.
            warnings: Warnings in emission order.
            errors: Errors in emission order.
            connected_time: When the call connected, if it did.

        Returns:
            Frozen TestResults.
        """
        results = TestResults(
            start_time=start_time,
            end_time=end_time,
            samples=collector.samples,
            warnings=tuple(warnings),
            errors=tuple(errors),
            average_sample=collector.average_sample(),
            connected_time=connected_time,
            stats=collector.stats(),
            call_quality=call_quality_for(collector.average(self.quality_field)),
        )
        logger.debug(
            f"Built preflight results: {len(results.samples)} samples, "
            f"{len(results.warnings)} warnings, {len(results.errors)} errors, "
            f"{results.duration_ms:.0f}ms"
        )
        return results
