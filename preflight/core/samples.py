"""Quality sample accumulation.

Samples arrive at sub-second cadence for the whole test, so every
aggregate is maintained incrementally instead of being recomputed
from the full sample list.
"""

from collections.abc import Sequence
from dataclasses import replace

from .models import DEFAULT_AVERAGE_FIELD, METRIC_FIELDS, MetricStats, QualitySample


class RunningStats:
    """Incremental min/max/mean of a single metric."""

    def __init__(self) -> None:
        self.count = 0
        self.mean = 0.0
        self.minimum: float | None = None
        self.maximum: float | None = None

    def add(self, value: float) -> None:
        self.count += 1
        self.mean += (value - self.mean) / self.count
        self.minimum = value if self.minimum is None else min(self.minimum, value)
        self.maximum = value if self.maximum is None else max(self.maximum, value)

    def snapshot(self) -> MetricStats | None:
        if self.count == 0 or self.minimum is None or self.maximum is None:
            return None
        return MetricStats(
            minimum=self.minimum,
            maximum=self.maximum,
            average=self.mean,
            count=self.count,
        )


class SampleCollector:
    """Accumulates quality samples and their running aggregates.

    Every known metric field is tracked, plus the designated average
    field when it names a transport-specific metric in `extra`.
    """

    def __init__(
        self,
        average_field: str = DEFAULT_AVERAGE_FIELD,
        fields: Sequence[str] = METRIC_FIELDS,
    ):
        self.average_field = average_field
        tracked = list(fields)
        if average_field not in tracked:
            tracked.append(average_field)
        self._stats: dict[str, RunningStats] = {name: RunningStats() for name in tracked}
        self._samples: list[QualitySample] = []

    def add(self, sample: QualitySample) -> None:
        """Record a sample and fold its metrics into the running aggregates."""
        self._samples.append(sample)
        for name, stats in self._stats.items():
            value = sample.metric(name)
            if value is not None:
                stats.add(value)

    @property
    def samples(self) -> tuple[QualitySample, ...]:
        return tuple(self._samples)

    @property
    def count(self) -> int:
        return len(self._samples)

    @property
    def latest(self) -> QualitySample | None:
        return self._samples[-1] if self._samples else None

    def average(self, name: str | None = None) -> float | None:
        """Running mean of a tracked metric, None if no value was seen yet."""
        stats = self._stats.get(name or self.average_field)
        if stats is None or stats.count == 0:
            return None
        return stats.mean

    def average_sample(self) -> QualitySample | None:
        """Build a sample whose metrics are the running means.

        The timestamp is that of the latest sample. Returns None when no
        samples were collected.
        """
        latest = self.latest
        if latest is None:
            return None

        known: dict[str, float | None] = dict.fromkeys(METRIC_FIELDS)
        extra: dict[str, float] = {}
        for name, stats in self._stats.items():
            mean = stats.mean if stats.count else None
            if name in METRIC_FIELDS:
                known[name] = mean
            elif mean is not None:
                extra[name] = mean
        return replace(latest, extra=extra, **known)

    def stats(self) -> dict[str, MetricStats]:
        """Aggregate statistics for every metric that received a value."""
        result: dict[str, MetricStats] = {}
        for name, stats in self._stats.items():
            snapshot = stats.snapshot()
            if snapshot is not None:
                result[name] = snapshot
        return result
