"""Tests for ResultAggregator and call quality rating."""

from datetime import UTC, datetime, timedelta

import pytest

from preflight.core.classifier import ErrorClassifier
from preflight.core.models import CallQuality, FatalError, PreflightWarning, QualitySample
from preflight.core.results import ResultAggregator, call_quality_for
from preflight.core.samples import SampleCollector

START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("mos", "quality"),
    [
        (4.4, CallQuality.EXCELLENT),
        (4.2, CallQuality.GREAT),
        (4.1, CallQuality.GREAT),
        (3.9, CallQuality.GOOD),
        (3.7, CallQuality.GOOD),
        (3.3, CallQuality.FAIR),
        (3.1, CallQuality.FAIR),
        (2.5, CallQuality.DEGRADED),
        (None, None),
    ],
)
def test_call_quality_thresholds(mos: float | None, quality: CallQuality | None) -> None:
    assert call_quality_for(mos) is quality


def test_build_snapshots_accumulated_data() -> None:
    collector = SampleCollector()
    samples = [
        QualitySample(timestamp=START + timedelta(seconds=i), mos=mos, jitter=1.0)
        for i, mos in enumerate([4.4, 4.2, 4.0])
    ]
    for sample in samples:
        collector.add(sample)
    warnings = [PreflightWarning(name="high-jitter"), PreflightWarning(name="high-rtt")]
    errors = [ErrorClassifier().classify(31400), ErrorClassifier().classify(53000)]

    results = ResultAggregator().build(
        start_time=START,
        end_time=START + timedelta(seconds=15),
        collector=collector,
        warnings=warnings,
        errors=errors,
        connected_time=START + timedelta(milliseconds=300),
    )

    assert results.samples == tuple(samples)
    assert results.warnings == tuple(warnings)
    assert results.errors == tuple(errors)
    assert results.average_sample is not None
    assert results.average_sample.mos == pytest.approx(4.2)
    assert results.call_quality is CallQuality.GREAT
    assert results.stats["mos"].maximum == 4.4
    assert results.connect_latency_ms == pytest.approx(300)


def test_build_is_a_snapshot() -> None:
    """Data accumulated after the build does not leak into the results."""
    collector = SampleCollector()
    warnings: list[PreflightWarning] = []
    results = ResultAggregator().build(
        start_time=START,
        end_time=START,
        collector=collector,
        warnings=warnings,
        errors=[],
    )

    collector.add(QualitySample(timestamp=START, mos=4.0))
    warnings.append(PreflightWarning(name="late"))

    assert results.samples == ()
    assert results.warnings == ()
    assert results.average_sample is None
    assert results.call_quality is None


def test_build_without_samples() -> None:
    error = ErrorClassifier.synthetic(FatalError.CALL_CANCELLED)
    results = ResultAggregator().build(
        start_time=START,
        end_time=START + timedelta(seconds=1),
        collector=SampleCollector(),
        warnings=[],
        errors=[error],
    )

    assert results.average_sample is None
    assert results.stats == {}
    assert results.errors == (error,)
    assert results.connected_time is None
