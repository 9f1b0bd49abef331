"""Core domain logic for the preflight call-quality test.

This package contains zero external dependencies and represents
the pure test logic. The voice transport is supplied by the caller
through the ports defined in ports.py.
"""

from .classifier import ErrorClassifier
from .models import (
    CallQuality,
    Codec,
    ErrorClassification,
    FatalError,
    MetricStats,
    NonFatalError,
    PreflightEventType,
    PreflightOptions,
    PreflightWarning,
    QualitySample,
    TestError,
    TestResults,
    TestStatus,
    TransportError,
)
from .orchestrator import PreflightTest, start_preflight
from .ports import CallSession, TransportListener, VoiceTransportPort

__all__ = [
    "CallQuality",
    "CallSession",
    "Codec",
    "ErrorClassification",
    "ErrorClassifier",
    "FatalError",
    "MetricStats",
    "NonFatalError",
    "PreflightEventType",
    "PreflightOptions",
    "PreflightTest",
    "PreflightWarning",
    "QualitySample",
    "TestError",
    "TestResults",
    "TestStatus",
    "TransportError",
    "TransportListener",
    "VoiceTransportPort",
    "start_preflight",
]
