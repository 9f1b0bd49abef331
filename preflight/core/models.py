"""Domain models for the preflight call-quality test.

All models in this module use only Python standard library types,
ensuring zero external dependencies in the core domain.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, TypeAlias


class TestStatus(Enum):
    """Lifecycle states of a preflight test.

    State transitions follow a directed workflow:
    - CONNECTING: Initial state, the diagnostic call is being placed
    - CONNECTED: The call is established and samples are flowing
    - COMPLETED: The call ran for the configured duration (terminal)
    - FAILED: A fatal error, cancellation or timeout ended the test (terminal)
    """

    __test__ = False

    CONNECTING = "connecting"
    CONNECTED = "connected"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {TestStatus.COMPLETED, TestStatus.FAILED}


class Codec(Enum):
    """Audio codecs the transport can be asked to prefer."""

    PCMU = "pcmu"
    OPUS = "opus"


class ErrorClassification(Enum):
    """Whether an error ends the test."""

    FATAL = "fatal"
    NON_FATAL = "non-fatal"


class FatalError(Enum):
    """Symbolic reasons for a failed test."""

    SIGNALING_CONNECTION_FAILED = "signaling-connection-failed"
    ICE_CONNECTION_FAILED = "ice-connection-failed"
    INVALID_TOKEN = "invalid-token"
    MEDIA_PERMISSIONS_FAILED = "media-permissions-failed"
    NO_DEVICES_FOUND = "no-devices-found"
    CALL_CANCELLED = "call-cancelled"  # raised by cancel(), never by the transport
    CONNECTION_TIMEOUT = "connection-timeout"  # raised by the safety timer


class NonFatalError(Enum):
    """Symbolic reasons for errors that are reported but do not end the test."""

    INSIGHTS_CONNECTION_FAILED = "insights-connection-failed"
    UNRECOGNIZED_ERROR = "unrecognized-error"


ErrorReason: TypeAlias = FatalError | NonFatalError


class CallQuality(Enum):
    """Overall call quality derived from the average MOS."""

    EXCELLENT = "excellent"
    GREAT = "great"
    GOOD = "good"
    FAIR = "fair"
    DEGRADED = "degraded"


class PreflightEventType(Enum):
    """Events a preflight test emits to its caller."""

    CONNECTED = "connected"
    SAMPLE = "sample"
    WARNING = "warning"
    ERROR = "error"
    COMPLETED = "completed"
    FAILED = "failed"


class TransportError(Exception):
    """Raised by a transport when a call cannot be placed.

    Carries the transport's numeric error code so it can be classified
    like any error reported through the listener.
    """

    def __init__(self, code: int, message: str | None = None):
        self.code = code
        super().__init__(message or f"Transport error {code}")


@dataclass(frozen=True)
class QualitySample:
    """A time-stamped snapshot of network and audio statistics.

    Metric fields are optional since transports report them lazily
    (MOS, for instance, is usually unavailable in the first sample).
    Transport-specific metrics go in `extra`.
    """

    timestamp: datetime
    mos: float | None = None
    jitter: float | None = None
    rtt: float | None = None
    packets_lost: float | None = None
    packets_received: float | None = None
    audio_input_level: float | None = None
    audio_output_level: float | None = None
    extra: dict[str, Any] | MappingProxyType[str, Any] = field(
        default_factory=dict
    )  # converted to proxy in __post_init__

    def __post_init__(self) -> None:
        """Convert extra dict to read-only proxy."""
        if isinstance(self.extra, dict):
            object.__setattr__(self, "extra", MappingProxyType(self.extra))

    def metric(self, name: str) -> float | None:
        """Look up a numeric metric by name, in known fields first then `extra`.

        Returns None when the metric is missing or not numeric.
        """
        if name in METRIC_FIELDS:
            value = getattr(self, name)
        else:
            value = self.extra.get(name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)


METRIC_FIELDS: tuple[str, ...] = (
    "mos",
    "jitter",
    "rtt",
    "packets_lost",
    "packets_received",
    "audio_input_level",
    "audio_output_level",
)


@dataclass(frozen=True)
class PreflightWarning:
    """A non-fatal, informational condition reported by the call."""

    name: str
    data: dict[str, Any] | MappingProxyType[str, Any] = field(
        default_factory=dict
    )  # converted to proxy in __post_init__

    def __post_init__(self) -> None:
        """Validate the name and convert data to a read-only proxy."""
        if not self.name or not self.name.strip():
            raise ValueError("warning name must be a non-empty string")
        if isinstance(self.data, dict):
            object.__setattr__(self, "data", MappingProxyType(self.data))


@dataclass(frozen=True)
class TestError:
    """A classified transport error.

    `reason` is the stable value callers branch on. `code` keeps the raw
    transport code for diagnostics and is None for synthetic errors.
    """

    __test__ = False

    classification: ErrorClassification
    reason: ErrorReason
    code: int | None = None

    @property
    def is_fatal(self) -> bool:
        return self.classification is ErrorClassification.FATAL


@dataclass(frozen=True)
class MetricStats:
    """Aggregate statistics for one metric over the test."""

    minimum: float
    maximum: float
    average: float
    count: int


@dataclass(frozen=True)
class TestResults:
    """Immutable report produced when a test reaches a terminal state."""

    __test__ = False

    start_time: datetime
    end_time: datetime
    samples: tuple[QualitySample, ...]  # arrival order
    warnings: tuple[PreflightWarning, ...]  # emission order
    errors: tuple[TestError, ...]  # emission order
    average_sample: QualitySample | None
    connected_time: datetime | None = None
    stats: Mapping[str, MetricStats] = field(default_factory=dict)
    call_quality: CallQuality | None = None

    def __post_init__(self) -> None:
        """Validate report invariants on creation."""
        if self.end_time < self.start_time:
            raise ValueError(
                f"end_time ({self.end_time}) cannot be before "
                f"start_time ({self.start_time})"
            )
        if (self.average_sample is None) != (not self.samples):
            raise ValueError("average_sample must be set if and only if samples exist")
        object.__setattr__(self, "stats", MappingProxyType(dict(self.stats)))

    @property
    def duration_ms(self) -> float:
        """Elapsed test time in milliseconds."""
        return (self.end_time - self.start_time).total_seconds() * 1000

    @property
    def connect_latency_ms(self) -> float | None:
        """Time from start until the call connected, if it ever did."""
        if self.connected_time is None:
            return None
        return (self.connected_time - self.start_time).total_seconds() * 1000


DEFAULT_CALL_SECONDS = 15
DEFAULT_CONNECT_TIMEOUT_SECONDS = 30.0
DEFAULT_CODEC_PREFERENCES: tuple[Codec, ...] = (Codec.PCMU, Codec.OPUS)
DEFAULT_AVERAGE_FIELD = "mos"


@dataclass(frozen=True)
class PreflightOptions:
    """Options for a single preflight test run."""

    connect_params: dict[str, Any] | MappingProxyType[str, Any]
    call_seconds: int = DEFAULT_CALL_SECONDS
    codec_preferences: tuple[Codec, ...] = DEFAULT_CODEC_PREFERENCES
    connect_timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT_SECONDS
    average_field: str = DEFAULT_AVERAGE_FIELD

    def __post_init__(self) -> None:
        """Validate option invariants on creation."""
        if self.connect_params is None:
            raise ValueError("connect_params is required")
        if isinstance(self.call_seconds, bool) or not isinstance(self.call_seconds, int):
            raise ValueError(
                f"call_seconds must be an integer, got {self.call_seconds!r}"
            )
        if self.call_seconds <= 0:
            raise ValueError(f"call_seconds must be positive, got {self.call_seconds}")
        if self.connect_timeout_seconds <= 0:
            raise ValueError(
                f"connect_timeout_seconds must be positive, got {self.connect_timeout_seconds}"
            )
        codecs = tuple(self.codec_preferences)
        if not codecs:
            raise ValueError("codec_preferences must not be empty")
        for codec in codecs:
            if not isinstance(codec, Codec):
                raise ValueError(f"Unsupported codec: {codec!r}")
        if not self.average_field or not self.average_field.strip():
            raise ValueError("average_field must be a non-empty string")
        object.__setattr__(self, "codec_preferences", codecs)
        if isinstance(self.connect_params, dict):
            object.__setattr__(
                self, "connect_params", MappingProxyType(self.connect_params)
            )
