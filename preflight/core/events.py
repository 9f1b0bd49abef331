"""Control events consumed by the preflight test's control loop.

Everything that can change a test's state (transport callbacks, timer
fires, cancellation requests) is represented here and delivered through
a single queue, stamped with the instant it was observed.
"""

from dataclasses import dataclass
from datetime import datetime

from .models import PreflightWarning, QualitySample
from .ports import CallSession


@dataclass(frozen=True, kw_only=True)
class ControlEvent:
    """Base class for all control events."""

    observed_at: datetime


@dataclass(frozen=True, kw_only=True)
class CallConnecting(ControlEvent):
    """The transport started setting up the call."""


@dataclass(frozen=True, kw_only=True)
class CallConnected(ControlEvent):
    """The transport established the call."""


@dataclass(frozen=True, kw_only=True)
class SampleReceived(ControlEvent):
    sample: QualitySample


@dataclass(frozen=True, kw_only=True)
class WarningRaised(ControlEvent):
    warning: PreflightWarning


@dataclass(frozen=True, kw_only=True)
class ErrorReported(ControlEvent):
    code: int


@dataclass(frozen=True, kw_only=True)
class SessionOpened(ControlEvent):
    session: CallSession


@dataclass(frozen=True, kw_only=True)
class SessionFailed(ControlEvent):
    """`VoiceTransportPort.connect` raised instead of returning a session."""

    error: Exception


@dataclass(frozen=True, kw_only=True)
class DurationElapsed(ControlEvent):
    """The call ran for the configured number of seconds."""


@dataclass(frozen=True, kw_only=True)
class ConnectTimedOut(ControlEvent):
    """The call never connected within the safety timeout."""


@dataclass(frozen=True, kw_only=True)
class CancelRequested(ControlEvent):
    """The caller asked to end the test early."""
