"""Port interfaces for the preflight test.

These abstract base classes define the boundary between the core
test logic and the external voice transport. The transport itself
(signaling, media, ICE) is supplied by the caller.

Port Interface Categories:

1. **Driven Ports** (core calls out to the transport)
   - VoiceTransportPort: Place the diagnostic call
   - CallSession: Handle on the placed call, released on every exit path

2. **Driving Ports** (the transport calls into core)
   - TransportListener: Lifecycle, sample, warning and error callbacks
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from .models import Codec, QualitySample


# ============================================================================
# DRIVEN PORTS (Core calls out to the transport)
# ============================================================================


class CallSession(ABC):
    """Handle on a diagnostic call placed by a transport.

    The preflight test owns the session for the duration of one run
    and disconnects it exactly once when the run ends.
    """

    @abstractmethod
    async def disconnect(self) -> None:
        """Hang up the call and release all transport resources.

        Raises:
            Exception: If teardown fails. The caller logs the failure;
                the test outcome is unaffected.
        """


class VoiceTransportPort(ABC):
    """Port for placing a diagnostic call through a voice transport.

    Implementations must:
    - Apply the codec preferences before placing the call
    - Report lifecycle events through the supplied listener, from any
      thread or task, for as long as the session is alive
    - Report asynchronous failures via `listener.on_error(code)` rather
      than raising from callbacks
    """

    @abstractmethod
    async def connect(
        self,
        token: str,
        connect_params: Mapping[str, Any],
        codec_preferences: Sequence[Codec],
        listener: "TransportListener",
    ) -> CallSession:
        """Place an outbound call.

        Args:
            token: Opaque access credential.
            connect_params: Pass-through call target parameters.
            codec_preferences: Codecs in order of preference.
            listener: Receives lifecycle events for this call.

        Returns:
            The session handle for the placed call.

        Raises:
            TransportError: If the call cannot be placed at all.
        """


# ============================================================================
# DRIVING PORTS (Transport calls into core)
# ============================================================================


class TransportListener(ABC):
    """Callbacks a transport invokes while a call is in progress.

    Callbacks must be cheap and non-blocking; implementations only
    record that the event happened.
    """

    @abstractmethod
    def on_connecting(self) -> None:
        """The call is being set up."""

    @abstractmethod
    def on_connected(self) -> None:
        """The call is established and media is flowing."""

    @abstractmethod
    def on_sample(self, sample: QualitySample) -> None:
        """A periodic quality sample is available."""

    @abstractmethod
    def on_warning(self, name: str, data: Mapping[str, Any] | None = None) -> None:
        """A call quality warning was raised."""

    @abstractmethod
    def on_error(self, code: int) -> None:
        """The transport reported an error identified by a numeric code."""
