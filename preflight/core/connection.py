"""Boundary between the voice transport and the preflight control loop.

The transport calls back into ConnectionAdapter from whatever task or
thread it likes. The adapter stamps each callback with the instant it
was observed and hands it to the control loop's queue, so the loop sees
transport events, timer fires and cancellation requests in one order.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from .events import (
    CallConnected,
    CallConnecting,
    ControlEvent,
    ErrorReported,
    SampleReceived,
    WarningRaised,
)
from .models import PreflightOptions, PreflightWarning, QualitySample
from .ports import CallSession, TransportListener, VoiceTransportPort

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionAdapter(TransportListener):
    """Translates transport callbacks into control events."""

    def __init__(
        self,
        transport: VoiceTransportPort,
        queue: "asyncio.Queue[ControlEvent]",
        loop: asyncio.AbstractEventLoop,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the adapter.

        Args:
            transport: Transport used to place the call.
            queue: Control loop queue that receives translated events.
            loop: Event loop that owns the queue.
            clock: Source of observation timestamps.
        """
        self.transport = transport
        self.queue = queue
        self.loop = loop
        self.clock = clock
        self.attached = True
        self.dropped_events = 0

    async def open(self, token: str, options: PreflightOptions) -> CallSession:
        """Place the diagnostic call with this adapter as its listener."""
        logger.debug(
            f"Placing preflight call with codecs "
            f"{[codec.value for codec in options.codec_preferences]}"
        )
        return await self.transport.connect(
            token,
            options.connect_params,
            options.codec_preferences,
            self,
        )

    def detach(self) -> None:
        """Stop forwarding transport callbacks.

        Called once the test reaches a terminal state; anything the
        transport reports afterwards is dropped.
        """
        self.attached = False

    def post(self, event_type: type[ControlEvent], **payload: Any) -> None:
        """Stamp an event with the current time and queue it.

        Safe to call from any thread. Every event is handed to the loop
        through call_soon_threadsafe, so events posted from the loop and
        from transport threads share the loop's FIFO ready queue and
        reach the control queue in the order they were observed.
        """
        if not self.attached:
            self.dropped_events += 1
            logger.debug(f"Dropping {event_type.__name__} received after test ended")
            return

        event = event_type(observed_at=self.clock(), **payload)
        try:
            self.loop.call_soon_threadsafe(self.queue.put_nowait, event)
        except RuntimeError:
            self.dropped_events += 1
            logger.debug(f"Dropping {event_type.__name__}: event loop is closed")

    # TransportListener

    def on_connecting(self) -> None:
        self.post(CallConnecting)

    def on_connected(self) -> None:
        self.post(CallConnected)

    def on_sample(self, sample: QualitySample) -> None:
        self.post(SampleReceived, sample=sample)

    def on_warning(self, name: str, data: Mapping[str, Any] | None = None) -> None:
        try:
            warning = PreflightWarning(name=name, data=dict(data or {}))
        except ValueError as e:
            logger.warning(f"Ignoring malformed transport warning: {e}")
            return
        self.post(WarningRaised, warning=warning)

    def on_error(self, code: int) -> None:
        self.post(ErrorReported, code=code)
