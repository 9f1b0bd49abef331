"""Preflight test state machine.

A PreflightTest places one short diagnostic call through a voice
transport and turns what the transport reports into a quality report
or a failure reason.

All state changes happen in a single control task that drains one
queue of timestamped events (transport callbacks, timer fires and
cancellation requests), so transitions are serialized even though
their triggers arrive in arbitrary order. The first terminal trigger
to be dequeued wins; everything after it is dropped.

State Transitions:
    - CONNECTING → CONNECTED (transport connected)
    - CONNECTED → COMPLETED (call duration elapsed)
    - CONNECTING/CONNECTED → FAILED (fatal error, cancel(), or
      connect timeout while still CONNECTING)
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeAlias

from .classifier import ErrorClassifier
from .connection import ConnectionAdapter, utc_now
from .events import (
    CallConnected,
    CallConnecting,
    CancelRequested,
    ConnectTimedOut,
    ControlEvent,
    DurationElapsed,
    ErrorReported,
    SampleReceived,
    SessionFailed,
    SessionOpened,
    WarningRaised,
)
from .models import (
    FatalError,
    PreflightEventType,
    PreflightOptions,
    PreflightWarning,
    QualitySample,
    TestError,
    TestResults,
    TestStatus,
    TransportError,
)
from .ports import CallSession, VoiceTransportPort
from .results import ResultAggregator
from .samples import SampleCollector

logger = logging.getLogger(__name__)

EventHandler: TypeAlias = Callable[[Any], None]


class PreflightTest:
    """Runs one preflight test and reports its outcome through events.

    Handlers registered with `on()` receive one argument:
    - CONNECTED: None
    - SAMPLE: QualitySample
    - WARNING: PreflightWarning
    - ERROR: TestError (non-fatal errors only)
    - COMPLETED: TestResults
    - FAILED: FatalError

    COMPLETED and FAILED are mutually exclusive and fire at most once.

    WARNING and ERROR carry the full PreflightWarning and TestError
    rather than a bare name or reason; use `warning.name` and
    `error.reason` where only those are needed.

    A connect attempt still in flight when the test ends is given until
    the connect deadline to return its session, which is then
    disconnected, so `wait()` may resolve after the terminal event.
    """

    def __init__(
        self,
        transport: VoiceTransportPort,
        token: str,
        options: PreflightOptions,
        classifier: ErrorClassifier | None = None,
        collector: SampleCollector | None = None,
        aggregator: ResultAggregator | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize a preflight test.

        Args:
            transport: Transport used to place the diagnostic call.
            token: Access credential passed through to the transport.
            options: Call target, duration and codec options.
            classifier: Error classifier (default code table if None).
            collector: Sample collector (averaging options.average_field if None).
            aggregator: Result aggregator (default if None).
            clock: Source of timestamps.
        """
        self.transport = transport
        self.token = token
        self.options = options
        self.classifier = classifier or ErrorClassifier()
        self.collector = collector or SampleCollector(average_field=options.average_field)
        self.aggregator = aggregator or ResultAggregator(
            quality_field=self.collector.average_field
        )
        self.clock = clock

        self._status = TestStatus.CONNECTING
        self._start_time: datetime | None = None
        self._end_time: datetime | None = None
        self._connected_time: datetime | None = None
        self._results: TestResults | None = None
        self._failure_reason: FatalError | None = None
        self._warnings: list[PreflightWarning] = []
        self._errors: list[TestError] = []
        self._handlers: dict[PreflightEventType, list[EventHandler]] = {
            event_type: [] for event_type in PreflightEventType
        }

        self._adapter: ConnectionAdapter | None = None
        self._queue: asyncio.Queue[ControlEvent] | None = None
        self._task: asyncio.Task[None] | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._session: CallSession | None = None
        self._connect_timer: asyncio.TimerHandle | None = None
        self._duration_timer: asyncio.TimerHandle | None = None
        self._terminal = False
        self._released = False
        self._connect_deadline = 0.0
        self._done = asyncio.Event()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def status(self) -> TestStatus:
        return self._status

    @property
    def start_time(self) -> datetime | None:
        return self._start_time

    @property
    def end_time(self) -> datetime | None:
        return self._end_time

    @property
    def connected_time(self) -> datetime | None:
        return self._connected_time

    @property
    def results(self) -> TestResults | None:
        """The terminal report, None until the test has finished."""
        return self._results

    @property
    def failure_reason(self) -> FatalError | None:
        return self._failure_reason

    @property
    def latest_sample(self) -> QualitySample | None:
        return self.collector.latest

    @property
    def samples(self) -> tuple[QualitySample, ...]:
        return self.collector.samples

    @property
    def warnings(self) -> tuple[PreflightWarning, ...]:
        return tuple(self._warnings)

    @property
    def errors(self) -> tuple[TestError, ...]:
        return tuple(self._errors)

    def on(self, event_type: PreflightEventType, handler: EventHandler) -> None:
        """Register a handler for an event type."""
        self._handlers[event_type].append(handler)

    def off(self, event_type: PreflightEventType, handler: EventHandler) -> None:
        """Remove a previously registered handler."""
        try:
            self._handlers[event_type].remove(handler)
        except ValueError:
            logger.debug(f"Handler not registered for {event_type.value}")

    def start(self) -> None:
        """Place the diagnostic call and start the control loop.

        Must be called from a running event loop.

        Raises:
            RuntimeError: If the test was already started or no event
                loop is running.
        """
        if self._task is not None:
            raise RuntimeError("Preflight test already started")

        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._adapter = ConnectionAdapter(
            self.transport, self._queue, loop, clock=self.clock
        )
        self._start_time = self.clock()
        logger.info(
            f"Starting preflight test: {self.options.call_seconds}s call, "
            f"codecs={[codec.value for codec in self.options.codec_preferences]}"
        )

        self._connect_deadline = loop.time() + self.options.connect_timeout_seconds
        self._connect_timer = loop.call_later(
            self.options.connect_timeout_seconds, self._adapter.post, ConnectTimedOut
        )
        self._connect_task = loop.create_task(self._open_session())
        self._task = loop.create_task(self._run())

    def cancel(self) -> None:
        """Request early termination of the test.

        Only effective while the test has not reached a terminal state;
        otherwise a no-op. The test then fails with CALL_CANCELLED and
        its end time is the instant of this call.

        Raises:
            RuntimeError: If the test was never started.
        """
        if self._adapter is None:
            raise RuntimeError("Cannot cancel a preflight test that was not started")
        if self._terminal:
            logger.debug(f"Ignoring cancel(), test already {self._status.value}")
            return
        logger.info("Preflight test cancellation requested")
        self._adapter.post(CancelRequested)

    async def wait(self) -> TestStatus:
        """Wait until the test has finished and the call is torn down.

        Returns:
            The terminal status.

        Raises:
            RuntimeError: If the test was never started.
        """
        if self._task is None:
            raise RuntimeError("Preflight test was not started")
        await self._done.wait()
        return self._status

    # ------------------------------------------------------------------
    # Control loop
    # ------------------------------------------------------------------

    async def _open_session(self) -> None:
        """Ask the transport for a call session and report the outcome."""
        assert self._adapter is not None
        try:
            session = await self._adapter.open(self.token, self.options)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._adapter.post(SessionFailed, error=e)
            return
        if self._released:
            # Teardown already ran; release the late session here.
            logger.info("Preflight call session arrived after teardown, disconnecting")
            await self._disconnect(session)
            return
        self._session = session
        self._adapter.post(SessionOpened, session=session)

    async def _run(self) -> None:
        """Drain the control queue until a terminal state is reached."""
        assert self._queue is not None
        try:
            while not self._terminal:
                event = await self._queue.get()
                try:
                    self._handle(event)
                except Exception as e:
                    logger.error(
                        f"Error handling {type(event).__name__}: {e}", exc_info=True
                    )
        except asyncio.CancelledError:
            self._fail(FatalError.CALL_CANCELLED, self.clock())
            raise
        finally:
            try:
                await self._teardown()
            finally:
                self._discard_pending()
                self._emit_terminal()
                self._done.set()

    def _handle(self, event: ControlEvent) -> None:
        """Apply one control event. Runs only on the control task."""
        if isinstance(event, CallConnecting):
            logger.debug("Preflight call connecting")

        elif isinstance(event, CallConnected):
            self._on_connected(event)

        elif isinstance(event, SampleReceived):
            self.collector.add(event.sample)
            self._emit(PreflightEventType.SAMPLE, event.sample)

        elif isinstance(event, WarningRaised):
            logger.info(f"Preflight warning: {event.warning.name}")
            self._warnings.append(event.warning)
            self._emit(PreflightEventType.WARNING, event.warning)

        elif isinstance(event, ErrorReported):
            self._on_error(self.classifier.classify(event.code), event.observed_at)

        elif isinstance(event, SessionOpened):
            logger.debug("Preflight call session opened")

        elif isinstance(event, SessionFailed):
            self._on_session_failed(event)

        elif isinstance(event, DurationElapsed):
            if self._status is TestStatus.CONNECTED:
                self._finish(TestStatus.COMPLETED, None, event.observed_at)

        elif isinstance(event, ConnectTimedOut):
            if self._status is TestStatus.CONNECTING:
                logger.warning(
                    f"Preflight call did not connect within "
                    f"{self.options.connect_timeout_seconds}s"
                )
                self._fail(FatalError.CONNECTION_TIMEOUT, event.observed_at)

        elif isinstance(event, CancelRequested):
            self._fail(FatalError.CALL_CANCELLED, event.observed_at)

        else:
            logger.warning(f"Unhandled control event: {type(event).__name__}")

    def _on_connected(self, event: CallConnected) -> None:
        if self._status is not TestStatus.CONNECTING:
            logger.debug(f"Ignoring connected event in {self._status.value} state")
            return

        assert self._adapter is not None
        self._status = TestStatus.CONNECTED
        self._connected_time = event.observed_at
        if self._connect_timer is not None:
            self._connect_timer.cancel()
            self._connect_timer = None

        loop = asyncio.get_running_loop()
        self._duration_timer = loop.call_later(
            self.options.call_seconds, self._adapter.post, DurationElapsed
        )
        if self._start_time is not None:
            latency_ms = (event.observed_at - self._start_time).total_seconds() * 1000
            logger.info(f"Preflight call connected after {latency_ms:.0f}ms")
        self._emit(PreflightEventType.CONNECTED, None)

    def _on_error(self, error: TestError, observed_at: datetime) -> None:
        if error.is_fatal:
            logger.error(
                f"Fatal preflight error: {error.reason.value} (code {error.code})"
            )
            self._errors.append(error)
            self._finish(TestStatus.FAILED, error, observed_at)
            return

        logger.warning(
            f"Non-fatal preflight error: {error.reason.value} (code {error.code})"
        )
        self._errors.append(error)
        self._emit(PreflightEventType.ERROR, error)

    def _on_session_failed(self, event: SessionFailed) -> None:
        if isinstance(event.error, TransportError):
            error = self.classifier.classify(event.error.code)
            self._on_error(error, event.observed_at)
            if error.is_fatal:
                return
            # No session exists, so even a non-fatal code ends the test.
        else:
            logger.error(
                f"Transport failed to place preflight call: {event.error}",
                exc_info=event.error,
            )
        self._fail(FatalError.SIGNALING_CONNECTION_FAILED, event.observed_at)

    def _fail(self, reason: FatalError, observed_at: datetime) -> None:
        error = self.classifier.synthetic(reason)
        if not self._terminal:
            self._errors.append(error)
        self._finish(TestStatus.FAILED, error, observed_at)

    def _finish(
        self,
        status: TestStatus,
        error: TestError | None,
        observed_at: datetime,
    ) -> bool:
        """Latch the terminal state.

        Returns:
            True if this call reached the terminal state, False if the
            test had already finished.
        """
        if self._terminal:
            logger.debug(f"Ignoring {status.value} transition, test already finished")
            return False
        self._terminal = True

        assert self._start_time is not None
        self._status = status
        self._end_time = max(observed_at, self._start_time)
        if error is not None and isinstance(error.reason, FatalError):
            self._failure_reason = error.reason

        for timer in (self._connect_timer, self._duration_timer):
            if timer is not None:
                timer.cancel()
        self._connect_timer = None
        self._duration_timer = None
        if self._adapter is not None:
            self._adapter.detach()

        self._results = self.aggregator.build(
            start_time=self._start_time,
            end_time=self._end_time,
            collector=self.collector,
            warnings=self._warnings,
            errors=self._errors,
            connected_time=self._connected_time,
        )
        if self._failure_reason is not None:
            logger.info(
                f"Preflight test {status.value} after {self._results.duration_ms:.0f}ms: "
                f"{self._failure_reason.value}"
            )
        else:
            logger.info(
                f"Preflight test {status.value} after {self._results.duration_ms:.0f}ms"
            )
        return True

    async def _teardown(self) -> None:
        """Release the call session on every exit path.

        A connect attempt still in flight is given until the connect
        deadline to return its session so it can be disconnected, then
        cancelled.
        """
        try:
            await self._settle_connect()
            session, self._session = self._session, None
            if session is not None:
                await self._disconnect(session)
        finally:
            self._released = True

    async def _settle_connect(self) -> None:
        task = self._connect_task
        if task is None or task.done():
            return

        loop = asyncio.get_running_loop()
        remaining = max(self._connect_deadline - loop.time(), 0.0)
        await asyncio.wait({task}, timeout=remaining)
        if task.done():
            return

        logger.warning("Abandoning preflight connect attempt still pending at teardown")
        current = asyncio.current_task()
        cancelling = current.cancelling() if current is not None else 0
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            if current is not None and current.cancelling() > cancelling:
                raise
            logger.debug("Pending preflight connect attempt cancelled")

    async def _disconnect(self, session: CallSession) -> None:
        try:
            await session.disconnect()
            logger.debug("Preflight call session disconnected")
        except Exception as e:
            logger.error(f"Failed to disconnect preflight call: {e}", exc_info=True)

    def _discard_pending(self) -> None:
        if self._queue is None:
            return
        discarded = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            discarded += 1
        if discarded:
            logger.debug(f"Discarded {discarded} event(s) received after test ended")

    def _emit_terminal(self) -> None:
        if self._status is TestStatus.COMPLETED:
            self._emit(PreflightEventType.COMPLETED, self._results)
        elif self._status is TestStatus.FAILED:
            self._emit(PreflightEventType.FAILED, self._failure_reason)

    def _emit(self, event_type: PreflightEventType, payload: Any) -> None:
        for handler in list(self._handlers[event_type]):
            try:
                handler(payload)
            except Exception as e:
                logger.error(
                    f"Preflight {event_type.value} handler raised: {e}", exc_info=True
                )


def start_preflight(
    transport: VoiceTransportPort,
    token: str,
    options: PreflightOptions,
    **kwargs: Any,
) -> PreflightTest:
    """Create and start a preflight test.

    Must be called from a running event loop. The returned test is in
    the CONNECTING state; register handlers on it or await `wait()`.

    Args:
        transport: Transport used to place the diagnostic call.
        token: Access credential passed through to the transport.
        options: Call target, duration and codec options.
        **kwargs: Forwarded to PreflightTest.

    Returns:
        The started PreflightTest.
    """
    test = PreflightTest(transport, token, options, **kwargs)
    test.start()
    return test
