"""
Client-side request lifecycle: Idle -> InFlight -> Succeeded | Failed -> Idle.

One analysis at a time. While in flight a status message is reselected every
few seconds from a fixed set; it is cosmetic and says nothing about real progress.
The ticker is started on entry to InFlight and stopped on every exit path.
There is no cancel: an in-flight analysis can only be waited out.
"""

import asyncio
import logging
import os
import random
from contextlib import suppress
from enum import Enum
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence

from .errors import DeepDiveError
from .pipeline import run_deep_dive
from .schemas import AnalysisRequest, DeepDiveResult, LifecycleSnapshot

logger = logging.getLogger(__name__)

STATUS_ROTATION_SECONDS = float(os.getenv("STATUS_ROTATION_SECONDS", "3.0"))

STATUS_MESSAGES = (
    "Interrogating Privacy Policies...",
    "Tracing Data Flow Packets...",
    "Cross-referencing License Tiers...",
    "Hunting for Zero-Day Privacy Risks...",
    "Simulating Data Exfiltration Scenarios...",
    "Scouring Sub-processor Agreements...",
)

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred during the deep dive."


class LifecycleState(str, Enum):
    IDLE = "Idle"
    IN_FLIGHT = "InFlight"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class StatusTicker:
    """Repeating task that picks a new status message every `interval` seconds."""

    def __init__(
        self,
        messages: Sequence[str],
        interval: float,
        on_tick: Callable[[str], None],
        rng: Optional[random.Random] = None,
    ):
        if not messages:
            raise ValueError("StatusTicker needs at least one message")
        self.messages = tuple(messages)
        self.interval = interval
        self._on_tick = on_tick
        self._rng = rng or random.Random()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self._on_tick(self._rng.choice(self.messages))

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


Runner = Callable[[Any], Awaitable[DeepDiveResult]]
Listener = Callable[[LifecycleSnapshot], None]


class RequestLifecycle:
    """
    Single-flight state machine around run_deep_dive.

    Usage:
        lifecycle = RequestLifecycle()
        lifecycle.add_listener(render)
        lifecycle.submit(request)      # False if an analysis is already in flight
        snapshot = await lifecycle.wait()
        lifecycle.reset()              # "start new analysis" / "retry"
    """

    def __init__(
        self,
        runner: Runner = run_deep_dive,
        *,
        messages: Sequence[str] = STATUS_MESSAGES,
        interval: float = STATUS_ROTATION_SECONDS,
        rng: Optional[random.Random] = None,
    ):
        if not messages:
            raise ValueError("RequestLifecycle needs at least one status message")
        self._runner = runner
        self._messages = tuple(messages)
        self._interval = interval
        self._rng = rng
        self._listeners: List[Listener] = []

        self._state = LifecycleState.IDLE
        self._request: Any = None
        self._result: Optional[DeepDiveResult] = None
        self._error: Optional[str] = None
        self._status_message: Optional[str] = None
        self._ticker: Optional[StatusTicker] = None
        self._flight: Optional[asyncio.Task] = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def request(self) -> Any:
        return self._request

    @property
    def result(self) -> Optional[DeepDiveResult]:
        return self._result

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def status_message(self) -> Optional[str]:
        return self._status_message

    @property
    def ticker_running(self) -> bool:
        return self._ticker is not None and self._ticker.running

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with suppress(ValueError):
            self._listeners.remove(listener)

    def snapshot(self) -> LifecycleSnapshot:
        request = self._request
        if isinstance(request, Mapping):
            request = dict(request)
        elif not isinstance(request, AnalysisRequest):
            request = None
        return LifecycleSnapshot(
            state=self._state.value,
            status_message=self._status_message,
            request=request,
            result=self._result,
            error=self._error,
        )

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.warning("lifecycle.listener_failed listener=%r", listener, exc_info=True)

    def _on_tick(self, message: str) -> None:
        if self._state is not LifecycleState.IN_FLIGHT:
            return
        self._status_message = message
        self._notify()

    def submit(self, request: Any) -> bool:
        """Start an analysis. Must be called from a running event loop."""
        if self._state is LifecycleState.IN_FLIGHT:
            logger.warning("lifecycle.submit_rejected state=%s", self._state.value)
            return False

        loop = asyncio.get_running_loop()
        self._request = request
        self._result = None
        self._error = None
        self._status_message = self._messages[0]
        self._state = LifecycleState.IN_FLIGHT

        self._ticker = StatusTicker(self._messages, self._interval, self._on_tick, rng=self._rng)
        self._ticker.start()
        self._flight = loop.create_task(self._fly(request))
        logger.info("lifecycle.in_flight")
        self._notify()
        return True

    async def _fly(self, request: Any) -> None:
        ticker = self._ticker
        try:
            try:
                result = await self._runner(request)
            finally:
                if ticker is not None:
                    await ticker.stop()
        except DeepDiveError as e:
            logger.warning("lifecycle.failed code=%s", e.code)
            self._settle(LifecycleState.FAILED, error=e.user_message)
        except Exception:
            logger.error("lifecycle.failed code=UNEXPECTED", exc_info=True)
            self._settle(LifecycleState.FAILED, error=UNEXPECTED_ERROR_MESSAGE)
        else:
            self._settle(LifecycleState.SUCCEEDED, result=result)

    def _settle(
        self,
        state: LifecycleState,
        *,
        result: Optional[DeepDiveResult] = None,
        error: Optional[str] = None,
    ) -> None:
        self._state = state
        self._result = result
        self._error = error or (UNEXPECTED_ERROR_MESSAGE if state is LifecycleState.FAILED else None)
        self._status_message = None
        logger.info("lifecycle.settled state=%s", state.value)
        self._notify()

    async def wait(self) -> LifecycleSnapshot:
        """Wait for the current flight (if any) to settle and return the resulting snapshot."""
        if self._flight is not None:
            await asyncio.shield(self._flight)
        return self.snapshot()

    def reset(self) -> bool:
        """Succeeded/Failed -> Idle, clearing the previous result or error."""
        if self._state is LifecycleState.IN_FLIGHT:
            logger.warning("lifecycle.reset_rejected state=%s", self._state.value)
            return False
        if self._state is LifecycleState.IDLE:
            return True

        self._state = LifecycleState.IDLE
        self._request = None
        self._result = None
        self._error = None
        self._status_message = None
        self._flight = None
        self._ticker = None
        logger.info("lifecycle.idle")
        self._notify()
        return True

    retry = reset
