"""
Recognition session wrapper.

Role in the system:
- Owns the single recognition engine instance.
- Serializes start/stop: start() is a no-op while active or starting;
  otherwise it runs best-effort stop -> settle delay -> engine start.
- Normalizes raw engine callbacks into controller events:
    - RecognitionStarted
    - RecognitionResult(transcript, confidence)
    - RecognitionError(code)
    - RecognitionEnded
    - RecognitionStartFailed(reason) when the engine refuses to start

Concurrency:
- One asyncio task per start sequence; stop() cancels it.
- Events are queued and delivered by one pump task in engine order, so a
  command executed in reaction to an event can never cancel the delivery
  chain that produced it.
- Nothing raised by the engine propagates to the caller.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from adapters.recognition.base import RecognitionEngine
from observability.logger import log_event
from orchestrator.enums.recognition_error import RecognitionErrorCode
from orchestrator.events import (
    Event,
    EventType,
    RecognitionEnded,
    RecognitionError,
    RecognitionResult,
    RecognitionStarted,
    RecognitionStartFailed,
)
from policy import RECOGNITION_SETTLE_DELAY_MS, ms_to_seconds


_RAW_ERROR_CODES: dict[str, RecognitionErrorCode] = {
    "not-allowed": RecognitionErrorCode.PERMISSION_DENIED,
    "service-not-allowed": RecognitionErrorCode.PERMISSION_DENIED,
    "no-speech": RecognitionErrorCode.NO_SPEECH_DETECTED,
    "audio-capture": RecognitionErrorCode.AUDIO_CAPTURE_UNAVAILABLE,
}


def normalize_error_code(raw: str) -> RecognitionErrorCode:
    """Map a raw engine error code to the controller vocabulary."""
    return _RAW_ERROR_CODES.get(raw, RecognitionErrorCode.OTHER)


class RecognitionSession:
    """
    Idempotent start/stop wrapper around one RecognitionEngine.

    The starting/active flags live here and nowhere else; the controller
    only issues start()/stop() and reacts to the normalized events.
    """

    def __init__(
        self,
        *,
        engine: RecognitionEngine,
        emit_event: Callable[[Event], Awaitable[None]],
        settle_delay_ms: int = RECOGNITION_SETTLE_DELAY_MS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._engine = engine
        self._emit_event = emit_event
        self._settle_delay_ms = settle_delay_ms
        self._sleep = sleep

        self._starting = False
        self._active = False
        self._start_task: asyncio.Task[None] | None = None

        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._pump_task: asyncio.Task[None] | None = None

        engine.bind(self)

    # ------------------------------------------------------------------
    # Flags (read-only outside this class)
    # ------------------------------------------------------------------

    @property
    def starting(self) -> bool:
        return self._starting

    @property
    def active(self) -> bool:
        return self._active

    @property
    def is_busy(self) -> bool:
        """True while a start is outstanding or the engine is capturing."""
        return self._starting or self._active

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Begin one recognition utterance.

        No-op while active or starting. Returns immediately; the start
        sequence runs in its own task.
        """
        if self.is_busy:
            log_event({
                "ts_ms": self._now_ms(),
                "event_type": "recognition_start_skipped",
                "starting": self._starting,
                "active": self._active,
            })
            return

        self._starting = True
        self._start_task = asyncio.create_task(self._run_start_sequence())

    async def stop(self) -> None:
        """
        Stop recognition. Idempotent and always safe.

        Cancels an in-progress start sequence and clears both flags.
        """
        task = self._start_task
        self._start_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._starting = False
        self._active = False
        await self._stop_engine_quietly()

    async def aclose(self) -> None:
        """Stop the engine and drain/stop event delivery."""
        await self.stop()
        pump = self._pump_task
        self._pump_task = None
        if pump is not None and not pump.done():
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------
    # RecognitionListener (engine callbacks)
    # ------------------------------------------------------------------

    def on_start(self) -> None:
        if self._starting:
            self._starting = False
            self._active = True
        # A start reported after stop() is still forwarded; the controller
        # answers it with StopRecognition.
        self._publish(RecognitionStarted(
            event_type=EventType.RECOGNITION_STARTED,
            ts_ms=self._now_ms(),
        ))

    def on_result(self, transcript: str, confidence: float) -> None:
        self._publish(RecognitionResult(
            event_type=EventType.RECOGNITION_RESULT,
            ts_ms=self._now_ms(),
            transcript=transcript,
            confidence=confidence,
        ))

    def on_error(self, code: str, detail: str | None = None) -> None:
        self._starting = False
        self._active = False
        self._publish(RecognitionError(
            event_type=EventType.RECOGNITION_ERROR,
            ts_ms=self._now_ms(),
            code=normalize_error_code(code),
            detail=detail or code,
        ))

    def on_end(self) -> None:
        self._starting = False
        self._active = False
        self._publish(RecognitionEnded(
            event_type=EventType.RECOGNITION_ENDED,
            ts_ms=self._now_ms(),
        ))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _run_start_sequence(self) -> None:
        try:
            await self._stop_engine_quietly()
            await self._sleep(ms_to_seconds(self._settle_delay_ms))
            await self._engine.start()

        except asyncio.CancelledError:
            # stop() owns the flags in this path
            raise

        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._starting = False
            self._active = False
            self._publish(RecognitionStartFailed(
                event_type=EventType.RECOGNITION_START_FAILED,
                ts_ms=self._now_ms(),
                reason=f"{type(exc).__name__}: {exc}",
            ))

    async def _stop_engine_quietly(self) -> None:
        try:
            await self._engine.stop()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": self._now_ms(),
                "event_type": "recognition_stop_swallowed",
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    def _publish(self, event: Event) -> None:
        self._queue.put_nowait(event)
        if self._pump_task is None or self._pump_task.done():
            self._pump_task = asyncio.create_task(self._pump())

    async def _pump(self) -> None:
        while not self._queue.empty():
            event = self._queue.get_nowait()
            try:
                await self._emit_event(event)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": self._now_ms(),
                    "event_type": "recognition_emit_failed",
                    "recognition_event": event.event_type.value,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })

    @staticmethod
    def _now_ms() -> int:
        """Wall-clock timestamp in milliseconds (coarse)."""
        return int(time.time() * 1000)
