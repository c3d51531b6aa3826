"""
Playback session: at most one active audio unit.

Role in the system:
- play(audio, tag) stops and disposes any previous unit, then decodes and
  plays exactly one unit in its own asyncio task.
- Emits exactly one terminal event per unit that is not stopped:
    - PlaybackCompleted(tag), or
    - PlaybackFailed(tag, reason)
- stop() halts and disposes the active unit silently (no terminal event).

Resource discipline:
- A unit's decoded buffer is released exactly once, on completion,
  failure or stop.
"""

from __future__ import annotations

import asyncio
import io
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

import numpy as np
import soundfile as sf

from adapters.playback.output import AudioOutput, SoundDeviceOutput
from observability.logger import log_event
from orchestrator.events import Event, EventType, PlaybackCompleted, PlaybackFailed


def decode_audio(audio: bytes) -> tuple[np.ndarray, int]:
    """
    Decode a synthesized payload (WAV) into float32 samples.

    Raises on empty or undecodable input.
    """
    if not audio:
        raise ValueError("empty audio payload")
    samples, sample_rate = sf.read(io.BytesIO(audio), dtype="float32")
    return np.ascontiguousarray(samples), int(sample_rate)


@dataclass
class PlaybackHandle:
    """One playback unit. Mutated only by PlaybackSession."""
    tag: str
    samples: np.ndarray | None = None
    sample_rate: int = 0
    task: asyncio.Task[None] | None = None
    stopped: bool = False
    release_count: int = 0

    @property
    def released(self) -> bool:
        return self.release_count > 0


class PlaybackSession:
    """
    Single-slot audio playback.

    Design:
    - One asyncio task per unit
    - The active slot is cleared before a terminal event is emitted, so
      reactions to that event never see the finished unit as active
    """

    def __init__(
        self,
        *,
        emit_event: Callable[[Event], Awaitable[None]],
        output: AudioOutput | None = None,
    ) -> None:
        self._emit_event = emit_event
        self._output: AudioOutput = output or SoundDeviceOutput()
        self._active: PlaybackHandle | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def active(self) -> PlaybackHandle | None:
        return self._active

    @property
    def is_active(self) -> bool:
        return self._active is not None

    async def play(self, audio: bytes, tag: str) -> PlaybackHandle:
        """Stop any previous unit, then start playing this one."""
        await self.stop()

        handle = PlaybackHandle(tag=tag)
        self._active = handle
        handle.task = asyncio.create_task(self._run(handle, audio))
        return handle

    async def stop(self) -> None:
        """Halt and dispose the active unit. No-op when idle; never emits."""
        handle = self._active
        if handle is None:
            return
        self._active = None
        handle.stopped = True

        task = handle.task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        try:
            self._output.stop()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": self._now_ms(),
                "event_type": "playback_stop_swallowed",
                "tag": handle.tag,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

        self._release(handle)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _run(self, handle: PlaybackHandle, audio: bytes) -> None:
        try:
            handle.samples, handle.sample_rate = decode_audio(audio)
            await self._output.play(handle.samples, handle.sample_rate)

        except asyncio.CancelledError:
            # stop() releases the unit
            raise

        except Exception as exc:  # pylint: disable=broad-exception-caught
            if not self._finish(handle):
                return
            await self._emit_event(
                PlaybackFailed(
                    event_type=EventType.PLAYBACK_FAILED,
                    ts_ms=self._now_ms(),
                    tag=handle.tag,
                    reason=f"{type(exc).__name__}: {exc}",
                )
            )
            return

        if not self._finish(handle):
            return
        await self._emit_event(
            PlaybackCompleted(
                event_type=EventType.PLAYBACK_COMPLETED,
                ts_ms=self._now_ms(),
                tag=handle.tag,
            )
        )

    def _finish(self, handle: PlaybackHandle) -> bool:
        """Release a unit that ended on its own. False if it was stopped."""
        if handle.stopped:
            return False
        if self._active is handle:
            self._active = None
        self._release(handle)
        return True

    @staticmethod
    def _release(handle: PlaybackHandle) -> None:
        if handle.released:
            return
        handle.samples = None
        handle.release_count += 1

    @staticmethod
    def _now_ms() -> int:
        """Wall-clock timestamp in milliseconds (coarse)."""
        return int(time.time() * 1000)
