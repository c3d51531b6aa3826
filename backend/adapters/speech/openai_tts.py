"""
OpenAI speech synthesis adapter.

Role in the system:
- Receives the raw answer text of one bot message per SynthesizeSpeech.
- Performs one `audio.speech` call ({model, voice, input}) per message.
- Emits exactly one terminal event per message:
    - SpeechSynthesized(message_id, audio), or
    - SpeechSynthesisFailed(message_id, reason)

Architectural constraints:
- Output is requested as WAV so playback can decode it without an mp3 codec.
- No retries; a failure resumes listening silently upstream.
- Cancellation (shutdown) is silent.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from openai import AsyncOpenAI

from observability.metrics import timed
from orchestrator.events import (
    Event,
    EventType,
    SpeechSynthesisFailed,
    SpeechSynthesized,
)
from policy import TTS_DEFAULT_MODEL, TTS_DEFAULT_VOICE, TTS_RESPONSE_FORMAT


class OpenAITTSAdapter:
    """
    Non-streaming TTS over the OpenAI speech endpoint.

    Design:
    - One asyncio task per message_id
    - Fire-and-forget: synthesize() schedules work and returns
    """

    def __init__(
        self,
        *,
        emit_event: Callable[[Event], Awaitable[None]],
        client: AsyncOpenAI,
        model: str = TTS_DEFAULT_MODEL,
        voice: str = TTS_DEFAULT_VOICE,
    ) -> None:
        self._emit_event = emit_event
        self._client = client
        self._model = model
        self._voice = voice
        self._tasks: dict[str, asyncio.Task[None]] = {}

    async def synthesize(self, *, message_id: str, text: str) -> None:
        if message_id in self._tasks:
            return

        task = asyncio.create_task(self._run_synthesis(message_id=message_id, text=text))
        self._tasks[message_id] = task

        def _cleanup(_: asyncio.Task[None]) -> None:
            self._tasks.pop(message_id, None)

        task.add_done_callback(_cleanup)

    async def aclose(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run_synthesis(self, *, message_id: str, text: str) -> None:
        try:
            with timed(
                "tts_synthesis_latency",
                details={"message_id": message_id, "chars": len(text)},
            ) as m:
                response = await self._client.audio.speech.create(
                    model=self._model,
                    voice=self._voice,
                    input=text,
                    response_format=TTS_RESPONSE_FORMAT,
                )
                audio = response.content
                m.details["bytes"] = len(audio)

            if not audio:
                raise ValueError("empty audio payload")

        except asyncio.CancelledError:
            pass

        except Exception as exc:  # pylint: disable=broad-exception-caught
            await self._emit_event(
                SpeechSynthesisFailed(
                    event_type=EventType.SPEECH_SYNTHESIS_FAILED,
                    ts_ms=self._now_ms(),
                    message_id=message_id,
                    reason=f"{type(exc).__name__}: {exc}",
                )
            )

        else:
            await self._emit_event(
                SpeechSynthesized(
                    event_type=EventType.SPEECH_SYNTHESIZED,
                    ts_ms=self._now_ms(),
                    message_id=message_id,
                    audio=audio,
                )
            )

    @staticmethod
    def _now_ms() -> int:
        """Wall-clock timestamp in milliseconds (coarse)."""
        return int(time.time() * 1000)
