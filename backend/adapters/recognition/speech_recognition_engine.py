"""
SpeechRecognition-backed recognition engine.

Implements one utterance per start() using the `speech_recognition`
package: open the microphone, listen until a phrase ends (or the listen
timeout elapses), then recognize with the Google Web Speech API.

Role in the system:
- Blocking microphone/network work runs in worker threads.
- Outcomes are reported to the bound listener in order:
  on_start -> (on_result | on_error) -> on_end.
- Exceptions are mapped to raw platform codes; the session wrapper
  normalizes them.

Configuration mirrors the platform engine defaults:
single utterance, final results only, one alternative.
"""

from __future__ import annotations

import asyncio
import errno
import threading
import time
from typing import Any, Callable

import speech_recognition as sr

from adapters.recognition.base import RecognitionEngine
from policy import RECOGNITION_DEFAULT_LANGUAGE, RECOGNITION_MAX_ALTERNATIVES


_PERMISSION_ERRNOS = {errno.EACCES, errno.EPERM}


class CaptureAborted(Exception):
    """Raised in the capture thread when stop() was requested."""


def classify_exception(exc: BaseException) -> str:
    """Map a capture/recognition exception to a raw platform error code."""
    if isinstance(exc, (sr.WaitTimeoutError, sr.UnknownValueError)):
        return "no-speech"
    if isinstance(exc, sr.RequestError):
        return "network"
    if isinstance(exc, PermissionError):
        return "not-allowed"
    if isinstance(exc, OSError):
        if exc.errno in _PERMISSION_ERRNOS:
            return "not-allowed"
        return "audio-capture"
    if isinstance(exc, AttributeError):
        # sr.Microphone raises AttributeError when PyAudio is unavailable
        return "audio-capture"
    return "aborted"


def best_alternative(response: Any) -> tuple[str, float] | None:
    """
    Extract the top alternative from a `recognize_google(show_all=True)` payload.

    Returns None when nothing was recognized.
    """
    if not isinstance(response, dict):
        return None
    alternatives = response.get("alternative") or []
    for alternative in alternatives[:RECOGNITION_MAX_ALTERNATIVES]:
        transcript = alternative.get("transcript")
        if transcript:
            return transcript, float(alternative.get("confidence", 1.0))
    return None


class SpeechRecognitionEngine(RecognitionEngine):
    """
    Single-utterance engine over `speech_recognition`.

    Design:
    - One asyncio task per utterance
    - start() raises if an utterance is already in progress
    - stop() cancels the utterance task and signals the capture thread;
      waiting for speech is sliced into poll_interval_s listens so the
      microphone is released within one slice. A phrase already being
      recorded still runs to its end (at most phrase_limit_s).
    """

    def __init__(
        self,
        *,
        language: str = RECOGNITION_DEFAULT_LANGUAGE,
        listen_timeout_s: float = 5.0,
        phrase_limit_s: float = 15.0,
        poll_interval_s: float = 0.5,
        recognizer: sr.Recognizer | None = None,
        microphone_factory: Callable[[], Any] = sr.Microphone,
    ) -> None:
        super().__init__()
        self._language = language
        self._listen_timeout_s = listen_timeout_s
        self._phrase_limit_s = phrase_limit_s
        self._poll_interval_s = poll_interval_s
        self._recognizer = recognizer or sr.Recognizer()
        self._microphone_factory = microphone_factory
        self._task: asyncio.Task[None] | None = None
        self._stop_requested = threading.Event()

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            raise RuntimeError("recognition already started")
        if self._listener is None:
            raise RuntimeError("no listener bound")
        self._stop_requested = threading.Event()
        self._task = asyncio.create_task(self._run_utterance(self._stop_requested))

    async def stop(self) -> None:
        self._stop_requested.set()
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _run_utterance(self, stop_requested: threading.Event) -> None:
        listener = self._listener
        assert listener is not None
        loop = asyncio.get_running_loop()

        try:
            audio = await asyncio.to_thread(self._capture, loop, stop_requested)
            response = await asyncio.to_thread(
                self._recognizer.recognize_google,
                audio,
                language=self._language,
                show_all=True,
            )
            best = best_alternative(response)
            if best is None:
                listener.on_error("no-speech", "nothing recognized")
            else:
                transcript, confidence = best
                listener.on_result(transcript, confidence)

        except asyncio.CancelledError:
            # Aborted by stop(); silent
            raise

        except Exception as exc:  # pylint: disable=broad-exception-caught
            listener.on_error(classify_exception(exc), f"{type(exc).__name__}: {exc}")

        listener.on_end()

    def _capture(
        self,
        loop: asyncio.AbstractEventLoop,
        stop_requested: threading.Event,
    ) -> sr.AudioData:
        """Worker thread: open the microphone and record one phrase."""
        listener = self._listener
        assert listener is not None
        with self._microphone_factory() as source:
            loop.call_soon_threadsafe(listener.on_start)
            deadline = time.monotonic() + self._listen_timeout_s
            while True:
                if stop_requested.is_set():
                    raise CaptureAborted("recognition stopped")
                # listen() treats a zero timeout as "wait forever"
                remaining = max(deadline - time.monotonic(), 0.01)
                try:
                    return self._recognizer.listen(
                        source,
                        timeout=min(self._poll_interval_s, remaining),
                        phrase_time_limit=self._phrase_limit_s,
                    )
                except sr.WaitTimeoutError:
                    if time.monotonic() >= deadline:
                        raise
