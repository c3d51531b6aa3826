"""
Recognition engine contract.

This module defines the *interface only*. The recognition session wrapper
owns sequencing (starting flag, settle delay) and error normalization;
engines only capture and recognize one utterance at a time.

Key invariants:
- Engines are configured at construction (locale, single utterance,
  final results only, one alternative).
- Engines report through a bound listener; they never emit controller
  events and never make state transitions.
- Listener callbacks are plain synchronous calls made on the event loop
  thread, in the order the engine observed them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol


class RecognitionListener(Protocol):
    """Raw engine callbacks consumed by the recognition session wrapper."""

    def on_start(self) -> None: ...

    def on_result(self, transcript: str, confidence: float) -> None: ...

    def on_error(self, code: str, detail: str | None = None) -> None: ...

    def on_end(self) -> None: ...


class RecognitionEngine(ABC):
    """
    Abstract single-utterance speech recognition engine.

    Raw error codes follow the platform vocabulary:
    "not-allowed", "service-not-allowed", "no-speech", "audio-capture",
    "network", "aborted". The wrapper maps them to RecognitionErrorCode.
    """

    def __init__(self) -> None:
        self._listener: RecognitionListener | None = None

    def bind(self, listener: RecognitionListener) -> None:
        """Attach the listener that receives engine callbacks."""
        self._listener = listener

    @abstractmethod
    async def start(self) -> None:
        """
        Begin capturing one utterance.

        Returns once capture has been launched; outcomes arrive through the
        listener. Raises if the engine refuses to start (e.g. already active).
        """
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        """
        Abort the current utterance.

        May raise when the engine is not running; callers swallow such errors.
        """
        raise NotImplementedError
