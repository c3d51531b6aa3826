"""
Audio output device boundary.

The playback session owns *what* plays and when; an AudioOutput only
pushes decoded samples to a device.
"""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class AudioOutput(Protocol):
    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        """Play samples and return once playback finished naturally."""

    def stop(self) -> None:
        """Halt output immediately. Idempotent."""


class SoundDeviceOutput:
    """
    Default output over the system audio device via `sounddevice`.

    sounddevice is imported lazily: importing it fails when PortAudio is
    missing, and the controller must still start without speakers.
    """

    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        import sounddevice as sd  # pylint: disable=import-outside-toplevel

        sd.play(samples, samplerate=sample_rate)
        await asyncio.to_thread(sd.wait)

    def stop(self) -> None:
        import sounddevice as sd  # pylint: disable=import-outside-toplevel

        sd.stop()
