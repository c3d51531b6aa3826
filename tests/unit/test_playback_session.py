# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
import io

import numpy as np
import pytest
import soundfile as sf

from adapters.playback.session import PlaybackSession, decode_audio
from orchestrator.events import Event, PlaybackCompleted, PlaybackFailed


def wav_bytes(n_samples: int = 160, sample_rate: int = 16_000) -> bytes:
    buf = io.BytesIO()
    sf.write(buf, np.zeros(n_samples, dtype="float32"), sample_rate, format="WAV")
    return buf.getvalue()


class FakeOutput:
    def __init__(self, *, block: bool = False, error: Exception | None = None) -> None:
        self.error = error
        self.played: list[tuple[int, int]] = []
        self.stops = 0
        self.gate = asyncio.Event()
        if not block:
            self.gate.set()

    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        self.played.append((len(samples), sample_rate))
        if self.error is not None:
            raise self.error
        await self.gate.wait()

    def stop(self) -> None:
        self.stops += 1


async def settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


def test_decode_audio_reads_wav() -> None:
    samples, rate = decode_audio(wav_bytes(320, 22_050))

    assert samples.dtype == np.float32
    assert len(samples) == 320
    assert rate == 22_050


def test_decode_audio_rejects_empty_payload() -> None:
    with pytest.raises(ValueError):
        decode_audio(b"")


@pytest.mark.asyncio
async def test_natural_completion_emits_once_with_slot_cleared() -> None:
    output = FakeOutput()
    seen: list[tuple[Event, bool]] = []
    session: PlaybackSession

    async def emit(event: Event) -> None:
        seen.append((event, session.is_active))

    session = PlaybackSession(emit_event=emit, output=output)
    handle = await session.play(wav_bytes(), "msg_2")
    await settle()

    assert len(seen) == 1
    event, active_during_emit = seen[0]
    assert isinstance(event, PlaybackCompleted)
    assert event.tag == "msg_2"
    assert active_during_emit is False
    assert output.played == [(160, 16_000)]
    assert handle.release_count == 1


@pytest.mark.asyncio
async def test_stop_is_silent_and_releases_once() -> None:
    output = FakeOutput(block=True)
    emitted: list[Event] = []

    async def emit(event: Event) -> None:
        emitted.append(event)

    session = PlaybackSession(emit_event=emit, output=output)
    handle = await session.play(wav_bytes(), "msg_2")
    await settle()
    assert session.is_active is True

    await session.stop()
    await session.stop()
    output.gate.set()
    await settle()

    assert emitted == []
    assert session.is_active is False
    assert output.stops == 1
    assert handle.release_count == 1
    assert handle.samples is None


@pytest.mark.asyncio
async def test_new_unit_replaces_active_one_silently() -> None:
    output = FakeOutput(block=True)
    emitted: list[Event] = []

    async def emit(event: Event) -> None:
        emitted.append(event)

    session = PlaybackSession(emit_event=emit, output=output)
    first = await session.play(wav_bytes(), "msg_2")
    await settle()
    second = await session.play(wav_bytes(), "msg_4")
    await settle()

    assert first.stopped is True
    assert first.release_count == 1
    assert session.active is second

    output.gate.set()
    await settle()

    assert [e.tag for e in emitted] == ["msg_4"]


@pytest.mark.asyncio
async def test_undecodable_audio_fails_unit() -> None:
    emitted: list[Event] = []

    async def emit(event: Event) -> None:
        emitted.append(event)

    session = PlaybackSession(emit_event=emit, output=FakeOutput())
    handle = await session.play(b"not a wav file", "msg_2")
    await settle()

    assert len(emitted) == 1
    assert isinstance(emitted[0], PlaybackFailed)
    assert emitted[0].tag == "msg_2"
    assert session.is_active is False
    assert handle.release_count == 1


@pytest.mark.asyncio
async def test_device_error_fails_unit() -> None:
    emitted: list[Event] = []

    async def emit(event: Event) -> None:
        emitted.append(event)

    session = PlaybackSession(
        emit_event=emit, output=FakeOutput(error=OSError("device busy"))
    )
    await session.play(wav_bytes(), "msg_2")
    await settle()

    assert isinstance(emitted[0], PlaybackFailed)
    assert emitted[0].reason == "OSError: device busy"


@pytest.mark.asyncio
async def test_stop_when_idle_is_noop() -> None:
    output = FakeOutput()

    async def emit(_: Event) -> None:
        raise AssertionError("no events expected")

    session = PlaybackSession(emit_event=emit, output=output)
    await session.stop()

    assert output.stops == 0
