# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
import errno
import time
from typing import Any, Callable

import pytest
import speech_recognition as sr

from adapters.recognition.speech_recognition_engine import (
    SpeechRecognitionEngine,
    best_alternative,
    classify_exception,
)


class FakeMicrophone:
    def __enter__(self) -> "FakeMicrophone":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None


class FakeRecognizer:
    def __init__(
        self,
        *,
        response: Any = None,
        listen_error: Exception | None = None,
        recognize_error: Exception | None = None,
    ) -> None:
        self.response = response
        self.listen_error = listen_error
        self.recognize_error = recognize_error
        self.listen_kwargs: dict[str, Any] = {}
        self.language: str | None = None

    def listen(self, source: Any, **kwargs: Any) -> str:
        self.listen_kwargs = kwargs
        if self.listen_error is not None:
            raise self.listen_error
        return "audio-data"

    def recognize_google(self, audio: Any, *, language: str, show_all: bool) -> Any:
        assert audio == "audio-data"
        assert show_all is True
        self.language = language
        if self.recognize_error is not None:
            raise self.recognize_error
        return self.response


class RecordingListener:
    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    def on_start(self) -> None:
        self.calls.append(("start",))

    def on_result(self, transcript: str, confidence: float) -> None:
        self.calls.append(("result", transcript, confidence))

    def on_error(self, code: str, detail: str | None = None) -> None:
        self.calls.append(("error", code))

    def on_end(self) -> None:
        self.calls.append(("end",))


async def wait_for(predicate: Callable[[], bool], timeout_s: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_s
    while not predicate():
        assert loop.time() < deadline, "condition not reached"
        await asyncio.sleep(0.01)


def make_engine(
    recognizer: Any,
    *,
    listen_timeout_s: float = 3.0,
    microphone_factory: Callable[[], Any] = FakeMicrophone,
) -> tuple[SpeechRecognitionEngine, RecordingListener]:
    engine = SpeechRecognitionEngine(
        language="en-US",
        listen_timeout_s=listen_timeout_s,
        phrase_limit_s=10.0,
        poll_interval_s=0.05,
        recognizer=recognizer,
        microphone_factory=microphone_factory,
    )
    listener = RecordingListener()
    engine.bind(listener)
    return engine, listener


@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (sr.WaitTimeoutError("timed out"), "no-speech"),
        (sr.UnknownValueError(), "no-speech"),
        (sr.RequestError("offline"), "network"),
        (PermissionError("denied"), "not-allowed"),
        (OSError(errno.EACCES, "denied"), "not-allowed"),
        (OSError(errno.ENODEV, "no device"), "audio-capture"),
        (AttributeError("Could not find PyAudio"), "audio-capture"),
        (RuntimeError("other"), "aborted"),
    ],
)
def test_classify_exception(exc: BaseException, code: str) -> None:
    assert classify_exception(exc) == code


def test_best_alternative() -> None:
    payload = {
        "alternative": [
            {"transcript": "what recipes use coconut milk", "confidence": 0.92},
            {"transcript": "what recipe is coconut milk"},
        ],
        "final": True,
    }

    assert best_alternative(payload) == ("what recipes use coconut milk", 0.92)
    assert best_alternative({"alternative": [{"transcript": "hi"}]}) == ("hi", 1.0)
    assert best_alternative([]) is None
    assert best_alternative({"alternative": []}) is None


@pytest.mark.asyncio
async def test_utterance_reports_start_result_end() -> None:
    recognizer = FakeRecognizer(
        response={"alternative": [{"transcript": "hello", "confidence": 0.8}]}
    )
    engine, listener = make_engine(recognizer)

    await engine.start()
    await wait_for(lambda: ("end",) in listener.calls)

    assert listener.calls == [("start",), ("result", "hello", 0.8), ("end",)]
    assert recognizer.language == "en-US"
    assert recognizer.listen_kwargs == {"timeout": 0.05, "phrase_time_limit": 10.0}


@pytest.mark.asyncio
async def test_nothing_recognized_reports_no_speech() -> None:
    engine, listener = make_engine(FakeRecognizer(response=[]))

    await engine.start()
    await wait_for(lambda: ("end",) in listener.calls)

    assert listener.calls == [("start",), ("error", "no-speech"), ("end",)]


@pytest.mark.asyncio
async def test_listen_timeout_reports_no_speech() -> None:
    engine, listener = make_engine(
        FakeRecognizer(listen_error=sr.WaitTimeoutError("listening timed out")),
        listen_timeout_s=0.1,
    )

    await engine.start()
    await wait_for(lambda: ("end",) in listener.calls)

    assert ("error", "no-speech") in listener.calls


@pytest.mark.asyncio
async def test_network_failure_reports_network_code() -> None:
    engine, listener = make_engine(
        FakeRecognizer(recognize_error=sr.RequestError("offline"))
    )

    await engine.start()
    await wait_for(lambda: ("end",) in listener.calls)

    assert listener.calls[-2:] == [("error", "network"), ("end",)]


@pytest.mark.asyncio
async def test_start_refuses_without_listener() -> None:
    engine = SpeechRecognitionEngine(
        recognizer=FakeRecognizer(),  # type: ignore[arg-type]
        microphone_factory=FakeMicrophone,
    )

    with pytest.raises(RuntimeError):
        await engine.start()


@pytest.mark.asyncio
async def test_stop_without_utterance_is_noop() -> None:
    engine, listener = make_engine(FakeRecognizer())

    await engine.stop()

    assert listener.calls == []


class SilentRecognizer:
    """Hears nothing: every listen slice times out after a short wait."""

    def __init__(self) -> None:
        self.listens = 0

    def listen(self, source: Any, **kwargs: Any) -> Any:
        self.listens += 1
        time.sleep(kwargs["timeout"])
        raise sr.WaitTimeoutError("listening timed out")


class TrackingMicrophone(FakeMicrophone):
    opened = 0
    closed = 0

    def __enter__(self) -> "TrackingMicrophone":
        TrackingMicrophone.opened += 1
        return self

    def __exit__(self, *exc: Any) -> None:
        TrackingMicrophone.closed += 1


@pytest.mark.asyncio
async def test_listen_waits_in_slices_until_timeout() -> None:
    recognizer = SilentRecognizer()
    engine, listener = make_engine(recognizer, listen_timeout_s=0.3)

    await engine.start()
    await wait_for(lambda: ("end",) in listener.calls)

    assert listener.calls == [("start",), ("error", "no-speech"), ("end",)]
    assert recognizer.listens > 1


@pytest.mark.asyncio
async def test_stop_releases_microphone_before_listen_timeout() -> None:
    TrackingMicrophone.opened = 0
    TrackingMicrophone.closed = 0
    engine, listener = make_engine(
        SilentRecognizer(),
        listen_timeout_s=30.0,
        microphone_factory=TrackingMicrophone,
    )

    await engine.start()
    await wait_for(lambda: ("start",) in listener.calls)

    await engine.stop()
    await wait_for(lambda: TrackingMicrophone.closed == 1)

    assert TrackingMicrophone.opened == 1
    assert listener.calls == [("start",)]
