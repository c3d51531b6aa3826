"""
Microphone permission monitor.

Responsibilities:
- Report whether speech input is supported on this host
- Report the current microphone PermissionState (best effort)
- Notify subscribers on every reported transition (polling watch task)
- Probe for access on request, releasing the capture handle immediately

Non-responsibilities:
- No controller decisions (voice on/off is decided by the reducer)
- Never raises into callers: absence of capability is a value, not an error

Desktop hosts have no permission prompt. Until a probe succeeds or fails
the state is reported as PROMPT; a host without input devices reports
NO_MICROPHONE; a host whose audio stack cannot be queried reports UNKNOWN.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import speech_recognition as sr

from observability.logger import log_event
from orchestrator.enums.permission import PermissionState
from policy import PERMISSION_POLL_INTERVAL_S


PermissionCallback = Callable[[PermissionState], Awaitable[None]]


@dataclass(frozen=True)
class SpeechSupport:
    supported: bool
    reason: str | None = None


# ---------------------------------------------------------------------
# Default host probes (sounddevice imported lazily: it raises at import
# time when PortAudio is missing)
# ---------------------------------------------------------------------

def _default_support_check() -> None:
    # Raises AttributeError when PyAudio is not installed
    sr.Microphone.get_pyaudio()


def _default_input_devices() -> list[dict[str, Any]]:
    import sounddevice as sd  # pylint: disable=import-outside-toplevel

    return [
        dict(device)
        for device in sd.query_devices()
        if device.get("max_input_channels", 0) > 0
    ]


def _default_probe() -> None:
    import sounddevice as sd  # pylint: disable=import-outside-toplevel

    with sd.InputStream(channels=1):
        pass


class PermissionMonitor:
    """
    Leaf component reporting microphone authorization.

    Design:
    - Host access is injectable (device query, probe, support check)
    - One polling task, alive while there are subscribers
    - Subscribers are awaited in registration order
    """

    def __init__(
        self,
        *,
        support_check: Callable[[], None] = _default_support_check,
        device_query: Callable[[], list[dict[str, Any]]] = _default_input_devices,
        probe: Callable[[], None] = _default_probe,
        poll_interval_s: float = PERMISSION_POLL_INTERVAL_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._support_check = support_check
        self._device_query = device_query
        self._probe = probe
        self._poll_interval_s = poll_interval_s
        self._sleep = sleep

        # Result of the last access probe (None until one ran)
        self._probed: PermissionState | None = None
        self._last_reported: PermissionState | None = None

        self._subscribers: list[PermissionCallback] = []
        self._watch_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check_support(self) -> SpeechSupport:
        """Never raises."""
        try:
            self._support_check()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            return SpeechSupport(supported=False, reason=f"{type(exc).__name__}: {exc}")
        return SpeechSupport(supported=True)

    async def query_permission(self) -> PermissionState:
        """Best-effort current state; UNKNOWN when the host cannot report."""
        try:
            devices = await asyncio.to_thread(self._device_query)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": self._now_ms(),
                "event_type": "permission_query_failed",
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            return PermissionState.UNKNOWN

        if not devices:
            return PermissionState.NO_MICROPHONE
        if self._probed is PermissionState.NO_MICROPHONE:
            # A device appeared since the last probe
            return PermissionState.PROMPT
        return self._probed or PermissionState.PROMPT

    async def request_access(self) -> PermissionState:
        """
        Probe the microphone.

        Returns GRANTED, DENIED, or NO_MICROPHONE when no capture device
        exists. The capture handle is released before returning.
        """
        try:
            devices = await asyncio.to_thread(self._device_query)
        except Exception:  # pylint: disable=broad-exception-caught
            devices = None

        if devices is not None and not devices:
            result = PermissionState.NO_MICROPHONE
        else:
            try:
                await asyncio.to_thread(self._probe)
                result = PermissionState.GRANTED
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": self._now_ms(),
                    "event_type": "microphone_probe_failed",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
                result = PermissionState.DENIED

        self._probed = result
        self._last_reported = result
        return result

    def subscribe(self, callback: PermissionCallback) -> Callable[[], None]:
        """
        Register a transition callback. Returns an unsubscribe function.

        The watch task starts with the first subscriber and stops with
        the last.
        """
        self._subscribers.append(callback)
        if self._watch_task is None or self._watch_task.done():
            self._watch_task = asyncio.create_task(self._watch())

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)
            if not self._subscribers:
                self._stop_watch()

        return _unsubscribe

    async def aclose(self) -> None:
        self._subscribers.clear()
        task = self._watch_task
        self._stop_watch()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def poll_once(self) -> None:
        """Query the host once and notify subscribers on a change."""
        current = await self.query_permission()
        previous = self._last_reported
        self._last_reported = current
        if previous is None or previous is current:
            return

        for callback in list(self._subscribers):
            try:
                await callback(current)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": self._now_ms(),
                    "event_type": "permission_callback_failed",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })

    async def _watch(self) -> None:
        try:
            while True:
                await self.poll_once()
                await self._sleep(self._poll_interval_s)
        except asyncio.CancelledError:
            return

    def _stop_watch(self) -> None:
        task = self._watch_task
        self._watch_task = None
        if task is not None and not task.done():
            task.cancel()

    @staticmethod
    def _now_ms() -> int:
        """Wall-clock timestamp in milliseconds (coarse)."""
        return int(time.time() * 1000)
