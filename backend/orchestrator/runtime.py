"""
Runtime execution shell for the voice session.

Responsibilities:
- Own controller state
- Call pure reducer
- Execute commands with side effects (recognition, playback, backend, TTS)
- Own the restart scheduler and named timers
- Convert timer expiry, permission changes and access results into events
- Publish the UI status snapshot when it changes
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Callable

from orchestrator.commands import (
    AppendMessage,
    CancelRestart,
    CancelTimer,
    Command,
    LogEvent,
    PlayAudio,
    QueryBackend,
    RequestMicrophoneAccess,
    ScheduleRestart,
    StartRecognition,
    StartTimer,
    StopPlayback,
    StopRecognition,
    SynthesizeSpeech,
)
from orchestrator.enums.permission import PermissionState
from orchestrator.events import (
    AccessResolved,
    Event,
    EventType,
    PermissionChanged,
    RestartDue,
    SessionStarted,
    SpeechSynthesisFailed,
    TranscriptDue,
)
from orchestrator.reducer import reduce
from orchestrator.restart import RestartScheduler
from orchestrator.state_dataclass import ControllerState
from orchestrator.status import describe_status

from observability.logger import log_event

if TYPE_CHECKING:
    from orchestrator.runtime_context import RuntimeExecutionContext


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class Runtime:
    """
    Runtime execution boundary for the voice session.

    Responsibilities:
    - Own the authoritative controller state
    - Act as the universal event sink for the session
      (user input, wrapper/adapter events, timer events)
    - Invoke the pure reducer deterministically
    - Execute emitted commands with side effects

    Architectural role:
    Runtime is the bridge between the pure orchestration layer
    (reducer + immutable state) and the imperative world
    (wrappers, adapters, logging, time).

    Guarantees:
    - Reducer is always called exactly once per incoming event
    - State is swapped in before any command of that event executes
    - Commands are executed in reducer-emitted order
    - Runtime never performs orchestration logic itself; it only refuses
      to start recognition while playback is active
    - Timers emit events back into handle_event (single entry point)
    """

    def __init__(
        self,
        *,
        initial_state: ControllerState,
        context: RuntimeExecutionContext,
    ) -> None:
        self._state = initial_state
        self._ctx = context
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._access_task: asyncio.Task[None] | None = None
        self._unsubscribe_permission: Callable[[], None] | None = None
        self._last_status: dict[str, Any] | None = None

        self._restart = RestartScheduler(
            on_fire=self._on_restart_due,
            guard=self._restart_guard,
        )

    @property
    def state(self) -> ControllerState:
        """
        Return the current immutable controller state.

        The returned object must be treated as read-only; state is only
        replaced internally by Runtime via the reducer.
        """
        return self._state

    @property
    def restart_scheduler(self) -> RestartScheduler:
        return self._restart

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """
        Probe capabilities once, subscribe to permission changes and
        dispatch SessionStarted.
        """
        monitor = self._ctx.permission_monitor
        speech_supported = False
        permission = PermissionState.UNKNOWN

        if monitor is not None:
            support = monitor.check_support()
            speech_supported = support.supported
            permission = await monitor.query_permission()
            self._unsubscribe_permission = monitor.subscribe(self._on_permission_changed)

            if not support.supported:
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "speech_not_supported",
                    "session_id": self._ctx.session_id,
                    "reason": support.reason,
                })

        await self.handle_event(
            SessionStarted(
                event_type=EventType.SESSION_STARTED,
                ts_ms=_now_ms(),
                speech_supported=speech_supported,
                permission=permission,
                speech_output_available=self._ctx.speech_output_available,
            )
        )

    async def shutdown(self) -> None:
        """
        Clean shutdown of runtime.

        Cancels all timers, the pending restart and any access request,
        stops recognition and playback.
        """
        if self._unsubscribe_permission is not None:
            self._unsubscribe_permission()
            self._unsubscribe_permission = None

        self._restart.cancel()

        timers = list(self._timers.values())
        for timer_id in list(self._timers.keys()):
            self._cancel_timer(timer_id)

        tasks = list(timers)
        if self._access_task is not None and not self._access_task.done():
            self._access_task.cancel()
            tasks.append(self._access_task)
        self._access_task = None

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._ctx.recognition is not None:
            await self._ctx.recognition.stop()
        if self._ctx.playback is not None:
            await self._ctx.playback.stop()

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the orchestration pipeline.

        Processing steps:
        1. Pass the current state and event to the pure reducer
        2. Swap in the new controller state
        3. Execute all emitted commands sequentially
        4. Publish the status snapshot if it changed

        This method is the *only* entry point for events affecting
        controller state.
        """
        new_state, commands = reduce(self._state, event)
        self._state = new_state

        for cmd in commands:
            await self._execute_command(cmd)

        self._publish_status()

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._ctx.session_id,
            })

        elif isinstance(cmd, StartRecognition):
            recognition = self._ctx.recognition
            playback = self._ctx.playback
            if recognition is None:
                self._log_missing("recognition", cmd)
                return
            if playback is not None and playback.is_active:
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "START_RECOGNITION_BLOCKED",
                    "session_id": self._ctx.session_id,
                    "reason": "playback_active",
                })
                return
            await recognition.start()

        elif isinstance(cmd, StopRecognition):
            if self._ctx.recognition is not None:
                await self._ctx.recognition.stop()

        elif isinstance(cmd, ScheduleRestart):
            self._restart.schedule(cmd.delay_ms)

        elif isinstance(cmd, CancelRestart):
            self._restart.cancel()

        elif isinstance(cmd, StartTimer):
            self._start_timer(
                timer_id=cmd.timer_id,
                duration_ms=cmd.duration_ms,
                timeout_event_type=cmd.timeout_event_type,
            )

        elif isinstance(cmd, CancelTimer):
            self._cancel_timer(cmd.timer_id)

        elif isinstance(cmd, RequestMicrophoneAccess):
            self._request_access()

        elif isinstance(cmd, AppendMessage):
            self._ctx.append_message(cmd.message)

        elif isinstance(cmd, QueryBackend):
            backend = self._ctx.backend_adapter
            if backend is None:
                self._log_missing("backend", cmd)
                return
            await backend.query(query_id=cmd.query_id, query=cmd.query)

        elif isinstance(cmd, SynthesizeSpeech):
            tts = self._ctx.tts_adapter
            if tts is None:
                await self.handle_event(
                    SpeechSynthesisFailed(
                        event_type=EventType.SPEECH_SYNTHESIS_FAILED,
                        ts_ms=_now_ms(),
                        message_id=cmd.message_id,
                        reason="tts_unavailable",
                    )
                )
                return
            await tts.synthesize(message_id=cmd.message_id, text=cmd.text)

        elif isinstance(cmd, PlayAudio):
            playback = self._ctx.playback
            if playback is None:
                self._log_missing("playback", cmd)
                return
            await playback.play(cmd.audio, cmd.tag)

        elif isinstance(cmd, StopPlayback):
            if self._ctx.playback is not None:
                await self._ctx.playback.stop()

        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "COMMAND_NOT_HANDLED",
                "session_id": self._ctx.session_id,
                "command_type": type(cmd).__name__,
            })

    def _log_missing(self, component: str, cmd: Command) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "COMPONENT_MISSING",
            "session_id": self._ctx.session_id,
            "component": component,
            "command_type": cmd.command_type.value,
        })

    # ------------------------------------------------------------------
    # Restart scheduler wiring
    # ------------------------------------------------------------------

    def _restart_guard(self) -> bool:
        recognition = self._ctx.recognition
        playback = self._ctx.playback
        if recognition is not None and recognition.is_busy:
            return False
        if playback is not None and playback.is_active:
            return False
        return True

    async def _on_restart_due(self) -> None:
        await self.handle_event(
            RestartDue(event_type=EventType.RESTART_DUE, ts_ms=_now_ms())
        )

    # ------------------------------------------------------------------
    # Permission wiring
    # ------------------------------------------------------------------

    async def _on_permission_changed(self, permission: PermissionState) -> None:
        await self.handle_event(
            PermissionChanged(
                event_type=EventType.PERMISSION_CHANGED,
                ts_ms=_now_ms(),
                permission=permission,
            )
        )

    def _request_access(self) -> None:
        """
        Run one access request; answers with exactly one AccessResolved.

        A request already in flight is reused.
        """
        if self._access_task is not None and not self._access_task.done():
            return

        monitor = self._ctx.permission_monitor

        async def _access_task() -> None:
            if monitor is None:
                permission = PermissionState.NO_MICROPHONE
            else:
                permission = await monitor.request_access()
            await self.handle_event(
                AccessResolved(
                    event_type=EventType.ACCESS_RESOLVED,
                    ts_ms=_now_ms(),
                    permission=permission,
                )
            )

        self._access_task = asyncio.create_task(_access_task())

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _publish_status(self) -> None:
        status = describe_status(self._state)
        if status == self._last_status:
            return
        self._last_status = status
        self._ctx.publish_status(status)

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def _start_timer(
        self,
        *,
        timer_id: str,
        duration_ms: int,
        timeout_event_type: EventType,
    ) -> None:
        """
        Start or replace a timer that emits a timeout event.

        Timer tasks re-enter handle_event() when they expire,
        maintaining the single event entry point invariant.
        """
        # Cancel existing timer if present (idempotent)
        self._cancel_timer(timer_id)

        async def _timer_task() -> None:
            try:
                await asyncio.sleep(duration_ms / 1000.0)
            except asyncio.CancelledError:
                # Timer was cancelled - this is normal
                return

            self._timers.pop(timer_id, None)
            event = self._construct_timeout_event(
                timer_id=timer_id,
                timeout_event_type=timeout_event_type,
            )
            await self.handle_event(event)

        self._timers[timer_id] = asyncio.create_task(_timer_task())

    def _cancel_timer(self, timer_id: str) -> None:
        """
        Cancel an in-flight timer if it exists.

        Idempotent: safe to call even if timer doesn't exist.
        """
        task = self._timers.pop(timer_id, None)
        if task is not None and not task.done():
            task.cancel()

    def _construct_timeout_event(
        self,
        *,
        timer_id: str,
        timeout_event_type: EventType,
    ) -> Event:
        """
        Construct the timeout event for an expired timer.

        The reducer emits timer commands with just EventType; runtime
        constructs the full event with a timestamp.
        """
        if timeout_event_type is EventType.TRANSCRIPT_DUE:
            return TranscriptDue(event_type=EventType.TRANSCRIPT_DUE, ts_ms=_now_ms())

        # This should never happen if reducer is correct
        raise ValueError(
            f"Unknown timeout event type: {timeout_event_type} "
            f"for timer_id: {timer_id}"
        )
