# pylint: disable=too-many-lines,too-many-return-statements,too-many-branches
"""
Pure voice session reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).
"""

# Invariants maintained here:
#   active_playback is non-null iff state is SPEAKING.
#   StartRecognition is never emitted while active_playback is non-null.
#   A transcript delivered while SPEAKING never produces QueryBackend.
# The runtime re-checks the playback guard before executing StartRecognition.

from __future__ import annotations

from dataclasses import replace
from typing import Any

from context.chat_log import Message, Sender
from context.formatting import format_response
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
from orchestrator.enums.recognition_error import RecognitionErrorCode
from orchestrator.enums.state import SessionState
from orchestrator.events import (
    AccessResolved,
    BackendAnswered,
    BackendFailed,
    Event,
    EventType,
    PermissionChanged,
    PlaybackCompleted,
    PlaybackFailed,
    RecognitionEnded,
    RecognitionError,
    RecognitionResult,
    RecognitionStarted,
    RecognitionStartFailed,
    RestartDue,
    SessionStarted,
    SpeechSynthesisFailed,
    SpeechSynthesized,
    StopSpeaking,
    SubmitText,
    ToggleMute,
    ToggleVoice,
    TranscriptDue,
)
from orchestrator.state_dataclass import ControllerState
from policy import (
    BACKEND_FAILURE_TEXT,
    POST_PLAYBACK_RESTART_DELAY_MS,
    RESTART_DELAY_MS,
    START_FAILURE_RETRY_DELAY_MS,
    TRANSCRIPT_SUBMIT_DELAY_MS,
)


# =============================================================================
# Timer IDs
# =============================================================================

TIMER_TRANSCRIPT_SUBMIT = "transcript_submit"


# =============================================================================
# Voice-disabled reasons
# =============================================================================

REASON_USER = "user"
REASON_PERMISSION_DENIED = "permission_denied"
REASON_NO_MICROPHONE = "no_microphone"

_TERMINAL_PERMISSIONS = {
    PermissionState.DENIED: REASON_PERMISSION_DENIED,
    PermissionState.NO_MICROPHONE: REASON_NO_MICROPHONE,
}

# States in which an answer is in flight; voice toggles never leave them.
_ANSWER_STATES = (SessionState.AWAITING_ANSWER, SessionState.SPEAKING)


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: ControllerState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "state": state.state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "voice_enabled": state.voice_enabled,
            "muted": state.muted,
            "permission": state.permission.value,
            "active_playback": state.active_playback,
            "latest_query_id": state.latest_query_id,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(
    state: ControllerState, event: Event, reason: str
) -> tuple[ControllerState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _state_changed(
    old: ControllerState,
    new: ControllerState,
    event: Event,
    source: str,
) -> tuple[Command, ...]:
    if old.state is new.state:
        return ()
    return (
        _log(
            new,
            event,
            "state_changed",
            {
                "from_state": old.state.value,
                "to_state": new.state.value,
                "source": source,
            },
        ),
    )


def _finish(
    old: ControllerState,
    new: ControllerState,
    event: Event,
    source: str,
    commands: tuple[Command, ...],
) -> tuple[ControllerState, tuple[Command, ...]]:
    """Attach the state_changed record (if any) and order logs last."""
    return new, _logs_last(commands + _state_changed(old, new, event, source))


def _rest_state(state: ControllerState) -> SessionState:
    """
    Where the session settles when no answer is in flight.

    LISTENING when voice is enabled (a restart is pending), VOICE_DISABLED
    when voice was turned off explicitly or by a terminal error, else IDLE.
    """
    if state.voice_enabled:
        return SessionState.LISTENING
    if state.voice_disabled_reason is not None:
        return SessionState.VOICE_DISABLED
    return SessionState.IDLE


def _go_rest(
    state: ControllerState,
    event: Event,
    restart_delay_ms: int,
) -> tuple[ControllerState, tuple[Command, ...]]:
    """
    Leave the answer flow: clear playback/synthesis and settle.

    Schedules a restart only when voice is enabled.
    """
    new_state = replace(
        state,
        state=_rest_state(state),
        active_playback=None,
        synthesizing_for=None,
        listening=False,
    )
    cmds: tuple[Command, ...] = ()
    if new_state.voice_enabled:
        cmds = (ScheduleRestart(delay_ms=restart_delay_ms),)
    return new_state, cmds


def _new_message(
    state: ControllerState, sender: Sender, text: str
) -> tuple[ControllerState, Message]:
    seq = state.message_seq + 1
    return (
        replace(state, message_seq=seq),
        Message(id=f"msg_{seq}", sender=sender, text=text),
    )


def _enable_voice(
    state: ControllerState, event: Event, source: str
) -> tuple[ControllerState, tuple[Command, ...]]:
    """
    Turn voice on with permission already granted.

    Recognition is started only from a resting state; during an answer it
    resumes through the normal post-answer restart.
    """
    new_state = replace(
        state,
        voice_enabled=True,
        voice_disabled_reason=None,
        access_request_pending=False,
        last_error=None,
    )

    if state.state in _ANSWER_STATES:
        return _finish(state, new_state, event, source, (
            _log(new_state, event, "voice_enabled", {"start": "deferred"}),
        ))

    new_state = replace(new_state, state=SessionState.LISTENING)
    return _finish(state, new_state, event, source, (
        StartRecognition(),
        _log(new_state, event, "voice_enabled", {"start": "now"}),
    ))


def _disable_voice(
    state: ControllerState,
    event: Event,
    reason: str,
    permission: PermissionState | None = None,
) -> tuple[ControllerState, tuple[Command, ...]]:
    """
    Turn voice off immediately.

    Recognition is stopped, any pending restart and transcript debounce are
    cancelled. AWAITING_ANSWER and SPEAKING are kept so the in-flight answer
    completes; every other state settles in VOICE_DISABLED.
    """
    next_session_state = (
        state.state if state.state in _ANSWER_STATES else SessionState.VOICE_DISABLED
    )
    new_state = replace(
        state,
        state=next_session_state,
        voice_enabled=False,
        access_request_pending=False,
        voice_disabled_reason=reason,
        listening=False,
        pending_transcript="",
        permission=permission if permission is not None else state.permission,
        last_error=None if reason == REASON_USER else reason,
    )
    return _finish(state, new_state, event, f"voice_disabled:{reason}", (
        StopRecognition(),
        CancelRestart(),
        CancelTimer(timer_id=TIMER_TRANSCRIPT_SUBMIT),
        _log(new_state, event, "voice_disabled", {"reason": reason}),
    ))


def _submit_query(
    state: ControllerState,
    event: Event,
    text: str,
    source: str,
) -> tuple[ControllerState, tuple[Command, ...]]:
    """
    Submit a query (typed text or debounced transcript).

    Any playing answer is stopped, recognition is stopped for the answer
    window, and the query becomes the latest one (last-submitted-wins).
    """
    cmds: list[Command] = []
    if state.state is SessionState.SPEAKING:
        cmds.append(StopPlayback())

    cmds.extend((
        StopRecognition(),
        CancelRestart(),
        CancelTimer(timer_id=TIMER_TRANSCRIPT_SUBMIT),
    ))

    new_state, message = _new_message(state, "user", text)
    query_id = new_state.query_seq + 1
    new_state = replace(
        new_state,
        state=SessionState.AWAITING_ANSWER,
        query_seq=query_id,
        latest_query_id=query_id,
        query_voice_enabled=state.voice_enabled,
        pending_transcript="",
        active_playback=None,
        synthesizing_for=None,
        listening=False,
    )

    cmds.extend((
        AppendMessage(message=message),
        QueryBackend(query_id=query_id, query=text),
        _log(
            new_state,
            event,
            "query_submitted",
            {"query_id": query_id, "source": source, "chars": len(text)},
        ),
    ))
    return _finish(state, new_state, event, source, tuple(cmds))


def _schedule_recovery(
    state: ControllerState,
    event: Event,
    delay_ms: int,
    decision: str,
    details: dict[str, Any] | None = None,
) -> tuple[ControllerState, tuple[Command, ...]]:
    """Recoverable recognition outcome: restart later if still listening."""
    new_state = replace(state, listening=False)
    if state.state is not SessionState.LISTENING:
        return new_state, (
            _log(new_state, event, "ignore", {
                "reason": f"{decision}_not_listening",
                **(details or {}),
            }),
        )
    if not state.voice_enabled:
        return new_state, (
            _log(new_state, event, "ignore", {
                "reason": f"{decision}_voice_disabled",
                **(details or {}),
            }),
        )
    return new_state, (
        ScheduleRestart(delay_ms=delay_ms),
        _log(new_state, event, decision, {"delay_ms": delay_ms, **(details or {})}),
    )


# =============================================================================
# Reducer entrypoint
# =============================================================================

def reduce(
    state: ControllerState, event: Event
) -> tuple[ControllerState, tuple[Command, ...]]:
    """
    Pure reducer for the voice session state machine.

    Given the current controller state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (state, event) pair is handled or explicitly ignored
    - Version-safe: ignores answers, audio and playback for superseded ids
    """

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    if isinstance(event, SessionStarted):
        new_state = replace(
            state,
            speech_supported=event.speech_supported,
            permission=event.permission,
            speech_output_available=event.speech_output_available,
        )
        return new_state, (
            _log(
                new_state,
                event,
                "session_started",
                {
                    "speech_supported": event.speech_supported,
                    "permission": event.permission.value,
                    "speech_output_available": event.speech_output_available,
                },
            ),
        )

    # ------------------------------------------------------------------
    # User input
    # ------------------------------------------------------------------
    if isinstance(event, ToggleVoice):
        if state.voice_enabled or state.access_request_pending:
            return _disable_voice(state, event, REASON_USER)

        if not state.speech_supported:
            return _ignore(state, event, "speech_not_supported")

        if state.permission is PermissionState.GRANTED:
            return _enable_voice(state, event, "toggle_voice_on")

        new_state = replace(state, access_request_pending=True)
        return new_state, (
            RequestMicrophoneAccess(),
            _log(
                new_state,
                event,
                "request_microphone_access",
                {"permission": state.permission.value},
            ),
        )

    if isinstance(event, ToggleMute):
        new_state = replace(state, muted=not state.muted)
        return new_state, (
            _log(new_state, event, "mute_toggled", {"muted": new_state.muted}),
        )

    if isinstance(event, StopSpeaking):
        if state.state is SessionState.SPEAKING:
            new_state, more = _go_rest(state, event, POST_PLAYBACK_RESTART_DELAY_MS)
            return _finish(state, new_state, event, "stop_speaking", (
                StopPlayback(),
                *more,
                _log(
                    new_state,
                    event,
                    "playback_stopped",
                    {"tag": state.active_playback},
                ),
            ))

        if state.synthesizing_for is not None:
            # Answer not audible yet; drop the synthesis result when it lands
            new_state, more = _go_rest(state, event, POST_PLAYBACK_RESTART_DELAY_MS)
            return _finish(state, new_state, event, "stop_speaking", (
                *more,
                _log(
                    new_state,
                    event,
                    "synthesis_abandoned",
                    {"message_id": state.synthesizing_for},
                ),
            ))

        return _ignore(state, event, "not_speaking")

    if isinstance(event, SubmitText):
        text = event.text.strip()
        if not text:
            return _ignore(state, event, "empty_text")
        return _submit_query(state, event, text, "submit_text")

    # ------------------------------------------------------------------
    # Permission
    # ------------------------------------------------------------------
    if isinstance(event, AccessResolved):
        if not state.access_request_pending:
            new_state = replace(state, permission=event.permission)
            return new_state, (
                _log(
                    new_state,
                    event,
                    "ignore",
                    {
                        "reason": "access_request_not_pending",
                        "permission": event.permission.value,
                    },
                ),
            )

        resolved = replace(
            state, permission=event.permission, access_request_pending=False
        )
        if event.permission is PermissionState.GRANTED:
            return _enable_voice(resolved, event, "access_granted")

        reason = _TERMINAL_PERMISSIONS.get(event.permission, REASON_PERMISSION_DENIED)
        new_state = replace(
            resolved,
            voice_disabled_reason=reason,
            last_error=reason,
            state=(
                state.state
                if state.state in _ANSWER_STATES
                else SessionState.VOICE_DISABLED
            ),
        )
        return _finish(state, new_state, event, "access_refused", (
            _log(
                new_state,
                event,
                "access_refused",
                {"permission": event.permission.value},
            ),
        ))

    if isinstance(event, PermissionChanged):
        reason = _TERMINAL_PERMISSIONS.get(event.permission)
        if reason is not None and state.voice_enabled:
            return _disable_voice(state, event, reason, permission=event.permission)

        new_state = replace(state, permission=event.permission)
        return new_state, (
            _log(
                new_state,
                event,
                "permission_changed",
                {
                    "from": state.permission.value,
                    "to": event.permission.value,
                },
            ),
        )

    # ------------------------------------------------------------------
    # Recognition
    # ------------------------------------------------------------------
    if isinstance(event, RecognitionStarted):
        if state.voice_enabled and state.state is SessionState.LISTENING:
            new_state = replace(state, listening=True)
            return new_state, (_log(new_state, event, "listening"),)

        # Stale start after toggle-off or after leaving LISTENING
        return state, (
            StopRecognition(),
            _log(state, event, "recognition_started_stale"),
        )

    if isinstance(event, RecognitionResult):
        transcript = event.transcript.strip()

        if state.state is SessionState.SPEAKING:
            return _ignore(state, event, "transcript_while_speaking")

        if not state.voice_enabled:
            return _ignore(state, event, "voice_disabled")

        if not transcript:
            return _ignore(state, event, "empty_transcript")

        if state.state not in (
            SessionState.LISTENING,
            SessionState.TRANSCRIPT_PENDING,
            SessionState.AWAITING_ANSWER,
        ):
            return _ignore(state, event, "transcript_not_expected")

        new_state = replace(
            state,
            state=SessionState.TRANSCRIPT_PENDING,
            pending_transcript=transcript,
            listening=False,
        )
        details: dict[str, Any] = {
            "chars": len(transcript),
            "confidence": event.confidence,
        }
        if state.state is SessionState.AWAITING_ANSWER:
            # Last submitted wins; the in-flight answer is appended but inert
            new_state = replace(new_state, latest_query_id=None, synthesizing_for=None)
            details["superseded_query_id"] = state.latest_query_id

        return _finish(state, new_state, event, "transcript_accepted", (
            CancelRestart(),
            CancelTimer(timer_id=TIMER_TRANSCRIPT_SUBMIT),
            StartTimer(
                timer_id=TIMER_TRANSCRIPT_SUBMIT,
                duration_ms=TRANSCRIPT_SUBMIT_DELAY_MS,
                timeout_event_type=EventType.TRANSCRIPT_DUE,
            ),
            _log(new_state, event, "transcript_accepted", details),
        ))

    if isinstance(event, RecognitionError):
        if event.code is RecognitionErrorCode.PERMISSION_DENIED:
            return _disable_voice(
                state, event, REASON_PERMISSION_DENIED, permission=PermissionState.DENIED
            )

        if event.code is RecognitionErrorCode.AUDIO_CAPTURE_UNAVAILABLE:
            return _disable_voice(
                state, event, REASON_NO_MICROPHONE, permission=PermissionState.NO_MICROPHONE
            )

        return _schedule_recovery(
            state,
            event,
            RESTART_DELAY_MS,
            "recognition_error_restart",
            {"code": event.code.value, "detail": event.detail},
        )

    if isinstance(event, RecognitionEnded):
        return _schedule_recovery(state, event, RESTART_DELAY_MS, "recognition_ended_restart")

    if isinstance(event, RecognitionStartFailed):
        return _schedule_recovery(
            state,
            event,
            START_FAILURE_RETRY_DELAY_MS,
            "recognition_start_failed_retry",
            {"reason": event.reason},
        )

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    if isinstance(event, RestartDue):
        if not state.voice_enabled:
            return _ignore(state, event, "restart_voice_disabled")
        if state.state is not SessionState.LISTENING:
            return _ignore(state, event, "restart_not_listening")
        if state.active_playback is not None:
            return _ignore(state, event, "restart_playback_active")
        return state, (
            StartRecognition(),
            _log(state, event, "recognition_restart"),
        )

    if isinstance(event, TranscriptDue):
        if state.state is not SessionState.TRANSCRIPT_PENDING:
            return _ignore(state, event, "transcript_due_not_pending")
        if not state.pending_transcript:
            return _ignore(state, event, "transcript_due_empty")
        return _submit_query(state, event, state.pending_transcript, "transcript")

    # ------------------------------------------------------------------
    # Backend Q&A
    # ------------------------------------------------------------------
    if isinstance(event, BackendAnswered):
        new_state, message = _new_message(state, "bot", format_response(event.response))
        append = AppendMessage(message=message)

        is_latest = (
            state.state is SessionState.AWAITING_ANSWER
            and event.query_id == state.latest_query_id
        )
        if not is_latest:
            return new_state, (
                append,
                _log(
                    new_state,
                    event,
                    "backend_answer_stale",
                    {"query_id": event.query_id, "message_id": message.id},
                ),
            )

        new_state = replace(new_state, latest_query_id=None)

        speak = (
            not state.muted
            and state.speech_output_available
            and state.voice_enabled == state.query_voice_enabled
            and bool(event.response.strip())
        )
        if speak:
            new_state = replace(new_state, synthesizing_for=message.id)
            return new_state, (
                append,
                SynthesizeSpeech(message_id=message.id, text=event.response),
                _log(
                    new_state,
                    event,
                    "backend_answered",
                    {"query_id": event.query_id, "message_id": message.id, "speak": True},
                ),
            )

        rest_state, more = _go_rest(new_state, event, RESTART_DELAY_MS)
        return _finish(state, rest_state, event, "backend_answered", (
            append,
            *more,
            _log(
                rest_state,
                event,
                "backend_answered",
                {"query_id": event.query_id, "message_id": message.id, "speak": False},
            ),
        ))

    if isinstance(event, BackendFailed):
        if (
            state.state is not SessionState.AWAITING_ANSWER
            or event.query_id != state.latest_query_id
        ):
            return _ignore(state, event, "backend_failure_stale")

        new_state, message = _new_message(state, "bot", BACKEND_FAILURE_TEXT)
        new_state = replace(new_state, latest_query_id=None, last_error=event.reason)
        rest_state, more = _go_rest(new_state, event, RESTART_DELAY_MS)
        return _finish(state, rest_state, event, "backend_failed", (
            AppendMessage(message=message),
            *more,
            _log(
                rest_state,
                event,
                "backend_failed",
                {"query_id": event.query_id, "reason": event.reason},
            ),
        ))

    # ------------------------------------------------------------------
    # Speech synthesis
    # ------------------------------------------------------------------
    if isinstance(event, SpeechSynthesized):
        if (
            state.state is not SessionState.AWAITING_ANSWER
            or event.message_id != state.synthesizing_for
        ):
            return _ignore(state, event, "speech_synthesized_stale")

        # Voice toggled while synthesizing: show only, do not play
        if state.voice_enabled != state.query_voice_enabled:
            rest_state, more = _go_rest(state, event, RESTART_DELAY_MS)
            return _finish(state, rest_state, event, "speech_synthesized", (
                *more,
                _log(
                    rest_state,
                    event,
                    "ignore",
                    {"reason": "speech_synthesized_stale", "message_id": event.message_id},
                ),
            ))

        new_state = replace(
            state,
            state=SessionState.SPEAKING,
            synthesizing_for=None,
            active_playback=event.message_id,
            listening=False,
        )
        return _finish(state, new_state, event, "speech_synthesized", (
            StopRecognition(),
            CancelRestart(),
            PlayAudio(tag=event.message_id, audio=event.audio),
            _log(
                new_state,
                event,
                "play_audio",
                {"tag": event.message_id, "bytes": len(event.audio)},
            ),
        ))

    if isinstance(event, SpeechSynthesisFailed):
        if (
            state.state is not SessionState.AWAITING_ANSWER
            or event.message_id != state.synthesizing_for
        ):
            return _ignore(state, event, "speech_synthesis_failed_stale")

        new_state, more = _go_rest(state, event, POST_PLAYBACK_RESTART_DELAY_MS)
        return _finish(state, new_state, event, "speech_synthesis_failed", (
            *more,
            _log(
                new_state,
                event,
                "speech_synthesis_failed",
                {"message_id": event.message_id, "reason": event.reason},
            ),
        ))

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    if isinstance(event, (PlaybackCompleted, PlaybackFailed)):
        if state.state is not SessionState.SPEAKING or event.tag != state.active_playback:
            return _ignore(state, event, "playback_event_stale")

        details = {"tag": event.tag}
        if isinstance(event, PlaybackFailed):
            details["reason"] = event.reason

        new_state, more = _go_rest(state, event, POST_PLAYBACK_RESTART_DELAY_MS)
        return _finish(state, new_state, event, "playback_finished", (
            *more,
            _log(
                new_state,
                event,
                "playback_completed"
                if isinstance(event, PlaybackCompleted)
                else "playback_failed",
                details,
            ),
        ))

    return _ignore(state, event, "unhandled_event")
