# pylint: disable=missing-module-docstring,missing-function-docstring
from orchestrator.reducer import (
    REASON_NO_MICROPHONE,
    REASON_PERMISSION_DENIED,
    REASON_USER,
    TIMER_TRANSCRIPT_SUBMIT,
    reduce,
)
from orchestrator.state_dataclass import ControllerState
from orchestrator.enums.permission import PermissionState
from orchestrator.enums.recognition_error import RecognitionErrorCode
from orchestrator.enums.state import SessionState

from orchestrator.events import (
    AccessResolved,
    EventType,
    PermissionChanged,
    RecognitionEnded,
    RecognitionError,
    RecognitionResult,
    RecognitionStarted,
    RecognitionStartFailed,
    RestartDue,
    SessionStarted,
    ToggleMute,
    ToggleVoice,
)

from orchestrator.commands import (
    CancelRestart,
    CancelTimer,
    Command,
    LogEvent,
    RequestMicrophoneAccess,
    ScheduleRestart,
    StartRecognition,
    StopPlayback,
    StopRecognition,
)


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def make_state(**overrides) -> ControllerState:
    base = {
        "speech_supported": True,
        "speech_output_available": True,
        "permission": PermissionState.GRANTED,
    }
    base.update(overrides)
    return ControllerState(**base)


def listening_state(**overrides) -> ControllerState:
    fields = {
        "state": SessionState.LISTENING,
        "voice_enabled": True,
        "listening": True,
    }
    fields.update(overrides)
    return make_state(**fields)


def toggle_voice() -> ToggleVoice:
    return ToggleVoice(event_type=EventType.TOGGLE_VOICE, ts_ms=0)


def access_resolved(permission: PermissionState) -> AccessResolved:
    return AccessResolved(
        event_type=EventType.ACCESS_RESOLVED, ts_ms=0, permission=permission
    )


def recognition_error(code: RecognitionErrorCode) -> RecognitionError:
    return RecognitionError(event_type=EventType.RECOGNITION_ERROR, ts_ms=0, code=code)


def restart_due() -> RestartDue:
    return RestartDue(event_type=EventType.RESTART_DUE, ts_ms=0)


def effects(commands: tuple[Command, ...]) -> list[Command]:
    return [c for c in commands if not isinstance(c, LogEvent)]


def decisions(commands: tuple[Command, ...]) -> list[str]:
    return [c.event["decision"] for c in commands if isinstance(c, LogEvent)]


# ---------------------------------------------------------------------
# Session start
# ---------------------------------------------------------------------

def test_session_started_records_capabilities_without_side_effects():
    state, cmds = reduce(
        ControllerState(),
        SessionStarted(
            event_type=EventType.SESSION_STARTED,
            ts_ms=0,
            speech_supported=True,
            permission=PermissionState.PROMPT,
            speech_output_available=False,
        ),
    )

    assert state.state is SessionState.IDLE
    assert state.speech_supported is True
    assert state.permission is PermissionState.PROMPT
    assert state.speech_output_available is False
    assert effects(cmds) == []
    assert decisions(cmds) == ["session_started"]


# ---------------------------------------------------------------------
# Toggle on
# ---------------------------------------------------------------------

def test_toggle_on_with_granted_permission_starts_recognition():
    state, cmds = reduce(make_state(), toggle_voice())

    assert state.voice_enabled is True
    assert state.state is SessionState.LISTENING
    assert effects(cmds) == [StartRecognition()]
    # state_changed is always the final record
    assert decisions(cmds)[-1] == "state_changed"
    assert cmds[-1].event["details"] == {
        "from_state": "IDLE",
        "to_state": "LISTENING",
        "source": "toggle_voice_on",
    }


def test_recognition_started_marks_listening():
    state, _ = reduce(make_state(), toggle_voice())
    state, cmds = reduce(
        state, RecognitionStarted(event_type=EventType.RECOGNITION_STARTED, ts_ms=0)
    )

    assert state.listening is True
    assert effects(cmds) == []


def test_toggle_on_without_speech_support_is_ignored():
    before = make_state(speech_supported=False)
    state, cmds = reduce(before, toggle_voice())

    assert state == before
    assert decisions(cmds) == ["ignore"]
    assert cmds[0].event["details"]["reason"] == "speech_not_supported"


def test_toggle_on_without_permission_requests_access():
    state, cmds = reduce(make_state(permission=PermissionState.PROMPT), toggle_voice())

    assert state.voice_enabled is False
    assert state.access_request_pending is True
    assert state.state is SessionState.IDLE
    assert effects(cmds) == [RequestMicrophoneAccess()]


def test_access_granted_enables_voice():
    state, _ = reduce(make_state(permission=PermissionState.PROMPT), toggle_voice())
    state, cmds = reduce(state, access_resolved(PermissionState.GRANTED))

    assert state.voice_enabled is True
    assert state.access_request_pending is False
    assert state.permission is PermissionState.GRANTED
    assert state.state is SessionState.LISTENING
    assert effects(cmds) == [StartRecognition()]


def test_access_denied_leaves_voice_disabled_with_reason():
    state, _ = reduce(make_state(permission=PermissionState.PROMPT), toggle_voice())
    state, cmds = reduce(state, access_resolved(PermissionState.DENIED))

    assert state.voice_enabled is False
    assert state.state is SessionState.VOICE_DISABLED
    assert state.permission is PermissionState.DENIED
    assert state.voice_disabled_reason == REASON_PERMISSION_DENIED
    assert state.last_error == REASON_PERMISSION_DENIED
    assert StartRecognition() not in cmds


def test_access_without_microphone_records_no_microphone():
    state, _ = reduce(make_state(permission=PermissionState.UNKNOWN), toggle_voice())
    state, _ = reduce(state, access_resolved(PermissionState.NO_MICROPHONE))

    assert state.permission is PermissionState.NO_MICROPHONE
    assert state.voice_disabled_reason == REASON_NO_MICROPHONE


def test_toggle_while_access_pending_cancels_request():
    state, _ = reduce(make_state(permission=PermissionState.PROMPT), toggle_voice())
    state, cmds = reduce(state, toggle_voice())

    assert state.access_request_pending is False
    assert state.voice_enabled is False
    assert state.state is SessionState.VOICE_DISABLED
    assert "voice_disabled" in decisions(cmds)

    # A late grant only records the permission
    state, cmds = reduce(state, access_resolved(PermissionState.GRANTED))
    assert state.voice_enabled is False
    assert state.permission is PermissionState.GRANTED
    assert effects(cmds) == []


# ---------------------------------------------------------------------
# Toggle off
# ---------------------------------------------------------------------

def test_toggle_off_stops_everything_immediately():
    state, cmds = reduce(listening_state(), toggle_voice())

    assert state.voice_enabled is False
    assert state.listening is False
    assert state.state is SessionState.VOICE_DISABLED
    assert state.voice_disabled_reason == REASON_USER
    assert state.last_error is None
    assert effects(cmds) == [
        StopRecognition(),
        CancelRestart(),
        CancelTimer(timer_id=TIMER_TRANSCRIPT_SUBMIT),
    ]


def test_toggle_off_drops_pending_transcript():
    state, _ = reduce(
        listening_state(),
        RecognitionResult(
            event_type=EventType.RECOGNITION_RESULT,
            ts_ms=0,
            transcript="hello",
            confidence=0.8,
        ),
    )
    assert state.state is SessionState.TRANSCRIPT_PENDING

    state, cmds = reduce(state, toggle_voice())

    assert state.pending_transcript == ""
    assert state.state is SessionState.VOICE_DISABLED
    assert CancelTimer(timer_id=TIMER_TRANSCRIPT_SUBMIT) in cmds


def test_toggle_off_while_speaking_lets_answer_finish():
    before = listening_state(
        state=SessionState.SPEAKING, active_playback="msg_2"
    )
    state, cmds = reduce(before, toggle_voice())

    assert state.state is SessionState.SPEAKING
    assert state.active_playback == "msg_2"
    assert state.voice_enabled is False
    assert StopPlayback() not in cmds


def test_toggle_mute_flips_flag_only():
    state, cmds = reduce(listening_state(), ToggleMute(event_type=EventType.TOGGLE_MUTE, ts_ms=0))

    assert state.muted is True
    assert state.state is SessionState.LISTENING
    assert effects(cmds) == []

    state, _ = reduce(state, ToggleMute(event_type=EventType.TOGGLE_MUTE, ts_ms=0))
    assert state.muted is False


# ---------------------------------------------------------------------
# Permission changes
# ---------------------------------------------------------------------

def test_permission_revoked_while_listening_disables_voice():
    state, cmds = reduce(
        listening_state(),
        PermissionChanged(
            event_type=EventType.PERMISSION_CHANGED,
            ts_ms=0,
            permission=PermissionState.DENIED,
        ),
    )

    assert state.voice_enabled is False
    assert state.permission is PermissionState.DENIED
    assert state.state is SessionState.VOICE_DISABLED
    assert StopRecognition() in cmds


def test_permission_change_while_voice_off_is_recorded():
    state, cmds = reduce(
        make_state(permission=PermissionState.PROMPT),
        PermissionChanged(
            event_type=EventType.PERMISSION_CHANGED,
            ts_ms=0,
            permission=PermissionState.GRANTED,
        ),
    )

    assert state.permission is PermissionState.GRANTED
    assert state.voice_enabled is False
    assert effects(cmds) == []


# ---------------------------------------------------------------------
# Recognition errors and restarts
# ---------------------------------------------------------------------

def test_permission_error_is_terminal_and_blocks_restart():
    state, cmds = reduce(
        listening_state(), recognition_error(RecognitionErrorCode.PERMISSION_DENIED)
    )

    assert state.voice_enabled is False
    assert state.permission is PermissionState.DENIED
    assert not any(isinstance(c, ScheduleRestart) for c in cmds)

    # A restart firing after the normal delay does nothing
    state, cmds = reduce(state, restart_due())
    assert effects(cmds) == []
    assert cmds[0].event["details"]["reason"] == "restart_voice_disabled"


def test_audio_capture_error_records_no_microphone():
    state, _ = reduce(
        listening_state(),
        recognition_error(RecognitionErrorCode.AUDIO_CAPTURE_UNAVAILABLE),
    )

    assert state.voice_enabled is False
    assert state.permission is PermissionState.NO_MICROPHONE
    assert state.voice_disabled_reason == REASON_NO_MICROPHONE


def test_no_speech_schedules_generic_restart():
    state, cmds = reduce(
        listening_state(), recognition_error(RecognitionErrorCode.NO_SPEECH_DETECTED)
    )

    assert state.voice_enabled is True
    assert state.listening is False
    assert effects(cmds) == [ScheduleRestart(delay_ms=1000)]


def test_ended_schedules_generic_restart():
    state, cmds = reduce(
        listening_state(), RecognitionEnded(event_type=EventType.RECOGNITION_ENDED, ts_ms=0)
    )

    assert state.listening is False
    assert effects(cmds) == [ScheduleRestart(delay_ms=1000)]


def test_start_failure_retries_after_longer_delay():
    _, cmds = reduce(
        listening_state(),
        RecognitionStartFailed(
            event_type=EventType.RECOGNITION_START_FAILED, ts_ms=0, reason="busy"
        ),
    )

    assert effects(cmds) == [ScheduleRestart(delay_ms=2000)]


def test_ended_after_accepted_transcript_does_not_restart():
    state, _ = reduce(
        listening_state(),
        RecognitionResult(
            event_type=EventType.RECOGNITION_RESULT,
            ts_ms=0,
            transcript="hello",
            confidence=0.9,
        ),
    )
    state, cmds = reduce(
        state, RecognitionEnded(event_type=EventType.RECOGNITION_ENDED, ts_ms=0)
    )

    assert state.state is SessionState.TRANSCRIPT_PENDING
    assert effects(cmds) == []


def test_restart_due_starts_recognition_when_listening():
    state = listening_state(listening=False)
    _, cmds = reduce(state, restart_due())

    assert effects(cmds) == [StartRecognition()]


def test_stale_recognition_start_is_stopped():
    state, cmds = reduce(
        make_state(state=SessionState.VOICE_DISABLED),
        RecognitionStarted(event_type=EventType.RECOGNITION_STARTED, ts_ms=0),
    )

    assert state.listening is False
    assert effects(cmds) == [StopRecognition()]
