"""
Unified event definitions for the voice session reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Sources:
- User input surface (toggle voice/mute, stop speaking, submit text)
- Permission monitor
- Recognition wrapper
- Restart scheduler and runtime timers
- Backend Q&A and speech synthesis adapters
- Playback session
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from orchestrator.enums.permission import PermissionState
from orchestrator.enums.recognition_error import RecognitionErrorCode


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    SESSION_STARTED = "SESSION_STARTED"

    # ------------------------------------------------------------------
    # User input
    # ------------------------------------------------------------------
    TOGGLE_VOICE = "TOGGLE_VOICE"
    TOGGLE_MUTE = "TOGGLE_MUTE"
    STOP_SPEAKING = "STOP_SPEAKING"
    SUBMIT_TEXT = "SUBMIT_TEXT"

    # ------------------------------------------------------------------
    # Permission
    # ------------------------------------------------------------------
    ACCESS_RESOLVED = "ACCESS_RESOLVED"
    PERMISSION_CHANGED = "PERMISSION_CHANGED"

    # ------------------------------------------------------------------
    # Recognition
    # ------------------------------------------------------------------
    RECOGNITION_STARTED = "RECOGNITION_STARTED"
    RECOGNITION_RESULT = "RECOGNITION_RESULT"
    RECOGNITION_ERROR = "RECOGNITION_ERROR"
    RECOGNITION_ENDED = "RECOGNITION_ENDED"
    RECOGNITION_START_FAILED = "RECOGNITION_START_FAILED"

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    RESTART_DUE = "RESTART_DUE"
    TRANSCRIPT_DUE = "TRANSCRIPT_DUE"

    # ------------------------------------------------------------------
    # Backend Q&A
    # ------------------------------------------------------------------
    BACKEND_ANSWERED = "BACKEND_ANSWERED"
    BACKEND_FAILED = "BACKEND_FAILED"

    # ------------------------------------------------------------------
    # Speech synthesis
    # ------------------------------------------------------------------
    SPEECH_SYNTHESIZED = "SPEECH_SYNTHESIZED"
    SPEECH_SYNTHESIS_FAILED = "SPEECH_SYNTHESIS_FAILED"

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    PLAYBACK_COMPLETED = "PLAYBACK_COMPLETED"
    PLAYBACK_FAILED = "PLAYBACK_FAILED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# Session Events
# =============================================================================

@dataclass(frozen=True)
class SessionStarted(Event):
    """
    Controller initialized.

    Carries the capability probe results taken once at startup.
    """
    speech_supported: bool
    permission: PermissionState
    speech_output_available: bool


# =============================================================================
# User Input Events
# =============================================================================

@dataclass(frozen=True)
class ToggleVoice(Event):
    """User pressed the voice toggle. The reducer decides on/off from state."""


@dataclass(frozen=True)
class ToggleMute(Event):
    """User pressed the mute toggle."""


@dataclass(frozen=True)
class StopSpeaking(Event):
    """User asked to stop the answer being read aloud."""


@dataclass(frozen=True)
class SubmitText(Event):
    """User submitted a typed query."""
    text: str


# =============================================================================
# Permission Events
# =============================================================================

@dataclass(frozen=True)
class AccessResolved(Event):
    """Result of an explicit microphone access request."""
    permission: PermissionState


@dataclass(frozen=True)
class PermissionChanged(Event):
    """Platform reported a permission transition (e.g. device removed)."""
    permission: PermissionState


# =============================================================================
# Recognition Events
# =============================================================================

@dataclass(frozen=True)
class RecognitionStarted(Event):
    """Engine confirmed it is capturing."""


@dataclass(frozen=True)
class RecognitionResult(Event):
    """
    Final transcript of one utterance.

    Never partial: the engine runs without interim results.
    """
    transcript: str
    confidence: float


@dataclass(frozen=True)
class RecognitionError(Event):
    """Engine reported a failure, normalized by the recognition wrapper."""
    code: RecognitionErrorCode
    detail: str | None = None


@dataclass(frozen=True)
class RecognitionEnded(Event):
    """Engine finished an utterance (with or without a result)."""


@dataclass(frozen=True)
class RecognitionStartFailed(Event):
    """Engine refused to start (raised synchronously on start)."""
    reason: str


# =============================================================================
# Timer Events
# =============================================================================

@dataclass(frozen=True)
class RestartDue(Event):
    """
    Restart scheduler fired and its guard held
    (recognition idle, no playback active).
    """


@dataclass(frozen=True)
class TranscriptDue(Event):
    """Transcript submit debounce elapsed."""


# =============================================================================
# Backend Q&A Events
# =============================================================================

@dataclass(frozen=True)
class BackendAnswered(Event):
    """Backend returned an answer for query_id."""
    query_id: int
    response: str


@dataclass(frozen=True)
class BackendFailed(Event):
    """Backend request failed (transport error, non-2xx, malformed body)."""
    query_id: int
    reason: str


# =============================================================================
# Speech Synthesis Events
# =============================================================================

@dataclass(frozen=True)
class SpeechSynthesized(Event):
    """Synthesized audio for a bot message is ready to play."""
    message_id: str
    audio: bytes


@dataclass(frozen=True)
class SpeechSynthesisFailed(Event):
    """Synthesis request failed."""
    message_id: str
    reason: str


# =============================================================================
# Playback Events
# =============================================================================

@dataclass(frozen=True)
class PlaybackCompleted(Event):
    """Playback unit finished naturally."""
    tag: str


@dataclass(frozen=True)
class PlaybackFailed(Event):
    """
    Playback unit failed to decode or play.

    Handled exactly like PlaybackCompleted; reason is for diagnostics only.
    """
    tag: str
    reason: str
