"""
Side-effect command definitions for the voice session controller.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
- Reducer logic remains pure and deterministic.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from context.chat_log import Message
from orchestrator.events import EventType


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and runtime dispatch.
    """

    # Recognition
    START_RECOGNITION = "START_RECOGNITION"
    STOP_RECOGNITION = "STOP_RECOGNITION"

    # Restart scheduler
    SCHEDULE_RESTART = "SCHEDULE_RESTART"
    CANCEL_RESTART = "CANCEL_RESTART"

    # Permission
    REQUEST_MICROPHONE_ACCESS = "REQUEST_MICROPHONE_ACCESS"

    # Chat log
    APPEND_MESSAGE = "APPEND_MESSAGE"

    # Backend / TTS
    QUERY_BACKEND = "QUERY_BACKEND"
    SYNTHESIZE_SPEECH = "SYNTHESIZE_SPEECH"

    # Playback
    PLAY_AUDIO = "PLAY_AUDIO"
    STOP_PLAYBACK = "STOP_PLAYBACK"

    # Timers
    START_TIMER = "START_TIMER"
    CANCEL_TIMER = "CANCEL_TIMER"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Recognition Commands
# =============================================================================

@dataclass(frozen=True)
class StartRecognition(Command):
    """Request the recognition wrapper to listen for one utterance."""
    command_type: CommandType = CommandType.START_RECOGNITION


@dataclass(frozen=True)
class StopRecognition(Command):
    """Request the recognition wrapper to stop (idempotent)."""
    command_type: CommandType = CommandType.STOP_RECOGNITION


# =============================================================================
# Restart Scheduler Commands
# =============================================================================

@dataclass(frozen=True)
class ScheduleRestart(Command):
    """
    Arm the restart scheduler, superseding any pending restart.

    On expiry the runtime injects RestartDue if the scheduler guard holds.
    """
    delay_ms: int
    command_type: CommandType = CommandType.SCHEDULE_RESTART


@dataclass(frozen=True)
class CancelRestart(Command):
    """Cancel any pending restart (unconditional)."""
    command_type: CommandType = CommandType.CANCEL_RESTART


# =============================================================================
# Permission Commands
# =============================================================================

@dataclass(frozen=True)
class RequestMicrophoneAccess(Command):
    """
    Ask the permission monitor to prompt for access.

    The runtime must answer with exactly one AccessResolved event.
    """
    command_type: CommandType = CommandType.REQUEST_MICROPHONE_ACCESS


# =============================================================================
# Chat Log Commands
# =============================================================================

@dataclass(frozen=True)
class AppendMessage(Command):
    """Append one message to the chat log and publish it to the UI."""
    message: Message
    command_type: CommandType = CommandType.APPEND_MESSAGE


# =============================================================================
# Backend / Speech Commands
# =============================================================================

@dataclass(frozen=True)
class QueryBackend(Command):
    """
    Send a query to the backend Q&A service.

    The adapter must emit exactly one BackendAnswered or BackendFailed
    carrying the same query_id.
    """
    query_id: int
    query: str
    command_type: CommandType = CommandType.QUERY_BACKEND


@dataclass(frozen=True)
class SynthesizeSpeech(Command):
    """
    Synthesize the raw answer text for a bot message.

    The adapter must emit exactly one SpeechSynthesized or
    SpeechSynthesisFailed carrying the same message_id.
    """
    message_id: str
    text: str
    command_type: CommandType = CommandType.SYNTHESIZE_SPEECH


# =============================================================================
# Playback Commands
# =============================================================================

@dataclass(frozen=True)
class PlayAudio(Command):
    """Play one synthesized unit, tagged with its message id."""
    tag: str
    audio: bytes
    command_type: CommandType = CommandType.PLAY_AUDIO


@dataclass(frozen=True)
class StopPlayback(Command):
    """Halt the active playback unit silently (idempotent)."""
    command_type: CommandType = CommandType.STOP_PLAYBACK


# =============================================================================
# Timer Commands
# =============================================================================

@dataclass(frozen=True)
class StartTimer(Command):
    """
    Request to start a named timer.

    On expiration, the runtime must inject the specified timeout event.
    """
    timer_id: str
    duration_ms: int
    timeout_event_type: EventType
    command_type: CommandType = CommandType.START_TIMER


@dataclass(frozen=True)
class CancelTimer(Command):
    """Request to cancel a previously scheduled timer."""
    timer_id: str
    command_type: CommandType = CommandType.CANCEL_TIMER


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
