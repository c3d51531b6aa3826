"""
UI status snapshot derived from controller state.

Pure and stateless. The runtime publishes the snapshot whenever it changes.
"""

from __future__ import annotations

from typing import Any

from orchestrator.enums.permission import PermissionState
from orchestrator.enums.state import SessionState
from orchestrator.state_dataclass import ControllerState


def voice_status_line(state: ControllerState) -> str:
    """Human-readable voice status, most important condition first."""
    if not state.speech_supported:
        return "Speech recognition not supported on this device."
    if state.permission is PermissionState.DENIED:
        return (
            "Microphone access denied. Please enable microphone permissions "
            "and toggle voice on again."
        )
    if state.permission is PermissionState.NO_MICROPHONE:
        return "No microphone found. Connect a microphone and toggle voice on again."
    if state.access_request_pending:
        return "Requesting microphone access..."
    if state.state is SessionState.SPEAKING:
        if state.voice_enabled:
            return "AI is speaking - Voice input paused"
        return "AI is speaking..."
    if state.state is SessionState.AWAITING_ANSWER:
        return "AI is thinking..."
    if not state.voice_enabled:
        return "Voice input off"
    if state.state is SessionState.TRANSCRIPT_PENDING:
        return "Processing voice input..."
    if state.listening:
        return "Listening... Speak now!"
    return "Voice input ready - Speak to activate"


def describe_status(state: ControllerState) -> dict[str, Any]:
    """
    Build the status indicators shown by the UI.

    Keys are stable; values are JSON-serializable.
    """
    return {
        "session_state": state.state.value,
        "speech_supported": state.speech_supported,
        "speech_output_available": state.speech_output_available,
        "permission": state.permission.value,
        "voice_enabled": state.voice_enabled,
        "muted": state.muted,
        "listening": state.listening,
        "speaking": state.state is SessionState.SPEAKING,
        "speaking_id": state.active_playback,
        "processing_voice": state.state is SessionState.TRANSCRIPT_PENDING,
        "loading": state.state is SessionState.AWAITING_ANSWER,
        "voice_status": voice_status_line(state),
        "last_error": state.last_error,
    }
