"""
Authoritative controller state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
- Recognition flags (starting/active) and the restart timer handle are NOT
  mirrored here; they are owned by their wrappers.
"""
from __future__ import annotations

from dataclasses import dataclass

from orchestrator.enums.permission import PermissionState
from orchestrator.enums.state import SessionState


@dataclass(frozen=True)
class ControllerState:
    """Immutable snapshot of all controller-owned state."""

    # ------------------------------------------------------------------
    # Control state
    # ------------------------------------------------------------------
    state: SessionState = SessionState.IDLE

    # ------------------------------------------------------------------
    # Capabilities (probed once at startup)
    # ------------------------------------------------------------------
    speech_supported: bool = False
    speech_output_available: bool = False
    permission: PermissionState = PermissionState.UNKNOWN

    # ------------------------------------------------------------------
    # User toggles
    # ------------------------------------------------------------------
    voice_enabled: bool = False
    muted: bool = False

    # True while an explicit access request is outstanding.
    # Cleared by AccessResolved or by toggling voice off.
    access_request_pending: bool = False

    # Set when voice was turned off explicitly or by a terminal error.
    # Decides between IDLE and VOICE_DISABLED as the resting state.
    voice_disabled_reason: str | None = None

    # ------------------------------------------------------------------
    # Recognition (status only)
    # ------------------------------------------------------------------
    # True between RecognitionStarted and the next error/end/stop.
    listening: bool = False

    # Transcript accepted and waiting for the submit debounce
    pending_transcript: str = ""

    # ------------------------------------------------------------------
    # Backend Q&A
    # ------------------------------------------------------------------
    # Only the latest submitted query drives the session.
    latest_query_id: int | None = None

    # voice_enabled at submission time; re-checked when the answer returns
    query_voice_enabled: bool = False

    # ------------------------------------------------------------------
    # Speech output
    # ------------------------------------------------------------------
    # Bot message id whose audio is being synthesized
    synthesizing_for: str | None = None

    # Bot message id of the playing unit (non-null iff SPEAKING)
    active_playback: str | None = None

    # ------------------------------------------------------------------
    # Monotonic counters
    # ------------------------------------------------------------------
    message_seq: int = 0
    query_seq: int = 0

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    last_error: str | None = None
