"""
Authoritative session state enumeration.

Rules:
- This enum defines ONLY the controller states.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class SessionState(str, Enum):
    """
    High-level deterministic control states for the single voice session.

    These states represent controller intent, NOT the lifecycle of the
    recognition engine or the audio output (those are owned by adapters).

    IDLE:
        Voice has never been enabled (or was enabled and left cleanly);
        text input only.

    VOICE_DISABLED:
        Voice was explicitly turned off or failed terminally
        (permission denied, no microphone).

    LISTENING:
        Voice enabled; recognition running or a restart is pending.

    TRANSCRIPT_PENDING:
        A transcript was accepted and is waiting for the submit debounce.

    AWAITING_ANSWER:
        A query is in flight (and, once answered, speech may be synthesizing).

    SPEAKING:
        Exactly one answer is playing.
    """

    IDLE = "IDLE"
    VOICE_DISABLED = "VOICE_DISABLED"
    LISTENING = "LISTENING"
    TRANSCRIPT_PENDING = "TRANSCRIPT_PENDING"
    AWAITING_ANSWER = "AWAITING_ANSWER"
    SPEAKING = "SPEAKING"
