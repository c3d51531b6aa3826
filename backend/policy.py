"""
POLICY-AS-CONSTANTS
-------------------
Single source of truth for all timing and behavioral policy in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Recognition restart policy
# =============================================================================

# Generic restart after `ended`, `no-speech` or any other recoverable error
RESTART_DELAY_MS: Final[int] = 1_000

# Retry after the engine refused to start (platform "already started" etc.)
START_FAILURE_RETRY_DELAY_MS: Final[int] = 2_000

# Resume listening after an answer finished playing (or was stopped)
POST_PLAYBACK_RESTART_DELAY_MS: Final[int] = 500

# =============================================================================
# Recognition engine sequencing
# =============================================================================

# Wait between the best-effort stop and the next start of the engine.
# Must be >= 150ms to avoid the platform "already started" failure mode.
RECOGNITION_SETTLE_DELAY_MS: Final[int] = 200

RECOGNITION_DEFAULT_LANGUAGE: Final[str] = "en-US"
RECOGNITION_MAX_ALTERNATIVES: Final[int] = 1

# =============================================================================
# Transcript submission
# =============================================================================

# Debounce between an accepted transcript and the backend query
TRANSCRIPT_SUBMIT_DELAY_MS: Final[int] = 500

# =============================================================================
# Permission monitoring
# =============================================================================

PERMISSION_POLL_INTERVAL_S: Final[float] = 2.0

# =============================================================================
# Backend Q&A
# =============================================================================

BACKEND_FAILURE_TEXT: Final[str] = "⚠️ Failed to connect to assistant."

# =============================================================================
# Speech synthesis
# =============================================================================

TTS_DEFAULT_MODEL: Final[str] = "tts-1-hd"
TTS_DEFAULT_VOICE: Final[str] = "nova"

# WAV decodes through libsndfile without an mp3 codec
TTS_RESPONSE_FORMAT: Final[str] = "wav"

# =============================================================================
# UI control channel
# =============================================================================

# Pending outbound control messages kept while no client drains them;
# SESSION_INIT resends the full status and history on connect
CONTROL_QUEUE_MAX_DEPTH: Final[int] = 256

# =============================================================================
# Helper Functions
# =============================================================================

def ms_to_seconds(duration_ms: int) -> float:
    """
    Convert a policy duration in milliseconds to seconds for asyncio.sleep.

    Defensive behavior:
    - Negative input returns 0.0 instead of propagating an error.
    """
    if duration_ms <= 0:
        return 0.0
    return duration_ms / 1000.0
