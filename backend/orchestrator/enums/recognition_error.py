"""
Normalized recognition error codes.

Rules:
- Engine-specific codes are mapped onto this enum by the recognition wrapper.
- Terminal vs. recoverable handling is decided by the reducer, not here.
"""

from __future__ import annotations

from enum import Enum


class RecognitionErrorCode(str, Enum):
    """
    Recognition failures the controller distinguishes.

    PERMISSION_DENIED and AUDIO_CAPTURE_UNAVAILABLE end the voice session;
    NO_SPEECH_DETECTED and OTHER are retried by the restart scheduler.
    """

    PERMISSION_DENIED = "PermissionDenied"
    NO_SPEECH_DETECTED = "NoSpeechDetected"
    AUDIO_CAPTURE_UNAVAILABLE = "AudioCaptureUnavailable"
    OTHER = "Other"
