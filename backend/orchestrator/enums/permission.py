"""
Microphone permission enumeration.

Permission is orthogonal to session state:
- State answers: "What is the controller doing?"
- Permission answers: "May the controller capture audio at all?"
"""

from __future__ import annotations

from enum import Enum


class PermissionState(str, Enum):
    """
    Microphone authorization as last reported by the permission monitor.

    UNKNOWN:
        The platform cannot report permission without a probe.

    PROMPT:
        Access has not been decided yet; a request will prompt.

    GRANTED / DENIED:
        Result of the last request or platform report.

    NO_MICROPHONE:
        No capture device is present.
    """

    UNKNOWN = "unknown"
    PROMPT = "prompt"
    GRANTED = "granted"
    DENIED = "denied"
    NO_MICROPHONE = "no-microphone"
