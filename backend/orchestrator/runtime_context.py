"""
Runtime execution context.

Provides Runtime with live access to session-owned imperative resources
needed for command execution and side effects (wrappers, adapters, output).

This module contains:
- Narrow Protocols (capabilities, not implementations)
- Zero orchestration logic
- Zero state mutation
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol, runtime_checkable

from orchestrator.enums.permission import PermissionState

if TYPE_CHECKING:
    from context.chat_log import Message
    from session.voice_session import VoiceSession


# ---------------------------------------------------------------------
# Component Protocols
# ---------------------------------------------------------------------

@runtime_checkable
class RecognitionProtocol(Protocol):
    """Recognition session wrapper (idempotent start/stop, owns flags)."""

    @property
    def is_busy(self) -> bool: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


@runtime_checkable
class PlaybackProtocol(Protocol):
    """Single-slot playback session."""

    @property
    def is_active(self) -> bool: ...

    async def play(self, audio: bytes, tag: str) -> Any: ...

    async def stop(self) -> None: ...


class SpeechSupportProtocol(Protocol):
    supported: bool
    reason: str | None


@runtime_checkable
class PermissionMonitorProtocol(Protocol):
    def check_support(self) -> SpeechSupportProtocol: ...

    async def query_permission(self) -> PermissionState: ...

    async def request_access(self) -> PermissionState: ...

    def subscribe(
        self, callback: Callable[[PermissionState], Awaitable[None]]
    ) -> Callable[[], None]: ...


@runtime_checkable
class BackendAdapterProtocol(Protocol):
    """
    Contract:
    - query() returns immediately
    - Exactly one BackendAnswered or BackendFailed per query_id
    """

    async def query(self, *, query_id: int, query: str) -> None: ...


@runtime_checkable
class TTSAdapterProtocol(Protocol):
    """
    Contract:
    - synthesize() returns immediately
    - Exactly one SpeechSynthesized or SpeechSynthesisFailed per message_id
    """

    async def synthesize(self, *, message_id: str, text: str) -> None: ...


# ---------------------------------------------------------------------
# Runtime Execution Context
# ---------------------------------------------------------------------

class RuntimeExecutionContext:
    """
    Imperative execution context for Runtime.

    This object provides *live views* into session-owned resources
    so Runtime does not need to synchronize or cache anything.

    Runtime is allowed to:
    - Call wrappers and adapters
    - Append to the chat log and publish status

    Runtime is NOT allowed to:
    - Mutate session fields directly
    - Perform orchestration decisions
    """

    def __init__(self, session: VoiceSession) -> None:
        self.session = session

    # ----------------------------
    # Session metadata
    # ----------------------------

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def speech_output_available(self) -> bool:
        return self.session.tts_adapter is not None

    # ----------------------------
    # Components
    # ----------------------------

    @property
    def recognition(self) -> RecognitionProtocol | None:
        return self.session.recognition

    @property
    def playback(self) -> PlaybackProtocol | None:
        return self.session.playback

    @property
    def permission_monitor(self) -> PermissionMonitorProtocol | None:
        return self.session.permission_monitor

    @property
    def backend_adapter(self) -> BackendAdapterProtocol | None:
        return self.session.backend_adapter

    @property
    def tts_adapter(self) -> TTSAdapterProtocol | None:
        return self.session.tts_adapter

    # ----------------------------
    # Output
    # ----------------------------

    def append_message(self, message: Message) -> None:
        self.session.append_message(message)

    def publish_status(self, status: dict[str, Any]) -> None:
        self.session.publish_status(status)
