"""
Voice session container.

- Owns the chat log and the outbound control queue
- Holds the wired components (wrappers, adapters, runtime)
- Owned and mutated by SessionGateway
- NOT a state machine
- Contains no orchestration logic
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from context.chat_log import ChatLog, Message
from observability.logger import log_event
from orchestrator.runtime import Runtime
from policy import CONTROL_QUEUE_MAX_DEPTH


# ---------------------------------------------------------------------
# VoiceSession
# ---------------------------------------------------------------------


@dataclass
class VoiceSession:
    """Mutable runtime container for the single voice session."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Chat log (append-only, process lifetime)
    # ------------------------------------------------------------------

    chat_log: ChatLog = field(init=False)

    # Last published status snapshot (for SESSION_INIT and GET /status)
    status: dict[str, Any] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Runtime (executes commands + owns authoritative state)
    # ------------------------------------------------------------------

    runtime: Runtime | None = None

    # ------------------------------------------------------------------
    # Components (concrete, side-effectful)
    # ------------------------------------------------------------------

    recognition: Any = None         # RecognitionSession
    playback: Any = None            # PlaybackSession
    permission_monitor: Any = None  # PermissionMonitor
    backend_adapter: Any = None     # BackendQAAdapter
    tts_adapter: Any = None         # OpenAITTSAdapter (None: answers are not spoken)

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def __post_init__(self) -> None:
        self.chat_log = ChatLog(session_id=self.session_id)
        self._control_out: deque[dict[str, Any]] = deque()
        self._control_ready = asyncio.Event()

    # ------------------------------------------------------------------
    # Wiring helpers (called by SessionGateway)
    # ------------------------------------------------------------------

    def attach_runtime(self, runtime: Runtime) -> None:
        """
        Attach the runtime executor.

        Must be called after components are attached.
        """
        self.runtime = runtime

    # ------------------------------------------------------------------
    # Output (called by Runtime through its execution context)
    # ------------------------------------------------------------------

    def append_message(self, message: Message) -> None:
        if self.chat_log.append(message):
            self.enqueue_control({"type": "MESSAGE", "message": message.to_dict()})

    def publish_status(self, status: dict[str, Any]) -> None:
        self.status = status
        self.enqueue_control({"type": "STATUS", "status": status})

    # ------------------------------------------------------------------
    # Control queue
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {"session_id": self.session_id}

    def enqueue_control(self, msg: dict[str, Any]) -> None:
        """
        Enqueue a control message for delivery to the connected client.

        Messages are buffered in FIFO order and later retrieved via
        drain_control() / next_control().

        Only the newest STATUS is kept pending; it moves to the tail. The
        queue is bounded by CONTROL_QUEUE_MAX_DEPTH, oldest entries dropped.
        """
        if msg.get("type") == "STATUS":
            for pending in [m for m in self._control_out if m.get("type") == "STATUS"]:
                self._control_out.remove(pending)

        if len(self._control_out) >= CONTROL_QUEUE_MAX_DEPTH:
            dropped = self._control_out.popleft()
            log_event({
                "ts_ms": time.time_ns() // 1_000_000,
                "event_type": "CONTROL_QUEUE_OVERFLOW",
                **self.log_context(),
                "dropped_type": dropped.get("type"),
                "depth": len(self._control_out),
            })

        self._control_out.append(msg)
        self._control_ready.set()

    def drain_control(self) -> tuple[dict[str, Any], ...]:
        """
        Atomically drain all pending control messages.

        Returns:
            A FIFO-ordered tuple of control messages. Returns an empty
            tuple if no messages are pending.

        After this call, the control queue is empty.
        """
        self._control_ready.clear()
        if not self._control_out:
            return ()
        out = tuple(self._control_out)
        self._control_out.clear()
        return out

    async def next_control(self) -> tuple[dict[str, Any], ...]:
        """Wait until at least one control message is pending, then drain."""
        while not self._control_out:
            self._control_ready.clear()
            await self._control_ready.wait()
        return self.drain_control()
