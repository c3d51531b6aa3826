"""
Session gateway.

Responsibilities:
- Owns the single VoiceSession of this process and wires its components
- Tracks the UI client connection independently of controller state
- Admits at most one UI client at a time
- Routes inbound JSON messages -> controller events
- Hands outbound control messages (STATUS, MESSAGE) to the transport

NOT responsible for:
- Executing commands (Runtime)
- Any state machine logic (reducer)
- Transport details (server.routes)
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import httpx

from adapters.backend_qa.client import BackendQAAdapter
from adapters.permission.monitor import PermissionMonitor
from adapters.playback.output import AudioOutput
from adapters.playback.session import PlaybackSession
from adapters.recognition.base import RecognitionEngine
from adapters.recognition.session import RecognitionSession
from adapters.recognition.speech_recognition_engine import SpeechRecognitionEngine
from adapters.speech.openai_tts import OpenAITTSAdapter
from observability.logger import log_event
from orchestrator.events import (
    Event,
    EventType,
    StopSpeaking,
    SubmitText,
    ToggleMute,
    ToggleVoice,
)
from orchestrator.runtime import Runtime
from orchestrator.runtime_context import RuntimeExecutionContext
from orchestrator.state_dataclass import ControllerState
from session.connection_status import ConnectionStatus
from session.voice_session import VoiceSession

if TYPE_CHECKING:
    from openai import AsyncOpenAI

    from config import AppConfig


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    accepted:
        False when the client must be refused

    outbound_json:
        JSON messages to send to the client immediately
    """
    accepted: bool = True
    outbound_json: tuple[dict[str, Any], ...] = ()


# ------------------------------------------------------------------
# SessionGateway
# ------------------------------------------------------------------

class SessionGateway:
    """
    One gateway == the one voice session of this process.

    Components default to the real host implementations; tests inject
    fakes for the recognition engine, audio output, permission monitor
    and HTTP client.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        openai_client: AsyncOpenAI | None = None,
        engine: RecognitionEngine | None = None,
        audio_output: AudioOutput | None = None,
        permission_monitor: PermissionMonitor | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._openai_client = openai_client
        self._engine = engine
        self._audio_output = audio_output
        self._permission_monitor = permission_monitor
        self._http_client = http_client

        self.session: VoiceSession | None = None
        self.connection_status = ConnectionStatus.DOWN

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Create the session, wire components and start the runtime."""
        if self.session is not None:
            return

        session_id = _new_session_id()
        session = VoiceSession(session_id=session_id)

        # Create runtime (needs session for context)
        runtime = Runtime(
            initial_state=ControllerState(),
            context=RuntimeExecutionContext(session=session),
        )

        engine = self._engine or SpeechRecognitionEngine(
            language=self._config.recognition_language,
            listen_timeout_s=self._config.recognition_listen_timeout_s,
            phrase_limit_s=self._config.recognition_phrase_limit_s,
        )
        session.recognition = RecognitionSession(
            engine=engine,
            emit_event=runtime.handle_event,
        )
        session.playback = PlaybackSession(
            emit_event=runtime.handle_event,
            output=self._audio_output,
        )
        session.permission_monitor = self._permission_monitor or PermissionMonitor()
        session.backend_adapter = BackendQAAdapter(
            emit_event=runtime.handle_event,
            url=self._config.backend_url,
            timeout_s=self._config.backend_timeout_s,
            client=self._http_client,
        )

        # Answers are spoken only with a TTS client
        if self._openai_client is not None:
            session.tts_adapter = OpenAITTSAdapter(
                emit_event=runtime.handle_event,
                client=self._openai_client,
                model=self._config.tts_model,
                voice=self._config.tts_voice,
            )

        # Attach runtime (must be AFTER components)
        session.attach_runtime(runtime)
        self.session = session

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "VOICE_SESSION_CREATED",
            "session_id": session_id,
            "env": self._config.env,
            "log_level": self._config.log_level,
            "speech_output_available": session.tts_adapter is not None,
        })

        await runtime.start()

    async def shutdown(self) -> None:
        session = self.session
        if session is None:
            return

        if session.runtime is not None:
            await session.runtime.shutdown()
        if session.recognition is not None:
            await session.recognition.aclose()
        if session.permission_monitor is not None:
            await session.permission_monitor.aclose()
        if session.backend_adapter is not None:
            await session.backend_adapter.aclose()
        if session.tts_adapter is not None:
            await session.tts_adapter.aclose()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "VOICE_SESSION_CLOSED",
            "session_id": session.session_id,
            "messages": len(session.chat_log),
        })
        self.session = None

    # ------------------------------------------------------------------
    # Client connection
    # ------------------------------------------------------------------

    def on_ws_connect(self) -> GatewayResult:
        """Admit a UI client, or refuse it when one is already attached."""
        if self.session is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "WS_CONNECT_WITHOUT_SESSION",
            })
            return GatewayResult(accepted=False)

        if self.connection_status is ConnectionStatus.UP:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "WS_REJECTED_SECOND_CLIENT",
                "session_id": self.session.session_id,
            })
            return GatewayResult(accepted=False)

        self.connection_status = ConnectionStatus.UP

        # SESSION_INIT carries the full picture; queued updates are superseded
        self.session.drain_control()

        init_msg: dict[str, Any] = {
            "type": "SESSION_INIT",
            "session_id": self.session.session_id,
            "status": self.session.status,
            "messages": self.session.chat_log.serialize(),
        }

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_CONNECTED",
            **self.session.log_context(),
        })
        return GatewayResult(outbound_json=(init_msg,))

    def on_ws_disconnect(self, reason: str | None = None) -> None:
        """The session keeps running; only the client slot is released."""
        self.connection_status = ConnectionStatus.DOWN
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_DISCONNECTED",
            "session_id": self.session.session_id if self.session else None,
            "reason": reason,
        })

    async def next_outbound(self) -> tuple[dict[str, Any], ...]:
        """Wait for the next batch of STATUS / MESSAGE updates."""
        assert self.session is not None, "session not started"
        return await self.session.next_control()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def on_json_message(self, payload: str) -> None:
        """Route inbound JSON to controller events. Malformed input is dropped."""
        if self.session is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "MESSAGE_WITHOUT_SESSION",
                "payload_preview": payload[:100],
            })
            return

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "JSON_DECODE_ERROR",
                "session_id": self.session.session_id,
                "error": str(e),
                "payload_preview": payload[:100],
            })
            return

        event = self._to_event(data)
        if event is None:
            return

        await self._dispatch(event)

    def _to_event(self, data: Any) -> Event | None:
        assert self.session is not None
        msg_type = data.get("type") if isinstance(data, dict) else None
        ts_ms = _now_ms()

        if msg_type == "TOGGLE_VOICE":
            return ToggleVoice(event_type=EventType.TOGGLE_VOICE, ts_ms=ts_ms)
        if msg_type == "TOGGLE_MUTE":
            return ToggleMute(event_type=EventType.TOGGLE_MUTE, ts_ms=ts_ms)
        if msg_type == "STOP_SPEAKING":
            return StopSpeaking(event_type=EventType.STOP_SPEAKING, ts_ms=ts_ms)
        if msg_type == "SUBMIT_TEXT":
            text = data.get("text")
            if not isinstance(text, str):
                log_event({
                    "ts_ms": ts_ms,
                    "event_type": "INVALID_MESSAGE",
                    "session_id": self.session.session_id,
                    "msg_type": msg_type,
                    "error": "text must be a string",
                })
                return None
            return SubmitText(event_type=EventType.SUBMIT_TEXT, ts_ms=ts_ms, text=text)

        log_event({
            "ts_ms": ts_ms,
            "event_type": "UNKNOWN_MESSAGE_TYPE",
            "msg_type": msg_type,
            "session_id": self.session.session_id,
        })
        return None

    async def _dispatch(self, event: Event) -> None:
        assert self.session is not None and self.session.runtime is not None
        await self.session.runtime.handle_event(event)
