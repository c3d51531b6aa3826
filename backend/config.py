"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No controller logic
- No timing policy constants (see policy.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from policy import (
    RECOGNITION_DEFAULT_LANGUAGE,
    TTS_DEFAULT_MODEL,
    TTS_DEFAULT_VOICE,
)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the session gateway, which wires the adapters.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Backend Q&A
    # ------------------------------------------------------------------

    backend_url: str
    backend_timeout_s: float

    # ------------------------------------------------------------------
    # TTS
    # ------------------------------------------------------------------

    openai_api_key: str | None
    tts_model: str
    tts_voice: str

    # ------------------------------------------------------------------
    # Recognition
    # ------------------------------------------------------------------

    recognition_language: str
    recognition_listen_timeout_s: float
    recognition_phrase_limit_s: float

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # UI server
    # ------------------------------------------------------------------

    host: str
    port: int

    @property
    def speech_output_available(self) -> bool:
        """Answers can only be spoken when a TTS credential is configured."""
        return bool(self.openai_api_key)

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable cannot be parsed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            backend_url=os.environ.get("BACKEND_URL", "http://localhost:8000/chat"),
            backend_timeout_s=float(os.environ.get("BACKEND_TIMEOUT_S", "30")),

            openai_api_key=os.environ.get("OPENAI_API_KEY"),
            tts_model=os.environ.get("TTS_MODEL", TTS_DEFAULT_MODEL),
            tts_voice=os.environ.get("TTS_VOICE", TTS_DEFAULT_VOICE),

            recognition_language=os.environ.get(
                "RECOGNITION_LANGUAGE", RECOGNITION_DEFAULT_LANGUAGE
            ),
            recognition_listen_timeout_s=float(
                os.environ.get("RECOGNITION_LISTEN_TIMEOUT_S", "5")
            ),
            recognition_phrase_limit_s=float(
                os.environ.get("RECOGNITION_PHRASE_LIMIT_S", "15")
            ),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",

            host=os.environ.get("HOST", "127.0.0.1"),
            port=int(os.environ.get("PORT", "8080")),
        )
