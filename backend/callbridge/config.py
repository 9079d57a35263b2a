"""
Realtime Call Bridge - Configuration Management

Every tunable (AI-leg credentials and audio settings, results collector,
session timings and defaults) is a field on Settings, read from the
environment or a .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Service settings. Environment variables override .env, which overrides
    the defaults below. Names are case-insensitive (OPENAI_API_KEY ==
    openai_api_key).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: str = "development"
    app_debug: bool = True
    app_log_level: str = "INFO"
    log_json_format: bool = False

    # --- Server ---
    backend_host: str = "0.0.0.0"
    backend_port: int = 5050

    # --- AI Realtime Leg ---
    openai_api_key: Optional[str] = None
    realtime_url: str = "wss://api.openai.com/v1/realtime?model=gpt-4o-realtime-preview"
    realtime_voice: str = "coral"
    # Must match the telephony leg's narrowband codec (mu-law 8kHz)
    realtime_audio_format: str = "g711_ulaw"
    realtime_transcription_model: str = "whisper-1"

    # Server-side VAD, drives turn-taking and barge-in
    vad_threshold: float = 0.5
    vad_prefix_padding_ms: int = 300
    vad_silence_duration_ms: int = 600

    # --- Results Collector ---
    # Reporting is disabled when no endpoint is configured
    results_endpoint_url: Optional[str] = None
    results_api_key: Optional[str] = None
    results_timeout_seconds: float = 10.0
    results_event_type: str = "openai-realtime-end"

    # --- Session Lifecycle ---
    session_grace_period_seconds: float = 300.0   # Delete 5 min after finalize
    session_max_age_seconds: float = 7200.0       # Hard cap: 2 hours
    session_sweep_interval_seconds: float = 1800.0  # Sweep every 30 min

    # --- Session Defaults ---
    default_prompt: str = "You are a helpful assistant."
    default_voice_id: str = "alloy"
    default_language: str = "he"

    @property
    def results_reporting_enabled(self) -> bool:
        """Whether call results are posted to a collector."""
        return bool(self.results_endpoint_url)

    @property
    def is_production(self) -> bool:
        """True when APP_ENV is production."""
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, loaded once. Tests build Settings directly."""
    return Settings()
