from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, Field


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


class Settings(BaseModel):
    # --- Twilio credentials ---
    # Optional: when unset (or malformed) the CLI prompts for them instead.
    twilio_account_sid: str | None = Field(default_factory=lambda: os.getenv("TWILIO_ACCOUNT_SID"))
    twilio_auth_token: str | None = Field(default_factory=lambda: os.getenv("TWILIO_AUTH_TOKEN"))

    # Applied to every request made through the Twilio SDK
    provider_timeout: float = Field(
        default_factory=lambda: _env_float("TWICAT_PROVIDER_TIMEOUT", "5")
    )

    # --- Callback listener ---
    listen_host: str = Field(default_factory=lambda: os.getenv("TWICAT_LISTEN_HOST", "127.0.0.1"))

    # --- ngrok ---
    ngrok_binary: str = Field(default_factory=lambda: os.getenv("TWICAT_NGROK_BINARY", "ngrok"))
    ngrok_api_url: str = Field(
        default_factory=lambda: os.getenv(
            "TWICAT_NGROK_API_URL", "http://127.0.0.1:4040/api/tunnels"
        )
    )
    # 1 = a single lookup right after ngrok starts, no waiting for it to come up
    tunnel_lookup_attempts: int = Field(
        default_factory=lambda: int(os.getenv("TWICAT_TUNNEL_LOOKUP_ATTEMPTS", "1")), ge=1
    )
    tunnel_lookup_backoff: float = Field(
        default_factory=lambda: _env_float("TWICAT_TUNNEL_LOOKUP_BACKOFF", "0.5")
    )

    # --- Logging ---
    log_level: str = Field(default_factory=lambda: os.getenv("TWICAT_LOG_LEVEL", "WARNING"))


@lru_cache
def get_settings() -> Settings:
    return Settings()
