"""Application settings and backend configuration."""

import json
import os
from dataclasses import dataclass
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "Chat Editor Relay"
    ENVIRONMENT: str = "development"  # development | production | test

    # Listen address
    HOST: str = "0.0.0.0"
    PORT: int = 8787

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    ALLOW_CREDENTIALS: bool = True

    # Inference backend (Ollama-compatible)
    OLLAMA_URL: str = "http://127.0.0.1:11434"
    OLLAMA_MODEL: str = "llama3.2"
    # Optional basic-auth credentials for a backend behind a tunnel or proxy
    OLLAMA_USERNAME: str | None = None
    OLLAMA_PASSWORD: str | None = None
    OLLAMA_CONNECT_TIMEOUT_SECONDS: float = 10.0

    # Send the context-specific system prompt alongside the user prompt
    RELAY_SEND_SYSTEM_PROMPT: bool = False

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for CORS origins."""
        if isinstance(v, list):
            return [str(i).strip() for i in v]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        "CORS_ORIGINS must be a CSV list or JSON array string"
                    ) from e
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON must be a list")
                return [str(i).strip() for i in parsed]
            # CSV fallback
            return [i.strip() for i in s.split(",") if i.strip()]
        raise ValueError("Invalid CORS_ORIGINS type; expected str or list[str]")

    @field_validator("OLLAMA_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("OLLAMA_URL must be an http(s) URL")
        return v

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_cors_origins(self.CORS_ORIGINS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        return self

    @model_validator(mode="after")
    def _validate_credentials_pair(self) -> "Settings":
        if bool(self.OLLAMA_USERNAME) != bool(self.OLLAMA_PASSWORD):
            raise ValueError(
                "OLLAMA_USERNAME and OLLAMA_PASSWORD must be set together"
            )
        return self


@dataclass(frozen=True, slots=True)
class BackendConfig:
    """Connection details for the inference backend, passed into the relay."""

    base_url: str
    default_model: str
    username: str | None = None
    password: str | None = None
    connect_timeout: float = 10.0
    send_system_prompt: bool = False
    user_agent: str = "chat-editor-relay/1.0"

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackendConfig":
        return cls(
            base_url=settings.OLLAMA_URL,
            default_model=settings.OLLAMA_MODEL,
            username=settings.OLLAMA_USERNAME,
            password=settings.OLLAMA_PASSWORD,
            connect_timeout=settings.OLLAMA_CONNECT_TIMEOUT_SECONDS,
            send_system_prompt=settings.RELAY_SEND_SYSTEM_PROMPT,
        )


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""

    # The Settings initializer accepts a runtime-only `_env_file` kwarg used by
    # pydantic-settings; mypy's stub doesn't allow this call argument.
    return Settings(_env_file=env_file or None)  # type: ignore[call-arg]
