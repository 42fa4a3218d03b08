"""Configuration management using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from pathlib import Path
from typing import List, Optional
import os


def _default_cors_origins() -> List[str]:
    """Build sane CORS defaults without hardcoded project port literals."""
    frontend_port = os.getenv("FRONTEND_PORT", "").strip()
    origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    if frontend_port:
        origins = [
            f"http://localhost:{frontend_port}",
            f"http://127.0.0.1:{frontend_port}",
            *origins,
        ]
    return origins


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8888

    # CORS Configuration
    cors_origins: List[str] = Field(default_factory=_default_cors_origins)

    # Logging
    log_level: str = "INFO"
    log_dir: Path = Path("logs")

    # Completion backend (any OpenAI-compatible endpoint)
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    default_model_id: str = "gpt-4o-mini"
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_request_timeout_seconds: float = Field(default=120.0, ge=0.0)

    # Orchestration
    round_turns: int = Field(default=4, ge=1)
    context_window: int = Field(default=6, ge=0)
    review_summary_turns: int = Field(default=4, ge=0)
    human_review_timeout_seconds: float = Field(default=600.0, gt=0)
    max_review_timeouts: Optional[int] = Field(default=None, ge=1)
    turn_delay_seconds: float = Field(default=0.0, ge=0.0)
    reset_grace_seconds: float = Field(default=2.0, ge=0.0)

    # Agent teams (None = config/local/agent_teams.yaml seeded from defaults)
    agent_teams_config_path: Optional[Path] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("agent_teams_config_path", mode="before")
    @classmethod
    def parse_agent_teams_config_path(cls, value):
        if value in (None, ""):
            return None
        return Path(os.path.expandvars(str(value))).expanduser()


# Global settings instance
settings = Settings()
