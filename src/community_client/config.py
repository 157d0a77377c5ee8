"""Configuration management for the community API client.

Loads settings from .env / environment variables and API environments from
config/environments.yaml.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from dotenv import load_dotenv


DEFAULT_SESSION_FILE = str(Path.home() / ".community-api" / "session.json")


class EnvironmentProfile(BaseModel):
    """A single deployment of the community backend."""
    api_url: str
    api_prefix: str = "/api/v1"


class Settings(BaseModel):
    """Application settings loaded from environment variables."""
    environment: str = Field(default="local", description="Name of the API environment to target")
    api_url: str = Field(default="", description="Overrides the environment's api_url when set")
    session_file: str | None = Field(
        default=DEFAULT_SESSION_FILE,
        description="Where tokens are persisted; None keeps the session in memory",
    )
    request_timeout: float = Field(default=30.0, description="Timeout for ordinary requests in seconds")
    refresh_timeout: float = Field(default=10.0, description="Timeout for the token refresh call in seconds")
    refresh_retries: int = Field(default=0, description="Extra refresh attempts after a transport failure")
    retry_delay: float = Field(default=1.0, description="Base delay for refresh retry backoff in seconds")
    rate_limit_default: int = Field(default=60, description="Throttle window when a 429 names none")
    dedupe_requests: bool = Field(default=True, description="Collapse identical in-flight reads")


class Config(BaseModel):
    """Full application configuration."""
    settings: Settings
    environments: dict[str, EnvironmentProfile]

    def get_environment(self, name: str | None = None) -> EnvironmentProfile:
        """Get an environment profile by name (defaults to settings.environment)."""
        name = (name or self.settings.environment).lower()
        if name not in self.environments:
            available = ", ".join(sorted(self.environments.keys())) or "none"
            raise ValueError(f"Unknown environment '{name}'. Available: {available}")
        return self.environments[name]

    @property
    def base_url(self) -> str:
        """Root URL every request path is appended to."""
        if self.settings.api_url:
            profile = self.environments.get(self.settings.environment.lower())
            api_url = self.settings.api_url
            prefix = profile.api_prefix if profile else EnvironmentProfile.model_fields["api_prefix"].default
        else:
            profile = self.get_environment()
            api_url, prefix = profile.api_url, profile.api_prefix

        prefix = prefix.strip("/")
        return f"{api_url.rstrip('/')}/{prefix}" if prefix else api_url.rstrip("/")

    @property
    def all_environments(self) -> list[str]:
        """List all configured environment names."""
        return sorted(self.environments.keys())


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (where config/ lives)."""
    current = Path(__file__).resolve().parent
    for parent in [current, *current.parents]:
        if (parent / "config" / "environments.yaml").exists():
            return parent
    return Path.cwd()


def _load_environments(project_root: Path) -> dict[str, EnvironmentProfile]:
    """Load API environments from environments.yaml (empty when absent)."""
    path = project_root / "config" / "environments.yaml"
    if not path.exists():
        return {}

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    environments = {}
    for name, profile_data in data.get("environments", {}).items():
        environments[name.lower()] = EnvironmentProfile(**profile_data)
    return environments


def _env(*keys: str, default: str = "") -> str:
    """Try multiple env var names, return the first one found."""
    for key in keys:
        val = os.environ.get(key, "")
        if val:
            return val.strip().strip('"')
    return default


def _load_settings() -> Settings:
    """Load settings from environment variables.

    Accepts the frontend's VITE_API_URL as a fallback for the API URL.
    """
    session_file = _env("COMMUNITY_API_SESSION_FILE", default=DEFAULT_SESSION_FILE)
    return Settings(
        environment=_env("COMMUNITY_API_ENV", default="local"),
        api_url=_env("COMMUNITY_API_URL", "VITE_API_URL"),
        session_file=None if session_file.lower() in ("", "none", "memory") else session_file,
        request_timeout=float(_env("COMMUNITY_API_TIMEOUT", default="30")),
        refresh_timeout=float(_env("COMMUNITY_API_REFRESH_TIMEOUT", default="10")),
        refresh_retries=int(_env("COMMUNITY_API_REFRESH_RETRIES", default="0")),
        retry_delay=float(_env("COMMUNITY_API_RETRY_DELAY", default="1.0")),
        rate_limit_default=int(_env("COMMUNITY_API_RATE_LIMIT_DEFAULT", default="60")),
        dedupe_requests=_env("COMMUNITY_API_DEDUPE", default="true").lower() in ("true", "1", "yes"),
    )


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Load and cache the full application configuration."""
    project_root = _find_project_root()

    env_path = project_root / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    settings = _load_settings()
    environments = _load_environments(project_root)

    return Config(settings=settings, environments=environments)
