"""Application configuration (Pydantic v2). Load from guardian_config.yml with optional env override."""

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, field_validator


DEFAULT_DATABASE_URL = "sqlite:///guardian.db"
DEFAULT_CONFIG_ENV_VAR = "GUARDIAN_CONFIG"
DEFAULT_CONFIG_FILENAME = "guardian_config.yml"
DEFAULT_MODEL_ID = "@cf/meta/llama-3.2-11b-vision-instruct"

# Environment variable -> Settings field. Applied on top of YAML when env override is enabled.
ENV_OVERRIDES: dict[str, str] = {
    "DATABASE_URL": "database_url",
    "CLOUDFLARE_ACCOUNT_ID": "account_id",
    "CLOUDFLARE_API_TOKEN": "api_token",
}


class Settings(BaseModel):
    """
    Service config loaded from YAML.

    By default, database_url and the model credentials may be overridden by environment
    variables when loading the default config (but not when an explicit config_path is provided).
    """

    model_config = {"extra": "ignore", "protected_namespaces": ()}

    database_url: str = DEFAULT_DATABASE_URL
    vision_model: str = "workers-ai"
    model_id: str = DEFAULT_MODEL_ID
    model_endpoint: str | None = None
    account_id: str | None = None
    api_token: str | None = None
    max_tokens: int = 512
    model_timeout_seconds: float | None = 120.0
    history_limit: int = 20
    max_history_limit: int = 100
    max_sessions: int = 1000
    shutdown_timeout_seconds: float = 30.0
    default_session_id: str = "global-demo-user"
    auto_create_tables: bool = True
    log_level: str = "INFO"

    @field_validator("model_endpoint", "account_id", "api_token", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> str | None:
        if v is None or str(v).strip() == "":
            return None
        return str(v).strip()

    @field_validator("history_limit", "max_history_limit", "max_sessions")
    @classmethod
    def positive_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError("history and session limits must be >= 1")
        return v

    def resolved_model_endpoint(self) -> str | None:
        """Base URL that model ids are appended to, or None when neither endpoint nor account is set."""
        if self.model_endpoint:
            return self.model_endpoint.rstrip("/")
        if self.account_id:
            return f"https://api.cloudflare.com/client/v4/accounts/{self.account_id}/ai/run"
        return None


_config: Settings | None = None


class ConfigLoader:
    """
    Helper responsible for loading Settings from YAML and environment.

    - load_from_yaml(path, apply_env_override): read a YAML file and optionally apply env overrides.
    - load_default(): resolve the default config path from GUARDIAN_CONFIG / guardian_config.yml and
      apply ENV_OVERRIDES when present.
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env: Mapping[str, str] = env if env is not None else os.environ

    def _apply_env(self, data: dict[str, Any]) -> dict[str, Any]:
        for env_name, field in ENV_OVERRIDES.items():
            if self._env.get(env_name):
                data[field] = self._env[env_name]
        return data

    def load_from_yaml(self, path: Path, apply_env_override: bool) -> Settings:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f)
        if not data:
            data = {}
        if apply_env_override:
            data = self._apply_env(data)
        return Settings.model_validate(data)

    def load_default(self) -> Settings:
        """
        Load the default Settings, using GUARDIAN_CONFIG or guardian_config.yml.

        When no explicit config_path is provided, DATABASE_URL and the CLOUDFLARE_* variables
        (if set) override the YAML values or the defaults, so deployments can keep secrets
        out of the config file.
        """
        path_str = self._env.get(DEFAULT_CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILENAME
        path = Path(path_str)
        if path.exists():
            return self.load_from_yaml(path, apply_env_override=True)
        return Settings.model_validate(self._apply_env({}))


_loader = ConfigLoader()


def get_config(config_path: str | Path | None = None) -> Settings:
    """
    Return singleton config.

    - If config_path is given, load from it (without env overrides) and update the cache.
    - Otherwise, return the cached config if available, or load via ConfigLoader.load_default().
    """
    global _config
    if config_path is not None:
        _config = _loader.load_from_yaml(Path(config_path), apply_env_override=False)
        return _config
    if _config is not None:
        return _config
    _config = _loader.load_default()
    return _config


def reset_config() -> None:
    """Clear cached config (for tests)."""
    global _config
    _config = None
