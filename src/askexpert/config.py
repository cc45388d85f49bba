from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigError

CONFIG_PATH = Path.home() / ".config" / "askexpert" / "config.yml"

DEFAULT_MODEL = "o3"
DEFAULT_TEMPERATURE = 1.0
DEFAULT_TIMEOUT = 60.0

# Environment variable -> config key.  Environment always beats the YAML file.
_ENV_KEYS = {
    "ASK_EXPERT_BASE_URL": "base_url",
    "ASK_EXPERT_MODEL_NAME": "model",
    "ASK_EXPERT_TEMPERATURE": "temperature",
    "ASK_EXPERT_TIMEOUT": "timeout",
}


@dataclass(frozen=True)
class ExpertConfig:
    base_url: str
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    timeout: float = DEFAULT_TIMEOUT  # seconds, shared by image fetch and API call

    def __post_init__(self) -> None:
        if not isinstance(self.base_url, str) or not self.base_url.strip():
            raise ConfigError(
                "base_url is required. Set ASK_EXPERT_BASE_URL or 'base_url' in the config file."
            )
        object.__setattr__(self, "base_url", self.base_url.strip().rstrip("/"))
        if not isinstance(self.model, str) or not self.model.strip():
            raise ConfigError("model must be a non-empty string")
        if not 0.0 <= self.temperature <= 2.0:
            raise ConfigError(f"temperature must be between 0 and 2, got {self.temperature}")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")


def _as_float(key: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number, got {value!r}") from exc


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    return raw if isinstance(raw, dict) else {}


def load_config(path: Path | None = None, env: Mapping[str, str] | None = None) -> ExpertConfig:
    """Build the process-wide configuration once, at startup.

    Precedence: environment variables > YAML file > defaults.  The YAML
    path comes from *path*, then ``ASK_EXPERT_CONFIG``, then
    ``~/.config/askexpert/config.yml``; a missing file is not an error.

    Raises:
        ConfigError: if ``base_url`` is missing or any value is invalid.
    """
    env = os.environ if env is None else env
    if path is None:
        path = Path(env["ASK_EXPERT_CONFIG"]) if env.get("ASK_EXPERT_CONFIG") else CONFIG_PATH

    merged: dict[str, Any] = _read_yaml(path)
    for env_key, key in _ENV_KEYS.items():
        value = env.get(env_key)
        if value is not None and value.strip():
            merged[key] = value.strip()

    return ExpertConfig(
        base_url=str(merged.get("base_url") or ""),
        model=str(merged.get("model") or DEFAULT_MODEL),
        temperature=_as_float("temperature", merged.get("temperature", DEFAULT_TEMPERATURE)),
        timeout=_as_float("timeout", merged.get("timeout", DEFAULT_TIMEOUT)),
    )
