"""
Dextra configuration - YAML file with ${VAR} environment substitution.

Example config.yaml:

    database: ${DATABASE_URL}
    cron_secret: ${CRON_SECRET}

    llm:
      provider: openai
      model: gpt-4o
      api_key: ${OPENAI_API_KEY}

    orchestrator_llm:
      provider: openai
      model: gpt-4o-mini

    disabled_tools:
      - send_telegram_notification

    limits:
      max_steps: 15
      turn_timeout: 120
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .constants import (
    ACTION_TIMEOUT_S,
    CRON_TIMEOUT_S,
    MAX_HISTORY_MESSAGES,
    MAX_TURN_STEPS,
    TURN_TIMEOUT_S,
)
from .errors import ConfigError
from .tools.registry import parse_disabled_tools

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_ORCHESTRATOR_MODEL = "gpt-4o-mini"


def _load_config(path: str, env: Optional[Mapping[str, str]] = None) -> dict:
    """Read YAML config file with ${VAR} environment variable substitution."""
    env = os.environ if env is None else env
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise ConfigError(f"Cannot read config file '{path}': {e}") from e

    def _replace_env(match):
        var_name = match.group(1)
        value = env.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' not set "
                f"(referenced in config file '{path}')"
            )
        return value

    resolved = re.sub(r"\$\{(\w+)\}", _replace_env, raw)
    try:
        data = yaml.safe_load(resolved)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file '{path}': {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping")
    return data


@dataclass
class LLMSettings:
    provider: str
    model: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], section: str) -> "LLMSettings":
        if not data.get("provider") or not data.get("model"):
            raise ConfigError(
                f"Missing required config fields: '{section}.provider' and '{section}.model'"
            )
        return cls(
            provider=data["provider"],
            model=data["model"],
            api_key=data.get("api_key"),
            base_url=data.get("base_url"),
        )


@dataclass
class Limits:
    max_history_messages: int = MAX_HISTORY_MESSAGES
    max_steps: int = MAX_TURN_STEPS
    turn_timeout: float = TURN_TIMEOUT_S
    action_timeout: float = ACTION_TIMEOUT_S
    cron_timeout: float = CRON_TIMEOUT_S

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Limits":
        limits = cls()
        for key, value in (data or {}).items():
            if not hasattr(limits, key):
                logger.warning(f"Ignoring unknown limit '{key}'")
                continue
            if not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError(f"Limit '{key}' must be a positive number")
            setattr(limits, key, value)
        return limits


@dataclass
class Settings:
    database: str
    llm: LLMSettings
    orchestrator_llm: LLMSettings
    cron_secret: Optional[str] = None
    disabled_tools: List[str] = field(default_factory=list)
    limits: Limits = field(default_factory=Limits)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        if not data.get("database"):
            raise ConfigError("Missing required config field: 'database'")
        llm = LLMSettings.from_dict(data.get("llm") or {}, "llm")

        # The orchestrator model defaults to a cheaper sibling of the main one.
        orch_cfg = dict(data.get("orchestrator_llm") or {})
        orch_cfg.setdefault("provider", llm.provider)
        orch_cfg.setdefault("model", DEFAULT_ORCHESTRATOR_MODEL)
        orch_cfg.setdefault("api_key", llm.api_key)
        orch_cfg.setdefault("base_url", llm.base_url)

        disabled = data.get("disabled_tools")
        if isinstance(disabled, str):
            # JSON list (as in the env var form) or comma-separated names
            if disabled.strip().startswith("["):
                disabled = parse_disabled_tools(disabled)
            else:
                disabled = [n.strip() for n in disabled.split(",") if n.strip()]

        return cls(
            database=data["database"],
            llm=llm,
            orchestrator_llm=LLMSettings.from_dict(orch_cfg, "orchestrator_llm"),
            cron_secret=data.get("cron_secret"),
            disabled_tools=list(disabled or []),
            limits=Limits.from_dict(data.get("limits") or {}),
        )


def load_settings(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from ``path``, ``$DEXTRA_CONFIG`` or ``config.yaml``."""
    env = os.environ if env is None else env
    path = path or env.get("DEXTRA_CONFIG", DEFAULT_CONFIG_PATH)
    return Settings.from_dict(_load_config(path, env))
