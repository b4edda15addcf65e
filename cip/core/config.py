import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .constants import (
    CITYWORK_INTERVAL_S, FACILITIES_INTERVAL_MIN, TRAIL_PREPARATION_INTERVAL_MIN, USER_AGENT
)
from ..utils.files import load_json

class ConfigError(ValueError):
    pass

DEFAULTS: Dict[str, Any] = {
    "context_broker_url": "",
    "user_agent": USER_AGENT,
    "log_dir": "logs",
    "facilities_enabled": False,
    "facilities_url": "",
    "facilities_api_key": "",
    "facilities_polling_interval_min": FACILITIES_INTERVAL_MIN,
    "citywork_enabled": False,
    "citywork_url": "",
    "citywork_polling_interval_s": CITYWORK_INTERVAL_S,
    "trail_preparation_enabled": False,
    "trail_preparation_url": "",
    "trail_preparation_polling_interval_min": TRAIL_PREPARATION_INTERVAL_MIN,
}

# env name -> (cfg key, converter)
ENV_KEYS = {
    "CONTEXT_BROKER_URL": ("context_broker_url", str),
    "FACILITIES_ENABLED": ("facilities_enabled", lambda v: v == "true"),
    "FACILITIES_URL": ("facilities_url", str),
    "FACILITIES_API_KEY": ("facilities_api_key", str),
    "FACILITIES_POLLING_INTERVAL": ("facilities_polling_interval_min", int),
    "CITYWORK_ENABLED": ("citywork_enabled", lambda v: v == "true"),
    "SDL_KARTA_URL": ("citywork_url", str),
    "CITYWORK_POLLING_INTERVAL": ("citywork_polling_interval_s", int),
    "TRAIL_PREPARATION_ENABLED": ("trail_preparation_enabled", lambda v: v == "true"),
    "TRAIL_PREPARATION_URL": ("trail_preparation_url", str),
    "TRAIL_PREPARATION_POLLING_INTERVAL": ("trail_preparation_polling_interval_min", int),
}

INTERVAL_KEYS = (
    "facilities_polling_interval_min",
    "citywork_polling_interval_s",
    "trail_preparation_polling_interval_min",
)

def load_config(cfg_path: Path, secrets_path: Optional[Path] = None,
                env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    config.json (tracked) + secrets.json (local, NOT tracked) + environment.
    Later sources win.
    """
    env = os.environ if env is None else env

    cfg = dict(DEFAULTS)
    try:
        cfg.update(load_json(cfg_path, {}) or {})
        if secrets_path is not None:
            cfg.update(load_json(secrets_path, {}) or {})
    except ValueError as e:
        raise ConfigError(f"invalid JSON in config: {e}") from e

    for name, (key, conv) in ENV_KEYS.items():
        raw = env.get(name)
        if raw is None or raw == "":
            continue
        try:
            cfg[key] = conv(raw)
        except ValueError as e:
            raise ConfigError(f"{name} must be set to a valid integer") from e

    for key in INTERVAL_KEYS:
        if not isinstance(cfg[key], int) or isinstance(cfg[key], bool) or cfg[key] <= 0:
            raise ConfigError(f"{key} must be a positive integer")

    validate(cfg)
    return cfg

def validate(cfg: Dict[str, Any]) -> None:
    def need(key: str, why: str) -> None:
        if not str(cfg.get(key) or "").strip():
            raise ConfigError(f"{key} is required {why}")

    need("context_broker_url", "(Context Broker URL)")
    if cfg.get("facilities_enabled") is True:
        need("facilities_url", "when facilities are enabled")
        need("facilities_api_key", "when facilities are enabled")
    if cfg.get("citywork_enabled") is True:
        need("citywork_url", "when citywork is enabled")
    if cfg.get("trail_preparation_enabled") is True:
        need("trail_preparation_url", "when the trail preparation feed is enabled")
