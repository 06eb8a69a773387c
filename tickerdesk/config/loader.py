import os
import re
from pathlib import Path
from typing import cast

import yaml
from instrukt_ai_logging import get_logger
from pydantic import BaseModel

from tickerdesk.config.schema import DashboardConfig
from tickerdesk.constants import ENV_API_URL

logger = get_logger(__name__)


def expand_env_vars(config: object) -> object:
    """Recursively replace ${VAR} patterns with environment variable values."""
    if isinstance(config, dict):
        return {k: expand_env_vars(v) for k, v in config.items()}
    if isinstance(config, list):
        return [expand_env_vars(item) for item in config]
    if isinstance(config, str):

        def replace_env_var(match: re.Match[str]) -> str:
            env_var = match.group(1)
            return os.getenv(env_var, match.group(0))

        return re.sub(r"\$\{([^}]+)\}", replace_env_var, config)
    return config


def _warn_unknown_keys(model: BaseModel, path: str, config_path: Path) -> None:
    """Recursively warn about unknown keys in a model and its nested models."""
    if model.model_extra:
        logger.warning("Unknown keys in %s at %s: %s", path, config_path, list(model.model_extra.keys()))

    for field_name, field_value in model.__dict__.items():
        if isinstance(field_value, BaseModel):
            _warn_unknown_keys(field_value, f"{path}.{field_name}", config_path)


def load_config(path: Path) -> DashboardConfig:
    """Load and validate configuration from a YAML file.

    A missing or unreadable file yields defaults. `TICKERDESK_API_URL`, when
    set, overrides `api.base_url`.

    Args:
        path: Path to the tickerdesk.yml file.

    Returns:
        The validated configuration model.
    """
    raw: dict[str, object] = {}
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            if isinstance(loaded, dict):
                raw = loaded
            else:
                logger.warning("Config file %s is not a mapping, using defaults", path)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Failed to read config file %s: %s", path, e)

    expanded = cast(dict[str, object], expand_env_vars(raw))

    api_url = os.getenv(ENV_API_URL)
    if api_url:
        api_section = expanded.get("api")
        api = dict(api_section) if isinstance(api_section, dict) else {}
        api["base_url"] = api_url
        expanded["api"] = api

    model = DashboardConfig.model_validate(expanded)
    _warn_unknown_keys(model, "root", path)
    return model
