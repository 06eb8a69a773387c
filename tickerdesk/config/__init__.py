"""Configuration management.

`load_dashboard_config()` reads `.env` once, then the YAML file named by
`TICKERDESK_CONFIG` (default `~/.tickerdesk/tickerdesk.yml`).
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from tickerdesk.config.loader import load_config
from tickerdesk.config.schema import ApiConfig, DashboardConfig, PersistenceConfig
from tickerdesk.constants import ENV_CONFIG_PATH
from tickerdesk.paths import CONFIG_PATH, REPO_ROOT

__all__ = ["ApiConfig", "DashboardConfig", "PersistenceConfig", "load_dashboard_config"]


def load_dashboard_config(path: Optional[Path] = None) -> DashboardConfig:
    """Load dashboard configuration (explicit path > env > default location)."""
    load_dotenv(REPO_ROOT / ".env")
    if path is None:
        env_path = os.getenv(ENV_CONFIG_PATH)
        path = Path(env_path).expanduser() if env_path else CONFIG_PATH
    return load_config(path)
