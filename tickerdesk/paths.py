from __future__ import annotations

from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
STATE_PATH = (Path("~/.tickerdesk") / "state.json").expanduser()
CONFIG_PATH = (Path("~/.tickerdesk") / "tickerdesk.yml").expanduser()
