"""Settings for the session console, kept in ``~/.scorm-bridge/config.json``.

Keys:

  storage_path         JSON file backing the local store
  http_timeout         seconds per LRS request
  default_actor        xAPI actor used when the launch supplies none
  default_activity_id  xAPI activity id used when the launch supplies none
  log_level, log_file  root logger setup for ``app.main``
  launch_url           simulated page URL; its query string carries xAPI
                       launch parameters
  xapi                 global ``xAPIConfig`` object ({} for none)
"""

import copy
import json
from pathlib import Path

CONFIG_DIR = Path.home() / ".scorm-bridge"
CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULTS = {
    "storage_path": str(CONFIG_DIR / "local_storage.json"),
    "http_timeout": 30,
    "default_actor": {"name": "Test User", "mbox": "mailto:test@example.com"},
    "default_activity_id": "http://example.com/activities/course",
    "log_level": "INFO",
    "log_file": str(CONFIG_DIR / "scorm-bridge.log"),
    "launch_url": "",
    "xapi": {},
}


def load_config() -> dict:
    """Return the saved settings with any missing keys taken from DEFAULTS.

    Writes DEFAULTS out on first use.
    """
    if not CONFIG_PATH.exists():
        save_config(DEFAULTS)
        return copy.deepcopy(DEFAULTS)

    with open(CONFIG_PATH, "r", encoding="utf-8") as f:
        saved = json.load(f)
    config = copy.deepcopy(DEFAULTS)
    config.update(saved)
    return config


def save_config(config: dict) -> None:
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    with open(CONFIG_PATH, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2, ensure_ascii=False)
