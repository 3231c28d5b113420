"""Configuration persistence for the chat directory.

This module stores configuration on disk so an application shell can share
it across restarts.

Stored fields:
- storage_dir: Directory holding one message store per user.
- notice_delay: Seconds the unread-total recomputation waits for more triggers.
- messages_limit: Default page size when loading a chat's messages.
- recent_days: Recency window used by the recent-chats list.
- debug: Enables diagnostic warnings (non-production builds).
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)

_LOCK = threading.Lock()

DEFAULT_NOTICE_DELAY = 0.1
DEFAULT_MESSAGES_LIMIT = 100
DEFAULT_RECENT_DAYS = 7


def _config_dir() -> Path:
    return Path.home() / ".chat_directory"


def _config_file_path() -> Path:
    """Resolve config file path.

    Test harnesses can override via:
    - CHAT_DIRECTORY_CONFIG_FILE: full path to config.json
    - CHAT_DIRECTORY_CONFIG_DIR: directory containing config.json
    """

    file_env = os.environ.get("CHAT_DIRECTORY_CONFIG_FILE")
    if file_env:
        return Path(file_env)

    dir_env = os.environ.get("CHAT_DIRECTORY_CONFIG_DIR")
    if dir_env:
        return Path(dir_env) / "config.json"

    return _config_dir() / "config.json"


@dataclass
class AppConfig:
    storage_dir: Optional[str] = None
    notice_delay: float = DEFAULT_NOTICE_DELAY
    messages_limit: int = DEFAULT_MESSAGES_LIMIT
    recent_days: int = DEFAULT_RECENT_DAYS
    debug: bool = False

    @property
    def storage_path(self) -> Path:
        if self.storage_dir:
            return Path(self.storage_dir)
        return _config_file_path().parent / "storage"

    @property
    def recent_window_ms(self) -> int:
        return self.recent_days * 24 * 60 * 60 * 1000


def load_config() -> AppConfig:
    with _LOCK:
        try:
            cfg_file = _config_file_path()
            if not cfg_file.exists():
                return AppConfig()
            data = json.loads(cfg_file.read_text(encoding="utf-8"))
            return AppConfig(
                storage_dir=data.get("storage_dir"),
                notice_delay=float(data.get("notice_delay", DEFAULT_NOTICE_DELAY)),
                messages_limit=int(data.get("messages_limit", DEFAULT_MESSAGES_LIMIT)),
                recent_days=int(data.get("recent_days", DEFAULT_RECENT_DAYS)),
                debug=bool(data.get("debug", False)),
            )
        except Exception:
            logger.warning("Unreadable config file, using defaults", exc_info=True)
            return AppConfig()


def save_config(cfg: AppConfig) -> None:
    with _LOCK:
        cfg_file = _config_file_path()
        cfg_file.parent.mkdir(parents=True, exist_ok=True)
        cfg_file.write_text(
            json.dumps(asdict(cfg), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )


def set_storage_dir(path: Optional[str]) -> AppConfig:
    cfg = load_config()
    cfg.storage_dir = path
    save_config(cfg)
    return cfg


def set_debug(enabled: bool) -> AppConfig:
    cfg = load_config()
    cfg.debug = enabled
    save_config(cfg)
    return cfg
