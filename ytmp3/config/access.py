"""Thread-safe registry of users allowed to request conversions.

Wraps the `access` section of AppConfig. Mutations go through a lock and are
persisted back to the YAML config when a path is known.
"""

import logging
import threading
from pathlib import Path
from typing import List, Optional

from ytmp3.config.loader import save_config
from ytmp3.config.models import AppConfig


class AccessRegistry:
    """Owner + whitelist lookup with an owner-only `allow` mutation.

    Args:
        config: Loaded application config; its `access.whitelist` is updated in place.
        config_path: If given, every successful `allow` rewrites this file.
    """

    def __init__(self, config: AppConfig, config_path: Optional[Path] = None):
        self._config = config
        self._config_path = config_path
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    @property
    def owner_user_id(self) -> int:
        return self._config.access.owner_user_id

    @property
    def owner_username(self) -> str:
        return self._config.access.owner_username

    def whitelist(self) -> List[int]:
        with self._lock:
            return list(self._config.access.whitelist)

    def is_owner(self, user_id: int) -> bool:
        return user_id == self._config.access.owner_user_id

    def is_allowed(self, user_id: int) -> bool:
        if self.is_owner(user_id):
            return True
        with self._lock:
            return user_id in self._config.access.whitelist

    def allow(self, user_id: int) -> bool:
        """Adds user_id to the whitelist. Returns False if it was already there."""
        with self._lock:
            if user_id in self._config.access.whitelist:
                return False
            self._config.access.whitelist.append(user_id)
            if self._config_path is not None:
                save_config(self._config, self._config_path)
        self.logger.info(f"ACCESS_ALLOW: user_id={user_id}")
        return True
