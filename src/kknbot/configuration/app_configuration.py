from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict, List

import yaml

from kknbot.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path(os.getenv("KKNBOT_CONFIG", "./config/app_config.yml")).resolve()

DEFAULT_PREFIX = "."
DEFAULT_TIMEZONE = "Asia/Jakarta"
DEFAULT_COUNTRY_CODE = "62"
DEFAULT_DATABASE_PATH = "./data/app.db"
DEFAULT_BACKUPS_TO_KEEP = 5
DEFAULT_SEND_TIMEOUT_SECONDS = 15.0

DEFAULT_MODERATION_POLICY: Dict[str, int] = {
    "warning_threshold": 3,
    "warning_ban_minutes": 60,
    "spam_mute_minutes": 10,
    "filter_mute_minutes": 5,
    "spam_kick_ban_minutes": 30,
}


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The file is read once at construction and again only when :meth:`reload`
    is called explicitly (the ``reloadconfig`` command does this). Components
    receive the shared instance by reference, so a reload is visible to all
    of them immediately.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            if data is not None:
                logger.warning("[APP CONFIGURATION] Ignoring non-mapping config in %s", self.config_path)
            return {}
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Re-read the YAML file, replace the cached mapping and return it.

        An unreadable or malformed file yields an empty mapping, which makes
        every accessor fall back to its default.
        """
        self._data = self.load_from_disk()
        logger.info("[APP CONFIGURATION] Loaded configuration from %s", self.config_path)
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def prefix(self) -> str:
        value = self._section("bot").get("prefix") or DEFAULT_PREFIX
        return str(value)

    @property
    def timezone(self) -> str:
        return str(self._section("bot").get("timezone") or DEFAULT_TIMEZONE)

    @property
    def country_code(self) -> str:
        return str(self._section("bot").get("country_code") or DEFAULT_COUNTRY_CODE)

    @property
    def global_admins(self) -> List[str]:
        """Bot-wide admins as configured (raw, not yet normalised)."""
        admins = self._section("admins").get("global_admins") or []
        if not isinstance(admins, list):
            return []
        return [str(admin) for admin in admins]

    @property
    def owner(self) -> str:
        return str(self._section("admins").get("owner") or "")

    @property
    def lid_to_phone_mapping(self) -> Dict[str, str]:
        mapping = self._section("admins").get("lid_to_phone_mapping") or {}
        if not isinstance(mapping, dict):
            return {}
        return {str(lid): str(phone) for lid, phone in mapping.items()}

    @property
    def moderation_policy(self) -> Dict[str, int]:
        """Policy defaults merged over the built-in values.

        Non-integer values in the file are ignored with a warning.
        """
        policy = dict(DEFAULT_MODERATION_POLICY)
        for key, value in self._section("moderation").items():
            if key not in policy:
                continue
            try:
                policy[key] = int(value)
            except (TypeError, ValueError):
                logger.warning("[APP CONFIGURATION] Ignoring non-integer moderation.%s=%r", key, value)
        return policy

    @property
    def database_path(self) -> Path:
        return Path(self._section("database").get("path") or DEFAULT_DATABASE_PATH).resolve()

    @property
    def backups_to_keep(self) -> int:
        return int(self._section("database").get("backups_to_keep", DEFAULT_BACKUPS_TO_KEEP))

    @property
    def send_timeout_seconds(self) -> float:
        return float(self._section("transport").get("send_timeout_seconds", DEFAULT_SEND_TIMEOUT_SECONDS))


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
