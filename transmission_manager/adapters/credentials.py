"""
Settings-file credential store.

The RPC password lives in settings.json as a salted hash. The plain
text, when known, is kept next to it in ``.rpc_password.txt`` (0600).
"""

from __future__ import annotations

import logging

from transmission_manager.adapters.base import CredentialStore, ServiceManager
from transmission_manager.core.errors import ActionFailed
from transmission_manager.core.models.action import ActionResult
from transmission_manager.core.models.config import ManagerConfig
from transmission_manager.core.services.credentials import is_password_hash
from transmission_manager.core.services.settings_file import (
    RPC_PASSWORD_KEY,
    try_read_settings,
    update_settings,
    write_secret_file,
)

logger = logging.getLogger(__name__)

ACTION = "set-credential"


class SettingsCredentialStore(CredentialStore):
    """Reads and rewrites ``rpc-password`` in settings.json.

    Args:
        config: Paths and the service account.
        services: Used to confirm the daemon is stopped before writing.
    """

    def __init__(self, config: ManagerConfig, services: ServiceManager | None = None):
        self._config = config
        self._services = services

    @property
    def name(self) -> str:
        return "settings-json"

    def is_available(self) -> bool:
        return self._config.settings_file.is_file()

    def current_hash(self) -> str | None:
        settings = try_read_settings(self._config.settings_file) or {}
        return settings.get(RPC_PASSWORD_KEY) or None

    def set_password(self, password_hash: str, plain: str | None = None) -> ActionResult:
        if not is_password_hash(password_hash):
            return ActionResult.failure(ACTION, reason="refusing to store a credential that is not a salted hash")

        if self._services is not None and self._services.is_running():
            return ActionResult.failure(
                ACTION,
                reason="daemon is running; it would overwrite settings.json on exit",
            )

        cfg = self._config
        try:
            backup = update_settings(
                cfg.settings_file,
                {RPC_PASSWORD_KEY: password_hash},
                backup=True,
                owner=cfg.user,
            )
            if plain is not None:
                write_secret_file(cfg.password_file, plain, owner=cfg.user)
        except ActionFailed as e:
            return ActionResult.failure(ACTION, reason=e.reason)

        logger.info("RPC password updated (backup: %s)", backup)
        metadata = {"backup": str(backup) if backup else None}
        if plain is not None:
            metadata["password_file"] = str(cfg.password_file)
        return ActionResult.success(ACTION, output="Password updated", metadata=metadata)
