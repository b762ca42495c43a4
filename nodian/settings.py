from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass

from nodian.services.filesystem import DEFAULT_ROOT_DIR_NAME

logger = logging.getLogger(__name__)

SETTINGS_DIR_ENV = "NODIAN_HOME"
SETTINGS_DIR_NAME = ".nodian"
SETTINGS_FILE_NAME = "settings.json"
SESSION_FILE_NAME = "session.json"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def default_root() -> str:
    return os.path.join(os.path.expanduser("~"), DEFAULT_ROOT_DIR_NAME)


@dataclass
class Settings:
    settings_dir: str
    default_root: str
    restore_session: bool = True
    log_level: str = "INFO"

    @property
    def settings_path(self) -> str:
        return os.path.join(self.settings_dir, SETTINGS_FILE_NAME)

    @property
    def session_path(self) -> str:
        return os.path.join(self.settings_dir, SESSION_FILE_NAME)


def settings_dir() -> str:
    override = os.environ.get(SETTINGS_DIR_ENV, "").strip()
    if override:
        return os.path.abspath(os.path.expanduser(override))
    return os.path.join(os.path.expanduser("~"), SETTINGS_DIR_NAME)


def default_settings_payload() -> dict[str, object]:
    return {
        "workspace": {
            "default_root": default_root(),
            "restore_session": True,
        },
        "logging": {
            "level": "INFO",
        },
    }


def _ensure_settings_file(settings_path: str) -> None:
    os.makedirs(os.path.dirname(settings_path), exist_ok=True)
    if os.path.exists(settings_path):
        return

    with open(settings_path, "w", encoding="utf-8", newline="\n") as handle:
        json.dump(default_settings_payload(), handle, indent=2)
        handle.write("\n")
    logger.info("[settings] Created %s", settings_path)


def _parse_workspace_settings(payload: object) -> tuple[str, bool]:
    root = default_root()
    restore_session = True

    if not isinstance(payload, dict):
        logger.warning("[settings] Root JSON must be an object; using workspace defaults.")
        return root, restore_session

    workspace_payload = payload.get("workspace")
    if not isinstance(workspace_payload, dict):
        return root, restore_session

    root_value = workspace_payload.get("default_root")
    if isinstance(root_value, str) and root_value.strip():
        root = os.path.abspath(os.path.expanduser(root_value.strip()))
    elif root_value is not None:
        logger.warning("[settings] Invalid workspace.default_root; using %s.", root)

    restore_value = workspace_payload.get("restore_session")
    if isinstance(restore_value, bool):
        restore_session = restore_value
    elif restore_value is not None:
        logger.warning("[settings] Invalid workspace.restore_session; restoring sessions.")

    return root, restore_session


def _parse_log_level(payload: object) -> str:
    if not isinstance(payload, dict):
        return "INFO"

    logging_payload = payload.get("logging")
    if not isinstance(logging_payload, dict):
        return "INFO"

    level_value = logging_payload.get("level")
    if isinstance(level_value, str) and level_value.upper() in _LOG_LEVELS:
        return level_value.upper()

    if level_value is not None:
        logger.warning("[settings] Invalid logging.level; using INFO.")
    return "INFO"


def load_settings(directory: str | None = None) -> Settings:
    directory = directory or settings_dir()
    settings_path = os.path.join(directory, SETTINGS_FILE_NAME)
    payload: object = default_settings_payload()

    try:
        _ensure_settings_file(settings_path)
        with open(settings_path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except OSError as exc:
        logger.warning("[settings] Could not access %s: %s", settings_path, exc)
    except json.JSONDecodeError as exc:
        logger.warning("[settings] Invalid JSON in %s: %s", settings_path, exc)

    root, restore_session = _parse_workspace_settings(payload)
    return Settings(
        settings_dir=directory,
        default_root=root,
        restore_session=restore_session,
        log_level=_parse_log_level(payload),
    )


def configure_logging(level: str = "INFO") -> None:
    root_logger = logging.getLogger("nodian")
    root_logger.setLevel(level)
    if not any(isinstance(handler, logging.StreamHandler) for handler in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(handler)
