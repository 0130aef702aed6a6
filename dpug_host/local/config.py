import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import dpug_host.settings as default_settings

log = logging.getLogger(__name__)


def _coerce(key: str, value: Any) -> Any:
    """Converts a value to the type of the setting's default. Raises ValueError or TypeError."""
    original_value = default_settings.SETTING_DEFAULTS[key]
    if isinstance(original_value, bool):
        return str(value).lower() in ('true', '1', 't', 'yes', 'y')
    return type(original_value)(value)


class WorkspaceSettings:
    """
    Merges the default settings with the workspace's JSON overrides.

    Precedence, lowest first:
    1. Base values from `settings.py`.
    2. Overrides from the `.env` file (handled by `python-dotenv` in settings.py).
    3. Overrides from `{workspace}/.dpug/settings.json` for keys listed in
       `MODIFIABLE_SETTINGS`.

    The overrides file is re-read whenever it changes on disk, so callers that
    read a value for every operation always see the current configuration.
    """

    def __init__(self, workspace_root: Optional[Path] = None) -> None:
        """
        :param workspace_root: The open workspace. None means no workspace is open.
        """
        self.workspace_root = Path(workspace_root) if workspace_root else None
        self._overrides: Dict[str, Any] = {}
        self._overrides_mtime: Optional[float] = None

    @property
    def overrides_path(self) -> Optional[Path]:
        if self.workspace_root is None:
            return None
        return self.workspace_root / default_settings.WORKSPACE_SETTINGS_PATH

    def get(self, key: str, default: Any = None) -> Any:
        """Returns the effective value for a dotted settings key."""
        self._refresh_overrides()
        if key in self._overrides:
            return self._overrides[key]
        return default_settings.SETTING_DEFAULTS.get(key, default)

    def get_all_settings(self) -> Dict[str, Any]:
        """Returns every known setting with its effective value."""
        return {key: self.get(key) for key in sorted(default_settings.SETTING_DEFAULTS)}

    def _refresh_overrides(self) -> None:
        path = self.overrides_path
        if path is None or not path.exists():
            self._overrides = {}
            self._overrides_mtime = None
            return

        try:
            mtime = path.stat().st_mtime
        except OSError:
            return
        if mtime == self._overrides_mtime:
            return

        try:
            with path.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse workspace settings '{path}': {e}")
            return
        if not isinstance(overrides, dict):
            log.error(f"Workspace settings '{path}' must contain a JSON object. Ignoring.")
            return

        accepted = {}
        for key, value in overrides.items():
            if key not in default_settings.MODIFIABLE_SETTINGS:
                log.warning(f"Override setting '{key}' is not a known setting. Ignoring.")
                continue
            try:
                accepted[key] = _coerce(key, value)
            except (ValueError, TypeError) as e:
                log.warning(f"Override setting '{key}' has an invalid value '{value}': {e}. Ignoring.")

        log.debug(f"Loaded {len(accepted)} workspace setting override(s) from {path}")
        self._overrides = accepted
        self._overrides_mtime = mtime

    def update(self, key: str, value: Any) -> Tuple[bool, str]:
        """
        Changes a setting and persists it to the workspace overrides file.

        The value is coerced to the type of the default value, so string
        input from the console becomes a bool or int where needed.

        :return: (success, message)
        """
        if key not in default_settings.MODIFIABLE_SETTINGS:
            message = f"Setting '{key}' is not modifiable."
            log.warning(f"Rejected config update: {message}")
            return False, message

        path = self.overrides_path
        if path is None:
            return False, "No workspace is open; settings cannot be saved."

        try:
            new_value = _coerce(key, value)
        except (ValueError, TypeError) as e:
            message = f"Could not convert value '{value}' for key '{key}'. Error: {e}"
            log.error(f"Config update failed: {message}")
            return False, message

        self._refresh_overrides()
        current_overrides = dict(self._overrides)
        current_overrides[key] = new_value

        temp_path = path.with_suffix(".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with temp_path.open('w') as f:
                json.dump(current_overrides, f, indent=4)
            temp_path.replace(path)
        except (IOError, OSError) as e:
            message = f"Failed to write workspace settings '{path}': {e}"
            log.error(message)
            return False, message
        finally:
            temp_path.unlink(missing_ok=True)

        self._overrides = current_overrides
        self._overrides_mtime = None
        message = f"Setting '{key}' updated to '{new_value}'."
        log.info(message)
        return True, message
