import os
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog
import toml
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from spotify_controls.shared import config_template

_MISSING_SETTING_SENTINEL = object()

SettingCallback = Callable[[Any], None]


def default_config_dir() -> Path:
    xdg_config_home = os.getenv("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(xdg_config_home) / "spotify-controls"


class ConfigReloadHandler(FileSystemEventHandler):
    def __init__(self, callback, watched_path):
        super().__init__()
        self.callback = callback
        self.last = 0.0
        self._watched = Path(watched_path).resolve()

    def on_modified(self, event):
        try:
            p = Path(event.src_path).resolve()
        except Exception:
            return
        if p == self._watched:
            now = time.time()
            if now - self.last > 1.0:
                self.last = now
                self.callback()


class ConfigHandler:
    """
    Key-value settings store backed by config.toml.

    Missing keys are filled from ``config_template.default_config`` (minus its
    ``_hint`` documentation keys) and written back when the file does not exist
    yet. Listeners registered with ``connect`` fire whenever a value changes,
    either through ``set_setting`` or because the file was edited on disk.
    """

    def __init__(self, config_file: Optional[Path] = None, logger=None):
        self.logger = logger or structlog.get_logger()
        self.config_file = Path(config_file or default_config_dir() / "config.toml")
        self.default_config = config_template.default_config
        self._last_mod_time: float = 0.0
        self._load_successful: bool = False
        self._listeners: Dict[int, Tuple[Tuple[str, ...], SettingCallback]] = {}
        self._next_listener_id = 1
        self._observer: Optional[Any] = None
        self.config_data: Dict[str, Any] = {}
        self.config_data = self.load_config()

    def _strip_hints(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively removes the ``*_hint`` documentation keys."""
        stripped_data = {}
        for key, value in data.items():
            if key.endswith("_hint"):
                continue
            if isinstance(value, dict):
                stripped_data[key] = self._strip_hints(value)
            else:
                stripped_data[key] = value
        return stripped_data

    @property
    def default_config_stripped(self) -> Dict[str, Any]:
        return self._strip_hints(self.default_config)

    def _recursive_merge(
        self,
        user_config: Dict[str, Any],
        default_config: Dict[str, Any],
    ) -> bool:
        """
        Recursively merges missing keys from `default_config` into `user_config`.
        Returns:
            True if any key was added.
        """
        added = False
        for key, default_value in default_config.items():
            if key not in user_config:
                user_config[key] = default_value
                added = True
            elif isinstance(default_value, dict) and isinstance(
                user_config.get(key), dict
            ):
                if self._recursive_merge(user_config[key], default_value):
                    added = True
        return added

    def load_config(self) -> Dict[str, Any]:
        """
        Loads config.toml merged with the defaults. A missing file is created
        from the defaults; an unreadable one is left untouched and the defaults
        are used for this session.
        """
        config_from_file: Dict[str, Any] = {}
        file_must_be_created = not self.config_file.exists()
        if file_must_be_created:
            self.logger.info("Config file is missing. Will apply defaults and create.")
            self._load_successful = True
        else:
            try:
                with open(self.config_file, "r") as f:
                    config_from_file = toml.load(f)
                self._last_mod_time = os.path.getmtime(self.config_file)
                self._load_successful = True
            except (OSError, toml.TomlDecodeError) as e:
                self.logger.error(
                    f"Failed to load {self.config_file}: {e}. Using defaults and "
                    "skipping file save to preserve user data."
                )
                config_from_file = {}
                self._load_successful = False
        self._recursive_merge(config_from_file, self.default_config_stripped)
        if file_must_be_created:
            self.config_data = config_from_file
            self.save_config()
        return config_from_file

    def save_config(self) -> bool:
        if not self._load_successful:
            self.logger.warning(
                "Skipping configuration save: config.toml failed to load. Please fix it manually."
            )
            return False
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                toml.dump(self.config_data, f)
            self._last_mod_time = os.path.getmtime(self.config_file)
        except OSError as e:
            self.logger.error(f"Failed to save configuration to {self.config_file}: {e}")
            return False
        self.logger.debug("Configuration saved successfully.")
        return True

    def reload_config(self) -> None:
        """Re-reads the file and notifies listeners of every value that changed."""
        previous = self.config_data
        self.config_data = self.load_config()
        self.logger.info("Configuration reloaded from file.")
        self._notify_changes(previous)

    def get_setting(self, key_path: List[str], default_value: Any = None) -> Any:
        current: Any = self.config_data
        for key in key_path:
            if not isinstance(current, dict) or key not in current:
                return default_value
            current = current[key]
        return current

    def set_setting(self, key_path: List[str], new_value: Any) -> bool:
        """Sets a value, saves the file and notifies listeners of that key."""
        if not key_path:
            self.logger.error("Configuration key path cannot be empty.")
            return False
        if not self._load_successful:
            self.logger.warning(
                f"Update to key {' -> '.join(key_path)} skipped: config file failed to load."
            )
            return False
        previous = self.get_setting(key_path, _MISSING_SETTING_SENTINEL)
        current_data = self.config_data
        for key in key_path[:-1]:
            if not isinstance(current_data.get(key), dict):
                current_data[key] = {}
            current_data = current_data[key]
        current_data[key_path[-1]] = new_value
        self.logger.info(f"Set config key {' -> '.join(key_path)} to {new_value!r}.")
        saved = self.save_config()
        if previous != new_value:
            self._emit(tuple(key_path), new_value)
        return saved

    def connect(self, key_path: List[str], callback: SettingCallback) -> int:
        """Calls ``callback(new_value)`` whenever the setting at ``key_path`` changes."""
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = (tuple(key_path), callback)
        return listener_id

    def disconnect(self, listener_id: int) -> None:
        self._listeners.pop(listener_id, None)

    def _notify_changes(self, previous: Dict[str, Any]) -> None:
        for key_path, _ in list(self._listeners.values()):
            old = self._lookup(previous, key_path)
            new = self.get_setting(list(key_path), _MISSING_SETTING_SENTINEL)
            if old != new:
                self._emit(key_path, new)

    def _lookup(self, data: Dict[str, Any], key_path: Tuple[str, ...]) -> Any:
        current: Any = data
        for key in key_path:
            if not isinstance(current, dict) or key not in current:
                return _MISSING_SETTING_SENTINEL
            current = current[key]
        return current

    def _emit(self, key_path: Tuple[str, ...], value: Any) -> None:
        for listener_key, callback in list(self._listeners.values()):
            if listener_key != key_path:
                continue
            try:
                callback(None if value is _MISSING_SETTING_SENTINEL else value)
            except Exception as e:
                self.logger.error(
                    f"Config listener for {'.'.join(key_path)} failed: {e}",
                    exc_info=True,
                )

    def _on_file_modified(self) -> None:
        try:
            current_mod_time = os.path.getmtime(self.config_file)
        except FileNotFoundError:
            self.logger.warning("Config file not found during change check.")
            return
        if current_mod_time > self._last_mod_time:
            self.reload_config()
        else:
            self.logger.debug("Change event received but ignored due to debounce.")

    def start_watcher(self) -> None:
        """Reloads the config whenever config.toml is modified on disk."""
        if self._observer is not None:
            return
        handler = ConfigReloadHandler(self._on_file_modified, self.config_file)
        observer = Observer()
        observer.schedule(handler, str(self.config_file.parent), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer

    def stop_watcher(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=1.0)
