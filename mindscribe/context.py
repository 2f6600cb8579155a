"""Application context: every runtime path the services need.

Routers and services receive this object instead of individual path strings.
"""

from __future__ import annotations

import os


class AppContext:
    """Holds all runtime directory paths for the application."""

    def __init__(self, *, cwd: str, data_dir: str, config_path: str) -> None:
        self._cwd = cwd
        self._data_dir = data_dir
        self._config_path = config_path
        self._app_dir = os.path.dirname(__file__)

    @property
    def data_dir(self) -> str:
        return self._data_dir

    @property
    def meetings_dir(self) -> str:
        return os.path.join(self.data_dir, "meetings")

    @property
    def config_path(self) -> str:
        return self._config_path

    @property
    def prompts_dir(self) -> str:
        return os.path.join(self._app_dir, "prompts")

    # Logs stay in cwd, not in data_dir.
    @property
    def logs_dir(self) -> str:
        return os.path.join(self._cwd, "logs")

    def ensure_dirs(self) -> None:
        for d in (self.data_dir, self.meetings_dir, self.logs_dir):
            os.makedirs(d, exist_ok=True)
