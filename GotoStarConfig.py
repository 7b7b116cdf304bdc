# -*- coding: utf-8 -*-
# -----------------------------------------------------------------------------
# GotoStarConfig.py - GotoStar persistent configuration file.  Adapted from
# Alpyca's config.py
#
# Python Compatibility: Requires Python 3.7 or later
# GitHub: https://github.com/ASCOMInitiative/AlpycaDevice
#
# -----------------------------------------------------------------------------
# MIT License
#
# Copyright (c) 2022-2024 Bob Denny
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
# -----------------------------------------------------------------------------

import sys
import threading
from pathlib import Path
from typing import Any, Optional, Union

import toml

from gotostar_types import MountSettings


class GotoStarConfigError(Exception):
    """Custom exception for GotoStar configuration errors"""
    pass


class GotoStarConfig:
    """Mount configuration with thread-safe TOML persistence.

    For docker-based installations, looks for /alpyca/GotoStarconfig.toml
    first, with any settings there overriding ./GotoStarconfig.toml.

    Attributes:
        dev_port: Serial port of the GotoStar controller
        verbose_logging: Log every command and reply
        reply_timeout: Seconds to wait for a controller reply
        log_to_stdout: Enable logging to stdout
        max_size_mb: Maximum log file size in MB
        num_keep_logs: Number of log files to keep
        log_file: Log file name
    """

    # Class constants
    DEFAULT_CONFIG_FILE = 'GotoStarconfig.toml'
    OVERRIDE_CONFIG_PATH = '/alpyca/GotoStarconfig.toml'

    def get_config_dir(self) -> Path:
        if getattr(sys, 'frozen', False):
            return Path(sys.executable).parent
        return Path.cwd()

    def __init__(self, config_file: Optional[Union[str, Path]] = None,
                 override_file: Optional[Union[str, Path]] = None):
        """Initialize configuration by loading TOML files.

        Args:
            config_file: Primary file, defaults to GotoStarconfig.toml in the
                configuration directory
            override_file: Override file, defaults to OVERRIDE_CONFIG_PATH
        """
        self._lock = threading.RLock()
        self._dict = {}
        self._dict2 = {}

        self._config_file = Path(config_file) if config_file else self.get_config_dir() / self.DEFAULT_CONFIG_FILE
        self._override_file = Path(override_file) if override_file else Path(self.OVERRIDE_CONFIG_PATH)

        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from TOML files.

        Raises:
            GotoStarConfigError: If primary config file cannot be loaded.
        """
        with self._lock:
            try:
                self._dict = toml.load(self._config_file)
            except (FileNotFoundError, toml.TomlDecodeError) as e:
                raise GotoStarConfigError(
                    f"Failed to load primary config file {self._config_file}: {e}"
                ) from e

            try:
                if self._override_file.exists():
                    self._dict2 = toml.load(self._override_file)
            except toml.TomlDecodeError as e:
                raise GotoStarConfigError(
                    f"Failed to load override config file {self._override_file}: {e}"
                ) from e

    def _get_toml(self, sect: str, item: str) -> Any:
        """Get configuration value, override file first, None if absent."""
        with self._lock:
            try:
                return self._dict2[sect][item]
            except KeyError:
                try:
                    return self._dict[sect][item]
                except KeyError:
                    return None

    def _put_toml(self, sect: str, item: str, setting: Any) -> None:
        with self._lock:
            # Writes go where save() will put them
            target = self._dict2 if (self._dict2 or self._override_file.exists()) else self._dict
            target.setdefault(sect, {})[item] = setting

    def save(self) -> None:
        """Save configuration to file, overwriting existing.

        Raises:
            GotoStarConfigError: If configuration cannot be saved.
        """
        with self._lock:
            try:
                if self._dict2 or self._override_file.exists():
                    self._override_file.parent.mkdir(parents=True, exist_ok=True)
                    with self._override_file.open('w', encoding='utf-8') as f:
                        toml.dump(self._dict2, f)
                else:
                    with self._config_file.open('w', encoding='utf-8') as f:
                        toml.dump(self._dict, f)
            except OSError as e:
                raise GotoStarConfigError(f"Failed to save configuration: {e}") from e

    def reload(self) -> None:
        """Reload configuration from files.

        Raises:
            GotoStarConfigError: If configuration files cannot be reloaded.
        """
        with self._lock:
            self._dict = {}
            self._dict2 = {}
            self._load_config()

    def settings(self) -> MountSettings:
        """Snapshot of the values the mount core needs."""
        timeout = self.reply_timeout
        if timeout <= 0:
            raise GotoStarConfigError(f"reply_timeout must be positive, got {timeout}")
        return MountSettings(
            port=self.dev_port,
            verbose=self.verbose_logging,
            reply_timeout=timeout
        )

    # Configuration section constants
    DEVICE_SECTION = 'device'
    DRIVER_SECTION = 'driver'
    LOGGING_SECTION = 'logging'

    # --------------
    # Device Section
    # --------------

    @property
    def dev_port(self) -> str:
        """Device port configuration."""
        return self._get_toml(self.DEVICE_SECTION, 'dev_port') or 'COM1'

    @dev_port.setter
    def dev_port(self, value: str) -> None:
        self._put_toml(self.DEVICE_SECTION, 'dev_port', value)

    # --------------
    # Driver Section
    # --------------

    @property
    def verbose_logging(self) -> bool:
        """Log serial traffic at DEBUG level."""
        return bool(self._get_toml(self.DRIVER_SECTION, 'verbose_logging'))

    @verbose_logging.setter
    def verbose_logging(self, value: bool) -> None:
        self._put_toml(self.DRIVER_SECTION, 'verbose_logging', value)

    @property
    def reply_timeout(self) -> float:
        """Seconds to wait for a controller reply."""
        value = self._get_toml(self.DRIVER_SECTION, 'reply_timeout')
        return 2.0 if value is None else float(value)

    @reply_timeout.setter
    def reply_timeout(self, value: float) -> None:
        self._put_toml(self.DRIVER_SECTION, 'reply_timeout', value)

    # ---------------
    # Logging Section
    # ---------------

    @property
    def log_to_stdout(self) -> bool:
        """Enable logging to stdout."""
        return bool(self._get_toml(self.LOGGING_SECTION, 'log_to_stdout'))

    @log_to_stdout.setter
    def log_to_stdout(self, value: bool) -> None:
        self._put_toml(self.LOGGING_SECTION, 'log_to_stdout', value)

    @property
    def max_size_mb(self) -> int:
        """Maximum log file size in MB."""
        return self._get_toml(self.LOGGING_SECTION, 'max_size_mb') or 5

    @max_size_mb.setter
    def max_size_mb(self, value: int) -> None:
        self._put_toml(self.LOGGING_SECTION, 'max_size_mb', value)

    @property
    def num_keep_logs(self) -> int:
        """Number of log files to keep."""
        return self._get_toml(self.LOGGING_SECTION, 'num_keep_logs') or 10

    @num_keep_logs.setter
    def num_keep_logs(self, value: int) -> None:
        self._put_toml(self.LOGGING_SECTION, 'num_keep_logs', value)

    @property
    def log_file(self) -> str:
        """Log file name."""
        return self._get_toml(self.LOGGING_SECTION, 'log_file') or 'gotostar.log'

    @log_file.setter
    def log_file(self, value: str) -> None:
        self._put_toml(self.LOGGING_SECTION, 'log_file', value)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"config_file='{self._config_file}', "
            f"override_file='{self._override_file}')"
        )
