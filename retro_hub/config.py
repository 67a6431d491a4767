import configparser
import os
import threading

import appdirs

from .logger import setup_logger

logger = setup_logger()


APP_NAME = "retro-gaming-hub"

IPC_HOST = "127.0.0.1"
IPC_PORT = 9847
CONFIG_FILE = "library.json"
SETTINGS_FILE = "settings.ini"


def get_config_dir() -> str:
    """Per-user configuration directory (e.g. ~/.config/retro-gaming-hub)."""
    return appdirs.user_config_dir(APP_NAME, False, roaming=True)


def get_library_path() -> str:
    """Default location of the library snapshot file."""
    return os.path.join(get_config_dir(), CONFIG_FILE)


def get_settings_path() -> str:
    return os.path.join(get_config_dir(), SETTINGS_FILE)


class ConfigManager(configparser.ConfigParser):
    """
    Optional daemon settings read from settings.ini.

    Every value falls back to the module constants, so a missing file or
    section is not an error.

    [Server]
    port = 9847

    [Library]
    path = /path/to/library.json
    scan_on_start = false

    [Logging]
    level = INFO
    """
    _instance = None
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs):
        with cls._lock:
            if cls._instance is None:
                cls._instance = super(ConfigManager, cls).__new__(cls)
        return cls._instance

    def __init__(self, settings_path: str | None = None):
        if not hasattr(self, 'initialized'):
            super().__init__()
            self.logger = setup_logger()
            self.settings_path = settings_path or get_settings_path()
            read = self.read(self.settings_path, encoding="utf-8")
            if read:
                self.logger.info(f'Loaded settings from {self.settings_path}')
            for section in ('Server', 'Library', 'Logging'):
                if not self.has_section(section):
                    self.add_section(section)
            self.initialized = True

    @property
    def port(self) -> int:
        return self.getint('Server', 'port', fallback=IPC_PORT)

    @property
    def library_path(self) -> str:
        return self.get('Library', 'path', fallback='') or get_library_path()

    @property
    def scan_on_start(self) -> bool:
        return self.getboolean('Library', 'scan_on_start', fallback=False)

    @property
    def log_level(self) -> str:
        return self.get('Logging', 'level', fallback='INFO')
