"""
Logging setup shared by every module
"""

import logging

ROOT_LOGGER_NAME = "tablescope"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the tablescope namespace"""
    root = logging.getLogger(ROOT_LOGGER_NAME)

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        root.setLevel(logging.INFO)

    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_level(level: str) -> None:
    """Apply a level name such as DEBUG or WARNING"""
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        get_logger(ROOT_LOGGER_NAME).warning(f"Unknown log level {level!r}, keeping INFO")
        return
    get_logger(ROOT_LOGGER_NAME).setLevel(resolved)
