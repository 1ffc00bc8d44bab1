"""
Runtime settings read from the environment (and a .env file if present)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .utils.logger import get_logger

# Load environment variables
load_dotenv()

logger = get_logger(__name__)

DATA_DIR_ENV = "TABLESCOPE_DATA_DIR"
DEFAULT_DATA_DIR = Path.home() / ".tablescope"


@dataclass(frozen=True)
class Settings:
    """Tunable behaviour of the data-access layer"""
    data_dir: Path = DEFAULT_DATA_DIR
    log_level: str = "INFO"
    page_size: int = 50
    search_page_size: int = 25
    refresh_throttle_ms: int = 1500
    write_debounce_ms: int = 500
    history_limit: int = 100


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: expected an integer, using {default}")
        return default
    if value < 0:
        logger.warning(f"Ignoring {name}={raw!r}: must not be negative, using {default}")
        return default
    return value


def resolve_data_dir(override: Optional[str] = None) -> Path:
    """Data directory from an explicit override, the environment, or ~/.tablescope"""
    raw = override or os.getenv(DATA_DIR_ENV)
    if raw and raw.strip():
        return Path(raw.strip()).expanduser()
    return DEFAULT_DATA_DIR


def load_settings() -> Settings:
    """Build Settings from TABLESCOPE_* environment variables"""
    return Settings(
        data_dir=resolve_data_dir(),
        log_level=os.getenv("TABLESCOPE_LOG_LEVEL", "INFO"),
        page_size=max(_int_env("TABLESCOPE_PAGE_SIZE", 50), 1),
        search_page_size=max(_int_env("TABLESCOPE_SEARCH_PAGE_SIZE", 25), 1),
        refresh_throttle_ms=_int_env("TABLESCOPE_REFRESH_THROTTLE_MS", 1500),
        write_debounce_ms=_int_env("TABLESCOPE_WRITE_DEBOUNCE_MS", 500),
        history_limit=max(_int_env("TABLESCOPE_HISTORY_LIMIT", 100), 1),
    )
