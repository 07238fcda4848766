"""Engine configuration.

Settings are read from environment variables with the ``TERMCELL_`` prefix,
or from a ``.env`` file in the working directory.

Environment Variables:
    TERMCELL_HISTORY_DEPTH: Undo entries kept before the oldest is evicted (default: 100)
    TERMCELL_MAX_ROWS: Number of rows in the grid (default: 1048576)
    TERMCELL_MAX_COLS: Number of columns in the grid (default: 16384)
    TERMCELL_LOG_LEVEL: Level for ``configure_logging`` (default: WARNING)
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from termcell._history import DEFAULT_DEPTH
from termcell._sheet import MAX_COLS, MAX_ROWS

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Formula engine settings.

    Example .env file:
        TERMCELL_HISTORY_DEPTH=500
        TERMCELL_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="TERMCELL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    history_depth: int = DEFAULT_DEPTH
    """Maximum number of undoable edits."""

    max_rows: int = MAX_ROWS
    """Rows addressable by formulas; references past this are #REF!."""

    max_cols: int = MAX_COLS
    """Columns addressable by formulas."""

    log_level: str = "WARNING"

    @field_validator("history_depth")
    @classmethod
    def validate_history_depth(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"history_depth must be at least 1, got {v}")
        return v

    @field_validator("max_rows")
    @classmethod
    def validate_max_rows(cls, v: int) -> int:
        if not 1 <= v <= MAX_ROWS:
            raise ValueError(f"max_rows must be between 1 and {MAX_ROWS}, got {v}")
        return v

    @field_validator("max_cols")
    @classmethod
    def validate_max_cols(cls, v: int) -> int:
        if not 1 <= v <= MAX_COLS:
            raise ValueError(f"max_cols must be between 1 and {MAX_COLS}, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"log_level must be one of {sorted(valid_levels)}, got {v!r}")
        return upper_v

    @property
    def log_level_int(self) -> int:
        level: int = getattr(logging, self.log_level)
        return level


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings from the environment, loaded once."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> logging.Handler:
    """Send ``termcell`` log records to stderr at the configured level.

    Meant for the hosting application; the library itself only installs a
    NullHandler.  Calling it again replaces the handler it added before.
    """
    settings = settings or get_settings()
    package_logger = logging.getLogger("termcell")
    for handler in package_logger.handlers[:]:
        if getattr(handler, "_termcell_owned", False):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    handler._termcell_owned = True  # type: ignore[attr-defined]
    package_logger.addHandler(handler)
    package_logger.setLevel(settings.log_level_int)
    return handler
