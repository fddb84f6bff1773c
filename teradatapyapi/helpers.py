"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module provides helper functions and global settings for the teradatapyapi package.
"""

import os
import threading
from typing import Optional

LIB_DIR_ENV_VAR = "TERADATAPYAPI_LIB_DIR"


def abbreviate(text: str, max_length: int = 200) -> str:
    """
    Shorten request text for logging.

    Args:
        text (str): The text to shorten.
        max_length (int): Maximum number of characters kept.

    Returns:
        str: The text with newlines collapsed, truncated with "..." if longer than max_length.
    """
    if not isinstance(text, str):
        return "<non-string>"
    collapsed = " ".join(text.split())
    if len(collapsed) > max_length:
        return collapsed[:max_length] + "..."
    return collapsed


class Settings:
    """
    Settings class for teradatapyapi package configuration.

    Attributes:
        lib_dir: Directory holding the native driver, used by connect() when no
            directory is passed. Defaults to the TERADATAPYAPI_LIB_DIR environment variable.
        lowercase: Lower-case column names in Cursor.description.
    """
    def __init__(self) -> None:
        self.lib_dir: Optional[str] = os.environ.get(LIB_DIR_ENV_VAR) or None
        self.lowercase: bool = False


# Global settings instance
_settings: Settings = Settings()
_settings_lock: threading.Lock = threading.Lock()


def get_settings() -> Settings:
    """Return the global settings object"""
    with _settings_lock:
        return _settings
