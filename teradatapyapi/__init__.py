"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module initializes the teradatapyapi package.
"""

import sys
import types

# Import settings from helpers module
from .helpers import Settings, get_settings, _settings, _settings_lock

# Binding version
__version__ = "1.0.0"

# Exceptions
from .exceptions import (
    Error,
    ErrorKind,
    LoadError,
    ConnectionError,
    RequestError,
    MarshalError,
    TransactionError,
)

# Library loading
from .native import load_driver, is_driver_loaded, driver_directory
from .platform_utils import get_library_filename

# Sessions, requests and result sets
from .session import create_connection, close_connection
from .rows import (
    create_rows,
    cancel_request,
    result_metadata,
    fetch_row,
    next_result,
    close_rows,
)

# Transactions
from .transaction import set_autocommit, commit, rollback

# JSON marshaling
from .marshal import (
    ColumnMetadata,
    decode_column_metadata,
    decode_row,
    encode_bind_values,
)

# Connection and Cursor Objects
from .connection import connect, Connection
from .cursor import Cursor

# Logging Configuration
from .logging import logger, setup_logging


# Create a custom module class that uses properties for settings
class _TeradataModule(types.ModuleType):
    @property
    def lowercase(self) -> bool:
        """Get the lowercase setting."""
        return _settings.lowercase

    @lowercase.setter
    def lowercase(self, value: bool) -> None:
        """Set the lowercase setting."""
        if not isinstance(value, bool):
            raise ValueError("lowercase must be a boolean value")
        with _settings_lock:
            _settings.lowercase = value


# Swap the module's class so attribute assignment goes through the properties
sys.modules[__name__].__class__ = _TeradataModule
