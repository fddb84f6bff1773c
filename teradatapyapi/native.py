"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module loads the native Teradata SQL driver library and wraps its entry points.

The native driver exchanges JSON text through C strings. Every entry point
returns void and reports results through out-pointers; a non-null error
pointer means the call failed. Strings allocated by the driver are copied
into Python and handed back to goFreePointer.
"""

import ctypes
import os
import threading
from ctypes import POINTER, c_char, c_char_p, c_ulonglong, c_ushort, c_void_p
from typing import Any, Dict, Optional, Tuple

from teradatapyapi.exceptions import LoadError, MarshalError, NativeCallError
from teradatapyapi.logging import logger
from teradatapyapi.platform_utils import get_library_filename

_OUT_STR = POINTER(c_void_p)
_OUT_U64 = POINTER(c_ulonglong)

# Entry point name -> argument types. Every entry point returns void.
ENTRY_POINTS: Dict[str, list] = {
    "goCombineJSON": [c_char_p, c_char_p, _OUT_STR, _OUT_STR],
    "goParseParams": [c_char_p, _OUT_STR, _OUT_U64],
    "goCreateConnection": [c_ulonglong, c_char_p, c_char_p, _OUT_STR, _OUT_U64],
    "goCloseConnection": [c_ulonglong, c_ulonglong, _OUT_STR],
    "goCancelRequest": [c_ulonglong, c_ulonglong, _OUT_STR],
    "rustgoCreateRows": [c_ulonglong, c_ulonglong, c_char_p, c_char_p, _OUT_STR, _OUT_U64],
    "rustgoResultMetaData": [
        c_ulonglong, c_ulonglong, _OUT_STR, _OUT_U64, POINTER(c_ushort), _OUT_STR, _OUT_STR,
    ],
    "rustgoFetchRow": [c_ulonglong, c_ulonglong, _OUT_STR, _OUT_STR],
    "goNextResult": [c_ulonglong, c_ulonglong, _OUT_STR, POINTER(c_char)],
    "goCloseRows": [c_ulonglong, c_ulonglong, _OUT_STR],
    "goFreePointer": [c_ulonglong, c_void_p],
}

# goNextResult sets this byte when another result set is available
RESULT_AVAILABLE = b"Y"


def _encode(text: str) -> bytes:
    return text.encode("utf-8")


def _open_library(lib_path: str) -> Any:
    """Open the shared library at lib_path. Raises OSError on failure."""
    return ctypes.CDLL(lib_path)


def _resolve_entry_points(library: Any) -> Dict[str, Any]:
    """Look up and type every entry point the binding layer uses."""
    functions = {}
    for name, argtypes in ENTRY_POINTS.items():
        try:
            function = getattr(library, name)
        except AttributeError as e:
            raise LoadError(f"Could not link to function {name}: {e}") from e
        function.argtypes = argtypes
        function.restype = None
        functions[name] = function
    return functions


class NativeDriver:
    """
    Typed wrappers around the resolved native entry points.

    Each method raises NativeCallError when the native driver reports an
    error; callers translate it into the error kind of their operation.
    """

    def __init__(self, functions: Dict[str, Any], lib_path: str) -> None:
        self._functions = functions
        self.lib_path = lib_path

    def _take_string(self, u_log: int, ptr: Optional[int]) -> Optional[str]:
        """Copy a driver-allocated string and release it. Returns None for a null pointer."""
        if not ptr:
            return None
        try:
            return ctypes.string_at(ptr).decode("utf-8", errors="replace")
        finally:
            self._functions["goFreePointer"](u_log, ptr)

    def _check_error(self, name: str, u_log: int, error: c_void_p) -> None:
        message = self._take_string(u_log, error.value)
        if message is not None:
            logger.debug("%s reported error: %s", name, message)
            raise NativeCallError(name, message)

    def combine_json(self, json1: str, json2: str) -> str:
        """Merge two JSON objects; members of json2 are added to json1."""
        error = c_void_p()
        combined = c_void_p()
        self._functions["goCombineJSON"](
            _encode(json1), _encode(json2), ctypes.byref(error), ctypes.byref(combined)
        )
        self._check_error("goCombineJSON", 0, error)
        result = self._take_string(0, combined.value)
        if result is None:
            raise MarshalError("goCombineJSON returned no combined JSON")
        return result

    def parse_params(self, params: str) -> int:
        """Validate connection parameters and return the u_log bitmask."""
        error = c_void_p()
        u_log = c_ulonglong(0)
        self._functions["goParseParams"](_encode(params), ctypes.byref(error), ctypes.byref(u_log))
        self._check_error("goParseParams", u_log.value, error)
        return u_log.value

    def create_connection(self, u_log: int, version: str, params: str) -> int:
        error = c_void_p()
        conn_handle = c_ulonglong(0)
        self._functions["goCreateConnection"](
            u_log, _encode(version), _encode(params), ctypes.byref(error), ctypes.byref(conn_handle)
        )
        self._check_error("goCreateConnection", u_log, error)
        return conn_handle.value

    def close_connection(self, u_log: int, conn_handle: int) -> None:
        error = c_void_p()
        self._functions["goCloseConnection"](u_log, conn_handle, ctypes.byref(error))
        self._check_error("goCloseConnection", u_log, error)

    def cancel_request(self, u_log: int, conn_handle: int) -> None:
        error = c_void_p()
        self._functions["goCancelRequest"](u_log, conn_handle, ctypes.byref(error))
        self._check_error("goCancelRequest", u_log, error)

    def create_rows(self, u_log: int, conn_handle: int, request_text: str, bind_values: str) -> int:
        error = c_void_p()
        rows_handle = c_ulonglong(0)
        self._functions["rustgoCreateRows"](
            u_log,
            conn_handle,
            _encode(request_text),
            _encode(bind_values),
            ctypes.byref(error),
            ctypes.byref(rows_handle),
        )
        self._check_error("rustgoCreateRows", u_log, error)
        return rows_handle.value

    def result_metadata(self, u_log: int, rows_handle: int) -> Tuple[int, int, str, str]:
        error = c_void_p()
        activity_count = c_ulonglong(0)
        activity_type = c_ushort(0)
        activity_name = c_void_p()
        column_metadata = c_void_p()
        self._functions["rustgoResultMetaData"](
            u_log,
            rows_handle,
            ctypes.byref(error),
            ctypes.byref(activity_count),
            ctypes.byref(activity_type),
            ctypes.byref(activity_name),
            ctypes.byref(column_metadata),
        )
        self._check_error("rustgoResultMetaData", u_log, error)
        name = self._take_string(u_log, activity_name.value)
        metadata = self._take_string(u_log, column_metadata.value)
        if metadata is None:
            raise MarshalError("rustgoResultMetaData returned no column metadata")
        return activity_count.value, activity_type.value, name or "", metadata

    def fetch_row(self, u_log: int, rows_handle: int) -> Optional[str]:
        """Return the next row as JSON text, or None when no rows remain."""
        error = c_void_p()
        column_values = c_void_p()
        self._functions["rustgoFetchRow"](
            u_log, rows_handle, ctypes.byref(error), ctypes.byref(column_values)
        )
        self._check_error("rustgoFetchRow", u_log, error)
        return self._take_string(u_log, column_values.value)

    def next_result(self, u_log: int, rows_handle: int) -> bool:
        error = c_void_p()
        avail = c_char(b"N")
        self._functions["goNextResult"](u_log, rows_handle, ctypes.byref(error), ctypes.byref(avail))
        self._check_error("goNextResult", u_log, error)
        return avail.value == RESULT_AVAILABLE

    def close_rows(self, u_log: int, rows_handle: int) -> None:
        error = c_void_p()
        self._functions["goCloseRows"](u_log, rows_handle, ctypes.byref(error))
        self._check_error("goCloseRows", u_log, error)


class DriverLibrary:
    """
    Process-wide registry of the loaded native driver.

    The library is loaded at most once per process and never unloaded.
    Concurrent first loads serialize on the class lock, so exactly one real
    load happens and every caller sees its outcome. A failed load leaves the
    registry unloaded and may be retried.
    """

    _lock: threading.Lock = threading.Lock()
    _driver: Optional[NativeDriver] = None
    _lib_dir: Optional[str] = None

    @classmethod
    def load(cls, lib_dir: str) -> None:
        if not isinstance(lib_dir, (str, os.PathLike)):
            raise LoadError(f"Library directory must be a path, got {type(lib_dir).__name__}")
        normalized = os.path.realpath(os.fspath(lib_dir))

        with cls._lock:
            if cls._driver is not None:
                if cls._lib_dir == normalized:
                    logger.debug("Native driver already loaded from %s", normalized)
                    return
                raise LoadError(
                    f"Native driver already loaded from {cls._lib_dir}; "
                    f"cannot load it again from {normalized}"
                )

            if not os.path.isdir(normalized):
                raise LoadError(f"Library directory not found: {lib_dir}")

            lib_path = os.path.join(normalized, get_library_filename())
            if not os.path.isfile(lib_path):
                raise LoadError(f"Could not load library: {lib_path} not found")

            logger.info("Loading native driver from %s", lib_path)
            try:
                library = _open_library(lib_path)
            except OSError as e:
                logger.error("Could not load library %s: %s", lib_path, e)
                raise LoadError(f"Could not load library: {e}") from e

            cls._driver = NativeDriver(_resolve_entry_points(library), lib_path)
            cls._lib_dir = normalized
            logger.info("Native driver loaded")

    @classmethod
    def get(cls) -> NativeDriver:
        driver = cls._driver
        if driver is None:
            raise LoadError("Native driver not loaded; call load_driver() first")
        return driver

    @classmethod
    def is_loaded(cls) -> bool:
        return cls._driver is not None

    @classmethod
    def directory(cls) -> Optional[str]:
        return cls._lib_dir

    @classmethod
    def _reset_for_testing(cls) -> None:
        """Forget the loaded driver - for testing purposes only"""
        with cls._lock:
            cls._driver = None
            cls._lib_dir = None


def load_driver(lib_dir: str) -> None:
    """
    Load the native driver from lib_dir.

    Idempotent for the same directory.

    Raises:
        LoadError: If the library is missing, not loadable, lacks an entry
            point, or was already loaded from a different directory.
    """
    DriverLibrary.load(lib_dir)


def get_driver() -> NativeDriver:
    """Return the loaded driver, raising LoadError if load_driver() has not succeeded."""
    return DriverLibrary.get()


def is_driver_loaded() -> bool:
    return DriverLibrary.is_loaded()


def driver_directory() -> Optional[str]:
    return DriverLibrary.directory()
