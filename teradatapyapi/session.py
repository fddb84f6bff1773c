"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module opens and closes sessions with the native driver.
"""

import json
import os
import sysconfig
import traceback
from typing import Tuple

from teradatapyapi.exceptions import ConnectionError, MarshalError, native_errors
from teradatapyapi.handles import registry
from teradatapyapi.logging import logger
from teradatapyapi.marshal import check_encodable
from teradatapyapi.native import get_driver

# Identifies this binding to the database in the session's client attributes
CLIENT_KIND = "P"

# Empty version means the native driver reports its own version
DRIVER_VERSION = ""

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
_STDLIB_DIR = os.path.abspath(sysconfig.get_paths()["stdlib"])


def _client_stack() -> str:
    """
    Abbreviated call stack of the application opening the session, outermost first.

    Frames inside the standard library and this package are omitted.
    """
    frames = []
    for frame in traceback.extract_stack():
        filename = os.path.abspath(frame.filename)
        if filename.startswith(_PACKAGE_DIR) or filename.startswith(_STDLIB_DIR):
            continue
        frames.append(f"{frame.name} {os.path.basename(filename)}:{frame.lineno}")
    return " ".join(frames)


def _client_attributes() -> str:
    return json.dumps({"client_kind": CLIENT_KIND, "client_stack": _client_stack()})


def create_connection(connect_params_json: str) -> Tuple[int, int]:
    """
    Log on to the database.

    Args:
        connect_params_json (str): JSON object of connection parameters. The
            parameters are owned by the native driver and are passed through.

    Returns:
        tuple: (u_log, conn_handle). u_log must accompany every later call
        for this connection and the rows created on it.

    Raises:
        LoadError: If the native driver is not loaded.
        MarshalError: If connect_params_json is not a JSON object.
        ConnectionError: If the native driver rejects the parameters or the logon.
    """
    driver = get_driver()

    if not isinstance(connect_params_json, str):
        raise MarshalError(
            f"Connection parameters must be a JSON string, got {type(connect_params_json).__name__}"
        )
    check_encodable(connect_params_json, "Connection parameters")
    try:
        params = json.loads(connect_params_json)
    except json.JSONDecodeError as e:
        raise MarshalError(f"Connection parameters are not valid JSON: {e}") from e
    if not isinstance(params, dict):
        raise MarshalError("Connection parameters must be a JSON object")

    with native_errors(ConnectionError):
        combined = driver.combine_json(connect_params_json, _client_attributes())
        u_log = driver.parse_params(combined)
        logger.debug("Creating connection with parameters %s", combined)
        conn_handle = driver.create_connection(u_log, DRIVER_VERSION, combined)

    registry.add_session(u_log, conn_handle)
    logger.info("Connection opened: conn_handle=%d u_log=%d", conn_handle, u_log)
    return u_log, conn_handle


def close_connection(u_log: int, conn_handle: int) -> None:
    """
    Log off and release the session.

    Result sets should be closed first. If any are still open the close is
    still forwarded, and an error reported by the native driver is raised.
    The handle must not be used after a successful close.

    Raises:
        ConnectionError: If the handle is closed or unknown, or the native
            driver reports an error.
    """
    driver = get_driver()
    registry.session(u_log, conn_handle)

    open_rows = registry.open_rows(conn_handle)
    if open_rows:
        logger.warning(
            "Closing connection %d with %d open rows handle(s): %s",
            conn_handle, len(open_rows), open_rows,
        )

    logger.debug("Closing connection: conn_handle=%d u_log=%d", conn_handle, u_log)
    with native_errors(ConnectionError):
        driver.close_connection(u_log, conn_handle)

    registry.remove_session(conn_handle)
    logger.info("Connection closed: conn_handle=%d", conn_handle)
