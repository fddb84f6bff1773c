"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module defines the Connection class and connect(), the object interface
over the session, request and transaction operations.
Resource Management:
- All cursors created from this connection are tracked internally.
- When close() is called on the connection, all open cursors are automatically closed.
- Do not use any cursor after the connection is closed; doing so will raise an exception.
"""
import json
import weakref
from typing import Any, Dict, Optional, Union

from teradatapyapi import rows, session, transaction
from teradatapyapi.cursor import Cursor
from teradatapyapi.exceptions import ConnectionError, LoadError, MarshalError
from teradatapyapi.helpers import LIB_DIR_ENV_VAR, get_settings
from teradatapyapi.logging import logger
from teradatapyapi.native import is_driver_loaded, load_driver


class Connection:
    """
    A logged-on session with the database.

    Methods:
        cursor() -> Cursor
        commit() -> None
        rollback() -> None
        cancel() -> None
        close() -> None
    """

    def __init__(self, connect_params_json: str) -> None:
        """
        Log on with the given JSON object of connection parameters.

        Raises:
            MarshalError: If the parameters are not a JSON object.
            ConnectionError: If the native driver rejects the logon.
        """
        self._closed = True
        self._trace_id = logger.generate_trace_id("CONN")
        logger.set_trace_id(self._trace_id)
        self._u_log, self._conn_handle = session.create_connection(connect_params_json)
        self._closed = False
        self._autocommit: Optional[bool] = None
        # Cursors drop out of the set once they are no longer referenced
        self._cursors = weakref.WeakSet()

    @property
    def u_log(self) -> int:
        return self._u_log

    @property
    def conn_handle(self) -> int:
        return self._conn_handle

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_closed(self, action: str) -> None:
        if self._closed:
            raise ConnectionError(f"Cannot {action} on a closed connection")

    @property
    def autocommit(self) -> Optional[bool]:
        """
        Return the auto-commit mode last set through this connection.
        Returns:
            bool: The mode, or None if it was never set here (the database default applies).
        """
        return self._autocommit

    @autocommit.setter
    def autocommit(self, value: bool) -> None:
        """
        Set the auto-commit mode of the connection.
        Args:
            value (bool): True to enable auto-commit, False to disable it.
        Raises:
            TransactionError: If the native driver rejects the change.
        """
        self._check_closed("set auto-commit")
        transaction.set_autocommit(self._u_log, self._conn_handle, value)
        self._autocommit = value

    def cursor(self) -> Cursor:
        """
        Return a new Cursor object using the connection.

        Raises:
            ConnectionError: If the connection is closed.
        """
        self._check_closed("create cursor")
        cursor = Cursor(self)
        self._cursors.add(cursor)
        return cursor

    def commit(self) -> None:
        """
        Commit the current transaction.

        Raises:
            ConnectionError: If the connection is closed.
            TransactionError: If the native driver rejects the commit.
        """
        self._check_closed("commit")
        transaction.commit(self._u_log, self._conn_handle)

    def rollback(self) -> None:
        """
        Roll back the current transaction.

        Raises:
            ConnectionError: If the connection is closed.
            TransactionError: If the native driver rejects the rollback.
        """
        self._check_closed("rollback")
        transaction.rollback(self._u_log, self._conn_handle)

    def cancel(self) -> None:
        """
        Cancel the request executing on this connection.

        Safe to call from another thread while a cursor is fetching; the
        fetching thread then receives a RequestError.
        """
        self._check_closed("cancel")
        rows.cancel_request(self._u_log, self._conn_handle)

    def close(self) -> None:
        """
        Close the connection now (rather than whenever .__del__() is called).

        Open cursors are closed first. If the native driver fails to close the
        session the error is raised and the connection stays open.

        Raises:
            ConnectionError: If the native driver reports an error.
        """
        if self._closed:
            return

        # Close all cursors first, but don't let one failure stop the others
        for cursor in list(self._cursors):
            try:
                if not cursor.closed:
                    cursor.close()
            except Exception as e:
                logger.warning("Error closing cursor: %s", e)
        self._cursors.clear()

        session.close_connection(self._u_log, self._conn_handle)
        self._closed = True

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __del__(self):
        """
        Destructor to ensure the session is closed when the connection object is no longer needed.
        """
        if "_closed" in self.__dict__ and not self._closed:
            try:
                self.close()
            except Exception as e:
                # Dont raise exceptions from __del__ to avoid issues during garbage collection
                logger.error("Error during connection cleanup in __del__: %s", e)


def _param_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _merge_params(params: Union[None, str, Dict[str, Any]], extra: Dict[str, Any]) -> str:
    if params is None:
        merged = {}
    elif isinstance(params, str):
        try:
            merged = json.loads(params)
        except json.JSONDecodeError as e:
            raise MarshalError(f"Connection parameters are not valid JSON: {e}") from e
        if not isinstance(merged, dict):
            raise MarshalError("Connection parameters must be a JSON object")
    elif isinstance(params, dict):
        merged = dict(params)
    else:
        raise MarshalError(
            f"Connection parameters must be a dict or JSON string, got {type(params).__name__}"
        )
    for key, value in extra.items():
        merged[key] = _param_value(value)
    return json.dumps(merged)


def connect(params: Union[None, str, Dict[str, Any]] = None, lib_dir: Optional[str] = None, **kwargs) -> Connection:
    """
    Load the native driver if needed and log on to the database.

    Args:
        params: Connection parameters as a dict or a JSON object string,
            e.g. {"host": "whomooz", "user": "guest", "password": "please"}.
        lib_dir: Directory holding the native driver. Defaults to the
            TERADATAPYAPI_LIB_DIR environment variable.
        **kwargs: Additional connection parameters; they override params.

    Returns:
        Connection: A new connection object.

    Raises:
        LoadError: If the native driver cannot be loaded.
        MarshalError: If the parameters are malformed.
        ConnectionError: If the logon fails.

    Example:
        with connect({"host": "whomooz"}, lib_dir="/opt/teradata", user="guest", password="please") as conn:
            with conn.cursor() as cur:
                cur.execute("select * from DBC.DBCInfo order by 1")
                for row in cur:
                    print(row)
    """
    lib_dir = lib_dir or get_settings().lib_dir
    if lib_dir:
        load_driver(lib_dir)
    elif not is_driver_loaded():
        raise LoadError(
            f"No native driver directory given; pass lib_dir or set {LIB_DIR_ENV_VAR}"
        )
    return Connection(_merge_params(params, kwargs))
