"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module contains the Cursor class, which runs requests on a Connection.
Resource Management:
- Cursors are tracked by their parent connection.
- Closing the connection will automatically close all open cursors.
- Each execute closes the rows handle of the previous request first.
- Use close() to release the rows handle as soon as the results are no longer needed.
"""
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from teradatapyapi import rows
from teradatapyapi.exceptions import RequestError
from teradatapyapi.helpers import get_settings
from teradatapyapi.logging import logger
from teradatapyapi.marshal import (
    ColumnMetadata,
    JSON_NULL,
    decode_column_metadata,
    decode_row,
    encode_bind_values,
)


class Cursor:
    """
    Represents a request and its result sets on a connection.

    Attributes:
        connection: The Connection this cursor belongs to.
        description: Sequence of 7-item sequences describing one result column,
            or None when the current result set has no columns.
        rowcount: Activity count of the current result set, -1 before execute.
        activity_type: Native activity type code of the current result set.
        activity_name: Activity name of the current result set, e.g. "Select".
        arraysize: Number of rows to fetch at a time with fetchmany().

    Methods:
        execute(operation, parameters=None) -> Cursor.
        executemany(operation, seq_of_parameters) -> Cursor.
        execute_json(operation, bind_values_json) -> Cursor.
        fetchone() -> Single tuple or None if no more data is available.
        fetchmany(size=None) -> List of tuples.
        fetchall() -> List of tuples.
        nextset() -> True if there is another result set, None otherwise.
        close() -> None.
    """

    def __init__(self, connection) -> None:
        self.connection = connection
        self._rows_handle: Optional[int] = None
        self._column_metadata: Optional[ColumnMetadata] = None
        self.description = None
        self.rowcount = -1
        self.activity_type: Optional[int] = None
        self.activity_name: Optional[str] = None
        self.arraysize = 1
        self.closed = False
        self.lowercase = get_settings().lowercase

    @property
    def column_metadata(self) -> Optional[ColumnMetadata]:
        """Column metadata of the current result set, None before execute."""
        return self._column_metadata

    def _check_closed(self) -> None:
        if self.closed:
            raise RequestError("Operation cannot be performed: the cursor is closed.")
        if self.connection.closed:
            raise RequestError("Operation cannot be performed: the connection is closed.")

    def _check_result(self) -> None:
        self._check_closed()
        if self._rows_handle is None:
            raise RequestError("No result set: execute a request first.")

    def _close_rows(self) -> None:
        # The handle is kept until the native close succeeds so it can be retried
        if self._rows_handle is not None:
            rows.close_rows(self.connection.u_log, self._rows_handle)
            self._rows_handle = None

    def _reset_result(self) -> None:
        self._close_rows()
        self._column_metadata = None
        self.description = None
        self.rowcount = -1
        self.activity_type = None
        self.activity_name = None

    def _load_metadata(self) -> None:
        activity_count, activity_type, activity_name, column_metadata_json = rows.result_metadata(
            self.connection.u_log, self._rows_handle
        )
        self._column_metadata = decode_column_metadata(column_metadata_json)
        self.rowcount = activity_count
        self.activity_type = activity_type
        self.activity_name = activity_name
        if self._column_metadata.column_count:
            self.description = self._column_metadata.description(self.lowercase)
        else:
            self.description = None

    def _execute(self, operation: str, bind_values_json: str) -> "Cursor":
        self._check_closed()
        self._reset_result()
        self._rows_handle = rows.create_rows(
            self.connection.u_log, self.connection.conn_handle, operation, bind_values_json
        )
        try:
            self._load_metadata()
        except Exception:
            self._close_rows()
            raise
        return self

    def execute(self, operation: str, parameters: Optional[Sequence[Any]] = None) -> "Cursor":
        """
        Submit a request with an optional row of bind values.

        Args:
            operation: SQL request text using ? parameter markers.
            parameters: Sequence with one value per parameter marker.

        Returns:
            Cursor: This cursor, positioned on the first result set.
        """
        bind_values_json = JSON_NULL if parameters is None else encode_bind_values([parameters])
        return self._execute(operation, bind_values_json)

    def executemany(self, operation: str, seq_of_parameters: Sequence[Sequence[Any]]) -> "Cursor":
        """
        Submit a request once with many rows of bind values.

        All rows are sent in a single request. The values of the first row
        determine the data types used for every row.
        """
        seq_of_parameters = list(seq_of_parameters)
        if not seq_of_parameters:
            self._check_closed()
            self._reset_result()
            self.rowcount = 0
            return self
        return self._execute(operation, encode_bind_values(seq_of_parameters))

    def execute_json(self, operation: str, bind_values_json: str = JSON_NULL) -> "Cursor":
        """Submit a request with bind values already encoded as JSON text."""
        return self._execute(operation, bind_values_json)

    def fetchone(self) -> Optional[Tuple]:
        """
        Fetch the next row of the current result set.

        Returns:
            Single tuple or None if no more data is available.
        """
        self._check_result()
        row_json = rows.fetch_row(self.connection.u_log, self._rows_handle)
        if row_json is None:
            return None
        return tuple(decode_row(row_json, self._column_metadata.column_count))

    def fetchmany(self, size: Optional[int] = None) -> List[Tuple]:
        """
        Fetch the next set of rows of the current result set.

        Args:
            size: Number of rows to fetch, arraysize when omitted.
        """
        if size is None:
            size = self.arraysize
        result = []
        while len(result) < size:
            row = self.fetchone()
            if row is None:
                break
            result.append(row)
        return result

    def fetchall(self) -> List[Tuple]:
        """Fetch all (remaining) rows of the current result set."""
        return list(iter(self.fetchone, None))

    def nextset(self) -> Optional[bool]:
        """
        Skip to the next available result set.

        Returns:
            True if there is another result set, None otherwise.
        """
        self._check_result()
        if not rows.next_result(self.connection.u_log, self._rows_handle):
            return None
        self._load_metadata()
        return True

    def close(self) -> None:
        """
        Close the cursor now (rather than whenever __del__ is called).

        Raises:
            RequestError: If the cursor is already closed.
        """
        if self.closed:
            raise RequestError("Cursor is already closed.")
        try:
            if not self.connection.closed:
                self._close_rows()
        finally:
            self._rows_handle = None
            self.closed = True
            self.connection._cursors.discard(self)
        logger.debug("Cursor closed")

    def __iter__(self) -> Iterator[Tuple]:
        return iter(self.fetchone, None)

    def __enter__(self) -> "Cursor":
        return self

    def __exit__(self, *args) -> None:
        if not self.closed:
            self.close()

    def __del__(self):
        """
        Destructor to ensure the rows handle is closed when the cursor is no longer needed.
        """
        if "closed" in self.__dict__ and not self.closed:
            try:
                self.close()
            except Exception as e:
                # Don't raise an exception in __del__, just log it
                logger.error("Error during cursor cleanup in __del__: %s", e)
