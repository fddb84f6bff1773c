"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module tracks the connection and rows handles issued by the native driver.

Handle values are exactly what the native driver issues. The registry layers
local state on top of them so that closed or unknown handles, or a u_log that
does not belong to the handle, are rejected before any native call.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Set

from teradatapyapi.exceptions import ConnectionError, RequestError
from teradatapyapi.logging import logger


class RowsState(Enum):
    """Lifecycle state of a result set."""

    METADATA_READY = "metadata_ready"
    FETCHING = "fetching"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CLOSED = "closed"


@dataclass
class SessionEntry:
    """An open logged-on connection."""

    u_log: int
    conn_handle: int
    rows_handles: Set[int] = field(default_factory=set)


@dataclass
class RowsEntry:
    """
    An open result set of one request.

    Attributes:
        result_number: 1-based index of the current result set of a
            multi-statement request.
        rows_fetched: Rows fetched from the current result set.
        more_results: False once goNextResult reported no further result set.
    """

    u_log: int
    rows_handle: int
    conn_handle: int
    state: RowsState = RowsState.METADATA_READY
    result_number: int = 1
    rows_fetched: int = 0
    more_results: bool = True


class HandleRegistry:
    """
    Thread-safe tables of open sessions and result sets.

    The lock only guards the tables; it is never held across a native call.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[int, SessionEntry] = {}
        self._rows: Dict[int, RowsEntry] = {}

    def add_session(self, u_log: int, conn_handle: int) -> SessionEntry:
        entry = SessionEntry(u_log, conn_handle)
        with self._lock:
            if conn_handle in self._sessions:
                logger.warning("Native driver reissued open connection handle %d", conn_handle)
            self._sessions[conn_handle] = entry
        return entry

    def session(self, u_log: int, conn_handle: int) -> SessionEntry:
        """
        Look up an open session.

        Raises:
            ConnectionError: If the handle is closed, unknown, or opened with another u_log.
        """
        with self._lock:
            entry = self._sessions.get(conn_handle)
        if entry is None:
            raise ConnectionError(f"Connection handle {conn_handle} is closed or was never opened")
        if entry.u_log != u_log:
            raise ConnectionError(
                f"u_log {u_log} does not match the u_log {entry.u_log} of connection handle {conn_handle}"
            )
        return entry

    def remove_session(self, conn_handle: int) -> List[int]:
        """Forget a closed session. Returns the rows handles it still owned."""
        with self._lock:
            entry = self._sessions.pop(conn_handle, None)
            if entry is None:
                return []
            orphans = sorted(entry.rows_handles)
            for rows_handle in orphans:
                rows_entry = self._rows.pop(rows_handle, None)
                if rows_entry is not None:
                    rows_entry.state = RowsState.CLOSED
        return orphans

    def open_rows(self, conn_handle: int) -> List[int]:
        with self._lock:
            entry = self._sessions.get(conn_handle)
            return sorted(entry.rows_handles) if entry is not None else []

    def add_rows(self, u_log: int, conn_handle: int, rows_handle: int) -> RowsEntry:
        entry = RowsEntry(u_log, rows_handle, conn_handle)
        with self._lock:
            if rows_handle in self._rows:
                logger.warning("Native driver reissued open rows handle %d", rows_handle)
            self._rows[rows_handle] = entry
            session = self._sessions.get(conn_handle)
            if session is not None:
                session.rows_handles.add(rows_handle)
        return entry

    def rows(self, u_log: int, rows_handle: int) -> RowsEntry:
        """
        Look up an open result set.

        Raises:
            RequestError: If the handle is closed, unknown, or opened with another u_log.
        """
        with self._lock:
            entry = self._rows.get(rows_handle)
        if entry is None:
            raise RequestError(f"Rows handle {rows_handle} is closed or was never opened")
        if entry.u_log != u_log:
            raise RequestError(
                f"u_log {u_log} does not match the u_log {entry.u_log} of rows handle {rows_handle}"
            )
        return entry

    def remove_rows(self, rows_handle: int) -> None:
        with self._lock:
            entry = self._rows.pop(rows_handle, None)
            if entry is None:
                return
            entry.state = RowsState.CLOSED
            session = self._sessions.get(entry.conn_handle)
            if session is not None:
                session.rows_handles.discard(rows_handle)

    def _reset_for_testing(self) -> None:
        """Forget every handle - for testing purposes only"""
        with self._lock:
            self._sessions.clear()
            self._rows.clear()


# Process-wide registry
registry = HandleRegistry()
