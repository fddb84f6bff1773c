"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module drives the lifecycle of result sets created by requests.

States of a rows handle:

    METADATA_READY -> FETCHING -> EXHAUSTED -> CLOSED
                         |            |
                         v            +-- next_result() True --> METADATA_READY
                       FAILED

A fetch error is fatal to the result set: the handle moves to FAILED and can
only be closed.
"""

from typing import Optional, Tuple

from teradatapyapi.exceptions import NativeCallError, RequestError, native_errors, raise_native_error
from teradatapyapi.handles import RowsState, registry
from teradatapyapi.helpers import abbreviate
from teradatapyapi.logging import logger
from teradatapyapi.marshal import JSON_NULL, validate_bind_values, validate_request_text
from teradatapyapi.native import get_driver


def create_rows(u_log: int, conn_handle: int, request_text: str, bind_values_json: str = JSON_NULL) -> int:
    """
    Submit a request and return the handle of its result set.

    Args:
        u_log (int): Bitmask returned by create_connection.
        conn_handle (int): Open connection handle.
        request_text (str): SQL request text, possibly holding several statements.
        bind_values_json (str): JSON null, or a rectangular array of arrays of
            bind values. The values of the first row determine the data types
            the native driver uses for the whole request.

    Returns:
        int: rows handle, ready for result_metadata().

    Raises:
        ConnectionError: If the connection handle is closed or unknown.
        MarshalError: If the request text or bind values are malformed.
        RequestError: If the native driver rejects the request.
    """
    driver = get_driver()
    registry.session(u_log, conn_handle)
    validate_request_text(request_text)
    validate_bind_values(bind_values_json)

    logger.debug("Submitting request on conn_handle=%d: %s", conn_handle, abbreviate(request_text))
    with native_errors(RequestError):
        rows_handle = driver.create_rows(u_log, conn_handle, request_text, bind_values_json)

    registry.add_rows(u_log, conn_handle, rows_handle)
    logger.debug("Request created rows_handle=%d", rows_handle)
    return rows_handle


def cancel_request(u_log: int, conn_handle: int) -> None:
    """
    Ask the native driver to cancel the request executing on a connection.

    May be called from a thread other than the one blocked in fetch_row().
    Returns once the cancel is issued, without waiting for it to take effect.

    Raises:
        ConnectionError: If the connection handle is closed or unknown.
        RequestError: If the native driver reports an error.
    """
    driver = get_driver()
    registry.session(u_log, conn_handle)
    logger.debug("Cancelling request on conn_handle=%d", conn_handle)
    with native_errors(RequestError):
        driver.cancel_request(u_log, conn_handle)


def result_metadata(u_log: int, rows_handle: int) -> Tuple[int, int, str, str]:
    """
    Return (activity_count, activity_type, activity_name, column_metadata_json)
    of the current result set.

    Raises:
        RequestError: If the rows handle is closed or unknown, or the native
            driver reports an error.
    """
    driver = get_driver()
    registry.rows(u_log, rows_handle)
    with native_errors(RequestError):
        metadata = driver.result_metadata(u_log, rows_handle)
    logger.debug(
        "rows_handle=%d activity_count=%d activity_type=%d activity_name=%s",
        rows_handle, metadata[0], metadata[1], metadata[2],
    )
    return metadata


def fetch_row(u_log: int, rows_handle: int) -> Optional[str]:
    """
    Fetch the next row of the current result set as JSON text.

    Returns None once the result set is exhausted, and keeps returning None
    on later calls until the handle is advanced with next_result() or closed.

    Raises:
        RequestError: If the rows handle is closed, unknown or failed, or the
            fetch fails. A failed fetch is not retried; close the handle.
    """
    driver = get_driver()
    entry = registry.rows(u_log, rows_handle)
    if entry.state is RowsState.FAILED:
        raise RequestError(f"Rows handle {rows_handle} failed during an earlier fetch; close it")
    if entry.state is RowsState.EXHAUSTED:
        return None

    try:
        row = driver.fetch_row(u_log, rows_handle)
    except NativeCallError as e:
        entry.state = RowsState.FAILED
        logger.error("Fetch failed on rows_handle=%d: %s", rows_handle, e.native_message)
        raise_native_error(RequestError.kind, e.entry_point, e.native_message)

    if row is None:
        entry.state = RowsState.EXHAUSTED
        logger.debug(
            "rows_handle=%d result %d exhausted after %d row(s)",
            rows_handle, entry.result_number, entry.rows_fetched,
        )
        return None

    entry.state = RowsState.FETCHING
    entry.rows_fetched += 1
    return row


def next_result(u_log: int, rows_handle: int) -> bool:
    """
    Advance to the next result set of a multi-statement request.

    Rows left in the current result set are discarded.

    Returns:
        bool: True if another result set is available (fetch its metadata
        again), False if none remain.

    Raises:
        RequestError: If the rows handle is closed, unknown or failed, or the
            native driver reports an error.
    """
    driver = get_driver()
    entry = registry.rows(u_log, rows_handle)
    if entry.state is RowsState.FAILED:
        raise RequestError(f"Rows handle {rows_handle} failed during an earlier fetch; close it")
    if not entry.more_results:
        return False

    with native_errors(RequestError):
        available = driver.next_result(u_log, rows_handle)

    if available:
        entry.state = RowsState.METADATA_READY
        entry.result_number += 1
        entry.rows_fetched = 0
    else:
        entry.state = RowsState.EXHAUSTED
        entry.more_results = False
    logger.debug("rows_handle=%d next result available: %s", rows_handle, available)
    return available


def close_rows(u_log: int, rows_handle: int) -> None:
    """
    Close a result set and release its native resources.

    Safe on a partially consumed or failed result set.

    Raises:
        RequestError: If the rows handle is closed or unknown, or the native
            driver reports an error (the handle then stays open).
    """
    driver = get_driver()
    registry.rows(u_log, rows_handle)
    with native_errors(RequestError):
        driver.close_rows(u_log, rows_handle)
    registry.remove_rows(rows_handle)
    logger.debug("rows_handle=%d closed", rows_handle)
