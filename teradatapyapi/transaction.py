"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module controls transactions on an open session.

The native driver has no dedicated transaction entry points. Commit, rollback
and auto-commit changes are sent as driver escape requests over the normal
request path, and their (empty) result sets are closed immediately.

None of these operations may run while another thread is fetching rows on
the same session. That precondition is not checked here.
"""

from teradatapyapi.exceptions import RequestError, TransactionError
from teradatapyapi.handles import registry
from teradatapyapi.logging import logger
from teradatapyapi.marshal import JSON_NULL
from teradatapyapi.rows import close_rows, create_rows

COMMIT_ESCAPE = "{fn teradata_commit}"
ROLLBACK_ESCAPE = "{fn teradata_rollback}"
AUTOCOMMIT_ON_ESCAPE = "{fn teradata_nativesql}{fn teradata_autocommit_on}"
AUTOCOMMIT_OFF_ESCAPE = "{fn teradata_nativesql}{fn teradata_autocommit_off}"


def _execute_simple_request(u_log: int, conn_handle: int, request_text: str, action: str) -> None:
    """
    Run a request that returns nothing and close its result set.

    The rows handle never reaches the caller. If closing it fails it is
    dropped from the registry anyway and the native driver releases it when
    the session is closed.

    Raises:
        ConnectionError: If the connection handle is closed or unknown.
        TransactionError: If the native driver rejects the request or the close.
    """
    try:
        rows_handle = create_rows(u_log, conn_handle, request_text, JSON_NULL)
    except RequestError as e:
        logger.error("%s failed on conn_handle=%d: %s", action, conn_handle, e.message)
        raise TransactionError(f"{action} failed: {e.message}", native_message=e.native_message) from e

    try:
        close_rows(u_log, rows_handle)
    except RequestError as e:
        registry.remove_rows(rows_handle)
        logger.error(
            "%s on conn_handle=%d could not close rows_handle=%d: %s",
            action, conn_handle, rows_handle, e.message,
        )
        raise TransactionError(
            f"{action} could not close its result: {e.message}", native_message=e.native_message
        ) from e


def set_autocommit(u_log: int, conn_handle: int, enabled: bool) -> None:
    """
    Turn auto-commit mode on or off for a session.

    Args:
        u_log (int): Bitmask returned by create_connection.
        conn_handle (int): Open connection handle.
        enabled (bool): True to commit after every request.

    Raises:
        ConnectionError: If the connection handle is closed or unknown.
        TransactionError: If the native driver rejects the change.
    """
    if not isinstance(enabled, bool):
        raise TransactionError(f"Auto-commit mode must be a boolean, got {type(enabled).__name__}")
    request_text = AUTOCOMMIT_ON_ESCAPE if enabled else AUTOCOMMIT_OFF_ESCAPE
    _execute_simple_request(u_log, conn_handle, request_text, "Set auto-commit")
    logger.info("Auto-commit %s on conn_handle=%d", "enabled" if enabled else "disabled", conn_handle)


def commit(u_log: int, conn_handle: int) -> None:
    """Commit the current transaction of a session."""
    _execute_simple_request(u_log, conn_handle, COMMIT_ESCAPE, "Commit")
    logger.info("Transaction committed on conn_handle=%d", conn_handle)


def rollback(u_log: int, conn_handle: int) -> None:
    """Roll back the current transaction of a session."""
    _execute_simple_request(u_log, conn_handle, ROLLBACK_ESCAPE, "Rollback")
    logger.info("Transaction rolled back on conn_handle=%d", conn_handle)
