"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module defines the exceptions raised by the teradatapyapi package.

Every failure, whether reported by the native driver or detected locally,
is raised as a subclass of Error carrying a kind tag and a message. Errors
that originate in the native driver also keep the verbatim native text.
"""

from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional, Type


class ErrorKind(Enum):
    """Category of an Error, for branching without string matching."""

    LOAD = "load"
    CONNECTION = "connection"
    REQUEST = "request"
    MARSHAL = "marshal"
    TRANSACTION = "transaction"


class Error(Exception):
    """
    Base class for errors.
    This is the base class for all error-related exceptions raised by the
    binding layer. Catch it to handle any failure regardless of category.
    """

    kind: Optional[ErrorKind] = None

    def __init__(self, message: str = "An error occurred", native_message: Optional[str] = None) -> None:
        self.message = message
        self.native_message = native_message
        super().__init__(self.message)

    @property
    def is_native(self) -> bool:
        """True when the error was reported by the native driver."""
        return self.native_message is not None


class LoadError(Error):
    """
    Error related to loading the native driver.
    Raised when the shared library is missing, cannot be loaded, lacks an
    entry point, was already loaded from another directory, or when any
    operation is attempted before a successful load.
    """

    kind = ErrorKind.LOAD

    def __init__(self, message: str = "A load error occurred", native_message: Optional[str] = None) -> None:
        super().__init__(message, native_message)


class ConnectionError(Error):
    """
    Error related to a session.
    Raised for logon failures, network failures and invalid or closed
    connection handles.
    """

    kind = ErrorKind.CONNECTION

    def __init__(self, message: str = "A connection error occurred", native_message: Optional[str] = None) -> None:
        super().__init__(message, native_message)


class RequestError(Error):
    """
    Error related to a request or its result set.
    Raised when the native driver rejects a request, a fetch fails, or a rows
    handle is invalid or closed.
    """

    kind = ErrorKind.REQUEST

    def __init__(self, message: str = "A request error occurred", native_message: Optional[str] = None) -> None:
        super().__init__(message, native_message)


class MarshalError(Error):
    """
    Error related to JSON crossing the native boundary.
    Raised for malformed or shape-mismatched JSON. A MarshalError points to a
    protocol contract violation, not a database-level failure, so it never
    carries a native message.
    """

    kind = ErrorKind.MARSHAL

    def __init__(self, message: str = "A marshaling error occurred") -> None:
        super().__init__(message, None)


class TransactionError(Error):
    """
    Error related to transaction control.
    Raised when commit, rollback or an auto-commit change fails.
    """

    kind = ErrorKind.TRANSACTION

    def __init__(self, message: str = "A transaction error occurred", native_message: Optional[str] = None) -> None:
        super().__init__(message, native_message)


class NativeCallError(Exception):
    """
    Raw failure signal from a native entry point.
    Internal to the binding layer; always translated into an Error subclass
    before it reaches the caller.
    """

    def __init__(self, entry_point: str, native_message: str) -> None:
        self.entry_point = entry_point
        self.native_message = native_message
        super().__init__(f"{entry_point}: {native_message}")


# Mapping error kinds to exception classes
kind_to_exception = {
    ErrorKind.LOAD: LoadError,
    ErrorKind.CONNECTION: ConnectionError,
    ErrorKind.REQUEST: RequestError,
    ErrorKind.TRANSACTION: TransactionError,
}


def raise_native_error(kind: ErrorKind, step: str, native_message: str) -> None:
    """
    Raise the exception for a native failure of the given kind.

    Args:
        kind (ErrorKind): Category of the failed operation.
        step (str): Name of the native step that failed.
        native_message (str): Verbatim text reported by the native driver.
    Raises:
        Error: The subclass registered for ``kind``.
    """
    exception_class = kind_to_exception.get(kind)
    if exception_class is None:
        raise ValueError(f"Native errors cannot be reported as {kind}")
    raise exception_class(f"{step}: {native_message}", native_message=native_message)


@contextmanager
def native_errors(error_class: Type[Error], step: Optional[str] = None) -> Iterator[None]:
    """Translate NativeCallError raised inside the block into ``error_class``."""
    try:
        yield
    except NativeCallError as e:
        raise_native_error(error_class.kind, step or e.entry_point, e.native_message)
