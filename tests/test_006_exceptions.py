"""
Tests for the exception hierarchy and native error translation.
"""
import builtins

import pytest

from teradatapyapi.exceptions import (
    ConnectionError,
    Error,
    ErrorKind,
    LoadError,
    MarshalError,
    NativeCallError,
    RequestError,
    TransactionError,
    kind_to_exception,
    native_errors,
    raise_native_error,
)


@pytest.mark.parametrize(
    "exception_class, kind",
    [
        (LoadError, ErrorKind.LOAD),
        (ConnectionError, ErrorKind.CONNECTION),
        (RequestError, ErrorKind.REQUEST),
        (MarshalError, ErrorKind.MARSHAL),
        (TransactionError, ErrorKind.TRANSACTION),
    ],
)
def test_kinds(exception_class, kind):
    error = exception_class("boom")
    assert isinstance(error, Error)
    assert error.kind is kind
    assert error.message == "boom"
    assert str(error) == "boom"
    assert not error.is_native


def test_connection_error_is_not_the_builtin():
    assert not issubclass(ConnectionError, builtins.ConnectionError)


def test_marshal_error_never_native():
    with pytest.raises(TypeError):
        MarshalError("bad", native_message="driver text")


def test_raise_native_error_prefixes_step():
    with pytest.raises(RequestError) as excinfo:
        raise_native_error(ErrorKind.REQUEST, "rustgoCreateRows", "[Error 3706] Syntax error")
    assert excinfo.value.message == "rustgoCreateRows: [Error 3706] Syntax error"
    assert excinfo.value.native_message == "[Error 3706] Syntax error"
    assert excinfo.value.is_native


def test_raise_native_error_rejects_marshal_kind():
    assert ErrorKind.MARSHAL not in kind_to_exception
    with pytest.raises(ValueError):
        raise_native_error(ErrorKind.MARSHAL, "step", "text")


def test_native_errors_translates_call_error():
    with pytest.raises(ConnectionError) as excinfo:
        with native_errors(ConnectionError):
            raise NativeCallError("goCreateConnection", "[Error 8017] invalid logon")
    assert excinfo.value.message == "goCreateConnection: [Error 8017] invalid logon"
    assert isinstance(excinfo.value.__context__, NativeCallError)


def test_native_errors_custom_step():
    with pytest.raises(TransactionError, match="^commit: text$"):
        with native_errors(TransactionError, step="commit"):
            raise NativeCallError("rustgoCreateRows", "text")


def test_native_errors_leaves_other_exceptions():
    with pytest.raises(KeyError):
        with native_errors(RequestError):
            raise KeyError("x")
