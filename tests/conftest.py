"""
This file contains fixtures for the tests in the teradatapyapi package.

The native driver is replaced by FakeTeradataDriver, an in-process stand-in
whose entry points are ctypes callbacks with the real signatures. The binding
layer loads it through the normal loader, so out-pointers, string copies and
goFreePointer round trips all go through ctypes exactly as they would against
the shared library.

Fixtures:
- fake_driver: Fake driver plus a library directory holding an empty library file.
- loaded_driver: fake_driver after a successful load_driver().
- session_handles: (u_log, conn_handle) of an open session on loaded_driver.
- db_connection: Connection object on loaded_driver.
- cursor: Cursor from db_connection.
"""

import ctypes
import json
import re
import threading
import types

import pytest

from teradatapyapi import native
from teradatapyapi.handles import registry
from teradatapyapi.native import ENTRY_POINTS, DriverLibrary
from teradatapyapi.platform_utils import get_library_filename

CONNECT_PARAMS = {"host": "whomooz", "user": "guest", "password": "please"}

# Activity types reported by the fake for each statement kind
ACTIVITY_TYPES = {
    "Select": 1,
    "Insert": 2,
    "Create Table": 3,
    "Drop Table": 4,
    "Transaction": 5,
}

# sql type -> (TypeName, MaxByteCount per length unit or fixed, Precision, Scale)
_TYPE_INFO = {
    "byteint": ("BYTEINT", 1, 3),
    "smallint": ("SMALLINT", 2, 5),
    "integer": ("INTEGER", 4, 10),
    "bigint": ("BIGINT", 8, 19),
    "float": ("FLOAT", 8, 15),
    "date": ("DATE", 4, 0),
}


def column_descriptor(name, sql_type):
    """(name, TypeName, MaxByteCount, Nullable, Precision, Scale) for a column definition."""
    match = re.fullmatch(r"(\w+)(?:\((\d+)\))?", sql_type.strip().lower())
    base, length = match.group(1), match.group(2)
    if base in ("varchar", "char"):
        return (name, base.upper(), 2 * int(length or 1), True, 0, 0)
    type_name, max_byte_count, precision = _TYPE_INFO.get(base, (base.upper(), 0, 0))
    return (name, type_name, max_byte_count, True, precision, 0)


def metadata_json(descriptors):
    columns = list(descriptors)
    return json.dumps(
        {
            "ColumnName": [c[0] for c in columns],
            "MaxByteCount": [c[2] for c in columns],
            "Nullable": [c[3] for c in columns],
            "Precision": [c[4] for c in columns],
            "Scale": [c[5] for c in columns],
            "TypeName": [c[1] for c in columns],
        },
        separators=(",", ":"),
    )


class FakeResult:
    """One result set produced by a fake request."""

    def __init__(
        self,
        columns=(),
        rows=(),
        activity_count=None,
        activity_name="Select",
        fetch_error=None,
        fetch_error_after=0,
        block_until_cancel=False,
        raw_metadata=None,
    ):
        self.columns = list(columns)
        self.rows = [list(row) for row in rows]
        self.activity_count = len(self.rows) if activity_count is None else activity_count
        self.activity_name = activity_name
        self.activity_type = ACTIVITY_TYPES.get(activity_name, 0)
        self.fetch_error = fetch_error
        self.fetch_error_after = fetch_error_after
        self.block_until_cancel = block_until_cancel
        self.raw_metadata = raw_metadata

    def metadata(self):
        if self.raw_metadata is not None:
            return self.raw_metadata
        return metadata_json(self.columns)


class FakeFailure(Exception):
    pass


class FakeTeradataDriver:
    """
    Scripted stand-in for the native driver.

    Understands create volatile table, insert with bind values, select * with
    optional order by 1, drop table, select session and the transaction
    escapes. Anything else fails with a syntax error unless a response is
    registered in ``responses`` (a list of FakeResult, or an error message).
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.buffers = {}
        self.freed = 0
        self.calls = []
        self.requests = []
        self.escapes = []
        self.responses = {}
        self.tables = {}
        self.sessions = {}
        self.rows = {}
        self.last_connect_params = None
        self.combined_params = None
        self.fail_escapes = None
        self.fail_close_connection = None
        self.fail_close_rows = None
        self.fail_next_result = None
        self.fail_cancel = None
        self.omit = set()
        self._next_conn = 1
        self._next_rows = 100
        self.lib_dir = None
        self.opened = []
        self._callbacks = {}

    # -- helpers -----------------------------------------------------------

    @property
    def outstanding(self):
        """Number of driver-allocated strings not yet handed back to goFreePointer."""
        return len(self.buffers)

    def native_calls(self, name=None):
        if name is None:
            return [c for c in self.calls if c != "goFreePointer"]
        return [c for c in self.calls if c == name]

    def _alloc(self, text):
        buffer = ctypes.create_string_buffer(text.encode("utf-8"))
        address = ctypes.addressof(buffer)
        with self._lock:
            self.buffers[address] = buffer
        return address

    def _fail(self, error, message):
        error[0] = self._alloc(message)

    def library(self):
        """Build the library namespace the loader resolves entry points from."""
        functions = {}
        for name, argtypes in ENTRY_POINTS.items():
            if name in self.omit:
                continue
            functions[name] = ctypes.CFUNCTYPE(None, *argtypes)(getattr(self, "_" + name))
        self._callbacks = functions
        return types.SimpleNamespace(**functions)

    # -- entry points ------------------------------------------------------

    def _goFreePointer(self, u_log, ptr):
        self.calls.append("goFreePointer")
        with self._lock:
            if self.buffers.pop(ptr, None) is not None:
                self.freed += 1

    def _goCombineJSON(self, json1, json2, error, combined):
        self.calls.append("goCombineJSON")
        try:
            first = json.loads(json1.decode("utf-8"))
            second = json.loads(json2.decode("utf-8"))
        except ValueError as e:
            self._fail(error, f"goCombineJSON: {e}")
            return
        if not isinstance(first, dict) or not isinstance(second, dict):
            self._fail(error, "goCombineJSON: both arguments must be JSON objects")
            return
        first.update(second)
        combined[0] = self._alloc(json.dumps(first))

    def _goParseParams(self, params, error, u_log):
        self.calls.append("goParseParams")
        parsed = json.loads(params.decode("utf-8"))
        log = parsed.get("log", "0")
        if not str(log).isdigit():
            self._fail(error, f"[Error 1] Invalid log parameter value {log}")
            return
        u_log[0] = int(log)

    def _goCreateConnection(self, u_log, version, params, error, conn_handle):
        self.calls.append("goCreateConnection")
        parsed = json.loads(params.decode("utf-8"))
        self.last_connect_params = parsed
        if parsed.get("password") == "wrong":
            self._fail(error, "[Error 8017] The UserId, Password or Account is invalid.")
            return
        if parsed.get("host") == "nohost":
            self._fail(error, "[Error 1000] Hostname lookup failed for nohost")
            return
        with self._lock:
            handle = self._next_conn
            self._next_conn += 1
            self.sessions[handle] = {"u_log": u_log, "cancel": threading.Event(), "session_no": 1000 + handle}
        conn_handle[0] = handle

    def _goCloseConnection(self, u_log, conn_handle, error):
        self.calls.append("goCloseConnection")
        if self.fail_close_connection:
            self._fail(error, self.fail_close_connection)
            return
        if self.sessions.pop(conn_handle, None) is None:
            self._fail(error, f"Invalid connection handle {conn_handle}")

    def _goCancelRequest(self, u_log, conn_handle, error):
        self.calls.append("goCancelRequest")
        if self.fail_cancel:
            self._fail(error, self.fail_cancel)
            return
        session = self.sessions.get(conn_handle)
        if session is None:
            self._fail(error, f"Invalid connection handle {conn_handle}")
            return
        session["cancel"].set()

    def _rustgoCreateRows(self, u_log, conn_handle, request_text, bind_values, error, rows_handle):
        self.calls.append("rustgoCreateRows")
        session = self.sessions.get(conn_handle)
        if session is None:
            self._fail(error, f"Invalid connection handle {conn_handle}")
            return
        text = request_text.decode("utf-8")
        binds = json.loads(bind_values.decode("utf-8"))
        self.requests.append((text, binds))
        session["cancel"].clear()
        try:
            results = self._run(session, text, binds)
        except FakeFailure as e:
            self._fail(error, str(e))
            return
        with self._lock:
            handle = self._next_rows
            self._next_rows += 1
            self.rows[handle] = {"session": session, "results": results, "index": 0, "pos": 0}
        rows_handle[0] = handle

    def _rustgoResultMetaData(
        self, u_log, rows_handle, error, activity_count, activity_type, activity_name, column_metadata
    ):
        self.calls.append("rustgoResultMetaData")
        state = self.rows.get(rows_handle)
        if state is None:
            self._fail(error, f"Invalid rows handle {rows_handle}")
            return
        result = state["results"][state["index"]]
        activity_count[0] = result.activity_count
        activity_type[0] = result.activity_type
        activity_name[0] = self._alloc(result.activity_name)
        column_metadata[0] = self._alloc(result.metadata())

    def _rustgoFetchRow(self, u_log, rows_handle, error, column_values):
        self.calls.append("rustgoFetchRow")
        state = self.rows.get(rows_handle)
        if state is None:
            self._fail(error, f"Invalid rows handle {rows_handle}")
            return
        result = state["results"][state["index"]]
        if result.block_until_cancel:
            if state["session"]["cancel"].wait(timeout=10):
                self._fail(error, "[Error 2646] The request was aborted by the user")
            else:
                self._fail(error, "Fake fetch was never cancelled")
            return
        if result.fetch_error and state["pos"] >= result.fetch_error_after:
            self._fail(error, result.fetch_error)
            return
        if state["pos"] < len(result.rows):
            row = result.rows[state["pos"]]
            state["pos"] += 1
            column_values[0] = self._alloc(json.dumps(row, separators=(",", ":")))

    def _goNextResult(self, u_log, rows_handle, error, avail):
        self.calls.append("goNextResult")
        if self.fail_next_result:
            self._fail(error, self.fail_next_result)
            return
        state = self.rows.get(rows_handle)
        if state is None:
            self._fail(error, f"Invalid rows handle {rows_handle}")
            return
        if state["index"] + 1 < len(state["results"]):
            state["index"] += 1
            state["pos"] = 0
            avail[0] = b"Y"
        else:
            avail[0] = b"N"

    def _goCloseRows(self, u_log, rows_handle, error):
        self.calls.append("goCloseRows")
        if self.fail_close_rows:
            self._fail(error, self.fail_close_rows)
            return
        if self.rows.pop(rows_handle, None) is None:
            self._fail(error, f"Invalid rows handle {rows_handle}")

    # -- request interpreter -----------------------------------------------

    def _run(self, session, text, binds):
        response = self.responses.get(text)
        if isinstance(response, str):
            raise FakeFailure(response)
        if response is not None:
            return list(response)
        statements = [s.strip() for s in text.split(";") if s.strip()]
        return [self._statement(session, statement, binds) for statement in statements]

    def _table(self, name):
        table = self.tables.get(name.lower())
        if table is None:
            raise FakeFailure(f"[Error 3807] Object '{name}' does not exist.")
        return table

    def _statement(self, session, statement, binds):
        lowered = statement.lower()

        if lowered.startswith("{fn teradata_"):
            if self.fail_escapes:
                raise FakeFailure(self.fail_escapes)
            self.escapes.append(statement)
            return FakeResult(activity_count=0, activity_name="Transaction")

        match = re.match(r"create volatile table (\w+) \((.*)\)", lowered, re.DOTALL)
        if match:
            name = match.group(1)
            if name in self.tables:
                raise FakeFailure(f"[Error 3803] Table '{name}' already exists.")
            columns = [
                column_descriptor(col, sql_type)
                for col, sql_type in re.findall(r"(\w+)\s+(\w+(?:\(\d+\))?)", match.group(2))
            ]
            self.tables[name] = {"columns": columns, "rows": []}
            return FakeResult(activity_count=0, activity_name="Create Table")

        match = re.match(r"insert into (\w+) values", lowered)
        if match:
            table = self._table(match.group(1))
            if binds is None:
                raise FakeFailure(
                    "[Error 3939] There is a mismatch between the number of parameters "
                    "specified and the number of parameters required."
                )
            table["rows"].extend(list(row) for row in binds)
            return FakeResult(activity_count=len(binds), activity_name="Insert")

        match = re.match(r"select \* from (\w+)( order by 1)?$", lowered)
        if match:
            table = self._table(match.group(1))
            rows = list(table["rows"])
            if match.group(2):
                rows.sort(key=lambda row: row[0])
            return FakeResult(columns=table["columns"], rows=rows)

        match = re.match(r"drop table (\w+)$", lowered)
        if match:
            self._table(match.group(1))
            del self.tables[match.group(1)]
            return FakeResult(activity_count=0, activity_name="Drop Table")

        if lowered == "select session":
            return FakeResult(
                columns=[column_descriptor("Session", "integer")],
                rows=[[session["session_no"]]],
            )

        word = statement.split()[0] if statement.split() else ""
        raise FakeFailure(
            f"[Error 3706] Syntax error: expected something between the beginning of the request and the word '{word}'."
        )


def reset_binding_state():
    DriverLibrary._reset_for_testing()
    registry._reset_for_testing()


@pytest.fixture
def fake_driver(tmp_path, monkeypatch):
    reset_binding_state()
    fake = FakeTeradataDriver()
    (tmp_path / get_library_filename()).write_bytes(b"")
    fake.lib_dir = str(tmp_path)

    def open_fake_library(lib_path):
        fake.opened.append(lib_path)
        return fake.library()

    monkeypatch.setattr(native, "_open_library", open_fake_library)
    yield fake
    reset_binding_state()


@pytest.fixture
def loaded_driver(fake_driver):
    native.load_driver(fake_driver.lib_dir)
    return fake_driver


@pytest.fixture
def session_handles(loaded_driver):
    from teradatapyapi.session import create_connection

    return create_connection(json.dumps(CONNECT_PARAMS))


@pytest.fixture
def db_connection(loaded_driver):
    from teradatapyapi import connect

    conn = connect(CONNECT_PARAMS)
    yield conn
    conn.close()


@pytest.fixture
def cursor(db_connection):
    cursor = db_connection.cursor()
    yield cursor
    if not cursor.closed:
        cursor.close()
