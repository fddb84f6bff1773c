"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
Command-line programs that drive the native driver through the binding layer.

    teradatapyapi run LIB_DIR CONNECT_PARAMS_JSON [REQUEST [BINDS]]...
    teradatapyapi sample LIB_DIR CONNECT_PARAMS_JSON
"""

import json
from typing import List, Optional, Sequence, Tuple

import typer
from rich.console import Console
from rich.markup import escape

from teradatapyapi import rows, session
from teradatapyapi.exceptions import Error
from teradatapyapi.logging import STDOUT, setup_logging
from teradatapyapi.marshal import JSON_NULL
from teradatapyapi.native import load_driver

app = typer.Typer(help="Run SQL requests through the Teradata native driver")
console = Console(soft_wrap=True, emoji=False)

# (column type, bind value, bind expression, extra select expression)
SAMPLE_DATA_TYPES = [
    ("byteint", 127, "?", None),
    ("smallint", 32767, "?", None),
    ("integer", 2147483647, "?", None),
    ("bigint", "9223372036854775807", "?", None),
    ("float", 3.14159, "?", None),
    ("decimal(18, 3)", "123456789012345.678", "?", None),
    ("decimal(38, 5)", "12345678901234567890.12345", "?", None),
    ("number", "12345678901234567890.123456789", "?", None),
    ("char(3)", "abc", "?", None),
    ("varchar(100)", "hello world", "?", None),
    ("byte(3)", "eHl6", "to_bytes(?, 'base64m')", "from_bytes({col}, 'ascii')"),
    ("varbyte(20)", "QUE+QUE/QQ==", "to_bytes(?, 'base64m')", "from_bytes({col}, 'ascii')"),
    ("date", "2025-12-25", "?", None),
    ("time", "11:22:33.123456", "?", None),
    ("time with time zone", "11:22:33.123456+11:22", "?", None),
    ("timestamp", "2025-12-25 11:22:33.123456", "?", None),
    ("timestamp with time zone", "2025-12-25 11:22:33.123456+11:22", "?", None),
    ("interval year(4)", "-1234", "?", None),
    ("interval year(4) to month", "-1234-11", "?", None),
    ("interval month(4)", "-1234", "?", None),
    ("interval day(4)", "-1234", "?", None),
    ("interval day(4) to hour", "-1234 11", "?", None),
    ("interval day(4) to minute", "-1234 11:22", "?", None),
    ("interval day(4) to second", "-1234 11:22:33.123456", "?", None),
    ("interval hour(4)", "-1234", "?", None),
    ("interval hour(4) to minute", "-1234:22", "?", None),
    ("interval hour(4) to second", "-1234:22:33.123456", "?", None),
    ("interval minute(4)", "-1234", "?", None),
    ("interval minute(4) to second", "-1234:33.123456", "?", None),
    ("interval second(4)", "-1234.123456", "?", None),
    ("period(date)", "('2005-02-03', '2006-02-04')", "?", None),
    ("period(time)", "('11:22:33.123456', '11:22:33.123457')", "?", None),
    ("period(time with time zone)", "('11:22:33.123456+11:22', '11:22:33.123457+11:22')", "?", None),
    ("period(timestamp)", "('2011-01-23 11:22:33.123456', '2011-01-23 11:22:33.123457')", "?", None),
    (
        "period(timestamp with time zone)",
        "('2011-01-23 11:22:33.123456+11:22', '2011-01-23 11:22:33.123457+11:22')",
        "?",
        None,
    ),
    ("blob", "QUJDREVG", "to_bytes(?, 'base64m')", "from_bytes({col}, 'ascii')"),
    ("clob", "ClobValue", "?", None),
    ("xml", "<foo>bar</foo>", "createxml(?)", None),
    ("json", "[1,2,3]", "?", None),
]


def _out(text: str = "") -> None:
    console.print(text, markup=False, highlight=False)


def _error(step: str, err: Error) -> None:
    console.print(f"[red]Error from {step}:[/red] {escape(err.message)}", highlight=False)


def execute_request(u_log: int, conn_handle: int, request_text: str, bind_values: str = JSON_NULL) -> None:
    """
    Run one request and print every result set it produces.

    Errors are printed and end this request only.
    """
    _out()
    _out(f"request_text: {request_text}")
    _out(f"bind_values:  {bind_values}")

    try:
        rows_handle = rows.create_rows(u_log, conn_handle, request_text, bind_values)
    except Error as e:
        _error("create_rows", e)
        return

    result_num = 1
    while True:
        try:
            activity_count, activity_type, activity_name, column_metadata = rows.result_metadata(
                u_log, rows_handle
            )
        except Error as e:
            _error("result_metadata", e)
            break
        _out(f"Result {result_num} activity_count:  {activity_count}")
        _out(f"Result {result_num} activity_type:   {activity_type}")
        _out(f"Result {result_num} activity_name:   {activity_name}")
        _out(f"Result {result_num} column_metadata: {column_metadata}")

        row_num = 1
        while True:
            try:
                row = rows.fetch_row(u_log, rows_handle)
            except Error as e:
                _error("fetch_row", e)
                break
            if row is None:
                break
            _out(f"Result {result_num} row {row_num}: {row}")
            row_num += 1

        try:
            if not rows.next_result(u_log, rows_handle):
                break
        except Error as e:
            _error("next_result", e)
            break
        result_num += 1

    try:
        rows.close_rows(u_log, rows_handle)
    except Error as e:
        _error("close_rows", e)


def _pair_requests(args: Sequence[str]) -> List[Tuple[str, str]]:
    """Pair each request with the argument after it; a trailing request gets null binds."""
    return [
        (args[i], args[i + 1] if i + 1 < len(args) else JSON_NULL)
        for i in range(0, len(args), 2)
    ]


def _open_session(lib_dir: str, connect_params_json: str) -> Tuple[int, int]:
    _out(f"lib_dir: {lib_dir}")
    _out(f"connect_params_json: {connect_params_json}")
    try:
        load_driver(lib_dir)
    except Error as e:
        _error("load_driver", e)
        raise typer.Exit(1)
    try:
        u_log, conn_handle = session.create_connection(connect_params_json)
    except Error as e:
        _error("create_connection", e)
        raise typer.Exit(1)
    _out(f"conn_handle: {conn_handle}")
    return u_log, conn_handle


def _close_session(u_log: int, conn_handle: int) -> None:
    try:
        session.close_connection(u_log, conn_handle)
    except Error as e:
        _error("close_connection", e)
        raise typer.Exit(1)


def sample_requests() -> List[Tuple[str, str]]:
    """The scripted demonstration as (request_text, bind_values) pairs."""
    columns = [f"c{i}" for i in range(1, len(SAMPLE_DATA_TYPES) + 1)]
    column_defs = ",\n\t".join(f"{col} {entry[0]}" for col, entry in zip(columns, SAMPLE_DATA_TYPES))
    bind_exprs = ", ".join(entry[2] for entry in SAMPLE_DATA_TYPES)
    select_exprs = []
    for col, entry in zip(columns, SAMPLE_DATA_TYPES):
        select_exprs.append(col)
        if entry[3]:
            select_exprs.append(entry[3].format(col=col))
    type_binds = json.dumps([[entry[1] for entry in SAMPLE_DATA_TYPES]], separators=(",", ":"))

    return [
        ("select * from DBC.SessionInfoV where SessionNo = session", JSON_NULL),
        ("help session", JSON_NULL),
        ("create volatile table vtab (c1 integer, c2 varchar(100)) on commit preserve rows", JSON_NULL),
        ("insert into vtab values (?, ?)", '[[123,"hello"]]'),
        ("insert into vtab values (?, ?)", '[[456,"world"],[789,"foobar"]]'),
        ("insert into vtab values (?, ?)", "[[999,null]]"),
        ("select * from vtab order by 1", JSON_NULL),
        ("drop table vtab", JSON_NULL),
        (
            "select session ; select * from DBC.DBCInfo order by 1 ; "
            "select current_timestamp ; select * from DBC.DBCInfo order by 1 desc",
            JSON_NULL,
        ),
        (
            "select to_bytes('ABCD', 'ascii') as byte_val, "
            "from_bytes(byte_val, 'base64m') as display_byte_val_as_base64",
            JSON_NULL,
        ),
        (
            "select to_bytes(?, 'base64m') as bound_byte_val, "
            "from_bytes(bound_byte_val, 'ascii') as display_byte_val_as_varchar",
            '[["QUJDRA=="]]',
        ),
        (f"create volatile table vtab (\n\t{column_defs}) on commit preserve rows", JSON_NULL),
        (f"insert into vtab ({', '.join(columns)}) values ({bind_exprs})", type_binds),
        (f"select {', '.join(select_exprs)} from vtab order by 1", JSON_NULL),
    ]


def _enable_logging(verbose: bool) -> None:
    if verbose:
        setup_logging(STDOUT)


@app.command()
def run(
    lib_dir: str = typer.Argument(..., help="Directory holding the native driver library"),
    connect_params_json: str = typer.Argument(..., help="JSON object of connection parameters"),
    requests: Optional[List[str]] = typer.Argument(
        None, help="Request text, each optionally followed by its bind values JSON"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log binding layer activity to stdout"),
):
    """Run requests and print every result set."""
    _enable_logging(verbose)
    u_log, conn_handle = _open_session(lib_dir, connect_params_json)
    for request_text, bind_values in _pair_requests(requests or []):
        execute_request(u_log, conn_handle, request_text, bind_values)
    _close_session(u_log, conn_handle)


@app.command()
def sample(
    lib_dir: str = typer.Argument(..., help="Directory holding the native driver library"),
    connect_params_json: str = typer.Argument(..., help="JSON object of connection parameters"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log binding layer activity to stdout"),
):
    """Run the scripted demonstration of bind values, result sets and data types."""
    _enable_logging(verbose)
    u_log, conn_handle = _open_session(lib_dir, connect_params_json)
    for request_text, bind_values in sample_requests():
        execute_request(u_log, conn_handle, request_text, bind_values)
    _close_session(u_log, conn_handle)


def main():
    app()


if __name__ == "__main__":
    main()
