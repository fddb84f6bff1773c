"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module encodes requests for, and decodes responses from, the native driver.

Shapes exchanged with the driver:
- bind values: JSON null, or an array of rows where every row is an array of
  the same length holding JSON scalars
- column metadata: {"ColumnName":[...],"MaxByteCount":[...],"Nullable":[...],
  "Precision":[...],"Scale":[...],"TypeName":[...]} with equal-length arrays
- row: an array of JSON scalars, one per column

Every shape violation raises MarshalError.
"""

import base64
import datetime
import decimal
import json
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from teradatapyapi.exceptions import MarshalError

JSON_NULL = "null"

_SCALAR_TYPES = (str, int, float, bool, type(None))

# (JSON member, attribute, element type)
_COLUMN_METADATA_FIELDS = (
    ("ColumnName", "column_name", str),
    ("MaxByteCount", "max_byte_count", int),
    ("Nullable", "nullable", bool),
    ("Precision", "precision", int),
    ("Scale", "scale", int),
    ("TypeName", "type_name", str),
)


def _reject_constant(name: str) -> Any:
    raise MarshalError(f"{name} is not valid JSON")


def check_encodable(text: str, what: str) -> None:
    """Raise MarshalError if text cannot be passed to the driver as UTF-8."""
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise MarshalError(f"{what} cannot be encoded as UTF-8: {e.reason} at position {e.start}") from e


def _loads(text: Any, what: str) -> Any:
    if not isinstance(text, str):
        raise MarshalError(f"{what} must be a JSON string, got {type(text).__name__}")
    check_encodable(text, what)
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise MarshalError(f"{what} is not valid JSON: {e}") from e


def _dumps(value: Any) -> str:
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except ValueError as e:
        raise MarshalError(f"Value cannot be encoded as JSON: {e}") from e


def _is_element_of(value: Any, element_type: type) -> bool:
    # bool is a subclass of int but never a valid count, precision or scale
    if element_type is int:
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, element_type)


# ---------------------------------------------------------------------------
# Request side
# ---------------------------------------------------------------------------

def validate_request_text(request_text: Any) -> str:
    """Check that request text can be passed to the driver as a C string."""
    if not isinstance(request_text, str):
        raise MarshalError(f"Request text must be a string, got {type(request_text).__name__}")
    if "\x00" in request_text:
        raise MarshalError("Request text must not contain NUL characters")
    check_encodable(request_text, "Request text")
    return request_text


def _check_bind_rows(rows: Any) -> None:
    if not isinstance(rows, list):
        raise MarshalError(f"Bind values must be null or an array of arrays, got {type(rows).__name__}")
    width = None
    for index, row in enumerate(rows):
        if not isinstance(row, list):
            raise MarshalError(f"Bind value row {index + 1} is not an array")
        if width is None:
            width = len(row)
        elif len(row) != width:
            raise MarshalError(
                f"Bind value row {index + 1} has {len(row)} values; expected {width} like row 1"
            )
        for position, value in enumerate(row):
            if not isinstance(value, _SCALAR_TYPES):
                raise MarshalError(
                    f"Bind value row {index + 1} position {position + 1} must be a JSON scalar"
                )


def validate_bind_values(bind_values_json: Any) -> str:
    """
    Validate caller-supplied bind values JSON and return it unchanged.

    Args:
        bind_values_json (str): JSON null, or a rectangular array of arrays of scalars.

    Raises:
        MarshalError: If the text is not valid JSON or does not have that shape.
    """
    rows = _loads(bind_values_json, "Bind values")
    if rows is not None:
        _check_bind_rows(rows)
    return bind_values_json


def _format_offset(offset: Optional[datetime.timedelta]) -> str:
    if offset is None:
        return ""
    minutes = int(offset.total_seconds()) // 60
    sign = "-" if minutes < 0 else "+"
    hours, minutes = divmod(abs(minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def encode_value(value: Any) -> Any:
    """
    Convert a Python value to the JSON scalar the driver expects.

    BYTE, VARBYTE and BLOB values travel as base64 strings; decimals and
    temporal values travel as strings in Teradata literal format.
    """
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value
    if isinstance(value, decimal.Decimal):
        if not value.is_finite():
            raise MarshalError(f"Decimal value {value} cannot be bound")
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, datetime.datetime):
        local = value.replace(tzinfo=None).isoformat(sep=" ", timespec="microseconds")
        return local + _format_offset(value.utcoffset())
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, datetime.time):
        local = value.replace(tzinfo=None).isoformat(timespec="microseconds")
        return local + _format_offset(value.utcoffset())
    raise MarshalError(f"Unsupported bind value type: {type(value).__name__}")


def encode_bind_values(rows: Optional[Sequence[Sequence[Any]]]) -> str:
    """
    Encode Python bind values into the driver's JSON form.

    Args:
        rows: None for no bind values, or a sequence of rows, each a sequence
            with one value per parameter marker.

    Returns:
        str: Compact JSON text, e.g. '[[123,"hello"],[456,null]]' or 'null'.

    Raises:
        MarshalError: If rows are ragged or hold an unsupported value.
    """
    if rows is None:
        return JSON_NULL
    if isinstance(rows, (str, bytes, bytearray)):
        raise MarshalError("Bind values must be a sequence of rows, not a string")
    encoded = []
    for row in rows:
        if isinstance(row, (str, bytes, bytearray)) or not isinstance(row, Sequence):
            raise MarshalError(f"Each bind value row must be a sequence, got {type(row).__name__}")
        encoded.append([encode_value(value) for value in row])
    _check_bind_rows(encoded)
    return _dumps(encoded)


# ---------------------------------------------------------------------------
# Response side
# ---------------------------------------------------------------------------

@dataclass
class ColumnMetadata:
    """Index-aligned per-column descriptors of a result set."""

    column_name: List[str] = field(default_factory=list)
    max_byte_count: List[int] = field(default_factory=list)
    nullable: List[bool] = field(default_factory=list)
    precision: List[int] = field(default_factory=list)
    scale: List[int] = field(default_factory=list)
    type_name: List[str] = field(default_factory=list)

    @property
    def column_count(self) -> int:
        return len(self.column_name)

    def to_json(self) -> str:
        return _dumps({member: getattr(self, attr) for member, attr, _ in _COLUMN_METADATA_FIELDS})

    def description(self, lowercase: bool = False) -> List[Tuple]:
        """
        Column descriptions as DB-API 7-item sequences:
        (name, type_code, display_size, internal_size, precision, scale, null_ok).
        The type name is used as the type code.
        """
        return [
            (
                name.lower() if lowercase else name,
                type_name,
                None,
                max_byte_count,
                precision,
                scale,
                nullable,
            )
            for name, type_name, max_byte_count, precision, scale, nullable in zip(
                self.column_name,
                self.type_name,
                self.max_byte_count,
                self.precision,
                self.scale,
                self.nullable,
            )
        ]


def decode_column_metadata(column_metadata_json: str) -> ColumnMetadata:
    """
    Decode the column metadata JSON returned with a result set.

    Raises:
        MarshalError: If a member is missing, holds a wrong element type, or
            the six arrays differ in length.
    """
    document = _loads(column_metadata_json, "Column metadata")
    if not isinstance(document, dict):
        raise MarshalError("Column metadata must be a JSON object")

    values = {}
    expected_length = None
    for member, attr, element_type in _COLUMN_METADATA_FIELDS:
        if member not in document:
            raise MarshalError(f"Column metadata is missing {member}")
        column_values = document[member]
        if not isinstance(column_values, list):
            raise MarshalError(f"Column metadata {member} must be an array")
        for index, value in enumerate(column_values):
            if not _is_element_of(value, element_type):
                raise MarshalError(
                    f"Column metadata {member}[{index}] must be {element_type.__name__}, "
                    f"got {type(value).__name__}"
                )
        if expected_length is None:
            expected_length = len(column_values)
        elif len(column_values) != expected_length:
            raise MarshalError(
                f"Column metadata {member} has {len(column_values)} entries; expected {expected_length}"
            )
        values[attr] = column_values

    return ColumnMetadata(**values)


def decode_row(row_json: str, column_count: Optional[int] = None) -> List[Any]:
    """
    Decode one fetched row.

    JSON null is returned as None, the explicit NULL marker.

    Raises:
        MarshalError: If the text is not an array of scalars or its length
            differs from column_count.
    """
    row = _loads(row_json, "Row")
    if not isinstance(row, list):
        raise MarshalError("Row must be a JSON array")
    if column_count is not None and len(row) != column_count:
        raise MarshalError(f"Row has {len(row)} values; expected {column_count}")
    for position, value in enumerate(row):
        if not isinstance(value, _SCALAR_TYPES):
            raise MarshalError(f"Row value {position + 1} must be a JSON scalar")
    return row
