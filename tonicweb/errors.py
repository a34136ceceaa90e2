"""Errors attached to a request context, with type flags and JSON output."""

from __future__ import annotations

import dataclasses
import enum
import json
from collections.abc import Mapping
from typing import Any

_JSON_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


class ErrorType(enum.IntFlag):
    """Bit flags classifying an :class:`Error`."""

    PRIVATE = 1 << 0
    PUBLIC = 1 << 1
    NU = 2
    RENDER = 1 << 62
    BIND = 1 << 63
    ANY = (1 << 64) - 1


def _is_struct(value: Any) -> bool:
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def _json_default(value: Any) -> Any:
    if isinstance(value, Error):
        return value.to_json()
    if _is_struct(value):
        return dataclasses.asdict(value)
    if isinstance(value, (set, frozenset)):
        return list(value)
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


def _dumps(value: Any) -> bytes:
    text = json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )
    for char, escaped in _JSON_ESCAPES:
        text = text.replace(char, escaped)
    return text.encode("utf-8")


def _format_value(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda item: str(item[0]))
        return "map[" + " ".join(f"{_format_value(k)}:{_format_value(v)}" for k, v in items) + "]"
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_format_value(v) for v in value) + "]"
    return str(value)


class Error(Exception):
    """An error wrapped with a type and optional metadata."""

    def __init__(self, err: Any, error_type: int = ErrorType(0), meta: Any = None) -> None:
        super().__init__(err)
        self.err = err
        self.type = error_type
        self.meta = meta
        if isinstance(err, BaseException):
            self.__cause__ = err

    __hash__ = Exception.__hash__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Error):
            return NotImplemented
        return (self.err, self.type, self.meta) == (other.err, other.type, other.meta)

    def __str__(self) -> str:
        return str(self.err)

    def __repr__(self) -> str:
        return f"Error(err={self.err!r}, type={int(self.type)}, meta={self.meta!r})"

    def set_type(self, flags: int) -> Error:
        """Set the error type and return the error itself."""
        self.type = flags
        return self

    def set_meta(self, data: Any) -> Error:
        """Set the metadata and return the error itself."""
        self.meta = data
        return self

    def to_json(self) -> Any:
        """Return a JSON-ready representation of the error."""
        data: dict[str, Any] = {}
        meta = self.meta
        if meta is not None:
            if _is_struct(meta):
                return meta
            if isinstance(meta, Mapping):
                data = {str(key): value for key, value in meta.items()}
            else:
                data["meta"] = meta
        data.setdefault("error", str(self))
        return data

    def marshal_json(self) -> bytes:
        """Serialise :meth:`to_json` to JSON bytes."""
        return _dumps(self.to_json())

    def is_type(self, flags: int) -> bool:
        """Return True if any of ``flags`` is set on this error."""
        return (int(self.type) & int(flags)) > 0


class ErrorList(list):
    """A list of :class:`Error` values collected during a request."""

    def by_type(self, typ: int) -> ErrorList:
        """Return the errors whose type matches ``typ``."""
        if not self:
            return ErrorList()
        if typ == ErrorType.ANY:
            return self
        return ErrorList(msg for msg in self if msg.is_type(typ))

    def last(self) -> Error | None:
        """Return the last error, or None when empty."""
        return self[-1] if self else None

    def errors(self) -> list[str]:
        """Return the messages of all errors."""
        return [str(msg) for msg in self]

    def to_json(self) -> Any:
        """Return a JSON-ready representation of the errors."""
        if not self:
            return None
        if len(self) == 1:
            return self[0].to_json()
        return [msg.to_json() for msg in self]

    def marshal_json(self) -> bytes:
        """Serialise :meth:`to_json` to JSON bytes."""
        return _dumps(self.to_json())

    def __str__(self) -> str:
        lines = []
        for number, msg in enumerate(self, start=1):
            lines.append(f"Error #{number:02d}: {msg.err}\n")
            if msg.meta is not None:
                lines.append(f"     Meta: {_format_value(msg.meta)}\n")
        return "".join(lines)