"""Request and response objects handled by a context."""

from __future__ import annotations

import email.parser
import email.policy
import enum
import io
from collections.abc import Iterable, Iterator, Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Any, BinaryIO
from urllib.parse import parse_qs, urlsplit

from tonicweb.debug import debug_print

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
_FORM_URLENCODED = "application/x-www-form-urlencoded"
_MULTIPART_FORM = "multipart/form-data"


class SameSite(enum.IntEnum):
    """The SameSite attribute of a cookie; UNSET leaves it out."""

    UNSET = 0
    DEFAULT = 1
    LAX = 2
    STRICT = 3
    NONE = 4


@dataclass
class Param:
    """A single URL parameter: a key and a value."""

    key: str
    value: str


class Params(list):
    """The URL parameters of a matched route, in path order."""

    def get(self, name: str) -> tuple[str, bool]:
        """Return ``(value, True)`` for the first param named ``name``, else ``("", False)``."""
        for entry in self:
            if entry.key == name:
                return entry.value, True
        return "", False

    def by_name(self, name: str) -> str:
        """Return the value of the first param named ``name``, or ``""``."""
        value, _ = self.get(name)
        return value


def _canonical_key(key: str) -> str:
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


class _Headers(MutableMapping):
    """Case-insensitive multi-valued header map."""

    def __init__(self, initial: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None) -> None:
        self._values: dict[str, list[str]] = {}
        if initial is None:
            return
        pairs = initial.items() if isinstance(initial, Mapping) else initial
        for key, value in pairs:
            if isinstance(value, (list, tuple)):
                for item in value:
                    self.add(key, item)
            else:
                self.add(key, value)

    def __getitem__(self, key: str) -> list[str]:
        return self._values[_canonical_key(key)]

    def __setitem__(self, key: str, value: str | list[str]) -> None:
        values = list(value) if isinstance(value, (list, tuple)) else [value]
        self._values[_canonical_key(key)] = [str(item) for item in values]

    def __delitem__(self, key: str) -> None:
        del self._values[_canonical_key(key)]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and _canonical_key(key) in self._values

    def get(self, key: str, default: str = "") -> str:  # type: ignore[override]
        """Return the first value for ``key``, or ``default``."""
        values = self._values.get(_canonical_key(key))
        return values[0] if values else default

    def get_all(self, key: str) -> list[str]:
        """Return every value for ``key``."""
        return list(self._values.get(_canonical_key(key), []))

    def set(self, key: str, value: str) -> None:
        """Replace all values of ``key`` with ``value``."""
        self[key] = value

    def add(self, key: str, value: str) -> None:
        """Append ``value`` to the values of ``key``."""
        self._values.setdefault(_canonical_key(key), []).append(str(value))

    def discard(self, key: str) -> None:
        """Remove ``key`` if present."""
        self._values.pop(_canonical_key(key), None)

    def __repr__(self) -> str:
        return f"_Headers({self._values!r})"


def _media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def _merge(target: dict[str, list[str]], source: Mapping[str, list[str]]) -> None:
    for key, values in source.items():
        target.setdefault(key, []).extend(values)


@dataclass
class Request:
    """An incoming HTTP request."""

    method: str = "GET"
    url: str = "/"
    headers: Any = None
    body: Any = b""
    remote_addr: str = ""
    context_values: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.headers, _Headers):
            self.headers = _Headers(self.headers)
        self.body = self._as_stream(self.body)
        self._post_form: dict[str, list[str]] | None = None

    @staticmethod
    def _as_stream(body: Any) -> BinaryIO:
        if body is None:
            return io.BytesIO()
        if isinstance(body, str):
            return io.BytesIO(body.encode("utf-8"))
        if isinstance(body, (bytes, bytearray, memoryview)):
            return io.BytesIO(bytes(body))
        return body

    @property
    def path(self) -> str:
        """The path component of the URL."""
        return urlsplit(self.url).path

    def query(self) -> dict[str, list[str]]:
        """Parse the URL query string into lists of values, keeping blank values."""
        return parse_qs(urlsplit(self.url).query, keep_blank_values=True)

    def read_body(self) -> bytes:
        """Read and return the rest of the body."""
        return self.body.read()

    def post_form(self) -> dict[str, list[str]]:
        """Return the form values carried in the body.

        URL-encoded bodies are read for POST, PUT and PATCH; multipart form
        bodies for any method. The result is cached, since reading the body
        consumes it. Raises ValueError on a malformed multipart body.
        """
        if self._post_form is not None:
            return self._post_form
        media_type = _media_type(self.headers.get("Content-Type"))
        values: dict[str, list[str]] = {}
        if self.method.upper() in _BODY_METHODS and media_type in (_FORM_URLENCODED, ""):
            if media_type == _FORM_URLENCODED:
                text = self.read_body().decode("utf-8", errors="replace")
                _merge(values, parse_qs(text, keep_blank_values=True))
        elif media_type == _MULTIPART_FORM:
            _merge(values, self._parse_multipart())
        self._post_form = values
        return values

    def _parse_multipart(self) -> dict[str, list[str]]:
        content_type = self.headers.get("Content-Type")
        raw = b"Content-Type: " + content_type.encode("latin-1") + b"\r\n\r\n" + self.read_body()
        message = email.parser.BytesParser(policy=email.policy.HTTP).parsebytes(raw)
        if not message.is_multipart() or not message.get_boundary():
            raise ValueError("malformed multipart form body")
        values: dict[str, list[str]] = {}
        for part in message.iter_parts():
            name = part.get_param("name", header="content-disposition")
            if name is None or part.get_filename() is not None:
                continue
            payload = part.get_payload(decode=True) or b""
            charset = part.get_content_charset() or "utf-8"
            values.setdefault(str(name), []).append(payload.decode(charset, errors="replace"))
        return values

    def cookie(self, name: str) -> str:
        """Return the raw value of the named cookie; raise KeyError if absent."""
        for header in self.headers.get_all("Cookie"):
            for piece in header.split(";"):
                key, sep, value = piece.strip().partition("=")
                if sep and key == name:
                    if len(value) > 1 and value[0] == value[-1] == '"':
                        value = value[1:-1]
                    return value
        raise KeyError(f"named cookie not present: {name}")


class Response:
    """An outgoing HTTP response that records what is written to it."""

    def __init__(self, sink: BinaryIO | None = None) -> None:
        self.headers = _Headers()
        self.body = bytearray()
        self.status = 200
        self.written = False
        self.client_gone = False
        self.flush_count = 0
        self._size = -1
        self._sink = sink

    @property
    def size(self) -> int:
        """Bytes written to the body, or -1 before the header is written."""
        return self._size

    def write_header(self, code: int) -> None:
        """Set the status code unless the header has already gone out."""
        if code > 0 and self.status != code:
            if self.written:
                debug_print(
                    "[WARNING] Headers were already written. Wanted to override status code %d with %d",
                    self.status,
                    code,
                )
                return
            self.status = code

    def write_header_now(self) -> None:
        """Commit the status and headers if not done already."""
        if not self.written:
            self._size = 0
            self.written = True

    def write(self, data: bytes | str) -> int:
        """Write data to the body, committing the header first."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.write_header_now()
        self.body.extend(data)
        if self._sink is not None:
            self._sink.write(data)
        self._size += len(data)
        return len(data)

    def flush(self) -> None:
        """Commit the header and push buffered output to the sink."""
        self.write_header_now()
        self.flush_count += 1
        if self._sink is not None and hasattr(self._sink, "flush"):
            self._sink.flush()