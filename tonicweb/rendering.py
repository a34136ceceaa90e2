"""Response renderers: each sets a content type and writes a body."""

from __future__ import annotations

import base64
import dataclasses
import http
import json
import posixpath
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import urlsplit

import yaml

from tonicweb.errors import Error, ErrorList
from tonicweb.messages import Request, Response

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
JSONP_CONTENT_TYPE = "application/javascript; charset=utf-8"
ASCII_JSON_CONTENT_TYPE = "application/json"
XML_CONTENT_TYPE = "application/xml; charset=utf-8"
YAML_CONTENT_TYPE = "application/x-yaml; charset=utf-8"
PLAIN_CONTENT_TYPE = "text/plain; charset=utf-8"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"
SSE_CONTENT_TYPE = "text/event-stream"
DEFAULT_SECURE_JSON_PREFIX = "while(1);"

_HTML_JSON_ESCAPES = (("<", "\\u003c"), (">", "\\u003e"), ("&", "\\u0026"))
_LINE_SEPARATOR_ESCAPES = (("\u2028", "\\u2028"), ("\u2029", "\\u2029"))
_XML_ESCAPES = {
    '"': "&#34;",
    "'": "&#39;",
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    "\t": "&#x9;",
    "\n": "&#xA;",
    "\r": "&#xD;",
}
_HTML_ATTR_ESCAPES = {"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&#34;", "'": "&#39;"}
_JS_SPECIAL = {"\\": "\\\\", "'": "\\'", '"': '\\"', "<": "\\u003C", ">": "\\u003E", "&": "\\u0026", "=": "\\u003D"}


class RenderError(Exception):
    """Raised when data cannot be encoded into a response body."""


class Renderer(Protocol):
    """Anything that can write a content type and a body to a response."""

    def render(self, response: Response) -> None: ...

    def write_content_type(self, response: Response) -> None: ...


def _is_struct(value: Any) -> bool:
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def _plain(value: Any) -> Any:
    """Convert a value to plain data: dataclasses keep field order, mappings are sorted."""
    if isinstance(value, (Error, ErrorList)):
        return _plain(value.to_json())
    if _is_struct(value):
        return {
            f.name: _plain(getattr(value, f.name))
            for f in dataclasses.fields(value)
            if not f.name.startswith("_")
        }
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda item: str(item[0]))
        return {str(key): _plain(item) for key, item in items}
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(item) for item in value]
    return value


def _encode_json(value: Any, *, escape_html: bool = True, indent: int | None = None) -> str:
    separators = (",", ":") if indent is None else (",", ": ")
    try:
        text = json.dumps(
            _plain(value),
            ensure_ascii=False,
            allow_nan=False,
            separators=separators,
            indent=indent,
        )
    except (TypeError, ValueError) as exc:
        raise RenderError(str(exc)) from exc
    escapes = _LINE_SEPARATOR_ESCAPES + (_HTML_JSON_ESCAPES if escape_html else ())
    for char, escaped in escapes:
        text = text.replace(char, escaped)
    return text


def _write_content_type(response: Response, value: str) -> None:
    if not response.headers.get_all("Content-Type"):
        response.headers.set("Content-Type", value)


def _sprint(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return str(value)


def _js_escape(text: str) -> str:
    out = []
    for char in text:
        if char in _JS_SPECIAL:
            out.append(_JS_SPECIAL[char])
        elif char < " ":
            out.append("\\u%04X" % ord(char))
        elif ord(char) >= 0x80 and not char.isprintable():
            out.append("\\u%04X" % ord(char))
        else:
            out.append(char)
    return "".join(out)


@dataclass
class JSONRender:
    """JSON with HTML characters escaped."""

    data: Any

    def render(self, response: Response) -> None:
        self.write_content_type(response)
        response.write(_encode_json(self.data))

    def write_content_type(self, response: Response) -> None:
        _write_content_type(response, JSON_CONTENT_TYPE)


@dataclass
class IndentedJSONRender:
    """JSON indented by four spaces."""

    data: Any

    def render(self, response: Response) -> None:
        self.write_content_type(response)
        response.write(_encode_json(self.data, indent=4))

    def write_content_type(self, response: Response) -> None:
        _write_content_type(response, JSON_CONTENT_TYPE)


@dataclass
class SecureJSONRender:
    """JSON whose top-level arrays are preceded by a prefix."""

    data: Any
    prefix: str = DEFAULT_SECURE_JSON_PREFIX

    def render(self, response: Response) -> None:
        self.write_content_type(response)
        text = _encode_json(self.data)
        if text.startswith("["):
            response.write(self.prefix)
        response.write(text)

    def write_content_type(self, response: Response) -> None:
        _write_content_type(response, JSON_CONTENT_TYPE)


@dataclass
class JsonpRender:
    """JSON wrapped in a call to a JavaScript callback."""

    callback: str
    data: Any

    def render(self, response: Response) -> None:
        self.write_content_type(response)
        text = _encode_json(self.data)
        response.write(_js_escape(self.callback))
        response.write("(")
        response.write(text)
        response.write(");")

    def write_content_type(self, response: Response) -> None:
        _write_content_type(response, JSONP_CONTENT_TYPE)


@dataclass
class AsciiJSONRender:
    """JSON with every non-ASCII character written as a \\u escape."""

    data: Any

    def render(self, response: Response) -> None:
        self.write_content_type(response)
        text = _encode_json(self.data)
        response.write("".join(c if ord(c) < 0x80 else "\\u%04x" % ord(c) for c in text))

    def write_content_type(self, response: Response) -> None:
        _write_content_type(response, ASCII_JSON_CONTENT_TYPE)


@dataclass
class PureJSONRender:
    """JSON without HTML escaping, followed by a newline."""

    data: Any

    def render(self, response: Response) -> None:
        self.write_content_type(response)
        response.write(_encode_json(self.data, escape_html=False) + "\n")

    def write_content_type(self, response: Response) -> None:
        _write_content_type(response, JSON_CONTENT_TYPE)


def _xml_text(value: Any) -> str:
    return "".join(_XML_ESCAPES.get(char, char) for char in _sprint(value))


def _xml_root_name(value: Any) -> str:
    if isinstance(value, Mapping):
        return "map"
    if _is_struct(value):
        return type(value).__name__
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float64"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def _xml_element(name: str, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple, set, frozenset)):
        return "".join(_xml_element(name, item) for item in value)
    if isinstance(value, Mapping):
        inner = "".join(_xml_element(str(key), item) for key, item in value.items())
    elif _is_struct(value):
        inner = "".join(
            _xml_element(f.name, getattr(value, f.name))
            for f in dataclasses.fields(value)
            if not f.name.startswith("_")
        )
    else:
        inner = _xml_text(value)
    return f"<{name}>{inner}</{name}>"


@dataclass
class XMLRender:
    """XML: mappings become <map> elements with one child per key."""

    data: Any

    def render(self, response: Response) -> None:
        self.write_content_type(response)
        if isinstance(self.data, (list, tuple)):
            text = "".join(_xml_element(_xml_root_name(item), item) for item in self.data)
        else:
            text = _xml_element(_xml_root_name(self.data), self.data)
        response.write(text)

    def write_content_type(self, response: Response) -> None:
        _write_content_type(response, XML_CONTENT_TYPE)


@dataclass
class YAMLRender:
    """YAML in block style."""

    data: Any

    def render(self, response: Response) -> None:
        self.write_content_type(response)
        try:
            text = yaml.safe_dump(
                _plain(self.data), sort_keys=False, allow_unicode=True, default_flow_style=False
            )
        except yaml.YAMLError as exc:
            raise RenderError(str(exc)) from exc
        response.write(text)

    def write_content_type(self, response: Response) -> None:
        _write_content_type(response, YAML_CONTENT_TYPE)


@dataclass
class StringRender:
    """Plain text, %-formatted when arguments are given."""

    format: str
    data: tuple = ()

    def render(self, response: Response) -> None:
        self.write_content_type(response)
        if self.data:
            try:
                text = self.format % tuple(self.data)
            except (TypeError, ValueError) as exc:
                raise RenderError(str(exc)) from exc
        else:
            text = self.format
        response.write(text)

    def write_content_type(self, response: Response) -> None:
        _write_content_type(response, PLAIN_CONTENT_TYPE)


@dataclass
class DataRender:
    """Raw bytes with a given content type."""

    content_type: str
    data: bytes

    def render(self, response: Response) -> None:
        self.write_content_type(response)
        response.write(self.data)

    def write_content_type(self, response: Response) -> None:
        _write_content_type(response, self.content_type)


@dataclass
class ReaderRender:
    """The contents of a readable stream, with optional extra headers."""

    reader: Any
    content_type: str = ""
    content_length: int = -1
    headers: dict[str, str] | None = None

    def render(self, response: Response) -> None:
        self.write_content_type(response)
        headers = dict(self.headers or {})
        if self.content_length >= 0:
            headers["Content-Length"] = str(self.content_length)
        for key, value in headers.items():
            if not response.headers.get(key):
                response.headers.set(key, value)
        for chunk in iter(lambda: self.reader.read(64 * 1024), b""):
            if not chunk:
                break
            response.write(chunk)

    def write_content_type(self, response: Response) -> None:
        _write_content_type(response, self.content_type)


def _clean_path(path: str) -> str:
    cleaned = posixpath.normpath(path)
    while cleaned.startswith("//"):
        cleaned = cleaned[1:]
    return cleaned


def _hex_escape_non_ascii(text: str) -> str:
    return "".join(
        "".join("%%%02x" % byte for byte in char.encode("utf-8")) if ord(char) >= 0x80 else char
        for char in text
    )


@dataclass
class RedirectRender:
    """An HTTP redirect to ``location`` with a 3xx or 201 status."""

    code: int
    location: str
    request: Request | None = None

    def render(self, response: Response) -> None:
        code = self.code
        if (code < 300 or code > 308) and code != 201:
            raise ValueError(f"Cannot redirect with status code {code}")
        method = self.request.method.upper() if self.request is not None else ""
        location = self._resolve()
        had_content_type = bool(response.headers.get_all("Content-Type"))
        response.headers.set("Location", _hex_escape_non_ascii(location))
        if not had_content_type and method in ("GET", "HEAD"):
            response.headers.set("Content-Type", HTML_CONTENT_TYPE)
        response.write_header(code)
        if not had_content_type and method == "GET":
            try:
                phrase = http.HTTPStatus(code).phrase
            except ValueError:
                phrase = ""
            href = "".join(_HTML_ATTR_ESCAPES.get(char, char) for char in location)
            response.write(f'<a href="{href}">{phrase}</a>.\n\n')

    def _resolve(self) -> str:
        location = self.location
        try:
            parts = urlsplit(location)
        except ValueError:
            return location
        if parts.scheme or parts.netloc:
            return location
        old_path = (self.request.path if self.request is not None else "") or "/"
        if not location.startswith("/"):
            old_dir = old_path[: old_path.rfind("/") + 1]
            location = old_dir + location
        location, mark, query = location.partition("?")
        trailing = location.endswith("/")
        location = _clean_path(location)
        if trailing and not location.endswith("/"):
            location += "/"
        return location + mark + query

    def write_content_type(self, response: Response) -> None:
        return None


@dataclass
class SSEventRender:
    """A single Server-Sent Event."""

    event: str = ""
    data: Any = None
    id: str = ""
    retry: int = 0

    def render(self, response: Response) -> None:
        self.write_content_type(response)
        parts = []
        if self.id:
            parts.append("id:" + self.id.replace("\n", "\\n").replace("\r", "\\r") + "\n")
        if self.event:
            parts.append("event:" + self.event.replace("\n", "\\n").replace("\r", "\\r") + "\n")
        if self.retry > 0:
            parts.append(f"retry:{self.retry}\n")
        parts.append("data:")
        data = self.data
        if _is_struct(data) or isinstance(data, (Mapping, list, tuple, bytes, bytearray)):
            parts.append(_encode_json(data) + "\n\n")
        else:
            parts.append(_sprint(data).replace("\n", "\ndata:").replace("\r", "\\r") + "\n\n")
        response.write("".join(parts))

    def write_content_type(self, response: Response) -> None:
        response.headers.set("Content-Type", SSE_CONTENT_TYPE)
        if "Cache-Control" not in response.headers:
            response.headers.set("Cache-Control", "no-cache")