"""The per-request context: flow control, request input and response rendering."""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, BinaryIO
from urllib.parse import quote_plus, unquote_plus

from tonicweb import negotiation
from tonicweb.debug import debug_print, name_of_function
from tonicweb.errors import Error, ErrorList, ErrorType
from tonicweb.messages import Param, Params, Request, Response, SameSite
from tonicweb.rendering import (
    DEFAULT_SECURE_JSON_PREFIX,
    AsciiJSONRender,
    DataRender,
    IndentedJSONRender,
    JSONRender,
    JsonpRender,
    PureJSONRender,
    ReaderRender,
    RedirectRender,
    Renderer,
    RenderError,
    SecureJSONRender,
    SSEventRender,
    StringRender,
    XMLRender,
    YAMLRender,
)

BODY_BYTES_KEY = "_tonicweb/bodybyteskey"
CONTEXT_KEY = "_tonicweb/contextkey"
ABORT_INDEX = 127 >> 1

_COOKIE_NAME_FORBIDDEN = set('()<>@,;:\\"/[]?={} \t')

Handler = Callable[["Context"], Any]


@dataclass
class Negotiate:
    """The data offered for content negotiation."""

    offered: list[str] = field(default_factory=list)
    json_data: Any = None
    xml_data: Any = None
    yaml_data: Any = None
    data: Any = None


def _choose_data(custom: Any, wildcard: Any) -> Any:
    if custom is None:
        if wildcard is None:
            raise ValueError("negotiation config is invalid")
        return wildcard
    return custom


def _find_error(err: Any) -> Error | None:
    seen: set[int] = set()
    current = err
    while current is not None and id(current) not in seen:
        if isinstance(current, Error):
            return current
        seen.add(id(current))
        current = getattr(current, "__cause__", None)
    return None


def _extract_map(values: Mapping[str, list[str]], key: str) -> tuple[dict[str, str], bool]:
    result: dict[str, str] = {}
    exists = False
    for name, items in values.items():
        open_at = name.find("[")
        if open_at >= 1 and name[:open_at] == key:
            rest = name[open_at + 1:]
            close_at = rest.find("]")
            if close_at >= 1:
                exists = True
                result[rest[:close_at]] = items[0]
    return result, exists


def _split_host(addr: str) -> str | None:
    if addr.startswith("["):
        end = addr.find("]")
        if end < 0:
            return None
        host, rest = addr[1:end], addr[end + 1:]
        if not rest.startswith(":") or ":" in rest[1:]:
            return None
        return host
    colon = addr.rfind(":")
    if colon < 0:
        return None
    host = addr[:colon]
    if ":" in host or "[" in host or "]" in host:
        return None
    return host


class Context:
    """State shared by the handlers processing one request."""

    def __init__(
        self,
        request: Request | None = None,
        writer: Response | None = None,
        *,
        params: Sequence[Param] | None = None,
        handlers: Sequence[Handler] | None = None,
        full_path: str = "",
        secure_json_prefix: str = DEFAULT_SECURE_JSON_PREFIX,
        context_with_fallback: bool = False,
    ) -> None:
        self.request = request
        self.writer = writer if writer is not None else Response()
        self.params = Params(params or [])
        self.handlers: list[Handler] = list(handlers or [])
        self.secure_json_prefix = secure_json_prefix
        self.context_with_fallback = context_with_fallback
        self.keys: dict[str, Any] | None = None
        self.errors = ErrorList()
        self.accepted: list[str] | None = None
        self._index = -1
        self._full_path = full_path
        self._query_cache: dict[str, list[str]] | None = None
        self._form_cache: dict[str, list[str]] | None = None
        self._same_site = SameSite.UNSET
        self._lock = threading.RLock()

    def reset(self) -> None:
        """Clear all per-request state, keeping the writer."""
        self.params = Params()
        self.handlers = []
        self._index = -1
        self._full_path = ""
        self.keys = None
        self.errors = ErrorList()
        self.accepted = None
        self._query_cache = None
        self._form_cache = None
        self._same_site = SameSite.UNSET

    def copy(self) -> Context:
        """Return a detached copy safe to use outside the request's scope."""
        duplicate = Context(
            self.request,
            Response(),
            params=[Param(p.key, p.value) for p in self.params],
            secure_json_prefix=self.secure_json_prefix,
            context_with_fallback=self.context_with_fallback,
        )
        duplicate._index = ABORT_INDEX
        with self._lock:
            duplicate.keys = dict(self.keys or {})
        return duplicate

    def handler_name(self) -> str:
        """Return the dotted name of the main (last) handler."""
        return name_of_function(self.handler())

    def handler_names(self) -> list[str]:
        """Return the names of all handlers in the chain."""
        return [name_of_function(handler) for handler in self.handlers]

    def handler(self) -> Handler | None:
        """Return the main (last) handler, or None."""
        return self.handlers[-1] if self.handlers else None

    def full_path(self) -> str:
        """Return the matched route path, or "" when none matched."""
        return self._full_path

    # Flow control

    def next(self) -> None:
        """Run the pending handlers in the chain."""
        self._index += 1
        while self._index < len(self.handlers):
            self.handlers[self._index](self)
            self._index += 1

    def is_aborted(self) -> bool:
        return self._index >= ABORT_INDEX

    def abort(self) -> None:
        """Prevent pending handlers from running."""
        self._index = ABORT_INDEX

    def abort_with_status(self, code: int) -> None:
        self.status(code)
        self.writer.write_header_now()
        self.abort()

    def abort_with_status_json(self, code: int, obj: Any) -> None:
        self.abort()
        self.json(code, obj)

    def abort_with_error(self, code: int, err: Any) -> Error:
        self.abort_with_status(code)
        return self.error(err)

    def error(self, err: Any) -> Error:
        """Attach an error to the context and return it as an :class:`Error`."""
        if err is None:
            raise ValueError("err is nil")
        parsed = _find_error(err)
        if parsed is None:
            parsed = Error(err, ErrorType.PRIVATE)
        self.errors.append(parsed)
        return parsed

    # Metadata

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            if self.keys is None:
                self.keys = {}
            self.keys[key] = value

    def get(self, key: str) -> tuple[Any, bool]:
        """Return ``(value, True)`` if the key is set, else ``(None, False)``."""
        with self._lock:
            if self.keys is not None and key in self.keys:
                return self.keys[key], True
            return None, False

    def must_get(self, key: str) -> Any:
        value, exists = self.get(key)
        if not exists:
            raise KeyError(f'Key "{key}" does not exist')
        return value

    def get_string(self, key: str) -> str:
        value, _ = self.get(key)
        return value if isinstance(value, str) else ""

    def get_bool(self, key: str) -> bool:
        value, _ = self.get(key)
        return value if isinstance(value, bool) else False

    def get_int(self, key: str) -> int:
        value, _ = self.get(key)
        return value if isinstance(value, int) and not isinstance(value, bool) else 0

    def get_float(self, key: str) -> float:
        value, _ = self.get(key)
        return value if isinstance(value, float) else 0.0

    def get_datetime(self, key: str) -> datetime | None:
        value, _ = self.get(key)
        return value if isinstance(value, datetime) else None

    def get_timedelta(self, key: str) -> timedelta:
        value, _ = self.get(key)
        return value if isinstance(value, timedelta) else timedelta()

    def get_string_list(self, key: str) -> list[str]:
        value, _ = self.get(key)
        if isinstance(value, list) and all(isinstance(item, str) for item in value):
            return value
        return []

    def get_dict(self, key: str) -> dict:
        value, _ = self.get(key)
        return value if isinstance(value, dict) else {}

    # Input data

    def param(self, key: str) -> str:
        return self.params.by_name(key)

    def add_param(self, key: str, value: str) -> None:
        self.params.append(Param(key, value))

    def query(self, key: str) -> str:
        return self.get_query(key)[0]

    def default_query(self, key: str, default_value: str) -> str:
        value, ok = self.get_query(key)
        return value if ok else default_value

    def get_query(self, key: str) -> tuple[str, bool]:
        values, ok = self.get_query_array(key)
        return (values[0], True) if ok else ("", False)

    def query_array(self, key: str) -> list[str]:
        return self.get_query_array(key)[0]

    def _queries(self) -> dict[str, list[str]]:
        if self._query_cache is None:
            self._query_cache = self.request.query() if self.request is not None else {}
        return self._query_cache

    def get_query_array(self, key: str) -> tuple[list[str], bool]:
        values = self._queries().get(key)
        return (values, True) if values is not None else ([], False)

    def query_map(self, key: str) -> dict[str, str]:
        return self.get_query_map(key)[0]

    def get_query_map(self, key: str) -> tuple[dict[str, str], bool]:
        return _extract_map(self._queries(), key)

    def post_form(self, key: str) -> str:
        return self.get_post_form(key)[0]

    def default_post_form(self, key: str, default_value: str) -> str:
        value, ok = self.get_post_form(key)
        return value if ok else default_value

    def get_post_form(self, key: str) -> tuple[str, bool]:
        values, ok = self.get_post_form_array(key)
        return (values[0], True) if ok else ("", False)

    def post_form_array(self, key: str) -> list[str]:
        return self.get_post_form_array(key)[0]

    def _forms(self) -> dict[str, list[str]]:
        if self._form_cache is None:
            self._form_cache = {}
            if self.request is not None:
                try:
                    self._form_cache = self.request.post_form()
                except ValueError as exc:
                    debug_print("error on parse multipart form array: %s", exc)
        return self._form_cache

    def get_post_form_array(self, key: str) -> tuple[list[str], bool]:
        values = self._forms().get(key)
        return (values, True) if values is not None else ([], False)

    def post_form_map(self, key: str) -> dict[str, str]:
        return self.get_post_form_map(key)[0]

    def get_post_form_map(self, key: str) -> tuple[dict[str, str], bool]:
        return _extract_map(self._forms(), key)

    def remote_ip(self) -> str:
        """Return the host part of the request's remote address, or ""."""
        if self.request is None:
            return ""
        host = _split_host(self.request.remote_addr.strip())
        return host if host is not None else ""

    def _request_header(self, key: str) -> str:
        return self.request.headers.get(key) if self.request is not None else ""

    def content_type(self) -> str:
        return negotiation.filter_flags(self._request_header("Content-Type"))

    def is_websocket(self) -> bool:
        return (
            "upgrade" in self._request_header("Connection").lower()
            and self._request_header("Upgrade").lower() == "websocket"
        )

    def get_header(self, key: str) -> str:
        return self._request_header(key)

    def get_raw_data(self) -> bytes:
        return self.request.read_body()

    # Response

    def status(self, code: int) -> None:
        self.writer.write_header(code)

    def header(self, key: str, value: str) -> None:
        """Set a response header; an empty value removes it."""
        if value == "":
            self.writer.headers.discard(key)
        else:
            self.writer.headers.set(key, value)

    def set_same_site(self, same_site: SameSite) -> None:
        self._same_site = same_site

    def set_cookie(
        self,
        name: str,
        value: str,
        max_age: int,
        path: str,
        domain: str,
        secure: bool,
        http_only: bool,
    ) -> None:
        """Add a Set-Cookie header; cookies with invalid names are dropped."""
        if not name or any(ch in _COOKIE_NAME_FORBIDDEN or not (" " < ch < "\x7f") for ch in name):
            return
        parts = [f"{name}={quote_plus(value)}", f"Path={path or '/'}"]
        if domain:
            parts.append(f"Domain={domain.lstrip('.')}")
        if max_age > 0:
            parts.append(f"Max-Age={max_age}")
        elif max_age < 0:
            parts.append("Max-Age=0")
        if http_only:
            parts.append("HttpOnly")
        if secure:
            parts.append("Secure")
        same_site = {SameSite.LAX: "Lax", SameSite.STRICT: "Strict", SameSite.NONE: "None"}
        if self._same_site in same_site:
            parts.append(f"SameSite={same_site[self._same_site]}")
        self.writer.headers.add("Set-Cookie", "; ".join(parts))

    def cookie(self, name: str) -> str:
        """Return the unescaped value of a request cookie; KeyError if absent."""
        return unquote_plus(self.request.cookie(name))

    def render(self, code: int, renderer: Renderer) -> None:
        """Write the status and render the body, if the status allows one."""
        self.status(code)
        if not negotiation.body_allowed_for_status(code):
            renderer.write_content_type(self.writer)
            self.writer.write_header_now()
            return
        try:
            renderer.render(self.writer)
        except RenderError as exc:
            self.error(exc)
            self.abort()

    def json(self, code: int, obj: Any) -> None:
        self.render(code, JSONRender(obj))

    def indented_json(self, code: int, obj: Any) -> None:
        self.render(code, IndentedJSONRender(obj))

    def secure_json(self, code: int, obj: Any) -> None:
        self.render(code, SecureJSONRender(obj, self.secure_json_prefix))

    def jsonp(self, code: int, obj: Any) -> None:
        callback = self.default_query("callback", "")
        if not callback:
            self.render(code, JSONRender(obj))
        else:
            self.render(code, JsonpRender(callback, obj))

    def ascii_json(self, code: int, obj: Any) -> None:
        self.render(code, AsciiJSONRender(obj))

    def pure_json(self, code: int, obj: Any) -> None:
        self.render(code, PureJSONRender(obj))

    def xml(self, code: int, obj: Any) -> None:
        self.render(code, XMLRender(obj))

    def yaml(self, code: int, obj: Any) -> None:
        self.render(code, YAMLRender(obj))

    def string(self, code: int, format: str, *args: Any) -> None:
        self.render(code, StringRender(format, args))

    def data(self, code: int, content_type: str, data: bytes) -> None:
        self.render(code, DataRender(content_type, data))

    def data_from_reader(
        self,
        code: int,
        content_length: int,
        content_type: str,
        reader: BinaryIO,
        extra_headers: Mapping[str, str] | None,
    ) -> None:
        self.render(
            code,
            ReaderRender(reader, content_type, content_length, dict(extra_headers or {})),
        )

    def redirect(self, code: int, location: str) -> None:
        """Redirect to ``location``; ValueError for a status that cannot redirect."""
        self.render(-1, RedirectRender(code, location, self.request))

    def sse_event(self, name: str, message: Any) -> None:
        self.render(-1, SSEventRender(event=name, data=message))

    def stream(self, step: Callable[[Response], bool]) -> bool:
        """Call ``step`` until it returns False; return True if the client went away."""
        writer = self.writer
        while True:
            if writer.client_gone:
                return True
            keep_open = step(writer)
            writer.flush()
            if not keep_open:
                return False

    # Content negotiation

    def negotiate(self, code: int, config: Negotiate) -> None:
        """Render the data in the first offered format the client accepts."""
        chosen = self.negotiate_format(*config.offered)
        if chosen == negotiation.MIME_JSON:
            self.json(code, _choose_data(config.json_data, config.data))
        elif chosen == negotiation.MIME_XML:
            self.xml(code, _choose_data(config.xml_data, config.data))
        elif chosen == negotiation.MIME_YAML:
            self.yaml(code, _choose_data(config.yaml_data, config.data))
        else:
            self.abort_with_error(406, ValueError("the accepted formats are not offered by the server"))

    def negotiate_format(self, *args: str) -> str:
        if self.accepted is None:
            self.accepted = negotiation.parse_accept(self._request_header("Accept"))
        return negotiation.negotiate_format(self.accepted, list(args))

    def set_accepted(self, *args: str) -> None:
        self.accepted = list(args)

    def value(self, key: Any) -> Any:
        """Look up ``key``: 0 gives the request, CONTEXT_KEY the context, else stored keys."""
        if type(key) is int and key == 0:
            return self.request
        if key == CONTEXT_KEY:
            return self
        if isinstance(key, str):
            stored, exists = self.get(key)
            if exists:
                return stored
        if not self.context_with_fallback or self.request is None:
            return None
        return self.request.context_values.get(key)