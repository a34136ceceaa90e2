# tonicweb

`tonicweb` holds the pieces a request handler works with directly:

- `tonicweb.context`: a `Context` for each request. It runs a chain of
  handlers (`next`, `abort`, `is_aborted`, `abort_with_status`,
  `abort_with_error`), stores per-request values (`set`, `get`, `must_get`,
  `get_string`, `get_int`, `get_float`, `get_datetime`, ...), reads input
  (path parameters, query strings, form fields, headers, cookies, the raw
  body) and renders responses.
- `tonicweb.messages`: `Request`, `Response`, `Param`, `Params` and the
  `SameSite` cookie setting.
- `tonicweb.negotiation`: `parse_accept`, `filter_flags`,
  `negotiate_format` and `body_allowed_for_status`, plus MIME constants
  such as `MIME_JSON`.
- `tonicweb.rendering`: renderers for JSON (plain, indented, secure, JSONP,
  ASCII, pure), XML, YAML, formatted strings, raw data, readable streams,
  redirects and server-sent events.
- `tonicweb.errors`: `Error`, the `ErrorType` flags and `ErrorList`, which
  filters errors by type and turns them into JSON.
- `tonicweb.debug`: diagnostic output written only while debugging is on.
- `tonicweb.fs`: a file-system view rooted at a directory, which can be made
  to refuse directory listings.

## Installation

```
pip install tonicweb
```

To run the tests, install the `test` extra and run pytest:

```
pip install "tonicweb[test]"
pytest
```

## A first handler

```python
from tonicweb.context import Context
from tonicweb.messages import Request, Response

request = Request(method="GET", url="/greet?name=Ada")
response = Response()
ctx = Context(request, response)

name = ctx.default_query("name", "stranger")
ctx.json(200, {"greeting": f"hello {name}"})

print(response.status, bytes(response.body))
# 200 b'{"greeting":"hello Ada"}'
```

`Context.string(code, format, *args)` writes `%`-formatted text,
`Context.data(code, content_type, data)` writes bytes under a given MIME
type, and `Context.redirect(code, location)` sends a redirect; it raises
`ValueError` for a status outside 300–308 other than 201. Statuses that must
not carry a body (1xx, 204, 304) get their content type but no body. When a
renderer cannot encode the data, the error is recorded on `ctx.errors` and
the context is aborted.

`Context.stream(step)` calls `step(response)` and flushes after each call,
until `step` returns False or the response's `client_gone` flag is set; it
returns True in the second case.

## Stopping the chain

```python
ctx.abort_with_status(401)
assert ctx.is_aborted()
```

`abort_with_error(code, err)` does the same and records the error on
`ctx.errors`, an `ErrorList`. `by_type(ErrorType.PUBLIC)` keeps only public
errors, `errors()` gives their messages, `to_json()` a value ready for a
JSON body, and `str()` a numbered listing. `Context.error(None)` raises
`ValueError`.

## Content negotiation

```python
from tonicweb.context import Negotiate

ctx.negotiate(200, Negotiate(
    offered=["application/json", "application/xml"],
    data={"foo": "bar"},
))
```

JSON, XML and YAML can be negotiated, with `json_data`, `xml_data` and
`yaml_data` overriding `data` per format. When the client accepts none of
the offered formats, the request is aborted with 406 Not Acceptable.
`negotiate_format(*offered)` returns the chosen MIME type, or `""`, and
raises `ValueError` when nothing is offered.

## Debug output

`tonicweb.debug.set_debugging(True)` turns on messages such as route
reports and warnings, prefixed with `[TONIC-debug]`; `is_debugging()` tells
whether they are on. The initial state is debug unless the environment
variable `TONICWEB_MODE` is set to something other than `debug`.

## What it does not do

`tonicweb` has no router, no server and no engine that dispatches requests
to handlers: you build the `Request`, `Response` and `Context` yourself and
call the handlers. There is no HTML template rendering, no TOML or protobuf
output, no binding of request bodies into objects, no file serving or file
uploads from a context, and no client-IP detection through trusted proxies.