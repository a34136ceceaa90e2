import io

import pytest

from tonicweb import debug
from tonicweb.messages import Param, Params, Request, Response, SameSite


def _multipart_body(boundary, fields):
    lines = []
    for name, value in fields:
        lines.append(f"--{boundary}")
        lines.append(f'Content-Disposition: form-data; name="{name}"')
        lines.append("")
        lines.append(value)
    lines.append(f"--{boundary}--")
    lines.append("")
    return "\r\n".join(lines).encode()


def test_same_site_values_follow_cookie_modes():
    assert SameSite(0) is SameSite.UNSET
    assert SameSite(2) is SameSite.LAX
    assert SameSite["STRICT"] > SameSite(2)


def test_params_get_and_by_name():
    params = Params([Param("foo", "bar"), Param("id", "1"), Param("foo", "second")])
    assert params.get("foo") == ("bar", True)
    assert params.by_name("id") == "1"
    assert params.get("missing") == ("", False)
    assert params.by_name("missing") == ""


def test_headers_are_case_insensitive():
    request = Request(headers={"x-real-ip": "10.10.10.10"})
    assert request.headers.get("X-Real-IP") == "10.10.10.10"
    assert "X-REAL-IP" in request.headers
    assert request.headers.get("Connection") == ""
    request.headers.add("Accept", "a")
    request.headers.add("accept", "b")
    assert request.headers.get_all("ACCEPT") == ["a", "b"]
    request.headers.discard("accept")
    assert "Accept" not in request.headers


def test_query_keeps_blank_and_repeated_values():
    request = Request(url="http://example.com/?foo=bar&page=10&id=&array[]=first&array[]=second")
    query = request.query()
    assert query["foo"] == ["bar"]
    assert query["id"] == [""]
    assert query["array[]"] == ["first", "second"]
    assert "NoKey" not in query
    assert request.path == "/"


def test_post_form_urlencoded():
    request = Request(
        method="POST",
        url="/?both=GET",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        body="foo=bar&page=11&both=&foo=second",
    )
    form = request.post_form()
    assert form["foo"] == ["bar", "second"]
    assert form["page"] == ["11"]
    assert form["both"] == [""]
    assert request.post_form() is form


def test_post_form_ignores_body_for_get():
    request = Request(
        method="GET",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        body="foo=bar",
    )
    assert request.post_form() == {}
    assert request.read_body() == b"foo=bar"


def test_post_form_multipart():
    boundary = "--testboundary"
    body = _multipart_body(
        boundary,
        [("foo", "bar"), ("array", "first"), ("array", "second"), ("id", ""), ("names[a]", "thinkerou")],
    )
    request = Request(
        method="POST",
        headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
        body=body,
    )
    form = request.post_form()
    assert form["foo"] == ["bar"]
    assert form["array"] == ["first", "second"]
    assert form["id"] == [""]
    assert form["names[a]"] == ["thinkerou"]


def test_post_form_multipart_without_boundary_raises():
    request = Request(method="POST", headers={"Content-Type": "multipart/form-data"}, body=b"junk")
    with pytest.raises(ValueError):
        request.post_form()


def test_cookie_lookup():
    request = Request(headers={"Cookie": "user=gin; other=x"})
    assert request.cookie("user") == "gin"
    assert request.cookie("other") == "x"
    with pytest.raises(KeyError):
        request.cookie("nokey")


def test_read_body_consumes_stream():
    request = Request(method="POST", body=io.BytesIO(b"Fetch binary post data"))
    assert request.read_body() == b"Fetch binary post data"
    assert request.read_body() == b""


def test_response_defaults_and_write():
    response = Response()
    assert response.status == 200
    assert response.size == -1
    assert response.written is False
    assert response.write("test") == 4
    assert response.written is True
    assert bytes(response.body) == b"test"
    assert response.size == 4


def test_response_write_header_before_and_after_commit():
    response = Response()
    response.write_header(401)
    assert response.status == 401
    response.write_header_now()
    assert response.size == 0
    response.write_header(500)
    assert response.status == 401


def test_response_override_warning_in_debug(monkeypatch):
    out = io.StringIO()
    monkeypatch.setattr(debug, "default_writer", out)
    debug.set_debugging(True)
    try:
        response = Response()
        response.write_header_now()
        response.write_header(404)
    finally:
        debug.set_debugging(False)
    assert response.status == 200
    assert response.size == 0
    assert "Headers were already written" in out.getvalue()
    assert "200 with 404" in out.getvalue()


def test_response_sink_and_flush():
    sink = io.BytesIO()
    response = Response(sink=sink)
    response.write(b"foo,")
    response.write(b"bar")
    response.flush()
    assert sink.getvalue() == b"foo,bar"
    assert response.flush_count == 1
    assert response.headers.get("Content-Type") == ""