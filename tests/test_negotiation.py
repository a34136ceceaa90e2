import pytest

from tonicweb.negotiation import (
    MIME_HTML,
    MIME_JSON,
    MIME_XML,
    body_allowed_for_status,
    filter_flags,
    negotiate_format,
    parse_accept,
)

BROWSER_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9;q=0.8"


def test_parse_accept_strips_parameters():
    assert parse_accept(BROWSER_ACCEPT) == ["text/html", "application/xhtml+xml", "application/xml"]


def test_parse_accept_empty_and_blank_parts():
    assert parse_accept("") == []
    assert parse_accept(" , ,text/plain ") == ["text/plain"]


def test_filter_flags():
    assert filter_flags("application/json; charset=utf-8") == "application/json"
    assert filter_flags("text/plain;charset=utf-8") == "text/plain"
    assert filter_flags("text/csv") == "text/csv"


def test_negotiate_requires_offer():
    with pytest.raises(ValueError):
        negotiate_format([], [])


def test_negotiate_without_accept_uses_first_offer():
    assert negotiate_format([], [MIME_JSON, MIME_XML]) == MIME_JSON
    assert negotiate_format([], [MIME_HTML, MIME_JSON]) == MIME_HTML


def test_negotiate_with_accept():
    accepted = parse_accept(BROWSER_ACCEPT)
    assert negotiate_format(accepted, [MIME_JSON, MIME_XML]) == MIME_XML
    assert negotiate_format(accepted, [MIME_XML, MIME_HTML]) == MIME_HTML
    assert negotiate_format(accepted, [MIME_JSON]) == ""


def test_negotiate_with_full_wildcard():
    accepted = parse_accept("*/*")
    for offer in ["*/*", "text/*", "application/*", MIME_JSON, MIME_XML, MIME_HTML]:
        assert negotiate_format(accepted, [offer]) == offer


def test_negotiate_with_partial_wildcard():
    accepted = parse_accept("text/*")
    assert negotiate_format(accepted, ["*/*"]) == "*/*"
    assert negotiate_format(accepted, ["text/*"]) == "text/*"
    assert negotiate_format(accepted, ["application/*"]) == ""
    assert negotiate_format(accepted, [MIME_JSON]) == ""
    assert negotiate_format(accepted, [MIME_XML]) == ""
    assert negotiate_format(accepted, [MIME_HTML]) == MIME_HTML


def test_negotiate_custom_accepted():
    accepted = [MIME_JSON, MIME_XML]
    assert negotiate_format(accepted, [MIME_JSON, MIME_XML]) == MIME_JSON
    assert negotiate_format(accepted, [MIME_XML, MIME_HTML]) == MIME_XML
    assert negotiate_format(accepted, [MIME_JSON]) == MIME_JSON


def test_negotiate_longer_accept_does_not_match_prefix_offer():
    assert negotiate_format(parse_accept("image/tiff-fx"), ["image/tiff"]) == ""


@pytest.mark.parametrize(
    "status, allowed",
    [(100, False), (102, False), (199, False), (204, False), (304, False), (200, True), (500, True)],
)
def test_body_allowed_for_status(status, allowed):
    assert body_allowed_for_status(status) is allowed