import dataclasses

from tonicweb.errors import Error, ErrorList, ErrorType


def test_error_basics():
    base = ValueError("test error")
    err = Error(base, ErrorType.PRIVATE)
    assert str(err) == str(base)
    assert err.to_json() == {"error": "test error"}

    assert err.set_type(ErrorType.PUBLIC) is err
    assert err.type == ErrorType.PUBLIC

    assert err.set_meta("some data") is err
    assert err.meta == "some data"
    assert err.to_json() == {"error": "test error", "meta": "some data"}
    assert err.marshal_json() == b'{"error":"test error","meta":"some data"}'


def test_error_map_meta():
    err = Error(ValueError("test error"), ErrorType.PRIVATE)
    err.set_meta({"status": "200", "data": "some data"})
    assert err.to_json() == {"error": "test error", "status": "200", "data": "some data"}

    err.set_meta({"error": "custom error", "status": "200", "data": "some data"})
    assert err.to_json() == {"error": "custom error", "status": "200", "data": "some data"}


def test_error_struct_meta():
    @dataclasses.dataclass
    class CustomError:
        status: str
        data: str

    meta = CustomError(status="200", data="other data")
    err = Error(ValueError("test error"), ErrorType.PRIVATE).set_meta(meta)
    assert err.to_json() is meta
    assert err.to_json() == CustomError("200", "other data")


def test_error_json_escapes_html():
    err = Error(ValueError("x"), meta="<b>")
    assert err.marshal_json() == b'{"error":"x","meta":"\\u003cb\\u003e"}'


def test_is_type():
    err = Error(ValueError("x"), ErrorType.PUBLIC)
    assert err.is_type(ErrorType.PUBLIC)
    assert not err.is_type(ErrorType.PRIVATE)
    assert err.is_type(ErrorType.ANY)


def _make_errors():
    return ErrorList(
        [
            Error(ValueError("first"), ErrorType.PRIVATE),
            Error(ValueError("second"), ErrorType.PRIVATE, meta="some data"),
            Error(ValueError("third"), ErrorType.PUBLIC, meta={"status": "400"}),
        ]
    )


def test_error_slice():
    errs = _make_errors()
    assert errs.by_type(ErrorType.ANY) is errs
    assert str(errs.last()) == "third"
    assert errs.errors() == ["first", "second", "third"]
    assert errs.by_type(ErrorType.PUBLIC).errors() == ["third"]
    assert errs.by_type(ErrorType.PRIVATE).errors() == ["first", "second"]
    assert errs.by_type(ErrorType.PUBLIC | ErrorType.PRIVATE).errors() == ["first", "second", "third"]
    assert errs.by_type(ErrorType.BIND) == []
    assert str(errs.by_type(ErrorType.BIND)) == ""

    assert str(errs) == (
        "Error #01: first\n"
        "Error #02: second\n"
        "     Meta: some data\n"
        "Error #03: third\n"
        "     Meta: map[status:400]\n"
    )
    assert errs.to_json() == [
        {"error": "first"},
        {"error": "second", "meta": "some data"},
        {"error": "third", "status": "400"},
    ]
    assert errs.marshal_json() == (
        b'[{"error":"first"},{"error":"second","meta":"some data"},{"error":"third","status":"400"}]'
    )


def test_error_slice_single():
    errs = ErrorList([Error(ValueError("first"), ErrorType.PRIVATE)])
    assert errs.to_json() == {"error": "first"}
    assert errs.marshal_json() == b'{"error":"first"}'


def test_error_slice_empty():
    errs = ErrorList()
    assert errs.last() is None
    assert errs.to_json() is None
    assert str(errs) == ""
    assert errs.errors() == []
    assert errs.by_type(ErrorType.PUBLIC) == []


class CustomFailure(Exception):
    pass


def _cause_chain(exc):
    while exc is not None:
        yield exc
        exc = exc.__cause__


def test_error_unwrap():
    inner = CustomFailure("some error")
    try:
        try:
            raise Error(inner, ErrorType.ANY)
        except Error as wrapped:
            raise RuntimeError("wrapped") from wrapped
    except RuntimeError as outer:
        chain = list(_cause_chain(outer))
    assert inner in chain
    assert any(isinstance(exc, CustomFailure) for exc in chain)
    assert chain[1].__cause__ is inner