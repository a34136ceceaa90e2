"""Debug-mode state and diagnostic output."""

from __future__ import annotations

import os
import platform
import sys
from collections.abc import Callable, Sequence
from typing import Any, TextIO

MIN_PYTHON_MINOR = 10
_PREFIX = "[TONIC-debug] "

# Output streams; None means the current sys.stdout / sys.stderr.
default_writer: TextIO | None = None
default_error_writer: TextIO | None = None

# Optional hook called as (http_method, absolute_path, handler_name, handler_count).
print_route_func: Callable[[str, str, str, int], None] | None = None

_debugging = os.environ.get("TONICWEB_MODE", "debug") == "debug"


def _writer() -> TextIO:
    return default_writer if default_writer is not None else sys.stdout


def _error_writer() -> TextIO:
    return default_error_writer if default_error_writer is not None else sys.stderr


def is_debugging() -> bool:
    """Return True if debug mode is on."""
    return _debugging


def set_debugging(enabled: bool) -> None:
    """Turn debug mode on or off."""
    global _debugging
    _debugging = bool(enabled)


def name_of_function(func: Any) -> str:
    """Return the dotted name of a callable."""
    if func is None:
        return ""
    module = getattr(func, "__module__", None) or type(func).__module__
    qualname = getattr(func, "__qualname__", None) or type(func).__qualname__
    return f"{module}.{qualname}"


def debug_print(format: str, *args: Any) -> None:
    """Write a %-formatted debug line when debug mode is on."""
    if not _debugging:
        return
    if not format.endswith("\n"):
        format += "\n"
    text = format % args if args else format
    _writer().write(_PREFIX + text)


def debug_print_error(err: BaseException | None) -> None:
    """Write an error line to the error stream when debug mode is on."""
    if err is not None and _debugging:
        _error_writer().write(f"{_PREFIX}[ERROR] {err}\n")


def debug_print_route(http_method: str, absolute_path: str, handlers: Sequence[Callable]) -> None:
    """Report a registered route when debug mode is on."""
    if not _debugging:
        return
    count = len(handlers)
    handler_name = name_of_function(handlers[-1] if handlers else None)
    if print_route_func is None:
        debug_print("%-6s %-25s --> %s (%d handlers)\n", http_method, absolute_path, handler_name, count)
    else:
        print_route_func(http_method, absolute_path, handler_name, count)


def get_min_ver(v: str) -> int:
    """Return the minor number of a dotted version string.

    Raises ValueError if it is not a non-negative integer.
    """
    first = v.find(".")
    last = v.rfind(".")
    part = v[first + 1:] if first == last else v[first + 1:last]
    if not part or not all("0" <= ch <= "9" for ch in part):
        raise ValueError(f"invalid syntax: {part!r}")
    value = int(part)
    if value >= 1 << 64:
        raise ValueError(f"value out of range: {part!r}")
    return value


def debug_print_warning_default() -> None:
    """Warn about the default engine setup."""
    try:
        minor = get_min_ver(platform.python_version())
    except ValueError:
        minor = None
    if minor is not None and minor < MIN_PYTHON_MINOR:
        debug_print(f"[WARNING] Now tonicweb requires Python 3.{MIN_PYTHON_MINOR}+.\n\n")
    debug_print(
        "[WARNING] Creating an Engine instance with the Logger and Recovery middleware already attached.\n\n"
    )


def debug_print_warning_new() -> None:
    """Warn that debug mode is on."""
    debug_print(
        '[WARNING] Running in "debug" mode. Switch to "release" mode in production.\n'
        " - using env:\texport TONICWEB_MODE=release\n"
        " - using code:\tset_debugging(False)\n\n"
    )


def debug_print_warning_set_html_template() -> None:
    """Warn that setting the HTML template is not thread-safe."""
    debug_print(
        "[WARNING] Since set_html_template() is NOT thread-safe. It should only be called\n"
        "at initialization. ie. before any route is registered or the router is listening in a socket:\n\n"
        "\trouter = default()\n"
        "\trouter.set_html_template(template)  # << good place\n\n"
    )