# File: relschema/errors.py
"""
RelSchema - Error Model
=======================
Every failure raised by the parser, the assembler and the resolver is a
``SchemaError``.  An error carries:

- its ``kind`` (``ErrorKind``), so callers can match programmatically;
- the source location of the rule that raised it (file + line of the
  check, not of the user's input), captured automatically;
- an optional human-readable message;
- an optional ``cause``: a lower-level error that this one wraps.

Wrappers are raised with ``raise Outer(..., cause=exc) from exc`` so the
native ``__cause__`` and the explicit ``cause`` agree.  ``str(error)``
renders the whole chain top-to-bottom, one level per line::

    UserConfigError: relschema/assembler.py:97, msg: Could not parse User/posts
    ParsingError: relschema/directives.py:311, msg: Found remaining tokens: '@foo'
"""

from __future__ import annotations

import logging
import os
import sys
from enum import Enum
from types import FrameType
from typing import Any, Dict, Iterator, List, Optional, Tuple

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("relschema.errors")


class ErrorKind(str, Enum):
    """The three failure families."""

    REGEX = "Regex"
    USER_CONFIG_ERROR = "UserConfigError"
    PARSING_ERROR = "ParsingError"


_THIS_FILE: str = os.path.normcase(os.path.abspath(__file__))


def _caller_location() -> Tuple[str, int]:
    """Return (file, line) of the first frame outside this module."""
    frame: Optional[FrameType] = sys._getframe(1)
    while frame is not None:
        filename: str = os.path.normcase(os.path.abspath(frame.f_code.co_filename))
        if filename != _THIS_FILE:
            return _short_path(frame.f_code.co_filename), frame.f_lineno
        frame = frame.f_back
    return "<unknown>", 0


def _short_path(path: str) -> str:
    """Trim an absolute path down to ``relschema/<module>.py`` when possible."""
    parts: List[str] = path.replace("\\", "/").split("/")
    if "relschema" in parts:
        idx: int = len(parts) - 1 - parts[::-1].index("relschema")
        return "/".join(parts[idx:])
    return parts[-1]


class SchemaError(Exception):
    """
    Base class for every error produced by the schema compiler.

    Subclasses fix the ``kind``; the base class may also be instantiated
    with an explicit kind.
    """

    kind: ErrorKind = ErrorKind.USER_CONFIG_ERROR

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        cause: Optional[BaseException] = None,
        kind: Optional[ErrorKind] = None,
    ) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.message: Optional[str] = message
        self.cause: Optional[BaseException] = cause
        self.file_name: str
        self.line: int
        self.file_name, self.line = _caller_location()

    # -- Chain helpers ------------------------------------------------------

    def chain(self) -> Iterator[BaseException]:
        """Yield this error followed by every nested cause, outermost first."""
        current: Optional[BaseException] = self
        while current is not None:
            yield current
            if isinstance(current, SchemaError):
                current = current.cause
            else:
                current = None

    @property
    def root_cause(self) -> BaseException:
        """The innermost error of the chain."""
        last: BaseException = self
        for item in self.chain():
            last = item
        return last

    def has_kind(self, kind: ErrorKind) -> bool:
        """True when any level of the chain is of *kind*."""
        return any(
            isinstance(item, SchemaError) and item.kind == kind
            for item in self.chain()
        )

    # -- Rendering ----------------------------------------------------------

    def headline(self) -> str:
        msg: str = f", msg: {self.message}" if self.message else ""
        return f"{self.kind.value}: {self.file_name}:{self.line}{msg}"

    def __str__(self) -> str:
        lines: List[str] = [self.headline()]
        if self.cause is not None:
            lines.append(str(self.cause))
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.file_name}:{self.line} {self.message!r}>"

    def to_dict(self) -> Dict[str, Any]:
        cause: Optional[Dict[str, Any]] = None
        if isinstance(self.cause, SchemaError):
            cause = self.cause.to_dict()
        elif self.cause is not None:
            cause = {"kind": type(self.cause).__name__, "message": str(self.cause)}
        return {
            "kind": self.kind.value,
            "file": self.file_name,
            "line": self.line,
            "message": self.message,
            "cause": cause,
        }


class RegexError(SchemaError):
    """The pattern engine failed to build or run a pattern (a tooling bug)."""

    kind = ErrorKind.REGEX


class UserConfigError(SchemaError):
    """The schema violates a modelling invariant."""

    kind = ErrorKind.USER_CONFIG_ERROR


class ParsingError(SchemaError):
    """Annotation text does not follow the directive grammar, or an
    internal invariant of the parser/resolver was broken."""

    kind = ErrorKind.PARSING_ERROR


__all__: List[str] = [
    "ErrorKind",
    "SchemaError",
    "RegexError",
    "UserConfigError",
    "ParsingError",
]

logger.debug("relschema.errors loaded - %d public symbols.", len(__all__))
