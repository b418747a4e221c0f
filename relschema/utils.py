# File: relschema/utils.py
"""
RelSchema - Utility Functions & Helpers
=======================================
Small naming helpers shared by the parser and the resolver, file reading,
and a context-manager timer used by the compiler to profile its steps.

Naming helpers are decorated with ``@lru_cache(maxsize=None)``; the same
model pairs are looked up once per relation member.
"""

from __future__ import annotations

import functools
import logging
import re
import time
from pathlib import Path
from typing import List, Optional

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("relschema.utils")

# ---------------------------------------------------------------------------
# Pre-compiled regex patterns (compiled once at module load)
# ---------------------------------------------------------------------------

_PASCAL_CASE_RE: re.Pattern[str] = re.compile(r"^[A-Z][A-Za-z0-9_]*$")
_IDENTIFIER_RE: re.Pattern[str] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=None)
def is_pascal_case(name: str) -> bool:
    """
    True for identifiers starting with an uppercase letter.

    Examples:
        >>> is_pascal_case("UserProfile")
        True
        >>> is_pascal_case("userProfile")
        False
    """
    return bool(_PASCAL_CASE_RE.match(name))


@functools.lru_cache(maxsize=None)
def is_identifier(name: str) -> bool:
    return bool(_IDENTIFIER_RE.match(name))


@functools.lru_cache(maxsize=None)
def synthesize_relation_name(prefix: str, model: str, other: str) -> str:
    """
    Deterministic name for an unnamed relation between *model* and *other*.

    The pair is sorted, so both sides of a bidirectional relation compute
    the same name independently.

    Examples:
        >>> synthesize_relation_name("relation#", "User", "Post")
        'relation#PostUser'
        >>> synthesize_relation_name("relation#", "Post", "User")
        'relation#PostUser'
    """
    first, second = sorted((model, other))
    return f"{prefix}{first}{second}"


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def read_file(path: Path) -> str:
    """Read a file and return its content as a string."""
    return path.read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Profiling
# ---------------------------------------------------------------------------


class Timer:
    """
    Simple context-manager timer for profiling compilation steps.

    Usage:
        with Timer("resolve") as t:
            ...
        print(t.elapsed)
    """

    __slots__ = ("label", "start_time", "end_time", "elapsed")

    def __init__(self, label: str = "operation") -> None:
        self.label: str = label
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time
        logger.debug("Timer [%s]: %.4f seconds", self.label, self.elapsed)

    def __repr__(self) -> str:
        return f"<Timer {self.label}: {self.elapsed:.4f}s>"


__all__: List[str] = [
    "is_pascal_case",
    "is_identifier",
    "synthesize_relation_name",
    "read_file",
    "Timer",
]

logger.debug("relschema.utils loaded - %d public symbols.", len(__all__))
