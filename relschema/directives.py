# File: relschema/directives.py
"""
RelSchema - Directive Parser
============================
Turns one member annotation such as::

    User[]? @id @default(@uuid) @relation(myName, fields:[userUuid], references:[uuid])

into a :class:`~relschema.models.Directive`.

The parser is an ordered chain of extraction passes folded over an
immutable ``_PartialDirective``.  Each pass looks for its own token in the
remaining text, records what it found, and hands on the text with the
token cut out.  A token found more than once fails the parse.  Pass order
is fixed::

    relation → default → id → optional → list → type → sweep

so the free-form type name is only looked for once every ``@`` directive
has been removed, and the final sweep rejects anything left over.

``render_directive`` is the inverse: it writes the canonical annotation
text for a directive, and ``parse_directive(render_directive(d)) == d``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from functools import reduce
from typing import Callable, List, Optional, Tuple

from relschema.errors import ParsingError, RegexError, UserConfigError
from relschema.models import DefaultValue, Directive, RelationDirective

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("relschema.directives")


def _compile(pattern: str, flags: int = 0) -> re.Pattern[str]:
    """Compile *pattern*, reporting engine failures as ``RegexError``."""
    try:
        return re.compile(pattern, flags)
    except re.error as exc:
        raise RegexError(f"could not build pattern {pattern!r}", cause=exc) from exc


# ---------------------------------------------------------------------------
# Pre-compiled patterns
# ---------------------------------------------------------------------------

_RELATION_TOKEN_RE: re.Pattern[str] = _compile(r"@relation\b")
_RELATION_RE: re.Pattern[str] = _compile(r"@relation\s*\(([^()]*)\)")
_FIELDS_RE: re.Pattern[str] = _compile(r"\bfields\s*:\s*\[([^\[\]]*)\]")
_REFERENCES_RE: re.Pattern[str] = _compile(r"\breferences\s*:\s*\[([^\[\]]*)\]")
_NAME_KEY_RE: re.Pattern[str] = _compile(r"\bname\s*:")
_QUOTES_RE: re.Pattern[str] = _compile(r"[\"']")
_RELATION_NAME_RE: re.Pattern[str] = _compile(r"^[A-Za-z_][A-Za-z0-9_#]*$")
_MEMBER_NAME_RE: re.Pattern[str] = _compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_DEFAULT_TOKEN_RE: re.Pattern[str] = _compile(r"@default\b")
_DEFAULT_RE: re.Pattern[str] = _compile(r"@default\s*\(([^()]*)\)")
_DEFAULT_VALUE_RE: re.Pattern[str] = _compile(r"^\s*@(autoInc|uuid|now)\s*$")

_ID_RE: re.Pattern[str] = _compile(r"@id(?![A-Za-z0-9_])")
_OPTIONAL_RE: re.Pattern[str] = _compile(r"\?")
_LIST_MARKER_RE: re.Pattern[str] = _compile(r"\[\s*\]")
_LIST_RE: re.Pattern[str] = _compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*\[\s*\]")

_TYPE_RE: re.Pattern[str] = _compile(r"^\s*([A-Z][A-Za-z0-9_]*)(?![A-Za-z0-9_])")
_LOWER_TYPE_RE: re.Pattern[str] = _compile(r"^\s*([a-z_][A-Za-z0-9_]*)(?![A-Za-z0-9_])")


# ---------------------------------------------------------------------------
# Parser state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _PartialDirective:
    """Everything extracted so far plus the text still to be consumed."""

    remainder: str
    member_type: Optional[str] = None
    is_list: bool = False
    is_optional: bool = False
    is_id: bool = False
    default: Optional[DefaultValue] = None
    relation: Optional[RelationDirective] = None


def _cut(text: str, match: re.Match[str]) -> str:
    """Remove *match* from *text*, leaving a space so neighbours stay apart."""
    return f"{text[:match.start()]} {text[match.end():]}"


def _single(pattern: re.Pattern[str], text: str, what: str) -> Optional[re.Match[str]]:
    """Return the only match of *pattern*, ``None`` if absent, error if repeated."""
    matches: List[re.Match[str]] = list(pattern.finditer(text))
    if len(matches) > 1:
        raise UserConfigError(f"{what} listed more than once in '{text.strip()}'")
    return matches[0] if matches else None


# ---------------------------------------------------------------------------
# Relation pass
# ---------------------------------------------------------------------------


def _name_list(body: str, section: str) -> List[str]:
    names: List[str] = [n.strip() for n in body.split(",") if n.strip()]
    for name in names:
        if not _MEMBER_NAME_RE.match(name):
            raise ParsingError(f"Invalid member name '{name}' in {section} section")
    return names


def _relation_name(rest: str) -> Optional[str]:
    rest = _NAME_KEY_RE.sub(" ", rest)
    rest = _QUOTES_RE.sub("", rest)
    tokens: List[str] = [t.strip() for t in rest.split(",") if t.strip()]
    if len(tokens) > 1:
        raise UserConfigError(
            f"Could not parse @relation. There are too many options: {tokens}"
        )
    if not tokens:
        return None
    if not _RELATION_NAME_RE.match(tokens[0]):
        raise ParsingError(f"Invalid relation name '{tokens[0]}'")
    return tokens[0]


def _parse_relation_body(body: str) -> RelationDirective:
    fields: List[str] = []
    references: List[str] = []
    rest: str = body

    fields_match = _single(_FIELDS_RE, rest, "fields section")
    if fields_match is not None:
        fields = _name_list(fields_match.group(1), "fields")
        rest = _cut(rest, fields_match)

    references_match = _single(_REFERENCES_RE, rest, "references section")
    if references_match is not None:
        references = _name_list(references_match.group(1), "references")
        rest = _cut(rest, references_match)

    return RelationDirective(
        name=_relation_name(rest), fields=fields, references=references
    )


def _relation_pass(state: _PartialDirective) -> _PartialDirective:
    tokens: List[str] = _RELATION_TOKEN_RE.findall(state.remainder)
    if not tokens:
        return state
    if len(tokens) > 1:
        raise UserConfigError(
            f"@relation listed more than once in '{state.remainder.strip()}'"
        )
    match = _RELATION_RE.search(state.remainder)
    if match is None:
        raise ParsingError(f"Malformed @relation directive in '{state.remainder.strip()}'")
    relation: RelationDirective = _parse_relation_body(match.group(1))
    logger.debug("relation pass: %r", relation)
    return replace(state, remainder=_cut(state.remainder, match), relation=relation)


# ---------------------------------------------------------------------------
# Scalar passes
# ---------------------------------------------------------------------------


def _default_pass(state: _PartialDirective) -> _PartialDirective:
    tokens: List[str] = _DEFAULT_TOKEN_RE.findall(state.remainder)
    if not tokens:
        return state
    if len(tokens) > 1:
        raise UserConfigError(
            f"@default listed more than once in '{state.remainder.strip()}'"
        )
    match = _DEFAULT_RE.search(state.remainder)
    if match is None:
        raise ParsingError(f"Malformed @default directive in '{state.remainder.strip()}'")
    value = _DEFAULT_VALUE_RE.match(match.group(1))
    if value is None:
        raise UserConfigError(f"{match.group(1).strip()} is not a default type")
    return replace(
        state,
        remainder=_cut(state.remainder, match),
        default=DefaultValue(value.group(1)),
    )


def _id_pass(state: _PartialDirective) -> _PartialDirective:
    match = _single(_ID_RE, state.remainder, "@id")
    if match is None:
        return state
    return replace(state, remainder=_cut(state.remainder, match), is_id=True)


def _optional_pass(state: _PartialDirective) -> _PartialDirective:
    match = _single(_OPTIONAL_RE, state.remainder, "optional marker '?'")
    if match is None:
        return state
    return replace(state, remainder=_cut(state.remainder, match), is_optional=True)


def _list_pass(state: _PartialDirective) -> _PartialDirective:
    marker = _single(_LIST_MARKER_RE, state.remainder, "list marker '[]'")
    if marker is None:
        return state
    match = _LIST_RE.match(state.remainder)
    if match is None:
        raise ParsingError(
            f"list marker '[]' must directly follow the type name in '{state.remainder.strip()}'"
        )
    # keep the type name for the type pass
    remainder: str = match.group(1) + state.remainder[match.end():]
    return replace(state, remainder=remainder, is_list=True)


def _type_pass(state: _PartialDirective) -> _PartialDirective:
    match = _TYPE_RE.match(state.remainder)
    if match is not None:
        return replace(
            state,
            remainder=state.remainder[match.end():],
            member_type=match.group(1),
        )
    lower = _LOWER_TYPE_RE.match(state.remainder)
    if lower is not None:
        raise UserConfigError(
            f"Expected model name to be PascalCase, found {lower.group(1)}"
        )
    raise UserConfigError(
        f"the model could not be determined from '{state.remainder.strip()}'"
    )


def _sweep_pass(state: _PartialDirective) -> _PartialDirective:
    leftover: str = state.remainder.strip()
    if leftover:
        raise ParsingError(f"Found remaining tokens: '{leftover}'")
    return replace(state, remainder="")


_PASSES: Tuple[Callable[[_PartialDirective], _PartialDirective], ...] = (
    _relation_pass,
    _default_pass,
    _id_pass,
    _optional_pass,
    _list_pass,
    _type_pass,
    _sweep_pass,
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_directive(text: str) -> Directive:
    """
    Parse one annotation string.

    Raises:
        UserConfigError: a directive is repeated, ``@default`` names an
            unknown generator, ``@relation`` carries several names, or the
            type name is missing or not PascalCase.
        ParsingError: malformed ``@relation``/``@default`` bodies, a
            misplaced ``[]`` or leftover tokens.
    """
    if not isinstance(text, str):
        raise ParsingError(f"annotation must be a string, got {type(text).__name__}")

    state: _PartialDirective = reduce(
        lambda acc, step: step(acc), _PASSES, _PartialDirective(remainder=text)
    )
    if state.member_type is None:
        raise ParsingError(f"no type name extracted from '{text}'")

    directive = Directive(
        member_type=state.member_type,
        is_list=state.is_list,
        is_optional=state.is_optional,
        is_id=state.is_id,
        default=state.default,
        relation=state.relation,
    )
    logger.debug("Parsed %r → %r", text, directive)
    return directive


def render_relation(relation: RelationDirective) -> str:
    parts: List[str] = []
    if relation.name:
        parts.append(relation.name)
    if relation.fields:
        parts.append(f"fields:[{', '.join(relation.fields)}]")
    if relation.references:
        parts.append(f"references:[{', '.join(relation.references)}]")
    return f"@relation({', '.join(parts)})"


def render_directive(directive: Directive) -> str:
    """Canonical annotation text for *directive*."""
    head: str = directive.member_type
    if directive.is_list:
        head += "[]"
    if directive.is_optional:
        head += "?"

    parts: List[str] = [head]
    if directive.is_id:
        parts.append("@id")
    if directive.default is not None:
        parts.append(f"@default(@{DefaultValue(directive.default).value})")
    if directive.relation is not None:
        parts.append(render_relation(directive.relation))
    return " ".join(parts)


__all__: List[str] = [
    "parse_directive",
    "render_directive",
    "render_relation",
]

logger.debug("relschema.directives loaded - %d public symbols.", len(__all__))
