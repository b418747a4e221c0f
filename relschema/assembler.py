# File: relschema/assembler.py
"""
RelSchema - Schema Assembler
============================
Builds a :class:`~relschema.models.Schema` from the ``models`` section of
a configuration document.

Each model body is either a bare member map::

    {"User": {"uuid": "String @id", "posts": "Post[]"}}

or the full form carrying optional naming overrides::

    {"User": {"members": {...}, "table_name": "users", "model_name": "User"}}

Member values are annotation strings (handed to the directive parser) or
structured member mappings (validated by ``MemberInput``).  Model and
member maps may also arrive as sequences of ``(key, value)`` pairs, which
is how the loader preserves repeated keys; a repeated model or member
name is rejected here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from pydantic import ValidationError

from relschema.directives import parse_directive
from relschema.errors import SchemaError, UserConfigError
from relschema.models import Directive, MemberInput, Model, Schema
from relschema.utils import is_identifier

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("relschema.assembler")

_MODEL_BODY_KEYS: Set[str] = {"members", "table_name", "model_name"}


def _pairs(obj: Any, what: str) -> List[Tuple[str, Any]]:
    """Return ``(key, value)`` pairs of a mapping or pair sequence."""
    if isinstance(obj, Mapping):
        return list(obj.items())
    if isinstance(obj, (list, tuple)) and all(
        isinstance(p, (list, tuple)) and len(p) == 2 for p in obj
    ):
        return [(k, v) for k, v in obj]
    raise UserConfigError(f"{what} must be a mapping, got {type(obj).__name__}")


def _is_model_body(pairs: List[Tuple[str, Any]]) -> bool:
    keys: Set[str] = {k for k, _ in pairs}
    if "members" not in keys or not keys <= _MODEL_BODY_KEYS:
        return False
    return all(not isinstance(v, str) for k, v in pairs if k == "members")


def build_directive(raw: Any) -> Directive:
    """Turn one raw member value into a ``Directive``."""
    if isinstance(raw, str):
        return parse_directive(raw)
    if isinstance(raw, Mapping):
        return MemberInput.model_validate(dict(raw)).to_directive()
    if isinstance(raw, (list, tuple)):
        raise UserConfigError("structured member lists a key more than once")
    raise UserConfigError(
        f"member must be an annotation string or a mapping, got {type(raw).__name__}"
    )


def check_single_id(model_name: str, members: Dict[str, Directive]) -> None:
    ids: List[str] = [name for name, d in members.items() if d.is_id]
    if not ids:
        raise UserConfigError(f"model {model_name} does not have an @id member")
    if len(ids) > 1:
        raise UserConfigError(
            f"model {model_name} does not have a unique id: {ids} are all marked @id"
        )


def assemble_model(model_name: str, body: Any) -> Model:
    """Assemble one model, enforcing member uniqueness and the single-id rule."""
    pairs: List[Tuple[str, Any]] = _pairs(body, f"model {model_name}")
    table_name: Optional[str] = None
    display_name: Optional[str] = None
    member_pairs: List[Tuple[str, Any]] = pairs

    if _is_model_body(pairs):
        seen_keys: Set[str] = set()
        for key, value in pairs:
            if key in seen_keys:
                raise UserConfigError(f"model {model_name} lists '{key}' more than once")
            seen_keys.add(key)
            if key == "members":
                member_pairs = _pairs(value, f"members of {model_name}")
            elif key == "table_name":
                table_name = value
            else:
                display_name = value

    members: Dict[str, Directive] = {}
    for member_name, raw in member_pairs:
        if not isinstance(member_name, str) or not is_identifier(member_name):
            raise UserConfigError(f"model {model_name} has an invalid member name {member_name!r}")
        if member_name in members:
            raise UserConfigError(
                f"{model_name}/{member_name} member listed more than once"
            )
        try:
            members[member_name] = build_directive(raw)
        except SchemaError as exc:
            raise UserConfigError(
                f"Could not parse {model_name}/{member_name}", cause=exc
            ) from exc
        except ValidationError as exc:
            raise UserConfigError(
                f"Invalid structured member {model_name}/{member_name}", cause=exc
            ) from exc

    check_single_id(model_name, members)

    try:
        return Model(
            name=model_name,
            members=members,
            table_name=table_name,
            model_name=display_name,
        )
    except ValidationError as exc:
        raise UserConfigError(f"Invalid model {model_name}", cause=exc) from exc


def assemble_schema(
    raw_models: Any,
    database_type: Optional[str] = None,
) -> Schema:
    """
    Assemble the whole ``models`` section into a ``Schema``.

    Args:
        raw_models: Mapping (or pair sequence) of model name → model body.
        database_type: Free-form ``database.type`` value, kept on the schema.

    Raises:
        UserConfigError: duplicate model/member names, a model without
            exactly one ``@id`` member, or any member that fails to parse
            (the parse error is kept as the cause).
    """
    models: Dict[str, Model] = {}
    for model_name, body in _pairs(raw_models, "models"):
        if not isinstance(model_name, str) or not model_name:
            raise UserConfigError(f"invalid model name {model_name!r}")
        if model_name in models:
            raise UserConfigError(f"multiples of model {model_name}")
        models[model_name] = assemble_model(model_name, body)
        logger.debug("Assembled %r", models[model_name])

    schema = Schema(database_type=database_type, models=models)
    logger.info(
        "Assembled %d models with %d members.", len(schema.models), schema.member_count
    )
    return schema


def iter_members(schema: Schema) -> Iterable[Tuple[str, str, Directive]]:
    """Yield ``(model, member, directive)`` in declaration order."""
    for model_name, model in schema.models.items():
        for member_name, directive in model.members.items():
            yield model_name, member_name, directive


__all__: List[str] = [
    "assemble_schema",
    "assemble_model",
    "build_directive",
    "check_single_id",
    "iter_members",
]

logger.debug("relschema.assembler loaded - %d public symbols.", len(__all__))
