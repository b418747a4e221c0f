# File: relschema/resolver.py
"""
RelSchema - Relation Resolver / Validator
=========================================
Whole-schema semantic validation.  Relations span two models, so every
phase runs over the complete schema before the next one starts:

- **Phase A** - type resolution: every member type is a scalar or a model;
  id/default placement rules.
- **Phase B** - ambiguity: one model may not hold two unnamed relations to
  the same model, nor reuse an explicit relation name (self-relations
  excepted).
- **Phase C** - fields/references must exist; unnamed relations receive a
  synthesized name (``prefix + min(A, B) + max(A, B)``) that both sides
  compute independently; every name is used by one member or by two
  mirror members.  Only members carrying ``@relation`` take part; a bare
  model-typed member is linked as the mirror of the one relation pointing
  back at its model, and is otherwise left alone.
- **Phase D** - classification into one-to-one / one-to-many /
  many-to-many and derivation of the many-to-many join tables.

The first violated rule aborts resolution with a ``UserConfigError``; no
partially resolved schema is ever returned.  The input ``Schema`` is not
touched: resolution works on a deep copy and all state travels through
explicit return values.

Usage::

    from relschema.resolver import resolve_schema
    resolved = resolve_schema(schema)
    resolved.many_to_many_tables["friend"]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional, Set, Tuple

from relschema.assembler import check_single_id, iter_members
from relschema.errors import UserConfigError
from relschema.models import (
    DefaultValue,
    Directive,
    ManyToManyTable,
    MemberRef,
    RelationDirective,
    RelationKind,
    ResolvedRelation,
    ResolvedSchema,
    ResolverSettings,
    Schema,
)
from relschema.utils import is_pascal_case, synthesize_relation_name

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("relschema.resolver")

_DEFAULT_TARGETS: Dict[DefaultValue, FrozenSet[str]] = {
    DefaultValue.AUTO_INCREMENT: frozenset({"Int", "BigInt"}),
    DefaultValue.GENERATED_UUID: frozenset({"String", "Uuid"}),
    DefaultValue.CURRENT_TIMESTAMP: frozenset({"DateTime"}),
}


@dataclass(frozen=True)
class _Naming:
    """Outcome of Phase C: who uses which relation name."""

    claims: Dict[str, List[MemberRef]]
    synthesized: FrozenSet[str]


def _is_model_typed(schema: Schema, directive: Directive) -> bool:
    return directive.member_type in schema.models


def _directive(schema: Schema, ref: MemberRef) -> Directive:
    return schema.models[ref.model].members[ref.member]


def _relation(schema: Schema, ref: MemberRef) -> RelationDirective:
    relation: Optional[RelationDirective] = _directive(schema, ref).relation
    if relation is None:
        raise UserConfigError(f"{ref} carries no relation")
    return relation


# ---------------------------------------------------------------------------
# Phase A - type resolution
# ---------------------------------------------------------------------------


def check_types(schema: Schema, settings: ResolverSettings) -> None:
    """Every type resolves; model names are sane; id/default placement holds."""
    for model_name, model in schema.models.items():
        if not is_pascal_case(model_name):
            raise UserConfigError(
                f"Expected model name to be PascalCase, found {model_name}"
            )
        if settings.is_scalar(model_name):
            raise UserConfigError(f"model {model_name} shadows the scalar type {model_name}")
        check_single_id(model_name, model.members)

    for model_name, member_name, directive in iter_members(schema):
        where: str = f"{model_name}/{member_name}"
        type_name: str = directive.member_type
        is_scalar: bool = settings.is_scalar(type_name)

        if not is_scalar and type_name not in schema.models:
            raise UserConfigError(f"type not found: {where}/{type_name}")

        if is_scalar and directive.relation is not None:
            raise UserConfigError(f"{where} contains a reference to a scalar")

        if directive.is_id:
            if not is_scalar:
                raise UserConfigError(f"{where}: @id cannot be placed on a relation member")
            if directive.is_list:
                raise UserConfigError(f"{where}: an @id member cannot be a list")
            if directive.is_optional:
                logger.warning("%s: @id member is marked optional", where)

        if directive.default is not None:
            default: DefaultValue = DefaultValue(directive.default)
            if not is_scalar:
                raise UserConfigError(
                    f"{where}: @default cannot be placed on a relation member"
                )
            if type_name not in _DEFAULT_TARGETS[default]:
                raise UserConfigError(
                    f"{where}: @default(@{default.value}) is not valid for type "
                    f"{type_name}, expected one of {sorted(_DEFAULT_TARGETS[default])}"
                )

    logger.debug("Phase A: all member types resolved")


# ---------------------------------------------------------------------------
# Phase B - ambiguity detection
# ---------------------------------------------------------------------------


def check_ambiguity(schema: Schema, settings: ResolverSettings) -> None:
    """Reject relations that could not be paired with a single mirror."""
    for model_name, model in schema.models.items():
        unnamed: Dict[str, List[str]] = {}
        named: Dict[str, List[str]] = {}
        for member_name, directive in model.members.items():
            relation: Optional[RelationDirective] = directive.relation
            if relation is None or not _is_model_typed(schema, directive):
                continue
            if relation.name is None:
                unnamed.setdefault(directive.member_type, []).append(member_name)
            else:
                named.setdefault(relation.name, []).append(member_name)

        for target, members in unnamed.items():
            if len(members) > 1:
                raise UserConfigError(
                    f"Model {model_name} has ambiguous relations to {target}: "
                    f"members {members} need explicit relation names"
                )

        for name, members in named.items():
            if len(members) == 1:
                continue
            self_pair: bool = len(members) == 2 and all(
                model.members[m].member_type == model_name for m in members
            )
            if not self_pair:
                raise UserConfigError(
                    f"Model {model_name} uses relation name '{name}' on several "
                    f"members: {members}"
                )

    logger.debug("Phase B: no ambiguous relations")


# ---------------------------------------------------------------------------
# Phase C - field/reference validation and naming
# ---------------------------------------------------------------------------


def _check_fields_and_references(schema: Schema, ref: MemberRef) -> None:
    relation: RelationDirective = _relation(schema, ref)
    target: str = _directive(schema, ref).member_type

    if relation.fields and not relation.references:
        raise UserConfigError(f"references section is missing on {ref}")
    if relation.references and not relation.fields:
        raise UserConfigError(f"fields section is missing on {ref}")
    if len(relation.fields) != len(relation.references):
        raise UserConfigError(
            f"{ref}: fields {relation.fields} and references "
            f"{relation.references} must have the same length"
        )

    owner_members = schema.models[ref.model].members
    for field in relation.fields:
        if field not in owner_members:
            raise UserConfigError(
                f"Cannot find field {ref.model}/{field} referenced by {ref}"
            )
    target_members = schema.models[target].members
    for reference in relation.references:
        if reference not in target_members:
            raise UserConfigError(
                f"Cannot find reference {target}/{reference} referenced by {ref}"
            )


def _are_mirrors(schema: Schema, first: MemberRef, second: MemberRef) -> bool:
    return (
        first != second
        and _directive(schema, first).member_type == second.model
        and _directive(schema, second).member_type == first.model
    )


def _link_bare_members(schema: Schema, claims: Dict[str, List[MemberRef]]) -> None:
    """
    Attach bare model-typed members to the relation pointing back at them.

    A member without ``@relation`` is linked only when it is the sole bare
    member of its model aimed at the target and the target holds exactly
    one still unmirrored relation aimed back.  Anything else stays unlinked.
    """
    bare: Dict[Tuple[str, str], List[MemberRef]] = {}
    for model_name, member_name, directive in iter_members(schema):
        if directive.relation is None and _is_model_typed(schema, directive):
            bare.setdefault((model_name, directive.member_type), []).append(
                MemberRef(model=model_name, member=member_name)
            )

    for (model_name, target), refs in bare.items():
        open_names: List[str] = [
            name
            for name, users in claims.items()
            if len(users) == 1
            and users[0].model == target
            and _directive(schema, users[0]).member_type == model_name
        ]
        if len(refs) != 1 or len(open_names) != 1:
            logger.debug(
                "%s: %d bare member(s) and %d open relation(s) towards %s, left unlinked",
                model_name,
                len(refs),
                len(open_names),
                target,
            )
            continue
        ref, name = refs[0], open_names[0]
        _directive(schema, ref).relation = RelationDirective(name=name, generated=True)
        claims[name].append(ref)
        logger.debug("%s: linked as mirror of relation %s", ref, name)


def assign_relation_names(schema: Schema, settings: ResolverSettings) -> _Naming:
    """
    Validate fields/references and give every relation member a name.

    Mutates *schema* in place: unnamed relations get their synthesized name,
    then bare model-typed members are linked to the relation pointing back
    at them where that pairing is unique.
    """
    claims: Dict[str, List[MemberRef]] = {}
    synthesized: Set[str] = set()

    for model_name, member_name, directive in iter_members(schema):
        if directive.relation is None or not _is_model_typed(schema, directive):
            continue
        ref = MemberRef(model=model_name, member=member_name)
        _check_fields_and_references(schema, ref)

        relation: RelationDirective = _relation(schema, ref)
        name: Optional[str] = relation.name
        if name is None:
            name = synthesize_relation_name(
                settings.relation_name_prefix, model_name, directive.member_type
            )
            relation.assign_name(name)
            synthesized.add(name)
            logger.debug("%s: synthesized relation name %s", ref, name)
        claims.setdefault(name, []).append(ref)

    for name, refs in claims.items():
        if len(refs) == 1 or (len(refs) == 2 and _are_mirrors(schema, refs[0], refs[1])):
            continue
        users: List[str] = [str(r) for r in refs]
        if name in synthesized:
            pair: List[str] = sorted(
                {refs[0].model, _directive(schema, refs[0]).member_type}
            )
            raise UserConfigError(
                f"relations between {pair[0]} and {pair[-1]} needs to be "
                f"disambiguated: {users} all resolve to '{name}'"
            )
        raise UserConfigError(
            f"relation name '{name}' is used by members that are not each "
            f"other's mirror: {users}"
        )

    _link_bare_members(schema, claims)

    logger.debug(
        "Phase C: %d relation names (%d synthesized)", len(claims), len(synthesized)
    )
    return _Naming(claims=claims, synthesized=frozenset(synthesized))


# ---------------------------------------------------------------------------
# Phase D - classification and many-to-many derivation
# ---------------------------------------------------------------------------


def _id_member(schema: Schema, model_name: str) -> str:
    id_member: Optional[str] = schema.models[model_name].id_member
    if id_member is None:
        raise UserConfigError(f"model {model_name} does not have a unique id")
    return id_member


def _classify(
    schema: Schema, name: str, refs: List[MemberRef]
) -> Tuple[RelationKind, Optional[MemberRef], Optional[ManyToManyTable]]:
    """Return ``(kind, owner, join_table)`` for one relation."""
    for ref in refs:
        if _directive(schema, ref).is_list and _relation(schema, ref).fields:
            raise UserConfigError(
                f"{ref}: relation '{name}' declares fields on a list member; "
                f"the foreign key must live on the non-list side"
            )

    if len(refs) == 1:
        ref = refs[0]
        directive: Directive = _directive(schema, ref)
        if directive.is_list:
            raise UserConfigError(
                f"{ref}: list relation '{name}' has no mirror member on "
                f"{directive.member_type}"
            )
        if not _relation(schema, ref).fields:
            raise UserConfigError(
                f"{ref}: relation '{name}' has no mirror member and declares "
                f"no fields/references"
            )
        return RelationKind.ONE_TO_MANY, ref, None

    ref_a, ref_b = refs
    a_is_list: bool = _directive(schema, ref_a).is_list
    b_is_list: bool = _directive(schema, ref_b).is_list
    if a_is_list and b_is_list:
        table = ManyToManyTable(
            relation_name=name,
            model_a=ref_a.model,
            model_a_primary_key=_id_member(schema, ref_a.model),
            model_b=ref_b.model,
            model_b_primary_key=_id_member(schema, ref_b.model),
        )
        return RelationKind.MANY_TO_MANY, None, table

    owners: List[MemberRef] = [ref for ref in refs if _relation(schema, ref).fields]
    if not owners:
        raise UserConfigError(
            f"relation '{name}': neither {ref_a} nor {ref_b} declares fields; "
            f"one side must hold the foreign key"
        )
    if len(owners) > 1:
        raise UserConfigError(
            f"relation '{name}': both {ref_a} and {ref_b} declare fields; "
            f"only one side may hold the foreign key"
        )
    kind: RelationKind = (
        RelationKind.ONE_TO_MANY if a_is_list or b_is_list else RelationKind.ONE_TO_ONE
    )
    return kind, owners[0], None


def classify_relations(
    schema: Schema, naming: _Naming
) -> Tuple[Dict[str, ManyToManyTable], Dict[str, ResolvedRelation]]:
    """Link mirrors, classify each relation and collect join tables."""
    tables: Dict[str, ManyToManyTable] = {}
    relations: Dict[str, ResolvedRelation] = {}
    completed_relations: Set[str] = set()

    for model_name, member_name, directive in iter_members(schema):
        if directive.relation is None or directive.relation.name is None:
            continue
        name: str = directive.relation.name
        if name in completed_relations:
            continue

        refs: List[MemberRef] = naming.claims[name]
        if len(refs) == 2:
            first, second = refs
            _relation(schema, first).assign_referenced_member(second)
            _relation(schema, second).assign_referenced_member(first)

        kind, owner, table = _classify(schema, name, refs)
        if table is not None:
            tables[name] = table
        relations[name] = ResolvedRelation(
            name=name,
            kind=kind,
            endpoints=list(refs),
            owner=owner,
            generated_name=name in naming.synthesized,
        )
        completed_relations.add(name)
        logger.debug("Phase D: %s is %s", name, RelationKind(kind).value)

    return tables, relations


# ---------------------------------------------------------------------------
# Master entry point
# ---------------------------------------------------------------------------

_CHECKS: List[Callable[[Schema, ResolverSettings], None]] = [
    check_types,
    check_ambiguity,
]


def resolve_schema(
    schema: Schema,
    settings: Optional[ResolverSettings] = None,
) -> ResolvedSchema:
    """
    Resolve and validate *schema*.

    Returns a ``ResolvedSchema`` holding a new, fully resolved ``Schema``
    (every relation member has its name and mirror filled in), the
    many-to-many join tables keyed by relation name, and the
    classification of every relation.

    Raises:
        UserConfigError: the first violated rule.
    """
    settings = settings or ResolverSettings()
    working: Schema = schema.model_copy(deep=True)

    logger.info("Resolving %d models", len(working.models))
    for check in _CHECKS:
        logger.debug("Running check: %s", check.__name__)
        check(working, settings)

    naming: _Naming = assign_relation_names(working, settings)
    tables, relations = classify_relations(working, naming)

    logger.info(
        "Resolved %d relations, %d many-to-many tables",
        len(relations),
        len(tables),
    )
    return ResolvedSchema(schema=working, many_to_many_tables=tables, relations=relations)


__all__: List[str] = [
    "check_types",
    "check_ambiguity",
    "assign_relation_names",
    "classify_relations",
    "resolve_schema",
]

logger.debug("relschema.resolver loaded - %d public symbols.", len(__all__))
