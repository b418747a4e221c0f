# File: relschema/models.py
"""
RelSchema - Core Data Models
============================
Pydantic V2 models for every record that flows through the compiler:

    annotation text → Directive → Model → Schema → ResolvedSchema

``Directive`` / ``RelationDirective`` are produced by the parser,
``Model`` / ``Schema`` by the assembler, and ``ResolvedSchema`` (with its
``ManyToManyTable`` and ``ResolvedRelation`` records) by the resolver.
Back-references between members are stored as ``MemberRef`` name pairs
that are looked up in the owning ``Schema``; no record holds a live
handle to another.

``MemberInput`` / ``RelationInput`` describe the structured member form
accepted by the assembler next to plain annotation strings.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from relschema.errors import ParsingError

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("relschema.models")

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DefaultValue(str, Enum):
    """Value generators accepted by ``@default(@...)``."""

    AUTO_INCREMENT = "autoInc"
    GENERATED_UUID = "uuid"
    CURRENT_TIMESTAMP = "now"

    @classmethod
    def from_keyword(cls, keyword: str) -> Optional["DefaultValue"]:
        """Case-insensitive lookup; ``None`` for unknown keywords."""
        wanted: str = keyword.strip().lower()
        for item in cls:
            if item.value.lower() == wanted:
                return item
        return None


class RelationKind(str, Enum):
    """Cardinality of a resolved relation."""

    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_MANY = "many_to_many"


# ---------------------------------------------------------------------------
# Shared model configuration
# ---------------------------------------------------------------------------

_SHARED_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    validate_assignment=True,
    use_enum_values=True,
    frozen=False,
    extra="forbid",
    protected_namespaces=(),
)

DEFAULT_SCALAR_TYPES: List[str] = [
    "String",
    "Boolean",
    "Int",
    "BigInt",
    "Float",
    "Decimal",
    "DateTime",
    "Json",
    "Bytes",
    "Uuid",
]

KNOWN_DATABASE_TYPES: FrozenSet[str] = frozenset(
    {"postgres", "postgresql", "mysql", "sqlite", "mssql"}
)

_IDENTIFIER_RE: re.Pattern[str] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PREFIX_RE: re.Pattern[str] = re.compile(r"^[A-Za-z0-9_#]*$")


def _check_identifiers(values: List[str], what: str) -> List[str]:
    bad: List[str] = [v for v in values if not _IDENTIFIER_RE.match(v)]
    if bad:
        raise ValueError(f"{what} must be identifiers, got {bad}")
    return values


# ---------------------------------------------------------------------------
# Directive records
# ---------------------------------------------------------------------------


class MemberRef(BaseModel):
    """Name pair addressing one member of one model."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    model: str = Field(..., min_length=1, description="Owning model name.")
    member: str = Field(..., min_length=1, description="Member name.")

    def __str__(self) -> str:
        return f"{self.model}/{self.member}"


class RelationDirective(BaseModel):
    """
    Relation metadata attached to one member.

    ``name`` and ``referenced_member`` are filled in by the resolver and
    are write-once: use :meth:`assign_name` and
    :meth:`assign_referenced_member` rather than plain assignment.
    """

    model_config = _SHARED_CONFIG

    name: Optional[str] = Field(default=None, description="Relation name.")
    fields: List[str] = Field(
        default_factory=list, description="Local members holding the foreign key."
    )
    references: List[str] = Field(
        default_factory=list, description="Members of the other model pointed to."
    )
    referenced_member: Optional[MemberRef] = Field(
        default=None, description="Mirror member, set during resolution."
    )
    generated: bool = Field(
        default=False,
        description="True when the resolver linked a bare model-typed member to its mirror relation.",
    )

    @field_validator("fields", "references")
    @classmethod
    def _identifier_lists(cls, v: List[str]) -> List[str]:
        return _check_identifiers(v, "fields/references entries")

    def assign_name(self, name: str) -> None:
        if self.name is not None:
            raise ParsingError(
                f"relation name already set to '{self.name}', refusing to overwrite with '{name}'"
            )
        self.name = name

    def assign_referenced_member(self, ref: MemberRef) -> None:
        if self.referenced_member is not None:
            raise ParsingError(
                f"referenced member already set to {self.referenced_member}, "
                f"refusing to overwrite with {ref}"
            )
        self.referenced_member = ref

    def __repr__(self) -> str:
        return (
            f"<RelationDirective {self.name!r} fields={self.fields} "
            f"references={self.references}>"
        )


class Directive(BaseModel):
    """One member's parsed annotation."""

    model_config = _SHARED_CONFIG

    member_type: str = Field(..., min_length=1, description="Scalar or model name.")
    is_list: bool = Field(default=False)
    is_optional: bool = Field(default=False)
    is_id: bool = Field(default=False)
    default: Optional[DefaultValue] = Field(default=None)
    relation: Optional[RelationDirective] = Field(default=None)

    def __repr__(self) -> str:
        flags: str = "".join(
            [
                "[]" if self.is_list else "",
                "?" if self.is_optional else "",
                " @id" if self.is_id else "",
            ]
        )
        return f"<Directive {self.member_type}{flags}>"


# ---------------------------------------------------------------------------
# Structured member input
# ---------------------------------------------------------------------------


class RelationInput(BaseModel):
    """Structured ``relation`` block of a member."""

    model_config = _SHARED_CONFIG

    name: Optional[str] = Field(default=None, min_length=1)
    fields: List[str] = Field(default_factory=list)
    references: List[str] = Field(default_factory=list)


class MemberInput(BaseModel):
    """
    Structured alternative to an annotation string::

        {"type": "User", "is_list": true, "relation": {"name": "friend"}}
    """

    model_config = _SHARED_CONFIG

    member_type: str = Field(..., alias="type", min_length=1)
    is_id: bool = Field(default=False)
    is_list: bool = Field(default=False)
    is_optional: bool = Field(default=False)
    default: Optional[DefaultValue] = Field(default=None)
    relation: Optional[RelationInput] = Field(default=None)

    @field_validator("member_type")
    @classmethod
    def _type_is_identifier(cls, v: str) -> str:
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(f"type must be an identifier, got '{v}'")
        return v

    @field_validator("default", mode="before")
    @classmethod
    def _default_keyword(cls, v: object) -> object:
        if isinstance(v, str) and not isinstance(v, DefaultValue):
            found: Optional[DefaultValue] = DefaultValue.from_keyword(v.lstrip("@"))
            if found is None:
                raise ValueError(f"{v} is not a default type")
            return found
        return v

    def to_directive(self) -> Directive:
        relation: Optional[RelationDirective] = None
        if self.relation is not None:
            relation = RelationDirective(
                name=self.relation.name,
                fields=list(self.relation.fields),
                references=list(self.relation.references),
            )
        return Directive(
            member_type=self.member_type,
            is_list=self.is_list,
            is_optional=self.is_optional,
            is_id=self.is_id,
            default=self.default,
            relation=relation,
        )


# ---------------------------------------------------------------------------
# Schema containers
# ---------------------------------------------------------------------------


class Model(BaseModel):
    """Ordered mapping of member name → ``Directive`` for one model."""

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1)
    members: Dict[str, Directive] = Field(default_factory=dict)
    table_name: Optional[str] = Field(default=None, description="Storage table override.")
    model_name: Optional[str] = Field(default=None, description="Display name override.")

    @computed_field  # type: ignore[misc]
    @property
    def id_member(self) -> Optional[str]:
        """Name of the (first) ``@id`` member, if any."""
        for member_name, directive in self.members.items():
            if directive.is_id:
                return member_name
        return None

    def __repr__(self) -> str:
        return f"<Model {self.name} ({len(self.members)} members)>"


class Schema(BaseModel):
    """Ordered mapping of model name → ``Model``."""

    model_config = _SHARED_CONFIG

    database_type: Optional[str] = Field(default=None)
    models: Dict[str, Model] = Field(default_factory=dict)

    @computed_field  # type: ignore[misc]
    @property
    def member_count(self) -> int:
        return sum(len(m.members) for m in self.models.values())

    def get_model(self, name: str) -> Optional[Model]:
        return self.models.get(name)

    def get_directive(self, model: str, member: str) -> Optional[Directive]:
        found: Optional[Model] = self.models.get(model)
        if found is None:
            return None
        return found.members.get(member)

    def resolve_ref(self, ref: MemberRef) -> Optional[Directive]:
        return self.get_directive(ref.model, ref.member)

    def __repr__(self) -> str:
        return f"<Schema {len(self.models)} models, {self.member_count} members>"


# ---------------------------------------------------------------------------
# Resolver output
# ---------------------------------------------------------------------------


class ManyToManyTable(BaseModel):
    """Synthetic join table required by a list-to-list relation."""

    model_config = _SHARED_CONFIG

    relation_name: str = Field(..., min_length=1)
    model_a: str = Field(..., min_length=1)
    model_a_primary_key: str = Field(..., min_length=1)
    model_b: str = Field(..., min_length=1)
    model_b_primary_key: str = Field(..., min_length=1)

    def __repr__(self) -> str:
        return (
            f"<ManyToManyTable {self.relation_name}: "
            f"{self.model_a}.{self.model_a_primary_key} <-> "
            f"{self.model_b}.{self.model_b_primary_key}>"
        )


class ResolvedRelation(BaseModel):
    """Classification of one named relation."""

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1)
    kind: RelationKind
    endpoints: List[MemberRef] = Field(..., min_length=1, max_length=2)
    owner: Optional[MemberRef] = Field(
        default=None, description="Member holding the foreign key (none for many-to-many)."
    )
    generated_name: bool = Field(default=False)

    @model_validator(mode="after")
    def _owner_is_endpoint(self) -> "ResolvedRelation":
        if self.owner is not None and self.owner not in self.endpoints:
            raise ValueError(f"owner {self.owner} is not an endpoint of {self.name}")
        return self


class ResolvedSchema(BaseModel):
    """Validated schema plus everything derived from it."""

    model_config = _SHARED_CONFIG

    schema_: Schema = Field(..., alias="schema")
    many_to_many_tables: Dict[str, ManyToManyTable] = Field(default_factory=dict)
    relations: Dict[str, ResolvedRelation] = Field(default_factory=dict)

    def relations_of_kind(self, kind: RelationKind) -> List[ResolvedRelation]:
        return [r for r in self.relations.values() if r.kind == kind]


class ResolverSettings(BaseModel):
    """Knobs for the resolver: scalar vocabulary and relation naming."""

    model_config = _SHARED_CONFIG

    scalar_types: List[str] = Field(default_factory=lambda: list(DEFAULT_SCALAR_TYPES))
    extra_scalar_types: List[str] = Field(default_factory=list)
    relation_name_prefix: str = Field(default="relation#")

    @field_validator("scalar_types", "extra_scalar_types")
    @classmethod
    def _scalar_identifiers(cls, v: List[str]) -> List[str]:
        return _check_identifiers(v, "scalar types")

    @field_validator("relation_name_prefix")
    @classmethod
    def _prefix_charset(cls, v: str) -> str:
        if not _PREFIX_RE.match(v):
            raise ValueError(
                f"relation name prefix may only contain letters, digits, '_' and '#', got '{v}'"
            )
        return v

    @computed_field  # type: ignore[misc]
    @property
    def all_scalars(self) -> FrozenSet[str]:
        return frozenset(self.scalar_types) | frozenset(self.extra_scalar_types)

    def is_scalar(self, type_name: str) -> bool:
        return type_name in self.all_scalars


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "DefaultValue",
    "RelationKind",
    "DEFAULT_SCALAR_TYPES",
    "KNOWN_DATABASE_TYPES",
    "MemberRef",
    "RelationDirective",
    "Directive",
    "RelationInput",
    "MemberInput",
    "Model",
    "Schema",
    "ManyToManyTable",
    "ResolvedRelation",
    "ResolvedSchema",
    "ResolverSettings",
]

logger.debug("relschema.models loaded - %d public symbols.", len(__all__))
