"""
tests/test_resolver.py
Unit tests for relschema.resolver.

Tests cover:
- Phase A: type resolution, id and default placement
- Phase B: ambiguous relations inside one model
- Phase C: fields/references existence and relation naming
- Phase D: one-to-one / one-to-many / many-to-many classification and
  join table derivation
- Resolution of the reference schema_example.yaml
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import pytest

from relschema.assembler import assemble_schema
from relschema.errors import UserConfigError
from relschema.loader import extract_envelope
from relschema.models import (
    ManyToManyTable,
    MemberRef,
    RelationKind,
    ResolvedSchema,
    ResolverSettings,
)
from relschema.resolver import resolve_schema


def _resolve(
    models: Dict[str, Any], settings: Optional[ResolverSettings] = None
) -> ResolvedSchema:
    return resolve_schema(assemble_schema(models), settings)


# ===========================================================================
# Phase A - type resolution
# ===========================================================================


class TestTypeResolution:
    """Every member type must be a scalar or a declared model."""

    def test_unknown_type(self) -> None:
        with pytest.raises(UserConfigError) as exc_info:
            _resolve({"User": {"id": "Int @id", "c": "Comment"}})
        assert exc_info.value.message == "type not found: User/c/Comment"

    def test_relation_on_scalar(self) -> None:
        with pytest.raises(UserConfigError, match="contains a reference to a scalar"):
            _resolve({"User": {"id": "Int @id", "name": "String @relation(x)"}})

    def test_extra_scalar_from_settings(self) -> None:
        settings = ResolverSettings(extra_scalar_types=["Money"])
        resolved = _resolve({"Order": {"id": "Int @id", "total": "Money"}}, settings)
        assert resolved.relations == {}

    def test_model_name_must_be_pascal_case(self) -> None:
        with pytest.raises(UserConfigError, match="PascalCase"):
            _resolve({"user": {"id": "Int @id"}})

    def test_model_may_not_shadow_scalar(self) -> None:
        with pytest.raises(UserConfigError, match="shadows the scalar type"):
            _resolve({"String": {"id": "Int @id"}})

    def test_id_on_relation_member(self) -> None:
        with pytest.raises(UserConfigError, match="@id cannot be placed on a relation member"):
            _resolve({"User": {"post": "Post @id"}, "Post": {"id": "Int @id"}})

    def test_list_id(self) -> None:
        with pytest.raises(UserConfigError, match="cannot be a list"):
            _resolve({"User": {"ids": "String[] @id"}})

    def test_optional_id_only_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.WARNING, logger="relschema.resolver")
        _resolve({"User": {"id": "String? @id"}})
        assert "marked optional" in caplog.text

    def test_default_on_relation_member(self) -> None:
        with pytest.raises(UserConfigError, match="@default cannot be placed"):
            _resolve(
                {
                    "User": {"id": "Int @id", "post": "Post @default(@uuid)"},
                    "Post": {"id": "Int @id"},
                }
            )

    def test_incompatible_default(self) -> None:
        with pytest.raises(UserConfigError, match="is not valid for type String"):
            _resolve({"User": {"id": "String @id @default(@autoInc)"}})

    @pytest.mark.parametrize(
        "annotation",
        [
            "BigInt @id @default(@autoInc)",
            "Uuid @id @default(@uuid)",
            "DateTime @id @default(@now)",
        ],
    )
    def test_compatible_defaults(self, annotation: str) -> None:
        _resolve({"User": {"id": annotation}})


# ===========================================================================
# Phase B - ambiguity
# ===========================================================================


class TestAmbiguity:
    """Relations that cannot be paired unambiguously."""

    def test_two_unnamed_relations_to_same_model(self) -> None:
        models = {
            "User": {
                "id": "Int @id",
                "p1": "Int",
                "p2": "Int",
                "a": "Post @relation(fields:[p1], references:[id])",
                "b": "Post @relation(fields:[p2], references:[id])",
            },
            "Post": {"id": "Int @id"},
        }
        with pytest.raises(UserConfigError, match="has ambiguous relations to Post"):
            _resolve(models)

    def test_bare_members_are_not_relations(self) -> None:
        models = {
            "User": {"id": "Int @id", "a": "Post[]", "b": "Post[]"},
            "Post": {"id": "Int @id"},
        }
        resolved = _resolve(models)
        assert resolved.relations == {}
        assert resolved.schema_.get_directive("User", "a").relation is None

    def test_bare_member_beside_named_relation(self) -> None:
        models = {
            "User": {
                "id": "Int @id",
                "editorId": "Int",
                "favorite": "Post?",
                "edited": "Post? @relation(fields:[editorId], references:[id])",
            },
            "Post": {"id": "Int @id"},
        }
        resolved = _resolve(models)
        assert list(resolved.relations) == ["relation#PostUser"]
        relation = resolved.relations["relation#PostUser"]
        assert relation.kind == RelationKind.ONE_TO_MANY
        assert relation.owner == MemberRef(model="User", member="edited")
        assert resolved.schema_.get_directive("User", "favorite").relation is None

    def test_bare_list_members_beside_named_relations(self) -> None:
        document = {
            "schema": {
                "database": {"type": "postgres"},
                "models": {
                    "User": {
                        "uuid": {"type": "Uuid", "default": "Uuid", "is_id": True},
                        "first_name": {"type": "String"},
                        "last_name": {"type": "String"},
                        "posts": {"type": "Post", "is_list": True},
                        "jobs": {"type": "Job", "is_list": True},
                    },
                    "Post": {
                        "uuid": {"type": "Uuid", "default": "Uuid", "is_id": True},
                        "user": {
                            "type": "User",
                            "relation": {
                                "name": "user_post",
                                "fields": ["user_uuid"],
                                "references": ["uuid"],
                            },
                        },
                        "user_uuid": {"type": "Uuid"},
                    },
                    "Job": {
                        "uuid": {"type": "Uuid", "default": "Uuid", "is_id": True},
                        "foreman": {
                            "type": "User",
                            "relation": {
                                "name": "job_foreman",
                                "fields": ["foreman_uuid"],
                                "references": ["uuid"],
                            },
                        },
                        "foreman_uuid": {"type": "Uuid"},
                        "workers": {"type": "User", "is_list": True},
                    },
                },
            }
        }
        envelope = extract_envelope(document)
        resolved = resolve_schema(assemble_schema(envelope.models, envelope.database_type))

        assert set(resolved.relations) == {"user_post", "job_foreman"}
        assert resolved.many_to_many_tables == {}
        assert resolved.relations["user_post"].kind == RelationKind.ONE_TO_MANY
        assert resolved.relations["user_post"].owner == MemberRef(model="Post", member="user")
        assert resolved.relations["job_foreman"].owner == MemberRef(model="Job", member="foreman")

        posts = resolved.schema_.get_directive("User", "posts")
        assert posts is not None and posts.relation is not None
        assert posts.relation.name == "user_post"
        jobs = resolved.schema_.get_directive("User", "jobs")
        assert jobs is not None and jobs.relation is not None
        assert jobs.relation.referenced_member == MemberRef(model="Job", member="foreman")
        assert resolved.schema_.get_directive("Job", "workers").relation is None

    def test_explicit_name_reused_in_one_model(self) -> None:
        models = {
            "User": {"id": "Int @id", "a": "Post[] @relation(x)", "b": "Tag[] @relation(x)"},
            "Post": {"id": "Int @id"},
            "Tag": {"id": "Int @id"},
        }
        with pytest.raises(UserConfigError, match="relation name 'x' on several members"):
            _resolve(models)


# ===========================================================================
# Phase C - fields/references and naming
# ===========================================================================


class TestFieldsAndReferences:
    """fields/references must name real members."""

    def _post(self, relation: str) -> Dict[str, Any]:
        return {
            "User": {"uuid": "String @id"},
            "Post": {"id": "Int @id", "userUuid": "String", "user": f"User {relation}"},
        }

    def test_unknown_field(self) -> None:
        with pytest.raises(UserConfigError) as exc_info:
            _resolve(self._post("@relation(fields:[missing], references:[uuid])"))
        assert exc_info.value.message == "Cannot find field Post/missing referenced by Post/user"

    def test_unknown_reference(self) -> None:
        with pytest.raises(UserConfigError) as exc_info:
            _resolve(self._post("@relation(fields:[userUuid], references:[nope])"))
        assert exc_info.value.message == "Cannot find reference User/nope referenced by Post/user"

    def test_references_missing(self) -> None:
        with pytest.raises(UserConfigError, match="references section is missing on Post/user"):
            _resolve(self._post("@relation(fields:[userUuid])"))

    def test_fields_missing(self) -> None:
        with pytest.raises(UserConfigError, match="fields section is missing on Post/user"):
            _resolve(self._post("@relation(references:[uuid])"))

    def test_length_mismatch(self) -> None:
        with pytest.raises(UserConfigError, match="must have the same length"):
            _resolve(self._post("@relation(fields:[userUuid, id], references:[uuid])"))


class TestNaming:
    """Synthesized and explicit relation names."""

    def test_synthesized_name(self, one_to_many_models: Dict[str, Any]) -> None:
        resolved = _resolve(one_to_many_models)
        assert list(resolved.relations) == ["relation#PostUser"]
        relation = resolved.relations["relation#PostUser"]
        assert relation.generated_name
        directive = resolved.schema_.get_directive("Post", "user")
        assert directive is not None and directive.relation is not None
        assert directive.relation.name == "relation#PostUser"

    def test_custom_prefix(self, one_to_many_models: Dict[str, Any]) -> None:
        resolved = _resolve(one_to_many_models, ResolverSettings(relation_name_prefix="rel_"))
        assert list(resolved.relations) == ["rel_PostUser"]

    def test_bare_member_gets_generated_directive(self) -> None:
        models = {
            "User": {"uuid": "String @id", "posts": "Post[]"},
            "Post": {
                "id": "Int @id",
                "userUuid": "String",
                "user": "User @relation(fields:[userUuid], references:[uuid])",
            },
        }
        resolved = _resolve(models)
        directive = resolved.schema_.get_directive("User", "posts")
        assert directive is not None and directive.relation is not None
        assert directive.relation.generated
        assert directive.relation.name == "relation#PostUser"
        assert directive.relation.referenced_member == MemberRef(model="Post", member="user")

    def test_input_schema_is_not_mutated(self, one_to_many_models: Dict[str, Any]) -> None:
        schema = assemble_schema(one_to_many_models)
        resolve_schema(schema)
        directive = schema.get_directive("Post", "user")
        assert directive is not None and directive.relation is not None
        assert directive.relation.name is None
        assert directive.relation.referenced_member is None

    def test_explicit_name_used_by_three_members(self) -> None:
        models = {
            "User": {"id": "Int @id", "posts": "Post[] @relation(x)"},
            "Post": {"id": "Int @id", "users": "User[] @relation(x)"},
            "Tag": {"id": "Int @id", "users": "User[] @relation(x)"},
        }
        with pytest.raises(UserConfigError, match="not each other's mirror"):
            _resolve(models)

    def test_synthesized_names_from_different_pairs_collide(self) -> None:
        models = {
            "AB": {
                "id": "Int @id",
                "cId": "Int",
                "c": "C @relation(fields:[cId], references:[id])",
            },
            "C": {"id": "Int @id"},
            "A": {
                "id": "Int @id",
                "bcId": "Int",
                "bc": "BC @relation(fields:[bcId], references:[id])",
            },
            "BC": {"id": "Int @id"},
        }
        with pytest.raises(UserConfigError, match="needs to be disambiguated") as exc_info:
            _resolve(models)
        assert "'relation#ABC'" in exc_info.value.message

    def test_explicit_name_colliding_with_synthesized(self) -> None:
        models = {
            "User": {"uuid": "String @id"},
            "Post": {
                "id": "Int @id",
                "userUuid": "String",
                "user": "User @relation(fields:[userUuid], references:[uuid])",
            },
            "Tag": {
                "id": "Int @id",
                "postId": "Int",
                "post": "Post @relation(relation#PostUser, fields:[postId], references:[id])",
            },
        }
        with pytest.raises(
            UserConfigError, match="relations between Post and User needs to be disambiguated"
        ):
            _resolve(models)


# ===========================================================================
# Phase D - classification
# ===========================================================================


class TestClassification:
    """Cardinality and ownership of relations."""

    def test_one_to_many_without_mirror(self, one_to_many_models: Dict[str, Any]) -> None:
        resolved = _resolve(one_to_many_models)
        relation = resolved.relations["relation#PostUser"]
        assert relation.kind == RelationKind.ONE_TO_MANY
        assert relation.owner == MemberRef(model="Post", member="user")
        assert resolved.many_to_many_tables == {}

    def test_many_to_many(self, many_to_many_models: Dict[str, Any]) -> None:
        resolved = _resolve(many_to_many_models)
        assert resolved.many_to_many_tables == {
            "friend": ManyToManyTable(
                relation_name="friend",
                model_a="User",
                model_a_primary_key="id",
                model_b="Post",
                model_b_primary_key="id",
            )
        }
        relation = resolved.relations["friend"]
        assert relation.kind == RelationKind.MANY_TO_MANY
        assert relation.owner is None
        assert not relation.generated_name

    def test_many_to_many_model_order_independent(
        self, many_to_many_models: Dict[str, Any]
    ) -> None:
        reversed_models = dict(reversed(list(many_to_many_models.items())))
        forward = _resolve(many_to_many_models).many_to_many_tables
        backward = _resolve(reversed_models).many_to_many_tables
        assert list(forward) == list(backward) == ["friend"]
        assert {forward["friend"].model_a, forward["friend"].model_b} == {"User", "Post"}
        assert {backward["friend"].model_a, backward["friend"].model_b} == {"User", "Post"}

    def test_mirrors_are_linked(self, many_to_many_models: Dict[str, Any]) -> None:
        resolved = _resolve(many_to_many_models)
        posts = resolved.schema_.get_directive("User", "posts")
        users = resolved.schema_.get_directive("Post", "users")
        assert posts is not None and posts.relation is not None
        assert users is not None and users.relation is not None
        assert posts.relation.referenced_member == MemberRef(model="Post", member="users")
        assert users.relation.referenced_member == MemberRef(model="User", member="posts")

    def test_one_to_one(self) -> None:
        models = {
            "User": {"uuid": "String @id", "profile": "Profile?"},
            "Profile": {
                "id": "Int @id",
                "userUuid": "String",
                "user": "User @relation(fields:[userUuid], references:[uuid])",
            },
        }
        relation = _resolve(models).relations["relation#ProfileUser"]
        assert relation.kind == RelationKind.ONE_TO_ONE
        assert relation.owner == MemberRef(model="Profile", member="user")

    def test_one_to_one_without_owner(self) -> None:
        models = {
            "User": {"uuid": "String @id", "profile": "Profile?"},
            "Profile": {"id": "Int @id", "user": "User @relation()"},
        }
        with pytest.raises(UserConfigError, match="neither"):
            _resolve(models)

    def test_one_to_one_with_two_owners(self) -> None:
        models = {
            "User": {
                "uuid": "String @id",
                "profileId": "Int",
                "profile": "Profile? @relation(fields:[profileId], references:[id])",
            },
            "Profile": {
                "id": "Int @id",
                "userUuid": "String",
                "user": "User @relation(fields:[userUuid], references:[uuid])",
            },
        }
        with pytest.raises(UserConfigError, match="both"):
            _resolve(models)

    def test_list_without_mirror(self) -> None:
        models = {
            "User": {"id": "Int @id", "posts": "Post[] @relation()"},
            "Post": {"id": "Int @id"},
        }
        with pytest.raises(UserConfigError, match="has no mirror member"):
            _resolve(models)

    def test_bare_list_without_counterpart(self) -> None:
        models = {
            "User": {"id": "Int @id", "posts": "Post[]"},
            "Post": {"id": "Int @id"},
        }
        resolved = _resolve(models)
        assert resolved.relations == {}
        assert resolved.many_to_many_tables == {}

    def test_single_member_without_fields(self) -> None:
        models = {
            "User": {"id": "Int @id"},
            "Post": {"id": "Int @id", "user": "User @relation()"},
        }
        with pytest.raises(UserConfigError, match="declares no fields/references"):
            _resolve(models)

    def test_fields_on_list_member(self) -> None:
        models = {
            "User": {
                "id": "String @id",
                "postId": "Int",
                "posts": "Post[] @relation(friend, fields:[postId], references:[id])",
            },
            "Post": {"id": "Int @id", "users": "User[] @relation(friend)"},
        }
        with pytest.raises(UserConfigError, match="declares fields on a list member"):
            _resolve(models)

    def test_self_one_to_many(self) -> None:
        models = {
            "User": {
                "uuid": "String @id",
                "managerUuid": "String?",
                "manager": "User? @relation(management, fields:[managerUuid], references:[uuid])",
                "reports": "User[] @relation(management)",
            }
        }
        relation = _resolve(models).relations["management"]
        assert relation.kind == RelationKind.ONE_TO_MANY
        assert relation.owner == MemberRef(model="User", member="manager")
        assert relation.endpoints == [
            MemberRef(model="User", member="manager"),
            MemberRef(model="User", member="reports"),
        ]

    def test_self_many_to_many(self) -> None:
        models = {
            "User": {
                "id": "Int @id",
                "friends": "User[] @relation(friendship)",
                "friendOf": "User[] @relation(friendship)",
            }
        }
        table = _resolve(models).many_to_many_tables["friendship"]
        assert (table.model_a, table.model_b) == ("User", "User")
        assert table.model_a_primary_key == table.model_b_primary_key == "id"


# ===========================================================================
# Reference document
# ===========================================================================


class TestReferenceSchema:
    """schema_example.yaml resolves to the documented relations."""

    def _resolved(self, schema_dict: Dict[str, Any]) -> ResolvedSchema:
        envelope = extract_envelope(schema_dict)
        return resolve_schema(assemble_schema(envelope.models, envelope.database_type))

    def test_relations(self, schema_dict: Dict[str, Any]) -> None:
        resolved = self._resolved(schema_dict)
        kinds = {name: r.kind for name, r in resolved.relations.items()}
        assert kinds == {
            "relation#PostUser": RelationKind.ONE_TO_MANY,
            "relation#ProfileUser": RelationKind.ONE_TO_ONE,
            "management": RelationKind.ONE_TO_MANY,
            "membership": RelationKind.MANY_TO_MANY,
            "relation#PostTag": RelationKind.MANY_TO_MANY,
        }

    def test_join_tables(self, schema_dict: Dict[str, Any]) -> None:
        tables = self._resolved(schema_dict).many_to_many_tables
        assert set(tables) == {"membership", "relation#PostTag"}
        membership = tables["membership"]
        assert (membership.model_a, membership.model_a_primary_key) == ("User", "uuid")
        assert (membership.model_b, membership.model_b_primary_key) == ("Group", "id")
        post_tag = tables["relation#PostTag"]
        assert (post_tag.model_a, post_tag.model_b) == ("Post", "Tag")

    def test_every_relation_member_is_named(self, schema_dict: Dict[str, Any]) -> None:
        resolved = self._resolved(schema_dict)
        for model in resolved.schema_.models.values():
            for directive in model.members.values():
                if directive.member_type in resolved.schema_.models:
                    assert directive.relation is not None
                    assert directive.relation.name is not None
                    assert directive.relation.referenced_member is not None
