"""
tests/conftest.py
Shared fixtures for the relschema test suite.

No external mocking libraries are used; real file I/O is performed
inside temporary directories managed by pytest's tmp_path fixtures.
"""

from __future__ import annotations

import copy
import json
import logging
import pathlib
from typing import Any, Callable, Dict

import pytest
import yaml


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

ROOT_DIR: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent
SCHEMA_EXAMPLE_PATH: pathlib.Path = ROOT_DIR / "schema_example.yaml"


@pytest.fixture(autouse=True)
def _reset_relschema_logger() -> Any:
    """Undo the handler/propagation changes made by the CLI between tests."""
    yield
    root_logger = logging.getLogger("relschema")
    root_logger.handlers.clear()
    root_logger.setLevel(logging.NOTSET)
    root_logger.propagate = True


# ---------------------------------------------------------------------------
# Reference document
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def raw_schema_dict() -> Dict[str, Any]:
    """Load the reference schema_example.yaml once per session and return as dict."""
    assert SCHEMA_EXAMPLE_PATH.exists(), (
        f"Reference schema not found at {SCHEMA_EXAMPLE_PATH}. "
        "Make sure schema_example.yaml is in the project root."
    )
    with open(SCHEMA_EXAMPLE_PATH, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    assert isinstance(data, dict), "Top-level YAML must be a mapping."
    return data


@pytest.fixture()
def schema_dict(raw_schema_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Return a deep copy so each test can mutate freely."""
    return copy.deepcopy(raw_schema_dict)


@pytest.fixture()
def schema_yaml_path(schema_dict: Dict[str, Any], tmp_path: pathlib.Path) -> pathlib.Path:
    """Write the schema dict to a temporary YAML file and return its path."""
    path = tmp_path / "schema.yaml"
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(schema_dict, fh, default_flow_style=False, allow_unicode=True)
    return path


# ---------------------------------------------------------------------------
# Small model sections
# ---------------------------------------------------------------------------


@pytest.fixture()
def one_to_many_models() -> Dict[str, Any]:
    """Post owns the foreign key to User; User has no mirror member."""
    return {
        "User": {
            "uuid": "String @id @default(@uuid)",
            "email": "String",
        },
        "Post": {
            "id": "Int @id @default(@autoInc)",
            "userUuid": "String",
            "user": "User @relation(fields:[userUuid], references:[uuid])",
        },
    }


@pytest.fixture()
def many_to_many_models() -> Dict[str, Any]:
    """User.posts and Post.users share the relation name 'friend'."""
    return {
        "User": {
            "id": "String @id",
            "posts": "Post[] @relation(friend)",
        },
        "Post": {
            "id": "Int @id",
            "users": "User[] @relation(friend)",
        },
    }


@pytest.fixture()
def minimal_document() -> Dict[str, Any]:
    """Smallest valid configuration document."""
    return {
        "database": {"type": "sqlite"},
        "models": {
            "Item": {"members": {"id": "Int @id @default(@autoInc)", "title": "String"}},
        },
    }


# ---------------------------------------------------------------------------
# File writers
# ---------------------------------------------------------------------------


@pytest.fixture()
def write_text(tmp_path: pathlib.Path) -> Callable[[str, str], pathlib.Path]:
    """Factory writing raw text to ``tmp_path / name``."""

    def _write(name: str, text: str) -> pathlib.Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def write_json(tmp_path: pathlib.Path) -> Callable[[Dict[str, Any], str], pathlib.Path]:
    """Factory dumping a document as JSON into ``tmp_path``."""

    def _write(document: Dict[str, Any], name: str = "schema.json") -> pathlib.Path:
        path = tmp_path / name
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        return path

    return _write
