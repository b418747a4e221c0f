# File: relschema/loader.py
"""
RelSchema - Configuration Loading
=================================
Reads schema documents from JSON or YAML text/files and extracts the
configuration envelope::

    {"database": {"type": "postgres"}, "models": {...}}

Two further shapes are accepted: the same document wrapped in a top-level
``schema`` key, and the legacy layout with ``models`` nested under
``database``.

JSON objects and YAML mappings that repeat a key are returned as
``DuplicateKeyPairs`` (a list of ``(key, value)`` pairs) instead of a dict,
so a repeated model or member name reaches the assembler instead of being
silently overwritten by the decoder.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from relschema.errors import UserConfigError
from relschema.models import KNOWN_DATABASE_TYPES
from relschema.utils import read_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("relschema.loader")

_ENVELOPE_KEYS: Tuple[str, ...] = ("database", "models")


class DuplicateKeyPairs(list):
    """Key/value pairs of a mapping whose keys are not unique."""

    def keys(self) -> List[Any]:
        return [k for k, _ in self]

    def duplicates(self) -> List[Any]:
        seen: List[Any] = []
        dupes: List[Any] = []
        for key in self.keys():
            if key in seen and key not in dupes:
                dupes.append(key)
            seen.append(key)
        return dupes


def _pairs_to_mapping(pairs: List[Tuple[Any, Any]]) -> Any:
    keys: List[Any] = [k for k, _ in pairs]
    if len(set(keys)) == len(keys):
        return dict(pairs)
    return DuplicateKeyPairs(pairs)


# ---------------------------------------------------------------------------
# YAML
# ---------------------------------------------------------------------------


class _PairPreservingLoader(yaml.SafeLoader):
    """``SafeLoader`` that keeps repeated mapping keys."""

    def construct_mapping(self, node: yaml.Node, deep: bool = False) -> Any:  # type: ignore[override]
        if not isinstance(node, yaml.MappingNode):
            raise yaml.constructor.ConstructorError(
                None, None, f"expected a mapping node, but found {node.id}", node.start_mark
            )
        self.flatten_mapping(node)
        pairs: List[Tuple[Any, Any]] = []
        for key_node, value_node in node.value:
            key: Any = self.construct_object(key_node, deep=deep)
            try:
                hash(key)
            except TypeError as exc:
                raise yaml.constructor.ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    "found unhashable key",
                    key_node.start_mark,
                ) from exc
            pairs.append((key, self.construct_object(value_node, deep=deep)))
        return _pairs_to_mapping(pairs)


def _construct_yaml_mapping(loader: _PairPreservingLoader, node: yaml.MappingNode) -> Any:
    return loader.construct_mapping(node, deep=True)


_PairPreservingLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_yaml_mapping
)


def load_yaml_text(text: str, source: str = "<string>") -> Any:
    """Parse YAML text. Raises ValueError on parse errors."""
    try:
        return yaml.load(text, Loader=_PairPreservingLoader)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {source}: {exc}") from exc


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def load_json_text(text: str, source: str = "<string>") -> Any:
    """Parse JSON text. Raises ValueError on parse errors."""
    try:
        return json.loads(text, object_pairs_hook=_pairs_to_mapping)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {source}: {exc}") from exc


def load_text(text: str, fmt: str = "json", source: str = "<string>") -> Any:
    """Dispatch on *fmt* (``json``, ``yaml`` or ``yml``)."""
    normalized: str = fmt.lower().lstrip(".")
    if normalized == "json":
        return load_json_text(text, source)
    if normalized in ("yaml", "yml"):
        return load_yaml_text(text, source)
    raise ValueError(f"Unsupported document format '{fmt}', expected json or yaml.")


def load_schema_file(path: Path) -> Any:
    """
    Load a schema document (JSON or YAML), dispatching on file extension.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file can't be parsed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")
    if not path.is_file():
        raise ValueError(f"Schema path is not a file: {path}")

    text: str = read_file(path)
    suffix: str = path.suffix.lower()

    if suffix in (".yaml", ".yml"):
        return load_yaml_text(text, str(path))
    if suffix == ".json":
        return load_json_text(text, str(path))

    logger.info("Unknown extension '%s', trying JSON then YAML.", suffix)
    try:
        return load_json_text(text, str(path))
    except ValueError:
        return load_yaml_text(text, str(path))


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Envelope:
    """The two things the compiler needs from a configuration document."""

    database_type: Optional[str]
    models: Any


def _mapping(obj: Any, what: str) -> Dict[str, Any]:
    if isinstance(obj, DuplicateKeyPairs):
        raise UserConfigError(f"{what} lists {obj.duplicates()} more than once")
    if not isinstance(obj, dict):
        raise UserConfigError(f"{what} must be a mapping, got {type(obj).__name__}")
    return obj


def extract_envelope(document: Any) -> Envelope:
    """
    Pull ``database.type`` and the ``models`` section out of *document*.

    Raises:
        UserConfigError: malformed envelope (not a mapping, repeated keys,
            no ``models`` section, non-string ``database.type``).
    """
    top: Dict[str, Any] = _mapping(document, "configuration document")
    if set(top) == {"schema"}:
        top = _mapping(top["schema"], "schema")

    for key in top:
        if key not in _ENVELOPE_KEYS:
            logger.warning("Ignoring unknown configuration key '%s'", key)

    database: Dict[str, Any] = {}
    if top.get("database") is not None:
        database = _mapping(top["database"], "database")

    db_type: Any = database.get("type")
    if db_type is not None and not isinstance(db_type, str):
        raise UserConfigError(f"database.type must be a string, got {type(db_type).__name__}")
    if db_type is None:
        logger.warning("No database.type given")
    elif db_type.lower() not in KNOWN_DATABASE_TYPES:
        logger.warning(
            "Unknown database type '%s' (known: %s)", db_type, sorted(KNOWN_DATABASE_TYPES)
        )

    if "models" in top and "models" in database:
        raise UserConfigError("models listed both at top level and under database")
    models: Any = top.get("models", database.get("models"))
    if models is None:
        raise UserConfigError("configuration has no models section")

    return Envelope(database_type=db_type, models=models)


__all__: List[str] = [
    "DuplicateKeyPairs",
    "Envelope",
    "load_json_text",
    "load_yaml_text",
    "load_text",
    "load_schema_file",
    "extract_envelope",
]

logger.debug("relschema.loader loaded - %d public symbols.", len(__all__))
