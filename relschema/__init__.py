# File: relschema/__init__.py
"""
RelSchema - Relational Schema-Definition Compiler
=================================================

Reads a declarative model description (models, typed members and
per-member annotation strings such as
``User[]? @id @default(@uuid) @relation(name, fields:[...], references:[...])``),
parses every annotation into a structured directive, and validates the
whole schema: type resolution, primary-key uniqueness, relation
field/reference existence, relation naming and many-to-many join tables.

Architecture overview::

    ┌──────────────┐     ┌────────────────┐     ┌────────────────┐
    │  CLI / Entry │────▶│ SchemaCompiler │────▶│     loader     │
    │   (cli.py)   │     │ (compiler.py)  │     │  (loader.py)   │
    └──────────────┘     └───────┬────────┘     └────────────────┘
                                 │
                    ┌────────────┼─────────────┐
                    ▼            ▼             ▼
             ┌──────────┐ ┌────────────┐ ┌────────────┐
             │assembler │ │ directives │ │  resolver  │
             │  (.py)   │ │   (.py)    │ │   (.py)    │
             └──────────┘ └────────────┘ └────────────┘

Usage::

    # As a library
    from relschema import parse_directive, assemble_schema, resolve_schema
    schema = assemble_schema({"User": {"uuid": "String @id"}})
    resolved = resolve_schema(schema)

    # From the command line
    relschema -s schema.yaml -v

Public API:
    - SchemaCompiler    - Master orchestrator
    - parse_directive   - Annotation string → Directive
    - assemble_schema   - Models section → Schema
    - resolve_schema    - Schema → ResolvedSchema
    - SchemaError       - Base of every compiler error
"""

from __future__ import annotations

__version__: str = "0.1.0"
__license__: str = "MIT"

from relschema.errors import (
    ErrorKind,
    ParsingError,
    RegexError,
    SchemaError,
    UserConfigError,
)
from relschema.models import (
    DefaultValue,
    Directive,
    ManyToManyTable,
    MemberRef,
    Model,
    RelationDirective,
    RelationKind,
    ResolvedRelation,
    ResolvedSchema,
    ResolverSettings,
    Schema,
)
from relschema.directives import parse_directive, render_directive
from relschema.assembler import assemble_schema
from relschema.resolver import resolve_schema
from relschema.loader import extract_envelope, load_schema_file
from relschema.compiler import CompilationReport, SchemaCompiler, compile_schema

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__license__",
    # Core orchestrator
    "SchemaCompiler",
    "CompilationReport",
    "compile_schema",
    # Errors
    "ErrorKind",
    "SchemaError",
    "RegexError",
    "UserConfigError",
    "ParsingError",
    # Models
    "DefaultValue",
    "Directive",
    "ManyToManyTable",
    "MemberRef",
    "Model",
    "RelationDirective",
    "RelationKind",
    "ResolvedRelation",
    "ResolvedSchema",
    "ResolverSettings",
    "Schema",
    # Pipeline steps
    "parse_directive",
    "render_directive",
    "assemble_schema",
    "resolve_schema",
    "extract_envelope",
    "load_schema_file",
]
