# File: relschema/compiler.py
"""
RelSchema - Compilation Pipeline (Orchestrator)
===============================================
Connects every phase together:

    Document → Envelope → Schema Assembly → Relation Resolution

The ``SchemaCompiler`` class provides both a programmatic API and the
backend for the CLI.

Workflow::

    1. Load the document from a JSON/YAML file or text (loader.py), or
       accept an already decoded mapping.
    2. Extract ``database.type`` and the ``models`` section (loader.py).
    3. Assemble the ``Schema``, parsing every annotation (assembler.py).
    4. Resolve and validate relations (resolver.py).
    5. Return a ``CompilationReport`` with metrics and status.

Error handling strategy:
    - The first ``SchemaError`` aborts the pipeline and is kept on the
      report with its full cause chain; nothing is swallowed.
    - Unreadable input (missing file, undecodable text) is reported as an
      input error, separate from schema errors.
    - ``compile_schema`` is the raising shortcut for library callers.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from relschema.assembler import assemble_schema
from relschema.errors import SchemaError
from relschema.loader import Envelope, extract_envelope, load_schema_file, load_text
from relschema.models import RelationKind, ResolvedSchema, ResolverSettings, Schema
from relschema.resolver import resolve_schema
from relschema.utils import Timer

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("relschema.compiler")


# ---------------------------------------------------------------------------
# Compilation report
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class CompilationStepMetric:
    """Timing and outcome for a single pipeline step."""

    step_name: str = ""
    success: bool = True
    elapsed_seconds: float = 0.0
    detail: str = ""


@dataclass(frozen=False, slots=True)
class CompilationReport:
    """
    Report produced by every ``SchemaCompiler.compile_*`` call.

    ``error`` holds the aborting ``SchemaError`` (with its cause chain);
    ``input_error`` holds the message of a load/decoding failure.
    """

    success: bool = False
    source: str = ""
    database_type: Optional[str] = None

    # Metrics
    model_count: int = 0
    member_count: int = 0
    relation_count: int = 0
    many_to_many_count: int = 0
    total_elapsed_seconds: float = 0.0

    step_metrics: List[CompilationStepMetric] = field(default_factory=list)
    error: Optional[SchemaError] = None
    input_error: Optional[str] = None
    resolved: Optional[ResolvedSchema] = None

    def summary(self) -> str:
        """Return a human-readable summary string."""
        lines: List[str] = []
        status: str = "✅ SUCCESS" if self.success else "❌ FAILED"
        lines.append(f"{'='*60}")
        lines.append("  RelSchema - Compilation Report")
        lines.append(f"{'='*60}")
        lines.append(f"  Status:           {status}")
        lines.append(f"  Source:           {self.source}")
        lines.append(f"  Database:         {self.database_type or '-'}")
        lines.append(f"  Models:           {self.model_count}")
        lines.append(f"  Members:          {self.member_count}")
        lines.append(f"  Relations:        {self.relation_count}")
        lines.append(f"  Join tables:      {self.many_to_many_count}")
        lines.append(f"  Total time:       {self.total_elapsed_seconds:.3f}s")
        lines.append(f"{'─'*60}")

        if self.step_metrics:
            lines.append("  Pipeline Steps:")
            for step in self.step_metrics:
                icon: str = "✓" if step.success else "✗"
                lines.append(
                    f"    {icon} {step.step_name:<20s} "
                    f"{step.elapsed_seconds:>7.3f}s  "
                    f"{step.detail}"
                )

        if self.resolved is not None and self.resolved.relations:
            lines.append(f"{'─'*60}")
            lines.append("  Relations:")
            for relation in self.resolved.relations.values():
                ends: str = " <-> ".join(str(e) for e in relation.endpoints)
                lines.append(f"    • {relation.name:<24s} {relation.kind:<13s} {ends}")

        if self.input_error:
            lines.append(f"{'─'*60}")
            lines.append("  Input Error:")
            lines.append(f"    ✗ {self.input_error}")

        if self.error is not None:
            lines.append(f"{'─'*60}")
            lines.append("  Error:")
            for line in str(self.error).splitlines():
                lines.append(f"    ✗ {line}")

        lines.append(f"{'='*60}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly form used by ``relschema --json``."""
        return {
            "success": self.success,
            "source": self.source,
            "database_type": self.database_type,
            "counts": {
                "models": self.model_count,
                "members": self.member_count,
                "relations": self.relation_count,
                "many_to_many_tables": self.many_to_many_count,
            },
            "steps": [
                {
                    "name": s.step_name,
                    "success": s.success,
                    "elapsed_seconds": round(s.elapsed_seconds, 6),
                    "detail": s.detail,
                }
                for s in self.step_metrics
            ],
            "input_error": self.input_error,
            "error": self.error.to_dict() if self.error is not None else None,
            "resolved": (
                self.resolved.model_dump(mode="json", by_alias=True)
                if self.resolved is not None
                else None
            ),
        }


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------


class SchemaCompiler:
    """
    Master pipeline orchestrator.

    Usage::

        compiler = SchemaCompiler()
        report = compiler.compile_file(Path("schema.yaml"))
        print(report.summary())

    The compiler is reusable: create once, call ``compile_*`` many times.
    """

    def __init__(self, settings: Optional[ResolverSettings] = None) -> None:
        self._settings: ResolverSettings = settings or ResolverSettings()
        logger.debug(
            "SchemaCompiler initialised: %d scalars, relation prefix=%r.",
            len(self._settings.all_scalars),
            self._settings.relation_name_prefix,
        )

    @property
    def settings(self) -> ResolverSettings:
        return self._settings

    # -----------------------------------------------------------------
    # Public entry points
    # -----------------------------------------------------------------

    def compile_file(self, path: Path) -> CompilationReport:
        """Load *path* (JSON or YAML) and compile it."""
        report = CompilationReport(source=str(path))
        start: float = time.perf_counter()

        with Timer("load") as t_load:
            try:
                document: Any = load_schema_file(path)
                load_error: Optional[str] = None
            except (OSError, ValueError) as exc:
                load_error = str(exc)

        if load_error is not None:
            return self._fail_input(report, "Load Document", t_load, load_error, start)
        report.step_metrics.append(CompilationStepMetric(
            step_name="Load Document",
            elapsed_seconds=t_load.elapsed,
            detail=f"from {path.name}",
        ))
        return self._run_pipeline(document, report, start)

    def compile_text(self, text: str, fmt: str = "json") -> CompilationReport:
        """Decode *text* as ``json`` or ``yaml`` and compile it."""
        report = CompilationReport(source=f"<{fmt} text>")
        start: float = time.perf_counter()

        with Timer("decode") as t_decode:
            try:
                document: Any = load_text(text, fmt)
                decode_error: Optional[str] = None
            except ValueError as exc:
                decode_error = str(exc)

        if decode_error is not None:
            return self._fail_input(report, "Decode Document", t_decode, decode_error, start)
        report.step_metrics.append(CompilationStepMetric(
            step_name="Decode Document",
            elapsed_seconds=t_decode.elapsed,
            detail=f"{len(text)} characters",
        ))
        return self._run_pipeline(document, report, start)

    def compile_document(self, document: Any) -> CompilationReport:
        """Compile an already decoded configuration document."""
        report = CompilationReport(source="<document>")
        return self._run_pipeline(document, report, time.perf_counter())

    # -----------------------------------------------------------------
    # Internal: master pipeline
    # -----------------------------------------------------------------

    def _run_pipeline(
        self, document: Any, report: CompilationReport, start: float
    ) -> CompilationReport:
        try:
            with Timer("envelope") as t_env:
                envelope: Envelope = extract_envelope(document)
            report.database_type = envelope.database_type
            report.step_metrics.append(CompilationStepMetric(
                step_name="Read Envelope",
                elapsed_seconds=t_env.elapsed,
                detail=f"database={envelope.database_type or '-'}",
            ))

            with Timer("assemble") as t_asm:
                schema: Schema = assemble_schema(envelope.models, envelope.database_type)
            report.model_count = len(schema.models)
            report.member_count = schema.member_count
            report.step_metrics.append(CompilationStepMetric(
                step_name="Assemble Schema",
                elapsed_seconds=t_asm.elapsed,
                detail=f"{report.model_count} models, {report.member_count} members",
            ))

            with Timer("resolve") as t_res:
                resolved: ResolvedSchema = resolve_schema(schema, self._settings)
            report.resolved = resolved
            report.relation_count = len(resolved.relations)
            report.many_to_many_count = len(resolved.many_to_many_tables)
            report.step_metrics.append(CompilationStepMetric(
                step_name="Resolve Relations",
                elapsed_seconds=t_res.elapsed,
                detail=_relation_breakdown(resolved),
            ))
        except SchemaError as exc:
            report.error = exc
            report.step_metrics.append(CompilationStepMetric(
                step_name=_failed_step(report),
                success=False,
                detail=exc.message or exc.kind.value,
            ))
            logger.error("Compilation of %s failed:\n%s", report.source, exc)

        return self._finalise_report(report, time.perf_counter() - start)

    def _fail_input(
        self,
        report: CompilationReport,
        step_name: str,
        timer: Timer,
        message: str,
        start: float,
    ) -> CompilationReport:
        report.input_error = message
        report.step_metrics.append(CompilationStepMetric(
            step_name=step_name,
            success=False,
            elapsed_seconds=timer.elapsed,
            detail=message,
        ))
        logger.error("Could not read %s: %s", report.source, message)
        return self._finalise_report(report, time.perf_counter() - start)

    def _finalise_report(
        self, report: CompilationReport, total_elapsed: float
    ) -> CompilationReport:
        """Set final status and timing on the report."""
        report.total_elapsed_seconds = total_elapsed
        report.success = report.error is None and report.input_error is None
        if report.success:
            logger.info(
                "Compiled %s: %d models, %d relations in %.3fs.",
                report.source,
                report.model_count,
                report.relation_count,
                total_elapsed,
            )
        return report


_STEP_ORDER: List[str] = ["Read Envelope", "Assemble Schema", "Resolve Relations"]


def _failed_step(report: CompilationReport) -> str:
    done: int = sum(1 for s in report.step_metrics if s.step_name in _STEP_ORDER)
    return _STEP_ORDER[min(done, len(_STEP_ORDER) - 1)]


def _relation_breakdown(resolved: ResolvedSchema) -> str:
    parts: List[str] = [
        f"{len(resolved.relations_of_kind(kind))} {kind.value}"
        for kind in RelationKind
    ]
    return ", ".join(parts)


def compile_schema(
    document: Any, settings: Optional[ResolverSettings] = None
) -> ResolvedSchema:
    """
    Envelope → assemble → resolve in one call, raising on failure.

    Raises:
        SchemaError: the first violated rule, with its cause chain.
    """
    envelope: Envelope = extract_envelope(document)
    schema: Schema = assemble_schema(envelope.models, envelope.database_type)
    return resolve_schema(schema, settings)


__all__: List[str] = [
    "CompilationStepMetric",
    "CompilationReport",
    "SchemaCompiler",
    "compile_schema",
]

logger.debug("relschema.compiler loaded - %d public symbols.", len(__all__))
