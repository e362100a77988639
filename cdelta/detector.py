"""
cdelta/detector.py
══════════════════

The expression-detector pass session.

    ┌──────────────┐   parse    ┌──────────────┐   walk    ┌──────────────┐
    │ source text  │──────────▶│ Translation  │─────────▶│ candidates   │
    └──────────────┘            │ Unit         │           │ 1 … K        │
                                └──────────────┘           └──────┬───────┘
                                                                  │ N-th latched
                                ┌──────────────┐   emit    ┌──────▼───────┐
                                │ rewritten    │◀─────────│ (func, stmt, │
                                │ text         │           │  expr)       │
                                └──────────────┘           └──────────────┘

One :class:`ExpressionDetector` owns all mutable state of one invocation:
the running candidate count, the latched selection and the statement
caches.  The whole program is walked before any text is touched, so the
total number of candidates is always known.

    COLLECTING ──(count == N)──▶ FOUND ──(walk ends)──▶ EXHAUSTED
    COLLECTING ──(walk ends)──────────────────────────▶ EXHAUSTED

Recoverable outcomes come back as a :class:`TransformResult` status;
configuration problems and internal disagreements are raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from cdelta.ast_model import SOURCE_ERRORS, Expr, FunctionDef, Stmt, TranslationUnit
from cdelta.caches import StatementCaches
from cdelta.config import DetectorConfig
from cdelta.emitter import Instrumentation, RewriteEmitter
from cdelta.errors import (
    CdeltaError,
    ErrorCodes,
    FrontEndDiagnosticError,
    InternalInvariantError,
    OrdinalOutOfRangeError,
    SourceSpan,
    TransformStatus,
    UnsupportedDialectError,
)
from cdelta.frontend import count_syntax_errors, parse_source
from cdelta.rewriter import Edit, SourceRewriter
from cdelta.validity import ValidityFilter
from cdelta.walker import CandidateWalker

_log = logging.getLogger(__name__)


class PassState(Enum):
    COLLECTING = "collecting"
    FOUND = "found"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class CandidateRecord:
    """One accepted candidate, in instance order."""
    ordinal: int
    function: str
    line: int
    statement: str
    expression: str
    start: int
    end: int

    def __str__(self) -> str:
        return f"#{self.ordinal} {self.function}:{self.line}: {self.expression}"


@dataclass
class Selection:
    """The latched (function, statement, expression) triple."""
    function: FunctionDef
    statement: Stmt
    expr: Expr
    record: CandidateRecord


@dataclass
class TransformResult:
    """Outcome of one pass invocation.

    ``output`` is the rewritten program byte for byte; ``text`` is the
    same program decoded with :data:`~cdelta.ast_model.SOURCE_ERRORS`, so
    bytes that are not UTF-8 come back unchanged when it is re-encoded.
    """
    status: TransformStatus
    instance_count: int = 0
    edits: List[Edit] = field(default_factory=list)
    text: Optional[str] = None
    output: Optional[bytes] = None
    selected: Optional[CandidateRecord] = None
    message: str = ""
    candidates: List[CandidateRecord] = field(default_factory=list)
    error: Optional[CdeltaError] = None
    instrumentation: Optional[Instrumentation] = None

    @property
    def ok(self) -> bool:
        return self.status.ok


class ExpressionDetector:
    """
    One invocation of the expression-detector pass.

    Usage::

        detector = ExpressionDetector(DetectorConfig(counter=3))
        result = detector.run(source, "test.c")
        if result.ok:
            print(result.text)
    """

    def __init__(self, config: Optional[DetectorConfig] = None) -> None:
        self.config = (config or DetectorConfig()).ensure_valid()
        self.state = PassState.COLLECTING
        self.instance_count = 0
        self.selection: Optional[Selection] = None
        self.candidates: List[CandidateRecord] = []
        self.caches = StatementCaches(self.config.tmp_prefix)
        self.validity = ValidityFilter(self.config, self.caches)
        self._tu: Optional[TranslationUnit] = None

    # ── collection ───────────────────────────────────────────────────

    def _on_candidate(self, func: FunctionDef, stmt: Stmt, e: Expr) -> None:
        assert self._tu is not None
        self.instance_count += 1
        record = CandidateRecord(
            ordinal=self.instance_count,
            function=func.name,
            line=e.line,
            statement=self._tu.display(stmt),
            expression=self._tu.display(e),
            start=e.start,
            end=e.end,
        )
        self.candidates.append(record)
        _log.debug("candidate %s", record)
        if self.instance_count == self.config.counter and self.selection is None:
            self.selection = Selection(func, stmt, e, record)
            self.state = PassState.FOUND
            _log.info("selected instance %d: %s in %s (line %d)",
                      record.ordinal, record.expression, func.name, record.line)

    def collect(self, tu: TranslationUnit) -> int:
        """Walk *tu* and count its candidates; latches the requested one."""
        self._tu = tu
        walker = CandidateWalker(self.validity, self._on_candidate)
        walker.walk(tu)
        self.state = PassState.EXHAUSTED
        _log.info("%s: %d function(s) visited, %d candidate(s)",
                  tu.filename, walker.functions_visited, self.instance_count)
        return self.instance_count

    # ── the pass ─────────────────────────────────────────────────────

    def transform(self, tu: TranslationUnit) -> TransformResult:
        """Run the pass over an already parsed translation unit."""
        if tu.language != "c":
            err: CdeltaError = UnsupportedDialectError(tu.language)
            _log.warning("%s", err.message)
            self.state = PassState.EXHAUSTED
            status = TransformStatus.QUERY if self.config.query_only else TransformStatus.MAX_INSTANCE
            return TransformResult(status, 0, message=err.message, error=err)

        if tu.error_count:
            _log.warning("%s: input has %d syntax error(s) [%s]",
                         tu.filename, tu.error_count, ErrorCodes.INPUT_PARSE_ERROR)

        self.collect(tu)

        if self.config.query_only:
            return TransformResult(
                TransformStatus.QUERY, self.instance_count,
                message=f"{self.instance_count} valid instance(s)",
                candidates=list(self.candidates),
            )

        if self.config.counter > self.instance_count:
            err = OrdinalOutOfRangeError(self.config.counter, self.instance_count)
            _log.info("%s", err.message)
            return TransformResult(
                TransformStatus.MAX_INSTANCE, self.instance_count,
                message=err.message, candidates=list(self.candidates), error=err,
            )

        if self.selection is None:
            raise InternalInvariantError(
                f"instance {self.config.counter} of {self.instance_count} was not latched",
                span=SourceSpan(tu.filename),
            )

        sel = self.selection
        rewriter = SourceRewriter(tu.source)
        emitted = RewriteEmitter(tu, self.config).emit(
            rewriter, sel.function, sel.statement, sel.expr)
        output = rewriter.apply()

        errors_after = count_syntax_errors(output)
        if errors_after > tu.error_count:
            err = FrontEndDiagnosticError(
                f"rewritten program has {errors_after} syntax error(s), "
                f"input had {tu.error_count}",
                span=SourceSpan(tu.filename, sel.record.line, 0, sel.expr.start, sel.expr.end),
            )
            _log.warning("%s", err.message)
            return TransformResult(
                TransformStatus.FRONTEND_ERROR, self.instance_count,
                edits=rewriter.edits, selected=sel.record, message=err.message,
                candidates=list(self.candidates), error=err,
            )

        return TransformResult(
            TransformStatus.SUCCESS, self.instance_count,
            edits=rewriter.edits,
            text=output.decode("utf-8", errors=SOURCE_ERRORS),
            output=output,
            selected=sel.record,
            message=f"instrumented instance {sel.record.ordinal} of {self.instance_count}",
            candidates=list(self.candidates),
            instrumentation=emitted,
        )

    def run(
        self,
        source: Union[str, bytes],
        filename: str = "<input>",
    ) -> TransformResult:
        """Parse *source* and run the pass over it."""
        tu = parse_source(source, filename, self.config.language)
        return self.transform(tu)


def detect_expression(
    source: Union[str, bytes],
    filename: str = "<input>",
    config: Optional[DetectorConfig] = None,
) -> TransformResult:
    """Run the pass once with a fresh session."""
    return ExpressionDetector(config).run(source, filename)


def count_instances(
    source: Union[str, bytes],
    filename: str = "<input>",
    language: Optional[str] = None,
) -> int:
    """Number of valid candidates in *source*."""
    config = DetectorConfig(query_only=True, language=language)
    return ExpressionDetector(config).run(source, filename).instance_count


__all__ = [
    "PassState",
    "CandidateRecord",
    "Selection",
    "TransformResult",
    "ExpressionDetector",
    "detect_expression",
    "count_instances",
]
