"""
cdelta/emitter.py
═════════════════

Synthesis of the instrumentation text for the selected expression.

For a selected (function, statement S, expression E) the emitter produces,
immediately before S:

    T __cdelta_expr_tmp_N = <E>;
    static int __cdelta_printed_M = 0;
    if (__cdelta_printed_M == __CDELTA_INSTANCE_NUMBER) {
      printf("cdelta_value(%d)\\n", __cdelta_expr_tmp_N);
    }
    ++__cdelta_printed_M;

and replaces E inside S with ``__cdelta_expr_tmp_N``.  Unless S is a
declaration the emitted lines and S are wrapped in ``{ ... }``.  In
reference-check mode the guarded body is
``if (__cdelta_expr_tmp_N != <ref>) abort();`` and the guard uses the
``__cdelta_checked_`` prefix.

If neither a declaration of the called library function nor its header
appears before S, a prototype is inserted at the top of the file.

In replacement mode E is replaced by the configured text and nothing else
is emitted.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from cdelta.ast_model import Expr, FunctionDef, Stmt, StmtKind, TranslationUnit
from cdelta.config import DetectorConfig, DetectorMode, HeaderFunctionInfo
from cdelta.errors import InternalInvariantError, SourceSpan
from cdelta.rewriter import SourceRewriter

_log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  ANCHORS
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AnchorInfo:
    """Where the reporting function and its header first appear."""
    function_offset: Optional[int] = None
    header_offset: Optional[int] = None

    @property
    def has_function(self) -> bool:
        return self.function_offset is not None

    @property
    def has_header(self) -> bool:
        return self.header_offset is not None

    def needs_declaration(self, offset: int) -> bool:
        """
        True if neither the function declaration nor the header include
        precedes *offset*.
        """
        function_missing = not self.has_function or offset < self.function_offset
        header_missing = not self.has_header or offset < self.header_offset
        return function_missing and header_missing


def find_anchors(tu: TranslationUnit, info: HeaderFunctionInfo) -> AnchorInfo:
    return AnchorInfo(
        function_offset=tu.first_function_decl(info.function),
        header_offset=tu.first_include(info.header),
    )


# ═══════════════════════════════════════════════════════════════════════════
#  NAMES
# ═══════════════════════════════════════════════════════════════════════════

def max_name_suffix(names: Iterable[str], prefix: str) -> int:
    """
    Largest numeric suffix among *names* that start with *prefix*.

    Names with a non-numeric suffix are ignored; 0 if none match.
    """
    best = 0
    for name in names:
        if not name.startswith(prefix):
            continue
        suffix = name[len(prefix):]
        if suffix.isdigit():
            best = max(best, int(suffix))
    return best


def fresh_name(func: FunctionDef, prefix: str) -> str:
    return f"{prefix}{max_name_suffix(func.local_names(), prefix) + 1}"


_LINE_START_RE = re.compile(rb"[ \t]*")


def indentation_at(source: bytes, offset: int) -> str:
    """Leading whitespace of the line containing *offset*."""
    line_start = source.rfind(b"\n", 0, offset) + 1
    m = _LINE_START_RE.match(source, line_start, offset)
    return m.group(0).decode("ascii") if m else ""


# ═══════════════════════════════════════════════════════════════════════════
#  EMISSION
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Instrumentation:
    """Names and text produced for one selected expression."""
    tmp_name: str = ""
    control_name: str = ""
    lines: Optional[List[str]] = None
    added_declaration: bool = False


class RewriteEmitter:
    """Builds the edits that instrument one selected expression."""

    def __init__(self, tu: TranslationUnit, config: DetectorConfig) -> None:
        self.tu = tu
        self.config = config

    def _span(self, e: Expr) -> SourceSpan:
        return SourceSpan(self.tu.filename, e.line, 0, e.start, e.end)

    def capture_lines(self, e: Expr, tmp_name: str, control_name: str) -> List[str]:
        """The statements inserted before the enclosing statement."""
        assert e.ctype is not None
        info = self.config.reporting_function
        lines = [
            f"{e.ctype.declare(tmp_name)} = {self.tu.text(e)};",
            f"static int {control_name} = 0;",
            f"if ({control_name} == {self.config.fire_on}) {{",
        ]
        if self.config.mode == DetectorMode.CHECK:
            lines.append(f"  if ({tmp_name} != {self.config.check_reference}) {info.function}();")
        else:
            fmt = e.ctype.format_specifier()
            if fmt is None:
                raise InternalInvariantError(
                    f"no printf conversion for type {e.ctype.spelling()}",
                    span=self._span(e),
                )
            lines.append(
                f'  {info.function}("{self.config.value_label}(%{fmt})\\n", {tmp_name});')
        lines.append("}")
        lines.append(f"++{control_name};")
        return lines

    def emit(
        self,
        rewriter: SourceRewriter,
        func: FunctionDef,
        stmt: Stmt,
        e: Expr,
    ) -> Instrumentation:
        if self.config.mode == DetectorMode.REPLACE:
            assert self.config.replacement is not None
            rewriter.replace(e.start, e.end, self.config.replacement, "replace expression")
            return Instrumentation()

        result = Instrumentation()
        info = self.config.reporting_function
        if find_anchors(self.tu, info).needs_declaration(stmt.start):
            rewriter.insert_before(0, info.declaration + ";\n", f"declare {info.function}")
            result.added_declaration = True

        result.tmp_name = fresh_name(func, self.config.tmp_prefix)
        result.control_name = fresh_name(func, self.config.control_prefix)
        result.lines = self.capture_lines(e, result.tmp_name, result.control_name)

        indent = indentation_at(self.tu.source, stmt.start)
        needs_block = stmt.kind != StmtKind.DECL
        text = f"\n{indent}".join(result.lines) + f"\n{indent}"
        if needs_block:
            text = f"{{\n{indent}" + text
        rewriter.insert_before(stmt.start, text, "capture expression")
        rewriter.replace(e.start, e.end, result.tmp_name, "use capture temporary")
        if needs_block:
            rewriter.insert_after(stmt.end, f"\n{indent}}}", "close block")

        _log.info("instrumented %s in %s as %s (guard %s)",
                  self.tu.display(e), func.name, result.tmp_name, result.control_name)
        return result


__all__ = [
    "AnchorInfo",
    "find_anchors",
    "max_name_suffix",
    "fresh_name",
    "indentation_at",
    "Instrumentation",
    "RewriteEmitter",
]
