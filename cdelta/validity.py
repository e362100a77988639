"""
cdelta/validity.py
══════════════════

Decides whether an expression is a legal substitution point.

A candidate (statement *S*, expression *E*) is accepted only if every
rule below passes, checked in this order:

     1. TYPE            E has integer or floating type
     2. KIND            E is a subscript, plain binary operator (incl. '='),
                        call, name reference, member access or unary operator
     3. LOOP            S is not a for/while/do statement
     4. SELF            E is not S's own expression
     5. DECL            S declares one variable, with a non-reserved name,
                        not static or extern
     6. CONTROL_VAR     E is not '!ctl', 'ctl == ...' or 'ctl != ...'
     7. CHECK_GUARD     E is not 'tmp != <literal>' inside an 'if'
     8. RESERVED_REF    E does not name a reserved variable, nor is it a
                        name passed straight to the reporting function
     9. INVALID         E is not written to or address-taken in S
    10. DUPLICATE       E repeats no expression already accepted in S
    11. TEMP_INIT       E repeats no initializer of a temporary S reads

Rules 9 to 11 consult :class:`cdelta.caches.StatementCaches`.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from cdelta.ast_model import (
    LOOP_KINDS,
    Expr,
    ExprKind,
    Stmt,
    StmtKind,
    referenced_name,
    skip_parens,
    skip_parens_and_casts,
)
from cdelta.caches import StatementCaches
from cdelta.config import DetectorConfig

_log = logging.getLogger(__name__)

CANDIDATE_KINDS = frozenset({
    ExprKind.SUBSCRIPT,
    ExprKind.BINARY,
    ExprKind.CALL,
    ExprKind.DECL_REF,
    ExprKind.MEMBER,
    ExprKind.UNARY,
})

_GROUP_STORAGE = frozenset({"static", "extern"})


class Rejection(Enum):
    """Why a candidate was turned down."""
    TYPE = 1
    KIND = 2
    LOOP = 3
    SELF = 4
    DECL = 5
    CONTROL_VAR = 6
    CHECK_GUARD = 7
    RESERVED_REF = 8
    INVALID = 9
    DUPLICATE = 10
    TEMP_INIT = 11


def _is_numeric_literal(e: Optional[Expr]) -> bool:
    e = skip_parens_and_casts(e)
    if e is None:
        return False
    if e.kind == ExprKind.UNARY and e.op in ("-", "+") and e.children:
        e = skip_parens_and_casts(e.children[0])
    return e is not None and e.kind in (ExprKind.INT_LITERAL, ExprKind.FLOAT_LITERAL)


class ValidityFilter:
    """
    Applies the acceptance rules for one pass invocation.

    The filter itself is stateless apart from the caches it is given;
    acceptance bookkeeping (``record``) updates the unique list.
    """

    def __init__(self, config: DetectorConfig, caches: StatementCaches) -> None:
        self.config = config
        self.caches = caches
        self._report_functions = {"printf", config.reporting_function.function}

    # ── individual rules ─────────────────────────────────────────────

    @staticmethod
    def has_candidate_type(e: Expr) -> bool:
        return e.ctype is not None and (e.ctype.is_integer or e.ctype.is_floating)

    def _bad_declaration(self, stmt: Stmt) -> bool:
        if stmt.kind != StmtKind.DECL:
            return False
        decl = stmt.single_decl
        if decl is None:
            return True
        if self.config.is_reserved_name(decl.name):
            return True
        return bool(stmt.storage & _GROUP_STORAGE)

    def _touches_control_var(self, e: Expr) -> bool:
        if e.kind == ExprKind.UNARY and e.op == "!":
            operands = e.children[:1]
        elif e.kind == ExprKind.BINARY and e.op in ("==", "!="):
            operands = e.children[:2]
        else:
            return False
        return any(self.config.is_control_name(referenced_name(skip_parens_and_casts(o)))
                   for o in operands)

    def _is_check_guard(self, stmt: Stmt, e: Expr) -> bool:
        if stmt.kind != StmtKind.IF or e.kind != ExprKind.BINARY or e.op != "!=":
            return False
        if len(e.children) != 2:
            return False
        lhs = referenced_name(skip_parens_and_casts(e.children[0]))
        return lhs.startswith(self.config.tmp_prefix) and _is_numeric_literal(e.children[1])

    def _is_reporting_call(self, stmt: Stmt) -> bool:
        expr = stmt.expr
        if expr is None or expr.kind != ExprKind.CALL:
            return False
        callee = skip_parens(expr.callee)
        return (callee is not None and callee.kind == ExprKind.DECL_REF
                and callee.name in self._report_functions)

    def _is_reserved_ref(self, stmt: Stmt, e: Expr) -> bool:
        if e.kind != ExprKind.DECL_REF:
            return False
        if self.config.is_reserved_name(referenced_name(e)):
            return True
        return self._is_reporting_call(stmt)

    # ── the filter ───────────────────────────────────────────────────

    def rejection(self, stmt: Stmt, e: Expr) -> Optional[Rejection]:
        """
        First rule *e* fails as a candidate in *stmt*, or None if it
        passes all of them.  Does not record anything.
        """
        if not self.has_candidate_type(e):
            return Rejection.TYPE
        if e.kind not in CANDIDATE_KINDS:
            return Rejection.KIND
        if stmt.kind in LOOP_KINDS:
            return Rejection.LOOP
        if stmt.kind == StmtKind.EXPR and skip_parens_and_casts(stmt.expr) is e:
            return Rejection.SELF
        if self._bad_declaration(stmt):
            return Rejection.DECL
        if self._touches_control_var(e):
            return Rejection.CONTROL_VAR
        if self._is_check_guard(stmt, e):
            return Rejection.CHECK_GUARD
        if self._is_reserved_ref(stmt, e):
            return Rejection.RESERVED_REF
        if self.caches.is_invalid(stmt, e):
            return Rejection.INVALID
        if self.caches.has_duplicate(stmt, e):
            return Rejection.DUPLICATE
        if self.caches.matches_temp_init(stmt, e):
            return Rejection.TEMP_INIT
        return None

    def accept(self, stmt: Stmt, e: Expr) -> bool:
        """Check *e* and, if it passes, record it as seen in *stmt*."""
        reason = self.rejection(stmt, e)
        if reason is not None:
            if reason not in (Rejection.TYPE, Rejection.KIND):
                _log.debug("line %d: rejected %r (%s)", e.line, e, reason.name)
            return False
        self.caches.add_unique(stmt, e)
        return True


__all__ = ["CANDIDATE_KINDS", "Rejection", "ValidityFilter"]
