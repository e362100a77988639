"""
cdelta/caches.py
════════════════

Statement-scoped memo tables used by the validity filter.

All tables are keyed by statement identity and filled lazily the first
time a statement is asked about.  They are cleared at the start of every
function: statements never span functions, and the temporary index is
per function.

    invalid set     expressions that must not be replaced because they
                    are written to or have their address taken
    unique list     expressions already accepted in the statement
    temp refs       capture temporaries the statement reads
    temp index      capture temporary → its initializer (per function)
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set

from cdelta.ast_model import (
    Decl,
    DeclKind,
    Expr,
    ExprKind,
    FunctionDef,
    Stmt,
    is_address_of,
    is_assignment,
    is_increment_decrement,
    iter_stmt_exprs,
    skip_parens,
)
from cdelta.equality import any_identical

_log = logging.getLogger(__name__)


def collect_invalid_exprs(stmt: Stmt) -> Set[Expr]:
    """
    Expressions in *stmt* that are operands of ``++``/``--``/``&`` or the
    left side of an assignment (parentheses stripped).

    Nested statements are included.
    """
    invalid: Set[Expr] = set()
    for e in iter_stmt_exprs(stmt, deep=True):
        target: Optional[Expr] = None
        if is_increment_decrement(e) or is_address_of(e):
            target = e.children[0] if e.children else None
        elif is_assignment(e):
            target = e.children[0] if e.children else None
        target = skip_parens(target)
        if target is not None:
            invalid.add(target)
    return invalid


def collect_temp_refs(stmt: Stmt, tmp_prefix: str) -> List[Decl]:
    """Capture temporaries referenced anywhere in *stmt*, in order."""
    refs: List[Decl] = []
    for e in iter_stmt_exprs(stmt, deep=True):
        if e.kind != ExprKind.DECL_REF or e.decl is None:
            continue
        if e.decl.kind == DeclKind.VAR and e.decl.name.startswith(tmp_prefix):
            refs.append(e.decl)
    return refs


class StatementCaches:
    """Per-function memo tables for the validity filter."""

    def __init__(self, tmp_prefix: str) -> None:
        self.tmp_prefix = tmp_prefix
        self._invalid: Dict[Stmt, Set[Expr]] = {}
        self._unique: Dict[Stmt, List[Expr]] = {}
        self._temp_refs: Dict[Stmt, List[Decl]] = {}
        self._temp_inits: Dict[Decl, Expr] = {}

    def reset(self, func: Optional[FunctionDef] = None) -> None:
        """Drop every table and index the temporaries of *func*."""
        self._invalid.clear()
        self._unique.clear()
        self._temp_refs.clear()
        self._temp_inits.clear()
        if func is None:
            return
        for decl in func.locals:
            if decl.name.startswith(self.tmp_prefix) and decl.init is not None:
                self._temp_inits[decl] = skip_parens(decl.init)
        if self._temp_inits:
            _log.debug("function %s: %d existing capture temporaries",
                       func.name, len(self._temp_inits))

    # ── invalid set ──────────────────────────────────────────────────

    def invalid_exprs(self, stmt: Stmt) -> Set[Expr]:
        found = self._invalid.get(stmt)
        if found is None:
            found = collect_invalid_exprs(stmt)
            self._invalid[stmt] = found
        return found

    def is_invalid(self, stmt: Stmt, e: Expr) -> bool:
        return e in self.invalid_exprs(stmt)

    # ── unique list ──────────────────────────────────────────────────

    def unique_exprs(self, stmt: Stmt) -> List[Expr]:
        return self._unique.setdefault(stmt, [])

    def has_duplicate(self, stmt: Stmt, e: Expr) -> bool:
        return any_identical(self._unique.get(stmt, ()), e)

    def add_unique(self, stmt: Stmt, e: Expr) -> None:
        self.unique_exprs(stmt).append(e)

    # ── temporaries ──────────────────────────────────────────────────

    def temp_refs(self, stmt: Stmt) -> List[Decl]:
        found = self._temp_refs.get(stmt)
        if found is None:
            found = collect_temp_refs(stmt, self.tmp_prefix)
            self._temp_refs[stmt] = found
        return found

    def matches_temp_init(self, stmt: Stmt, e: Expr) -> bool:
        """True if *e* repeats the initializer of a temporary *stmt* reads."""
        inits = (self.temp_init(decl) for decl in self.temp_refs(stmt))
        return any_identical((i for i in inits if i is not None), e)

    def temp_init(self, decl: Decl) -> Optional[Expr]:
        return self._temp_inits.get(decl)


__all__ = [
    "collect_invalid_exprs",
    "collect_temp_refs",
    "StatementCaches",
]
