"""
cdelta/walker.py
================

Traversal of function bodies in candidate order.

Provides:
- ``StatementVisitor`` — abstract base; visits every function definition of
  the main file, then every statement and expression in pre-order, with
  the enclosing statement passed along to each expression
- ``CandidateWalker`` — feeds every expression through a
  :class:`~cdelta.validity.ValidityFilter` and reports the accepted ones

Order is fixed: functions in source order; within a statement, its own
expressions (conditions, headers, initializers) first, each in pre-order,
then its nested statements.  The order is what instance numbers refer to,
so it must not change between runs.
"""

from __future__ import annotations

import abc
import logging
from typing import Callable, Optional

from cdelta.ast_model import Expr, FunctionDef, Stmt, TranslationUnit, iter_expr_preorder
from cdelta.caches import StatementCaches
from cdelta.validity import ValidityFilter

__all__ = [
    "StatementVisitor",
    "CandidateWalker",
    "CandidateCallback",
]

_log = logging.getLogger(__name__)

CandidateCallback = Callable[[FunctionDef, Stmt, Expr], None]


class StatementVisitor(abc.ABC):
    """Abstract base for walks over the function bodies of a translation unit.

    Subclasses implement ``visit_expr``; ``enter_function`` and
    ``leave_function`` are optional hooks.
    """

    def __init__(self) -> None:
        self.current_function: Optional[FunctionDef] = None

    def walk(self, tu: TranslationUnit) -> None:
        """Visit every eligible function of *tu*."""
        if tu.language != "c":
            _log.info("%s: not C, nothing to visit", tu.filename)
            return
        for func in tu.functions:
            if not func.in_main_file:
                _log.debug("skipping %s: defined in an included file", func.name)
                continue
            if func.has_errors:
                _log.debug("skipping %s: syntax errors", func.name)
                continue
            self.visit_function(func)

    def visit_function(self, func: FunctionDef) -> None:
        self.current_function = func
        self.enter_function(func)
        self.visit_stmt(func.body)
        self.leave_function(func)
        self.current_function = None

    def visit_stmt(self, stmt: Stmt) -> None:
        for root in stmt.exprs:
            for e in iter_expr_preorder(root):
                self.visit_expr(stmt, e)
        for sub in stmt.body:
            self.visit_stmt(sub)

    def enter_function(self, func: FunctionDef) -> None:
        """Called before the body of *func* is visited."""
        pass

    def leave_function(self, func: FunctionDef) -> None:
        """Called after the body of *func* is visited."""
        pass

    @abc.abstractmethod
    def visit_expr(self, stmt: Stmt, e: Expr) -> None:
        """Called for every expression node, with its current statement."""


class CandidateWalker(StatementVisitor):
    """Reports every expression the validity filter accepts.

    The statement caches are reset at the start of every function.
    """

    def __init__(
        self,
        validity: ValidityFilter,
        on_candidate: CandidateCallback,
    ) -> None:
        super().__init__()
        self.validity = validity
        self.caches: StatementCaches = validity.caches
        self.on_candidate = on_candidate
        self.functions_visited = 0

    def enter_function(self, func: FunctionDef) -> None:
        self.caches.reset(func)
        self.functions_visited += 1
        _log.debug("visiting function %s", func.name)

    def leave_function(self, func: FunctionDef) -> None:
        self.caches.reset()

    def visit_expr(self, stmt: Stmt, e: Expr) -> None:
        if self.validity.accept(stmt, e):
            assert self.current_function is not None
            self.on_candidate(self.current_function, stmt, e)
