"""
cdelta/equality.py
══════════════════

Structural equality of two expressions.

Two expressions are *identical* when evaluating either one at the same
program point is guaranteed to produce the same value: same shape, same
operators, same referenced declarations, same literal values, and no
side effects anywhere.  An expression with side effects is never
identical to anything, not even to itself.

    ┌───────────────┬─────────────────────────────────────────────┐
    │  kind         │  payload compared (children always compared) │
    ├───────────────┼─────────────────────────────────────────────┤
    │  SUBSCRIPT    │  nothing else                               │
    │  CALL         │  nothing else                               │
    │  CAST         │  written target type                        │
    │  MEMBER       │  member declaration (name + '->' if unknown)│
    │  DECL_REF     │  declaration (spelling if unresolved)       │
    │  BINARY       │  operator                                   │
    │  COMPOUND_ASSIGN │ operator                                 │
    │  UNARY        │  operator                                   │
    │  INT_LITERAL  │  bit width and value                        │
    │  FLOAT_LITERAL│  type and bit pattern                       │
    │  CHAR_LITERAL │  value                                      │
    │  STRING_LITERAL │ bytes                                     │
    │  anything else│  never identical                            │
    └───────────────┴─────────────────────────────────────────────┘
"""

from __future__ import annotations

from typing import Iterable, Optional

from cdelta.ast_model import Expr, ExprKind, skip_parens


def _same_literal_type(e1: Expr, e2: Expr) -> bool:
    if e1.ctype is None or e2.ctype is None:
        return e1.ctype is e2.ctype
    return e1.ctype.unqualified.kind == e2.ctype.unqualified.kind


def _same_payload(e1: Expr, e2: Expr) -> bool:
    kind = e1.kind

    if kind in (ExprKind.SUBSCRIPT, ExprKind.CALL):
        return True

    if kind == ExprKind.CAST:
        return e1.written_type == e2.written_type

    if kind == ExprKind.MEMBER:
        if e1.member_decl is not None or e2.member_decl is not None:
            return e1.member_decl is e2.member_decl
        return e1.name == e2.name and e1.arrow == e2.arrow

    if kind == ExprKind.DECL_REF:
        if e1.decl is not None or e2.decl is not None:
            return e1.decl is e2.decl
        return e1.name == e2.name

    if kind in (ExprKind.BINARY, ExprKind.COMPOUND_ASSIGN, ExprKind.UNARY):
        return e1.op == e2.op

    if kind == ExprKind.INT_LITERAL:
        return e1.bit_width == e2.bit_width and e1.value == e2.value

    if kind == ExprKind.FLOAT_LITERAL:
        # bit patterns, so 0.0 and -0.0 differ
        return _same_literal_type(e1, e2) and e1.value == e2.value

    if kind in (ExprKind.CHAR_LITERAL, ExprKind.STRING_LITERAL):
        return e1.value == e2.value

    return False


def is_identical(e1: Optional[Expr], e2: Optional[Expr]) -> bool:
    """
    Check whether two expressions are structurally identical.

    Args:
        e1: first expression (may be None)
        e2: second expression (may be None)

    Returns:
        True if both are None, or both are side-effect free and equal in
        kind, arity, children and kind-specific payload.
    """
    if e1 is None or e2 is None:
        return e1 is None and e2 is None

    e1 = skip_parens(e1)
    e2 = skip_parens(e2)
    assert e1 is not None and e2 is not None

    if e1.kind != e2.kind:
        return False
    if e1.side_effects or e2.side_effects:
        return False
    if len(e1.children) != len(e2.children):
        return False
    for c1, c2 in zip(e1.children, e2.children):
        if not is_identical(c1, c2):
            return False
    return _same_payload(e1, e2)


def any_identical(candidates: Iterable[Optional[Expr]], e: Expr) -> bool:
    """True if *e* is identical to one of *candidates*."""
    return any(is_identical(c, e) for c in candidates)


__all__ = ["is_identical", "any_identical"]
