#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
cdelta/ast_model.py
═══════════════════

Typed expression / statement model of one C translation unit.

The front end (:mod:`cdelta.frontend`) lowers the tree-sitter concrete
syntax tree into the node classes below.  Every node keeps its byte
span in the original source so the rewriter can edit the text directly.

    ┌─────────────────────────────────────────────────────────────────┐
    │  TranslationUnit                                                │
    │    • source bytes, file name, dialect                           │
    │    • FunctionDef*  (definitions with bodies, in source order)   │
    │    • IncludeDirective*, first declaration offsets of functions  │
    ├─────────────────────────────────────────────────────────────────┤
    │  FunctionDef → Stmt (compound body) → Stmt* / Expr*             │
    ├─────────────────────────────────────────────────────────────────┤
    │  Expr   kind, span, static type, side-effect flag, children     │
    │  Decl   kind, name, type, initializer, storage class            │
    └─────────────────────────────────────────────────────────────────┘

Nodes compare by identity (``eq=False``): the same spelling at two
places in the program is two different nodes.  Declaration identity is
``Decl`` object identity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, FrozenSet, Iterator, List, Optional, Set

from cdelta.c_types import CType


# ═══════════════════════════════════════════════════════════════════════════
#  CONSTANTS
# ═══════════════════════════════════════════════════════════════════════════

# Codec error handler for source text that is written back out
SOURCE_ERRORS = "surrogateescape"

# Assignment operators (including compound)
ASSIGNMENT_OPS: FrozenSet[str] = frozenset({
    '=', '+=', '-=', '*=', '/=', '%=',
    '&=', '|=', '^=', '<<=', '>>=',
})

COMPOUND_ASSIGNMENT_OPS: FrozenSet[str] = ASSIGNMENT_OPS - {'='}

# Unary operator codes as stored on UNARY nodes; prefix and postfix
# increments are distinct operators.
INCREMENT_DECREMENT_OPS: FrozenSet[str] = frozenset({
    '++pre', '--pre', 'post++', 'post--',
})

# Operators that definitely have side effects
SIDE_EFFECT_OPS: FrozenSet[str] = ASSIGNMENT_OPS | INCREMENT_DECREMENT_OPS

# Functions with no side effects even without a const/pure attribute
CONST_FUNCTIONS: FrozenSet[str] = frozenset({
    'abs', 'labs', 'llabs', 'fabs', 'fabsf', 'fabsl',
})


# ═══════════════════════════════════════════════════════════════════════════
#  NODE KINDS
# ═══════════════════════════════════════════════════════════════════════════

class ExprKind(Enum):
    SUBSCRIPT = auto()
    BINARY = auto()             # includes plain '='
    COMPOUND_ASSIGN = auto()
    CALL = auto()
    DECL_REF = auto()
    MEMBER = auto()
    UNARY = auto()
    PAREN = auto()
    CAST = auto()
    INT_LITERAL = auto()
    FLOAT_LITERAL = auto()
    CHAR_LITERAL = auto()
    STRING_LITERAL = auto()
    CONDITIONAL = auto()
    COMMA = auto()
    SIZEOF = auto()
    COMPOUND_LITERAL = auto()
    INIT_LIST = auto()
    OTHER = auto()


class StmtKind(Enum):
    COMPOUND = auto()
    DECL = auto()
    EXPR = auto()
    IF = auto()
    FOR = auto()
    WHILE = auto()
    DO = auto()
    SWITCH = auto()
    CASE = auto()
    DEFAULT = auto()
    LABEL = auto()
    RETURN = auto()
    JUMP = auto()
    NULL = auto()
    OTHER = auto()


LOOP_KINDS: FrozenSet[StmtKind] = frozenset({
    StmtKind.FOR, StmtKind.WHILE, StmtKind.DO,
})


class DeclKind(Enum):
    VAR = auto()
    PARAM = auto()
    FUNCTION = auto()
    ENUM_CONSTANT = auto()
    FIELD = auto()


# ═══════════════════════════════════════════════════════════════════════════
#  NODES
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(eq=False)
class Decl:
    """A named declaration."""
    kind: DeclKind
    name: str
    ctype: Optional[CType] = None
    init: Optional["Expr"] = None
    storage: str = ""                 # "static", "extern", "register", ...
    start: int = -1                   # byte offset of the declaring node
    attributes: FrozenSet[str] = frozenset()   # e.g. {"const", "pure"}

    @property
    def is_side_effect_free_function(self) -> bool:
        return (self.kind == DeclKind.FUNCTION
                and (bool(self.attributes & {"const", "pure"})
                     or self.name in CONST_FUNCTIONS))

    def __repr__(self) -> str:
        return f"Decl({self.kind.name}, {self.name!r}, {self.ctype!r})"


@dataclass(eq=False)
class Expr:
    """
    One expression node.

    Kind-specific payload:
      - DECL_REF:  decl (None if unresolved), name
      - MEMBER:    name (member), arrow, member_decl (FIELD decl or None)
      - BINARY / COMPOUND_ASSIGN / UNARY: op
      - CAST / COMPOUND_LITERAL:  written_type (normalised spelling)
      - INT_LITERAL / CHAR_LITERAL: value, bit_width
      - FLOAT_LITERAL: value (bit pattern bytes)
      - STRING_LITERAL: value (bytes)
      - CALL:      children[0] is the callee, the rest are arguments
    """
    kind: ExprKind
    start: int
    end: int
    ctype: Optional[CType] = None
    children: List["Expr"] = field(default_factory=list)
    op: str = ""
    name: str = ""
    decl: Optional[Decl] = None
    member_decl: Optional[Decl] = None
    arrow: bool = False
    value: object = None
    bit_width: int = 0
    written_type: str = ""
    line: int = 0
    side_effects: bool = False

    @property
    def callee(self) -> Optional["Expr"]:
        if self.kind == ExprKind.CALL and self.children:
            return self.children[0]
        return None

    def __repr__(self) -> str:
        detail = self.op or self.name
        return f"Expr({self.kind.name}{' ' + detail if detail else ''} @{self.start}:{self.end})"


@dataclass(eq=False)
class Stmt:
    """
    One statement.

    ``exprs`` are the expressions evaluated with this statement as the
    current statement (conditions, loop headers, initializers, the
    expression of an expression statement); ``body`` are the nested
    statements, each visited as a statement of its own.  ``exprs`` of
    CASE statements never contain the label constant.
    """
    kind: StmtKind
    start: int
    end: int
    exprs: List[Expr] = field(default_factory=list)
    body: List["Stmt"] = field(default_factory=list)
    decls: List[Decl] = field(default_factory=list)
    is_group: bool = False
    storage: Set[str] = field(default_factory=set)
    line: int = 0

    @property
    def expr(self) -> Optional[Expr]:
        """The expression of an expression statement."""
        if self.kind == StmtKind.EXPR and self.exprs:
            return self.exprs[0]
        return None

    @property
    def single_decl(self) -> Optional[Decl]:
        if self.kind == StmtKind.DECL and len(self.decls) == 1 and not self.is_group:
            return self.decls[0]
        return None

    def __repr__(self) -> str:
        return f"Stmt({self.kind.name} @{self.start}:{self.end})"


@dataclass(eq=False)
class FunctionDef:
    """A function definition with a body."""
    name: str
    decl: Decl
    body: Stmt
    start: int
    end: int
    in_main_file: bool = True
    has_errors: bool = False
    locals: List[Decl] = field(default_factory=list)

    def local_names(self) -> Iterator[str]:
        for d in self.locals:
            yield d.name


@dataclass(frozen=True)
class IncludeDirective:
    header: str
    offset: int
    angled: bool = True
    in_main_file: bool = True


@dataclass(eq=False)
class TranslationUnit:
    """The parsed program, as seen by the expression detector."""
    source: bytes
    filename: str = "<input>"
    language: str = "c"
    functions: List[FunctionDef] = field(default_factory=list)
    includes: List[IncludeDirective] = field(default_factory=list)
    function_decl_offsets: Dict[str, int] = field(default_factory=dict)
    error_count: int = 0
    main_file: Optional[str] = None

    def text(self, node: "Expr | Stmt") -> str:
        """Source of *node*; undecodable bytes survive a round trip through
        :data:`SOURCE_ERRORS`."""
        return self.source[node.start:node.end].decode("utf-8", errors=SOURCE_ERRORS)

    def display(self, node: "Expr | Stmt") -> str:
        """Source of *node* for messages and listings."""
        return self.source[node.start:node.end].decode("utf-8", errors="replace")

    def first_include(self, header: str) -> Optional[int]:
        """Offset of the first main-file ``#include`` of *header*."""
        for inc in self.includes:
            if inc.in_main_file and inc.header == header:
                return inc.offset
        return None

    def first_function_decl(self, name: str) -> Optional[int]:
        return self.function_decl_offsets.get(name)


# ═══════════════════════════════════════════════════════════════════════════
#  TRAVERSAL AND PREDICATES
# ═══════════════════════════════════════════════════════════════════════════

def iter_expr_preorder(root: Optional[Expr]) -> Iterator[Expr]:
    """
    Iterate over an expression tree in pre-order (node, then children in
    source order).
    """
    if root is None:
        return
    stack: List[Expr] = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def iter_stmt_exprs(stmt: Stmt, deep: bool = True) -> Iterator[Expr]:
    """
    Every expression node of *stmt*, in pre-order.

    With ``deep`` the nested statements are included as well.
    """
    for e in stmt.exprs:
        yield from iter_expr_preorder(e)
    if deep:
        for sub in stmt.body:
            yield from iter_stmt_exprs(sub, deep=True)


def iter_statements(stmt: Stmt) -> Iterator[Stmt]:
    """*stmt* and every statement nested inside it, in pre-order."""
    yield stmt
    for sub in stmt.body:
        yield from iter_statements(sub)


def skip_parens(e: Optional[Expr]) -> Optional[Expr]:
    while e is not None and e.kind == ExprKind.PAREN and e.children:
        e = e.children[0]
    return e


def skip_parens_and_casts(e: Optional[Expr]) -> Optional[Expr]:
    while e is not None and e.kind in (ExprKind.PAREN, ExprKind.CAST) and e.children:
        e = e.children[0]
    return e


def is_assignment(e: Expr) -> bool:
    return e.kind in (ExprKind.BINARY, ExprKind.COMPOUND_ASSIGN) and e.op in ASSIGNMENT_OPS


def is_increment_decrement(e: Expr) -> bool:
    return e.kind == ExprKind.UNARY and e.op in INCREMENT_DECREMENT_OPS


def is_address_of(e: Expr) -> bool:
    return e.kind == ExprKind.UNARY and e.op == '&'


def referenced_name(e: Optional[Expr]) -> str:
    """Spelling of the name an expression refers to ('' if not a name)."""
    if e is not None and e.kind == ExprKind.DECL_REF:
        return e.decl.name if e.decl is not None else e.name
    return ""


def has_own_side_effect(e: Expr) -> bool:
    """
    Whether the node itself (ignoring its children) has, or may have,
    side effects.

    Side effects include assignments, increments and decrements, calls
    (unless the callee is known to be side-effect free), volatile
    accesses and GNU statement expressions / inline asm (``OTHER`` nodes
    flagged by the front end).  Conservative: unknown callees count.
    """
    if e.kind in (ExprKind.BINARY, ExprKind.COMPOUND_ASSIGN, ExprKind.UNARY):
        if e.op in SIDE_EFFECT_OPS:
            return True
    if e.kind == ExprKind.CALL:
        callee = skip_parens(e.callee)
        if callee is None or callee.kind != ExprKind.DECL_REF:
            return True
        if callee.decl is not None:
            return not callee.decl.is_side_effect_free_function
        return callee.name not in CONST_FUNCTIONS
    if e.kind in (ExprKind.DECL_REF, ExprKind.MEMBER, ExprKind.SUBSCRIPT, ExprKind.UNARY):
        if e.ctype is not None and e.ctype.is_volatile:
            return True
    return False


__all__ = [
    "SOURCE_ERRORS",
    "ASSIGNMENT_OPS",
    "COMPOUND_ASSIGNMENT_OPS",
    "INCREMENT_DECREMENT_OPS",
    "SIDE_EFFECT_OPS",
    "CONST_FUNCTIONS",
    "ExprKind",
    "StmtKind",
    "LOOP_KINDS",
    "DeclKind",
    "Decl",
    "Expr",
    "Stmt",
    "FunctionDef",
    "IncludeDirective",
    "TranslationUnit",
    "iter_expr_preorder",
    "iter_stmt_exprs",
    "iter_statements",
    "skip_parens",
    "skip_parens_and_casts",
    "is_assignment",
    "is_increment_decrement",
    "is_address_of",
    "referenced_name",
    "has_own_side_effect",
]
