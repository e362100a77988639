"""
cdelta/frontend.py
══════════════════

C front end: parses a translation unit with tree-sitter and lowers the
concrete syntax tree into the typed model of :mod:`cdelta.ast_model`.

Beyond the syntax tree the expression detector needs four things from a
front end, and this module provides all of them:

  • static types of expressions (resolved through declarations, typedefs,
    struct/union definitions and the C typing rules in ``c_types``);
  • declaration identity for every name reference (block scoping);
  • a conservative side-effect flag on every expression;
  • the preprocessor facts that survive in the text: ``#include``
    directives and GCC line markers (``# 1 "file.h" 1``), which tell code
    of the main file from code pasted in from headers.

Nothing is preprocessed.  Headers named by ``#include`` are not read;
calls to a few well-known C library functions are typed from a built-in
prototype table instead.  Of a ``#if`` group only an arm chosen by a
literal condition (``#if 0``) is lowered alone; otherwise all arms are.
"""

from __future__ import annotations

import bisect
import logging
import os
import re
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

import tree_sitter_c as tsc
from tree_sitter import Language, Node, Parser, Tree

from cdelta.ast_model import (
    Decl,
    DeclKind,
    Expr,
    ExprKind,
    FunctionDef,
    IncludeDirective,
    Stmt,
    StmtKind,
    TranslationUnit,
    has_own_side_effect,
)
from cdelta.c_types import (
    QUALIFIER_KEYWORDS,
    STANDARD_TYPEDEFS,
    CType,
    Qualifier,
    RecordInfo,
    TypeKind,
    binary_result_type,
    builtin_from_keywords,
    conditional_result_type,
    decay,
    is_floating_literal,
    parse_char_literal,
    parse_floating_literal,
    parse_integer_literal,
    parse_string_literal,
    unary_result_type,
)

_log = logging.getLogger(__name__)

C_LANGUAGE = Language(tsc.language())

CXX_SUFFIXES = frozenset({
    ".cc", ".cpp", ".cxx", ".C", ".hpp", ".hh", ".hxx", ".c++", ".ii",
})


# ═══════════════════════════════════════════════════════════════════════════
#  PART 1 — PARSING AND DIAGNOSTICS
# ═══════════════════════════════════════════════════════════════════════════

def detect_language(filename: str, override: Optional[str] = None) -> str:
    """
    Source dialect of a file: ``"c"`` or ``"c++"``.

    An explicit *override* wins; otherwise the file suffix decides.
    """
    if override:
        return "c++" if override.lower() in ("c++", "cxx", "cpp") else "c"
    _, ext = os.path.splitext(filename)
    return "c++" if ext in CXX_SUFFIXES else "c"


def parse_tree(source: bytes) -> Tree:
    parser = Parser(C_LANGUAGE)
    return parser.parse(source)


def count_syntax_errors(source: Union[str, bytes, Tree]) -> int:
    """
    Number of ERROR and MISSING nodes tree-sitter produced for *source*.

    Error-free subtrees are not descended into.
    """
    if isinstance(source, str):
        source = source.encode("utf-8")
    tree = source if isinstance(source, Tree) else parse_tree(source)
    count = 0
    stack: List[Node] = [tree.root_node]
    while stack:
        node = stack.pop()
        if node.is_error or node.is_missing:
            count += 1
        if node.has_error:
            stack.extend(node.children)
    return count


# ═══════════════════════════════════════════════════════════════════════════
#  PART 2 — PREPROCESSOR FACTS
# ═══════════════════════════════════════════════════════════════════════════

_LINE_MARKER_RE = re.compile(
    rb'^[ \t]*#[ \t]*(?:line[ \t]+)?(\d+)[ \t]+"((?:[^"\\\n]|\\.)*)"', re.M)

_INCLUDE_RE = re.compile(
    rb'^[ \t]*#[ \t]*include[ \t]*([<"])([^>"\n]+)[>"]', re.M)


class SourceRegions:
    """
    Maps byte offsets to the file they came from, using line markers.

    Without markers everything belongs to the main file.  With markers,
    the main file is the one named by the first marker.
    """

    def __init__(self, source: bytes) -> None:
        self._offsets: List[int] = []
        self._files: List[str] = []
        for m in _LINE_MARKER_RE.finditer(source):
            self._offsets.append(m.end())
            self._files.append(m.group(2).decode("utf-8", errors="replace"))
        self.main_file: Optional[str] = self._files[0] if self._files else None

    def file_at(self, offset: int) -> Optional[str]:
        i = bisect.bisect_right(self._offsets, offset) - 1
        if i < 0:
            return self.main_file
        return self._files[i]

    def is_main(self, offset: int) -> bool:
        return self.main_file is None or self.file_at(offset) == self.main_file


def scan_includes(source: bytes, regions: SourceRegions) -> List[IncludeDirective]:
    out = []
    for m in _INCLUDE_RE.finditer(source):
        out.append(IncludeDirective(
            header=m.group(2).decode("utf-8", errors="replace").strip(),
            offset=m.start(),
            angled=m.group(1) == b"<",
            in_main_file=regions.is_main(m.start()),
        ))
    return out


# ═══════════════════════════════════════════════════════════════════════════
#  PART 3 — SCOPES
# ═══════════════════════════════════════════════════════════════════════════

class _Typedef:
    __slots__ = ("name", "ctype")

    def __init__(self, name: str, ctype: Optional[CType]) -> None:
        self.name = name
        self.ctype = ctype


class _Scope:
    """One block scope: ordinary identifiers and tags."""

    def __init__(self, parent: Optional[_Scope] = None) -> None:
        self.parent = parent
        self.ordinary: Dict[str, Union[Decl, _Typedef]] = {}
        self.tags: Dict[str, CType] = {}

    def _lookup(self, name: str) -> Optional[Union[Decl, _Typedef]]:
        s: Optional[_Scope] = self
        while s is not None:
            if name in s.ordinary:
                return s.ordinary[name]
            s = s.parent
        return None

    def lookup_decl(self, name: str) -> Optional[Decl]:
        entry = self._lookup(name)
        return entry if isinstance(entry, Decl) else None

    def lookup_typedef(self, name: str) -> Optional[_Typedef]:
        entry = self._lookup(name)
        return entry if isinstance(entry, _Typedef) else None

    def lookup_tag(self, name: str) -> Optional[CType]:
        s: Optional[_Scope] = self
        while s is not None:
            if name in s.tags:
                return s.tags[name]
            s = s.parent
        return None

    @property
    def root(self) -> _Scope:
        s = self
        while s.parent is not None:
            s = s.parent
        return s


# Prototypes of common C library functions, used when a call names a
# function that has no visible declaration (its header is not read).
def _libc_prototypes() -> Dict[str, CType]:
    i, l, ll = CType.int_type(), CType.long_type(), CType.long_long_type()
    d, v = CType.double_type(), CType.void()
    size = CType.typedef("size_t", CType.long_type(signed=False))
    table: Dict[str, CType] = {}
    for name in ("printf", "fprintf", "sprintf", "snprintf", "scanf"):
        table[name] = CType.func(i, [], variadic=True)
    for name in ("puts", "putchar", "getchar", "rand", "atoi", "abs",
                 "strcmp", "strncmp", "memcmp", "isalpha", "isdigit",
                 "isspace", "isupper", "islower", "toupper", "tolower"):
        table[name] = CType.func(i, [], variadic=True)
    for name in ("labs", "atol", "strtol"):
        table[name] = CType.func(l, [], variadic=True)
    for name in ("llabs", "atoll", "strtoll"):
        table[name] = CType.func(ll, [], variadic=True)
    for name in ("strlen", "strtoul"):
        table[name] = CType.func(size, [], variadic=True)
    for name in ("fabs", "sqrt", "sin", "cos", "tan", "exp", "log", "log10",
                 "pow", "floor", "ceil", "fmod", "atof", "strtod"):
        table[name] = CType.func(d, [], variadic=True)
    table["fabsf"] = CType.func(CType.float_type(), [], variadic=True)
    table["sqrtf"] = CType.func(CType.float_type(), [], variadic=True)
    table["fabsl"] = CType.func(CType.long_double_type(), [], variadic=True)
    for name in ("abort", "exit", "free", "srand"):
        table[name] = CType.func(v, [], variadic=True)
    return table


_PURE_ATTRIBUTE_RE = re.compile(
    rb"__attribute__\s*\(\(\s*(?:[\w\s,()]*,\s*)?(?:__)?(const|pure)(?:__)?\s*[,)]")

_STORAGE_CLASSES = frozenset({
    "static", "extern", "register", "auto", "_Thread_local", "thread_local",
    "__thread",
})


# ═══════════════════════════════════════════════════════════════════════════
#  PART 4 — LOWERING
# ═══════════════════════════════════════════════════════════════════════════

class TranslationUnitBuilder:
    """
    Lowers one tree-sitter tree into a :class:`TranslationUnit`.

    A builder is single-use: construct it per translation unit.
    """

    def __init__(self, source: bytes, filename: str = "<input>") -> None:
        self.source = source
        self.filename = filename
        self.regions = SourceRegions(source)
        self.globals = _Scope()
        self.functions: List[FunctionDef] = []
        self.function_decl_offsets: Dict[str, int] = {}
        self._implicit: Dict[str, Decl] = {}
        self._libc = _libc_prototypes()
        self._locals: Optional[List[Decl]] = None

    # ── helpers ──────────────────────────────────────────────────────

    def _text(self, node: Optional[Node]) -> str:
        if node is None:
            return ""
        return self.source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    @staticmethod
    def _named(node: Node) -> List[Node]:
        return [c for c in node.named_children if c.type != "comment"]

    def _storage(self, node: Node) -> Set[str]:
        return {self._text(c) for c in node.children
                if c.type == "storage_class_specifier"} & _STORAGE_CLASSES

    def _qualifiers(self, node: Node) -> Set[Qualifier]:
        quals: Set[Qualifier] = set()
        for c in node.children:
            if c.type == "type_qualifier":
                q = QUALIFIER_KEYWORDS.get(self._text(c))
                if q is not None:
                    quals.add(q)
        return quals

    def _attributes(self, start: int, end: int) -> frozenset:
        return frozenset(m.group(1).decode("ascii")
                         for m in _PURE_ATTRIBUTE_RE.finditer(self.source[start:end]))

    def _conditional_items(self, node: Node) -> List[Node]:
        """
        Children of a preprocessor conditional group to lower.

        A condition that is a plain integer literal (``#if 0``, ``#elif 1``)
        picks its arm; any other condition cannot be decided without
        preprocessing, so every arm is kept.
        """
        cond = node.child_by_field_name("condition")
        name = node.child_by_field_name("name")
        alt = node.child_by_field_name("alternative")
        body = [c for c in node.named_children if c not in (cond, name, alt)]
        taken: Optional[bool] = None
        if cond is not None and cond.type == "number_literal":
            try:
                taken = parse_integer_literal(self._text(cond))[0] != 0
            except ValueError:
                taken = None
        if taken is True:
            return body
        if taken is False:
            return [alt] if alt is not None else []
        return body + ([alt] if alt is not None else [])

    def _record_function_decl(self, name: str, offset: int) -> None:
        if name and name not in self.function_decl_offsets:
            self.function_decl_offsets[name] = offset

    # ── top level ────────────────────────────────────────────────────

    def build(self, tree: Tree) -> List[FunctionDef]:
        self._top_level_items(tree.root_node.children)
        return self.functions

    def _top_level_items(self, nodes: Sequence[Node]) -> None:
        for node in nodes:
            t = node.type
            if t == "function_definition":
                self._function(node)
            elif t == "declaration" and not node.has_error:
                self._declaration(node, self.globals)
            elif t == "type_definition":
                self._type_definition(node, self.globals)
            elif t in ("struct_specifier", "union_specifier", "enum_specifier"):
                self._specifier_type(node, self.globals)
            elif t in ("preproc_if", "preproc_ifdef", "preproc_else",
                       "preproc_elif", "preproc_elifdef"):
                self._top_level_items(self._conditional_items(node))
            elif t == "linkage_specification":
                body = node.child_by_field_name("body")
                if body is not None:
                    self._top_level_items(body.children)
            elif t == "ERROR":
                _log.warning("%s:%d: skipping unparsable top-level text",
                             self.filename, node.start_point[0] + 1)

    def _function(self, node: Node) -> None:
        declarator = node.child_by_field_name("declarator")
        body_node = node.child_by_field_name("body")
        base = self._qualified(node, self._specifier_type(node.child_by_field_name("type"), self.globals))
        name, ctype = self._apply_declarator(declarator, base, self.globals)
        if not name:
            return
        attrs = self._attributes(node.start_byte,
                                 body_node.start_byte if body_node is not None else node.end_byte)
        decl = self.globals.lookup_decl(name)
        if decl is None or decl.kind != DeclKind.FUNCTION:
            decl = Decl(DeclKind.FUNCTION, name, ctype, start=node.start_byte,
                        storage=" ".join(sorted(self._storage(node))))
            self.globals.ordinary[name] = decl
        elif ctype is not None:
            decl.ctype = ctype
        decl.attributes = decl.attributes | attrs
        self._record_function_decl(name, node.start_byte)

        in_main = self.regions.is_main(node.start_byte)
        func = FunctionDef(
            name=name, decl=decl,
            body=Stmt(StmtKind.COMPOUND, body_node.start_byte if body_node else node.end_byte,
                      node.end_byte),
            start=node.start_byte, end=node.end_byte,
            in_main_file=in_main,
            has_errors=node.has_error,
        )
        self.functions.append(func)
        if body_node is None or node.has_error:
            if node.has_error:
                _log.warning("%s:%d: function '%s' contains syntax errors; skipped",
                             self.filename, node.start_point[0] + 1, name)
            return

        scope = _Scope(self.globals)
        self._locals = func.locals
        fdecl = self._function_declarator(declarator)
        if fdecl is not None:
            self._parameters(fdecl.child_by_field_name("parameters"), scope, define=True)
        func.body = self._compound(body_node, scope, new_scope=False)
        self._locals = None

    def _function_declarator(self, node: Optional[Node]) -> Optional[Node]:
        """The function_declarator nearest to the declared name."""
        found = None
        while node is not None and node.type != "identifier":
            if node.type == "function_declarator":
                found = node
            inner = node.child_by_field_name("declarator")
            if inner is None:
                named = [c for c in self._named(node)
                         if c.type not in ("attribute_specifier", "ms_call_modifier")]
                inner = named[0] if named else None
            node = inner
        return found

    # ── declarations ─────────────────────────────────────────────────

    def _qualified(self, decl_node: Node, base: Optional[CType]) -> Optional[CType]:
        if base is None:
            return None
        return CType.qualified(base, self._qualifiers(decl_node))

    def _declaration(self, node: Node, scope: _Scope) -> Stmt:
        storage = self._storage(node)
        type_node = node.child_by_field_name("type")
        base = self._qualified(node, self._specifier_type(type_node, scope))
        declarators = node.children_by_field_name("declarator")
        defines_type = type_node is not None and type_node.child_by_field_name("body") is not None \
            and type_node.type in ("struct_specifier", "union_specifier", "enum_specifier")
        stmt = Stmt(
            StmtKind.DECL, node.start_byte, node.end_byte,
            is_group=len(declarators) > 1 or (defines_type and len(declarators) > 0),
            storage=storage, line=node.start_point[0] + 1,
        )
        is_local = scope is not self.globals
        for d in declarators:
            value = None
            inner = d
            if d.type == "init_declarator":
                inner = d.child_by_field_name("declarator")
                value = d.child_by_field_name("value")
            name, ctype = self._apply_declarator(inner, base, scope)
            if not name:
                continue
            if ctype is not None and ctype.is_function:
                decl = scope.lookup_decl(name) if not is_local else None
                if decl is None or decl.kind != DeclKind.FUNCTION:
                    decl = Decl(DeclKind.FUNCTION, name, ctype, start=node.start_byte,
                                storage=" ".join(sorted(storage)))
                decl.attributes = decl.attributes | self._attributes(node.start_byte, node.end_byte)
                self._record_function_decl(name, node.start_byte)
            else:
                decl = Decl(DeclKind.VAR, name, ctype, start=node.start_byte,
                            storage=" ".join(sorted(storage)))
                if is_local and self._locals is not None:
                    self._locals.append(decl)
            scope.ordinary[name] = decl
            stmt.decls.append(decl)
            if value is not None:
                init = self._initializer(value, scope)
                decl.init = init
                stmt.exprs.append(init)
        return stmt

    def _type_definition(self, node: Node, scope: _Scope) -> Stmt:
        base = self._qualified(node, self._specifier_type(node.child_by_field_name("type"), scope))
        for d in node.children_by_field_name("declarator"):
            name, ctype = self._apply_declarator(d, base, scope)
            if name:
                scope.ordinary[name] = _Typedef(name, CType.typedef(name, ctype) if ctype else None)
        return Stmt(StmtKind.DECL, node.start_byte, node.end_byte, line=node.start_point[0] + 1)

    def _specifier_type(self, node: Optional[Node], scope: _Scope) -> Optional[CType]:
        """Resolve a type specifier node (without qualifiers)."""
        if node is None:
            return CType.int_type()
        t = node.type
        if t == "primitive_type":
            return builtin_from_keywords([self._text(node)])
        if t == "sized_type_specifier":
            words = []
            for c in node.children:
                if c.type in ("primitive_type", "type_identifier") or not c.is_named:
                    words.append(self._text(c))
            return builtin_from_keywords(words)
        if t == "type_identifier":
            name = self._text(node)
            entry = scope.lookup_typedef(name)
            if entry is not None:
                return entry.ctype
            if name in STANDARD_TYPEDEFS:
                return CType.typedef(name, CType.of_kind(STANDARD_TYPEDEFS[name]))
            # tree-sitter-c reads _Bool as an identifier
            if name in ("_Bool", "bool"):
                return builtin_from_keywords([name])
            return None
        if t in ("struct_specifier", "union_specifier"):
            return self._record(node, scope)
        if t == "enum_specifier":
            return self._enum(node, scope)
        return None

    def _record(self, node: Node, scope: _Scope) -> CType:
        kind = TypeKind.STRUCT if node.type == "struct_specifier" else TypeKind.UNION
        name_node = node.child_by_field_name("name")
        body = node.child_by_field_name("body")
        tag = self._text(name_node)
        if body is None:
            existing = scope.lookup_tag(tag) if tag else None
            if existing is not None:
                return existing
            ctype = CType.record_type(RecordInfo(kind, tag))
            if tag:
                scope.root.tags[tag] = ctype
            return ctype

        existing = scope.tags.get(tag) if tag else None
        if existing is not None and existing.record is not None and not existing.record.complete:
            ctype = existing
        else:
            ctype = CType.record_type(RecordInfo(kind, tag))
        if tag:
            scope.tags[tag] = ctype
        record = ctype.record
        assert record is not None
        for fd in self._named(body):
            if fd.type != "field_declaration":
                continue
            fbase = self._qualified(fd, self._specifier_type(fd.child_by_field_name("type"), scope))
            fdecls = fd.children_by_field_name("declarator")
            if not fdecls and fbase is not None and fbase.is_record and fbase.unqualified.record:
                # anonymous struct/union member
                record.fields.update(fbase.unqualified.record.fields)
                continue
            for d in fdecls:
                fname, ftype = self._apply_declarator(d, fbase, scope)
                if fname:
                    record.fields[fname] = Decl(DeclKind.FIELD, fname, ftype, start=d.start_byte)
        record.complete = True
        return ctype

    def _enum(self, node: Node, scope: _Scope) -> CType:
        tag = self._text(node.child_by_field_name("name"))
        body = node.child_by_field_name("body")
        if body is not None:
            for en in self._named(body):
                if en.type != "enumerator":
                    continue
                name = self._text(en.child_by_field_name("name"))
                if name:
                    scope.ordinary[name] = Decl(DeclKind.ENUM_CONSTANT, name,
                                                CType.int_type(), start=en.start_byte)
        return CType.enum_type(tag)

    def _apply_declarator(
        self,
        node: Optional[Node],
        base: Optional[CType],
        scope: _Scope,
    ) -> Tuple[str, Optional[CType]]:
        """
        Apply a (possibly abstract) declarator to a base type.

        Returns:
            (declared name or "", resulting type or None if unknown)
        """
        while node is not None:
            t = node.type
            if t in ("identifier", "field_identifier", "type_identifier"):
                return self._text(node), base
            if t in ("pointer_declarator", "abstract_pointer_declarator"):
                if base is not None:
                    base = CType.qualified(CType.ptr(base), self._qualifiers(node))
                node = node.child_by_field_name("declarator")
            elif t in ("array_declarator", "abstract_array_declarator"):
                if base is not None:
                    size = -1
                    size_node = node.child_by_field_name("size")
                    if size_node is not None and size_node.type == "number_literal":
                        try:
                            size = parse_integer_literal(self._text(size_node))[0]
                        except ValueError:
                            size = -1
                    base = CType.array(base, size)
                node = node.child_by_field_name("declarator")
            elif t in ("function_declarator", "abstract_function_declarator"):
                if base is not None:
                    params, variadic = self._parameters(
                        node.child_by_field_name("parameters"), scope, define=False)
                    base = CType.func(base, params, variadic)
                node = node.child_by_field_name("declarator")
            elif t in ("parenthesized_declarator", "abstract_parenthesized_declarator",
                       "attributed_declarator"):
                inner = [c for c in self._named(node)
                         if c.type not in ("attribute_specifier", "attribute_declaration",
                                           "ms_call_modifier")]
                node = inner[0] if inner else None
            elif t == "init_declarator":
                node = node.child_by_field_name("declarator")
            else:
                return "", base
        return "", base

    def _parameters(
        self,
        node: Optional[Node],
        scope: _Scope,
        define: bool,
    ) -> Tuple[List[CType], bool]:
        params: List[CType] = []
        variadic = False
        if node is None:
            return params, variadic
        for p in self._named(node):
            if p.type == "variadic_parameter":
                variadic = True
                continue
            if p.type != "parameter_declaration":
                continue
            pbase = self._qualified(p, self._specifier_type(p.child_by_field_name("type"), scope))
            d = p.child_by_field_name("declarator")
            name, ptype = self._apply_declarator(d, pbase, scope) if d is not None else ("", pbase)
            if ptype is not None and ptype.is_void and not name:
                continue
            if ptype is not None and (ptype.is_array or ptype.is_function):
                ptype = decay(ptype)
            params.append(ptype if ptype is not None else CType.int_type())
            if define and name:
                scope.ordinary[name] = Decl(DeclKind.PARAM, name, ptype, start=p.start_byte)
        return params, variadic

    # ── statements ───────────────────────────────────────────────────

    def _compound(self, node: Node, scope: _Scope, new_scope: bool = True) -> Stmt:
        inner = _Scope(scope) if new_scope else scope
        stmt = Stmt(StmtKind.COMPOUND, node.start_byte, node.end_byte,
                    line=node.start_point[0] + 1)
        stmt.body = self._block_items(node.named_children, inner)
        return stmt

    def _block_items(self, nodes: Sequence[Node], scope: _Scope) -> List[Stmt]:
        out: List[Stmt] = []
        for child in nodes:
            if child.type in ("comment", "ERROR", "identifier"):
                continue
            if child.type in ("preproc_if", "preproc_ifdef", "preproc_else",
                              "preproc_elif", "preproc_elifdef"):
                out.extend(self._block_items(self._conditional_items(child), scope))
                continue
            if child.type.startswith("preproc_"):
                continue
            stmt = self._statement(child, scope)
            if stmt is not None:
                out.append(stmt)
        return out

    def _statement(self, node: Node, scope: _Scope) -> Optional[Stmt]:
        t = node.type
        line = node.start_point[0] + 1

        def make(kind: StmtKind) -> Stmt:
            return Stmt(kind, node.start_byte, node.end_byte, line=line)

        if t == "compound_statement":
            return self._compound(node, scope)
        if t == "declaration":
            return self._declaration(node, scope)
        if t == "type_definition":
            return self._type_definition(node, scope)
        if t in ("struct_specifier", "union_specifier", "enum_specifier"):
            self._specifier_type(node, scope)
            return make(StmtKind.DECL)
        if t == "expression_statement":
            children = self._named(node)
            if not children:
                return make(StmtKind.NULL)
            stmt = make(StmtKind.EXPR)
            stmt.exprs.append(self._expr(children[0], scope))
            return stmt
        if t == "if_statement":
            stmt = make(StmtKind.IF)
            stmt.exprs.append(self._condition(node.child_by_field_name("condition"), scope))
            stmt.body.extend(self._substatements(node.child_by_field_name("consequence"), scope))
            alt = node.child_by_field_name("alternative")
            if alt is not None and alt.type == "else_clause":
                inner = self._named(alt)
                alt = inner[0] if inner else None
            stmt.body.extend(self._substatements(alt, scope))
            return stmt
        if t in ("while_statement", "switch_statement"):
            stmt = make(StmtKind.WHILE if t == "while_statement" else StmtKind.SWITCH)
            stmt.exprs.append(self._condition(node.child_by_field_name("condition"), scope))
            stmt.body.extend(self._substatements(node.child_by_field_name("body"), scope))
            return stmt
        if t == "do_statement":
            stmt = make(StmtKind.DO)
            stmt.body.extend(self._substatements(node.child_by_field_name("body"), scope))
            stmt.exprs.append(self._condition(node.child_by_field_name("condition"), scope))
            return stmt
        if t == "for_statement":
            return self._for(node, scope)
        if t == "case_statement":
            value = node.child_by_field_name("value")
            is_default = bool(node.children) and node.children[0].type == "default"
            stmt = make(StmtKind.DEFAULT if is_default else StmtKind.CASE)
            stmt.body = self._block_items(
                [c for c in node.named_children if c != value], scope)
            return stmt
        if t == "labeled_statement":
            stmt = make(StmtKind.LABEL)
            label = node.child_by_field_name("label")
            stmt.body = self._block_items(
                [c for c in node.named_children
                 if c != label and c.type != "statement_identifier"], scope)
            return stmt
        if t == "attributed_statement":
            inner = [c for c in self._named(node) if c.type != "attribute_declaration"]
            return self._statement(inner[0], scope) if inner else None
        if t == "return_statement":
            stmt = make(StmtKind.RETURN)
            children = self._named(node)
            if children:
                stmt.exprs.append(self._expr(children[0], scope))
            return stmt
        if t in ("break_statement", "continue_statement", "goto_statement"):
            return make(StmtKind.JUMP)
        return make(StmtKind.OTHER)

    def _substatements(self, node: Optional[Node], scope: _Scope) -> List[Stmt]:
        if node is None:
            return []
        return self._block_items([node], scope)

    def _condition(self, node: Optional[Node], scope: _Scope) -> Expr:
        """Lower a statement condition, dropping its syntactic parentheses."""
        if node is not None and node.type in ("parenthesized_expression", "condition_clause"):
            inner = self._named(node)
            if len(inner) == 1:
                node = inner[0]
            elif inner:
                # condition_clause with an initializer: keep the last part
                node = inner[-1]
        if node is None:
            return Expr(ExprKind.OTHER, 0, 0)
        return self._expr(node, scope)

    def _for(self, node: Node, scope: _Scope) -> Stmt:
        inner = _Scope(scope)
        stmt = Stmt(StmtKind.FOR, node.start_byte, node.end_byte,
                    line=node.start_point[0] + 1)
        init = node.child_by_field_name("initializer")
        if init is not None:
            if init.type == "declaration":
                decl_stmt = self._declaration(init, inner)
                stmt.decls.extend(decl_stmt.decls)
                stmt.exprs.extend(decl_stmt.exprs)
            else:
                stmt.exprs.append(self._expr(init, inner))
        for field_name in ("condition", "update"):
            part = node.child_by_field_name(field_name)
            if part is not None:
                stmt.exprs.append(self._expr(part, inner))
        stmt.body.extend(self._substatements(node.child_by_field_name("body"), inner))
        return stmt

    # ── expressions ──────────────────────────────────────────────────

    def _initializer(self, node: Node, scope: _Scope) -> Expr:
        if node.type == "initializer_list":
            return self._init_list(node, scope)
        return self._expr(node, scope)

    def _init_list(self, node: Node, scope: _Scope) -> Expr:
        e = Expr(ExprKind.INIT_LIST, node.start_byte, node.end_byte,
                 line=node.start_point[0] + 1)
        for c in self._named(node):
            if c.type == "initializer_pair":
                value = c.child_by_field_name("value")
                if value is not None:
                    e.children.append(self._initializer(value, scope))
            else:
                e.children.append(self._initializer(c, scope))
        return self._finish(e)

    def _finish(self, e: Expr, forced_side_effects: bool = False) -> Expr:
        e.side_effects = (forced_side_effects or has_own_side_effect(e)
                          or any(c.side_effects for c in e.children))
        return e

    def _type_descriptor(self, node: Optional[Node], scope: _Scope) -> Tuple[Optional[CType], str]:
        if node is None:
            return None, ""
        base = self._qualified(node, self._specifier_type(node.child_by_field_name("type"), scope))
        d = node.child_by_field_name("declarator")
        if d is not None:
            _, base = self._apply_declarator(d, base, scope)
        return base, " ".join(self._text(node).split())

    def _implicit_function(self, name: str) -> Optional[Decl]:
        if name not in self._libc:
            return None
        decl = self._implicit.get(name)
        if decl is None:
            decl = Decl(DeclKind.FUNCTION, name, self._libc[name])
            self._implicit[name] = decl
        return decl

    def _expr(self, node: Optional[Node], scope: _Scope) -> Expr:
        if node is None:
            return Expr(ExprKind.OTHER, 0, 0, side_effects=True)
        t = node.type
        e = Expr(ExprKind.OTHER, node.start_byte, node.end_byte,
                 line=node.start_point[0] + 1)

        if t == "parenthesized_expression":
            inner = self._named(node)
            if len(inner) != 1 or inner[0].type == "compound_statement":
                # GNU statement expression
                return self._finish(e, forced_side_effects=True)
            child = self._expr(inner[0], scope)
            e.kind, e.ctype, e.children = ExprKind.PAREN, child.ctype, [child]
            return self._finish(e)

        if t == "identifier":
            e.kind = ExprKind.DECL_REF
            e.name = self._text(node)
            decl = scope.lookup_decl(e.name) or self._implicit_function(e.name)
            e.decl = decl
            if decl is not None:
                e.ctype = CType.int_type() if decl.kind == DeclKind.ENUM_CONSTANT else decl.ctype
            return self._finish(e)

        if t == "number_literal":
            text = self._text(node)
            try:
                if is_floating_literal(text):
                    e.ctype, e.value = parse_floating_literal(text)
                    e.kind = ExprKind.FLOAT_LITERAL
                else:
                    e.value, e.ctype = parse_integer_literal(text)
                    e.kind = ExprKind.INT_LITERAL
                    e.bit_width = e.ctype.bit_width
            except ValueError:
                _log.debug("unrecognised number literal %r", text)
            return self._finish(e)

        if t == "char_literal":
            try:
                e.value, e.ctype = parse_char_literal(self._text(node))
            except ValueError:
                return self._finish(e)
            e.kind = ExprKind.CHAR_LITERAL
            e.bit_width = e.ctype.bit_width
            return self._finish(e)

        if t in ("string_literal", "concatenated_string"):
            parts = [node] if t == "string_literal" else self._named(node)
            if any(p.type != "string_literal" for p in parts):
                return self._finish(e)
            data = b"".join(parse_string_literal(self._text(p)) for p in parts)
            e.kind, e.value = ExprKind.STRING_LITERAL, data
            e.ctype = CType.array(CType.char_type(), len(data) + 1)
            return self._finish(e)

        if t in ("true", "false"):
            e.kind, e.ctype = ExprKind.INT_LITERAL, CType.int_type()
            e.value, e.bit_width = (1 if t == "true" else 0), 32
            return self._finish(e)

        if t == "null":
            e.ctype = CType.ptr(CType.void())
            return self._finish(e)

        if t in ("binary_expression", "assignment_expression"):
            left = self._expr(node.child_by_field_name("left"), scope)
            right = self._expr(node.child_by_field_name("right"), scope)
            e.op = self._text(node.child_by_field_name("operator"))
            e.children = [left, right]
            if t == "binary_expression":
                e.kind = ExprKind.BINARY
                e.ctype = binary_result_type(e.op, left.ctype, right.ctype)
            else:
                e.kind = ExprKind.BINARY if e.op == "=" else ExprKind.COMPOUND_ASSIGN
                e.ctype = left.ctype.unqualified if left.ctype is not None else None
            return self._finish(e)

        if t in ("unary_expression", "pointer_expression", "update_expression"):
            arg_node = node.child_by_field_name("argument")
            op_node = node.child_by_field_name("operator")
            arg = self._expr(arg_node, scope)
            op = self._text(op_node)
            if t == "update_expression":
                op = f"{op}pre" if op_node.start_byte < arg_node.start_byte else f"post{op}"
            e.kind, e.op, e.children = ExprKind.UNARY, op, [arg]
            e.ctype = unary_result_type(op, arg.ctype)
            return self._finish(e)

        if t == "cast_expression":
            ctype, written = self._type_descriptor(node.child_by_field_name("type"), scope)
            value = self._expr(node.child_by_field_name("value"), scope)
            e.kind, e.ctype, e.written_type, e.children = ExprKind.CAST, ctype, written, [value]
            return self._finish(e)

        if t in ("sizeof_expression", "alignof_expression"):
            e.kind = ExprKind.SIZEOF
            e.op = "sizeof" if t == "sizeof_expression" else "alignof"
            e.ctype = CType.typedef("size_t", CType.long_type(signed=False))
            return self._finish(e)

        if t == "offsetof_expression":
            e.ctype = CType.typedef("size_t", CType.long_type(signed=False))
            return self._finish(e)

        if t == "call_expression":
            callee = self._expr(node.child_by_field_name("function"), scope)
            e.kind = ExprKind.CALL
            e.children = [callee]
            args = node.child_by_field_name("arguments")
            if args is not None:
                e.children.extend(self._expr(a, scope) for a in self._named(args))
            ftype = callee.ctype
            if ftype is not None and ftype.is_pointer and ftype.pointee is not None:
                ftype = ftype.pointee
            e.ctype = ftype.return_type if ftype is not None and ftype.is_function else None
            return self._finish(e)

        if t == "field_expression":
            return self._finish(self._member(node, e, scope))

        if t == "subscript_expression":
            arg_node = node.child_by_field_name("argument")
            idx_node = node.child_by_field_name("index")
            if arg_node is None or idx_node is None:
                named = self._named(node)
                arg_node, idx_node = named[0], named[-1]
            base = self._expr(arg_node, scope)
            index = self._expr(idx_node, scope)
            e.kind, e.children = ExprKind.SUBSCRIPT, [base, index]
            for candidate in (base.ctype, index.ctype):
                if candidate is not None and decay(candidate).is_pointer:
                    e.ctype = decay(candidate).pointee
                    break
            return self._finish(e)

        if t == "conditional_expression":
            cond = self._expr(node.child_by_field_name("condition"), scope)
            cons_node = node.child_by_field_name("consequence")
            alt = self._expr(node.child_by_field_name("alternative"), scope)
            cons = self._expr(cons_node, scope) if cons_node is not None else None
            e.kind = ExprKind.CONDITIONAL
            e.children = [cond] + ([cons] if cons is not None else []) + [alt]
            e.ctype = conditional_result_type((cons or cond).ctype, alt.ctype)
            return self._finish(e)

        if t == "comma_expression":
            left = self._expr(node.child_by_field_name("left"), scope)
            right = self._expr(node.child_by_field_name("right"), scope)
            e.kind, e.children, e.ctype = ExprKind.COMMA, [left, right], right.ctype
            return self._finish(e)

        if t == "compound_literal_expression":
            ctype, written = self._type_descriptor(node.child_by_field_name("type"), scope)
            value = node.child_by_field_name("value")
            e.kind, e.ctype, e.written_type = ExprKind.COMPOUND_LITERAL, ctype, written
            if value is not None:
                e.children = [self._init_list(value, scope)]
            return self._finish(e)

        if t == "initializer_list":
            return self._init_list(node, scope)

        if t == "extension_expression":
            inner = self._named(node)
            if inner:
                return self._expr(inner[-1], scope)

        if t == "generic_expression":
            return self._finish(e)

        # inline asm and anything unrecognised
        return self._finish(e, forced_side_effects=True)

    def _member(self, node: Node, e: Expr, scope: _Scope) -> Expr:
        base = self._expr(node.child_by_field_name("argument"), scope)
        e.kind = ExprKind.MEMBER
        e.children = [base]
        e.arrow = self._text(node.child_by_field_name("operator")) == "->"
        e.name = self._text(node.child_by_field_name("field"))
        record_type = base.ctype
        if record_type is not None and e.arrow:
            record_type = decay(record_type).pointee
        if record_type is None or not record_type.is_record:
            return e
        record = record_type.unqualified.record
        member = record.lookup(e.name) if record is not None else None
        if member is None:
            return e
        e.member_decl = member
        quals: Set[Qualifier] = set()
        t: Optional[CType] = record_type
        while t is not None and t.kind in (TypeKind.QUALIFIED, TypeKind.TYPEDEF):
            if t.kind == TypeKind.QUALIFIED:
                quals |= t.qualifiers
            t = t.children[0]
        e.ctype = CType.qualified(member.ctype, quals) if member.ctype is not None else None
        return e


# ═══════════════════════════════════════════════════════════════════════════
#  PART 5 — ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════

def parse_source(
    source: Union[str, bytes],
    filename: str = "<input>",
    language: Optional[str] = None,
) -> TranslationUnit:
    """
    Parse one C translation unit into the typed model.

    Args:
        source: program text
        filename: used for dialect detection and diagnostics
        language: ``"c"``, ``"c++"`` or None to infer from *filename*

    Returns:
        The TranslationUnit.  For C++ input no functions are lowered.
    """
    if isinstance(source, str):
        source = source.encode("utf-8")
    dialect = detect_language(filename, language)
    tree = parse_tree(source)
    builder = TranslationUnitBuilder(source, filename)
    tu = TranslationUnit(
        source=source,
        filename=filename,
        language=dialect,
        error_count=count_syntax_errors(tree),
        main_file=builder.regions.main_file,
        includes=scan_includes(source, builder.regions),
    )
    if dialect != "c":
        _log.warning("%s: %s input is not analysed", filename, dialect)
        return tu
    tu.functions = builder.build(tree)
    tu.function_decl_offsets = builder.function_decl_offsets
    _log.info("parsed %s: %d function definition(s), %d syntax error(s)",
              filename, len(tu.functions), tu.error_count)
    return tu


__all__ = [
    "C_LANGUAGE",
    "CXX_SUFFIXES",
    "detect_language",
    "parse_tree",
    "count_syntax_errors",
    "SourceRegions",
    "scan_includes",
    "TranslationUnitBuilder",
    "parse_source",
]
