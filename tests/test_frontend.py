# tests/test_frontend.py
"""
Tests for the tree-sitter front end: dialect detection, diagnostics,
preprocessor facts and lowering into the typed model.
"""

import pytest

from cdelta.ast_model import DeclKind, ExprKind, StmtKind, iter_statements
from cdelta.c_types import TypeKind
from cdelta.frontend import (
    SourceRegions,
    count_syntax_errors,
    detect_language,
    parse_source,
    scan_includes,
)


def _stmts(func):
    return list(iter_statements(func.body))


class TestDialect:

    @pytest.mark.parametrize("filename, expected", [
        ("test.c", "c"),
        ("test.h", "c"),
        ("test.cpp", "c++"),
        ("test.cc", "c++"),
        ("test.cxx", "c++"),
        ("test.hpp", "c++"),
    ])
    def test_by_suffix(self, filename, expected):
        assert detect_language(filename) == expected

    def test_override_wins(self):
        assert detect_language("test.c", "c++") == "c++"
        assert detect_language("test.cpp", "c") == "c"

    def test_cxx_input_has_no_functions(self):
        tu = parse_source("int f(void) { return 1; }", "test.cpp")
        assert tu.language == "c++"
        assert tu.functions == []


class TestDiagnostics:

    def test_clean_source(self):
        assert count_syntax_errors("int main(void) { return 0; }") == 0

    def test_broken_source(self):
        assert count_syntax_errors("int main(void) { return 0 }") > 0

    def test_bytes_input(self):
        assert count_syntax_errors(b"int x = ;") > 0

    def test_error_count_on_unit(self, parse):
        assert parse("int main(void) { return 0; }").error_count == 0


class TestPreprocessorFacts:

    def test_without_markers_everything_is_main(self):
        regions = SourceRegions(b"int x;\nint y;\n")
        assert regions.main_file is None
        assert regions.is_main(0)
        assert regions.is_main(8)

    def test_line_markers(self):
        source = (
            b'# 1 "main.c"\n'
            b'# 1 "/usr/include/stdio.h" 1\n'
            b'int printf(const char *, ...);\n'
            b'# 2 "main.c" 2\n'
            b'int main(void) { return 0; }\n'
        )
        regions = SourceRegions(source)
        assert regions.main_file == "main.c"
        assert not regions.is_main(source.index(b"int printf"))
        assert regions.is_main(source.index(b"int main"))
        assert regions.file_at(source.index(b"int printf")) == "/usr/include/stdio.h"

    def test_scan_includes(self):
        source = b'#include <stdio.h>\n#include "local.h"\nint x;\n'
        includes = scan_includes(source, SourceRegions(source))
        assert [i.header for i in includes] == ["stdio.h", "local.h"]
        assert includes[0].angled
        assert not includes[1].angled
        assert includes[0].offset == 0
        assert includes[1].offset == source.index(b'#include "local.h"')

    def test_first_include(self, parse):
        tu = parse('int x;\n#include <stdlib.h>\n#include <stdio.h>\n')
        assert tu.first_include("stdio.h") == tu.source.index(b"#include <stdio.h>")
        assert tu.first_include("string.h") is None

    def test_function_declaration_offsets(self, parse):
        src = "int helper(int);\nint main(void) { return helper(1); }\n"
        tu = parse(src)
        assert tu.first_function_decl("helper") == 0
        assert tu.first_function_decl("main") == src.index("int main")
        assert tu.first_function_decl("printf") is None


class TestFunctions:

    def test_definitions_in_order(self, parse):
        tu = parse("int a(void) { return 1; }\nint b(void) { return 2; }\n")
        assert [f.name for f in tu.functions] == ["a", "b"]
        assert all(f.in_main_file for f in tu.functions)

    def test_prototypes_are_not_definitions(self, parse):
        tu = parse("int a(void);\nint b(void) { return 2; }\n")
        assert [f.name for f in tu.functions] == ["b"]

    def test_pointer_returning_function(self, parse):
        tu = parse("char *name(void) { return 0; }\n")
        assert tu.functions[0].name == "name"
        assert tu.functions[0].decl.ctype.return_type.is_pointer

    def test_locals_collected(self, parse):
        tu = parse("int f(int p) { int a = 1; { int b = a; } return a + p; }\n")
        assert list(tu.functions[0].local_names()) == ["a", "b"]

    def test_function_with_errors_is_flagged(self, parse):
        tu = parse("int bad(void) { return 1 +; }\nint good(int a) { return a; }\n")
        flags = {f.name: f.has_errors for f in tu.functions}
        assert flags.get("good") is False
        assert tu.error_count > 0


class TestStatements:

    def test_statement_kinds(self, parse):
        tu = parse(
            "int f(int n) {\n"
            "  int s = 0;\n"
            "  if (n) s = 1; else s = 2;\n"
            "  while (n) n--;\n"
            "  do { n++; } while (n < 3);\n"
            "  for (int i = 0; i < n; i++) s += i;\n"
            "  switch (n) { case 1: s = 3; break; default: s = 4; }\n"
            "  return s;\n"
            "}\n"
        )
        kinds = [s.kind for s in tu.functions[0].body.body]
        assert kinds == [
            StmtKind.DECL, StmtKind.IF, StmtKind.WHILE, StmtKind.DO,
            StmtKind.FOR, StmtKind.SWITCH, StmtKind.RETURN,
        ]

    def test_for_header_belongs_to_loop(self, parse):
        tu = parse("int f(int n) { int s = 0; for (int i = 0; i < n; i++) s += i; return s; }")
        loop = tu.functions[0].body.body[1]
        assert loop.kind == StmtKind.FOR
        assert len(loop.exprs) == 3
        assert [d.name for d in loop.decls] == ["i"]
        assert loop.body[0].kind == StmtKind.EXPR

    def test_declaration_grouping(self, parse):
        tu = parse("void f(void) { int a = 1, b = 2; static int c = 3; int d = 4; }")
        group, static, single = tu.functions[0].body.body
        assert group.is_group and group.single_decl is None
        assert static.storage == {"static"}
        assert single.single_decl.name == "d"

    def test_statement_spans(self, parse):
        src = "int f(int a) {\n  a = a + 1;\n  return a;\n}\n"
        tu = parse(src)
        stmt = tu.functions[0].body.body[0]
        assert tu.text(stmt) == "a = a + 1;"
        assert stmt.line == 2

    def test_preprocessor_conditional_in_body(self, parse):
        tu = parse("int f(int a) {\n#ifdef X\n  a = 1;\n#endif\n  return a;\n}\n")
        kinds = [s.kind for s in _stmts(tu.functions[0])]
        assert StmtKind.EXPR in kinds
        assert StmtKind.RETURN in kinds

    def test_if_zero_in_body_skipped(self, parse):
        tu = parse("int f(int a) {\n#if 0\n  a = 1;\n#endif\n  return a;\n}\n")
        kinds = [s.kind for s in _stmts(tu.functions[0])]
        assert StmtKind.EXPR not in kinds

    def test_literal_condition_picks_arm(self, parse):
        tu = parse("#if 0\nint f(void) { return 1; }\n#else\nint g(void) { return 2; }\n#endif\n")
        assert [f.name for f in tu.functions] == ["g"]
        tu = parse("#if 1\nint f(void) { return 1; }\n#else\nint g(void) { return 2; }\n#endif\n")
        assert [f.name for f in tu.functions] == ["f"]

    def test_undecided_condition_keeps_both_arms(self, parse):
        tu = parse("#ifdef A\nint f(void) { return 1; }\n#else\nint g(void) { return 2; }\n#endif\n")
        assert [f.name for f in tu.functions] == ["f", "g"]


class TestExpressionTypes:

    def _return_expr(self, parse, src):
        tu = parse(src)
        ret = [s for s in _stmts(tu.functions[-1]) if s.kind == StmtKind.RETURN][0]
        return tu, ret.exprs[0]

    def test_binary_arithmetic(self, parse):
        _, e = self._return_expr(parse, "long f(int a, long b) { return a + b; }")
        assert e.kind == ExprKind.BINARY
        assert e.op == "+"
        assert e.ctype.kind == TypeKind.LONG

    def test_name_reference_resolves_declaration(self, parse):
        _, e = self._return_expr(parse, "int f(int a) { return a; }")
        assert e.kind == ExprKind.DECL_REF
        assert e.decl is not None
        assert e.decl.kind == DeclKind.PARAM

    def test_shadowing(self, parse):
        tu = parse("int f(int a) { int r = a; { int a = 2; r = a; } return r; }")
        outer_init = tu.functions[0].body.body[0].exprs[0]
        inner_assign = tu.functions[0].body.body[1].body[1].exprs[0]
        assert outer_init.decl is not inner_assign.children[1].decl

    def test_struct_member(self, parse):
        _, e = self._return_expr(
            parse,
            "struct P { int x; double y; };\n"
            "double f(struct P *p) { return p->y; }\n",
        )
        assert e.kind == ExprKind.MEMBER
        assert e.arrow
        assert e.member_decl is not None
        assert e.ctype.kind == TypeKind.DOUBLE

    def test_typedef(self, parse):
        _, e = self._return_expr(parse, "typedef unsigned int u32;\nu32 f(u32 v) { return v; }\n")
        assert e.ctype.spelling() == "u32"
        assert e.ctype.is_integer

    def test_bool_parameter(self, parse):
        _, e = self._return_expr(parse, "int f(_Bool b, int x) { return b + x; }")
        assert e.ctype.kind == TypeKind.INT
        assert e.children[0].ctype.kind == TypeKind.BOOL
        assert e.children[0].ctype.format_specifier() == "u"

    def test_bool_local(self, parse):
        _, e = self._return_expr(parse, "int f(int x) { _Bool flag = x > 1; return flag; }")
        assert e.ctype.unqualified.kind == TypeKind.BOOL
        assert e.ctype.declare("t") == "_Bool t"

    def test_subscript(self, parse):
        _, e = self._return_expr(parse, "int y[4];\nint f(void) { return y[1]; }\n")
        assert e.kind == ExprKind.SUBSCRIPT
        assert e.ctype.kind == TypeKind.INT

    def test_enum_constant(self, parse):
        _, e = self._return_expr(parse, "enum { RED, GREEN };\nint f(void) { return GREEN; }\n")
        assert e.ctype.kind == TypeKind.INT

    def test_call_return_type(self, parse):
        _, e = self._return_expr(parse, "double g(int);\ndouble f(void) { return g(1); }\n")
        assert e.kind == ExprKind.CALL
        assert e.ctype.kind == TypeKind.DOUBLE
        assert e.side_effects

    def test_known_library_call(self, parse):
        _, e = self._return_expr(parse, "unsigned long f(const char *s) { return strlen(s); }")
        assert e.ctype.is_integer

    def test_pure_function_has_no_side_effects(self, parse):
        _, e = self._return_expr(
            parse,
            "int sq(int) __attribute__((const));\nint f(int a) { return sq(a); }\n",
        )
        assert not e.side_effects

    def test_update_operators(self, parse):
        tu = parse("void f(int a) { a++; --a; }")
        post, pre = [s.exprs[0] for s in tu.functions[0].body.body]
        assert post.op == "post++"
        assert pre.op == "--pre"
        assert post.side_effects and pre.side_effects

    def test_literals(self, parse):
        tu = parse("void f(void) { double d = 1.5; int c = 'a'; long l = 10L; }")
        d, c, l = [s.exprs[0] for s in tu.functions[0].body.body]
        assert d.kind == ExprKind.FLOAT_LITERAL
        assert c.kind == ExprKind.CHAR_LITERAL and c.value == 97
        assert l.kind == ExprKind.INT_LITERAL and l.ctype.kind == TypeKind.LONG

    def test_unresolved_name_has_no_type(self, parse):
        _, e = self._return_expr(parse, "int f(void) { return UNKNOWN_MACRO; }")
        assert e.decl is None
        assert e.ctype is None

    def test_parentheses_are_kept(self, parse):
        _, e = self._return_expr(parse, "int f(int a) { return (a); }")
        assert e.kind == ExprKind.PAREN
        assert e.children[0].kind == ExprKind.DECL_REF
