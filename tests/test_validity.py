# tests/test_validity.py
"""
Tests for the candidate validity rules and the statement caches they
consult.
"""

import pytest

from cdelta.caches import StatementCaches, collect_invalid_exprs, collect_temp_refs
from cdelta.config import DetectorConfig
from cdelta.validity import Rejection, ValidityFilter


@pytest.fixture
def checker(parse, find_expr):
    """Return a function giving the rejection reason for an expression."""
    def _check(source, text, nth=0, **options):
        tu = parse(source)
        func, stmt, e = find_expr(tu, text, nth)
        config = DetectorConfig(**options)
        caches = StatementCaches(config.tmp_prefix)
        caches.reset(func)
        return ValidityFilter(config, caches).rejection(stmt, e)
    return _check


class TestRules:

    def test_accepts_plain_operand(self, checker):
        assert checker("int f(int a, int b) { return a + b; }", "a + b") is None

    def test_pointer_type_rejected(self, checker):
        assert checker("int f(int *p) { return *p + (p != 0); }", "p") == Rejection.TYPE

    def test_literal_kind_rejected(self, checker):
        assert checker("int f(int a) { return a + 1; }", "1") == Rejection.KIND

    def test_cast_kind_rejected(self, checker):
        assert checker("long f(int a) { return (long)a; }", "(long)a") == Rejection.KIND

    def test_loop_statement_rejected(self, checker):
        src = "int f(int n) { while (n > 1) n = n / 2; return n; }"
        assert checker(src, "n > 1") == Rejection.LOOP

    def test_loop_body_is_its_own_statement(self, checker):
        src = "int f(int n) { while (n > 1) n = n / 2; return n; }"
        assert checker(src, "n / 2") is None

    def test_whole_expression_statement_rejected(self, checker):
        assert checker("void f(int a, int b) { a + b; }", "a + b") == Rejection.SELF

    def test_group_declaration_rejected(self, checker):
        src = "void f(int a) { int x = a + 1, y = 2; }"
        assert checker(src, "a + 1") == Rejection.DECL

    def test_static_declaration_rejected(self, checker):
        src = "void f(int a) { static int x = 0; int y = a + x; }"
        assert checker(src, "a + x") is None
        src = "int g; void f(int a) { extern int x; static int y = sizeof(g) + 1; }"
        assert checker(src, "sizeof(g) + 1") == Rejection.DECL

    def test_reserved_declaration_rejected(self, checker):
        src = "void f(int a) { int __cdelta_expr_tmp_1 = a * 2; }"
        assert checker(src, "a * 2") == Rejection.DECL

    def test_control_variable_tests_rejected(self, checker):
        src = ("void f(void) { static int __cdelta_printed_1 = 0;"
               " if (__cdelta_printed_1 == 3) {} if (!__cdelta_checked_2) {} }")
        assert checker(src, "__cdelta_printed_1 == 3") == Rejection.CONTROL_VAR

    def test_check_guard_rejected(self, checker):
        src = "void f(int a) { int __cdelta_expr_tmp_1 = a; if (__cdelta_expr_tmp_1 != -5) a = 0; }"
        assert checker(src, "__cdelta_expr_tmp_1 != -5") == Rejection.CHECK_GUARD

    def test_inequality_outside_if_is_fine(self, checker):
        src = "int f(int a) { int __cdelta_expr_tmp_1 = a; return __cdelta_expr_tmp_1 != 5; }"
        assert checker(src, "__cdelta_expr_tmp_1 != 5") is None

    def test_reserved_name_rejected(self, checker):
        src = "int f(int a) { int __cdelta_expr_tmp_1 = a; return __cdelta_expr_tmp_1; }"
        assert checker(src, "__cdelta_expr_tmp_1") == Rejection.RESERVED_REF

    def test_printf_argument_rejected(self, checker):
        src = 'int printf(const char *, ...);\nvoid f(int a) { printf("%d", a); }'
        assert checker(src, "a") == Rejection.RESERVED_REF

    def test_printf_argument_expression_allowed(self, checker):
        src = 'int printf(const char *, ...);\nvoid f(int a) { printf("%d", a + 1); }'
        assert checker(src, "a + 1") is None

    def test_abort_call_names_rejected_in_check_mode(self, checker):
        src = "int abort(int);\nvoid f(int a) { abort(a); }"
        assert checker(src, "a", check_reference="1") == Rejection.RESERVED_REF
        assert checker(src, "a") is None

    def test_assignment_target_rejected(self, checker):
        src = "int f(int a, int b) { int r; r = (a) = b + 1; return r; }"
        assert checker(src, "a") == Rejection.INVALID

    def test_increment_operand_rejected(self, checker):
        src = "int f(int a) { int r; r = a++ + 1; return r; }"
        assert checker(src, "a") == Rejection.INVALID

    def test_address_taken_rejected(self, checker):
        src = "void g(int *);\nvoid f(int a) { g(&a); }"
        assert checker(src, "a") == Rejection.INVALID

    def test_temporary_initializer_rejected(self, checker):
        src = ("int f(int a, int b) { int __cdelta_expr_tmp_1 = a + b; int r;"
               " r = __cdelta_expr_tmp_1 * (a + b); return r; }")
        assert checker(src, "a + b", nth=1) == Rejection.TEMP_INIT


class TestAccept:

    def test_duplicates_in_one_statement(self, parse, find_expr):
        tu = parse("int y[2];\nint f(void) { return y[1] + y[1]; }")
        func, stmt, first = find_expr(tu, "y[1]")
        _, _, second = find_expr(tu, "y[1]", nth=1)
        config = DetectorConfig()
        caches = StatementCaches(config.tmp_prefix)
        caches.reset(func)
        validity = ValidityFilter(config, caches)
        assert validity.accept(stmt, first)
        assert validity.rejection(stmt, second) == Rejection.DUPLICATE
        assert not validity.accept(stmt, second)
        assert caches.unique_exprs(stmt) == [first]

    def test_duplicates_across_statements_allowed(self, parse, find_expr):
        tu = parse("int f(int a) { int x = a * 3; return a * 3; }")
        func, s1, e1 = find_expr(tu, "a * 3")
        _, s2, e2 = find_expr(tu, "a * 3", nth=1)
        config = DetectorConfig()
        caches = StatementCaches(config.tmp_prefix)
        caches.reset(func)
        validity = ValidityFilter(config, caches)
        assert validity.accept(s1, e1)
        assert validity.accept(s2, e2)


class TestCaches:

    def test_invalid_set(self, parse):
        tu = parse("void f(int a, int b, int *p) { a = b; b += 1; ++*p; }")
        body = tu.functions[0].body
        invalid = collect_invalid_exprs(body)
        names = sorted(tu.text(e) for e in invalid)
        assert names == ["*p", "a", "b"]

    def test_invalid_strips_parentheses(self, parse):
        tu = parse("void f(int a) { (a) = 1; }")
        stmt = tu.functions[0].body.body[0]
        [target] = collect_invalid_exprs(stmt)
        assert tu.text(target) == "a"

    def test_temp_refs(self, parse):
        tu = parse("int f(int a) { int __cdelta_expr_tmp_2 = a; return __cdelta_expr_tmp_2 + a; }")
        ret = tu.functions[0].body.body[1]
        refs = collect_temp_refs(ret, "__cdelta_expr_tmp_")
        assert [d.name for d in refs] == ["__cdelta_expr_tmp_2"]

    def test_temp_index_per_function(self, parse):
        tu = parse("int f(int a) { int __cdelta_expr_tmp_1 = (a + 1); return __cdelta_expr_tmp_1; }")
        func = tu.functions[0]
        caches = StatementCaches("__cdelta_expr_tmp_")
        caches.reset(func)
        [decl] = func.locals
        assert tu.text(caches.temp_init(decl)) == "a + 1"
        caches.reset()
        assert caches.temp_init(decl) is None

    def test_reset_clears_unique(self, parse, find_expr):
        tu = parse("int f(int a) { return a; }")
        func, stmt, e = find_expr(tu, "a")
        caches = StatementCaches("__cdelta_expr_tmp_")
        caches.add_unique(stmt, e)
        assert caches.has_duplicate(stmt, e)
        caches.reset(func)
        assert not caches.has_duplicate(stmt, e)
