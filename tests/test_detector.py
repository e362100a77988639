# tests/test_detector.py
"""
End-to-end tests of the expression-detector pass: candidate numbering,
selection, emitted text and status reporting.
"""

import pytest

from cdelta.config import DetectorConfig
from cdelta.detector import (
    ExpressionDetector,
    PassState,
    count_instances,
    detect_expression,
)
from cdelta.errors import (
    ErrorCodes,
    InternalInvariantError,
    OrdinalOutOfRangeError,
    TransformStatus,
    UnsupportedDialectError,
)
from cdelta.frontend import count_syntax_errors, parse_source


SIMPLE_EXPECTED = "\n".join([
    "int printf(const char *format, ...);",
    "int main(void) {",
    "  int a = 1;",
    "  int b = 2;",
    "  {",
    "  int __cdelta_expr_tmp_1 = a + b;",
    "  static int __cdelta_printed_1 = 0;",
    "  if (__cdelta_printed_1 == __CDELTA_INSTANCE_NUMBER) {",
    '    printf("cdelta_value(%d)\\n", __cdelta_expr_tmp_1);',
    "  }",
    "  ++__cdelta_printed_1;",
    "  a = __cdelta_expr_tmp_1;",
    "  }",
    "  return a;",
    "}",
    "",
])


class TestCandidates:

    def test_simple_program(self, candidate_texts, simple_program):
        assert candidate_texts(simple_program) == ["a + b", "a", "b", "a"]

    def test_identical_subexpressions_counted_once(self, candidate_texts, duplicate_program):
        assert candidate_texts(duplicate_program) == [
            "y[1] + y[1] + y[1]", "y[1] + y[1]", "y[1]",
        ]

    def test_increment_statement_has_none(self, candidate_texts):
        assert candidate_texts("void f(int x) { x++; }") == []

    def test_loop_headers_excluded(self, candidate_texts, loop_program):
        assert candidate_texts(loop_program) == ["i", "s"]

    def test_calls_with_side_effects_are_kept(self, candidate_texts):
        src = "int g(void);\nint main(void) {\n  int x;\n  x = g() + g();\n  return x;\n}\n"
        assert candidate_texts(src) == ["g() + g()", "g()", "g()", "x"]

    def test_condition_before_body(self, candidate_texts):
        src = ("int f(int a, int b) {\n  int c = 0;\n  if (a + 1 > b) {\n"
               "    c = a * 2;\n  }\n  return c;\n}\n")
        assert candidate_texts(src) == ["a + 1 > b", "a + 1", "a", "b", "a * 2", "a", "c"]

    def test_functions_in_source_order(self, candidate_texts):
        src = "int f(int a) { return a; }\nint g(int b) { return b; }\n"
        assert candidate_texts(src) == ["a", "b"]

    def test_member_and_float_types(self, candidate_texts):
        src = ("struct P { int x; double y; };\n"
               "double f(struct P *p) { return p->y + p->x; }\n")
        assert candidate_texts(src) == ["p->y + p->x", "p->y", "p->x"]

    def test_printf_arguments(self, candidate_texts):
        src = ('#include <stdio.h>\n'
               'int main(void) {\n  int a = 1;\n  printf("%d\\n", a + 1);\n'
               '  printf("%d\\n", a);\n  return 0;\n}\n')
        assert candidate_texts(src) == ["a + 1"]

    def test_included_functions_skipped(self, candidate_texts):
        src = ('# 1 "main.c"\n'
               '# 1 "inc.h" 1\n'
               'int helper(int a) { return a + 1; }\n'
               '# 2 "main.c" 2\n'
               'int main(void) { return helper(2); }\n')
        assert candidate_texts(src) == ["helper(2)"]

    def test_function_with_syntax_errors_skipped(self, candidate_texts):
        src = "int bad(int a) { return a +; }\nint good(int b) { return b; }\n"
        assert candidate_texts(src) == ["b"]

    def test_bool_operands(self, candidate_texts):
        src = "int f(_Bool b, int x) { return b + x; }"
        assert candidate_texts(src) == ["b + x", "b", "x"]

    def test_bool_local(self, candidate_texts):
        src = "int f(int x) {\n  _Bool flag = x > 1;\n  return flag;\n}\n"
        assert candidate_texts(src) == ["x > 1", "x", "flag"]

    def test_disabled_block_not_counted(self, candidate_texts):
        src = "int f(int a, int b) {\n#if 0\n  a = a + b;\n#endif\n  return a * b;\n}\n"
        assert candidate_texts(src) == ["a * b", "a", "b"]

    def test_candidate_records(self, simple_program):
        result = ExpressionDetector(DetectorConfig(query_only=True)).run(simple_program)
        first = result.candidates[0]
        assert first.ordinal == 1
        assert first.function == "main"
        assert first.line == 4
        assert first.statement == "a = a + b;"
        assert str(first) == "#1 main:4: a + b"

    def test_count_instances(self, simple_program):
        assert count_instances(simple_program) == 4


class TestPrintMode:

    def test_full_output(self, run_pass, simple_program):
        result = run_pass(simple_program, counter=1)
        assert result.status == TransformStatus.SUCCESS
        assert result.ok
        assert result.text == SIMPLE_EXPECTED
        assert result.selected.expression == "a + b"
        assert result.instance_count == 4

    def test_output_parses(self, run_pass, simple_program):
        for counter in range(1, 5):
            result = run_pass(simple_program, counter=counter)
            assert result.ok
            assert count_syntax_errors(result.text) == 0

    def test_rerun_never_selects_pass_variables(self, run_pass, simple_program):
        output = run_pass(simple_program, counter=1).text
        assert count_instances(output) == 1
        again = run_pass(output, counter=1)
        assert again.selected.expression == "a"
        assert "__cdelta_expr_tmp_2" in again.text
        assert "__cdelta_printed_2" in again.text

    def test_float_format(self, run_pass, float_program):
        result = run_pass(float_program, counter=1)
        assert "double __cdelta_expr_tmp_1 = x * 2.0;" in result.text
        assert '"cdelta_value(%f)\\n"' in result.text

    def test_long_format(self, run_pass):
        result = run_pass("long f(long v) {\n  return v;\n}\n", counter=1)
        assert "%ld" in result.text

    def test_bool_format(self, run_pass):
        src = "int f(int x) {\n  _Bool flag = x > 1;\n  return flag;\n}\n"
        result = run_pass(src, counter=3)
        assert "_Bool __cdelta_expr_tmp_1 = flag;" in result.text
        assert '"cdelta_value(%u)\\n"' in result.text

    def test_non_utf8_bytes_preserved(self, run_pass):
        src = (b'const char *s = "caf\xe9";\n'
               b'int g(const char *p);\n'
               b'int f(void) {\n  return g("na\xefve") + 1;\n}\n')
        result = run_pass(src, counter=1)
        assert result.ok
        assert b'const char *s = "caf\xe9";' in result.output
        assert b'int __cdelta_expr_tmp_1 = g("na\xefve") + 1;' in result.output
        assert b"\xef\xbf\xbd" not in result.output
        assert result.text.encode("utf-8", "surrogateescape") == result.output

    def test_header_suppresses_declaration(self, run_pass):
        src = "#include <stdio.h>\nint f(int a) {\n  return a + 1;\n}\n"
        result = run_pass(src, counter=1)
        assert result.text.startswith("#include <stdio.h>\nint f")
        assert result.instrumentation.added_declaration is False

    def test_fire_instance(self, run_pass, simple_program):
        result = run_pass(simple_program, counter=2, fire_instance=3)
        assert "if (__cdelta_printed_1 == 3) {" in result.text

    def test_deterministic(self, run_pass, duplicate_program):
        first = run_pass(duplicate_program, counter=2)
        second = run_pass(duplicate_program, counter=2)
        assert first.text == second.text
        assert first.selected == second.selected

    def test_edits_reported(self, run_pass, simple_program):
        result = run_pass(simple_program, counter=1)
        reasons = [e.reason for e in result.edits]
        assert "use capture temporary" in reasons
        assert "close block" in reasons


class TestCheckMode:

    def test_abort_guard(self, run_pass, simple_program):
        result = run_pass(simple_program, counter=1, check_reference="3")
        assert result.ok
        assert result.text.startswith("void abort(void);\n")
        assert "static int __cdelta_checked_1 = 0;" in result.text
        assert "  if (__cdelta_expr_tmp_1 != 3) abort();" in result.text
        assert "printf" not in result.text

    def test_rerun_skips_guard(self, run_pass, simple_program):
        output = run_pass(simple_program, counter=1, check_reference="-3").text
        assert count_syntax_errors(output) == 0
        assert count_instances(output) == 1


class TestReplaceMode:

    def test_replacement(self, run_pass, simple_program):
        result = run_pass(simple_program, counter=1, replacement="0")
        assert result.ok
        assert "  a = 0;\n" in result.text
        assert "__cdelta" not in result.text

    def test_broken_replacement_is_frontend_error(self, run_pass, simple_program):
        result = run_pass(simple_program, counter=1, replacement=")")
        assert result.status == TransformStatus.FRONTEND_ERROR
        assert not result.ok
        assert result.text is None
        assert result.error.code == ErrorCodes.FRONTEND_DIAGNOSTIC


class TestStatuses:

    def test_query(self, run_pass, simple_program):
        result = run_pass(simple_program, query_only=True)
        assert result.status == TransformStatus.QUERY
        assert result.ok
        assert result.instance_count == 4
        assert result.text is None

    def test_counter_past_end(self, run_pass, simple_program):
        result = run_pass(simple_program, counter=5)
        assert result.status == TransformStatus.MAX_INSTANCE
        assert result.instance_count == 4
        assert result.text is None
        assert result.edits == []
        assert isinstance(result.error, OrdinalOutOfRangeError)
        assert result.error.code == "EXPR-1001"

    def test_no_candidates(self, run_pass):
        result = run_pass("void f(void) { }", counter=1)
        assert result.status == TransformStatus.MAX_INSTANCE
        assert result.instance_count == 0

    def test_cxx_input(self, run_pass):
        result = run_pass("int f(int a) { return a + 1; }", filename="t.cpp", counter=1)
        assert result.status == TransformStatus.MAX_INSTANCE
        assert isinstance(result.error, UnsupportedDialectError)

    def test_cxx_query(self, run_pass):
        result = run_pass("int f(int a) { return a + 1; }", filename="t.cpp", query_only=True)
        assert result.status == TransformStatus.QUERY
        assert result.instance_count == 0

    def test_detect_expression_helper(self, simple_program):
        result = detect_expression(simple_program, "t.c", DetectorConfig(counter=4))
        assert result.ok
        assert result.selected.expression == "a"
        assert "return __cdelta_expr_tmp_1;" in result.text


class TestSession:

    def test_state_after_walk(self, simple_program):
        detector = ExpressionDetector(DetectorConfig(counter=2))
        assert detector.state == PassState.COLLECTING
        detector.run(simple_program)
        assert detector.state == PassState.EXHAUSTED
        assert detector.selection.record.ordinal == 2

    def test_unlatched_selection_raises(self, simple_program):
        detector = ExpressionDetector(DetectorConfig(counter=1))
        detector._on_candidate = lambda func, stmt, e: setattr(
            detector, "instance_count", detector.instance_count + 1)
        with pytest.raises(InternalInvariantError):
            detector.transform(parse_source(simple_program, "t.c"))
