# tests/conftest.py
"""
Shared fixtures for the cdelta test suite.

The fixtures wrap the front end and the pass so that tests can work on
small C programs written inline.
"""

from typing import List

import pytest

from cdelta.ast_model import TranslationUnit, iter_expr_preorder, iter_statements
from cdelta.config import DetectorConfig
from cdelta.detector import ExpressionDetector, TransformResult
from cdelta.frontend import parse_source


SIMPLE_PROGRAM = """\
int main(void) {
  int a = 1;
  int b = 2;
  a = a + b;
  return a;
}
"""

LOOP_PROGRAM = """\
int sum(int n) {
  int s = 0;
  for (int i = 0; i < n; i++) s += i;
  while (s > 100) s--;
  return s;
}
"""

FLOAT_PROGRAM = """\
double scale(double x) {
  return x * 2.0;
}
"""

DUPLICATE_PROGRAM = """\
int y[2];
int main(void) {
  int x;
  x = y[1] + y[1] + y[1];
  return 0;
}
"""


@pytest.fixture
def parse():
    """Return a function that parses C text into a TranslationUnit."""
    def _parse(source: str, filename: str = "test.c") -> TranslationUnit:
        return parse_source(source, filename)
    return _parse


@pytest.fixture
def find_expr():
    """Return a function locating the nth expression spelled like *text*.

    The result is the (function, statement, expression) triple.
    """
    def _find(tu: TranslationUnit, text: str, nth: int = 0):
        seen = 0
        for func in tu.functions:
            for stmt in iter_statements(func.body):
                for root in stmt.exprs:
                    for e in iter_expr_preorder(root):
                        if tu.text(e) == text:
                            if seen == nth:
                                return func, stmt, e
                            seen += 1
        raise LookupError(text)
    return _find


@pytest.fixture
def run_pass():
    """Return a function running one pass with the given config fields."""
    def _run(source: str, filename: str = "test.c", **options) -> TransformResult:
        return ExpressionDetector(DetectorConfig(**options)).run(source, filename)
    return _run


@pytest.fixture
def candidate_texts():
    """Return a function listing the source text of every candidate."""
    def _texts(source: str, filename: str = "test.c") -> List[str]:
        result = ExpressionDetector(DetectorConfig(query_only=True)).run(source, filename)
        return [c.expression for c in result.candidates]
    return _texts


@pytest.fixture
def simple_program() -> str:
    return SIMPLE_PROGRAM


@pytest.fixture
def loop_program() -> str:
    return LOOP_PROGRAM


@pytest.fixture
def float_program() -> str:
    return FLOAT_PROGRAM


@pytest.fixture
def duplicate_program() -> str:
    return DUPLICATE_PROGRAM


@pytest.fixture
def c_file(tmp_path):
    """Write C text to a temporary ``.c`` file and return its path."""
    def _write(source: str, name: str = "test.c"):
        path = tmp_path / name
        path.write_text(source, encoding="utf-8")
        return path
    return _write
