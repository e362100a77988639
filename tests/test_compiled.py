# tests/test_compiled.py
"""
Build and run instrumented programs with the system C compiler.

The value line must appear exactly once, at the configured evaluation,
with the conversion matching the expression's type; the rest of the
program must behave as before.
"""

import shutil
import subprocess

import pytest

from cdelta.config import DetectorConfig
from cdelta.detector import ExpressionDetector


# ── Fixture: skip if no C compiler ───────────────────────────────

def _find_compiler():
    for name in ("cc", "gcc", "clang"):
        path = shutil.which(name)
        if path:
            return path
    return None


CC = _find_compiler()

compiler_available = pytest.mark.skipif(CC is None, reason="no C compiler on PATH")


LOOP_SUM = """\
#include <stdio.h>
int main(void) {
  int i;
  int s = 0;
  for (i = 0; i < 5; i++) {
    s = s + i * 3;
  }
  return s == 30 ? 0 : 1;
}
"""

BOOL_AND_UNSIGNED = """\
int main(void) {
  unsigned int u = 4000000000u;
  _Bool flag = u > 1u;
  return flag ? 0 : 1;
}
"""


@pytest.fixture
def build_and_run(tmp_path):
    """Instrument *source*, compile it and return (exit code, stdout)."""
    def _run(source, defines=(), **options):
        result = ExpressionDetector(DetectorConfig(**options)).run(source, "prog.c")
        assert result.ok, result.message
        src = tmp_path / "prog.c"
        exe = tmp_path / "prog"
        src.write_bytes(result.output)
        cmd = [CC, "-std=c99", "-w", "-o", str(exe), str(src)]
        cmd += [f"-D{d}" for d in defines]
        subprocess.run(cmd, check=True, capture_output=True)
        proc = subprocess.run([str(exe)], capture_output=True, text=True, timeout=30)
        return proc.returncode, proc.stdout
    return _run


@compiler_available
class TestCompiledOutput:

    @pytest.mark.parametrize("fire, expected", [(0, "0"), (2, "9"), (4, "30")])
    def test_fires_once_in_loop(self, build_and_run, fire, expected):
        code, out = build_and_run(LOOP_SUM, counter=1, fire_instance=fire)
        assert code == 0
        assert out == f"cdelta_value({expected})\n"

    def test_instance_macro(self, build_and_run):
        code, out = build_and_run(LOOP_SUM, defines=["__CDELTA_INSTANCE_NUMBER=1"], counter=1)
        assert code == 0
        assert out == "cdelta_value(3)\n"

    def test_never_fires_past_last_evaluation(self, build_and_run):
        code, out = build_and_run(LOOP_SUM, counter=1, fire_instance=5)
        assert code == 0
        assert out == ""

    def test_unsigned_value(self, build_and_run):
        code, out = build_and_run(BOOL_AND_UNSIGNED, counter=2, fire_instance=0)
        assert code == 0
        assert out == "cdelta_value(4000000000)\n"

    def test_bool_value(self, build_and_run):
        code, out = build_and_run(BOOL_AND_UNSIGNED, counter=3, fire_instance=0)
        assert code == 0
        assert out == "cdelta_value(1)\n"

    def test_check_mode_aborts_on_mismatch(self, build_and_run):
        code, _ = build_and_run(LOOP_SUM, counter=1, fire_instance=2, check_reference="8")
        assert code != 0

    def test_check_mode_passes_on_match(self, build_and_run):
        code, out = build_and_run(LOOP_SUM, counter=1, fire_instance=2, check_reference="9")
        assert code == 0
        assert out == ""
