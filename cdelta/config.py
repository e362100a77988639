"""
cdelta/config.py
════════════════

Parameters of one expression-detector invocation.

``DetectorConfig`` is a plain dataclass: build it directly, or from the
command line in :mod:`cdelta.main`.  ``validate()`` lists problems without
raising; ``ensure_valid()`` raises :class:`cdelta.errors.ConfigError`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from cdelta.errors import ConfigError

TMP_VAR_PREFIX = "__cdelta_expr_tmp_"
PRINTED_VAR_PREFIX = "__cdelta_printed_"
CHECKED_VAR_PREFIX = "__cdelta_checked_"
INSTANCE_MACRO = "__CDELTA_INSTANCE_NUMBER"
VALUE_LABEL = "cdelta_value"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DetectorMode(Enum):
    """What the emitter produces for the selected expression."""
    PRINT = "print"
    CHECK = "check"
    REPLACE = "replace"


@dataclass(frozen=True)
class HeaderFunctionInfo:
    """The library function called from the emitted code."""
    header: str
    function: str
    declaration: str


PRINTF_INFO = HeaderFunctionInfo("stdio.h", "printf", "int printf(const char *format, ...)")
ABORT_INFO = HeaderFunctionInfo("stdlib.h", "abort", "void abort(void)")


@dataclass
class DetectorConfig:
    """Tuning knobs for one pass invocation."""
    counter: int = 1
    check_reference: Optional[str] = None
    replacement: Optional[str] = None
    fire_instance: Optional[int] = None
    query_only: bool = False
    language: Optional[str] = None
    tmp_prefix: str = TMP_VAR_PREFIX
    printed_prefix: str = PRINTED_VAR_PREFIX
    checked_prefix: str = CHECKED_VAR_PREFIX
    instance_macro: str = INSTANCE_MACRO
    value_label: str = VALUE_LABEL

    # ── derived ──────────────────────────────────────────────────────

    @property
    def mode(self) -> DetectorMode:
        if self.replacement is not None:
            return DetectorMode.REPLACE
        if self.check_reference is not None:
            return DetectorMode.CHECK
        return DetectorMode.PRINT

    @property
    def control_prefix(self) -> str:
        """Prefix of the guard counter for the current mode."""
        if self.mode == DetectorMode.CHECK:
            return self.checked_prefix
        return self.printed_prefix

    @property
    def reporting_function(self) -> HeaderFunctionInfo:
        if self.mode == DetectorMode.CHECK:
            return ABORT_INFO
        return PRINTF_INFO

    @property
    def reserved_prefixes(self) -> List[str]:
        return [self.tmp_prefix, self.printed_prefix, self.checked_prefix]

    @property
    def fire_on(self) -> str:
        """Right-hand side of the guard comparison."""
        if self.fire_instance is not None:
            return str(self.fire_instance)
        return self.instance_macro

    def is_reserved_name(self, name: str) -> bool:
        return any(name.startswith(p) for p in self.reserved_prefixes)

    def is_control_name(self, name: str) -> bool:
        return name.startswith(self.printed_prefix) or name.startswith(self.checked_prefix)

    # ── validation ───────────────────────────────────────────────────

    def validate(self) -> List[str]:
        """Return a list of problems (empty if valid)."""
        problems: List[str] = []
        if not isinstance(self.counter, int) or self.counter < 1:
            problems.append(f"counter must be a positive integer, got {self.counter!r}")
        if self.check_reference is not None and not self.check_reference.strip():
            problems.append("check reference value must not be empty")
        if self.replacement is not None and not self.replacement.strip():
            problems.append("replacement text must not be empty")
        if self.check_reference is not None and self.replacement is not None:
            problems.append("check reference and replacement are mutually exclusive")
        if self.fire_instance is not None and self.fire_instance < 0:
            problems.append("fire instance must be non-negative")
        if self.language is not None and self.language not in ("c", "c++"):
            problems.append(f"unknown language {self.language!r} (expected 'c' or 'c++')")
        for name in ("tmp_prefix", "printed_prefix", "checked_prefix", "instance_macro",
                     "value_label"):
            value = getattr(self, name)
            if not _IDENTIFIER_RE.match(value or ""):
                problems.append(f"{name} must be a C identifier, got {value!r}")
        prefixes = self.reserved_prefixes
        for i, a in enumerate(prefixes):
            for b in prefixes[i + 1:]:
                if a and b and (a.startswith(b) or b.startswith(a)):
                    problems.append(f"name prefixes {a!r} and {b!r} overlap")
        return problems

    def ensure_valid(self) -> DetectorConfig:
        problems = self.validate()
        if problems:
            raise ConfigError(
                "invalid detector configuration",
                problems=problems,
                hint="see 'cdelta-expr --help'",
            )
        return self


__all__ = [
    "TMP_VAR_PREFIX",
    "PRINTED_VAR_PREFIX",
    "CHECKED_VAR_PREFIX",
    "INSTANCE_MACRO",
    "VALUE_LABEL",
    "DetectorMode",
    "HeaderFunctionInfo",
    "PRINTF_INFO",
    "ABORT_INFO",
    "DetectorConfig",
]
