# cdelta/errors.py
"""
Error Types and Status Reporting for the Expression-Detector Pass

This module provides the error handling infrastructure for the ``cdelta``
pass.  Recoverable outcomes (the requested instance does not exist, the
rewritten program no longer parses) are reported to the caller as a
:class:`TransformStatus` on the result object; only bugs and bad
configuration are raised.

Architecture Overview:
─────────────────────
┌─────────────────────────────────────────────────────────────────────────────┐
│                          Error Hierarchy                                     │
├─────────────────────────────────────────────────────────────────────────────┤
│  CdeltaError (base)                                                         │
│  ├── ConfigError              - invalid pass parameters                     │
│  ├── OrdinalOutOfRangeError   - requested instance > valid candidates       │
│  ├── UnsupportedDialectError  - input is not C                              │
│  ├── FrontEndDiagnosticError  - rewritten output fails to parse             │
│  ├── RewriteError             - overlapping / malformed text edits          │
│  └── InternalInvariantError   - selection/counting disagreement (bug)       │
└─────────────────────────────────────────────────────────────────────────────┘

Error Codes:
────────────
Each error has a unique code following the pattern EXPR-XXXX:
  - 1000-1999: Selection outcomes (recoverable)
  - 2000-2999: Front-end diagnostics
  - 3000-3999: Configuration errors
  - 4000-4999: Rewriting errors
  - 9000-9999: Internal errors

Example Usage:
──────────────
    from cdelta.errors import ErrorCodes, OrdinalOutOfRangeError

    raise OrdinalOutOfRangeError(
        7, 3,
        hint="query the instance count with --query-instances",
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any, Dict, List, Optional


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR SEVERITY AND CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

@unique
class ErrorSeverity(Enum):
    """Severity levels for pass errors."""

    # The run must stop; output cannot be trusted
    FATAL = "fatal"

    # The transformation failed, caller may retry with other parameters
    ERROR = "error"

    WARNING = "warning"

    INFO = "info"

    def is_error(self) -> bool:
        """Check if this severity represents an error (not warning/info)."""
        return self in (ErrorSeverity.FATAL, ErrorSeverity.ERROR)


@unique
class ErrorPhase(Enum):
    """Pass phase where the error occurred."""

    CONFIG = "config"          # Parameter validation
    FRONTEND = "frontend"      # Parsing / typing
    SELECTION = "selection"    # Candidate walk
    REWRITE = "rewrite"        # Edit synthesis and application
    INTERNAL = "internal"      # Bookkeeping bugs


@unique
class TransformStatus(Enum):
    """
    Outcome of one pass invocation.

    Only ``SUCCESS`` and ``QUERY`` carry usable output.  ``MAX_INSTANCE``
    and ``FRONTEND_ERROR`` are recoverable from the point of view of the
    outer reduction driver.
    """

    SUCCESS = "success"
    QUERY = "query"
    MAX_INSTANCE = "max-instance"
    FRONTEND_ERROR = "frontend-error"

    @property
    def ok(self) -> bool:
        return self in (TransformStatus.SUCCESS, TransformStatus.QUERY)


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES
# ═══════════════════════════════════════════════════════════════════════════════

class ErrorCode:
    """
    Structured error code ``EXPR-NNNN``.

    Codes compare equal to their string form so callers can write
    ``err.code == "EXPR-1001"``.
    """

    __slots__ = ("prefix", "number", "phase", "default_severity")

    def __init__(
        self,
        prefix: str,
        number: int,
        phase: ErrorPhase,
        default_severity: ErrorSeverity = ErrorSeverity.ERROR,
    ) -> None:
        self.prefix = prefix
        self.number = number
        self.phase = phase
        self.default_severity = default_severity

    @property
    def code(self) -> str:
        """Get the full error code string."""
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.phase.name})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class ErrorCodes:
    """Predefined error codes for the pass."""

    # ═══════════════════════════════════════════════════════════════════════════
    # SELECTION OUTCOMES (1000-1999)
    # ═══════════════════════════════════════════════════════════════════════════

    MAX_INSTANCE = ErrorCode("EXPR", 1001, ErrorPhase.SELECTION)
    UNSUPPORTED_DIALECT = ErrorCode(
        "EXPR", 1002, ErrorPhase.SELECTION, ErrorSeverity.WARNING
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # FRONT END (2000-2999)
    # ═══════════════════════════════════════════════════════════════════════════

    FRONTEND_DIAGNOSTIC = ErrorCode("EXPR", 2001, ErrorPhase.FRONTEND)
    INPUT_PARSE_ERROR = ErrorCode(
        "EXPR", 2002, ErrorPhase.FRONTEND, ErrorSeverity.WARNING
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # CONFIGURATION (3000-3999)
    # ═══════════════════════════════════════════════════════════════════════════

    INVALID_CONFIG = ErrorCode("EXPR", 3001, ErrorPhase.CONFIG)

    # ═══════════════════════════════════════════════════════════════════════════
    # REWRITING (4000-4999)
    # ═══════════════════════════════════════════════════════════════════════════

    OVERLAPPING_EDITS = ErrorCode("EXPR", 4001, ErrorPhase.REWRITE, ErrorSeverity.FATAL)
    EDIT_OUT_OF_BOUNDS = ErrorCode("EXPR", 4002, ErrorPhase.REWRITE, ErrorSeverity.FATAL)

    # ═══════════════════════════════════════════════════════════════════════════
    # INTERNAL (9000-9999)
    # ═══════════════════════════════════════════════════════════════════════════

    INVARIANT_VIOLATED = ErrorCode("EXPR", 9001, ErrorPhase.INTERNAL, ErrorSeverity.FATAL)


# ═══════════════════════════════════════════════════════════════════════════════
# SOURCE LOCATIONS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceSpan:
    """
    A span of source code.

    ``start``/``end`` are byte offsets into the translation unit; ``line``
    and ``column`` are 1-based and only used for display.
    """

    file: str = ""
    line: int = 0
    column: int = 0
    start: int = 0
    end: int = 0

    def __str__(self) -> str:
        if not self.file and self.line == 0:
            return "<unknown location>"
        parts = []
        if self.file:
            parts.append(self.file)
        if self.line > 0:
            parts.append(str(self.line))
            if self.column > 0:
                parts.append(str(self.column))
        return ":".join(parts)


@dataclass
class ErrorMessage:
    """A complete error message with all context."""

    code: ErrorCode
    message: str
    span: SourceSpan = field(default_factory=SourceSpan)
    severity: Optional[ErrorSeverity] = None  # None means use code's default
    notes: List[str] = field(default_factory=list)
    hint: str = ""

    def __post_init__(self) -> None:
        if self.severity is None:
            self.severity = self.code.default_severity

    def to_gcc_format(self) -> str:
        """Format as a GCC-style error message."""
        severity = self.severity.value if self.severity else "error"
        lines = [f"{self.span}: {severity}: {self.message} [{self.code}]"]
        for note in self.notes:
            lines.append(f"note: {note}")
        if self.hint:
            lines.append(f"hint: {self.hint}")
        return "\n".join(lines)

    def to_json(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "code": self.code.code,
            "message": self.message,
            "severity": self.severity.value if self.severity else "error",
            "location": {
                "file": self.span.file,
                "line": self.span.line,
                "column": self.span.column,
            },
            "phase": self.code.phase.value,
            "notes": list(self.notes),
            "hint": self.hint,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class CdeltaError(Exception):
    """
    Base exception for all pass errors.

    Carries structured error information that can be pretty-printed in
    GCC style or serialised to JSON.
    """

    default_code: ErrorCode = ErrorCodes.INVARIANT_VIOLATED

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        severity: Optional[ErrorSeverity] = None,
        cause: Optional[Exception] = None,
        notes: Optional[List[str]] = None,
        hint: str = "",
    ) -> None:
        super().__init__(message)
        self.error_message = ErrorMessage(
            code=code or self.default_code,
            message=message,
            span=span or SourceSpan(),
            severity=severity,
            notes=notes or [],
            hint=hint,
        )
        self.cause = cause

    @property
    def code(self) -> ErrorCode:
        return self.error_message.code

    @property
    def span(self) -> SourceSpan:
        return self.error_message.span

    @property
    def severity(self) -> ErrorSeverity:
        return self.error_message.severity or ErrorSeverity.ERROR

    @property
    def message(self) -> str:
        return self.error_message.message

    def to_gcc_format(self) -> str:
        return self.error_message.to_gcc_format()

    def __str__(self) -> str:
        return self.to_gcc_format()


class ConfigError(CdeltaError):
    """Invalid pass parameters (bad counter, conflicting modes, ...)."""

    default_code = ErrorCodes.INVALID_CONFIG

    def __init__(self, message: str, problems: Optional[List[str]] = None, **kwargs: Any) -> None:
        self.problems = list(problems or [])
        super().__init__(message, notes=self.problems, **kwargs)


class OrdinalOutOfRangeError(CdeltaError):
    """The requested instance exceeds the number of valid candidates."""

    default_code = ErrorCodes.MAX_INSTANCE

    def __init__(self, requested: int, available: int, **kwargs: Any) -> None:
        self.requested = requested
        self.available = available
        super().__init__(
            f"instance {requested} requested, but only {available} valid "
            f"instance(s) found",
            **kwargs,
        )


class UnsupportedDialectError(CdeltaError):
    """The program is written in a language variant the pass skips."""

    default_code = ErrorCodes.UNSUPPORTED_DIALECT

    def __init__(self, language: str, **kwargs: Any) -> None:
        self.language = language
        super().__init__(f"unsupported source dialect: {language}", **kwargs)


class FrontEndDiagnosticError(CdeltaError):
    """The front end reported errors on the rewritten output."""

    default_code = ErrorCodes.FRONTEND_DIAGNOSTIC


class RewriteError(CdeltaError):
    """Text edits that cannot be applied consistently."""

    default_code = ErrorCodes.OVERLAPPING_EDITS


class InternalInvariantError(CdeltaError):
    """
    Selection and counting disagree.

    Raised when a triple was not latched although the requested ordinal is
    within the counted total.  Never converted into a status.
    """

    default_code = ErrorCodes.INVARIANT_VIOLATED


__all__ = [
    "ErrorSeverity",
    "ErrorPhase",
    "TransformStatus",
    "ErrorCode",
    "ErrorCodes",
    "SourceSpan",
    "ErrorMessage",
    "CdeltaError",
    "ConfigError",
    "OrdinalOutOfRangeError",
    "UnsupportedDialectError",
    "FrontEndDiagnosticError",
    "RewriteError",
    "InternalInvariantError",
]
