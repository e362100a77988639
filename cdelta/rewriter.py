"""
cdelta/rewriter.py
══════════════════

Byte-range text edits over the original source.

Edits are collected first and applied in one go, right to left, so that
no edit shifts the offsets of another.  Two kinds exist:

    insert   (offset, text)            zero-width, at a byte offset
    replace  (start, end, text)        the bytes [start, end) are replaced

Several inserts at one offset keep the order they were added in; an
insert at the start of a replaced range lands before the replacement.
Edits whose ranges overlap are a bug in the caller and raise
:class:`cdelta.errors.RewriteError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from cdelta.ast_model import SOURCE_ERRORS
from cdelta.errors import ErrorCodes, RewriteError

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Edit:
    start: int
    end: int
    original: bytes
    replacement: str
    reason: str = ""
    seq: int = 0

    @property
    def is_insert(self) -> bool:
        return self.start == self.end

    def describe(self) -> str:
        if self.is_insert:
            return f"insert @{self.start}: {self.replacement!r} ({self.reason})"
        return (f"replace [{self.start}, {self.end}) "
                f"{self.original.decode('utf-8', errors='replace')!r} -> "
                f"{self.replacement!r} ({self.reason})")


class SourceRewriter:
    """Collects edits against one source buffer and applies them."""

    def __init__(self, source: bytes) -> None:
        self.source = source
        self._edits: List[Edit] = []

    def _check_range(self, start: int, end: int) -> None:
        if not 0 <= start <= end <= len(self.source):
            raise RewriteError(
                f"edit range [{start}, {end}) outside source of {len(self.source)} bytes",
                code=ErrorCodes.EDIT_OUT_OF_BOUNDS,
            )

    def insert_before(self, offset: int, text: str, reason: str = "") -> Edit:
        self._check_range(offset, offset)
        return self._add(offset, offset, text, reason)

    def insert_after(self, offset: int, text: str, reason: str = "") -> Edit:
        """Insert *text* at *offset*, which is the end of some range."""
        return self.insert_before(offset, text, reason)

    def replace(self, start: int, end: int, text: str, reason: str = "") -> Edit:
        self._check_range(start, end)
        return self._add(start, end, text, reason)

    def _add(self, start: int, end: int, text: str, reason: str) -> Edit:
        edit = Edit(start, end, self.source[start:end], text, reason, len(self._edits))
        self._edits.append(edit)
        _log.debug("%s", edit.describe())
        return edit

    @property
    def edits(self) -> List[Edit]:
        """Edits in application order (by position, then insertion order)."""
        return sorted(self._edits, key=lambda e: (e.start, e.end, e.seq))

    def _check_overlaps(self, ordered: List[Edit]) -> None:
        covering = None
        for edit in ordered:
            if covering is not None and edit.start < covering.end:
                raise RewriteError(
                    f"overlapping edits: {covering.describe()} and {edit.describe()}",
                    code=ErrorCodes.OVERLAPPING_EDITS,
                )
            if covering is None or edit.end > covering.end:
                covering = edit

    def apply(self) -> bytes:
        """The source with every edit applied."""
        ordered = self.edits
        self._check_overlaps(ordered)
        buf = bytearray(self.source)
        for edit in reversed(ordered):
            buf[edit.start:edit.end] = edit.replacement.encode("utf-8", errors=SOURCE_ERRORS)
        return bytes(buf)

    def apply_text(self) -> str:
        return self.apply().decode("utf-8", errors=SOURCE_ERRORS)


__all__ = ["Edit", "SourceRewriter"]
