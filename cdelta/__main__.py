#!/usr/bin/env python3
"""
cdelta/__main__.py
==================

Entry point for ``python -m cdelta`` and the ``cdelta-expr`` console
script.  See :mod:`cdelta.main` for the options.
"""

from __future__ import annotations

import sys

from cdelta.main import main

__all__ = ["main"]


if __name__ == "__main__":
    sys.exit(main())
