#!/usr/bin/env python3
# =============================================================================
#  cdelta — setup.py
#
#  Packaging for the expression-detector pass of the cdelta C test-case
#  reducer.  The version lives in cdelta/__init__.py; runtime
#  dependencies live in requirements.txt.
#
#  Typical use:
#      pip install -e ".[dev]"
#      python -m pytest
# =============================================================================

from __future__ import annotations

import re
from pathlib import Path

from setuptools import setup, find_packages

_HERE = Path(__file__).resolve().parent


def _read_version() -> str:
    """Extract the version string from cdelta/__init__.py."""
    init = _HERE / "cdelta" / "__init__.py"
    text = init.read_text(encoding="utf-8")
    match = re.search(r'^__version__(?:\s*:\s*str)?\s*=\s*"([^"]+)"', text, re.MULTILINE)
    if match:
        return match.group(1)
    return "0.0.0"


def _read_long_description() -> str:
    """Read README.md for the long description."""
    readme = _HERE / "README.md"
    if readme.exists():
        return readme.read_text(encoding="utf-8")
    return ""


def _read_requirements() -> list[str]:
    """Read requirements.txt if it exists."""
    req_file = _HERE / "requirements.txt"
    if req_file.exists():
        lines = req_file.read_text(encoding="utf-8").splitlines()
        return [
            ln.strip()
            for ln in lines
            if ln.strip() and not ln.strip().startswith("#")
        ]
    return []


setup(
    name="cdelta",
    version=_read_version(),
    description=(
        "Expression-detector pass for C test-case reduction: captures and "
        "reports the value of the N-th safe scalar expression."
    ),
    long_description=_read_long_description(),
    long_description_content_type="text/markdown",
    license="MIT",
    author="cdelta contributors",
    python_requires=">=3.10",
    packages=find_packages(
        include=[
            "cdelta",
            "cdelta.*",
        ],
        exclude=[
            "tests",
            "tests.*",
        ],
    ),
    install_requires=_read_requirements(),
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "ruff>=0.4",
            "mypy>=1.10",
        ],
    },

    # setuptools creates a platform-appropriate wrapper that calls
    # cdelta.__main__:main.
    entry_points={
        "console_scripts": [
            "cdelta-expr=cdelta.__main__:main",
        ],
    },

    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Software Development :: Testing",
        "Topic :: Software Development :: Compilers",
    ],
    keywords=[
        "test-case-reduction",
        "delta-debugging",
        "c",
        "tree-sitter",
        "program-transformation",
    ],
    zip_safe=False,
)
