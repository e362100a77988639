"""cdelta — expression-detector pass for C test-case reduction.

Given a C program and an instance number N, the pass finds the N-th
expression that can be captured into a temporary without changing what
the program computes, and rewrites the program to print that value once
(or to abort when it differs from a reference value).  An outer
reduction driver calls the pass with N = 1, 2, ... and watches which
variants still reproduce a failure.

Submodules
----------
frontend
    tree-sitter based C front end: typed expression / statement model
    (``ast_model``) with C typing rules from ``c_types``.

walker, validity, equality, caches
    Candidate enumeration in a fixed order, the acceptance rules, the
    structural equality test and the statement-scoped memo tables.

emitter, rewriter
    Instrumentation text synthesis and byte-range edit application.

detector
    ``ExpressionDetector`` session: counting, selection, result status.

config, errors
    ``DetectorConfig`` and the ``EXPR-XXXX`` error hierarchy.

main
    ``cdelta-expr`` command line.

Usage
-----
Command-line::

    cdelta-expr test.c --counter 3 -o test.out.c
    python -m cdelta test.c --query-instances

Programmatic::

    from cdelta.config import DetectorConfig
    from cdelta.detector import ExpressionDetector

    result = ExpressionDetector(DetectorConfig(counter=3)).run(source, "test.c")
"""

__version__: str = "0.1.0"
__all__: list[str] = [
    "__version__",
]
