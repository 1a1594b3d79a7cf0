"""Evaluation sandbox package.

Runs submitted Python source in a separate interpreter under a timeout:
- compiler.py: submission compilation and compile-time diagnostics
- outcomes.py: execution outcome types
- executor.py: child-process orchestration (parent side)
- worker.py: evaluation entry point (child side)
"""

from .compiler import compile_submission, diagnostic_from_syntax_error
from .outcomes import (
    CompilationFailure,
    Diagnostic,
    ExecutionOutcome,
    ExecutionSuccess,
    ExecutionTimeout,
    InnerException,
    RuntimeFailure,
)
from .executor import Sandbox

__all__ = [
    "compile_submission",
    "diagnostic_from_syntax_error",
    "CompilationFailure",
    "Diagnostic",
    "ExecutionOutcome",
    "ExecutionSuccess",
    "ExecutionTimeout",
    "InnerException",
    "RuntimeFailure",
    "Sandbox",
]
