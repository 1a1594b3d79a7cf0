"""Submission compilation.

A submission is a module body whose last statement, when it is a bare
expression, is split off and compiled in ``eval`` mode so its value can be
reported. Top-level ``await`` is allowed.
"""
from __future__ import annotations

import ast
import inspect
import warnings
from dataclasses import dataclass
from types import CodeType
from typing import Optional

from constants import Constants

from .outcomes import Diagnostic

COMPILE_FLAGS = ast.PyCF_ALLOW_TOP_LEVEL_AWAIT
TOO_COMPLEX_MESSAGE = "source is too deeply nested or too large to compile"


@dataclass
class CompiledSubmission:
    body: CodeType
    trailing: Optional[CodeType] = None

    @property
    def is_async(self) -> bool:
        codes = [self.body] + ([self.trailing] if self.trailing is not None else [])
        return any(code.co_flags & inspect.CO_COROUTINE for code in codes)


def compile_submission(source: str, filename: str = Constants.SANDBOX_FILENAME) -> CompiledSubmission:
    """Compile ``source``; raises ``SyntaxError`` (or a subclass) on failure."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", SyntaxWarning)
        try:
            tree = ast.parse(source, filename=filename, mode="exec")
            trailing = None
            if tree.body and isinstance(tree.body[-1], ast.Expr):
                last = tree.body.pop()
                expression = ast.Expression(body=last.value)
                trailing = compile(expression, filename, "eval", flags=COMPILE_FLAGS, dont_inherit=True)
            body = compile(tree, filename, "exec", flags=COMPILE_FLAGS, dont_inherit=True)
        except ValueError as exc:
            # null bytes in source
            raise SyntaxError(str(exc)) from exc
        except (RecursionError, MemoryError) as exc:
            error = SyntaxError(TOO_COMPLEX_MESSAGE)
            error.filename = filename
            raise error from exc
    return CompiledSubmission(body=body, trailing=trailing)


def diagnostic_from_syntax_error(exc: SyntaxError, source: str) -> Diagnostic:
    """Describe a compile error with the offending line and caret position."""
    line = exc.lineno or 1
    column = exc.offset or 1
    lines = source.splitlines()
    text = lines[line - 1] if 0 < line <= len(lines) else (exc.text or "")
    text = text.rstrip("\r\n")
    snippet = text.strip() or None
    caret = None
    if snippet is not None:
        indent = len(text) - len(text.lstrip())
        caret = max(column - 1 - indent, 0)
    return Diagnostic(
        line=line,
        column=column,
        code=type(exc).__name__,
        message=exc.msg or str(exc),
        snippet=snippet,
        caret_offset=caret,
    )
