"""Child-side evaluation entry point, run as ``python -m sandbox.worker``.

Reads one JSON request from stdin and writes one JSON result to the
original stdout. While the submission runs, file descriptor 1 points at
stderr so stray low-level writes cannot corrupt the result channel, and
``sys.stdout`` is redirected into a capture buffer.
"""
from __future__ import annotations

import asyncio
import contextlib
import importlib
import inspect
import io
import json
import linecache
import os
import sys
import traceback
from typing import Any, Dict, List, Optional

from constants import Constants

from .compiler import CompiledSubmission, compile_submission, diagnostic_from_syntax_error
from .outcomes import (
    CompilationFailure,
    ExecutionOutcome,
    ExecutionSuccess,
    InnerException,
    RuntimeFailure,
    outcome_to_payload,
)


def build_namespace(imports: List[str], globals_from: Dict[str, str]) -> Dict[str, Any]:
    """Globals every submission starts with: pre-imported modules and names."""
    namespace: Dict[str, Any] = {"__name__": "__main__", "__builtins__": __builtins__}
    for module_name in imports:
        namespace[module_name.split(".")[0]] = importlib.import_module(module_name.split(".")[0])
    for name, module_name in globals_from.items():
        namespace[name] = getattr(importlib.import_module(module_name), name)
    return namespace


async def _run_async(compiled: CompiledSubmission, namespace: Dict[str, Any]) -> Any:
    result = eval(compiled.body, namespace)  # pylint: disable=eval-used
    if asyncio.iscoroutine(result):
        await result
    if compiled.trailing is None:
        return None
    value = eval(compiled.trailing, namespace)  # pylint: disable=eval-used
    if compiled.trailing.co_flags & inspect.CO_COROUTINE and asyncio.iscoroutine(value):
        value = await value
    return value


def _run(compiled: CompiledSubmission, namespace: Dict[str, Any]) -> Any:
    if compiled.is_async:
        return asyncio.run(_run_async(compiled, namespace))
    exec(compiled.body, namespace)  # pylint: disable=exec-used
    if compiled.trailing is None:
        return None
    return eval(compiled.trailing, namespace)  # pylint: disable=eval-used


def _submission_tb(exc: BaseException, filename: str):
    tb = exc.__traceback__
    while tb is not None and tb.tb_frame.f_code.co_filename != filename:
        tb = tb.tb_next
    return tb if tb is not None else exc.__traceback__


def describe_exception(exc: BaseException, filename: str = Constants.SANDBOX_FILENAME) -> RuntimeFailure:
    """Turn an escaped exception into a runtime failure trimmed to submission frames."""
    tb = _submission_tb(exc, filename)
    script_line: Optional[int] = None
    for frame in traceback.extract_tb(tb):
        if frame.filename == filename:
            script_line = frame.lineno
    inner = exc.__cause__
    if inner is None and not exc.__suppress_context__:
        inner = exc.__context__
    return RuntimeFailure(
        exception_type=type(exc).__name__,
        message=str(exc),
        stack_trace="".join(traceback.format_exception(type(exc), exc, tb)),
        script_line=script_line,
        inner=InnerException(type(inner).__name__, str(inner)) if inner is not None else None,
    )


def evaluate(request: Dict[str, Any]) -> ExecutionOutcome:
    """Evaluate one request inside this process."""
    source = request.get("source") or ""
    filename = Constants.SANDBOX_FILENAME
    for path in reversed(request.get("paths") or []):
        if path not in sys.path:
            sys.path.insert(0, path)
    linecache.cache[filename] = (len(source), None, source.splitlines(True), filename)

    try:
        compiled = compile_submission(source, filename)
    except SyntaxError as exc:
        return CompilationFailure([diagnostic_from_syntax_error(exc, source)])

    buffer = io.StringIO()
    try:
        namespace = build_namespace(
            request.get("imports") or [], request.get("globals_from") or {}
        )
        with contextlib.redirect_stdout(buffer):
            value = _run(compiled, namespace)
            rendered = None if value is None else str(value)
    except BaseException as exc:  # pylint: disable=broad-exception-caught
        return describe_exception(exc, filename)
    return ExecutionSuccess(output=buffer.getvalue(), value=rendered)


def main() -> int:
    request = json.loads(sys.stdin.read() or "{}")
    sys.stdout.flush()
    result_fd = os.dup(1)
    os.dup2(2, 1)
    outcome = evaluate(request)
    with os.fdopen(result_fd, "w", encoding="utf-8") as channel:
        json.dump(outcome_to_payload(outcome), channel)
    return 0


if __name__ == "__main__":
    exit_code = main()
    sys.stderr.flush()
    # Threads left running by the submission must not keep the worker alive.
    os._exit(exit_code)  # pylint: disable=protected-access
