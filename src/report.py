"""Caller-facing text for resolution errors and execution outcomes.

Every failure text starts with a fixed prefix so callers can match on it
without parsing.
"""

from typing import Iterable, List

from versioning.models import ResolutionError
from sandbox.outcomes import (
    CompilationFailure,
    ExecutionOutcome,
    ExecutionSuccess,
    ExecutionTimeout,
    RuntimeFailure,
)

RESOLUTION_ERRORS_HEADER = "PyPI Package Resolution Error(s):"
COMPILATION_ERRORS_HEADER = "Compilation Error(s):"
NO_OUTPUT_MESSAGE = "Script executed successfully with no output."
TIMEOUT_MESSAGE = "Error: Script execution timed out after {seconds} seconds."
CODE_PREFIX = "    Code: "


def format_resolution_errors(errors: Iterable[ResolutionError]) -> str:
    lines = [RESOLUTION_ERRORS_HEADER]
    lines.extend(f"  {error.describe()}" for error in errors)
    return "\n".join(lines)


def format_compilation_failure(failure: CompilationFailure) -> str:
    lines: List[str] = [COMPILATION_ERRORS_HEADER, ""]
    for diagnostic in failure.diagnostics:
        lines.append(
            f"  Line {diagnostic.line}, Column {diagnostic.column}: "
            f"{diagnostic.code} - {diagnostic.message}"
        )
        if diagnostic.snippet:
            lines.append(f"{CODE_PREFIX}{diagnostic.snippet}")
            if diagnostic.caret_offset is not None:
                lines.append(" " * (len(CODE_PREFIX) + diagnostic.caret_offset) + "^")
        lines.append("")
    return "\n".join(lines).rstrip()


def format_runtime_failure(failure: RuntimeFailure) -> str:
    lines = [
        f"Runtime Error: {failure.exception_type}",
        f"Message: {failure.message}",
    ]
    if failure.script_line is not None:
        lines.append(f"Script Line: {failure.script_line}")
    if failure.inner is not None:
        lines.append(f"Inner Exception: {failure.inner.exception_type}: {failure.inner.message}")
    lines.extend(["", "Stack Trace:", failure.stack_trace])
    return "\n".join(lines).rstrip()


def format_timeout(timeout: ExecutionTimeout) -> str:
    bound = timeout.elapsed_bound
    seconds = int(bound) if float(bound).is_integer() else bound
    return TIMEOUT_MESSAGE.format(seconds=seconds)


def format_success(success: ExecutionSuccess) -> str:
    """Captured output verbatim plus a ``Result:`` line when a value exists."""
    text = success.output
    if success.value is not None:
        if text:
            text += "\n"
        text += f"Result: {success.value}"
    if not text.strip():
        return NO_OUTPUT_MESSAGE
    return text


def render_outcome(outcome: ExecutionOutcome) -> str:
    if isinstance(outcome, ExecutionSuccess):
        return format_success(outcome)
    if isinstance(outcome, CompilationFailure):
        return format_compilation_failure(outcome)
    if isinstance(outcome, RuntimeFailure):
        return format_runtime_failure(outcome)
    if isinstance(outcome, ExecutionTimeout):
        return format_timeout(outcome)
    raise TypeError(f"Unknown outcome type: {type(outcome).__name__}")
