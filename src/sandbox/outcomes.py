"""Execution outcome types exchanged between the sandbox and the report formatter."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass
class ExecutionSuccess:
    """Evaluation finished; ``value`` is the rendered trailing expression, if any."""
    output: str = ""
    value: Optional[str] = None


@dataclass
class Diagnostic:
    """One compile-time error with 1-based position."""
    line: int
    column: int
    code: str
    message: str
    snippet: Optional[str] = None
    caret_offset: Optional[int] = None


@dataclass
class CompilationFailure:
    diagnostics: List[Diagnostic] = field(default_factory=list)


@dataclass
class InnerException:
    exception_type: str
    message: str


@dataclass
class RuntimeFailure:
    """An exception escaped the submission."""
    exception_type: str
    message: str
    stack_trace: str = ""
    script_line: Optional[int] = None
    inner: Optional[InnerException] = None


@dataclass
class ExecutionTimeout:
    elapsed_bound: float


ExecutionOutcome = Union[ExecutionSuccess, CompilationFailure, RuntimeFailure, ExecutionTimeout]

STATUS_SUCCESS = "success"
STATUS_COMPILE_ERROR = "compile_error"
STATUS_RUNTIME_ERROR = "runtime_error"


def outcome_to_payload(outcome: ExecutionOutcome) -> Dict[str, Any]:
    """Serialize an outcome for the worker's result channel."""
    if isinstance(outcome, ExecutionSuccess):
        return {"status": STATUS_SUCCESS, **asdict(outcome)}
    if isinstance(outcome, CompilationFailure):
        return {"status": STATUS_COMPILE_ERROR, **asdict(outcome)}
    if isinstance(outcome, RuntimeFailure):
        return {"status": STATUS_RUNTIME_ERROR, **asdict(outcome)}
    raise TypeError(f"Outcome {type(outcome).__name__} is not sent by the worker")


def outcome_from_payload(data: Dict[str, Any]) -> ExecutionOutcome:
    """Rebuild an outcome from the worker's JSON result.

    Raises:
        ValueError: If the payload has an unknown status or missing fields.
    """
    if not isinstance(data, dict):
        raise ValueError("Malformed worker result: not an object")
    status = data.get("status")
    try:
        if status == STATUS_SUCCESS:
            return ExecutionSuccess(output=data.get("output") or "", value=data.get("value"))
        if status == STATUS_COMPILE_ERROR:
            return CompilationFailure([Diagnostic(**d) for d in data.get("diagnostics") or []])
        if status == STATUS_RUNTIME_ERROR:
            inner = data.get("inner")
            return RuntimeFailure(
                exception_type=data["exception_type"],
                message=data.get("message") or "",
                stack_trace=data.get("stack_trace") or "",
                script_line=data.get("script_line"),
                inner=InnerException(**inner) if inner else None,
            )
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Malformed worker result: {exc}") from exc
    raise ValueError(f"Unknown worker result status: {status!r}")
