"""Tests for submission compilation and in-process evaluation."""

import pytest

from sandbox import compiler
from sandbox.compiler import compile_submission, diagnostic_from_syntax_error
from sandbox.outcomes import (
    CompilationFailure,
    ExecutionSuccess,
    RuntimeFailure,
    outcome_from_payload,
    outcome_to_payload,
)
from sandbox.worker import build_namespace, evaluate


def _request(source, **extra):
    request = {"source": source, "paths": [], "imports": ["math", "asyncio"], "globals_from": {"Path": "pathlib"}}
    request.update(extra)
    return request


class TestCompileSubmission:
    """Tests for compile_submission."""

    def test_trailing_expression_split_off(self):
        compiled = compile_submission("x = 1\nx + 1")

        assert compiled.trailing is not None
        assert not compiled.is_async

    def test_statement_last_has_no_trailing(self):
        assert compile_submission("x = 1").trailing is None

    def test_top_level_await_marks_async(self):
        assert compile_submission("await asyncio.sleep(0)").is_async
        assert compile_submission("await asyncio.sleep(0, 'v')").is_async

    def test_syntax_error(self):
        with pytest.raises(SyntaxError):
            compile_submission("var y = ;")

    def test_null_byte_reported_as_syntax_error(self):
        with pytest.raises(SyntaxError):
            compile_submission("x = 1\x00")

    @pytest.mark.parametrize("error", [RecursionError, MemoryError])
    def test_parser_exhaustion_reported_as_syntax_error(self, monkeypatch, error):
        def exhausted(*args, **kwargs):
            raise error()

        monkeypatch.setattr(compiler.ast, "parse", exhausted)

        with pytest.raises(SyntaxError, match="too deeply nested"):
            compile_submission("x = 1")

    def test_deeply_nested_source_is_a_syntax_error(self):
        with pytest.raises(SyntaxError):
            compile_submission("x = " + "-" * 200000 + "1")


class TestDiagnostics:
    """Tests for compile diagnostics."""

    def test_position_and_snippet(self):
        source = "x = 1\n    y = (\n"
        try:
            compile_submission(source)
        except SyntaxError as exc:
            diagnostic = diagnostic_from_syntax_error(exc, source)
        else:
            pytest.fail("expected SyntaxError")

        assert diagnostic.line == 2
        assert diagnostic.code in ("IndentationError", "SyntaxError")
        assert diagnostic.snippet == "y = ("

    def test_caret_offset_ignores_indentation(self):
        exc = SyntaxError("invalid syntax")
        exc.lineno, exc.offset = 1, 7
        diagnostic = diagnostic_from_syntax_error(exc, "    a b")

        assert diagnostic.snippet == "a b"
        assert diagnostic.caret_offset == 2


class TestEvaluate:
    """Tests for evaluate running inside the current interpreter."""

    def test_value_and_output(self):
        outcome = evaluate(_request("print('hi')\nmath.sqrt(16)"))

        assert outcome == ExecutionSuccess(output="hi\n", value="4.0")

    def test_none_value_not_reported(self):
        outcome = evaluate(_request("print('x')\nNone"))

        assert outcome.value is None

    def test_preimported_names(self):
        outcome = evaluate(_request("Path('/tmp/data.csv').suffix"))

        assert outcome.value == ".csv"

    def test_top_level_await(self):
        outcome = evaluate(_request("await asyncio.sleep(0)\nawait asyncio.sleep(0, 'done')"))

        assert outcome == ExecutionSuccess(output="", value="done")

    def test_runtime_failure_points_at_script_line(self):
        outcome = evaluate(_request("x = 1\nraise ValueError('m')"))

        assert isinstance(outcome, RuntimeFailure)
        assert outcome.exception_type == "ValueError"
        assert outcome.message == "m"
        assert outcome.script_line == 2
        assert "raise ValueError('m')" in outcome.stack_trace
        assert "sandbox/worker.py" not in outcome.stack_trace

    def test_inner_exception(self):
        source = (
            "try:\n"
            "    {}['k']\n"
            "except KeyError as exc:\n"
            "    raise RuntimeError('wrapped') from exc\n"
        )

        outcome = evaluate(_request(source))

        assert outcome.exception_type == "RuntimeError"
        assert outcome.inner.exception_type == "KeyError"

    def test_failure_inside_function_reports_deepest_script_line(self):
        source = "def f():\n    return 1 / 0\n\nf()\n"

        outcome = evaluate(_request(source))

        assert outcome.exception_type == "ZeroDivisionError"
        assert outcome.script_line == 2

    def test_system_exit_is_a_runtime_failure(self):
        outcome = evaluate(_request("raise SystemExit(3)"))

        assert outcome.exception_type == "SystemExit"

    def test_compile_error(self):
        outcome = evaluate(_request("var y = ;"))

        assert isinstance(outcome, CompilationFailure)
        assert outcome.diagnostics[0].line == 1

    def test_artifact_paths_importable(self, tmp_path):
        (tmp_path / "evalgate_answer_mod.py").write_text("VALUE = 'answer'\n")

        outcome = evaluate(_request("import evalgate_answer_mod\nevalgate_answer_mod.VALUE", paths=[str(tmp_path)]))

        assert outcome.value == "answer"


def test_build_namespace():
    namespace = build_namespace(["os.path", "json"], {"Path": "pathlib"})

    assert namespace["os"].__name__ == "os"
    assert "json" in namespace
    assert namespace["Path"].__name__ == "Path"


class TestPayload:
    """Tests for the worker result payload."""

    def test_runtime_failure_payload(self):
        outcome = evaluate(_request("raise KeyError('k')"))

        assert outcome_from_payload(outcome_to_payload(outcome)) == outcome

    @pytest.mark.parametrize("payload", [[], {"status": "weird"}, {"status": "runtime_error"}])
    def test_malformed_payload(self, payload):
        with pytest.raises(ValueError):
            outcome_from_payload(payload)
