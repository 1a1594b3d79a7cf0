"""The EvalPython operation: validate a request, resolve packages, evaluate, report."""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from constants import Constants
from common.logging_utils import extra_context, Timer
from registry.pypi.client import PyPIClient
from report import format_resolution_errors, render_outcome
from sandbox import Sandbox
from versioning.parser import parse_directives, strip_directives
from versioning.policy import DependencyPolicy
from versioning.service import PackageResolver

logger = logging.getLogger(__name__)

FILE_PARAM = "scriptFile"
TEXT_PARAM = "script"


class PythonEvalTools:
    """Request handler shared by the MCP server and the CLI.

    Holds one resolver (and therefore one set of caches) for its lifetime.
    """

    def __init__(
        self,
        resolver: Optional[PackageResolver] = None,
        sandbox: Optional[Sandbox] = None,
        allowed_path: Optional[str] = None,
    ):
        self.resolver = resolver or PackageResolver()
        self.sandbox = sandbox or Sandbox()
        if allowed_path is None:
            allowed_path = os.environ.get(Constants.ENV_ALLOWED_PATH) or None
        self.allowed_path = allowed_path

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]] = None, allowed_path: Optional[str] = None):
        """Build the handler from current ``Constants`` and the YAML mapping."""
        cfg = cfg or {}
        policy = DependencyPolicy.from_config(cfg.get("resolver"))
        client = PyPIClient(base_url=Constants.REGISTRY_URL_PYPI, timeout=Constants.REQUEST_TIMEOUT)
        resolver = PackageResolver(client=client, policy=policy)
        return cls(resolver=resolver, sandbox=Sandbox(), allowed_path=allowed_path)

    def _read_script_file(self, script_file: str):
        """Return ``(source, None)`` or ``(None, error_text)``."""
        if not script_file.lower().endswith(Constants.SCRIPT_SUFFIX):
            return None, f"Error: Only {Constants.SCRIPT_SUFFIX} files are allowed. Provided: {script_file}"
        try:
            full_path = os.path.realpath(os.path.abspath(script_file))
            if self.allowed_path:
                root = os.path.realpath(os.path.abspath(self.allowed_path))
                if os.path.commonpath([root, full_path]) != root:
                    return None, f"Error: File access is restricted to {self.allowed_path}"
            if not os.path.isfile(full_path):
                return None, f"Error: File not found: {full_path}"
            with open(full_path, "r", encoding="utf-8") as fh:
                return fh.read(), None
        except (OSError, ValueError) as exc:
            return None, f"Error: Invalid file path: {exc}"

    async def eval_python(
        self,
        script_file: Optional[str] = None,
        script: Optional[str] = None,
        timeout_seconds: int = Constants.DEFAULT_EVAL_TIMEOUT,
    ) -> str:
        """Evaluate a script given inline or as a ``.py`` file and return the report text.

        Package directives (``#r "pypi: Name, Version"``) are resolved first;
        malformed directives or unresolvable packages stop the request before
        anything runs.
        """
        try:
            return await self._eval_python(script_file, script, timeout_seconds)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("Evaluation request failed: %s", exc, exc_info=True)
            return f"Error: Evaluation failed: {type(exc).__name__}: {exc}"

    async def _eval_python(
        self,
        script_file: Optional[str],
        script: Optional[str],
        timeout_seconds: int,
    ) -> str:
        has_file = bool(script_file and script_file.strip())
        has_text = bool(script and script.strip())
        if not has_file and not has_text:
            return f"Error: Either {FILE_PARAM} or {TEXT_PARAM} parameter must be provided."
        if has_file and has_text:
            return f"Error: Only one of {FILE_PARAM} or {TEXT_PARAM} parameter should be provided, not both."
        if isinstance(timeout_seconds, bool) or not isinstance(timeout_seconds, int) or timeout_seconds <= 0:
            return "Error: timeoutSeconds must be a positive integer."

        if has_file:
            source, error_text = self._read_script_file(script_file.strip())
            if error_text is not None:
                return error_text
        else:
            source = script

        with Timer() as t:
            parsed = parse_directives(source)
            artifacts, search_paths = [], []
            if not parsed.is_empty:
                if parsed.errors:
                    return format_resolution_errors(parsed.errors)
                report = await self.resolver.resolve_directives(parsed.directives)
                if report.errors:
                    return format_resolution_errors(report.errors)
                artifacts, search_paths = report.artifacts, report.search_paths
                source = strip_directives(source)

            try:
                outcome = await self.sandbox.evaluate(
                    source, artifacts, timeout=timeout_seconds, search_paths=search_paths
                )
            except OSError as exc:
                logger.error("Could not start evaluation worker: %s", exc)
                return f"Error: Could not start evaluation: {exc}"

        logger.info(
            "Evaluation finished",
            extra=extra_context(
                event="eval_python",
                component="eval_tools",
                outcome=type(outcome).__name__,
                packages=len(parsed.directives),
                duration_ms=t.duration_ms(),
            ),
        )
        return render_outcome(outcome)
