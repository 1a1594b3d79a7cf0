"""Parent-side sandbox: compiles, spawns the worker and races it against the timeout."""
from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import sys
import tempfile
from typing import Dict, Iterable, List, Optional, Sequence

from constants import Constants
from common.logging_utils import extra_context, Timer

from .compiler import compile_submission, diagnostic_from_syntax_error
from .outcomes import (
    CompilationFailure,
    ExecutionOutcome,
    ExecutionTimeout,
    RuntimeFailure,
    outcome_from_payload,
)

logger = logging.getLogger(__name__)

WORKER_MODULE = "sandbox.worker"
# Directory holding the top-level modules of this project
_IMPORT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_STDERR_TAIL = 4000


def search_paths_for(artifacts: Iterable[str], extra: Iterable[str] = ()) -> List[str]:
    """``sys.path`` entries exposing ``artifacts``: their parent directories, in order."""
    paths: List[str] = []
    for path in list(extra) + [os.path.dirname(a.rstrip("/\\")) for a in artifacts]:
        if path and path not in paths:
            paths.append(path)
    return paths


class Sandbox:
    """Evaluates submissions in a fresh child interpreter per call.

    The child leads its own process group. Completion is the worker's exit,
    not end-of-file on every pipe, and the whole group is killed afterwards
    or when the timeout fires, so nothing a submission started outlives it.
    """

    def __init__(
        self,
        python: Optional[str] = None,
        imports: Optional[Sequence[str]] = None,
        globals_from: Optional[Dict[str, str]] = None,
    ):
        """Initialize the sandbox.

        Args:
            python: Interpreter used for the worker, defaults to ``sys.executable``.
            imports: Modules pre-imported into every submission.
            globals_from: Extra names bound from modules (name -> module).
        """
        self.python = python or sys.executable
        self.imports = list(imports if imports is not None else Constants.SANDBOX_IMPORTS)
        self.globals_from = dict(
            globals_from if globals_from is not None else Constants.SANDBOX_GLOBALS_FROM
        )

    def _environment(self) -> Dict[str, str]:
        env = dict(os.environ)
        existing = env.get("PYTHONPATH")
        env["PYTHONPATH"] = os.pathsep.join([_IMPORT_ROOT] + ([existing] if existing else []))
        env["PYTHONIOENCODING"] = "utf-8"
        env["PYTHONDONTWRITEBYTECODE"] = "1"
        return env

    async def evaluate(
        self,
        source: str,
        artifacts: Sequence[str] = (),
        timeout: float = Constants.DEFAULT_EVAL_TIMEOUT,
        search_paths: Sequence[str] = (),
    ) -> ExecutionOutcome:
        """Compile and run ``source`` with ``artifacts`` importable.

        Compile errors are reported without starting a worker. Output written
        to ``sys.stdout`` is captured; the trailing expression's value is
        rendered with ``str``.
        """
        try:
            compile_submission(source)
        except SyntaxError as exc:
            return CompilationFailure([diagnostic_from_syntax_error(exc, source)])

        request = {
            "source": source,
            "paths": search_paths_for(artifacts, search_paths),
            "imports": self.imports,
            "globals_from": self.globals_from,
        }
        # stderr goes to a file so a grandchild holding it open never blocks completion.
        with tempfile.TemporaryFile() as stderr_file, Timer() as t:
            process = await asyncio.create_subprocess_exec(
                self.python,
                "-m",
                WORKER_MODULE,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=stderr_file,
                env=self._environment(),
                start_new_session=True,
            )
            try:
                stdout = await asyncio.wait_for(
                    self._run(process, json.dumps(request).encode("utf-8")), timeout
                )
            except asyncio.TimeoutError:
                await self._kill(process)
                logger.info("Evaluation timed out after %s seconds; worker killed", timeout)
                return ExecutionTimeout(elapsed_bound=timeout)
            except asyncio.CancelledError:
                await self._kill(process)
                raise

            # The worker has exited; anything it started goes with it.
            await self._kill(process)
            stderr_file.seek(0)
            stderr = stderr_file.read()

        logger.debug(
            "Worker finished",
            extra=extra_context(
                event="evaluate",
                component="sandbox",
                returncode=process.returncode,
                duration_ms=t.duration_ms(),
            ),
        )
        if stderr:
            logger.debug("Worker stderr: %s", stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL:])
        return self._read_result(process.returncode, stdout, stderr)

    @staticmethod
    async def _run(process: asyncio.subprocess.Process, payload: bytes) -> bytes:
        """Send the request, then read the result channel until the worker exits."""
        try:
            process.stdin.write(payload)
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # worker died before reading; its exit code is reported instead
            pass
        finally:
            process.stdin.close()
        stdout = await process.stdout.read()
        await process.wait()
        return stdout

    @staticmethod
    def _read_result(returncode: Optional[int], stdout: bytes, stderr: bytes) -> ExecutionOutcome:
        try:
            return outcome_from_payload(json.loads(stdout.decode("utf-8")))
        except (UnicodeDecodeError, ValueError) as exc:
            logger.warning("Worker returned no usable result (exit code %s): %s", returncode, exc)
            return RuntimeFailure(
                exception_type="WorkerProcessError",
                message=f"Evaluation process exited with code {returncode} without a result",
                stack_trace=stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL:],
            )

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        """Kill the worker's whole process group, then reap the worker."""
        if hasattr(os, "killpg"):
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError):
                # group already empty
                pass
        elif process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        if process.returncode is None:
            await process.wait()
