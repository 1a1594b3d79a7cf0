"""EvalGate - evaluate Python scripts with on-demand PyPI packages.

    Returns:
        int: Exit code
"""
import asyncio
import logging
import sys

from args import parse_args
from cli_config import get_allowed_path, load_runtime_config
from common.logging_utils import configure_logging
from constants import Constants, ExitCodes
from eval_tools import PythonEvalTools

__version__ = "0.1.0"

_ERROR_PREFIXES = (
    "Error:",
    "Compilation Error(s):",
    "Runtime Error:",
    "PyPI Package Resolution Error(s):",
)


def run_once(args, tools: PythonEvalTools) -> int:
    """Evaluate one script, print the report and map it to an exit code."""
    timeout = args.TIMEOUT if args.TIMEOUT is not None else Constants.DEFAULT_EVAL_TIMEOUT
    text = asyncio.run(
        tools.eval_python(script_file=args.SCRIPT_FILE, script=args.SCRIPT, timeout_seconds=timeout)
    )
    sys.stdout.write(text)
    if not text.endswith("\n"):
        sys.stdout.write("\n")
    if text.startswith(_ERROR_PREFIXES):
        return ExitCodes.EVALUATION_ERROR.value
    return ExitCodes.SUCCESS.value


def main(argv=None) -> int:
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL, args.LOG_FILE)
    cfg = load_runtime_config(args)
    logging.debug("Configuration applied; registry=%s", Constants.REGISTRY_URL_PYPI)
    tools = PythonEvalTools.from_config(cfg, allowed_path=get_allowed_path(args))

    if args.action == "mcp":
        from cli_mcp import run_mcp_server  # pylint: disable=import-outside-toplevel
        run_mcp_server(args, tools)
        return ExitCodes.SUCCESS.value
    return run_once(args, tools)


if __name__ == "__main__":
    sys.exit(main())
