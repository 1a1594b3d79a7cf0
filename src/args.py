"""Argument parsing functionality for EvalGate."""

import argparse
from constants import Constants


def _add_common_arguments(parser):
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default=None)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to YAML configuration file",
                        action="store",
                        type=str)
    parser.add_argument("--network-timeout",
                        dest="NETWORK_TIMEOUT",
                        help=f"Seconds allowed per registry request (default: {Constants.REQUEST_TIMEOUT})",
                        action="store",
                        type=float)
    parser.add_argument("--max-depth",
                        dest="MAX_DEPTH",
                        help=f"Maximum dependency depth to resolve (default: {Constants.MAX_RECURSION_DEPTH})",
                        action="store",
                        type=int)
    parser.add_argument("--packages-dir",
                        dest="PACKAGES_DIR",
                        help="Directory used as the on-disk package cache",
                        action="store",
                        type=str)
    parser.add_argument("--registry-url",
                        dest="REGISTRY_URL",
                        help=f"PyPI JSON API root (default: {Constants.REGISTRY_URL_PYPI})",
                        action="store",
                        type=str)
    parser.add_argument("--allowed-path",
                        dest="ALLOWED_PATH",
                        help=f"Restrict script files to this directory (env: {Constants.ENV_ALLOWED_PATH})",
                        action="store",
                        type=str)


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="evalgate",
        description=(
            "EvalGate - evaluate Python scripts with on-demand PyPI packages"
        ),
        add_help=True,
    )
    subparsers = parser.add_subparsers(dest="action", metavar="{run,mcp}")
    subparsers.required = True

    run_parser = subparsers.add_parser("run", help="Evaluate a script once and print the report")
    _add_common_arguments(run_parser)
    source_group = run_parser.add_mutually_exclusive_group(required=True)
    source_group.add_argument("-f", "--file",
                              dest="SCRIPT_FILE",
                              help="Path to a .py script",
                              action="store",
                              type=str)
    source_group.add_argument("-e", "--code",
                              dest="SCRIPT",
                              help="Inline script text",
                              action="store",
                              type=str)
    run_parser.add_argument("-t", "--timeout",
                            dest="TIMEOUT",
                            help=f"Execution timeout in seconds (default: {Constants.DEFAULT_EVAL_TIMEOUT})",
                            action="store",
                            type=int,
                            default=None)

    mcp_parser = subparsers.add_parser("mcp", help="Serve the EvalPython tool over MCP")
    _add_common_arguments(mcp_parser)
    mcp_parser.add_argument("--host",
                            dest="MCP_HOST",
                            help="Serve streamable HTTP on this host instead of stdio",
                            action="store",
                            type=str)
    mcp_parser.add_argument("--port",
                            dest="MCP_PORT",
                            help="Port for streamable HTTP",
                            action="store",
                            type=int)

    return parser.parse_args(argv)
