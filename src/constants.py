"""Constants used in the project."""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    EVALUATION_ERROR = 3


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_PYPI = "https://pypi.org/pypi/"
    DIRECTIVE_SCHEME = "pypi"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all network operations
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    HTTP_USER_AGENT = "evalgate/0.1"

    # Resolver
    MAX_RECURSION_DEPTH = 10
    MAX_CONCURRENT_DOWNLOADS = 8
    PACKAGES_DIR_NAME = "evalgate-packages"
    PACKAGES_ROOT: Optional[str] = None  # None means <tempdir>/PACKAGES_DIR_NAME
    EXTENSIONS_PREFIX = "opentelemetry-"
    EXTENSIONS_PINNED_VERSION = "1.27.0"
    LATEST_VERSION = "latest"

    # Canonical (PEP 503) names assumed to be present in every interpreter
    SKIP_EXACT = [
        "pip",
        "setuptools",
        "wheel",
        "distribute",
        "typing",
        "dataclasses",
        "enum34",
        "futures",
        "pathlib",
        "contextvars",
        "asyncio",
        "argparse",
        "ordereddict",
        "statistics",
    ]
    SKIP_PREFIXES = [
        "backports-",
        "pip-",
        "setuptools-",
    ]
    # Packages that only exist for specific operating systems
    PLATFORM_PREFIXES = [
        "pywin32",
        "pywinpty",
        "pyobjc-",
        "appnope",
        "wmi",
    ]

    # Sandbox
    DEFAULT_EVAL_TIMEOUT = 30
    SANDBOX_IMPORTS = [
        "asyncio",
        "collections",
        "datetime",
        "itertools",
        "json",
        "math",
        "os",
        "re",
        "sys",
        "time",
    ]
    SANDBOX_GLOBALS_FROM = {"Path": "pathlib"}
    SANDBOX_FILENAME = "<submission#0>"
    SCRIPT_SUFFIX = ".py"

    # Environment
    ENV_ALLOWED_PATH = "EVALGATE_ALLOWED_PATH"
    ENV_NETWORK_TIMEOUT = "EVALGATE_NETWORK_TIMEOUT"
    ENV_PACKAGES_DIR = "EVALGATE_PACKAGES_DIR"
    ENV_LOG_LEVEL = "EVALGATE_LOG_LEVEL"
    ENV_CONFIG = "EVALGATE_CONFIG"

    CONFIG_SEARCH_PATHS = [
        "evalgate.yml",
        "evalgate.yaml",
        os.path.join("~", ".config", "evalgate", "evalgate.yml"),
        os.path.join("~", ".config", "evalgate", "evalgate.yaml"),
    ]


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the first readable YAML config file.

    Looks at ``path`` when given, then ``$EVALGATE_CONFIG``, then the default
    search locations. Missing or unreadable files yield an empty dict.
    """
    import yaml  # pylint: disable=import-outside-toplevel

    candidates = []
    if path:
        candidates.append(path)
    env_path = os.environ.get(Constants.ENV_CONFIG)
    if env_path:
        candidates.append(env_path)
    if not path:
        candidates.extend(Constants.CONFIG_SEARCH_PATHS)

    for candidate in candidates:
        full = os.path.expanduser(candidate)
        if not os.path.isfile(full):
            continue
        try:
            with open(full, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Ignoring unreadable config file %s: %s", full, exc)
            continue
        if isinstance(data, dict):
            logger.debug("Loaded configuration from %s", full)
            return data
        logger.warning("Ignoring config file %s: top level is not a mapping", full)
    return {}
