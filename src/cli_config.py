"""Runtime configuration: YAML file, environment variables and CLI overrides.

Precedence from lowest to highest: built-in ``Constants`` defaults, the YAML
config file, environment variables, command-line flags. Invalid values are
logged and ignored so a bad setting never prevents the server from starting.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from constants import Constants, _load_yaml_config

logger = logging.getLogger(__name__)

# YAML key -> (Constants attribute, converter)
_REGISTRY_KEYS = {
    "url": ("REGISTRY_URL_PYPI", str),
    "network_timeout": ("REQUEST_TIMEOUT", float),
    "retry_max": ("HTTP_RETRY_MAX", int),
    "retry_base_delay": ("HTTP_RETRY_BASE_DELAY_SEC", float),
}
_RESOLVER_KEYS = {
    "max_depth": ("MAX_RECURSION_DEPTH", int),
    "max_concurrency": ("MAX_CONCURRENT_DOWNLOADS", int),
    "packages_dir": ("PACKAGES_ROOT", str),
}
_SANDBOX_KEYS = {
    "default_timeout": ("DEFAULT_EVAL_TIMEOUT", int),
    "imports": ("SANDBOX_IMPORTS", list),
}


def _apply_section(section: Any, mapping: Dict[str, Any], label: str) -> None:
    if not isinstance(section, dict):
        return
    for key, (attr, convert) in mapping.items():
        if section.get(key) is None:
            continue
        try:
            setattr(Constants, attr, convert(section[key]))
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring invalid %s.%s=%r: %s", label, key, section[key], exc)


def apply_config(cfg: Dict[str, Any]) -> None:
    """Apply the ``registry``, ``resolver`` and ``sandbox`` sections to ``Constants``."""
    _apply_section(cfg.get("registry"), _REGISTRY_KEYS, "registry")
    _apply_section(cfg.get("resolver"), _RESOLVER_KEYS, "resolver")
    _apply_section(cfg.get("sandbox"), _SANDBOX_KEYS, "sandbox")


def apply_env_overrides(environ: Optional[Dict[str, str]] = None) -> None:
    """Apply ``EVALGATE_NETWORK_TIMEOUT`` and ``EVALGATE_PACKAGES_DIR``."""
    env = os.environ if environ is None else environ
    timeout = env.get(Constants.ENV_NETWORK_TIMEOUT)
    if timeout:
        try:
            value = float(timeout)
            if value <= 0:
                raise ValueError("must be positive")
            Constants.REQUEST_TIMEOUT = value
        except ValueError as exc:
            logger.warning("Ignoring %s=%r: %s", Constants.ENV_NETWORK_TIMEOUT, timeout, exc)
    packages_dir = env.get(Constants.ENV_PACKAGES_DIR)
    if packages_dir:
        Constants.PACKAGES_ROOT = packages_dir


def apply_cli_overrides(args) -> None:
    """Apply command-line tunables; they take precedence over everything else."""
    if getattr(args, "NETWORK_TIMEOUT", None) is not None:
        Constants.REQUEST_TIMEOUT = float(args.NETWORK_TIMEOUT)
    if getattr(args, "MAX_DEPTH", None) is not None:
        Constants.MAX_RECURSION_DEPTH = int(args.MAX_DEPTH)
    if getattr(args, "PACKAGES_DIR", None):
        Constants.PACKAGES_ROOT = args.PACKAGES_DIR
    if getattr(args, "REGISTRY_URL", None):
        Constants.REGISTRY_URL_PYPI = args.REGISTRY_URL


def load_runtime_config(args) -> Dict[str, Any]:
    """Load and apply configuration for this process; returns the raw YAML mapping."""
    cfg = _load_yaml_config(getattr(args, "CONFIG", None))
    apply_config(cfg)
    apply_env_overrides()
    apply_cli_overrides(args)
    return cfg


def get_allowed_path(args=None) -> Optional[str]:
    """Root directory script files must live under, if restricted."""
    cli_value = getattr(args, "ALLOWED_PATH", None) if args is not None else None
    if cli_value:
        return cli_value
    env_value = os.environ.get(Constants.ENV_ALLOWED_PATH)
    return env_value or None
