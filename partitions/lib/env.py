"""Environment variable helpers for sync configuration.

Config values may reference ``${VAR_NAME}`` or ``$VAR_NAME``; they are
expanded when the YAML file is loaded. ``.env`` files are read with
python-dotenv.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Optional, Union

from dotenv import load_dotenv

__all__ = ["env_int", "expand_env_vars", "expand_values", "load_env_file", "parse_bool"]

ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def load_env_file(path: Optional[Union[str, Path]] = None, *, override: bool = False) -> bool:
    """Load a .env file into os.environ; False when nothing was loaded.

    Without ``path`` python-dotenv searches upwards from the working directory.
    """
    return load_dotenv(dotenv_path=path, override=override)


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Expand environment variables in a string.

    Unset variables are left as written unless ``strict`` is set, in which
    case a KeyError is raised.
    """

    def lookup(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        if name in os.environ:
            return os.environ[name]
        if strict:
            raise KeyError(f"{name} is referenced in the sync config but not set")
        return match.group(0)

    return ENV_VAR_PATTERN.sub(lookup, value)


def expand_values(value: Any, *, strict: bool = False) -> Any:
    """Recursively expand env vars in strings inside dicts and lists."""
    if isinstance(value, str):
        return expand_env_vars(value, strict=strict)
    if isinstance(value, dict):
        return {k: expand_values(v, strict=strict) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_values(item, strict=strict) for item in value]
    return value


def parse_bool(value: Any, default: bool = False) -> bool:
    """Interpret YAML/env booleans ("true", "on", 1, ...)."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in _TRUE:
        return True
    if normalized in _FALSE:
        return False
    return default


def env_int(name: str) -> Optional[int]:
    """Read an integer environment variable; None when unset or empty.

    Raises:
        ValueError: If the variable is set but not an integer
    """
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    return int(raw.strip())
