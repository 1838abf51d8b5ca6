"""Environment helpers for service configuration."""

import os
from typing import Mapping, Optional

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def get_env_str(name: str, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Get a stripped environment value.

    Returns:
        The value, or None if unset or blank.
    """
    env = os.environ if environ is None else environ
    value = env.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def get_env_bool(name: str, default: bool, environ: Optional[Mapping[str, str]] = None) -> bool:
    """
    Parse a boolean flag such as ``true``/``false`` or ``1``/``0``.

    Unrecognized values raise ValueError so a typo cannot silently disable a check.
    """
    value = get_env_str(name, environ)
    if value is None:
        return default
    lowered = value.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError(f"Invalid boolean for {name}: {value!r}")


def get_env_int(name: str, default: int, environ: Optional[Mapping[str, str]] = None) -> int:
    value = get_env_str(name, environ)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid integer for {name}: {value!r}") from None
