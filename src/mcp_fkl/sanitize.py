"""
Path and flag sanitization for subprocess arguments.

Subprocesses are always spawned from an explicit argument vector, never
through a shell, so these helpers are not shell escaping. They restrict
paths and flag values to an allow-listed character class and remove
parent-directory segments before a value reaches an argument vector or a
filesystem lookup. Disallowed characters are stripped, never escaped.
"""

from __future__ import annotations

import re
from pathlib import Path

# Anything outside alphanumerics, "_", "-", "/" and "."
_DISALLOWED_CHARS = re.compile(r"[^a-zA-Z0-9_\-/.]")

VALID_BUILD_TYPES = ("Debug", "Release")
DEFAULT_BUILD_TYPE = "Release"


def sanitize_flag(raw: str) -> str:
    """
    Strip every character outside the allow-list from a flag value.

    Args:
        raw: Raw flag or value string.

    Returns:
        The string with disallowed characters removed.

    Example:
        >>> sanitize_flag("Release; echo hi")
        'Releaseechohi'
    """
    return _DISALLOWED_CHARS.sub("", raw)


def sanitize_path(raw: str) -> str:
    """
    Restrict a path to the allow-listed character class.

    Disallowed characters are stripped, then "." and ".." segments and empty
    segments are dropped. A leading "/" is preserved so absolute paths stay
    absolute.

    Args:
        raw: Raw path string.

    Returns:
        Sanitized path string (may be empty).

    Example:
        >>> sanitize_path("../../etc/passwd; rm -rf /")
        'etc/passwdrm-rf'
    """
    stripped = sanitize_flag(raw)
    segments = [s for s in stripped.split("/") if s not in ("", ".", "..")]
    joined = "/".join(segments)
    if stripped.startswith("/"):
        return "/" + joined
    return joined


def sanitize_build_type(raw: str | None) -> str:
    """
    Restrict a build type to the Debug/Release enumeration.

    Args:
        raw: Requested build type.

    Returns:
        The build type if it is valid, otherwise "Release".
    """
    if raw in VALID_BUILD_TYPES:
        return raw
    return DEFAULT_BUILD_TYPE


def resolve_within(root: Path, raw: str) -> Path | None:
    """
    Resolve a user-supplied relative path against a root directory.

    Args:
        root: Directory the result must stay inside.
        raw: User-supplied path.

    Returns:
        The resolved path, or None if the sanitized path is empty or the
        resolved location (after following symlinks) escapes root.
    """
    safe = sanitize_path(raw).lstrip("/")
    if not safe:
        return None

    resolved_root = root.resolve()
    candidate = (resolved_root / safe).resolve()
    if not candidate.is_relative_to(resolved_root):
        return None
    return candidate
