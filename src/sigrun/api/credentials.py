"""
Credentials loading utilities for completion providers.

Provides shared functionality for loading credentials from JSON files
with path expansion (~ and environment variables), and for resolving
the effective API key.
"""

import json as _json
import os as _os
import pathlib as _pathlib
import typing as _typing

import sigrun.api.errors as errors

API_KEY_ENV_VAR = "OPENAI_API_KEY"


def load_credentials_from_path(path: str) -> dict[str, _typing.Any]:
    """
    Load credentials from a JSON file.

    Args:
        path: Path to credentials JSON file. Supports ~ and $VAR expansion.

    Returns:
        Dict containing credentials (e.g., {"api_key": "..."}).

    Raises:
        ConfigurationError: If file cannot be read or parsed.

    Example:
        >>> creds = load_credentials_from_path("~/.config/sigrun/credentials.json")
        >>> api_key = creds.get("api_key")
    """
    expanded_path = _os.path.expandvars(_os.path.expanduser(path))
    creds_path = _pathlib.Path(expanded_path)

    if not creds_path.exists():
        raise errors.ConfigurationError(f"Credentials file not found: {expanded_path}")

    try:
        content = creds_path.read_text(encoding="utf-8")
        credentials = _json.loads(content)
    except PermissionError as e:
        raise errors.ConfigurationError(
            f"Permission denied reading credentials file: {expanded_path}"
        ) from e
    except _json.JSONDecodeError as e:
        raise errors.ConfigurationError(
            f"Invalid JSON in credentials file {expanded_path}: {e}"
        ) from e

    if not isinstance(credentials, dict):
        raise errors.ConfigurationError(
            f"Credentials file must contain a JSON object: {expanded_path}"
        )
    return credentials


def resolve_api_key(
    api_key: str | None = None,
    credentials_path: str | None = None,
) -> str | None:
    """
    Resolve the API key to use.

    Precedence: credentials file, then explicit key, then OPENAI_API_KEY.
    Returns None when nothing is configured; the provider reports that as
    a configuration error when the loop starts.
    """
    if credentials_path:
        credentials = load_credentials_from_path(credentials_path)
        file_key = credentials.get("api_key")
        if file_key:
            return str(file_key)
    if api_key:
        return api_key
    return _os.environ.get(API_KEY_ENV_VAR) or None
