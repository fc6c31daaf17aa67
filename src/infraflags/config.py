"""Runtime settings read from the environment."""

from __future__ import annotations

import base64
import binascii
import json
import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from infraflags.errors import ConfigurationError
from infraflags.mapping import BY_FLAG, PROJECTIONS
from infraflags.requirements import DEFAULT_REQUIREMENTS_FILE

DEFAULT_API_URL = "https://api.systeminit.com"
DEFAULT_SCHEMA_KIND = "InfraFlags"
DEFAULT_TIMEOUT = 30.0

TOKEN_HELP_URL = "https://auth.systeminit.com/workspaces"

# System Initiative API tokens are JWTs: three base64url segments
JWT_PATTERN = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$")


def validate_token_format(token: Optional[str]) -> str:
    """Return the token stripped of surrounding whitespace.

    Raises:
        ConfigurationError: If the token is empty or is not shaped like a JWT.
    """
    value = (token or "").strip()
    if not value:
        raise ConfigurationError(
            "SI_API_TOKEN is not set",
            hint=f"Create an API token at {TOKEN_HELP_URL} (workspace gear icon > API Tokens) and export SI_API_TOKEN.",
        )
    if not JWT_PATTERN.match(value):
        raise ConfigurationError(
            "SI_API_TOKEN has an invalid format; System Initiative tokens are JWTs",
            hint="Copy the full token from the API Tokens page; it has three dot-separated parts.",
        )
    return value


def workspace_from_token(token: str) -> Optional[str]:
    """Read the ``workspaceId`` claim from a JWT payload without verifying it."""
    try:
        segment = token.split(".")[1]
        padded = segment + "=" * (-len(segment) % 4)
        claims = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (IndexError, ValueError, binascii.Error):
        return None
    if not isinstance(claims, dict):
        return None
    workspace = claims.get("workspaceId") or claims.get("workspace_id")
    return str(workspace) if workspace else None


def _float_setting(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be a number of seconds (got '{raw}')",
            hint=f"Unset {name} or set it to a positive number such as 30.",
        )
    if value <= 0:
        raise ConfigurationError(
            f"{name} must be positive (got '{raw}')",
            hint=f"Unset {name} or set it to a positive number such as 30.",
        )
    return value


@dataclass
class Settings:
    """Connection and lookup settings for one invocation."""

    api_token: Optional[str] = None
    workspace_id: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    schema_kind: str = DEFAULT_SCHEMA_KIND
    projection: str = BY_FLAG
    timeout: float = DEFAULT_TIMEOUT
    requirements_file: str = DEFAULT_REQUIREMENTS_FILE

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        projection = env.get("INFRAFLAGS_PROJECTION") or BY_FLAG
        if projection not in PROJECTIONS:
            raise ConfigurationError(
                f"INFRAFLAGS_PROJECTION must be one of {', '.join(PROJECTIONS)} (got '{projection}')",
                hint="Unset INFRAFLAGS_PROJECTION to read the byFlag output.",
            )
        return cls(
            api_token=env.get("SI_API_TOKEN") or None,
            workspace_id=env.get("SI_WORKSPACE_ID") or None,
            api_url=(env.get("SI_API_URL") or DEFAULT_API_URL).rstrip("/"),
            schema_kind=env.get("INFRAFLAGS_SCHEMA") or DEFAULT_SCHEMA_KIND,
            projection=projection,
            timeout=_float_setting(env, "INFRAFLAGS_TIMEOUT", DEFAULT_TIMEOUT),
            requirements_file=env.get("INFRAFLAGS_FILE") or DEFAULT_REQUIREMENTS_FILE,
        )

    def resolved_workspace(self) -> str:
        """Workspace id from settings or, failing that, from the token claims."""
        token = validate_token_format(self.api_token)
        workspace = self.workspace_id or workspace_from_token(token)
        if not workspace:
            raise ConfigurationError(
                "Cannot determine the System Initiative workspace",
                hint="Set SI_WORKSPACE_ID, or use a workspace API token that carries a workspaceId claim.",
            )
        return workspace
