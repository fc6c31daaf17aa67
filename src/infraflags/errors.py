"""Failure taxonomy for infraflags checks.

Every error is terminal for the current invocation and carries a remediation
hint, so a CI status check never reports a bare failure class.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class InfraFlagsError(Exception):
    """Base error with a deterministic failure class and remediation hint."""

    failure_class = "infraflags_error"

    def __init__(self, message: str, hint: str = "", **details: Any):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details: Dict[str, Any] = details

    def payload(self) -> Dict[str, Any]:
        """Return the JSON-serializable error payload emitted by the CLI."""
        data: Dict[str, Any] = {
            "error": self.failure_class,
            "message": self.message,
            "hint": self.hint,
        }
        data.update(self.details)
        return data


class ConfigurationError(InfraFlagsError):
    """Requirement artifact or runtime settings cannot be used as given."""

    failure_class = "configuration_error"


class SnapshotResolutionError(InfraFlagsError):
    """No accessible change set to read deployed state from."""

    failure_class = "snapshot_resolution_failed"


class ComponentNotFoundError(InfraFlagsError):
    """The platform holds no flag component for the application."""

    failure_class = "component_not_found"


class ProjectionParseError(InfraFlagsError):
    """The component's computed projection is not a valid FlagMapping."""

    failure_class = "projection_parse_failed"

    def __init__(self, message: str, hint: str = "", raw: Any = None, **details: Any):
        super().__init__(message, hint, **details)
        self.raw = raw

    def payload(self) -> Dict[str, Any]:
        data = super().payload()
        data["raw"] = self.raw if isinstance(self.raw, (str, dict, list, type(None))) else repr(self.raw)
        return data


class TransportError(InfraFlagsError):
    """Network, timeout or authentication failure talking to the platform.

    ``kind`` is one of ``timeout``, ``unreachable``, ``auth``, ``http`` or
    ``protocol``.
    """

    failure_class = "transport_error"

    def __init__(
        self,
        message: str,
        hint: str = "",
        kind: str = "unreachable",
        status_code: Optional[int] = None,
        **details: Any,
    ):
        super().__init__(message, hint, **details)
        self.kind = kind
        self.status_code = status_code

    @property
    def is_timeout(self) -> bool:
        return self.kind == "timeout"

    def payload(self) -> Dict[str, Any]:
        data = super().payload()
        data["kind"] = self.kind
        if self.status_code is not None:
            data["status_code"] = self.status_code
        return data
