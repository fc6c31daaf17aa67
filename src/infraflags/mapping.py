"""Deployed-state relation between flags and the environments they are active in."""

from __future__ import annotations

from typing import Any, Dict, FrozenSet, List, Mapping

from jsonschema import validate as jsonschema_validate, ValidationError

from infraflags.errors import ProjectionParseError

BY_FLAG = "byFlag"
BY_ENVIRONMENT = "byEnvironment"
PROJECTIONS = (BY_FLAG, BY_ENVIRONMENT)

# Both projections share one shape: name -> list of names
PROJECTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": {
        "type": "array",
        "items": {"type": "string"},
    },
}


def validate_projection(payload: Any, projection: str = BY_FLAG) -> None:
    """Check a projection payload against PROJECTION_SCHEMA.

    Raises:
        ProjectionParseError: If the payload is not an object of string lists.
    """
    try:
        jsonschema_validate(instance=payload, schema=PROJECTION_SCHEMA)
    except ValidationError as exc:
        location = "/".join(str(part) for part in exc.absolute_path) or "<root>"
        raise ProjectionParseError(
            f"{projection} projection does not match the expected shape at {location}: {exc.message}",
            hint=f"The {projection} output must map each name to a list of strings; check the component's attribute function.",
            raw=payload,
        ) from exc


class FlagMapping:
    """Immutable flag -> environments relation with two derived projections."""

    def __init__(self, relation: Mapping[str, Any]):
        self._relation: Dict[str, FrozenSet[str]] = {
            flag: frozenset(envs) for flag, envs in relation.items()
        }

    @classmethod
    def from_by_flag(cls, payload: Any) -> "FlagMapping":
        validate_projection(payload, BY_FLAG)
        return cls(payload)

    @classmethod
    def from_by_environment(cls, payload: Any) -> "FlagMapping":
        validate_projection(payload, BY_ENVIRONMENT)
        relation: Dict[str, set] = {}
        for environment, flags in payload.items():
            for flag in flags:
                relation.setdefault(flag, set()).add(environment)
        return cls(relation)

    @classmethod
    def from_projection(cls, projection: str, payload: Any) -> "FlagMapping":
        """Build a mapping from either named projection."""
        if projection == BY_FLAG:
            return cls.from_by_flag(payload)
        if projection == BY_ENVIRONMENT:
            return cls.from_by_environment(payload)
        raise ValueError(f"Unknown projection '{projection}' (expected one of {', '.join(PROJECTIONS)})")

    def by_flag(self) -> Dict[str, List[str]]:
        return {flag: sorted(envs) for flag, envs in sorted(self._relation.items())}

    def by_environment(self) -> Dict[str, List[str]]:
        inverted: Dict[str, set] = {}
        for flag, envs in self._relation.items():
            for environment in envs:
                inverted.setdefault(environment, set()).add(flag)
        return {env: sorted(flags) for env, flags in sorted(inverted.items())}

    def flags(self) -> List[str]:
        return sorted(self._relation)

    def environments(self) -> List[str]:
        return sorted({env for envs in self._relation.values() for env in envs})

    def flags_for(self, environment: str) -> List[str]:
        """Sorted flags active in ``environment``; empty if it is undeclared."""
        return sorted(flag for flag, envs in self._relation.items() if environment in envs)

    def to_payload(self) -> Dict[str, Any]:
        return {BY_FLAG: self.by_flag(), BY_ENVIRONMENT: self.by_environment()}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FlagMapping):
            return NotImplemented
        return self._relation == other._relation

    def __repr__(self) -> str:
        return f"FlagMapping({self.by_flag()!r})"
