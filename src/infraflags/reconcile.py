"""Compare required flags with the flags deployed in one environment."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

SATISFIED = "satisfied"
UNSATISFIED = "unsatisfied"
INDETERMINATE = "indeterminate"


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of one check; immutable once produced.

    Sequences are stored as tuples so the result cannot be altered after
    ``reconcile`` returns it.
    """

    status: str
    required: Tuple[str, ...]
    deployed: Tuple[str, ...]
    missing: Tuple[str, ...] = ()
    environment: Optional[str] = None
    error: Optional[Mapping[str, Any]] = None
    warnings: Tuple[str, ...] = ()

    @property
    def satisfied(self) -> bool:
        return self.status == SATISFIED

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "status": self.status,
            "environment": self.environment,
            "required": list(self.required),
            "deployed": list(self.deployed),
            "missing": list(self.missing),
            "warnings": list(self.warnings),
        }
        if self.error is not None:
            payload["error"] = dict(self.error)
        return payload


def reconcile(
    required: Sequence[str],
    deployed: Iterable[str],
    environment: Optional[str] = None,
    warnings: Sequence[str] = (),
) -> ReconciliationResult:
    """Return which required flags are not deployed.

    Comparison is exact and case-sensitive; ``missing`` keeps the order of
    ``required``. Never returns ``indeterminate``.
    """
    deployed_flags = tuple(deployed)
    deployed_set = set(deployed_flags)
    missing = tuple(flag for flag in required if flag not in deployed_set)
    return ReconciliationResult(
        status=UNSATISFIED if missing else SATISFIED,
        required=tuple(required),
        deployed=deployed_flags,
        missing=missing,
        environment=environment,
        warnings=tuple(warnings),
    )


def indeterminate(
    required: Sequence[str],
    error: Dict[str, Any],
    environment: Optional[str] = None,
    warnings: Sequence[str] = (),
) -> ReconciliationResult:
    """Result for a check whose deployed state could not be resolved."""
    return ReconciliationResult(
        status=INDETERMINATE,
        required=tuple(required),
        deployed=(),
        environment=environment,
        error=MappingProxyType(dict(error)),
        warnings=tuple(warnings),
    )
